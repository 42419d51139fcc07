"""
Credential Validator Module

Bundled credential gate: a swappable in-memory table of identifiers and
secrets. Production deployments inject their own CredentialValidator
backed by a real identity service.

The validator also enforces the minimum secret length, so a secret that is
too short to yield a biometric sample is rejected with its own reason
rather than reported as a mismatch.
"""

import hmac
from typing import Dict, Optional, Sequence
import logging

from engine.collaborators import MIN_SECRET_LENGTH, CredentialValidator, check_credential_input
from shared.models import CredentialResult, RejectionReason, TypingMetric, UserProfile

logger = logging.getLogger(__name__)

DEMO_ACCOUNTS = {
    "demo@zerotrust.dev": "ZeroTrust2025!",
    "admin@zerotrust.dev": "AdminPass123!",
    "auditor@zerotrust.dev": "AuditTrail42!",
}

DEMO_PROFILES = {
    "demo@zerotrust.dev": UserProfile(id="u_001", identifier="demo@zerotrust.dev",
                                      name="Alex Chen", role="user", department="Engineering"),
    "admin@zerotrust.dev": UserProfile(id="u_admin", identifier="admin@zerotrust.dev",
                                       name="Sarah Connor", role="admin", department="Security Ops"),
    "auditor@zerotrust.dev": UserProfile(id="u_audit", identifier="auditor@zerotrust.dev",
                                         name="Priya Natarajan", role="auditor", department="Compliance"),
}


class InMemoryCredentialValidator(CredentialValidator):
    """
    Validates identifier/secret pairs against an in-memory table.
    Note: Table is not persisted and secrets are held in clear text.
    For production, inject a validator backed by a credential store.
    """

    def __init__(self, accounts: Optional[Dict[str, str]] = None,
                 profiles: Optional[Dict[str, UserProfile]] = None,
                 min_secret_length: int = MIN_SECRET_LENGTH):
        self._accounts = dict(DEMO_ACCOUNTS if accounts is None else accounts)
        if profiles is None:
            profiles = DEMO_PROFILES if accounts is None else {}
        self._profiles = dict(profiles)
        self.min_secret_length = min_secret_length

    def add_account(self, identifier: str, secret: str,
                    profile: Optional[UserProfile] = None) -> None:
        self._accounts[identifier] = secret
        if profile is not None:
            self._profiles[identifier] = profile

    def profile_for(self, identifier: str) -> UserProfile:
        """Stored profile, or a minimal one derived from the identifier."""
        profile = self._profiles.get(identifier)
        if profile is None:
            profile = UserProfile(id=f"u_{identifier}", identifier=identifier,
                                  name=identifier.split("@")[0])
        return profile

    def validate(self, identifier: str, secret: str,
                 metrics: Sequence[TypingMetric]) -> CredentialResult:
        """
        Check the pair against the table.

        Returns:
            CredentialResult; rejection_reason is set when not approved,
            profile when approved.
        """
        reason = check_credential_input(identifier, secret, self.min_secret_length)
        if reason is not None:
            return CredentialResult(approved=False, rejection_reason=reason)

        stored = self._accounts.get(identifier)
        if stored is None or not hmac.compare_digest(stored.encode(), secret.encode()):
            logger.info(f"Credential mismatch for {identifier!r} ({len(metrics)} keystrokes sampled)")
            return CredentialResult(approved=False,
                                    rejection_reason=RejectionReason.INVALID_CREDENTIALS)

        return CredentialResult(approved=True, profile=self.profile_for(identifier))
