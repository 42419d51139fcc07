"""
Collaborator Interfaces

The session core never knows where credentials live or how challenges are
delivered. It talks to these two capabilities, and deployments inject the
implementation (see server/credential_validator.py and
server/challenge_channel.py for the bundled ones).
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from shared.models import (
    ApprovalStatus,
    CodeVerdict,
    CredentialResult,
    RejectionReason,
    TypingMetric,
)

MIN_SECRET_LENGTH = 8


def check_credential_input(identifier: str, secret: str,
                           min_secret_length: int = MIN_SECRET_LENGTH) -> Optional[RejectionReason]:
    """
    Input rules shared by the session gate and validator implementations.

    Returns:
        The rejection reason, or None if the input may be checked further.
    """
    if not identifier or not identifier.strip() or not secret:
        return RejectionReason.MISSING_CREDENTIALS
    # Shorter secrets cannot yield enough keystrokes for a biometric sample
    if len(secret) < min_secret_length:
        return RejectionReason.SECRET_TOO_SHORT
    return None


class CredentialValidator(ABC):
    """Checks an identifier/secret pair before trust scoring starts."""

    @abstractmethod
    def validate(self, identifier: str, secret: str,
                 metrics: Sequence[TypingMetric]) -> CredentialResult:
        ...


class ChallengeChannel(ABC):
    """
    Step-up delivery: an out-of-band approval (push) and a one-time code.

    Implementations raise ChannelError when the channel cannot be reached.
    """

    @abstractmethod
    def send_out_of_band_approval(self) -> ApprovalStatus:
        ...

    @abstractmethod
    def poll_approval_status(self) -> ApprovalStatus:
        ...

    @abstractmethod
    def verify_code(self, code: str) -> CodeVerdict:
        ...
