"""
Session Registry Module

Keeps the live AuthSession objects of the API server, one per login
attempt. Every session gets its own challenge channel so that push
approvals never leak between attempts.

Note: Sessions live in process memory only and vanish on restart.
"""

import logging
from typing import Callable, Dict, Optional

from engine.auth_session import AuthSession
from engine.collaborators import ChallengeChannel, CredentialValidator
from engine.policy import AuthPolicy

logger = logging.getLogger(__name__)


class SessionRegistry:
    """In-memory map of session id to AuthSession."""

    def __init__(
        self,
        validator: CredentialValidator,
        channel_factory: Callable[[], ChallengeChannel],
        policy: Optional[AuthPolicy] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._validator = validator
        self._channel_factory = channel_factory
        self._policy = policy or AuthPolicy()
        self._clock = clock
        self._sessions: Dict[str, AuthSession] = {}
        self._channels: Dict[str, ChallengeChannel] = {}

    def create(self) -> AuthSession:
        channel = self._channel_factory()
        kwargs = {"clock": self._clock} if self._clock is not None else {}
        session = AuthSession(self._validator, channel, policy=self._policy, **kwargs)
        self._sessions[session.session_id] = session
        self._channels[session.session_id] = channel
        logger.info(f"Session {session.session_id[:8]} created ({len(self._sessions)} active)")
        return session

    def get(self, session_id: str) -> Optional[AuthSession]:
        return self._sessions.get(session_id)

    def channel_for(self, session_id: str) -> Optional[ChallengeChannel]:
        return self._channels.get(session_id)

    def discard(self, session_id: str) -> bool:
        """Forget a session. Returns False if it was unknown."""
        session = self._sessions.pop(session_id, None)
        self._channels.pop(session_id, None)
        if session is None:
            return False
        logger.info(f"Session {session_id[:8]} discarded")
        return True

    def get_session_summary(self, session_id: str) -> Optional[Dict]:
        """
        Return aggregated metrics for a given session.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return None

        history = session.history
        return {
            "session_id": session_id,
            "state": session.state.value,
            "trust_score": session.trust_score,
            "transition_count": len(history) - 1,
            "keystrokes_buffered": len(session.metrics),
            "access_granted": session.access_granted,
        }

    def __len__(self) -> int:
        return len(self._sessions)
