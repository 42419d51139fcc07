"""
Auth Flow Errors

Every failure of the decision protocol is session-local and recoverable by
retrying or resetting. None of these exceptions ever leaves a session in an
access-granted state.
"""

from typing import Optional


class AuthFlowError(Exception):
    """Base class for all session-level failures."""
    code = "auth_flow_error"


class InputError(AuthFlowError):
    """Missing credential fields, a secret too short to sample, or a malformed code."""
    code = "input_error"


class AuthenticationError(AuthFlowError):
    """Credential mismatch."""
    code = "authentication_error"


class ChallengeError(AuthFlowError):
    """Wrong or expired one-time code, or the retry limit has been reached."""
    code = "challenge_error"

    def __init__(self, message: str, attempts_remaining: Optional[int] = None):
        super().__init__(message)
        self.attempts_remaining = attempts_remaining


class ChannelError(AuthFlowError):
    """Challenge channel unreachable. The code-entry path stays available."""
    code = "channel_error"


class StateError(AuthFlowError):
    """Operation not permitted in the current state."""
    code = "state_error"


class SessionCancelled(AuthFlowError):
    """The in-progress phase was abandoned by a reset."""
    code = "session_cancelled"
