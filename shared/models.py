"""
Shared Data Models (Pydantic)

Defines the data structures exchanged between the decision engine, the
HTTP server, and the demo client.

Keystroke timing is carried in milliseconds from a monotonic clock. Only
timing metadata and the key identifier reported by the input surface are
kept; the secret itself is never stored in any model below except the
transient LoginRequest.

These models are used for:
- Serialization/deserialization in the API
- Type safety in engine modules
- Validation of factor toggles and challenge codes
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from enum import Enum


class EventType(str, Enum):
    """Types of keystroke events – timing only."""
    KEY_PRESS = "key_press"
    KEY_RELEASE = "key_release"


class KeystrokeEvent(BaseModel):
    """
    Instantaneous key press or release.
    Produced by the credential-entry surface, consumed immediately.
    """
    timestamp: float = Field(..., description="Monotonic timestamp (milliseconds)")
    type: EventType = Field(..., description="Press or release")
    key: str = Field(..., description="Key identifier reported by the input surface")


class TypingMetric(BaseModel):
    """Per-keystroke timing record derived on key release."""
    key: str
    dwell_time: float = Field(..., ge=0.0, description="Release minus press (ms)")
    flight_time: float = Field(..., ge=0.0, description="Press minus previous release (ms)")
    timestamp: float = Field(..., description="Release timestamp (ms)")


class TrustFactors(BaseModel):
    """
    Current snapshot of the trust signals for one session.
    Booleans are toggled by the factor input source; typing_consistency
    is recomputed by the session from its metric buffer.
    """
    model_config = ConfigDict(validate_assignment=True)

    is_known_device: bool = True
    is_known_location: bool = True
    is_vpn_detected: bool = False
    typing_consistency: int = Field(100, ge=0, le=100)


class AuthState(str, Enum):
    """States of the session decision protocol."""
    COLLECTING = "collecting"
    ANALYZING = "analyzing"
    APPROVED = "approved"
    CHALLENGE_REQUIRED = "challenge_required"
    VERIFYING = "verifying"
    GRANTED = "granted"


class AnalysisStage(str, Enum):
    """Sequential stages of the analysis phase."""
    CONTEXT = "context_check"
    BIOMETRIC = "biometric_check"
    SCORE = "score_computation"


class RejectionReason(str, Enum):
    MISSING_CREDENTIALS = "missing_credentials"
    SECRET_TOO_SHORT = "secret_too_short"
    INVALID_CREDENTIALS = "invalid_credentials"


class UserProfile(BaseModel):
    """Account details returned by the credential gate on success."""
    id: str
    identifier: str
    name: str
    role: str = "user"
    department: Optional[str] = None


class CredentialResult(BaseModel):
    """Outcome of a credential validation call."""
    approved: bool
    rejection_reason: Optional[RejectionReason] = None
    profile: Optional[UserProfile] = None


class ApprovalStatus(str, Enum):
    """Out-of-band approval lifecycle as seen by the session."""
    NOT_REQUESTED = "not_requested"
    PENDING = "pending"
    APPROVED = "approved"
    EXPIRED = "expired"
    UNAVAILABLE = "unavailable"


class CodeVerdict(str, Enum):
    VALID = "valid"
    INVALID = "invalid"


# ----------------------------------------------------------------------
# Engine outputs
# ----------------------------------------------------------------------

class FactorPenalty(BaseModel):
    """One line of the trust score breakdown."""
    factor: str
    penalty: int = Field(..., ge=0)
    triggered: bool


class StageReport(BaseModel):
    """Result of one analysis stage, handed to progress callbacks."""
    stage: AnalysisStage
    at_risk: bool
    status: str


class AnalysisReport(BaseModel):
    """Full outcome of the analysis phase."""
    session_id: str
    trust_score: int = Field(..., ge=0, le=100)
    decision: AuthState
    stages: List[StageReport]
    penalties: List[FactorPenalty]
    profile: Optional[UserProfile] = None


class ChallengeStatus(BaseModel):
    attempts_used: int = 0
    attempts_remaining: int
    push_status: ApprovalStatus = ApprovalStatus.NOT_REQUESTED


class SessionSnapshot(BaseModel):
    """
    Everything an observer (presentation layer, demo client) may display.
    The trust score is computed at snapshot time, never cached.
    """
    session_id: str
    state: AuthState
    trust_score: int = Field(..., ge=0, le=100)
    factors: TrustFactors
    metrics: List[TypingMetric]
    access_granted: bool
    challenge: Optional[ChallengeStatus] = None
    profile: Optional[UserProfile] = None


# ----------------------------------------------------------------------
# API payloads (client → server)
# ----------------------------------------------------------------------

class KeystrokeBatch(BaseModel):
    """Payload sent to POST /sessions/{id}/keystrokes."""
    events: List[KeystrokeEvent]


class FactorUpdate(BaseModel):
    """
    Payload sent to PUT /sessions/{id}/factors.
    Omitted fields keep their current value.
    """
    is_known_device: Optional[bool] = None
    is_known_location: Optional[bool] = None
    is_vpn_detected: Optional[bool] = None


class LoginRequest(BaseModel):
    identifier: str = ""
    secret: str = ""


class CodeSubmission(BaseModel):
    code: str


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx produced by the auth flow."""
    error: str
    message: str
    attempts_remaining: Optional[int] = None
