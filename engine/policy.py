"""
Authentication policy knobs carried into every session.
"""

from dataclasses import dataclass

from engine.collaborators import MIN_SECRET_LENGTH
from engine.consistency import MIN_SAMPLES
from engine.trust_engine import APPROVAL_THRESHOLD


@dataclass(frozen=True)
class AuthPolicy:
    approval_threshold: int = APPROVAL_THRESHOLD
    min_secret_length: int = MIN_SECRET_LENGTH
    min_samples: int = MIN_SAMPLES
    buffer_size: int = 20
    max_code_attempts: int = 5
    code_ttl: float = 300.0      # Seconds from entering challenge_required
    push_timeout: float = 60.0   # Seconds from sending the push
