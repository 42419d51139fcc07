"""
Trust Engine Module

Combines the environmental factors and the typing consistency score into a
single trust score using a fixed additive penalty model. The final trust
score is an integer in the range 0–100, recomputed on every factor change.
"""

from typing import List
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from shared.models import AuthState, FactorPenalty, TrustFactors

APPROVAL_THRESHOLD = 70


class TrustEngine:
    """
    Applies independent penalties to a base score of 100.
    Holds no state between calls; the score is a pure function of the
    factors passed in.
    """

    def __init__(self, approval_threshold: int = APPROVAL_THRESHOLD):
        """
        Args:
            approval_threshold: Scores at or above this value are approved
                                without a step-up challenge.
        """
        self.approval_threshold = approval_threshold

        # Penalty configuration
        self.base_score = 100
        self.penalty_unknown_device = 30
        self.penalty_unknown_location = 30
        self.penalty_vpn = 20
        self.penalty_low_consistency = 20
        self.consistency_floor = 70

    def explain(self, factors: TrustFactors) -> List[FactorPenalty]:
        """
        Per-factor breakdown of the penalties applied to `factors`.
        """
        return [
            FactorPenalty(factor="device", penalty=self.penalty_unknown_device,
                          triggered=not factors.is_known_device),
            FactorPenalty(factor="location", penalty=self.penalty_unknown_location,
                          triggered=not factors.is_known_location),
            FactorPenalty(factor="network", penalty=self.penalty_vpn,
                          triggered=factors.is_vpn_detected),
            FactorPenalty(factor="typing", penalty=self.penalty_low_consistency,
                          triggered=factors.typing_consistency < self.consistency_floor),
        ]

    def compute_score(self, factors: TrustFactors) -> int:
        """
        Calculate the trust score for the given factors.

        Args:
            factors: Current TrustFactors snapshot.

        Returns:
            Trust score (0–100).
        """
        score = self.base_score
        for item in self.explain(factors):
            if item.triggered:
                score -= item.penalty

        score = max(0, score)
        logger.debug(f"Trust score {score} - device:{factors.is_known_device} "
                     f"location:{factors.is_known_location} vpn:{factors.is_vpn_detected} "
                     f"typing:{factors.typing_consistency}")
        return score

    def decide(self, score: int) -> AuthState:
        """Route a final score to silent approval or a step-up challenge."""
        if score >= self.approval_threshold:
            return AuthState.APPROVED

        logger.warning(f"Trust score {score} below {self.approval_threshold}, challenge required")
        return AuthState.CHALLENGE_REQUIRED


def compute_score(factors: TrustFactors) -> int:
    """Module-level shortcut using the default penalty model."""
    return TrustEngine().compute_score(factors)
