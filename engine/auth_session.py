"""
Auth Session Module

The aggregate root of one login attempt. Owns the trust factors, the
keystroke metric buffer and the current AuthState, and sequences the
decision protocol:

    collecting -> analyzing -> approved
                            -> challenge_required -> verifying -> granted

reset() returns to collecting from anywhere. Access is only ever granted
by a score at or above the approval threshold, or by a successful
step-up challenge (valid one-time code or out-of-band approval).
"""

import re
import time
import uuid
from typing import Callable, List, Optional
import logging

logger = logging.getLogger(__name__)

from engine.collaborators import ChallengeChannel, CredentialValidator, check_credential_input
from engine.consistency import compute_consistency
from engine.errors import (
    AuthenticationError,
    ChallengeError,
    ChannelError,
    InputError,
    SessionCancelled,
    StateError,
)
from engine.keystroke_extractor import KeystrokeExtractor
from engine.policy import AuthPolicy
from engine.trust_engine import TrustEngine
from shared.models import (
    AnalysisReport,
    AnalysisStage,
    ApprovalStatus,
    AuthState,
    ChallengeStatus,
    CodeVerdict,
    KeystrokeEvent,
    RejectionReason,
    SessionSnapshot,
    StageReport,
    TrustFactors,
    TypingMetric,
    UserProfile,
)

StageCallback = Callable[[StageReport], None]

CODE_PATTERN = re.compile(r"[0-9]{6}")

TOGGLEABLE_FACTORS = ("is_known_device", "is_known_location", "is_vpn_detected")


class AuthSession:
    """
    Single-writer state machine for one login attempt.
    Not thread-safe; each attempt gets its own instance.
    """

    def __init__(
        self,
        validator: CredentialValidator,
        channel: ChallengeChannel,
        policy: Optional[AuthPolicy] = None,
        session_id: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            validator: Credential gate consulted before analysis.
            channel: Step-up challenge delivery.
            policy: Thresholds and retry/expiry limits.
            session_id: Defaults to a fresh UUID.
            clock: Seconds source used for code expiry and push timeout.
        """
        self.session_id = session_id or str(uuid.uuid4())
        self.policy = policy or AuthPolicy()
        self._validator = validator
        self._channel = channel
        self._clock = clock

        self._engine = TrustEngine(approval_threshold=self.policy.approval_threshold)
        self._extractor = KeystrokeExtractor(buffer_size=self.policy.buffer_size)
        self.factors = TrustFactors()

        self._state = AuthState.COLLECTING
        self._history: List[AuthState] = [AuthState.COLLECTING]
        # Bumped by reset(); an analysis started under an older value is stale
        self._generation = 0
        self.identifier: Optional[str] = None
        self.profile: Optional[UserProfile] = None
        self._clear_challenge()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def history(self) -> List[AuthState]:
        """Every state entered since creation, in order."""
        return list(self._history)

    @property
    def metrics(self) -> List[TypingMetric]:
        return self._extractor.metrics

    @property
    def trust_score(self) -> int:
        """Always recomputed from the current factors."""
        return self._engine.compute_score(self.factors)

    @property
    def access_granted(self) -> bool:
        return self._state in (AuthState.APPROVED, AuthState.GRANTED)

    def challenge_status(self) -> Optional[ChallengeStatus]:
        if self._challenge_opened_at is None:
            return None
        return ChallengeStatus(
            attempts_used=self._code_attempts,
            attempts_remaining=self._attempts_remaining(),
            push_status=self._push_status,
        )

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            state=self._state,
            trust_score=self.trust_score,
            factors=self.factors.model_copy(),
            metrics=self.metrics,
            access_granted=self.access_granted,
            challenge=self.challenge_status(),
            profile=self.profile,
        )

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def record_keystroke(self, event: KeystrokeEvent) -> Optional[TypingMetric]:
        """
        Feed one raw key event from the credential-entry surface.

        Returns:
            The TypingMetric emitted on a completed key release, if any.
        """
        self._require(AuthState.COLLECTING)
        metric = self._extractor.add_event(event)
        if metric is not None:
            self._refresh_consistency()
        return metric

    def set_factors(
        self,
        is_known_device: Optional[bool] = None,
        is_known_location: Optional[bool] = None,
        is_vpn_detected: Optional[bool] = None,
    ) -> int:
        """
        Apply environmental factors from the factor input source.
        None leaves a factor unchanged.

        Returns:
            The recomputed trust score.
        """
        if is_known_device is not None:
            self.factors.is_known_device = is_known_device
        if is_known_location is not None:
            self.factors.is_known_location = is_known_location
        if is_vpn_detected is not None:
            self.factors.is_vpn_detected = is_vpn_detected
        score = self.trust_score
        logger.debug(f"Session {self.session_id[:8]}: factors updated, score={score}")
        return score

    def toggle_factor(self, name: str) -> int:
        if name not in TOGGLEABLE_FACTORS:
            raise InputError(f"Unknown factor '{name}'")
        setattr(self.factors, name, not getattr(self.factors, name))
        return self.trust_score

    # ------------------------------------------------------------------
    # Collecting -> Analyzing -> decision
    # ------------------------------------------------------------------

    def submit_credentials(self, identifier: str, secret: str,
                           on_stage: Optional[StageCallback] = None) -> AnalysisReport:
        """
        Validate credentials and, on success, run the analysis phase.

        Args:
            identifier: Account identifier (e.g. email).
            secret: Password typed on the keystroke-sampled surface.
            on_stage: Optional progress callback, called once per stage.

        Returns:
            AnalysisReport with the final score and decision.

        Raises:
            InputError: missing fields or secret below the sampling minimum.
            AuthenticationError: credential mismatch.
            SessionCancelled: reset() was called while analyzing.
            Anything raised by on_stage propagates after the session has
            returned to collecting.
        """
        self._require(AuthState.COLLECTING)

        reason = check_credential_input(identifier, secret, self.policy.min_secret_length)
        profile = None
        if reason is None:
            result = self._validator.validate(identifier, secret, self.metrics)
            if not result.approved:
                reason = result.rejection_reason or RejectionReason.INVALID_CREDENTIALS
            profile = result.profile

        if reason == RejectionReason.MISSING_CREDENTIALS:
            raise InputError("Credentials required")
        if reason == RejectionReason.SECRET_TOO_SHORT:
            raise InputError(f"Password too short for biometric analysis "
                             f"(min {self.policy.min_secret_length} chars)")
        if reason is not None:
            logger.warning(f"Session {self.session_id[:8]}: invalid credentials")
            raise AuthenticationError("Invalid identifier or password")

        self.identifier = identifier
        self.profile = profile
        self._transition(AuthState.ANALYZING)
        return self._analyze(on_stage)

    def _analyze(self, on_stage: Optional[StageCallback]) -> AnalysisReport:
        generation = self._generation
        try:
            stages, score = self._run_stages(on_stage, generation)
        except SessionCancelled:
            raise
        except Exception:
            # A failing progress callback must not strand the session in analyzing
            if generation == self._generation and self._state == AuthState.ANALYZING:
                logger.warning(f"Session {self.session_id[:8]}: analysis interrupted, back to collecting")
                self.identifier = None
                self.profile = None
                self._transition(AuthState.COLLECTING)
            raise

        penalties = self._engine.explain(self.factors)
        decision = self._engine.decide(score)
        if decision == AuthState.CHALLENGE_REQUIRED:
            self._open_challenge()
        self._transition(decision)

        return AnalysisReport(
            session_id=self.session_id,
            trust_score=score,
            decision=decision,
            stages=stages,
            penalties=penalties,
            profile=self.profile,
        )

    def _run_stages(self, on_stage: Optional[StageCallback], generation: int):
        stages: List[StageReport] = []
        score = 0

        for stage in AnalysisStage:
            if stage == AnalysisStage.CONTEXT:
                report = self._context_stage()
            elif stage == AnalysisStage.BIOMETRIC:
                report = self._biometric_stage()
            else:
                score = self.trust_score
                report = StageReport(
                    stage=stage,
                    at_risk=score < self.policy.approval_threshold,
                    status=f"Score: {score}/100",
                )
            stages.append(report)

            if on_stage is not None:
                on_stage(report)
            if generation != self._generation:
                logger.info(f"Session {self.session_id[:8]}: analysis cancelled at {stage.value}")
                raise SessionCancelled("Analysis abandoned by reset")

        return stages, score

    def _context_stage(self) -> StageReport:
        trusted = self.factors.is_known_device and self.factors.is_known_location
        if self.factors.is_vpn_detected:
            status = "VPN or proxy detected"
        elif trusted:
            status = "Trusted environment"
        else:
            status = "Suspicious context detected"
        return StageReport(stage=AnalysisStage.CONTEXT,
                           at_risk=not trusted or self.factors.is_vpn_detected,
                           status=status)

    def _biometric_stage(self) -> StageReport:
        self._refresh_consistency()
        consistency = self.factors.typing_consistency
        return StageReport(stage=AnalysisStage.BIOMETRIC,
                           at_risk=consistency < self._engine.consistency_floor,
                           status=f"{consistency}% consistency match")

    # ------------------------------------------------------------------
    # Step-up challenge
    # ------------------------------------------------------------------

    def submit_code(self, code: str) -> AuthState:
        """
        Verify a one-time code through the challenge channel.

        Raises:
            InputError: code is not exactly 6 digits (does not use an attempt).
            ChallengeError: wrong or expired code, or retry limit reached.
            ChannelError: channel unreachable; state stays challenge_required.
        """
        self._require(AuthState.CHALLENGE_REQUIRED)
        if not isinstance(code, str) or not CODE_PATTERN.fullmatch(code):
            raise InputError("Verification code must be 6 digits")

        if self._attempts_remaining() <= 0:
            raise ChallengeError("Too many incorrect codes, restart the login", attempts_remaining=0)
        if self._clock() - self._challenge_opened_at > self.policy.code_ttl:
            raise ChallengeError("Verification code expired, restart the login", attempts_remaining=0)

        generation = self._generation
        self._transition(AuthState.VERIFYING)
        try:
            verdict = self._channel.verify_code(code)
        except Exception:
            if self._state == AuthState.VERIFYING:
                self._transition(AuthState.CHALLENGE_REQUIRED)
            raise

        if generation != self._generation:
            raise SessionCancelled("Verification abandoned by reset")

        if verdict == CodeVerdict.VALID:
            self._transition(AuthState.GRANTED)
            return self._state

        self._code_attempts += 1
        self._transition(AuthState.CHALLENGE_REQUIRED)
        remaining = self._attempts_remaining()
        logger.warning(f"Session {self.session_id[:8]}: incorrect code, {remaining} attempts left")
        raise ChallengeError("Incorrect verification code", attempts_remaining=remaining)

    def request_push_approval(self) -> ApprovalStatus:
        """
        Ask the channel to send an out-of-band approval request.
        Re-sending after expiry is allowed.
        """
        self._require(AuthState.CHALLENGE_REQUIRED)
        if self._push_status == ApprovalStatus.UNAVAILABLE:
            raise ChannelError("Push approval unavailable, enter the verification code")

        try:
            self._channel.send_out_of_band_approval()
        except ChannelError:
            self._push_status = ApprovalStatus.UNAVAILABLE
            logger.warning(f"Session {self.session_id[:8]}: push undeliverable, code entry only")
            raise

        self._push_status = ApprovalStatus.PENDING
        self._push_sent_at = self._clock()
        logger.info(f"Session {self.session_id[:8]}: push approval sent")
        return self._push_status

    def poll_push_approval(self) -> ApprovalStatus:
        """
        Check the pending push. An approval grants access; a push older
        than the policy timeout is marked expired and the session keeps
        waiting in challenge_required.
        """
        self._require(AuthState.CHALLENGE_REQUIRED)
        if self._push_status != ApprovalStatus.PENDING:
            return self._push_status

        if self._clock() - self._push_sent_at > self.policy.push_timeout:
            self._push_status = ApprovalStatus.EXPIRED
            logger.info(f"Session {self.session_id[:8]}: push approval expired")
            return self._push_status

        try:
            status = self._channel.poll_approval_status()
        except ChannelError:
            self._push_status = ApprovalStatus.UNAVAILABLE
            logger.warning(f"Session {self.session_id[:8]}: push channel lost, code entry only")
            raise

        if status == ApprovalStatus.APPROVED:
            self._push_status = ApprovalStatus.APPROVED
            self._transition(AuthState.VERIFYING)
            self._transition(AuthState.GRANTED)
        return self._push_status

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """
        Abandon the attempt and start over in collecting. The metric
        buffer is emptied and typing consistency restored to 100;
        environmental factors are kept.
        """
        self._generation += 1
        self._extractor.clear()
        self.factors.typing_consistency = 100
        self.identifier = None
        self.profile = None
        self._clear_challenge()
        if self._state != AuthState.COLLECTING:
            self._transition(AuthState.COLLECTING)
        logger.info(f"Session {self.session_id[:8]} reset")

    cancel = reset

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, *states: AuthState) -> None:
        if self._state not in states:
            allowed = ", ".join(s.value for s in states)
            raise StateError(f"Not allowed in state '{self._state.value}' (needs {allowed})")

    def _transition(self, new_state: AuthState) -> None:
        logger.info(f"Session {self.session_id[:8]}: {self._state.value} -> {new_state.value}")
        self._state = new_state
        self._history.append(new_state)

    def _refresh_consistency(self) -> None:
        self.factors.typing_consistency = compute_consistency(
            self._extractor.metrics, min_samples=self.policy.min_samples
        )

    def _open_challenge(self) -> None:
        self._challenge_opened_at = self._clock()
        self._code_attempts = 0
        self._push_status = ApprovalStatus.NOT_REQUESTED
        self._push_sent_at = None

    def _clear_challenge(self) -> None:
        self._challenge_opened_at: Optional[float] = None
        self._code_attempts = 0
        self._push_status = ApprovalStatus.NOT_REQUESTED
        self._push_sent_at: Optional[float] = None

    def _attempts_remaining(self) -> int:
        return max(0, self.policy.max_code_attempts - self._code_attempts)
