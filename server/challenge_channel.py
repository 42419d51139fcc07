"""
Challenge Channel Module

Simulated step-up delivery used by the demo server and the tests. It
stands in for an SMS/TOTP code service and a push-notification service:
the expected one-time code is fixed, and out-of-band approval is granted
by calling approve(), the way a user would tap "Yes" on their phone.
"""

import hmac
import logging

from engine.collaborators import ChallengeChannel
from engine.errors import ChannelError
from shared.models import ApprovalStatus, CodeVerdict

logger = logging.getLogger(__name__)

DEMO_CODE = "123456"


class SimulatedChallengeChannel(ChallengeChannel):
    """
    In-memory challenge channel.

    Set `reachable` to False to simulate an outage; every call then raises
    ChannelError.
    """

    def __init__(self, expected_code: str = DEMO_CODE, reachable: bool = True):
        self.expected_code = expected_code
        self.reachable = reachable
        self._approval = ApprovalStatus.NOT_REQUESTED
        self.pushes_sent = 0

    def _check_reachable(self) -> None:
        if not self.reachable:
            raise ChannelError("Challenge channel unreachable")

    def send_out_of_band_approval(self) -> ApprovalStatus:
        self._check_reachable()
        self._approval = ApprovalStatus.PENDING
        self.pushes_sent += 1
        logger.info("Push approval request sent to registered device")
        return self._approval

    def poll_approval_status(self) -> ApprovalStatus:
        self._check_reachable()
        return self._approval

    def approve(self) -> None:
        """Simulate the user approving the pending push on their device."""
        if self._approval == ApprovalStatus.PENDING:
            self._approval = ApprovalStatus.APPROVED

    def verify_code(self, code: str) -> CodeVerdict:
        self._check_reachable()
        if hmac.compare_digest(code.encode(), self.expected_code.encode()):
            return CodeVerdict.VALID
        return CodeVerdict.INVALID
