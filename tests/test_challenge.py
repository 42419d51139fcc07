"""Tests for the step-up challenge: one-time code and out-of-band approval."""
from __future__ import annotations

import pytest

from engine.errors import ChallengeError, ChannelError, InputError, StateError
from shared.models import ApprovalStatus, AuthState


def test_valid_code_grants_access(challenged):
    assert challenged.submit_code("424242") == AuthState.GRANTED
    assert challenged.access_granted
    assert challenged.history[-3:] == [AuthState.CHALLENGE_REQUIRED, AuthState.VERIFYING, AuthState.GRANTED]


def test_wrong_code_allows_retry(challenged):
    with pytest.raises(ChallengeError) as excinfo:
        challenged.submit_code("000000")
    assert excinfo.value.attempts_remaining == 4
    assert challenged.state == AuthState.CHALLENGE_REQUIRED

    challenged.submit_code("424242")
    assert challenged.state == AuthState.GRANTED


@pytest.mark.parametrize("code", ["12345", "1234567", "12a456", "", " 42424", "424242\n", "١٢٣٤٥٦"])
def test_malformed_code_is_input_error(challenged, code):
    with pytest.raises(InputError):
        challenged.submit_code(code)
    assert challenged.state == AuthState.CHALLENGE_REQUIRED
    assert challenged.challenge_status().attempts_used == 0


def test_retry_limit_locks_code_path(challenged):
    for _ in range(5):
        with pytest.raises(ChallengeError):
            challenged.submit_code("111111")

    with pytest.raises(ChallengeError) as excinfo:
        challenged.submit_code("424242")
    assert excinfo.value.attempts_remaining == 0
    assert challenged.state == AuthState.CHALLENGE_REQUIRED
    assert not challenged.access_granted


def test_code_expires(challenged, clock):
    clock.advance(301)
    with pytest.raises(ChallengeError):
        challenged.submit_code("424242")
    assert challenged.state == AuthState.CHALLENGE_REQUIRED


def test_reset_clears_lockout(challenged):
    for _ in range(5):
        with pytest.raises(ChallengeError):
            challenged.submit_code("111111")
    challenged.reset()
    assert challenged.state == AuthState.COLLECTING
    challenged.submit_credentials("alice@example.com", "CorrectHorse1")
    assert challenged.submit_code("424242") == AuthState.GRANTED


def test_push_approval_grants_access(challenged, channel):
    assert challenged.request_push_approval() == ApprovalStatus.PENDING
    assert challenged.poll_push_approval() == ApprovalStatus.PENDING
    assert challenged.state == AuthState.CHALLENGE_REQUIRED

    channel.approve()
    assert challenged.poll_push_approval() == ApprovalStatus.APPROVED
    assert challenged.state == AuthState.GRANTED
    assert AuthState.VERIFYING in challenged.history


def test_push_expires_and_can_be_resent(challenged, channel, clock):
    challenged.request_push_approval()
    clock.advance(61)
    assert challenged.poll_push_approval() == ApprovalStatus.EXPIRED
    assert challenged.state == AuthState.CHALLENGE_REQUIRED

    # A late approval of the expired push changes nothing
    channel.approve()
    assert challenged.poll_push_approval() == ApprovalStatus.EXPIRED
    assert challenged.state == AuthState.CHALLENGE_REQUIRED

    assert challenged.request_push_approval() == ApprovalStatus.PENDING
    assert channel.pushes_sent == 2


def test_poll_without_push_request(challenged):
    assert challenged.poll_push_approval() == ApprovalStatus.NOT_REQUESTED
    assert challenged.state == AuthState.CHALLENGE_REQUIRED


def test_unreachable_channel_degrades_to_code_entry(challenged, channel):
    channel.reachable = False
    with pytest.raises(ChannelError):
        challenged.request_push_approval()
    assert challenged.challenge_status().push_status == ApprovalStatus.UNAVAILABLE
    with pytest.raises(ChannelError):
        challenged.request_push_approval()

    with pytest.raises(ChannelError):
        challenged.submit_code("424242")
    assert challenged.state == AuthState.CHALLENGE_REQUIRED
    assert not challenged.access_granted

    channel.reachable = True
    assert challenged.submit_code("424242") == AuthState.GRANTED


def test_channel_lost_while_polling(challenged, channel):
    challenged.request_push_approval()
    channel.reachable = False
    with pytest.raises(ChannelError):
        challenged.poll_push_approval()
    assert challenged.state == AuthState.CHALLENGE_REQUIRED
    assert challenged.poll_push_approval() == ApprovalStatus.UNAVAILABLE


def test_challenge_operations_need_challenge_state(session):
    with pytest.raises(StateError):
        session.submit_code("424242")
    with pytest.raises(StateError):
        session.request_push_approval()
    session.submit_credentials("alice@example.com", "CorrectHorse1")
    assert session.state == AuthState.APPROVED
    with pytest.raises(StateError):
        session.submit_code("424242")


def test_granted_only_through_success_paths(challenged, channel):
    for code in ("000000", "999999"):
        with pytest.raises(ChallengeError):
            challenged.submit_code(code)
    challenged.request_push_approval()
    challenged.poll_push_approval()
    assert AuthState.GRANTED not in challenged.history
    assert AuthState.APPROVED not in challenged.history
