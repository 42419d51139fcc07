"""Shared fixtures for the ZeroTrust Gate tests."""
from __future__ import annotations

import pytest

from engine.auth_session import AuthSession
from engine.policy import AuthPolicy
from server.challenge_channel import SimulatedChallengeChannel
from server.credential_validator import InMemoryCredentialValidator
from shared.models import KeystrokeEvent

ACCOUNTS = {
    "alice@example.com": "CorrectHorse1",
    "short@example.com": "Short7!",
}


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def keystroke_events(flights, dwell=80.0, start=5000.0):
    """
    Press/release dicts whose emitted metrics carry the given flight times.
    The first flight is always 0 (no previous release).
    """
    events = []
    t = start
    for i, flight in enumerate(flights):
        if i > 0:
            t += flight
        events.append({"timestamp": t, "type": "key_press", "key": f"k{i}"})
        t += dwell
        events.append({"timestamp": t, "type": "key_release", "key": f"k{i}"})
    return events


def type_keys(session, flights, dwell=80.0):
    for event in keystroke_events(flights, dwell=dwell):
        session.record_keystroke(KeystrokeEvent(**event))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def validator():
    return InMemoryCredentialValidator(accounts=ACCOUNTS)


@pytest.fixture
def channel():
    return SimulatedChallengeChannel(expected_code="424242")


@pytest.fixture
def session(validator, channel, clock):
    return AuthSession(validator, channel, policy=AuthPolicy(), clock=clock)


@pytest.fixture
def challenged(session):
    """A session routed to challenge_required (unknown device + VPN = 50)."""
    session.set_factors(is_known_device=False, is_vpn_detected=True)
    type_keys(session, [120.0] * 10)
    session.submit_credentials("alice@example.com", "CorrectHorse1")
    return session
