"""
Shared pytest fixtures for state channel tests.

Keys are generated fresh per test; time is a ManualClock so expiry can be
crossed deterministically.
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "src"))

import pytest

from statechannel.clock import ManualClock
from statechannel.crypto import SignatureVerifier, generate_signing_key, identity_of, sign_state
from statechannel.ledger import InMemoryLedger
from statechannel.machine import ChannelStateMachine
from statechannel.state import ChannelState

START_TIME = 1_700_000_000.0
TIMEOUT = 60


class Participant:
    """A signing key plus the identity derived from it"""

    def __init__(self, name: str):
        self.name = name
        self.key = generate_signing_key()
        self.identity = identity_of(self.key)

    def sign(self, state: ChannelState) -> str:
        return sign_state(self.key, state)


@pytest.fixture
def alice():
    return Participant("alice")


@pytest.fixture
def bob():
    return Participant("bob")


@pytest.fixture
def carol():
    """Outsider to the channel."""
    return Participant("carol")


@pytest.fixture
def clock():
    return ManualClock(START_TIME)


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def machine(ledger, clock):
    return ChannelStateMachine(SignatureVerifier(), ledger, clock)


@pytest.fixture
def channel_id(machine, alice, bob):
    """Channel opened by alice with bob: 60s timeout, deposit 10."""
    return machine.open(alice.identity, bob.identity, TIMEOUT, 10)
