"""
Two-party payment state channels.

Private balance updates signed by both participants, with a timeout-governed
dispute path and exactly-once settlement through an external ledger.
"""

from .state import ChannelState, encode_state, hash_state
from .crypto import SignatureVerifier, identity_of, sign_state, wrap_digest
from .clock import Clock, ManualClock, SystemClock
from .ledger import InMemoryLedger, Ledger, SqliteLedger
from .config import ChannelConfig
from .errors import (
    ChannelAlreadyClosed,
    ChannelError,
    ChannelNotExpired,
    ChannelNotFound,
    InvalidSignature,
    InvalidSignatureA,
    InvalidSignatureB,
    LedgerSettlementFailed,
    StaleNonce,
    Unauthorized,
)
from .machine import Channel, ChannelStateMachine

__all__ = [
    'ChannelState',
    'encode_state',
    'hash_state',
    'SignatureVerifier',
    'identity_of',
    'sign_state',
    'wrap_digest',
    'Clock',
    'ManualClock',
    'SystemClock',
    'Ledger',
    'InMemoryLedger',
    'SqliteLedger',
    'ChannelConfig',
    'ChannelError',
    'ChannelAlreadyClosed',
    'ChannelNotExpired',
    'ChannelNotFound',
    'InvalidSignature',
    'InvalidSignatureA',
    'InvalidSignatureB',
    'LedgerSettlementFailed',
    'StaleNonce',
    'Unauthorized',
    'Channel',
    'ChannelStateMachine',
]
