"""
Channel rejection errors.

Every error rejects the whole operation with no partial mutation, except
LedgerSettlementFailed, which is raised after the channel is already closed.
"""

from typing import Optional


class ChannelError(Exception):
    """Base class for channel operation failures"""

    kind = "channel_error"

    def __init__(self, message: str, channel_id: Optional[str] = None):
        super().__init__(message)
        self.channel_id = channel_id


class ChannelNotFound(ChannelError):
    """Raised when a channel ID is unknown"""

    kind = "channel_not_found"


class Unauthorized(ChannelError):
    """Raised when the caller is not one of the two participants"""

    kind = "unauthorized"


class ChannelAlreadyClosed(ChannelError):
    """Raised on any state-changing call after the channel closed"""

    kind = "channel_already_closed"


class InvalidSignatureA(ChannelError):
    """Raised when participant A's signature does not verify"""

    kind = "invalid_signature_a"


class InvalidSignatureB(ChannelError):
    """Raised when participant B's signature does not verify"""

    kind = "invalid_signature_b"


class InvalidSignature(ChannelError):
    """Raised when the single signature on a disputed state does not verify"""

    kind = "invalid_signature"


class ChannelNotExpired(ChannelError):
    """Raised when settle/force_close is attempted before expiry"""

    kind = "channel_not_expired"


class StaleNonce(ChannelError):
    """Raised when a state's nonce does not exceed the stored nonce"""

    kind = "stale_nonce"


class LedgerSettlementFailed(ChannelError):
    """
    Raised when the ledger payout fails after the channel was closed.

    The channel stays closed and unsettled; there is no rollback. Treat as an
    alert, not a retryable rejection.
    """

    kind = "ledger_settlement_failed"
