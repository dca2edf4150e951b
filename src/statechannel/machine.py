"""Two-party state channel state machine.

A channel holds the last state both participants signed and a dispute
deadline (expiry). Participants move it forward with dual-signed updates and
end it exactly once, either cooperatively (close_channel), by letting the
deadline pass (settle), or by submitting a signed disputed state after the
deadline (force_close). The terminal step is the only one that touches the
Ledger.
"""

from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple
import logging
import math
import threading
import uuid

from statechannel.clock import Clock, SystemClock
from statechannel.config import ChannelConfig
from statechannel.crypto import Signature, SignatureVerifier
from statechannel.errors import (
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
from statechannel.ledger import Ledger, SqliteLedger
from statechannel.observability import metrics
from statechannel.observability.tracing import create_span, setup_tracing
from statechannel.state import ChannelState, hash_state

logger = logging.getLogger(__name__)


@dataclass
class Channel:
    """Shared record of two participants' balances and dispute deadline."""

    channel_id: str
    participant_a: str
    participant_b: str
    timeout_duration: float
    expiry: float
    current_state: ChannelState
    current_state_hash: bytes
    closed: bool = False
    settled: bool = False  # both ledger payouts went through

    @property
    def balance_a(self) -> int:
        return self.current_state.balance_a

    @property
    def balance_b(self) -> int:
        return self.current_state.balance_b

    @property
    def nonce(self) -> int:
        return self.current_state.nonce

    def is_participant(self, identity: str) -> bool:
        return identity == self.participant_a or identity == self.participant_b

    def snapshot(self) -> "Channel":
        return replace(self)


class ChannelStateMachine:
    """
    Owns channels and enforces authorization and timing rules on them.

    Operations on one channel are serialized by that channel's lock; hashing
    and signature checks run before the lock is taken. Ledger payouts run
    after `closed` is committed and the lock is released, so a second closer
    (concurrent or reentrant from the ledger) always sees ChannelAlreadyClosed.
    """

    def __init__(
        self,
        verifier: SignatureVerifier,
        ledger: Ledger,
        clock: Clock,
        config: Optional[ChannelConfig] = None,
    ):
        self.verifier = verifier
        self.ledger = ledger
        self.clock = clock
        self.config = config or ChannelConfig()

        self.channels: Dict[str, Channel] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Optional[ChannelConfig] = None) -> "ChannelStateMachine":
        """
        Wire a machine for real use: SQLite ledger, system clock, and OTLP
        tracing when an endpoint is configured.

        Args:
            config: Configuration (read from the environment if None)
        """
        config = config or ChannelConfig.from_env()
        if config.otlp_endpoint:
            setup_tracing(config.service_name, otlp_endpoint=config.otlp_endpoint)
        return cls(SignatureVerifier(), SqliteLedger(config.ledger_db), SystemClock(), config)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(
        self,
        caller: str,
        counterparty: str,
        timeout_duration: Optional[float] = None,
        deposit: int = 0,
    ) -> str:
        """
        Open a channel funded by the caller.

        The caller becomes participant A with the whole deposit; the
        counterparty becomes participant B with zero.

        Args:
            caller: Identity of the funding participant (A)
            counterparty: Identity of the other participant (B)
            timeout_duration: Dispute window in seconds (config default if None)
            deposit: Initial balance of A

        Returns:
            channel_id

        Raises:
            ValueError: If identities, timeout or deposit are invalid
        """
        if not isinstance(caller, str) or not isinstance(counterparty, str):
            raise ValueError("Participant identities must be strings")
        if not caller or not counterparty:
            raise ValueError("Participant identities cannot be empty")
        if caller == counterparty:
            raise ValueError("Counterparty must differ from caller")

        if timeout_duration is None:
            timeout_duration = self.config.default_timeout
        if isinstance(timeout_duration, bool) or not isinstance(timeout_duration, (int, float)):
            raise ValueError(f"Timeout must be a number, got {type(timeout_duration)}")
        if not math.isfinite(timeout_duration):
            raise ValueError(f"Timeout must be finite, got {timeout_duration}")
        if timeout_duration <= 0:
            raise ValueError(f"Timeout must be positive, got {timeout_duration}")

        initial = ChannelState(balance_a=deposit, balance_b=0, nonce=0)
        channel_id = str(uuid.uuid4())

        with create_span("channel.open", {"channel_id": channel_id, "caller": caller}):
            channel = Channel(
                channel_id=channel_id,
                participant_a=caller,
                participant_b=counterparty,
                timeout_duration=timeout_duration,
                expiry=self.clock.now() + timeout_duration,
                current_state=initial,
                current_state_hash=hash_state(initial),
            )

            with self._registry_lock:
                self.channels[channel_id] = channel
                self._locks[channel_id] = threading.Lock()

        metrics.open_channels.inc()
        metrics.record_success("open")
        logger.info(
            f"Opened channel {channel_id} between {caller[:8]} and {counterparty[:8]} "
            f"with deposit {deposit}, timeout={timeout_duration}s"
        )
        return channel_id

    def update_state(
        self,
        channel_id: str,
        state: ChannelState,
        sig_a: Signature,
        sig_b: Signature,
        caller: str,
    ) -> Channel:
        """
        Replace the channel state with one both participants signed.

        Pushes the expiry out to now() + timeout_duration. No funds move.

        Raises:
            ChannelAlreadyClosed, Unauthorized, InvalidSignatureA,
            InvalidSignatureB, StaleNonce, ChannelNotFound
        """
        with self._operation("update_state", channel_id, caller):
            channel, lock = self._lookup(channel_id)
            digest, ok_a, ok_b = self._verify_dual(channel, state, sig_a, sig_b)

            with lock:
                self._authorize(channel, caller)
                self._require_dual(channel, ok_a, ok_b)
                self._require_newer(channel, state)
                self._commit(channel, state, digest)
                self._extend_expiry(channel)
                snapshot = channel.snapshot()

        metrics.record_success("update_state")
        logger.info(
            f"Channel {channel_id} updated to nonce {state.nonce} "
            f"(A={state.balance_a}, B={state.balance_b}), expiry={snapshot.expiry}"
        )
        return snapshot

    def close_channel(
        self,
        channel_id: str,
        state: ChannelState,
        sig_a: Signature,
        sig_b: Signature,
        caller: str,
    ) -> Channel:
        """
        Cooperatively close on a final state both participants signed.

        Raises:
            ChannelAlreadyClosed, Unauthorized, InvalidSignatureA,
            InvalidSignatureB, StaleNonce, ChannelNotFound,
            LedgerSettlementFailed (channel is closed regardless)
        """
        with self._operation("close_channel", channel_id, caller):
            channel, lock = self._lookup(channel_id)
            digest, ok_a, ok_b = self._verify_dual(channel, state, sig_a, sig_b)

            with lock:
                self._authorize(channel, caller)
                self._require_dual(channel, ok_a, ok_b)
                self._require_newer(channel, state)
                self._commit(channel, state, digest)
                self._extend_expiry(channel)
                channel.closed = True

            return self._payout(channel, lock, "close_channel")

    def settle(self, channel_id: str, caller: str) -> Channel:
        """
        Close an expired channel on its recorded balances.

        This is the path taken when nobody disputed within the window; no new
        state is accepted.

        Raises:
            ChannelAlreadyClosed, Unauthorized, ChannelNotExpired,
            ChannelNotFound, LedgerSettlementFailed
        """
        with self._operation("settle", channel_id, caller):
            channel, lock = self._lookup(channel_id)

            with lock:
                self._authorize(channel, caller)
                self._require_expired(channel)
                channel.closed = True

            return self._payout(channel, lock, "settle")

    def force_close(
        self,
        channel_id: str,
        state: ChannelState,
        sig_a: Signature,
        caller: str,
    ) -> Channel:
        """
        Unilaterally close an expired channel on a disputed state.

        Only participant A's signature over the disputed state is checked,
        whichever participant submits it.

        Raises:
            ChannelAlreadyClosed, Unauthorized, ChannelNotExpired,
            InvalidSignature, StaleNonce, ChannelNotFound,
            LedgerSettlementFailed
        """
        with self._operation("force_close", channel_id, caller):
            channel, lock = self._lookup(channel_id)
            with metrics.Timer(metrics.signature_verify_latency):
                digest = hash_state(state)
                ok_a = self.verifier.verify(digest, sig_a, channel.participant_a)

            with lock:
                self._authorize(channel, caller)
                self._require_expired(channel)
                if not ok_a:
                    raise InvalidSignature("Invalid signature from A", channel_id)
                self._require_newer(channel, state)
                self._commit(channel, state, digest)
                channel.closed = True

            return self._payout(channel, lock, "force_close")

    # ------------------------------------------------------------------
    # Read accessors (no authorization)
    # ------------------------------------------------------------------

    def get_channel(self, channel_id: str) -> Channel:
        channel, lock = self._lookup(channel_id)
        with lock:
            return channel.snapshot()

    def list_channels(self, participant: Optional[str] = None) -> List[Channel]:
        """Snapshots of all channels, optionally only those a participant is in."""
        with self._registry_lock:
            ids = list(self.channels)
        channels = [self.get_channel(channel_id) for channel_id in ids]
        if participant is None:
            return channels
        return [ch for ch in channels if ch.is_participant(participant)]

    def balance_a(self, channel_id: str) -> int:
        return self.get_channel(channel_id).balance_a

    def balance_b(self, channel_id: str) -> int:
        return self.get_channel(channel_id).balance_b

    def nonce(self, channel_id: str) -> int:
        return self.get_channel(channel_id).nonce

    def channel_closed(self, channel_id: str) -> bool:
        return self.get_channel(channel_id).closed

    def expiry(self, channel_id: str) -> float:
        return self.get_channel(channel_id).expiry

    def current_state_hash(self, channel_id: str) -> bytes:
        return self.get_channel(channel_id).current_state_hash

    def timeout_duration(self, channel_id: str) -> float:
        return self.get_channel(channel_id).timeout_duration

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _operation(self, operation: str, channel_id: str, caller: str):
        """Span plus rejection bookkeeping around one state-changing call."""
        with create_span(f"channel.{operation}", {"channel_id": channel_id, "caller": caller}) as span:
            try:
                yield span
            except LedgerSettlementFailed:
                raise
            except ChannelError as e:
                metrics.record_rejection(operation, e.kind)
                logger.warning(f"Rejected {operation} on channel {channel_id}: {e.kind}: {e}")
                raise

    def _lookup(self, channel_id: str) -> Tuple[Channel, threading.Lock]:
        with self._registry_lock:
            channel = self.channels.get(channel_id)
            if channel is None:
                raise ChannelNotFound(f"Channel {channel_id} does not exist", channel_id)
            return channel, self._locks[channel_id]

    def _verify_dual(
        self, channel: Channel, state: ChannelState, sig_a: Signature, sig_b: Signature
    ) -> Tuple[bytes, bool, bool]:
        # Participants never change, so this is safe outside the channel lock.
        with metrics.Timer(metrics.signature_verify_latency):
            digest = hash_state(state)
            ok_a = self.verifier.verify(digest, sig_a, channel.participant_a)
            ok_b = ok_a and self.verifier.verify(digest, sig_b, channel.participant_b)
        return digest, ok_a, ok_b

    def _authorize(self, channel: Channel, caller: str) -> None:
        # Closed is checked first: the terminal guard wins over every other rejection.
        if channel.closed:
            raise ChannelAlreadyClosed(
                f"Channel {channel.channel_id} is already closed", channel.channel_id
            )
        if not channel.is_participant(caller):
            raise Unauthorized(
                f"Caller {caller} is not a participant of channel {channel.channel_id}",
                channel.channel_id,
            )

    def _require_dual(self, channel: Channel, ok_a: bool, ok_b: bool) -> None:
        if not ok_a:
            raise InvalidSignatureA("Invalid signature from A", channel.channel_id)
        if not ok_b:
            raise InvalidSignatureB("Invalid signature from B", channel.channel_id)

    def _require_expired(self, channel: Channel) -> None:
        now = self.clock.now()
        if now < channel.expiry:
            raise ChannelNotExpired(
                f"Channel {channel.channel_id} expires at {channel.expiry}, now {now}",
                channel.channel_id,
            )

    def _require_newer(self, channel: Channel, state: ChannelState) -> None:
        if self.config.strict_nonce and state.nonce <= channel.nonce:
            raise StaleNonce(
                f"Invalid nonce: {state.nonce} (current: {channel.nonce})",
                channel.channel_id,
            )

    def _commit(self, channel: Channel, state: ChannelState, digest: bytes) -> None:
        channel.current_state = state
        channel.current_state_hash = digest

    def _extend_expiry(self, channel: Channel) -> None:
        channel.expiry = max(channel.expiry, self.clock.now() + channel.timeout_duration)

    def _payout(self, channel: Channel, lock: threading.Lock, path: str) -> Channel:
        """
        Pay out the committed balances of a channel that is already closed.

        Must be called without holding the channel lock.
        """
        metrics.open_channels.dec()
        state = channel.current_state
        try:
            self.ledger.settle(channel.participant_a, state.balance_a)
            self.ledger.settle(channel.participant_b, state.balance_b)
        except Exception as e:
            metrics.record_settlement_failure(path)
            logger.critical(
                f"Ledger payout failed for closed channel {channel.channel_id} via {path} "
                f"(A={state.balance_a}, B={state.balance_b}); funds need manual recovery",
                exc_info=True,
            )
            raise LedgerSettlementFailed(
                f"Ledger payout failed for channel {channel.channel_id}: {e}",
                channel.channel_id,
            ) from e

        with lock:
            channel.settled = True
            snapshot = channel.snapshot()

        metrics.record_success(path)
        metrics.record_settlement(path)
        logger.info(
            f"Settled channel {channel.channel_id} via {path}: "
            f"A={state.balance_a}, B={state.balance_b}, nonce={state.nonce}"
        )
        return snapshot
