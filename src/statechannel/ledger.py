"""
Settlement ledgers: the custody side that actually pays participants out.

The state machine only depends on the Ledger protocol; InMemoryLedger and
SqliteLedger are the two implementations shipped here.
"""

import json
import sqlite3
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple


class Ledger(Protocol):
    def settle(self, to: str, amount: int) -> str:
        """Pay amount to identity `to`. Returns an operation ID; raises on failure."""
        ...


class OpType(Enum):
    """Types of ledger operations"""
    SETTLE = "SETTLE"       # Channel payout to a participant


@dataclass
class LedgerOp:
    """Single operation in the ledger audit trail"""
    op_id: str                  # UUID
    account: str                # Participant identity
    operation: OpType
    amount: int                 # Amount in smallest unit
    timestamp: int              # Timestamp in nanoseconds
    metadata: Dict[str, Any] = field(default_factory=dict)


def validate_payout(to: str, amount: int) -> None:
    """Validate a settlement payout (zero is a legal payout)"""
    if not isinstance(to, str) or not to.strip():
        raise ValueError("Payout recipient cannot be empty")
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"Amount must be integer, got {type(amount)}")
    if amount < 0:
        raise ValueError(f"Amount cannot be negative, got {amount}")


class InMemoryLedger:
    """
    Ledger that keeps payouts in process memory.

    `fail_on` is an optional predicate (to, amount) -> bool; when it returns
    True the payout raises RuntimeError instead of being recorded.
    """

    def __init__(self, fail_on: Optional[Callable[[str, int], bool]] = None):
        self.lock = threading.Lock()
        self.payouts: List[Tuple[str, int]] = []
        self.fail_on = fail_on

    def settle(self, to: str, amount: int) -> str:
        validate_payout(to, amount)
        if self.fail_on and self.fail_on(to, amount):
            raise RuntimeError(f"Payout of {amount} to {to} rejected by custody")
        with self.lock:
            self.payouts.append((to, amount))
        return str(uuid.uuid4())

    def balance_of(self, identity: str) -> int:
        with self.lock:
            return sum(amount for to, amount in self.payouts if to == identity)


class SqliteLedger:
    """
    Ledger with SQLite persistence and an append-only audit trail.

    Thread-safe; every payout is one transaction touching both tables.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        if str(db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.lock = threading.Lock()
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema"""
        with self.conn:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    account_id TEXT PRIMARY KEY,
                    balance TEXT NOT NULL DEFAULT '0'
                )
            """
            )

            # Operations audit trail (append-only)
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS operations (
                    op_id TEXT PRIMARY KEY,
                    account_id TEXT NOT NULL,
                    op_type TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    timestamp_ns INTEGER NOT NULL,
                    metadata_json TEXT NOT NULL
                )
            """
            )

            self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_ops_account ON operations(account_id)"
            )

    def settle(self, to: str, amount: int) -> str:
        """
        Credit a channel payout to an account, creating it if needed.

        Args:
            to: Recipient identity
            amount: Payout amount (may be zero)

        Returns:
            Operation ID
        """
        validate_payout(to, amount)

        with self.lock:
            with self.conn:
                current = self._get_balance_unsafe(to)
                # Balances are uint256; stored as decimal text to avoid
                # SQLite's 64-bit integer limit.
                new_balance = current + amount
                self.conn.execute(
                    "INSERT OR REPLACE INTO accounts (account_id, balance) VALUES (?, ?)",
                    (to, str(new_balance)),
                )

                op_id = str(uuid.uuid4())
                self.conn.execute(
                    """
                    INSERT INTO operations (op_id, account_id, op_type, amount, timestamp_ns, metadata_json)
                    VALUES (?, ?, ?, ?, ?, ?)
                """,
                    (
                        op_id,
                        to,
                        OpType.SETTLE.value,
                        str(amount),
                        time.time_ns(),
                        json.dumps({"previous_balance": str(current)}),
                    ),
                )
                return op_id

    def get_balance(self, account_id: str) -> int:
        """
        Get settled balance for account.

        Returns:
            Balance (0 if account doesn't exist)
        """
        with self.lock:
            return self._get_balance_unsafe(account_id)

    def _get_balance_unsafe(self, account_id: str) -> int:
        """Internal: read balance without acquiring lock. Used when lock already held."""
        cursor = self.conn.execute(
            "SELECT balance FROM accounts WHERE account_id = ?", (account_id,)
        )
        row = cursor.fetchone()
        return int(row[0]) if row else 0

    def get_audit_trail(
        self, account_id: Optional[str] = None, limit: int = 100
    ) -> List[LedgerOp]:
        """
        Get audit trail of operations.

        Args:
            account_id: Filter by account (None for all)
            limit: Maximum number of operations to return

        Returns:
            List of LedgerOp objects, newest first
        """
        query = (
            "SELECT op_id, account_id, op_type, amount, timestamp_ns, metadata_json "
            "FROM operations"
        )
        params: tuple = ()
        if account_id:
            query += " WHERE account_id = ?"
            params = (account_id,)
        query += " ORDER BY timestamp_ns DESC, rowid DESC LIMIT ?"

        with self.lock:
            rows = self.conn.execute(query, params + (limit,)).fetchall()

        return [
            LedgerOp(
                op_id=row[0],
                account=row[1],
                operation=OpType(row[2]),
                amount=int(row[3]),
                timestamp=row[4],
                metadata=json.loads(row[5]),
            )
            for row in rows
        ]

    def close(self) -> None:
        self.conn.close()
