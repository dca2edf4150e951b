"""
Runtime configuration read from environment variables.

STATE_CHANNEL_DEFAULT_TIMEOUT   dispute window in seconds (default 3600)
STATE_CHANNEL_STRICT_NONCE      'false' to accept non-increasing nonces (default 'true')
STATE_CHANNEL_LEDGER_DB         SQLite path for SqliteLedger (default .state/ledger.db)
STATE_CHANNEL_SERVICE_NAME      service name reported to tracing
OTEL_EXPORTER_OTLP_ENDPOINT     optional OTLP collector endpoint
"""
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_TIMEOUT_SECONDS = 3600.0


def _env_disabled(name: str) -> bool:
    """Replay protection is switched off only by an explicit 'false'."""
    return os.getenv(name, 'true').lower() == 'false'


@dataclass(frozen=True)
class ChannelConfig:
    default_timeout: float = DEFAULT_TIMEOUT_SECONDS
    strict_nonce: bool = True
    ledger_db: Path = Path(".state") / "ledger.db"
    service_name: str = "state-channel"
    otlp_endpoint: Optional[str] = None

    def __post_init__(self):
        if not math.isfinite(self.default_timeout):
            raise ValueError(f"default_timeout must be finite, got {self.default_timeout}")
        if self.default_timeout <= 0:
            raise ValueError(f"default_timeout must be positive, got {self.default_timeout}")

    @classmethod
    def from_env(cls) -> "ChannelConfig":
        """
        Build configuration from the environment.

        Raises:
            ValueError: If STATE_CHANNEL_DEFAULT_TIMEOUT is not a positive number
        """
        raw_timeout = os.getenv('STATE_CHANNEL_DEFAULT_TIMEOUT', str(DEFAULT_TIMEOUT_SECONDS))
        try:
            timeout = float(raw_timeout)
        except ValueError:
            raise ValueError(f"STATE_CHANNEL_DEFAULT_TIMEOUT must be a number, got {raw_timeout!r}")

        return cls(
            default_timeout=timeout,
            strict_nonce=not _env_disabled('STATE_CHANNEL_STRICT_NONCE'),
            ledger_db=Path(os.getenv('STATE_CHANNEL_LEDGER_DB', str(Path(".state") / "ledger.db"))),
            service_name=os.getenv('STATE_CHANNEL_SERVICE_NAME', 'state-channel'),
            otlp_endpoint=os.getenv('OTEL_EXPORTER_OTLP_ENDPOINT') or None,
        )
