"""Project-level configuration and path helpers."""

import os
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"

LOGS_DIR.mkdir(parents=True, exist_ok=True)

# State is volatile by default; a restart is equivalent to a reset.
MEMORY_DB = ":memory:"

# Timing
DEFAULT_POLL_INTERVAL = 0.5  # seconds between poll ticks
DEFAULT_DELIVERY_DELAY = 2.0  # simulated fulfillment, seconds
DEFAULT_REFUND_WINDOW = timedelta(hours=24)
DEFAULT_DEDUP_TTL = timedelta(hours=24)
QUOTE_DELIVERY_MINUTES = 5  # advisory only

# Demo agents
SERVICE_TYPE = "gpt4-tokens"
SELLER_PRICING = {SERVICE_TYPE: Decimal("0.01")}
BUYER_AGENT_ID = "buyer-agent-demo"
BUYER_AGENT_NAME = "Demo Buyer Agent"
BUYER_WALLET_LIMIT = Decimal("0.10")
SELLER_AGENT_ID = "seller-agent-demo"
SELLER_AGENT_NAME = "Demo GPT-4 Provider"
SELLER_WALLET_LIMIT = Decimal("0.05")


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path, defaulting to in-memory."""
    if not env_value or str(env_value) == MEMORY_DB:
        return MEMORY_DB

    candidate = Path(env_value)
    path = candidate if candidate.is_absolute() else PROJECT_ROOT / candidate
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _env_seconds(name: str, default: float) -> float:
    """Read a millisecond env var as seconds."""
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value) / 1000


def poll_interval() -> float:
    """Poll tick interval from POLL_INTERVAL_MS."""
    return _env_seconds("POLL_INTERVAL_MS", DEFAULT_POLL_INTERVAL)


def delivery_delay() -> float:
    """Simulated delivery delay from DELIVERY_DELAY_MS."""
    return _env_seconds("DELIVERY_DELAY_MS", DEFAULT_DELIVERY_DELAY)


def refund_window() -> timedelta:
    """Refund window from REFUND_WINDOW_HOURS."""
    hours = os.getenv("REFUND_WINDOW_HOURS")
    return timedelta(hours=float(hours)) if hours else DEFAULT_REFUND_WINDOW


def dedup_ttl() -> timedelta:
    """Processed-message retention from DEDUP_TTL_HOURS."""
    hours = os.getenv("DEDUP_TTL_HOURS")
    return timedelta(hours=float(hours)) if hours else DEFAULT_DEDUP_TTL


def wallet_fallback() -> bool:
    """Demo mode: fall back to mock wallets when WALLET_FALLBACK is set."""
    return os.getenv("WALLET_FALLBACK", "").lower() in ("1", "true", "yes")
