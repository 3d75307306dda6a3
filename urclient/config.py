"""
Central configuration for urclient tunables and shared constants.
"""

import logging
import os

TRACE: int = 5
logging.addLevelName(TRACE, "TRACE")
# Add Logger.trace if missing
if not hasattr(logging.Logger, "trace"):

    def _trace(self, msg, *args, **kwargs):
        if self.isEnabledFor(TRACE):
            self._log(TRACE, msg, args, **kwargs)

    logging.Logger.trace = _trace  # type: ignore[attr-defined]
    logging.TRACE = TRACE  # type: ignore[attr-defined]

TRACE_ENABLED = str(os.getenv("URCLIENT_TRACE", "0")).lower() in ("1", "true", "yes", "on")

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    s = raw.strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    return default


# Robot endpoints
HOST: str = os.getenv("URCLIENT_HOST", "127.0.0.1")
INTERFACE_PORT: int = _env_int("URCLIENT_INTERFACE_PORT", 30001)
DASHBOARD_PORT: int = _env_int("URCLIENT_DASHBOARD_PORT", 29999)

# Socket timeouts (milliseconds, matching the controller documentation)
CONNECT_TIMEOUT_MS: int = _env_int("URCLIENT_CONNECT_TIMEOUT_MS", 1000)
SO_TIMEOUT_MS: int = _env_int("URCLIENT_SO_TIMEOUT_MS", 5000)

# Default wait for a script run from the command line (seconds, <= 0: no limit)
SCRIPT_TIMEOUT_S: float = _env_float("URCLIENT_SCRIPT_TIMEOUT_S", 60.0)

# Watchdog defaults
SILENCE_TIMEOUT_MS: int = _env_int("URCLIENT_SILENCE_TIMEOUT_MS", 1000)
MAX_RECONNECT_ATTEMPTS: int = _env_int("URCLIENT_MAX_RECONNECT_ATTEMPTS", 3)
RECONNECT_WINDOW_S: float = _env_float("URCLIENT_RECONNECT_WINDOW_S", 10.0)
LOG_PACKAGE_THRESHOLD_MS: int = _env_int("URCLIENT_LOG_PACKAGE_THRESHOLD_MS", 120)

# Reconnect backoff: min(MAX, BASE * 2**attempt) + jitter
RECONNECT_BACKOFF_S: float = _env_float("URCLIENT_RECONNECT_BACKOFF_S", 0.05)
RECONNECT_BACKOFF_MAX_S: float = _env_float("URCLIENT_RECONNECT_BACKOFF_MAX_S", 0.5)

# Primary interface stream handling
MAX_FRAME_BYTES: int = _env_int("URCLIENT_MAX_FRAME_BYTES", 1 << 20)
READ_CHUNK_BYTES: int = _env_int("URCLIENT_READ_CHUNK_BYTES", 4096)

# Per-subscriber queue bound; full queues drop their oldest entry
SUBSCRIBER_QUEUE_SIZE: int = _env_int("URCLIENT_SUBSCRIBER_QUEUE_SIZE", 32)

# Prefix of textmsg report lines emitted by scripts this client sends
REPORT_PREFIX: str = os.getenv("URCLIENT_REPORT_PREFIX", "URCLIENT")

# Package logging defaults for new sessions
LOG_ROBOT_STATES: bool = _env_bool("URCLIENT_LOG_ROBOT_STATES", False)
LOG_ROBOT_MESSAGES: bool = _env_bool("URCLIENT_LOG_ROBOT_MESSAGES", False)

LOG_LEVEL_DEFAULT: str = "INFO"
