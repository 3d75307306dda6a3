"""
Liveness tracking and reconnect arbitration for the primary interface.

The controller pushes state packages continuously (10 Hz or more), so a
quiet socket means the link is dead even if TCP has not noticed yet. The
watchdog tracks the last package time, decides when the session should
reconnect and gives up once too many reconnects land inside a sliding
window.
"""

import logging
import threading
import time
from collections import deque
from collections.abc import Callable

from ..protocol.types import ConnectionStatus, WatchdogConfig, WatchdogRuntimeState

logger = logging.getLogger(__name__)


class Watchdog:
    def __init__(
        self,
        config: WatchdogConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or WatchdogConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._status = ConnectionStatus.DISCONNECTED
        self._last_package: float | None = None
        self._attempts: deque[float] = deque()

        # Inter-arrival latency tracking
        self._package_count = 0
        self.last_latency_ms = 0.0
        self.max_latency_ms = 0.0
        self.ema_latency_ms = 0.0

    @property
    def silence_timeout_s(self) -> float:
        return self.config.silence_timeout_ms / 1000.0

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def state(self) -> WatchdogRuntimeState:
        with self._lock:
            self._prune(self._clock())
            return WatchdogRuntimeState(
                last_package_timestamp=self._last_package,
                reconnect_attempts_in_window=len(self._attempts),
                window_start_timestamp=self._attempts[0] if self._attempts else None,
                connection_status=self._status,
            )

    def mark_connected(self, now: float | None = None) -> None:
        with self._lock:
            if self._status is ConnectionStatus.FAILED:
                raise RuntimeError("Watchdog is FAILED; create a new session")
            self._status = ConnectionStatus.CONNECTED
            # A fresh link gets a full silence budget
            self._last_package = self._clock() if now is None else now

    def mark_disconnected(self) -> None:
        with self._lock:
            if self._status is not ConnectionStatus.FAILED:
                self._status = ConnectionStatus.DISCONNECTED

    def record_package(self, now: float | None = None) -> None:
        with self._lock:
            now = self._clock() if now is None else now
            if self._package_count > 0 and self._last_package is not None:
                latency_ms = (now - self._last_package) * 1000.0
                self.last_latency_ms = latency_ms
                self.max_latency_ms = max(self.max_latency_ms, latency_ms)
                # EMA update: 0.1 * new + 0.9 * old
                self.ema_latency_ms = (
                    latency_ms
                    if self._package_count == 1
                    else 0.1 * latency_ms + 0.9 * self.ema_latency_ms
                )
                if self.config.enable_logging and latency_ms > self.config.log_package_threshold_ms:
                    logger.warning(
                        f"Package latency {latency_ms:.1f} ms exceeds "
                        f"{self.config.log_package_threshold_ms} ms (ema={self.ema_latency_ms:.1f} ms)"
                    )
            self._package_count += 1
            self._last_package = now

    def seconds_until_silence(self, now: float | None = None) -> float:
        """Remaining silence budget; <= 0 means the link is considered dead."""
        now = self._clock() if now is None else now
        last = self._last_package
        if last is None:
            return self.silence_timeout_s
        return self.silence_timeout_s - (now - last)

    def is_silent(self, now: float | None = None) -> bool:
        return self.seconds_until_silence(now) <= 0.0

    def _prune(self, now: float) -> None:
        window = self.config.reconnect_window_s
        if window <= 0:
            return
        while self._attempts and now - self._attempts[0] > window:
            self._attempts.popleft()

    def request_reconnect(self, now: float | None = None) -> bool:
        """
        Ask for permission to reconnect.

        Returns False and moves to FAILED when the attempts already counted in
        the window reach ``max_reconnect_attempts``; otherwise counts this
        attempt and moves to RECONNECTING.
        """
        with self._lock:
            if self._status is ConnectionStatus.FAILED:
                return False
            now = self._clock() if now is None else now
            self._prune(now)
            limit = self.config.max_reconnect_attempts
            if limit > 0 and len(self._attempts) >= limit:
                self._status = ConnectionStatus.FAILED
                logger.error(
                    f"{len(self._attempts)} reconnect attempts within "
                    f"{self.config.reconnect_window_s}s; giving up"
                )
                return False
            self._attempts.append(now)
            self._status = ConnectionStatus.RECONNECTING
            logger.info(f"Reconnect attempt {len(self._attempts)} in window")
            return True

    def fail(self, reason: str = "") -> None:
        with self._lock:
            self._status = ConnectionStatus.FAILED
        if reason:
            logger.error(f"Session failed: {reason}")
