"""
Synchronous facade for AsyncDashboardClient.

- In sync code: use DashboardClient and call methods directly.
- In async code (event loop running): this class raises to prevent blocking;
  use AsyncDashboardClient instead and `await` the methods.
"""

import asyncio
from collections.abc import Awaitable, Sequence
from typing import TypeVar

from .. import config as cfg
from ..protocol.types import Result
from .dashboard import AsyncDashboardClient

T = TypeVar("T")


def _run(coro: Awaitable[T]) -> T:
    """
    Run an async coroutine to completion when no event loop is running.
    If a loop is already running, raise to avoid deadlocks.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No running loop -> safe to run
        return asyncio.run(coro)
    # A loop is running; blocking would be unsafe. Close the coroutine to
    # avoid a "never awaited" warning.
    close = getattr(coro, "close", None)
    if close is not None:
        close()
    raise RuntimeError(
        "DashboardClient was used while an event loop is running.\n"
        "Use AsyncDashboardClient and `await` the method instead."
    )


class DashboardClient:
    """
    Blocking wrapper around AsyncDashboardClient.
    All methods return Result values (never coroutines).
    """

    def __init__(
        self,
        host: str,
        port: int = cfg.DASHBOARD_PORT,
        connect_timeout_ms: int = cfg.CONNECT_TIMEOUT_MS,
        so_timeout_ms: int = cfg.SO_TIMEOUT_MS,
    ) -> None:
        self._inner = AsyncDashboardClient(
            host, port=port, connect_timeout_ms=connect_timeout_ms, so_timeout_ms=so_timeout_ms
        )

    @property
    def async_client(self) -> AsyncDashboardClient:
        """Access the underlying async client if you need it."""
        return self._inner

    # ---------- program control ----------

    def load_installation(self, installation: str) -> Result[str]:
        return _run(self._inner.load_installation(installation))

    def load(self, program: str) -> Result[str]:
        return _run(self._inner.load(program))

    def play(self) -> Result[str]:
        return _run(self._inner.play())

    def stop(self) -> Result[str]:
        return _run(self._inner.stop())

    def pause(self) -> Result[str]:
        return _run(self._inner.pause())

    # ---------- state queries ----------

    def fetch_is_running(self) -> Result[str]:
        return _run(self._inner.fetch_is_running())

    def fetch_program_state(self) -> Result[str]:
        return _run(self._inner.fetch_program_state())

    def fetch_loaded_program(self) -> Result[str]:
        return _run(self._inner.fetch_loaded_program())

    # ---------- safety / power ----------

    def power_on(self) -> Result[str]:
        return _run(self._inner.power_on())

    def power_off(self) -> Result[str]:
        return _run(self._inner.power_off())

    def unlock_protective_stop(self) -> Result[str]:
        return _run(self._inner.unlock_protective_stop())

    # ---------- info ----------

    def fetch_robot_model(self) -> Result[str]:
        return _run(self._inner.fetch_robot_model())

    def fetch_serial_number(self) -> Result[str]:
        return _run(self._inner.fetch_serial_number())

    def fetch_safety_status(self) -> Result[str]:
        return _run(self._inner.fetch_safety_status())

    def fetch_polyscope_version(self) -> Result[str]:
        return _run(self._inner.fetch_polyscope_version())

    def fetch_robot_mode(self) -> Result[str]:
        return _run(self._inner.fetch_robot_mode())

    def shutdown(self) -> Result[str]:
        return _run(self._inner.shutdown())

    def send_command(self, command: str | Sequence[str]) -> Result[str]:
        return _run(self._inner.send_command(command))
