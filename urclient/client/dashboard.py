"""
Async client for the UR dashboard server (port 29999).

Each call opens a fresh TCP connection, reads the welcome banner, writes one
command line per request and reads one response line back. Responses are
returned verbatim: a line such as ``File not found: x`` is a successful
result, only transport failures and empty responses are failures.
"""

import asyncio
import contextlib
import logging
from collections.abc import Sequence

from .. import config as cfg
from ..protocol.types import Result
from ..utils.errors import DashboardCommandError, URConnectionError

logger = logging.getLogger(__name__)

POWER_ON_SEQUENCE = (
    "close popup",
    "close safety popup",
    "unlock protective stop",
    "power on",
    "brake release",
)
UNLOCK_PROTECTIVE_STOP_SEQUENCE = ("unlock protective stop", "stop")


class AsyncDashboardClient:
    def __init__(
        self,
        host: str,
        port: int = cfg.DASHBOARD_PORT,
        connect_timeout_ms: int = cfg.CONNECT_TIMEOUT_MS,
        so_timeout_ms: int = cfg.SO_TIMEOUT_MS,
    ) -> None:
        self.host = host
        self.port = port
        self.connect_timeout_ms = connect_timeout_ms
        self.so_timeout_ms = so_timeout_ms

    # --------------- Internal helpers ---------------

    async def _open(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        try:
            return await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout_ms / 1000.0,
            )
        except TimeoutError:
            raise URConnectionError(
                f"Timed out connecting to dashboard {self.host}:{self.port}"
            ) from None
        except OSError as e:
            raise URConnectionError(f"Failed to connect to dashboard {self.host}:{self.port}: {e}") from e

    async def _readline(self, reader: asyncio.StreamReader) -> str | None:
        """One response line without its terminator; None on EOF."""
        try:
            raw = await asyncio.wait_for(reader.readline(), timeout=self.so_timeout_ms / 1000.0)
        except TimeoutError:
            raise URConnectionError(
                f"Dashboard {self.host}:{self.port} did not answer within {self.so_timeout_ms} ms"
            ) from None
        except ValueError as e:
            # StreamReader limit exceeded
            raise DashboardCommandError(f"Dashboard response line too long: {e}") from e
        if not raw:
            return None
        return raw.decode("utf-8", errors="replace").rstrip("\r\n")

    async def _exchange(self, commands: Sequence[str]) -> list[str | None]:
        reader, writer = await self._open()
        try:
            # Welcome banner: "Connected: Universal Robots Dashboard Server"
            banner = await self._readline(reader)
            logger.log(cfg.TRACE, f"Dashboard banner: {banner}")
            responses: list[str | None] = []
            for cmd in commands:
                writer.write(f"{cmd}\n".encode())
                await writer.drain()
                line = await self._readline(reader)
                logger.debug(f"Dashboard {cmd!r} -> {line!r}")
                responses.append(line)
            return responses
        except OSError as e:
            raise URConnectionError(f"Dashboard connection error: {e}") from e
        finally:
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()

    async def _send(self, cmd: str) -> str:
        (line,) = await self._exchange([cmd])
        if not line:
            raise DashboardCommandError(f"Empty response from robot for command: {cmd}")
        return line

    async def _send_batch(self, cmds: Sequence[str]) -> str:
        lines = await self._exchange(cmds)
        out = [
            line if line is not None else f"No response for command: {cmd}"
            for cmd, line in zip(cmds, lines, strict=True)
        ]
        return "\n".join(out).rstrip()

    async def _result(self, cmd: str | Sequence[str]) -> Result[str]:
        try:
            if isinstance(cmd, str):
                return Result.success(await self._send(cmd))
            return Result.success(await self._send_batch(cmd))
        except (URConnectionError, DashboardCommandError) as e:
            logger.debug(f"Dashboard command {cmd!r} failed: {e}")
            return Result.failure(e)

    # --------------- Program control ---------------

    async def load_installation(self, installation: str) -> Result[str]:
        """Load an installation file; the robot goes to POWER_OFF afterwards."""
        return await self._result(f"load installation {installation}")

    async def load(self, program: str) -> Result[str]:
        return await self._result(f"load {program}")

    async def play(self) -> Result[str]:
        return await self._result("play")

    async def stop(self) -> Result[str]:
        return await self._result("stop")

    async def pause(self) -> Result[str]:
        return await self._result("pause")

    # --------------- State queries ---------------

    async def fetch_is_running(self) -> Result[str]:
        """'Program running: true|false' (covers URScript programs too)."""
        return await self._result("running")

    async def fetch_program_state(self) -> Result[str]:
        """STOPPED / PLAYING / PAUSED of the loaded .urp program."""
        return await self._result("programState")

    async def fetch_loaded_program(self) -> Result[str]:
        return await self._result("get loaded program")

    # --------------- Safety / power ---------------

    async def power_on(self) -> Result[str]:
        """Close popups, unlock protective stop, power on and release brakes."""
        return await self._result(POWER_ON_SEQUENCE)

    async def power_off(self) -> Result[str]:
        return await self._result("power off")

    async def unlock_protective_stop(self) -> Result[str]:
        """Fails on the robot if less than 5 s passed since the stop."""
        return await self._result(UNLOCK_PROTECTIVE_STOP_SEQUENCE)

    # --------------- Info ---------------

    async def fetch_robot_model(self) -> Result[str]:
        return await self._result("get robot model")

    async def fetch_serial_number(self) -> Result[str]:
        return await self._result("get serial number")

    async def fetch_safety_status(self) -> Result[str]:
        return await self._result("safetystatus")

    async def fetch_polyscope_version(self) -> Result[str]:
        return await self._result("PolyscopeVersion")

    async def fetch_robot_mode(self) -> Result[str]:
        return await self._result("robotmode")

    async def shutdown(self) -> Result[str]:
        return await self._result("shutdown")

    async def send_command(self, command: str | Sequence[str]) -> Result[str]:
        """Send raw dashboard line(s); a sequence is sent over one connection."""
        return await self._result(command)
