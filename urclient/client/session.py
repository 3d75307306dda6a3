"""
Primary interface session: socket lifecycle, read loop and reconnects.
"""

import asyncio
import contextlib
import logging
import random
import time
from collections.abc import Callable

from .. import config as cfg
from ..protocol.types import ConnectionStatus, MessageType, RawPackage, WatchdogConfig
from ..protocol.wire import PackageDecoder
from ..utils.errors import ProtocolError, URConnectionError
from .state_store import StateStore
from .watchdog import Watchdog

logger = logging.getLogger(__name__)


class PrimaryInterfaceSession:
    """
    Persistent connection to the controller's primary interface.

    One long-lived task reads the socket, frames packages and hands each one,
    in receipt order, to the watchdog (liveness) and the state store. A socket
    error, EOF, a framing error or silence tears the stream down; the loop
    then reconnects with exponential backoff for as long as the watchdog
    allows. When the watchdog reaches FAILED the loop stops and the store is
    closed, ending every stream.

    A session is single use: after disconnect() or FAILED build a new one.
    """

    def __init__(
        self,
        host: str,
        port: int = cfg.INTERFACE_PORT,
        connect_timeout_ms: int = cfg.CONNECT_TIMEOUT_MS,
        watchdog_config: WatchdogConfig | None = None,
        store: StateStore | None = None,
        log_robot_states: bool = cfg.LOG_ROBOT_STATES,
        log_robot_messages: bool = cfg.LOG_ROBOT_MESSAGES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.host = host
        self.port = port
        self.connect_timeout_ms = connect_timeout_ms
        self.watchdog = Watchdog(watchdog_config, clock=clock)
        self.store = store if store is not None else StateStore()
        self.log_robot_states = log_robot_states
        self.log_robot_messages = log_robot_messages

        self._decoder = PackageDecoder()
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._read_task: asyncio.Task | None = None
        self._write_lock = asyncio.Lock()
        self.reconnects = 0

    # --------------- Properties ---------------

    @property
    def status(self) -> ConnectionStatus:
        return self.watchdog.status

    @property
    def is_connected(self) -> bool:
        return self._writer is not None and self.watchdog.status is ConnectionStatus.CONNECTED

    @property
    def decoder(self) -> PackageDecoder:
        return self._decoder

    # --------------- Lifecycle ---------------

    async def connect(self) -> None:
        """Open the socket and start the read loop. Raises URConnectionError."""
        if self._read_task is not None and not self._read_task.done():
            return
        if self.watchdog.status is ConnectionStatus.FAILED:
            raise URConnectionError("Session has FAILED; create a new client")
        if self.store.closed:
            raise URConnectionError("Session was closed; create a new client")
        await self._open()
        self.watchdog.mark_connected()
        logger.info(f"Connected to primary interface {self.host}:{self.port}")
        self._read_task = asyncio.create_task(
            self._read_loop(), name=f"urclient-read-{self.host}:{self.port}"
        )

    async def disconnect(self) -> None:
        """Stop the read loop and close the socket. Safe to call repeatedly."""
        task, self._read_task = self._read_task, None
        try:
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        finally:
            await self._close_stream()
            self.watchdog.mark_disconnected()
            self.store.close()
        logger.debug(f"Disconnected from {self.host}:{self.port}")

    async def __aenter__(self) -> "PrimaryInterfaceSession":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    async def wait_closed(self) -> None:
        """Wait until the read loop has stopped (disconnect or FAILED)."""
        task = self._read_task
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.shield(task)

    # --------------- Socket helpers ---------------

    async def _open(self) -> None:
        timeout = self.connect_timeout_ms / 1000.0
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=timeout
            )
        except TimeoutError:
            raise URConnectionError(
                f"Timed out connecting to {self.host}:{self.port} after {self.connect_timeout_ms} ms"
            ) from None
        except OSError as e:
            raise URConnectionError(f"Failed to connect to {self.host}:{self.port}: {e}") from e
        self._decoder.reset()
        self._reader, self._writer = reader, writer

    async def _close_stream(self) -> None:
        writer, self._writer, self._reader = self._writer, None, None
        if writer is None:
            return
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()

    # --------------- Read loop ---------------

    async def _read_loop(self) -> None:
        try:
            while True:
                try:
                    await self._pump()
                except (URConnectionError, ProtocolError, TimeoutError, OSError) as e:
                    logger.warning(f"Primary interface link lost: {e}")
                await self._close_stream()
                if not await self._reconnect():
                    break
        except Exception as e:
            logger.exception("Primary interface read loop crashed")
            self.watchdog.fail(str(e))
            await self._close_stream()
        if self.watchdog.status is ConnectionStatus.FAILED:
            logger.error(f"Primary interface session to {self.host}:{self.port} FAILED")
            self.store.close()

    async def _pump(self) -> None:
        reader = self._reader
        if reader is None:
            raise URConnectionError("Not connected")
        while True:
            budget = self.watchdog.seconds_until_silence()
            if budget <= 0:
                raise TimeoutError(f"No package within {self.watchdog.config.silence_timeout_ms} ms")
            try:
                data = await asyncio.wait_for(reader.read(cfg.READ_CHUNK_BYTES), timeout=budget)
            except TimeoutError:
                raise TimeoutError(
                    f"No package within {self.watchdog.config.silence_timeout_ms} ms"
                ) from None
            if not data:
                raise URConnectionError("Primary interface closed by peer")
            for package in self._decoder.feed(data):
                self.watchdog.record_package()
                self._dispatch(package)

    def _dispatch(self, package: RawPackage) -> None:
        try:
            snapshot = self.store.update(package)
        except ProtocolError as e:
            logger.warning(f"Dropping malformed {package.type.name} package ({package.length} bytes): {e}")
            return
        if snapshot is None:
            return
        if package.type == MessageType.ROBOT_MESSAGE:
            if self.log_robot_messages:
                logger.info(f"Robot message: {snapshot.last_message}")
        elif self.log_robot_states:
            logger.info(f"Robot state v{snapshot.version}: mode={snapshot.robot_mode} arm={snapshot.arm}")

    async def _reconnect(self) -> bool:
        attempt = 0
        while self.watchdog.request_reconnect():
            backoff = min(cfg.RECONNECT_BACKOFF_MAX_S, cfg.RECONNECT_BACKOFF_S * (2**attempt))
            await asyncio.sleep(backoff + random.uniform(0, 0.05))
            try:
                await self._open()
            except URConnectionError as e:
                logger.warning(f"Reconnect attempt failed: {e}")
                attempt += 1
                continue
            self.watchdog.mark_connected()
            self.reconnects += 1
            logger.info(f"Reconnected to primary interface {self.host}:{self.port}")
            return True
        return False

    # --------------- Sending ---------------

    async def send_urscript(self, script: str) -> None:
        """
        Write URScript to the primary interface.

        The controller executes the text as soon as it is received; this call
        does not wait for completion.
        """
        writer = self._writer
        if writer is None or self.watchdog.status is not ConnectionStatus.CONNECTED:
            raise URConnectionError(f"Primary interface {self.host}:{self.port} is not connected")
        text = script if script.endswith("\n") else script + "\n"
        async with self._write_lock:
            try:
                writer.write(text.encode("utf-8"))
                await writer.drain()
            except OSError as e:
                raise URConnectionError(f"Failed to send script: {e}") from e
        logger.debug(f"Sent {len(text)} bytes of URScript")
