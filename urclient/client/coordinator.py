"""
Serialized script execution over the primary interface.

The controller never acknowledges a script. Completion is inferred from the
state stream: by default the program-running flag has to rise and fall, or
the program's final DONE report has to arrive. Only one script may be in
flight at a time.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from typing import Any

from ..protocol import urscript, wire
from ..protocol.types import (
    PendingScriptExecution,
    Result,
    RobotMessage,
    RobotMessageType,
    RobotMode,
    RobotSnapshot,
)
from ..utils.errors import (
    ExecutionInProgressError,
    ExecutionTimeoutError,
    PreconditionError,
    ScriptExecutionError,
    URConnectionError,
)
from .session import PrimaryInterfaceSession
from .state_store import StateStore, Subscription

logger = logging.getLogger(__name__)

Precondition = Callable[[RobotSnapshot], bool]
Completion = Callable[[RobotSnapshot], bool]


def make_token() -> str:
    return uuid.uuid4().hex[:12]


def robot_ready(snapshot: RobotSnapshot) -> bool:
    """
    Standard precondition for motion and tool programs.

    Raises PreconditionError naming the first blocking condition.
    """
    mode = snapshot.robot_mode
    if mode is None:
        raise PreconditionError("Robot mode not yet received")
    if not mode.is_robot_power_on:
        raise PreconditionError("Robot is powered off")
    if mode.is_emergency_stopped:
        raise PreconditionError("Robot is emergency stopped")
    if mode.is_protective_stopped:
        raise PreconditionError("Robot is protective stopped")
    if mode.robot_mode != RobotMode.RUNNING:
        raise PreconditionError(f"Robot mode is {mode.robot_mode!r}, expected RUNNING")
    if mode.is_program_running:
        raise PreconditionError("A program is already running on the controller")
    return True


class ProgramFinished:
    """
    Default completion predicate.

    True once the program-running flag has risen and fallen again, or once
    the DONE report for ``token`` arrived and the flag is low.
    """

    def __init__(self, token: str | None = None) -> None:
        self.token = token
        self.seen_running = False
        self.done_reported = False
        self._last_message: RobotMessage | None = None

    def _is_done_report(self, message: RobotMessage) -> bool:
        report = wire.decode_report(message.text)
        if report is None:
            return False
        kind, fields = report
        return kind == "DONE" and fields.get("TOKEN") == self.token

    def __call__(self, snapshot: RobotSnapshot) -> bool:
        message = snapshot.last_message
        if self.token and message is not None and message is not self._last_message:
            self._last_message = message
            if self._is_done_report(message):
                self.done_reported = True
        mode = snapshot.robot_mode
        if mode is not None and mode.is_program_running:
            self.seen_running = True
            return False
        return self.seen_running or self.done_reported


class ExecutionCoordinator:
    """
    Owns the exclusive execution lock.

    With ``queue_when_busy`` False (default) a second execute() while one is
    pending fails fast with ExecutionInProgressError; otherwise it waits.
    """

    def __init__(
        self,
        session: PrimaryInterfaceSession,
        store: StateStore | None = None,
        queue_when_busy: bool = False,
    ) -> None:
        self.session = session
        self.store = store if store is not None else session.store
        self.queue_when_busy = queue_when_busy
        self._lock = asyncio.Lock()
        self._pending: PendingScriptExecution | None = None

    @property
    def pending(self) -> PendingScriptExecution | None:
        return self._pending

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def execute(
        self,
        script: str,
        *,
        token: str | None = None,
        precondition: Precondition | None = None,
        timeout: float | None = None,
        completion: Completion | None = None,
        on_state_change: Callable[[Any], None] | None = None,
        update_local_state: Callable[[RobotSnapshot], Any] | None = None,
    ) -> Result[Any]:
        """
        Send ``script`` and wait until it completes.

        Returns a success carrying the final projected local state (or the
        final snapshot when ``update_local_state`` is None). Failures:
        ExecutionInProgressError, PreconditionError, URConnectionError,
        ScriptExecutionError or ExecutionTimeoutError; an exception raised by
        one of the callables is returned as the failure. A timeout only stops
        the waiting; the script may still be running on the robot.

        With the default completion the script is made to print the DONE
        report for its token, so programs too short to show up in the
        program-running flag still complete.
        """
        if self._lock.locked() and not self.queue_when_busy:
            pending = self._pending
            busy_with = pending.token if pending is not None else "another script"
            return Result.failure(ExecutionInProgressError(f"Execution {busy_with} is still in progress"))

        token = token or make_token()
        if completion is None:
            script = urscript.ensure_done_report(script, token)

        async with self._lock:
            try:
                value = await self._execute_locked(
                    script,
                    token=token,
                    precondition=precondition,
                    timeout=timeout,
                    completion=completion,
                    on_state_change=on_state_change,
                    update_local_state=update_local_state,
                )
                return Result.success(value)
            except (
                PreconditionError,
                URConnectionError,
                ScriptExecutionError,
                ExecutionTimeoutError,
            ) as e:
                return Result.failure(e)
            except Exception as e:
                logger.exception(f"Execution {token} aborted by a callback error")
                return Result.failure(e)
            finally:
                self._pending = None

    async def _execute_locked(
        self,
        script: str,
        *,
        token: str,
        precondition: Precondition | None,
        timeout: float | None,
        completion: Completion | None,
        on_state_change: Callable[[Any], None] | None,
        update_local_state: Callable[[RobotSnapshot], Any] | None,
    ) -> Any:
        start = self.store.snapshot
        if precondition is not None and not precondition(start):
            raise PreconditionError("Robot state does not allow this operation")

        done = completion if completion is not None else ProgramFinished(token)
        self._pending = PendingScriptExecution(
            token=token, script=script, sent_at=time.time(), timeout=timeout
        )
        # Subscribe before sending so the completion transition cannot be missed
        with self.store.subscribe() as sub:
            await self.session.send_urscript(script)
            logger.debug(f"Execution {token} sent, waiting for completion (timeout={timeout})")
            try:
                return await asyncio.wait_for(
                    self._await_completion(sub, start, done, on_state_change, update_local_state),
                    timeout=timeout,
                )
            except TimeoutError:
                logger.warning(
                    f"Execution {token} not complete after {timeout}s; "
                    "the script may still be executing on the robot"
                )
                raise ExecutionTimeoutError(f"Execution {token} timed out after {timeout}s") from None

    async def _await_completion(
        self,
        sub: Subscription,
        start: RobotSnapshot,
        done: Completion,
        on_state_change: Callable[[Any], None] | None,
        update_local_state: Callable[[RobotSnapshot], Any] | None,
    ) -> Any:
        local = update_local_state(start) if update_local_state is not None else None
        last_message = start.last_message
        async for snapshot in sub:
            message = snapshot.last_message
            if message is not None and message is not last_message:
                last_message = message
                if message.kind == RobotMessageType.RUNTIME_EXCEPTION:
                    raise ScriptExecutionError(
                        f"Runtime exception at line {message.line}:{message.column}: {message.text}"
                    )
            if update_local_state is not None:
                value = update_local_state(snapshot)
                if value != local:
                    local = value
                    if on_state_change is not None:
                        self._notify(on_state_change, value)
            if done(snapshot):
                return local if update_local_state is not None else snapshot
        raise URConnectionError("Session closed while waiting for script completion")

    @staticmethod
    def _notify(callback: Callable[[Any], None], value: Any) -> None:
        try:
            callback(value)
        except Exception:
            logger.exception("on_state_change callback raised")
