"""
URClient facade: primary interface session, execution coordinator, arm and
tool controllers, and the dashboard server, behind one object.
"""

import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from .. import config as cfg
from ..protocol.types import (
    ArmState,
    ConfigurationData,
    ConnectionStatus,
    JointPosition,
    Pose,
    Result,
    RobotMessage,
    RobotModeData,
    RobotSnapshot,
    ToolState,
    WatchdogConfig,
    WatchdogRuntimeState,
)
from .arm import ArmController, ToolController
from .coordinator import ExecutionCoordinator
from .dashboard import AsyncDashboardClient
from .session import PrimaryInterfaceSession
from .state_store import StateStore

logger = logging.getLogger(__name__)


class URClient(AsyncDashboardClient):
    """
    Async client for one Universal Robots controller.

    Dashboard commands are available directly on the client (one short-lived
    connection per call). Arm and tool programs go through ``arm`` and
    ``tool`` and require connect() first.

    Usage:
        async with create_client("192.168.0.10") as ur:
            await ur.power_on()
            result = await ur.arm.move_j([0, -1.57, 1.57, -1.57, -1.57, 0])
    """

    def __init__(
        self,
        host: str,
        interface_port: int = cfg.INTERFACE_PORT,
        dashboard_port: int = cfg.DASHBOARD_PORT,
        connect_timeout_ms: int = cfg.CONNECT_TIMEOUT_MS,
        so_timeout_ms: int = cfg.SO_TIMEOUT_MS,
        watchdog_config: WatchdogConfig | None = None,
        log_robot_states: bool = cfg.LOG_ROBOT_STATES,
        log_robot_messages: bool = cfg.LOG_ROBOT_MESSAGES,
        queue_when_busy: bool = False,
    ) -> None:
        super().__init__(
            host, port=dashboard_port, connect_timeout_ms=connect_timeout_ms, so_timeout_ms=so_timeout_ms
        )
        self.interface_port = interface_port
        self.store = StateStore()
        self.session = PrimaryInterfaceSession(
            host,
            port=interface_port,
            connect_timeout_ms=connect_timeout_ms,
            watchdog_config=watchdog_config,
            store=self.store,
            log_robot_states=log_robot_states,
            log_robot_messages=log_robot_messages,
        )
        self.coordinator = ExecutionCoordinator(self.session, self.store, queue_when_busy=queue_when_busy)
        self.arm = ArmController(self.coordinator)
        self.tool = ToolController(self.coordinator)

    # --------------- Lifecycle ---------------

    async def connect(self) -> None:
        await self.session.connect()

    async def close(self) -> None:
        await self.session.disconnect()

    async def __aenter__(self) -> "URClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def connection_status(self) -> ConnectionStatus:
        return self.session.status

    @property
    def watchdog_state(self) -> WatchdogRuntimeState:
        return self.session.watchdog.state

    # --------------- State ---------------

    @property
    def snapshot(self) -> RobotSnapshot:
        return self.store.snapshot

    def current_arm_state(self) -> ArmState | None:
        return self.store.current_arm_state()

    def current_tool_state(self) -> ToolState | None:
        return self.store.current_tool_state()

    def current_configuration(self) -> ConfigurationData | None:
        return self.store.current_configuration()

    def current_robot_mode(self) -> RobotModeData | None:
        return self.store.current_robot_mode()

    def snapshots(self) -> AsyncIterator[RobotSnapshot]:
        return self.store.snapshots()

    def joint_positions(self) -> AsyncIterator[JointPosition]:
        return self.store.joint_positions()

    def tcp_poses(self) -> AsyncIterator[Pose]:
        return self.store.tcp_poses()

    def robot_messages(self) -> AsyncIterator[RobotMessage]:
        return self.store.robot_messages()

    # --------------- Scripts ---------------

    async def send_urscript(self, script: str) -> None:
        """Fire-and-forget URScript; bypasses the execution lock."""
        await self.session.send_urscript(script)

    async def execute(
        self,
        script: str,
        *,
        precondition: Callable[[RobotSnapshot], bool] | None = None,
        timeout: float | None = None,
        completion: Callable[[RobotSnapshot], bool] | None = None,
        on_state_change: Callable[[Any], None] | None = None,
        update_local_state: Callable[[RobotSnapshot], Any] | None = None,
    ) -> Result[Any]:
        return await self.coordinator.execute(
            script,
            precondition=precondition,
            timeout=timeout,
            completion=completion,
            on_state_change=on_state_change,
            update_local_state=update_local_state,
        )


def create_client(
    host: str,
    interface_port: int = 30001,
    dashboard_port: int = 29999,
    connect_timeout_ms: int = 1000,
    so_timeout_ms: int = 5000,
    watchdog_config: WatchdogConfig = WatchdogConfig(),
    log_robot_states: bool = False,
    log_robot_messages: bool = False,
) -> URClient:
    """
    Build a client for the robot at ``host``. Nothing is connected yet.

    ``so_timeout_ms`` bounds dashboard reads only; primary interface
    liveness is governed by ``watchdog_config``.
    """
    return URClient(
        host,
        interface_port=interface_port,
        dashboard_port=dashboard_port,
        connect_timeout_ms=connect_timeout_ms,
        so_timeout_ms=so_timeout_ms,
        watchdog_config=watchdog_config,
        log_robot_states=log_robot_states,
        log_robot_messages=log_robot_messages,
    )
