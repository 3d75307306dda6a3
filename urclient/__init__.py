"""
urclient Python Package

An asyncio client for Universal Robots controllers: a self-healing primary
interface session with decoded robot state, serialized URScript execution,
and the dashboard server.

Key components:
- create_client / URClient: facade over session, coordinator and dashboard
- AsyncDashboardClient: dashboard server commands returning Result values
- DashboardClient: blocking wrapper for sync code
- PrimaryInterfaceSession, StateStore, Watchdog, ExecutionCoordinator
"""

from ._version import __version__
from .client.arm import ArmController, ToolController
from .client.coordinator import ExecutionCoordinator, ProgramFinished, robot_ready
from .client.dashboard import AsyncDashboardClient
from .client.session import PrimaryInterfaceSession
from .client.state_store import StateStore
from .client.sync_client import DashboardClient
from .client.ur import URClient, create_client
from .client.watchdog import Watchdog
from .protocol.types import (
    ArmState,
    ConnectionStatus,
    Inertia,
    JointPosition,
    Pose,
    Result,
    RGToolState,
    RobotMessage,
    RobotSnapshot,
    TFGToolState,
    ToolState,
    Vec3,
    VGToolReleaseState,
    VGToolState,
    WatchdogConfig,
    tool_status,
)
from .utils.errors import (
    DashboardCommandError,
    ExecutionInProgressError,
    ExecutionTimeoutError,
    PreconditionError,
    ProtocolError,
    ScriptExecutionError,
    URConnectionError,
)

__all__ = [
    "__version__",
    "create_client",
    "URClient",
    "AsyncDashboardClient",
    "DashboardClient",
    "PrimaryInterfaceSession",
    "StateStore",
    "Watchdog",
    "ExecutionCoordinator",
    "ProgramFinished",
    "robot_ready",
    "ArmController",
    "ToolController",
    "ArmState",
    "ConnectionStatus",
    "Inertia",
    "JointPosition",
    "Pose",
    "Result",
    "RGToolState",
    "RobotMessage",
    "RobotSnapshot",
    "TFGToolState",
    "ToolState",
    "Vec3",
    "VGToolReleaseState",
    "VGToolState",
    "WatchdogConfig",
    "tool_status",
    "DashboardCommandError",
    "ExecutionInProgressError",
    "ExecutionTimeoutError",
    "PreconditionError",
    "ProtocolError",
    "ScriptExecutionError",
    "URConnectionError",
]
