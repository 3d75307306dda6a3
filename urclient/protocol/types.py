"""
Type definitions for the UR primary interface and client API.

Defines enums, frozen value objects, state snapshots and the Result wrapper
used across the public API.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Generic, Literal, NamedTuple, TypeVar, Union

import numpy as np
from spatialmath import SO3

T = TypeVar("T")


# --------------- Wire enums ---------------

class MessageType(IntEnum):
    """Top-level primary interface message types."""

    MODBUS_INFO = 5
    ROBOT_STATE = 16
    ROBOT_MESSAGE = 20
    HMC_MESSAGE = 22
    SAFETY_SETUP_BROADCAST = 23
    SAFETY_COMPLIANCE_TOLERANCES = 24
    PROGRAM_STATE_MESSAGE = 25


class RobotStateType(IntEnum):
    """Sub-package types inside a ROBOT_STATE message."""

    ROBOT_MODE_DATA = 0
    JOINT_DATA = 1
    TOOL_DATA = 2
    MASTERBOARD_DATA = 3
    CARTESIAN_INFO = 4
    KINEMATICS_INFO = 5
    CONFIGURATION_DATA = 6
    FORCE_MODE_DATA = 7
    ADDITIONAL_INFO = 8
    CALIBRATION_DATA = 9
    SAFETY_DATA = 10
    TOOL_COMM_INFO = 11
    TOOL_MODE_INFO = 12


class RobotMessageType(IntEnum):
    """Subtypes of a ROBOT_MESSAGE."""

    TEXT = 0
    PROGRAM_LABEL = 1
    POPUP = 2
    VERSION = 3
    SAFETY_MODE = 5
    ERROR_CODE = 6
    KEY = 7
    REQUEST_VALUE = 9
    RUNTIME_EXCEPTION = 10


class RobotMode(IntEnum):
    NO_CONTROLLER = -1
    DISCONNECTED = 0
    CONFIRM_SAFETY = 1
    BOOTING = 2
    POWER_OFF = 3
    POWER_ON = 4
    IDLE = 5
    BACKDRIVE = 6
    RUNNING = 7
    UPDATING_FIRMWARE = 8


class ConnectionStatus(Enum):
    """Primary interface connection state as arbitrated by the watchdog."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTED = "CONNECTED"
    RECONNECTING = "RECONNECTING"
    FAILED = "FAILED"  # terminal; build a new session


class ToolKind(Enum):
    RG = "RG"
    TFG = "TFG"
    VG = "VG"
    VG_RELEASE = "VG_RELEASE"


# --------------- Value objects ---------------

@dataclass(frozen=True)
class JointPosition:
    """Six joint angles in radians, base to wrist 3."""

    base: float = 0.0
    shoulder: float = 0.0
    elbow: float = 0.0
    wrist1: float = 0.0
    wrist2: float = 0.0
    wrist3: float = 0.0

    @classmethod
    def from_list(cls, values) -> JointPosition:
        vals = [float(v) for v in values]
        if len(vals) != 6:
            raise ValueError(f"JointPosition needs 6 values, got {len(vals)}")
        return cls(*vals)

    def to_list(self) -> list[float]:
        return [self.base, self.shoulder, self.elbow, self.wrist1, self.wrist2, self.wrist3]

    def in_degrees(self) -> list[float]:
        return np.degrees(self.to_list()).tolist()


@dataclass(frozen=True)
class Pose:
    """Cartesian pose: translation in metres, orientation as a rotation vector in radians."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    rx: float = 0.0
    ry: float = 0.0
    rz: float = 0.0

    @classmethod
    def from_list(cls, values) -> Pose:
        vals = [float(v) for v in values]
        if len(vals) != 6:
            raise ValueError(f"Pose needs 6 values, got {len(vals)}")
        return cls(*vals)

    def to_list(self) -> list[float]:
        return [self.x, self.y, self.z, self.rx, self.ry, self.rz]

    def rpy(self, unit: Literal["rad", "deg"] = "rad") -> list[float]:
        """Orientation as roll/pitch/yaw (ZYX convention)."""
        v = np.array([self.rx, self.ry, self.rz], dtype=np.float64)
        theta = float(np.linalg.norm(v))
        if theta < 1e-12:
            return [0.0, 0.0, 0.0]
        R = SO3.AngVec(theta, v / theta)
        return [float(a) for a in R.rpy(unit=unit)]


@dataclass(frozen=True)
class Vec3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def to_list(self) -> list[float]:
        return [self.x, self.y, self.z]


@dataclass(frozen=True)
class Inertia:
    ixx: float = 0.0
    iyy: float = 0.0
    izz: float = 0.0
    ixy: float = 0.0
    ixz: float = 0.0
    iyz: float = 0.0

    def to_list(self) -> list[float]:
        return [self.ixx, self.iyy, self.izz, self.ixy, self.ixz, self.iyz]


# --------------- Arm state ---------------

@dataclass(frozen=True)
class ArmState:
    """Immutable snapshot of the arm; replaced wholesale on every relevant package."""

    joint_position: JointPosition = field(default_factory=JointPosition)
    tcp_pose: Pose = field(default_factory=Pose)
    tcp_offset: Pose = field(default_factory=Pose)
    payload: float = 0.0
    payload_cog: Vec3 = field(default_factory=Vec3)
    payload_inertia: Inertia = field(default_factory=Inertia)

    def copy(self) -> ArmState:
        return dataclasses.replace(self)

    def to_formatted_string(
        self,
        joints_in_degree: bool = False,
        tcp_pose_in_degree: bool = False,
        tcp_pose_in_millimeter: bool = False,
        tcp_offset_in_degree: bool = False,
        tcp_offset_in_millimeter: bool = False,
        round_decimals: bool = False,
    ) -> str:
        """
        Multi-line representation of the arm state using the requested units.

        Rotation-vector components are scaled to degrees when requested; no
        conversion to another orientation convention is made.
        """

        def fmt(vals) -> str:
            if round_decimals:
                return ", ".join(f"{v:.4f}" for v in vals)
            return ", ".join(str(float(v)) for v in vals)

        def pose_vals(p: Pose, deg: bool, mm: bool) -> list[float]:
            xyz = np.array(p.to_list()[:3]) * (1000.0 if mm else 1.0)
            rot = np.array(p.to_list()[3:])
            if deg:
                rot = np.degrees(rot)
            return list(xyz) + list(rot)

        joints = self.joint_position.in_degrees() if joints_in_degree else self.joint_position.to_list()
        lines = [
            "-=ArmState=-",
            f"  jointPosition = [{fmt(joints)}]",
            f"  tcpPose = [{fmt(pose_vals(self.tcp_pose, tcp_pose_in_degree, tcp_pose_in_millimeter))}]",
            f"  tcpOffset = [{fmt(pose_vals(self.tcp_offset, tcp_offset_in_degree, tcp_offset_in_millimeter))}]",
            f"  payload = {fmt([self.payload])}",
            f"  payloadCog = [{fmt(self.payload_cog.to_list())}]",
            f"  payloadInertia = [{fmt(self.payload_inertia.to_list())}]",
        ]
        return "\n".join(lines)


# --------------- Tool states (tagged union) ---------------

@dataclass(frozen=True)
class RGToolState:
    width: float = 0.0
    depth: float = 0.0
    grip_detected: bool = False
    kind: ToolKind = field(default=ToolKind.RG, init=False)

    def copy(self) -> RGToolState:
        return dataclasses.replace(self)


@dataclass(frozen=True)
class TFGToolState:
    ext_width: float = 0.0
    int_width: float = 0.0
    grip_detected: bool = False
    kind: ToolKind = field(default=ToolKind.TFG, init=False)

    def copy(self) -> TFGToolState:
        return dataclasses.replace(self)


@dataclass(frozen=True)
class VGToolState:
    vacuum_a: float = 0.0
    vacuum_b: float = 0.0
    grip_detected: bool = False
    kind: ToolKind = field(default=ToolKind.VG, init=False)

    def copy(self) -> VGToolState:
        return dataclasses.replace(self)


@dataclass(frozen=True)
class VGToolReleaseState:
    vacuum_a: float = 0.0
    vacuum_b: float = 0.0
    grip_detected: bool = False
    vacuum_released: bool = False
    kind: ToolKind = field(default=ToolKind.VG_RELEASE, init=False)

    def copy(self) -> VGToolReleaseState:
        return dataclasses.replace(self)


ToolState = Union[RGToolState, TFGToolState, VGToolState, VGToolReleaseState]


class ToolStatus(NamedTuple):
    """Read-only capabilities shared by every tool variant."""

    kind: ToolKind
    grip_detected: bool
    busy: bool


def tool_status(state: ToolState) -> ToolStatus:
    if isinstance(state, VGToolReleaseState):
        # releasing means the vacuum is still venting
        return ToolStatus(state.kind, state.grip_detected, not state.vacuum_released)
    return ToolStatus(state.kind, state.grip_detected, False)


# --------------- Robot state sub-packages ---------------

@dataclass(frozen=True)
class JointConfigurationData:
    joint_min_limit: float
    joint_max_limit: float
    joint_max_speed: float
    joint_max_acceleration: float
    dh_a: float
    dh_d: float
    dh_alpha: float
    dh_theta: float


@dataclass(frozen=True)
class ConfigurationData:
    """Static robot limits and DH parameters (ROBOT_STATE sub-package 6)."""

    joint_configuration_data: tuple[JointConfigurationData, ...]
    v_joint_default: float
    a_joint_default: float
    v_tool_default: float
    a_tool_default: float
    eq_radius: float
    masterboard_version: int
    controller_box_type: int
    robot_type: int
    robot_sub_type: int


@dataclass(frozen=True)
class RobotModeData:
    timestamp: int
    is_real_robot_connected: bool
    is_real_robot_enabled: bool
    is_robot_power_on: bool
    is_emergency_stopped: bool
    is_protective_stopped: bool
    is_program_running: bool
    is_program_paused: bool
    robot_mode: RobotMode | int
    control_mode: int
    target_speed_fraction: float
    speed_scaling: float
    target_speed_fraction_limit: float


@dataclass(frozen=True)
class JointData:
    q_actual: float
    q_target: float
    qd_actual: float
    i_actual: float
    v_actual: float
    t_motor: float
    t_micro: float
    joint_mode: int


@dataclass(frozen=True)
class CartesianInfo:
    tcp_pose: Pose
    tcp_offset: Pose | None = None


@dataclass(frozen=True)
class RobotStateUpdate:
    """Decoded content of one ROBOT_STATE message; absent sub-packages stay None."""

    robot_mode: RobotModeData | None = None
    joints: tuple[JointData, ...] | None = None
    cartesian: CartesianInfo | None = None
    configuration: ConfigurationData | None = None


@dataclass(frozen=True)
class RobotMessage:
    """Diagnostic / log event pushed by the controller (message type 20)."""

    timestamp: int
    source: int
    kind: RobotMessageType | int
    text: str = ""
    title: str = ""
    code: int | None = None
    argument: int | None = None
    report_level: int | None = None
    line: int | None = None
    column: int | None = None
    version: str | None = None


@dataclass(frozen=True)
class RawPackage:
    """One framed primary interface message; consumed immediately by the state store."""

    type: MessageType
    length: int
    payload: bytes


# --------------- Snapshots / runtime state ---------------

@dataclass(frozen=True)
class RobotSnapshot:
    """The state store's single current pointer; swapped atomically on update."""

    version: int = 0
    received_at: float = 0.0
    arm: ArmState | None = None
    tool: ToolState | None = None
    configuration: ConfigurationData | None = None
    robot_mode: RobotModeData | None = None
    last_message: RobotMessage | None = None


@dataclass(frozen=True)
class WatchdogConfig:
    """
    Settings for the primary interface watchdog.

    Attributes:
        silence_timeout_ms: inactivity span after which a reconnect is triggered
        max_reconnect_attempts: attempts allowed inside the window (<= 0: unlimited)
        reconnect_window_s: span in which attempts are counted (<= 0: never expires)
        enable_logging: log package latency
        log_package_threshold_ms: latency above which a warning is logged
    """

    silence_timeout_ms: int = 1000
    max_reconnect_attempts: int = 3
    reconnect_window_s: float = 10.0
    enable_logging: bool = False
    log_package_threshold_ms: int = 120


@dataclass(frozen=True)
class WatchdogRuntimeState:
    last_package_timestamp: float | None
    reconnect_attempts_in_window: int
    window_start_timestamp: float | None
    connection_status: ConnectionStatus


@dataclass(frozen=True)
class PendingScriptExecution:
    token: str
    script: str
    sent_at: float
    timeout: float | None


# --------------- Result ---------------

@dataclass(frozen=True)
class Result(Generic[T]):
    """Success-or-failure value returned across the public boundary."""

    value: T | None = None
    error: BaseException | None = None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException) -> Result[T]:
        return cls(error=error)

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def get_or_none(self) -> T | None:
        return self.value if self.error is None else None
