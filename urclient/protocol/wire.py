"""
Wire protocol helpers for the UR primary interface.

This module centralizes framing of the binary push stream, decoding of the
package bodies the client consumes, and the matching encoders used by the
mock robot in tests. All integers and floats are big-endian.

Frame layout:
    [uint32 total_length][uint8 message_type][payload: total_length - 5 bytes]

ROBOT_STATE payloads are a sequence of sub-packages framed the same way
(int32 length including the 5-byte header, uint8 sub-package type).
"""

import asyncio
import logging
import struct
from collections.abc import AsyncIterator, Iterable, Iterator, Sequence

import numpy as np

from .. import config as cfg
from ..utils.errors import ProtocolError
from .types import (
    CartesianInfo,
    ConfigurationData,
    JointConfigurationData,
    JointData,
    MessageType,
    Pose,
    RawPackage,
    RobotMessage,
    RobotMessageType,
    RobotMode,
    RobotModeData,
    RobotStateType,
    RobotStateUpdate,
)

logger = logging.getLogger(__name__)

HEADER = struct.Struct(">IB")
SUB_HEADER = struct.Struct(">iB")
HEADER_SIZE = HEADER.size  # 5

KNOWN_MESSAGE_TYPES: frozenset[int] = frozenset(
    {int(MessageType.ROBOT_STATE), int(MessageType.ROBOT_MESSAGE)}
)

_ROBOT_MODE = struct.Struct(">Q7?bbddd")
_POSE = struct.Struct(">6d")
# 6x(min,max) limits, 6x(speed,accel), 5 defaults, 4x6 DH params, 4 int32
_CONFIGURATION = struct.Struct(">" + "d" * 53 + "4i")
_JOINT_DTYPE = np.dtype(
    [
        ("q_actual", ">f8"),
        ("q_target", ">f8"),
        ("qd_actual", ">f8"),
        ("i_actual", ">f4"),
        ("v_actual", ">f4"),
        ("t_motor", ">f4"),
        ("t_micro", ">f4"),
        ("joint_mode", "u1"),
    ]
)
_MESSAGE_HEADER = struct.Struct(">Qbb")

__all__ = [
    "HEADER_SIZE",
    "KNOWN_MESSAGE_TYPES",
    "PackageDecoder",
    "iter_packages",
    "iter_subpackages",
    "decode_robot_state",
    "decode_robot_mode_data",
    "decode_joint_data",
    "decode_cartesian_info",
    "decode_configuration_data",
    "decode_robot_message",
    "decode_report",
    "encode_report",
    "pack_frame",
    "pack_subpackage",
    "pack_robot_state",
    "encode_robot_mode_data",
    "encode_joint_data",
    "encode_cartesian_info",
    "encode_configuration_data",
    "encode_text_message",
    "encode_runtime_exception",
]


# --------------- Framing ---------------

class PackageDecoder:
    """
    Resumable frame decoder for the primary interface byte stream.

    Bytes may arrive split at arbitrary boundaries; incomplete frames are
    buffered until the rest arrives. Unknown message types are skipped.
    A length field below the header size or above ``max_frame_bytes`` raises
    ProtocolError and discards the buffer: the stream can no longer be
    re-synchronized and the caller must reconnect.
    """

    def __init__(
        self,
        max_frame_bytes: int = cfg.MAX_FRAME_BYTES,
        known_types: Iterable[int] = KNOWN_MESSAGE_TYPES,
    ) -> None:
        self.max_frame_bytes = max_frame_bytes
        self.known_types = frozenset(int(t) for t in known_types)
        self._buf = bytearray()
        self.decoded = 0
        self.skipped = 0

    @property
    def buffered(self) -> int:
        return len(self._buf)

    def reset(self) -> None:
        self._buf.clear()

    def feed(self, data: bytes) -> Iterator[RawPackage]:
        """Buffer ``data`` and return an iterator over the frames now complete."""
        self._buf.extend(data)
        return self._drain()

    def _drain(self) -> Iterator[RawPackage]:
        buf = self._buf
        while len(buf) >= HEADER_SIZE:
            length, mtype = HEADER.unpack_from(buf, 0)
            if length < HEADER_SIZE or length > self.max_frame_bytes:
                buf.clear()
                raise ProtocolError(
                    f"frame length {length} outside [{HEADER_SIZE}, {self.max_frame_bytes}]"
                )
            if len(buf) < length:
                return
            payload = bytes(buf[HEADER_SIZE:length])
            del buf[:length]
            if mtype not in self.known_types:
                self.skipped += 1
                logger.log(cfg.TRACE, f"Skipping message type {mtype} ({length} bytes)")
                continue
            self.decoded += 1
            yield RawPackage(type=MessageType(mtype), length=length, payload=payload)


async def iter_packages(
    reader: asyncio.StreamReader, decoder: PackageDecoder | None = None
) -> AsyncIterator[RawPackage]:
    """Lazily yield packages from ``reader`` until EOF."""
    decoder = decoder or PackageDecoder()
    while True:
        data = await reader.read(cfg.READ_CHUNK_BYTES)
        if not data:
            return
        for package in decoder.feed(data):
            yield package


def iter_subpackages(payload: bytes | memoryview) -> Iterator[tuple[int, memoryview]]:
    """Yield (sub_type, body) pairs of a ROBOT_STATE payload."""
    mv = memoryview(payload)
    offset = 0
    total = len(mv)
    while offset < total:
        if total - offset < SUB_HEADER.size:
            raise ProtocolError(f"truncated sub-package header at offset {offset}")
        length, ptype = SUB_HEADER.unpack_from(mv, offset)
        if length < SUB_HEADER.size or offset + length > total:
            raise ProtocolError(
                f"sub-package type {ptype} length {length} overruns payload ({total - offset} left)"
            )
        yield ptype, mv[offset + SUB_HEADER.size : offset + length]
        offset += length


# --------------- Robot state decoding ---------------

def _require(body: memoryview | bytes, size: int, what: str) -> None:
    if len(body) < size:
        raise ProtocolError(f"{what} body too short ({len(body)} < {size} bytes)")


def decode_robot_mode_data(body: memoryview | bytes) -> RobotModeData:
    _require(body, _ROBOT_MODE.size, "robot mode data")
    (
        timestamp,
        connected,
        enabled,
        power_on,
        estopped,
        pstopped,
        running,
        paused,
        mode,
        control_mode,
        target_speed_fraction,
        speed_scaling,
        target_speed_fraction_limit,
    ) = _ROBOT_MODE.unpack_from(body, 0)
    try:
        robot_mode: RobotMode | int = RobotMode(mode)
    except ValueError:
        robot_mode = mode
    return RobotModeData(
        timestamp=timestamp,
        is_real_robot_connected=connected,
        is_real_robot_enabled=enabled,
        is_robot_power_on=power_on,
        is_emergency_stopped=estopped,
        is_protective_stopped=pstopped,
        is_program_running=running,
        is_program_paused=paused,
        robot_mode=robot_mode,
        control_mode=control_mode,
        target_speed_fraction=target_speed_fraction,
        speed_scaling=speed_scaling,
        target_speed_fraction_limit=target_speed_fraction_limit,
    )


def decode_joint_data(body: memoryview | bytes) -> tuple[JointData, ...]:
    _require(body, 6 * _JOINT_DTYPE.itemsize, "joint data")
    rec = np.frombuffer(body, dtype=_JOINT_DTYPE, count=6)
    return tuple(
        JointData(
            q_actual=float(r["q_actual"]),
            q_target=float(r["q_target"]),
            qd_actual=float(r["qd_actual"]),
            i_actual=float(r["i_actual"]),
            v_actual=float(r["v_actual"]),
            t_motor=float(r["t_motor"]),
            t_micro=float(r["t_micro"]),
            joint_mode=int(r["joint_mode"]),
        )
        for r in rec
    )


def decode_cartesian_info(body: memoryview | bytes) -> CartesianInfo:
    _require(body, _POSE.size, "cartesian info")
    pose = Pose(*_POSE.unpack_from(body, 0))
    offset = None
    # Older firmware omits the TCP offset block
    if len(body) >= 2 * _POSE.size:
        offset = Pose(*_POSE.unpack_from(body, _POSE.size))
    return CartesianInfo(tcp_pose=pose, tcp_offset=offset)


def decode_configuration_data(body: memoryview | bytes) -> ConfigurationData:
    _require(body, _CONFIGURATION.size, "configuration data")
    vals = _CONFIGURATION.unpack_from(body, 0)
    limits = vals[0:12]
    dynamics = vals[12:24]
    v_joint, a_joint, v_tool, a_tool, eq_radius = vals[24:29]
    dh_a, dh_d, dh_alpha, dh_theta = vals[29:35], vals[35:41], vals[41:47], vals[47:53]
    masterboard, box_type, robot_type, robot_sub_type = vals[53:57]
    joints = tuple(
        JointConfigurationData(
            joint_min_limit=limits[2 * i],
            joint_max_limit=limits[2 * i + 1],
            joint_max_speed=dynamics[2 * i],
            joint_max_acceleration=dynamics[2 * i + 1],
            dh_a=dh_a[i],
            dh_d=dh_d[i],
            dh_alpha=dh_alpha[i],
            dh_theta=dh_theta[i],
        )
        for i in range(6)
    )
    return ConfigurationData(
        joint_configuration_data=joints,
        v_joint_default=v_joint,
        a_joint_default=a_joint,
        v_tool_default=v_tool,
        a_tool_default=a_tool,
        eq_radius=eq_radius,
        masterboard_version=masterboard,
        controller_box_type=box_type,
        robot_type=robot_type,
        robot_sub_type=robot_sub_type,
    )


def decode_robot_state(payload: bytes | memoryview) -> RobotStateUpdate:
    """
    Decode the sub-packages of a ROBOT_STATE message the client tracks.

    Sub-packages of other types are ignored. Raises ProtocolError when any
    sub-package is truncated; the whole message is then dropped by the caller.
    """
    robot_mode = joints = cartesian = configuration = None
    for ptype, body in iter_subpackages(payload):
        if ptype == RobotStateType.ROBOT_MODE_DATA:
            robot_mode = decode_robot_mode_data(body)
        elif ptype == RobotStateType.JOINT_DATA:
            joints = decode_joint_data(body)
        elif ptype == RobotStateType.CARTESIAN_INFO:
            cartesian = decode_cartesian_info(body)
        elif ptype == RobotStateType.CONFIGURATION_DATA:
            configuration = decode_configuration_data(body)
    return RobotStateUpdate(
        robot_mode=robot_mode, joints=joints, cartesian=cartesian, configuration=configuration
    )


# --------------- Robot message decoding ---------------

def _text(body: memoryview | bytes) -> str:
    return bytes(body).decode("utf-8", errors="replace")


def decode_robot_message(payload: bytes | memoryview) -> RobotMessage:
    mv = memoryview(payload)
    _require(mv, _MESSAGE_HEADER.size, "robot message")
    timestamp, source, raw_kind = _MESSAGE_HEADER.unpack_from(mv, 0)
    body = mv[_MESSAGE_HEADER.size :]
    try:
        kind: RobotMessageType | int = RobotMessageType(raw_kind)
    except ValueError:
        kind = raw_kind
    base = {"timestamp": timestamp, "source": source, "kind": kind}

    try:
        if kind == RobotMessageType.TEXT:
            return RobotMessage(**base, text=_text(body))
        if kind == RobotMessageType.PROGRAM_LABEL:
            (label_id,) = struct.unpack_from(">i", body, 0)
            return RobotMessage(**base, code=label_id, text=_text(body[4:]))
        if kind == RobotMessageType.VERSION:
            (name_size,) = struct.unpack_from(">b", body, 0)
            name = _text(body[1 : 1 + name_size])
            major, minor, bugfix, build = struct.unpack_from(">BBii", body, 1 + name_size)
            date = _text(body[1 + name_size + 10 :])
            return RobotMessage(
                **base, title=name, text=date, version=f"{major}.{minor}.{bugfix}.{build}"
            )
        if kind == RobotMessageType.SAFETY_MODE:
            code, argument, mode_type = struct.unpack_from(">iiB", body, 0)
            return RobotMessage(**base, code=code, argument=argument, report_level=mode_type)
        if kind == RobotMessageType.ERROR_CODE:
            code, argument, level, _data_type, _data = struct.unpack_from(">iiiBI", body, 0)
            return RobotMessage(
                **base, code=code, argument=argument, report_level=level, text=_text(body[17:])
            )
        if kind == RobotMessageType.KEY:
            code, argument, title_size = struct.unpack_from(">iiB", body, 0)
            title = _text(body[9 : 9 + title_size])
            return RobotMessage(
                **base, code=code, argument=argument, title=title, text=_text(body[9 + title_size :])
            )
        if kind == RobotMessageType.RUNTIME_EXCEPTION:
            line, column = struct.unpack_from(">ii", body, 0)
            return RobotMessage(**base, line=line, column=column, text=_text(body[8:]))
    except struct.error as e:
        raise ProtocolError(f"robot message type {raw_kind}: {e}") from e
    return RobotMessage(**base)


# --------------- Report lines ---------------

def decode_report(text: str, prefix: str | None = None) -> tuple[str, dict[str, str]] | None:
    """
    Parse a report line emitted by a client-sent script via textmsg.

    Expected format:
      <PREFIX>|<KIND>|KEY=value|KEY=value...
    Returns (kind, fields) or None when the text is not a report.
    """
    prefix = prefix or cfg.REPORT_PREFIX
    parts = (text or "").strip().split("|")
    if len(parts) < 2 or parts[0].strip() != prefix:
        return None
    kind = parts[1].strip().upper()
    fields: dict[str, str] = {}
    for part in parts[2:]:
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        fields[key.strip().upper()] = value.strip()
    return kind, fields


def encode_report(kind: str, fields: dict[str, object], prefix: str | None = None) -> str:
    prefix = prefix or cfg.REPORT_PREFIX
    parts = [prefix, kind.upper()]
    parts.extend(f"{k.upper()}={v}" for k, v in fields.items())
    return "|".join(parts)


# --------------- Encoders ---------------

def pack_frame(message_type: int | MessageType, payload: bytes) -> bytes:
    return HEADER.pack(len(payload) + HEADER_SIZE, int(message_type)) + payload


def pack_subpackage(sub_type: int | RobotStateType, body: bytes) -> bytes:
    return SUB_HEADER.pack(len(body) + SUB_HEADER.size, int(sub_type)) + body


def pack_robot_state(subpackages: Iterable[bytes]) -> bytes:
    return pack_frame(MessageType.ROBOT_STATE, b"".join(subpackages))


def encode_robot_mode_data(data: RobotModeData) -> bytes:
    return _ROBOT_MODE.pack(
        data.timestamp,
        data.is_real_robot_connected,
        data.is_real_robot_enabled,
        data.is_robot_power_on,
        data.is_emergency_stopped,
        data.is_protective_stopped,
        data.is_program_running,
        data.is_program_paused,
        int(data.robot_mode),
        data.control_mode,
        data.target_speed_fraction,
        data.speed_scaling,
        data.target_speed_fraction_limit,
    )


def encode_joint_data(q_actual: Sequence[float], joints: Sequence[JointData] | None = None) -> bytes:
    """Encode a JOINT_DATA body; when ``joints`` is None only q_actual/q_target are filled."""
    arr = np.zeros(6, dtype=_JOINT_DTYPE)
    if joints is not None:
        for i, j in enumerate(joints):
            arr[i] = (
                j.q_actual,
                j.q_target,
                j.qd_actual,
                j.i_actual,
                j.v_actual,
                j.t_motor,
                j.t_micro,
                j.joint_mode,
            )
    else:
        arr["q_actual"] = q_actual
        arr["q_target"] = q_actual
    return arr.tobytes()


def encode_cartesian_info(tcp_pose: Pose, tcp_offset: Pose | None = None) -> bytes:
    body = _POSE.pack(*tcp_pose.to_list())
    if tcp_offset is not None:
        body += _POSE.pack(*tcp_offset.to_list())
    return body


def encode_configuration_data(data: ConfigurationData) -> bytes:
    joints = data.joint_configuration_data
    if len(joints) != 6:
        raise ValueError(f"configuration data needs 6 joints, got {len(joints)}")
    vals: list[float | int] = []
    for j in joints:
        vals.extend((j.joint_min_limit, j.joint_max_limit))
    for j in joints:
        vals.extend((j.joint_max_speed, j.joint_max_acceleration))
    vals.extend(
        (data.v_joint_default, data.a_joint_default, data.v_tool_default, data.a_tool_default, data.eq_radius)
    )
    vals.extend(j.dh_a for j in joints)
    vals.extend(j.dh_d for j in joints)
    vals.extend(j.dh_alpha for j in joints)
    vals.extend(j.dh_theta for j in joints)
    vals.extend(
        (data.masterboard_version, data.controller_box_type, data.robot_type, data.robot_sub_type)
    )
    return _CONFIGURATION.pack(*vals)


def encode_text_message(text: str, timestamp: int = 0, source: int = -2) -> bytes:
    """Full ROBOT_MESSAGE frame carrying a text message."""
    body = _MESSAGE_HEADER.pack(timestamp, source, int(RobotMessageType.TEXT)) + text.encode("utf-8")
    return pack_frame(MessageType.ROBOT_MESSAGE, body)


def encode_runtime_exception(
    line: int, column: int, text: str, timestamp: int = 0, source: int = -2
) -> bytes:
    """Full ROBOT_MESSAGE frame carrying a runtime exception."""
    body = (
        _MESSAGE_HEADER.pack(timestamp, source, int(RobotMessageType.RUNTIME_EXCEPTION))
        + struct.pack(">ii", line, column)
        + text.encode("utf-8")
    )
    return pack_frame(MessageType.ROBOT_MESSAGE, body)
