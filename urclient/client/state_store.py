"""
Latest-value store for decoded primary interface state.

The store holds one immutable RobotSnapshot. The read loop is the only writer:
each update builds a complete new snapshot from the previous one and swaps
the pointer under a lock. Readers take the pointer without locking and can
never observe a partially updated value.

Every new snapshot is offered to each subscriber's bounded asyncio.Queue.
A full queue drops its oldest entry, so slow consumers never block the
read loop. Subscriber queues belong to the event loop that runs the session;
update() must be called from that loop.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import threading
import time
from collections.abc import AsyncIterator, Callable
from typing import Any

from .. import config as cfg
from ..protocol import wire
from ..protocol.types import (
    ArmState,
    ConfigurationData,
    Inertia,
    JointPosition,
    MessageType,
    Pose,
    RawPackage,
    RGToolState,
    RobotMessage,
    RobotMessageType,
    RobotModeData,
    RobotSnapshot,
    RobotStateUpdate,
    TFGToolState,
    ToolState,
    Vec3,
    VGToolReleaseState,
    VGToolState,
)

logger = logging.getLogger(__name__)

_CLOSED = object()

_REPORT_MESSAGE_KINDS = (RobotMessageType.TEXT, RobotMessageType.KEY)


def _parse_bool(raw: str | None) -> bool:
    return (raw or "").strip().lower() in ("true", "1", "yes", "on")


def _parse_floats(raw: str | None, count: int) -> list[float]:
    text = (raw or "").strip().lstrip("p").strip("[]")
    vals = [float(p) for p in text.split(",") if p.strip()] if text else []
    if len(vals) != count:
        raise ValueError(f"expected {count} values, got {raw!r}")
    return vals


def _parse_float(fields: dict[str, str], key: str) -> float:
    if key not in fields:
        raise ValueError(f"missing field {key}")
    return float(fields[key])


def tool_state_from_report(kind: str, fields: dict[str, str]) -> ToolState | None:
    """Build the tool variant named by a report line; None for non-tool reports."""
    if kind == "RG":
        return RGToolState(
            width=_parse_float(fields, "WIDTH"),
            depth=_parse_float(fields, "DEPTH"),
            grip_detected=_parse_bool(fields.get("GRIP")),
        )
    if kind == "TFG":
        return TFGToolState(
            ext_width=_parse_float(fields, "EXT"),
            int_width=_parse_float(fields, "INT"),
            grip_detected=_parse_bool(fields.get("GRIP")),
        )
    if kind == "VG":
        return VGToolState(
            vacuum_a=_parse_float(fields, "A"),
            vacuum_b=_parse_float(fields, "B"),
            grip_detected=_parse_bool(fields.get("GRIP")),
        )
    if kind == "VG_RELEASE":
        return VGToolReleaseState(
            vacuum_a=_parse_float(fields, "A"),
            vacuum_b=_parse_float(fields, "B"),
            grip_detected=_parse_bool(fields.get("GRIP")),
            vacuum_released=_parse_bool(fields.get("RELEASED")),
        )
    return None


class Subscription:
    """
    Bounded, drop-oldest feed of snapshots for one consumer.

    Registered eagerly on creation so no update published afterwards is
    missed. Iteration ends when the store closes.
    """

    def __init__(self, store: StateStore, queue: asyncio.Queue) -> None:
        self._store = store
        self._queue = queue

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> RobotSnapshot:
        item = await self._queue.get()
        if item is _CLOSED:
            self.close()
            raise StopAsyncIteration
        return item

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        self._store._unsubscribe(self._queue)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


class StateStore:
    """Single-writer store of the latest robot snapshot with broadcast to subscribers."""

    def __init__(
        self,
        queue_size: int = cfg.SUBSCRIBER_QUEUE_SIZE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lock = threading.Lock()
        self._snapshot = RobotSnapshot()
        self._subscribers: set[asyncio.Queue] = set()
        self._closed = False
        self._queue_size = max(1, int(queue_size))
        self._clock = clock
        # Last reported payload; applied when the first ArmState is built
        self._payload: tuple[float, Vec3, Inertia] = (0.0, Vec3(), Inertia())

    # --------------- Reads (lock-free) ---------------

    @property
    def snapshot(self) -> RobotSnapshot:
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    @property
    def closed(self) -> bool:
        return self._closed

    def current_arm_state(self) -> ArmState | None:
        return self._snapshot.arm

    def current_tool_state(self) -> ToolState | None:
        return self._snapshot.tool

    def current_configuration(self) -> ConfigurationData | None:
        return self._snapshot.configuration

    def current_robot_mode(self) -> RobotModeData | None:
        return self._snapshot.robot_mode

    # --------------- Writes ---------------

    def update(self, package: RawPackage) -> RobotSnapshot | None:
        """
        Decode ``package`` and publish the resulting snapshot.

        Returns the new snapshot, or None when the package carried nothing the
        store tracks. Raises ProtocolError for a malformed body; the previous
        snapshot stays current.
        """
        if package.type == MessageType.ROBOT_STATE:
            return self.apply_robot_state(wire.decode_robot_state(package.payload))
        if package.type == MessageType.ROBOT_MESSAGE:
            return self.apply_robot_message(wire.decode_robot_message(package.payload))
        return None

    def apply_robot_state(self, update: RobotStateUpdate) -> RobotSnapshot | None:
        if (
            update.robot_mode is None
            and update.joints is None
            and update.cartesian is None
            and update.configuration is None
        ):
            return None
        with self._lock:
            cur = self._snapshot
            arm = cur.arm
            if update.joints is not None or update.cartesian is not None:
                if arm is None:
                    mass, cog, inertia = self._payload
                    arm = ArmState(payload=mass, payload_cog=cog, payload_inertia=inertia)
                changes: dict[str, Any] = {}
                if update.joints is not None:
                    changes["joint_position"] = JointPosition.from_list(j.q_actual for j in update.joints)
                if update.cartesian is not None:
                    changes["tcp_pose"] = update.cartesian.tcp_pose
                    if update.cartesian.tcp_offset is not None:
                        changes["tcp_offset"] = update.cartesian.tcp_offset
                arm = dataclasses.replace(arm, **changes)
            new = dataclasses.replace(
                cur,
                version=cur.version + 1,
                received_at=self._clock(),
                arm=arm,
                robot_mode=update.robot_mode if update.robot_mode is not None else cur.robot_mode,
                configuration=(
                    update.configuration if update.configuration is not None else cur.configuration
                ),
            )
            return self._swap(new)

    def apply_robot_message(self, message: RobotMessage) -> RobotSnapshot:
        with self._lock:
            cur = self._snapshot
            changes: dict[str, Any] = {"last_message": message}
            report = wire.decode_report(message.text) if message.kind in _REPORT_MESSAGE_KINDS else None
            if report is not None:
                kind, fields = report
                try:
                    if kind == "PAYLOAD":
                        self._payload = (
                            _parse_float(fields, "MASS"),
                            Vec3(*_parse_floats(fields.get("COG"), 3)),
                            Inertia(*_parse_floats(fields.get("INERTIA"), 6)),
                        )
                        if cur.arm is not None:
                            mass, cog, inertia = self._payload
                            changes["arm"] = dataclasses.replace(
                                cur.arm, payload=mass, payload_cog=cog, payload_inertia=inertia
                            )
                    elif kind != "DONE":
                        tool = tool_state_from_report(kind, fields)
                        if tool is not None:
                            changes["tool"] = tool
                        else:
                            logger.debug(f"Ignoring report of unknown kind {kind}")
                except ValueError as e:
                    logger.warning(f"Malformed {kind} report {message.text!r}: {e}")
            new = dataclasses.replace(
                cur, version=cur.version + 1, received_at=self._clock(), **changes
            )
            return self._swap(new)

    def _swap(self, new: RobotSnapshot) -> RobotSnapshot:
        # caller holds self._lock
        self._snapshot = new
        for queue in self._subscribers:
            self._offer(queue, new)
        return new

    @staticmethod
    def _offer(queue: asyncio.Queue, item: object) -> None:
        try:
            queue.put_nowait(item)
        except asyncio.QueueFull:
            # Drop oldest entry if queue is full
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            queue.put_nowait(item)

    def close(self) -> None:
        """End every subscription; later subscriptions end immediately."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for queue in self._subscribers:
                self._offer(queue, _CLOSED)
            self._subscribers.clear()
        logger.debug("State store closed")

    # --------------- Subscriptions ---------------

    def subscribe(self, maxsize: int | None = None) -> Subscription:
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize or self._queue_size)
        with self._lock:
            if self._closed:
                queue.put_nowait(_CLOSED)
            else:
                self._subscribers.add(queue)
        return Subscription(self, queue)

    def _unsubscribe(self, queue: asyncio.Queue) -> None:
        with self._lock:
            self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def snapshots(self, maxsize: int | None = None) -> AsyncIterator[RobotSnapshot]:
        """Every published snapshot (oldest dropped when the consumer lags)."""
        with self.subscribe(maxsize) as sub:
            async for snap in sub:
                yield snap

    async def _distinct(self, select: Callable[[RobotSnapshot], Any]) -> AsyncIterator[Any]:
        # Queue of one coalesces to the latest snapshot
        with self.subscribe(maxsize=1) as sub:
            last = select(self._snapshot)
            if last is not None:
                yield last
            async for snap in sub:
                value = select(snap)
                if value is not None and value != last:
                    last = value
                    yield value

    def joint_positions(self) -> AsyncIterator[JointPosition]:
        """Current joint position (if known), then every change."""
        return self._distinct(lambda s: s.arm.joint_position if s.arm is not None else None)

    def tcp_poses(self) -> AsyncIterator[Pose]:
        """Current TCP pose (if known), then every change."""
        return self._distinct(lambda s: s.arm.tcp_pose if s.arm is not None else None)

    async def robot_messages(self) -> AsyncIterator[RobotMessage]:
        """Robot messages received after subscribing."""
        with self.subscribe() as sub:
            last = self._snapshot.last_message
            async for snap in sub:
                msg = snap.last_message
                if msg is not None and msg is not last:
                    last = msg
                    yield msg
