import asyncio
import logging

import pytest

from urclient.client.state_store import StateStore, tool_state_from_report
from urclient.protocol import wire
from urclient.protocol.types import (
    ArmState,
    Inertia,
    JointPosition,
    Pose,
    RGToolState,
    RobotMessageType,
    TFGToolState,
    ToolKind,
    Vec3,
    VGToolReleaseState,
    VGToolState,
)
from urclient.utils.errors import ProtocolError
from tests.utils.frames import mode_frame, report_frame, sample_configuration, state_frame


async def _next(stream):
    return await stream.__anext__()


def _feed(store: StateStore, *frames: bytes):
    decoder = wire.PackageDecoder()
    out = []
    for frame in frames:
        for pkg in decoder.feed(frame):
            out.append(store.update(pkg))
    return out


@pytest.mark.unit
def test_reads_return_none_before_first_receipt():
    store = StateStore()
    assert store.current_arm_state() is None
    assert store.current_tool_state() is None
    assert store.current_configuration() is None
    assert store.current_robot_mode() is None
    assert store.version == 0


@pytest.mark.unit
def test_arm_state_equals_the_last_update_exactly():
    store = StateStore()
    updates = [
        ([0.01 * n + i for i in range(6)], Pose(0.1 * n, 0.2, 0.3, 0.0, 3.0, 0.01 * n))
        for n in range(1, 51)
    ]
    for q, pose in updates:
        _feed(store, state_frame(q=q, pose=pose))
    q_last, pose_last = updates[-1]
    arm = store.current_arm_state()
    assert arm.joint_position == JointPosition.from_list(q_last)
    assert arm.tcp_pose == pose_last
    assert store.version == 50


@pytest.mark.unit
def test_snapshots_are_replaced_never_mutated():
    store = StateStore()
    _feed(store, state_frame(q=[0.0] * 6))
    first = store.snapshot
    first_arm = first.arm
    _feed(store, state_frame(q=[1.0] * 6))
    assert first.arm is first_arm
    assert first.arm.joint_position == JointPosition()
    assert store.snapshot is not first
    assert store.current_arm_state().joint_position == JointPosition(*([1.0] * 6))


@pytest.mark.unit
def test_partial_updates_keep_previous_parts():
    store = StateStore()
    _feed(store, state_frame(pose=Pose(1, 2, 3, 0, 0, 0), offset=Pose(0, 0, 0.1, 0, 0, 0)))
    _feed(store, state_frame(q=[0.5] * 6))
    _feed(store, mode_frame(running=True))
    _feed(store, state_frame(configuration=sample_configuration()))
    arm = store.current_arm_state()
    assert arm.tcp_pose == Pose(1, 2, 3, 0, 0, 0)
    assert arm.tcp_offset == Pose(0, 0, 0.1, 0, 0, 0)
    assert arm.joint_position == JointPosition(*([0.5] * 6))
    assert store.current_robot_mode().is_program_running
    assert store.current_configuration() == sample_configuration()


@pytest.mark.unit
def test_empty_robot_state_publishes_nothing():
    store = StateStore()
    (snap,) = _feed(store, state_frame())
    assert snap is None
    assert store.version == 0


@pytest.mark.unit
def test_malformed_package_leaves_previous_snapshot():
    store = StateStore()
    _feed(store, state_frame(q=[0.3] * 6))
    before = store.snapshot
    bad = wire.pack_robot_state([wire.pack_subpackage(1, b"\x00" * 10)])
    with pytest.raises(ProtocolError):
        _feed(store, bad)
    assert store.snapshot is before


@pytest.mark.unit
def test_robot_messages_set_last_message():
    store = StateStore()
    _feed(store, wire.encode_text_message("Hello"))
    msg = store.snapshot.last_message
    assert msg.kind is RobotMessageType.TEXT
    assert msg.text == "Hello"
    assert store.current_tool_state() is None


@pytest.mark.unit
@pytest.mark.parametrize(
    "kind, fields, expected",
    [
        ("RG", {"WIDTH": 40.5, "DEPTH": 3.0, "GRIP": "True"}, RGToolState(40.5, 3.0, True)),
        ("TFG", {"EXT": 60.0, "INT": 45.0, "GRIP": "False"}, TFGToolState(60.0, 45.0, False)),
        ("VG", {"A": 61.0, "B": 0.0, "GRIP": "True"}, VGToolState(61.0, 0.0, True)),
        (
            "VG_RELEASE",
            {"A": 2.0, "B": 0.0, "GRIP": "False", "RELEASED": "True"},
            VGToolReleaseState(2.0, 0.0, False, True),
        ),
    ],
)
def test_tool_reports_update_tool_state(kind, fields, expected):
    store = StateStore()
    _feed(store, report_frame(kind, fields))
    tool = store.current_tool_state()
    assert tool == expected
    assert tool.kind is ToolKind(kind)


@pytest.mark.unit
def test_payload_report_updates_arm_payload():
    store = StateStore()
    # Payload reported before any arm state is applied once the arm appears
    _feed(store, report_frame("PAYLOAD", {"MASS": 1.5, "COG": "0,0,0.05", "INERTIA": "0,0,0,0,0,0"}))
    assert store.current_arm_state() is None
    _feed(store, state_frame(q=[0.0] * 6))
    arm = store.current_arm_state()
    assert arm.payload == 1.5
    assert arm.payload_cog == Vec3(0.0, 0.0, 0.05)

    _feed(store, report_frame("PAYLOAD", {"MASS": 2.0, "COG": "[0.01,0.02,0.03]", "INERTIA": "1,2,3,4,5,6"}))
    arm = store.current_arm_state()
    assert arm.payload == 2.0
    assert arm.payload_cog == Vec3(0.01, 0.02, 0.03)
    assert arm.payload_inertia == Inertia(1, 2, 3, 4, 5, 6)


@pytest.mark.unit
def test_malformed_report_is_logged_and_ignored(caplog):
    store = StateStore()
    with caplog.at_level(logging.WARNING, logger="urclient.client.state_store"):
        _feed(store, report_frame("RG", {"WIDTH": "abc", "DEPTH": 1}))
    assert store.current_tool_state() is None
    assert store.snapshot.last_message is not None
    assert any("Malformed RG report" in r.message for r in caplog.records)


@pytest.mark.unit
def test_unknown_report_kind_returns_none():
    assert tool_state_from_report("SPINDLE", {"RPM": "100"}) is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_slow_subscriber_drops_oldest():
    store = StateStore()
    sub = store.subscribe(maxsize=2)
    for n in range(5):
        _feed(store, state_frame(q=[float(n)] * 6))
    assert sub.pending() == 2
    first = await sub.__anext__()
    second = await sub.__anext__()
    assert first.arm.joint_position.base == 3.0
    assert second.arm.joint_position.base == 4.0
    sub.close()
    assert store.subscriber_count == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_close_ends_all_streams():
    store = StateStore()
    received = []

    async def consume():
        async for snap in store.snapshots():
            received.append(snap.version)

    task = asyncio.create_task(consume())
    await asyncio.sleep(0)
    _feed(store, state_frame(q=[0.0] * 6))
    await asyncio.sleep(0)
    store.close()
    await asyncio.wait_for(task, timeout=1.0)
    assert received == [1]
    assert store.closed


@pytest.mark.unit
@pytest.mark.asyncio
async def test_streams_opened_after_close_end_immediately():
    store = StateStore()
    store.close()
    assert [s async for s in store.snapshots()] == []
    assert [j async for j in store.joint_positions()] == []
    assert [m async for m in store.robot_messages()] == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_joint_positions_emit_current_then_changes_only():
    store = StateStore()
    _feed(store, state_frame(q=[0.0] * 6))
    seen: list[JointPosition] = []
    stream = store.joint_positions()
    seen.append(await stream.__anext__())

    waiter = asyncio.create_task(_next(stream))
    await asyncio.sleep(0)
    # Same joints again (only mode changes): no emission
    _feed(store, state_frame(q=[0.0] * 6))
    _feed(store, mode_frame())
    await asyncio.sleep(0)
    assert not waiter.done()
    _feed(store, state_frame(q=[0.2] * 6))
    seen.append(await asyncio.wait_for(waiter, timeout=1.0))
    await stream.aclose()

    assert seen == [JointPosition(), JointPosition(*([0.2] * 6))]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_robot_messages_stream_yields_new_messages():
    store = StateStore()
    _feed(store, wire.encode_text_message("before"))
    stream = store.robot_messages()
    waiter = asyncio.create_task(_next(stream))
    await asyncio.sleep(0)
    _feed(store, state_frame(q=[0.0] * 6))
    _feed(store, wire.encode_text_message("after"))
    msg = await asyncio.wait_for(waiter, timeout=1.0)
    assert msg.text == "after"
    await stream.aclose()


@pytest.mark.unit
def test_arm_state_copy_is_equal_value():
    arm = ArmState(payload=1.0)
    assert arm.copy() == arm
