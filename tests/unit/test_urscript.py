import pytest

from urclient.client.state_store import StateStore
from urclient.protocol import urscript, wire
from urclient.protocol.types import (
    CartesianInfo,
    Inertia,
    JointPosition,
    Pose,
    RobotMessage,
    RobotMessageType,
    RobotStateUpdate,
    Vec3,
)


@pytest.mark.unit
def test_program_wraps_body_in_named_definition():
    script = urscript.program("urclient_movej", ["movej([0, 0, 0, 0, 0, 0])", "", "sleep(0.1)"])
    assert script == "def urclient_movej():\n  movej([0, 0, 0, 0, 0, 0])\n  sleep(0.1)\nend\n"


@pytest.mark.unit
def test_program_appends_done_report_last():
    script = urscript.program("p", "set_tcp(p[0,0,0,0,0,0])", done_token="tok42")
    lines = script.splitlines()
    assert lines[-1] == "end"
    assert lines[-2] == '  textmsg("URCLIENT|DONE|TOKEN=tok42")'


@pytest.mark.unit
@pytest.mark.parametrize("name", ["", "1abc", "my program", "x-y"])
def test_program_rejects_invalid_names(name):
    with pytest.raises(ValueError):
        urscript.program(name, ["noop"])


@pytest.mark.unit
def test_motion_commands():
    q = JointPosition(0.0, -1.57, 1.57, -1.57, -1.57, 0.0)
    assert urscript.movej(q, 1.4, 1.05) == (
        "movej([0, -1.57, 1.57, -1.57, -1.57, 0], a=1.4, v=1.05, t=0, r=0)"
    )
    pose = Pose(0.4, -0.2, 0.3, 0.0, 3.1416, 0.0)
    assert urscript.movel(pose, 1.2, 0.25, r=0.01) == (
        "movel(p[0.4, -0.2, 0.3, 0, 3.1416, 0], a=1.2, v=0.25, t=0, r=0.01)"
    )
    assert urscript.set_tcp(Pose(z=0.15)) == "set_tcp(p[0, 0, 0.15, 0, 0, 0])"


@pytest.mark.unit
def test_set_payload_report_round_trips_through_store():
    lines = urscript.set_payload(1.25, Vec3(0.0, 0.01, 0.05), Inertia(0.1, 0.2, 0.3, 0.0, 0.0, 0.0))
    assert lines[0] == "set_target_payload(1.25, [0, 0.01, 0.05], [0.1, 0.2, 0.3, 0, 0, 0])"
    report_text = lines[1].removeprefix('textmsg("').removesuffix('")')

    store = StateStore()
    store.apply_robot_message(
        RobotMessage(timestamp=0, source=-2, kind=RobotMessageType.TEXT, text=report_text)
    )
    store.apply_robot_state(RobotStateUpdate(cartesian=CartesianInfo(tcp_pose=Pose())))
    arm = store.current_arm_state()
    assert arm.payload == 1.25
    assert arm.payload_cog == Vec3(0.0, 0.01, 0.05)
    assert arm.payload_inertia == Inertia(0.1, 0.2, 0.3, 0.0, 0.0, 0.0)


@pytest.mark.unit
def test_set_payload_without_inertia():
    lines = urscript.set_payload(0.5, Vec3())
    assert lines[0] == "set_target_payload(0.5, [0, 0, 0])"
    kind, fields = wire.decode_report(lines[1].removeprefix('textmsg("').removesuffix('")'))
    assert kind == "PAYLOAD"
    assert fields["INERTIA"] == "0,0,0,0,0,0"


@pytest.mark.unit
def test_rg_grip_calls_urcap_then_reports():
    grip, report = urscript.rg_grip(40, 20, tool_index=1, depth_compensation=True)
    assert grip.startswith("rg_grip(40, 20, tool_index=1, blocking=True, depth_comp=True")
    assert report.startswith("textmsg(str_cat(")
    assert '"URCLIENT|RG"' in report
    assert "rg_get_width(1)" in report
    assert "rg_is_grip_detected(1)" in report


@pytest.mark.unit
def test_report_line_nests_str_cat_per_field():
    line = urscript.report_line("TFG", [("EXT", "a"), ("INT", "b")])
    assert line == (
        'textmsg(str_cat(str_cat(str_cat(str_cat("URCLIENT|TFG", "|EXT="), a), "|INT="), b))'
    )


@pytest.mark.unit
def test_tfg_internal_grip_type():
    grip, _ = urscript.tfg_grip(30, 100, external=False)
    assert "grip_type=1" in grip


@pytest.mark.unit
def test_vg_channels_and_release_report():
    grip, report = urscript.vg_grip("ab", 60)
    assert "channel=2" in grip
    assert '"URCLIENT|VG"' in report

    release, release_report = urscript.vg_release("A")
    assert release.startswith("vg10_release(channel=0")
    assert '"URCLIENT|VG_RELEASE"' in release_report
    assert '"|RELEASED="), True)' in release_report

    with pytest.raises(ValueError, match="Invalid VG channel"):
        urscript.vg_grip("C", 60)


@pytest.mark.unit
def test_ensure_done_report_inserts_before_final_end():
    script = "def pick():\n  movej([0, 0, 0, 0, 0, 0])\n  if True:\n    sleep(0.1)\n  end\nend\n"
    out = urscript.ensure_done_report(script, "t1")
    assert out.splitlines()[-2:] == ['  textmsg("URCLIENT|DONE|TOKEN=t1")', "end"]
    assert out.splitlines()[4] == "  end"
    assert urscript.ensure_done_report(out, "t1") == out


@pytest.mark.unit
def test_ensure_done_report_wraps_bare_statements():
    out = urscript.ensure_done_report("set_digital_out(0, True)\n", "t2", name="quick")
    assert out == (
        "def quick():\n"
        "  set_digital_out(0, True)\n"
        '  textmsg("URCLIENT|DONE|TOKEN=t2")\n'
        "end\n"
    )
