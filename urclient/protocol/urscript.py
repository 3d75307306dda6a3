"""
URScript program builders.

Every operation the client executes is wrapped in a named ``def ...: end``
program so the controller reports it through the program-running flag.
Operations that change state the primary interface does not stream (tool
readings, payload) end with a report line printed via ``textmsg``; the state
store parses those lines (see wire.decode_report).
"""

from collections.abc import Iterable, Sequence

from .. import config as cfg
from . import wire
from .types import Inertia, JointPosition, Pose, Vec3

# OnRobot URCap script functions
RG_GRIP = "rg_grip"
RG_GET_WIDTH = "rg_get_width"
RG_GET_DEPTH = "rg_get_depth"
RG_GRIP_DETECTED = "rg_is_grip_detected"
TFG_GRIP = "tfg_grip"
TFG_GET_EXT_WIDTH = "tfg_get_ext_width"
TFG_GET_INT_WIDTH = "tfg_get_int_width"
TFG_GRIP_DETECTED = "tfg_is_grip_detected"
VG_GRIP = "vg10_grip"
VG_RELEASE = "vg10_release"
VG_GET_VACUUM_A = "vg10_get_vacuum_a"
VG_GET_VACUUM_B = "vg10_get_vacuum_b"
VG_GRIP_DETECTED = "vg10_is_grip_detected"

VG_CHANNELS = {"A": 0, "B": 1, "AB": 2}


def num(value: float) -> str:
    return format(float(value), ".10g")


def ur_bool(value: bool) -> str:
    return "True" if value else "False"


def ur_list(values: Iterable[float]) -> str:
    return "[" + ", ".join(num(v) for v in values) + "]"


def ur_pose(pose: Pose) -> str:
    return "p" + ur_list(pose.to_list())


def done_report(token: str) -> str:
    """Final line of a program; marks completion of execution ``token``."""
    return report_literal("DONE", {"TOKEN": token})


def program(name: str, body: str | Sequence[str], done_token: str | None = None) -> str:
    """
    Wrap script lines in a named program definition.

    When ``done_token`` is given the program prints a DONE report as its
    last statement, which lets the coordinator detect completion of programs
    too short to show up in the program-running flag.
    """
    lines = body.splitlines() if isinstance(body, str) else list(body)
    if not name.isidentifier():
        raise ValueError(f"Invalid URScript program name: {name!r}")
    out = [f"def {name}():"]
    out.extend(f"  {line.rstrip()}" for line in lines if line.strip())
    if done_token:
        out.append(f"  {done_report(done_token)}")
    out.append("end")
    return "\n".join(out) + "\n"


def ensure_done_report(script: str, token: str, name: str = "urclient_script") -> str:
    """
    Make ``script`` print the DONE report for ``token`` when it finishes.

    A ``def``/``sec`` block closed by a final ``end`` gets the report inserted
    before that ``end``; any other text is wrapped in a program called
    ``name``. Scripts already printing the report are returned unchanged.
    """
    report = done_report(token)
    if report in script:
        return script
    lines = script.rstrip().splitlines()
    body = [line for line in lines if line.strip()]
    if body and body[0].lstrip().startswith(("def ", "sec ")) and body[-1].strip() == "end":
        last_end = max(i for i, line in enumerate(lines) if line.strip() == "end")
        lines.insert(last_end, f"  {report}")
        return "\n".join(lines) + "\n"
    return program(name, script, done_token=token)


def report_literal(kind: str, fields: dict[str, object]) -> str:
    """textmsg call printing a report whose values are known client-side."""
    return f'textmsg("{wire.encode_report(kind, fields)}")'


def report_line(kind: str, fields: Sequence[tuple[str, str]]) -> str:
    """textmsg call printing a report whose values are URScript expressions."""
    expr = f'"{cfg.REPORT_PREFIX}|{kind.upper()}"'
    for key, value_expr in fields:
        expr = f'str_cat(str_cat({expr}, "|{key.upper()}="), {value_expr})'
    return f"textmsg({expr})"


# --------------- Arm ---------------

def movej(q: JointPosition, a: float, v: float, t: float = 0.0, r: float = 0.0) -> str:
    return f"movej({ur_list(q.to_list())}, a={num(a)}, v={num(v)}, t={num(t)}, r={num(r)})"


def movel(pose: Pose, a: float, v: float, t: float = 0.0, r: float = 0.0) -> str:
    return f"movel({ur_pose(pose)}, a={num(a)}, v={num(v)}, t={num(t)}, r={num(r)})"


def set_tcp(pose: Pose) -> str:
    return f"set_tcp({ur_pose(pose)})"


def set_payload(mass: float, cog: Vec3, inertia: Inertia | None = None) -> list[str]:
    if inertia is None:
        cmd = f"set_target_payload({num(mass)}, {ur_list(cog.to_list())})"
    else:
        cmd = f"set_target_payload({num(mass)}, {ur_list(cog.to_list())}, {ur_list(inertia.to_list())})"
    report = report_literal(
        "PAYLOAD",
        {
            "MASS": num(mass),
            "COG": ",".join(num(v) for v in cog.to_list()),
            "INERTIA": ",".join(num(v) for v in (inertia or Inertia()).to_list()),
        },
    )
    return [cmd, report]


# --------------- OnRobot tools ---------------

def rg_report(tool_index: int = 0) -> str:
    return report_line(
        "RG",
        [
            ("WIDTH", f"{RG_GET_WIDTH}({tool_index})"),
            ("DEPTH", f"{RG_GET_DEPTH}({tool_index})"),
            ("GRIP", f"{RG_GRIP_DETECTED}({tool_index})"),
        ],
    )


def rg_grip(width: float, force: float, tool_index: int = 0, depth_compensation: bool = False) -> list[str]:
    return [
        f"{RG_GRIP}({num(width)}, {num(force)}, tool_index={tool_index}, blocking=True, "
        f"depth_comp={ur_bool(depth_compensation)}, popupmsg=False)",
        rg_report(tool_index),
    ]


def tfg_report(tool_index: int = 0) -> str:
    return report_line(
        "TFG",
        [
            ("EXT", f"{TFG_GET_EXT_WIDTH}({tool_index})"),
            ("INT", f"{TFG_GET_INT_WIDTH}({tool_index})"),
            ("GRIP", f"{TFG_GRIP_DETECTED}({tool_index})"),
        ],
    )


def tfg_grip(diameter: float, force: float, tool_index: int = 0, external: bool = True) -> list[str]:
    grip_type = 0 if external else 1
    return [
        f"{TFG_GRIP}({num(diameter)}, {num(force)}, tool_index={tool_index}, blocking=True, "
        f"grip_type={grip_type}, popupmsg=False)",
        tfg_report(tool_index),
    ]


def vg_report(tool_index: int = 0, released: bool | None = None) -> str:
    fields = [
        ("A", f"{VG_GET_VACUUM_A}({tool_index})"),
        ("B", f"{VG_GET_VACUUM_B}({tool_index})"),
        ("GRIP", f"{VG_GRIP_DETECTED}({tool_index})"),
    ]
    if released is None:
        return report_line("VG", fields)
    fields.append(("RELEASED", ur_bool(released)))
    return report_line("VG_RELEASE", fields)


def _vg_channel(channel: str) -> int:
    try:
        return VG_CHANNELS[channel.upper()]
    except KeyError:
        raise ValueError(f"Invalid VG channel {channel!r}; expected one of {sorted(VG_CHANNELS)}") from None


def vg_grip(channel: str, vacuum: float, timeout: float = 7.0, tool_index: int = 0) -> list[str]:
    return [
        f"{VG_GRIP}(channel={_vg_channel(channel)}, vacuum={num(vacuum)}, timeout={num(timeout)}, "
        f"alert=False, tool_index={tool_index})",
        vg_report(tool_index),
    ]


def vg_release(channel: str, timeout: float = 0.0, tool_index: int = 0) -> list[str]:
    return [
        f"{VG_RELEASE}(channel={_vg_channel(channel)}, timeout={num(timeout)}, autoidle=False, "
        f"tool_index={tool_index})",
        vg_report(tool_index, released=True),
    ]
