"""
Arm and OnRobot tool operations.

Each operation builds a named URScript program, runs it through the
execution coordinator and returns a Result carrying the resulting ArmState
or ToolState.
"""

import logging
from collections.abc import Callable, Sequence
from typing import Any

from ..protocol import urscript
from ..protocol.types import (
    ArmState,
    Inertia,
    JointPosition,
    Pose,
    Result,
    RobotSnapshot,
    ToolState,
    Vec3,
)
from .coordinator import ExecutionCoordinator, Precondition, make_token, robot_ready

logger = logging.getLogger(__name__)

StateCallback = Callable[[Any], None]


def _joints(value: JointPosition | Sequence[float]) -> JointPosition:
    return value if isinstance(value, JointPosition) else JointPosition.from_list(value)


def _pose(value: Pose | Sequence[float]) -> Pose:
    return value if isinstance(value, Pose) else Pose.from_list(value)


def _vec3(value: Vec3 | Sequence[float]) -> Vec3:
    if isinstance(value, Vec3):
        return value
    vals = [float(v) for v in value]
    if len(vals) != 3:
        raise ValueError(f"Expected 3 values, got {len(vals)}")
    return Vec3(*vals)


class _ProgramRunner:
    def __init__(
        self,
        coordinator: ExecutionCoordinator,
        precondition: Precondition | None = robot_ready,
        timeout: float | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.precondition = precondition
        self.timeout = timeout

    async def _run(
        self,
        name: str,
        lines: Sequence[str] | str,
        project: Callable[[RobotSnapshot], Any],
        timeout: float | None,
        on_state_change: StateCallback | None,
    ) -> Result[Any]:
        token = make_token()
        script = urscript.program(name, lines, done_token=token)
        result = await self.coordinator.execute(
            script,
            token=token,
            precondition=self.precondition,
            timeout=timeout if timeout is not None else self.timeout,
            on_state_change=on_state_change,
            update_local_state=project,
        )
        if result.is_failure:
            logger.warning(f"{name} failed: {result.error}")
        return result


def _arm(snapshot: RobotSnapshot) -> ArmState | None:
    return snapshot.arm


def _tool(snapshot: RobotSnapshot) -> ToolState | None:
    return snapshot.tool


class ArmController(_ProgramRunner):
    """Motion and arm configuration programs projecting ArmState."""

    async def move_j(
        self,
        joints: JointPosition | Sequence[float],
        a: float = 1.4,
        v: float = 1.05,
        t: float = 0.0,
        r: float = 0.0,
        *,
        timeout: float | None = None,
        on_state_change: StateCallback | None = None,
    ) -> Result[ArmState]:
        """Move to a joint position (radians), linear in joint space."""
        line = urscript.movej(_joints(joints), a, v, t, r)
        return await self._run("urclient_movej", [line], _arm, timeout, on_state_change)

    async def move_l(
        self,
        pose: Pose | Sequence[float],
        a: float = 1.2,
        v: float = 0.25,
        t: float = 0.0,
        r: float = 0.0,
        *,
        timeout: float | None = None,
        on_state_change: StateCallback | None = None,
    ) -> Result[ArmState]:
        """Move the TCP linearly to a pose (metres, rotation vector)."""
        line = urscript.movel(_pose(pose), a, v, t, r)
        return await self._run("urclient_movel", [line], _arm, timeout, on_state_change)

    async def set_tcp(
        self,
        pose: Pose | Sequence[float],
        *,
        timeout: float | None = None,
        on_state_change: StateCallback | None = None,
    ) -> Result[ArmState]:
        return await self._run(
            "urclient_set_tcp", [urscript.set_tcp(_pose(pose))], _arm, timeout, on_state_change
        )

    async def set_payload(
        self,
        mass: float,
        cog: Vec3 | Sequence[float] = (0.0, 0.0, 0.0),
        inertia: Inertia | None = None,
        *,
        timeout: float | None = None,
        on_state_change: StateCallback | None = None,
    ) -> Result[ArmState]:
        if mass < 0:
            raise ValueError(f"Payload mass must be >= 0, got {mass}")
        lines = urscript.set_payload(mass, _vec3(cog), inertia)
        return await self._run("urclient_set_payload", lines, _arm, timeout, on_state_change)

    async def run_script(
        self,
        body: str | Sequence[str],
        name: str = "urclient_script",
        *,
        timeout: float | None = None,
        on_state_change: StateCallback | None = None,
    ) -> Result[ArmState]:
        """Run arbitrary URScript statements wrapped in a named program."""
        return await self._run(name, body, _arm, timeout, on_state_change)


class ToolController(_ProgramRunner):
    """OnRobot gripper programs projecting the matching ToolState variant."""

    def __init__(
        self,
        coordinator: ExecutionCoordinator,
        precondition: Precondition | None = robot_ready,
        timeout: float | None = None,
        tool_index: int = 0,
    ) -> None:
        super().__init__(coordinator, precondition, timeout)
        self.tool_index = tool_index

    async def rg_grip(
        self,
        width: float,
        force: float,
        depth_compensation: bool = False,
        *,
        timeout: float | None = None,
        on_state_change: StateCallback | None = None,
    ) -> Result[ToolState]:
        """Move RG2/RG6 fingers to ``width`` mm with ``force`` N."""
        lines = urscript.rg_grip(width, force, self.tool_index, depth_compensation)
        return await self._run("urclient_rg_grip", lines, _tool, timeout, on_state_change)

    async def tfg_grip(
        self,
        diameter: float,
        force: float,
        external: bool = True,
        *,
        timeout: float | None = None,
        on_state_change: StateCallback | None = None,
    ) -> Result[ToolState]:
        """Grip a ``diameter`` mm part with the 3FG, externally or internally."""
        lines = urscript.tfg_grip(diameter, force, self.tool_index, external)
        return await self._run("urclient_tfg_grip", lines, _tool, timeout, on_state_change)

    async def vg_grip(
        self,
        channel: str,
        vacuum: float,
        vg_timeout: float = 7.0,
        *,
        timeout: float | None = None,
        on_state_change: StateCallback | None = None,
    ) -> Result[ToolState]:
        """Build ``vacuum`` percent on VG channel A, B or AB."""
        lines = urscript.vg_grip(channel, vacuum, vg_timeout, self.tool_index)
        return await self._run("urclient_vg_grip", lines, _tool, timeout, on_state_change)

    async def vg_release(
        self,
        channel: str,
        vg_timeout: float = 0.0,
        *,
        timeout: float | None = None,
        on_state_change: StateCallback | None = None,
    ) -> Result[ToolState]:
        lines = urscript.vg_release(channel, vg_timeout, self.tool_index)
        return await self._run("urclient_vg_release", lines, _tool, timeout, on_state_change)
