"""
Async client quickstart for urclient.
- Connects to a UR controller (or URSim) at URCLIENT_HOST
- Powers the arm on through the dashboard server
- Streams joint positions and runs one small joint move

Run from the repository root:
    URCLIENT_HOST=192.168.0.10 python examples/async_client_quickstart.py
"""

import asyncio

from urclient import config as cfg
from urclient import create_client


async def run_client() -> int:
    async with create_client(cfg.HOST) as client:
        powered = await client.power_on()
        print("power_on:", powered.get_or_none() or powered.error)
        print("robot mode:", (await client.fetch_robot_mode()).get_or_none())

        # Consume one joint position update
        async for joints in client.joint_positions():
            print("joints (deg):", [round(j, 2) for j in joints.in_degrees()])
            start = joints
            break

        # Rotate wrist 3 by 0.05 rad and back
        target = start.to_list()
        target[5] += 0.05
        moved = await client.arm.move_j(target, v=0.2, timeout=15.0)
        print("move_j ->", moved.get_or_none() or moved.error)
        back = await client.arm.move_j(start, v=0.2, timeout=15.0)
        print("move_j back ->", back.is_success)

        print(client.watchdog_state)
        return 0 if moved.is_success and back.is_success else 1


def main() -> None:
    raise SystemExit(asyncio.run(run_client()))


if __name__ == "__main__":
    main()
