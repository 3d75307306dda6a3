"""
Sync dashboard quickstart for urclient.
- Assumes a controller is reachable at URCLIENT_HOST
- Does not power on or move the robot
- Performs basic dashboard queries

Run from the repository root:
    URCLIENT_HOST=192.168.0.10 python examples/sync_client_quickstart.py
"""

from urclient import DashboardClient
from urclient import config as cfg


def main() -> None:
    client = DashboardClient(cfg.HOST)
    model = client.fetch_robot_model()
    print("model:", model.get_or_none() or model.error)
    print("serial:", client.fetch_serial_number().get_or_none())
    print("polyscope:", client.fetch_polyscope_version().get_or_none())
    print("safety:", client.fetch_safety_status().get_or_none())
    print("running:", client.fetch_is_running().get_or_none())
    raise SystemExit(0 if model.is_success else 1)


if __name__ == "__main__":
    main()
