import asyncio
import logging

import pytest

from urclient import config as cfg
from urclient.cli.main import _build_parser, _configure_logging, main
from urclient.client.sync_client import DashboardClient
from tests.utils.tcp import ThreadedDashboardServer, free_port


@pytest.mark.unit
def test_parser_defaults_come_from_config():
    args = _build_parser().parse_args(["dashboard", "power", "on"])
    assert args.host == cfg.HOST
    assert args.interface_port == cfg.INTERFACE_PORT
    assert args.dashboard_port == cfg.DASHBOARD_PORT
    assert args.words == ["power", "on"]
    assert args.sequence is False


@pytest.mark.unit
def test_parser_script_options(tmp_path):
    path = tmp_path / "prog.script"
    args = _build_parser().parse_args(["--host", "10.0.0.5", "script", str(path), "--timeout", "2.5", "--no-wait"])
    assert args.host == "10.0.0.5"
    assert args.file == path
    assert args.timeout == 2.5
    assert args.no_wait is True


@pytest.mark.unit
def test_parser_rejects_unknown_log_level():
    with pytest.raises(SystemExit):
        _build_parser().parse_args(["--log-level", "LOUD", "monitor"])


@pytest.mark.unit
def test_parser_requires_subcommand():
    with pytest.raises(SystemExit):
        _build_parser().parse_args([])


@pytest.mark.unit
@pytest.mark.parametrize(
    "argv, level",
    [
        (["-vvv", "monitor"], cfg.TRACE),
        (["-vv", "monitor"], logging.DEBUG),
        (["-q", "monitor"], logging.WARNING),
        (["--log-level", "ERROR", "-vv", "monitor"], logging.ERROR),
    ],
)
def test_configure_logging_levels(monkeypatch, argv, level):
    seen = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kw: seen.update(kw))
    _configure_logging(_build_parser().parse_args(argv))
    assert seen["level"] == level


@pytest.mark.unit
def test_dashboard_subcommand_prints_response(capsys):
    with ThreadedDashboardServer() as server:
        code = main(["--dashboard-port", str(server.port), "dashboard", "get", "robot", "model"])
    assert code == 0
    assert capsys.readouterr().out.strip() == "UR5"
    assert server.received == ["get robot model"]


@pytest.mark.unit
def test_dashboard_sequence_uses_one_connection(capsys):
    with ThreadedDashboardServer() as server:
        code = main(["--dashboard-port", str(server.port), "dashboard", "--sequence", "stop", "play"])
    assert code == 0
    assert capsys.readouterr().out.splitlines() == ["Stopped", "Starting program"]


@pytest.mark.unit
def test_dashboard_subcommand_connection_refused_exits_nonzero():
    assert main(["--dashboard-port", str(free_port()), "--connect-timeout-ms", "200", "dashboard", "play"]) == 1


@pytest.mark.unit
def test_sync_dashboard_client_blocks_outside_event_loop():
    with ThreadedDashboardServer() as server:
        client = DashboardClient("127.0.0.1", port=server.port)
        assert client.fetch_robot_mode().unwrap() == "Robotmode: RUNNING"
        assert client.load_installation("missing.installation").is_success
    assert server.received == ["robotmode", "load installation missing.installation"]


@pytest.mark.unit
def test_sync_dashboard_client_refuses_running_loop():
    client = DashboardClient("127.0.0.1", port=free_port())

    async def inside_loop():
        with pytest.raises(RuntimeError, match="AsyncDashboardClient"):
            client.play()

    asyncio.run(inside_loop())


@pytest.mark.unit
def test_script_timeout_defaults_to_finite_wait(tmp_path):
    args = _build_parser().parse_args(["script", str(tmp_path / "prog.script")])
    assert args.timeout == cfg.SCRIPT_TIMEOUT_S
    assert args.timeout > 0


@pytest.mark.unit
def test_trace_env_raises_default_level(monkeypatch):
    seen = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kw: seen.update(kw))
    monkeypatch.setattr(cfg, "TRACE_ENABLED", True)
    _configure_logging(_build_parser().parse_args(["monitor"]))
    assert seen["level"] == cfg.TRACE
    _configure_logging(_build_parser().parse_args(["-q", "monitor"]))
    assert seen["level"] == logging.WARNING
