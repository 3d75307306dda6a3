"""
CLI entry point for the urclient command.

Subcommands:
  dashboard <command...>   send one dashboard command (or a sequence)
  monitor                  print arm state from the primary interface
  script <file>            run a URScript file through the execution lock
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .. import config as cfg
from ..client.coordinator import robot_ready
from ..client.ur import URClient
from ..protocol.types import WatchdogConfig
from ..utils.errors import URConnectionError

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="urclient", description="Universal Robots client")
    parser.add_argument("--host", default=cfg.HOST, help="Robot IP address")
    parser.add_argument("--interface-port", type=int, default=cfg.INTERFACE_PORT, help="Primary interface port")
    parser.add_argument("--dashboard-port", type=int, default=cfg.DASHBOARD_PORT, help="Dashboard server port")
    parser.add_argument("--connect-timeout-ms", type=int, default=cfg.CONNECT_TIMEOUT_MS)
    parser.add_argument("--so-timeout-ms", type=int, default=cfg.SO_TIMEOUT_MS, help="Dashboard read timeout")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="Increase verbosity; -v=INFO, -vv=DEBUG, -vvv=TRACE"
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="Enable quiet logging (WARNING level)")
    parser.add_argument(
        "--log-level",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set specific log level",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    dash = sub.add_parser("dashboard", help="Send a dashboard command")
    dash.add_argument("words", nargs="+", help='Command words, e.g. "power on"')
    dash.add_argument(
        "--sequence",
        action="store_true",
        help="Treat each argument as a separate command sent over one connection",
    )

    mon = sub.add_parser("monitor", help="Print arm state changes")
    mon.add_argument("--duration", type=float, default=5.0, help="Seconds to monitor (<= 0: until Ctrl-C)")
    mon.add_argument("--degrees", action="store_true", help="Show joints and rotations in degrees")
    mon.add_argument("--mm", action="store_true", help="Show TCP translation in millimetres")
    mon.add_argument("--messages", action="store_true", help="Log robot messages as they arrive")

    scr = sub.add_parser("script", help="Run a URScript file")
    scr.add_argument("file", type=Path)
    scr.add_argument(
        "--timeout",
        type=float,
        default=cfg.SCRIPT_TIMEOUT_S,
        help="Seconds to wait for completion (<= 0: no limit)",
    )
    scr.add_argument("--no-wait", action="store_true", help="Send and return without waiting")
    scr.add_argument("--no-precondition", action="store_true", help="Skip the robot-ready check")
    return parser


def _configure_logging(args: argparse.Namespace) -> None:
    if args.log_level:
        log_level = cfg.TRACE if args.log_level == "TRACE" else getattr(logging, args.log_level)
    elif args.verbose >= 3:
        log_level = cfg.TRACE
    elif args.verbose >= 2:
        log_level = logging.DEBUG
    elif args.verbose == 1:
        log_level = logging.INFO
    elif args.quiet:
        log_level = logging.WARNING
    elif cfg.TRACE_ENABLED:
        log_level = cfg.TRACE
    else:
        log_level = getattr(logging, cfg.LOG_LEVEL_DEFAULT)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _client(args: argparse.Namespace, log_robot_messages: bool = False) -> URClient:
    return URClient(
        args.host,
        interface_port=args.interface_port,
        dashboard_port=args.dashboard_port,
        connect_timeout_ms=args.connect_timeout_ms,
        so_timeout_ms=args.so_timeout_ms,
        watchdog_config=WatchdogConfig(
            silence_timeout_ms=cfg.SILENCE_TIMEOUT_MS,
            max_reconnect_attempts=cfg.MAX_RECONNECT_ATTEMPTS,
            reconnect_window_s=cfg.RECONNECT_WINDOW_S,
            log_package_threshold_ms=cfg.LOG_PACKAGE_THRESHOLD_MS,
        ),
        log_robot_messages=log_robot_messages,
    )


async def _dashboard(args: argparse.Namespace) -> int:
    client = _client(args)
    command = list(args.words) if args.sequence else " ".join(args.words)
    result = await client.send_command(command)
    if result.is_failure:
        logger.error(f"Dashboard command failed: {result.error}")
        return 1
    print(result.value)
    return 0


async def _monitor(args: argparse.Namespace) -> int:
    async with _client(args, log_robot_messages=args.messages) as client:
        last = None

        async def _print_changes() -> None:
            nonlocal last
            async for snap in client.snapshots():
                if snap.arm is None or snap.arm == last:
                    continue
                last = snap.arm
                print(
                    snap.arm.to_formatted_string(
                        joints_in_degree=args.degrees,
                        tcp_pose_in_degree=args.degrees,
                        tcp_pose_in_millimeter=args.mm,
                        tcp_offset_in_degree=args.degrees,
                        tcp_offset_in_millimeter=args.mm,
                        round_decimals=True,
                    )
                )

        try:
            await asyncio.wait_for(_print_changes(), timeout=args.duration if args.duration > 0 else None)
        except TimeoutError:
            pass
        if last is None:
            logger.warning("No arm state received")
    return 0


async def _script(args: argparse.Namespace) -> int:
    text = args.file.read_text(encoding="utf-8")
    async with _client(args) as client:
        if args.no_wait:
            await client.send_urscript(text)
            logger.info(f"Sent {args.file}")
            return 0
        result = await client.execute(
            text,
            precondition=None if args.no_precondition else robot_ready,
            timeout=args.timeout if args.timeout > 0 else None,
        )
    if result.is_failure:
        logger.error(f"Script failed: {result.error}")
        return 1
    logger.info(f"Script {args.file} finished")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    _configure_logging(args)
    handlers = {"dashboard": _dashboard, "monitor": _monitor, "script": _script}
    try:
        return asyncio.run(handlers[args.command](args))
    except URConnectionError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


def main_entry():
    """Entry point for the urclient command."""
    sys.exit(main())


if __name__ == "__main__":
    main_entry()
