"""Command-line interface for the RoboCaty bridge."""

import argparse
import logging
import signal
import sys

import robocaty.config as cfg
from robocaty.backends.factory import create_backends
from robocaty.config import TRACE, BridgeConfig
from robocaty.errors import BackendConnectionError, ConfigError
from robocaty.mapping import MappingTable
from robocaty.server.console import (
    KeyReader,
    format_status_screen,
    print_header,
    print_status_screen,
    run_operator_loop,
)
from robocaty.server.controller import LifecycleController

logger = logging.getLogger("robocaty.server.cli")

HELP_SWITCHES = ("-help", "-h", "--help", "/?")

EXIT_OK = 0
EXIT_STARTUP_FAILURE = -1


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports bad values as ConfigError instead of exiting."""

    def error(self, message):
        raise ConfigError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="robocaty",
        description="RoboCaty - TwinCAT <-> ABB Robot Interface",
        epilog='Example: robocaty -file "config.txt" -time 10',
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument(
        "-help", "-h", "--help", dest="help", action="store_true", help="Show this help and exit"
    )
    parser.add_argument("-netid", help=f"TwinCAT AMS Net ID (default: {cfg.AMS_NET_ID})")
    parser.add_argument("-port", type=int, help=f"ADS port (default: {cfg.ADS_PORT})")
    parser.add_argument("-file", help=f"Path to mapping file (default: {cfg.MAPPING_FILE})")
    parser.add_argument(
        "-time", type=int, help=f"Cycle time in ms (default: {cfg.CYCLE_TIME_MS})"
    )
    parser.add_argument(
        "-verbose", action="store_true", help="Enable live dashboard immediately"
    )

    robot = parser.add_argument_group("robot controller")
    robot.add_argument("-robot", help=f"RWS address host[:port] (default: {cfg.RWS_HOST})")
    robot.add_argument("-user", help="RWS user name")
    robot.add_argument("-password", help="RWS password")

    runtime = parser.add_argument_group("runtime")
    runtime.add_argument(
        "-redraw",
        type=int,
        help=f"Dashboard redraw interval in ms (default: {cfg.DISPLAY_INTERVAL_MS})",
    )
    runtime.add_argument(
        "-grace",
        type=float,
        help=f"Shutdown grace period in s (default: {cfg.SHUTDOWN_GRACE_S:g})",
    )
    runtime.add_argument(
        "-simulate", action="store_true", help="Use in-memory ADS and robot backends"
    )

    log = parser.add_argument_group("logging")
    log.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Enable quiet logging (WARNING level)",
    )
    log.add_argument(
        "--log-level",
        type=str.upper,
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set specific log level",
    )
    return parser


def normalize_args(parser: argparse.ArgumentParser, argv: list[str]) -> list[str]:
    """Lower-case option names so ``-NetID`` and ``-netid`` are the same option.

    Values are left untouched; ``--opt=value`` keeps its value's case.
    """
    known = {s.lower(): s for a in parser._actions for s in a.option_strings}
    out = []
    for token in argv:
        name, sep, value = token.partition("=")
        canonical = known.get(name.lower()) if token.startswith("-") else None
        out.append(canonical + sep + value if canonical else token)
    return out


def wants_help(argv: list[str]) -> bool:
    # "/?" is not an argparse option string, so it is checked up front
    return any(token.lower() in HELP_SWITCHES for token in argv)


def configure_logging(args: argparse.Namespace) -> int:
    """Set up root logging and return the effective level.

    Precedence:
      1) Explicit --log-level
      2) Quiet flag
      3) Environment-driven TRACE (ROBOCATY_TRACE=1 via TRACE_ENABLED)
      4) Default INFO
    """
    if args.log_level:
        if args.log_level == "TRACE":
            log_level = TRACE
            cfg.TRACE_ENABLED = True
        else:
            log_level = getattr(logging, args.log_level)
    elif args.quiet:
        log_level = logging.WARNING
    elif cfg.TRACE_ENABLED:
        log_level = TRACE
    else:
        log_level = getattr(logging, cfg.LOG_LEVEL_DEFAULT)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    third_party_log_level = log_level if log_level >= logging.INFO else logging.INFO
    logging.getLogger("urllib3").setLevel(third_party_log_level)
    logging.getLogger("pyads").setLevel(third_party_log_level)
    return log_level


def build_config(args: argparse.Namespace) -> BridgeConfig:
    """Overlay command-line values on the (environment-aware) defaults."""
    config = BridgeConfig()
    if args.netid is not None:
        config.ams_net_id = args.netid
    if args.port is not None:
        config.ads_port = args.port
    if args.file is not None:
        config.mapping_file = args.file
    if args.time is not None:
        config.cycle_time_ms = args.time
    if args.redraw is not None:
        config.display_interval_ms = args.redraw
    if args.grace is not None:
        config.grace_s = args.grace
    if args.robot is not None:
        config.rws_host = args.robot
    if args.user is not None:
        config.rws_user = args.user
    if args.password is not None:
        config.rws_password = args.password
    config.dashboard = bool(args.verbose)
    config.simulate = config.simulate or bool(args.simulate)
    config.validate()
    return config


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the bridge. Returns the process exit code."""
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()

    if wants_help(argv):
        parser.print_help()
        return EXIT_OK

    try:
        args = parser.parse_args(normalize_args(parser, argv))
    except ConfigError as e:
        parser.print_usage(sys.stderr)
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_STARTUP_FAILURE

    configure_logging(args)

    try:
        config = build_config(args)
    except ConfigError as e:
        logger.error(f"ERROR: {e}")
        return EXIT_STARTUP_FAILURE

    print_header(config)

    # Table problems are reported before anything is connected
    print("Reading configuration file...")
    try:
        table = MappingTable.load(config.mapping_path)
    except ConfigError as e:
        logger.error(f"ERROR: {e}")
        return EXIT_STARTUP_FAILURE

    try:
        source, target = create_backends(config, table)
    except ImportError as e:
        logger.error(f"ERROR: ADS support is not installed ({e}); install robocaty[ads]")
        return EXIT_STARTUP_FAILURE

    controller = LifecycleController(config, table, source, target)
    controller.reporter.status_screen = lambda stream: print_status_screen(controller, stream)

    previous = install_signal_handlers(controller)
    try:
        return _run(config, controller)
    finally:
        restore_signal_handlers(previous)


def install_signal_handlers(controller: LifecycleController) -> dict:
    """Route SIGINT/SIGTERM to the stop token. Returns the previous handlers."""

    def handle_signal(signum, frame):
        """Only trigger the stop token; shutdown runs on the main thread."""
        controller.request_stop()

    return {
        signum: signal.signal(signum, handle_signal)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }


def restore_signal_handlers(previous: dict) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def _run(config: BridgeConfig, controller: LifecycleController) -> int:
    """Connect, hand the console to the operator, and always shut down."""
    print("Connecting to robot controller and TwinCAT...")
    try:
        controller.start()
    except BackendConnectionError as e:
        logger.error(f"ERROR: {e}")
        return EXIT_STARTUP_FAILURE

    try:
        if not config.dashboard:
            controller.reporter.print(format_status_screen(controller))
        with KeyReader() as reader:
            run_operator_loop(controller, reader)
        controller.reporter.print("\nStopping worker thread...")
    finally:
        controller.shutdown()

    if controller.worker_error is not None:
        logger.error("Worker stopped after an unexpected error: %s", controller.worker_error)
    print("Bye!")
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
