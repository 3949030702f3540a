"""
Rspamd Monitor - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the monitor.

- Provides argparse-based CLI
- Loads configuration from YAML, environment and CLI
- Sets up logging
- Wires poller, chart renderer and metrics exporter

============================================================
USAGE
============================================================
python -m rspamd_monitor.cli
python -m rspamd_monitor.cli --url http://mail:11334/stat -v
python -m rspamd_monitor.cli --no-chart --metrics-port 9108

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from . import __version__
from .config import MonitorConfig
from .exceptions import ConfigurationError, PollerFatalError
from .exporter import PrometheusExporter
from .poller import StatPoller
from .render import ChartRenderer
from .state import MonitorState


logger = logging.getLogger(__name__)


VERBOSITY_LEVELS = ["WARNING", "INFO", "DEBUG"]


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(level: str = "WARNING", log_format: str = "text") -> None:
    """
    Set up logging on stderr (stdout belongs to the chart).

    Args:
        level: Log level
        log_format: Output format (json or text)
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s.%(msecs)03d | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="rspamd-monitor",
        description="Plot Rspamd message rates and scan times in the terminal",
    )

    # --------------------------------------------------------
    # Endpoint Options
    # --------------------------------------------------------
    endpoint_group = parser.add_argument_group("Endpoint Options")

    endpoint_group.add_argument(
        "--url",
        type=str,
        help="Statistics endpoint (default: http://localhost:11334/stat)",
    )

    endpoint_group.add_argument(
        "--interval",
        type=float,
        metavar="SECONDS",
        help="How often to poll Rspamd (default: 1.0)",
    )

    endpoint_group.add_argument(
        "--max-errors",
        type=int,
        metavar="N",
        help="Consecutive failed polls tolerated before exiting (default: 5)",
    )

    # --------------------------------------------------------
    # Chart Options
    # --------------------------------------------------------
    chart_group = parser.add_argument_group("Chart Options")

    chart_group.add_argument(
        "--chart-width",
        type=int,
        metavar="POINTS",
        help="Chart width, also the history window size (default: 80)",
    )

    chart_group.add_argument(
        "--chart-height",
        type=int,
        metavar="ROWS",
        help="Chart height (default: 6)",
    )

    chart_group.add_argument(
        "--no-chart",
        action="store_true",
        help="Do not draw charts (useful with --metrics-port)",
    )

    # --------------------------------------------------------
    # Export Options
    # --------------------------------------------------------
    parser.add_argument(
        "--metrics-port",
        type=int,
        metavar="PORT",
        help="Serve Prometheus metrics on this port",
    )

    parser.add_argument(
        "--config",
        type=str,
        metavar="PATH",
        help="Path to YAML config file",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Verbosity level: -v info, -vv debug",
    )

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (overrides -v)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        help="Logging format (default: text)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser


# ============================================================
# CLI CONFIGURATION BUILDER
# ============================================================

def build_config(args: argparse.Namespace) -> MonitorConfig:
    """
    Build configuration: defaults < YAML < environment < CLI.

    Raises:
        ConfigurationError: YAML file or environment value cannot be used
    """
    config = MonitorConfig.from_yaml(Path(args.config)) if args.config else MonitorConfig()
    config = MonitorConfig.from_env(config)

    if args.url is not None:
        config.url = args.url
    if args.interval is not None:
        config.poll_interval_seconds = args.interval
    if args.max_errors is not None:
        config.max_consecutive_errors = args.max_errors
    if args.chart_width is not None:
        config.window_size = args.chart_width
    if args.chart_height is not None:
        config.chart_height = args.chart_height
    if args.no_chart:
        config.render_chart = False
    if args.metrics_port is not None:
        config.metrics_port = args.metrics_port
    if args.log_format is not None:
        config.log_format = args.log_format

    if args.log_level is not None:
        config.log_level = args.log_level
    elif args.verbose:
        config.log_level = VERBOSITY_LEVELS[min(args.verbose, len(VERBOSITY_LEVELS) - 1)]

    return config


# ============================================================
# WIRING
# ============================================================

def create_poller(config: MonitorConfig) -> StatPoller:
    """Build state, listeners and poller for a configuration."""
    state = MonitorState(config.window_size, config.metrics)
    poller = StatPoller(config, state)

    if config.render_chart:
        poller.add_listener(ChartRenderer(height=config.chart_height))

    if config.metrics_port is not None:
        exporter = PrometheusExporter()
        exporter.serve(config.metrics_port)
        poller.add_listener(exporter)

    return poller


async def async_main(config: MonitorConfig) -> int:
    """
    Async main entry point.

    Returns:
        Exit code
    """
    poller = create_poller(config)
    try:
        await poller.run()
        return 0
    except PollerFatalError as e:
        logger.error(f"Fatal error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    load_dotenv(dotenv_path=Path.cwd() / ".env")

    try:
        config = build_config(args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    errors = config.validate()
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    setup_logging(config.log_level, config.log_format)
    logger.info(f"Starting with config: {config.to_dict()}")

    try:
        return asyncio.run(async_main(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
