"""Command line interface for multi-cell scenario runs."""

from __future__ import annotations

import argparse
import sys
import time
from contextlib import contextmanager
from pathlib import Path

import yaml

from wlangen.config import ScenarioConfig
from wlangen.errors import ConfigurationError, EngineError
from wlangen.log_config import get_logger

logger = get_logger(__name__)

EXIT_RUNTIME_ERROR = 1
EXIT_CONFIG_ERROR = 2


@contextmanager
def Timer(description: str):
    """Context manager for timing operations with both print and log output.

    Args:
        description: Operation description for timing messages.

    Yields:
        None: Context manager yields nothing.
    """
    print(f"🔄 {description}...")
    logger.info(f"Starting {description}")
    start = time.time()
    try:
        yield
        elapsed = time.time() - start
        print(f"✅ {description} (completed in {elapsed:.1f}s)")
        logger.info(f"Completed {description} in {elapsed:.1f}s")
    except Exception as e:
        elapsed = time.time() - start
        print(f"❌ {description} (failed after {elapsed:.1f}s)")
        logger.error(f"Failed {description} after {elapsed:.1f}s: {e}")
        raise


def _load_config(config_path: Path) -> ScenarioConfig:
    """Load and validate configuration.

    Args:
        config_path: Path to YAML configuration file.

    Returns:
        Loaded and validated configuration object.

    Raises:
        SystemExit: If configuration loading or validation fails.
    """
    try:
        config = ScenarioConfig.from_yaml(config_path)
        logger.info(f"Loaded configuration from {config_path}")
        return config
    except FileNotFoundError:
        print(f"❌ Configuration file not found: {config_path}")
        print(f"💡 Create one with: cp config.yml {config_path}")
        logger.error(f"Configuration file not found: {config_path}")
        sys.exit(EXIT_CONFIG_ERROR)
    except (ConfigurationError, yaml.YAMLError, OSError) as e:
        logger.error(f"Failed to load config: {e}")
        print(f"❌ Configuration error: {e}")
        print(f"💡 Check YAML syntax in: {config_path}")
        sys.exit(EXIT_CONFIG_ERROR)


def _apply_overrides(config: ScenarioConfig, args: argparse.Namespace) -> None:
    """Apply command-line overrides onto a loaded configuration."""
    if getattr(args, "output", None):
        config.output.directory = Path(args.output)
    if getattr(args, "seed", None) is not None:
        config.layout.seed = int(args.seed)
    if getattr(args, "no_trace", False):
        config.telemetry.detailed_trace = False


def run_command(args: argparse.Namespace) -> None:
    """Build and run one scenario, then report its artifacts.

    Args:
        args: Parsed command line arguments containing config and output paths.
    """
    from wlangen.driver import ScenarioDriver
    from wlangen.log_config import enable_application_logging

    config = _load_config(Path(args.config))
    _apply_overrides(config, args)
    enable_application_logging(config.scenario.verbose)

    try:
        with Timer(f"Scenario '{config.scenario.name}'"):
            result = ScenarioDriver(config).run()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print("💡 Check cell counts, address scheme and timing in the configuration")
        sys.exit(EXIT_CONFIG_ERROR)
    except EngineError as e:
        logger.error(f"Engine error: {e}")
        print("💡 Use -v for detailed error information")
        sys.exit(EXIT_RUNTIME_ERROR)
    except Exception as e:
        logger.error(f"Scenario run failed: {e}")
        print("💡 Use -v for detailed error information")
        sys.exit(EXIT_RUNTIME_ERROR)

    print(
        f"📊 {len(result.cells)} cells, "
        f"{sum(1 + len(c.stations) for c in result.cells)} nodes, "
        f"horizon {result.horizon:g}s (applications stop at {result.global_stop:g}s)"
    )
    if result.artifacts:
        print("📁 Telemetry artifacts:")
        for artifact in result.artifacts:
            print(f"   - {artifact.kind.value}: {artifact.path}")
    else:
        print("📁 Detailed trace disabled; no telemetry artifacts")
    for path in result.side_artifacts:
        print(f"   - extra: {path}")
    print("🎉 SUCCESS! Scenario ran to completion")


def plan_command(args: argparse.Namespace) -> None:
    """Compose a scenario without running it and emit its YAML descriptor.

    Args:
        args: Parsed command line arguments.
    """
    from wlangen.driver import ScenarioDriver

    config = _load_config(Path(args.config))
    _apply_overrides(config, args)
    try:
        driver = ScenarioDriver(config)
        result = driver.plan()
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}")
        sys.exit(EXIT_CONFIG_ERROR)
    except EngineError as e:
        print(f"❌ Engine error: {e}")
        sys.exit(EXIT_RUNTIME_ERROR)

    descriptor = driver.to_yaml(result)
    if getattr(args, "descriptor", None):
        out = Path(args.descriptor)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(descriptor)
        print(f"📄 Scenario descriptor written to: {out}")
    else:
        print(descriptor)


def info_command(args: argparse.Namespace) -> None:
    """Show configuration information.

    Args:
        args: Parsed command line arguments containing config file path.
    """
    config = _load_config(Path(args.config))
    print(config.summary())


def summary_command(args: argparse.Namespace) -> None:
    """Print a per-flow table and rollup for a flow-summary file.

    Args:
        args: Parsed command line arguments containing the flow-summary path.
    """
    from wlangen.metrics import (
        format_flow_table,
        format_rollup,
        load_flow_summary,
        summarize_flows,
    )

    try:
        df = load_flow_summary(Path(args.flows))
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ {e}")
        sys.exit(EXIT_RUNTIME_ERROR)

    print("Flow Summary")
    print("=" * 50)
    print(format_flow_table(df))
    print()
    print(format_rollup(summarize_flows(df)))


def main() -> None:
    """Parse command line arguments and execute the appropriate subcommand.

    Configures logging, parses CLI arguments, and dispatches to the correct
    command function (run, plan, info or summary).
    """
    parser = argparse.ArgumentParser(
        prog="wlangen",
        description="Build and run parametric multi-cell wireless scenarios.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Global options
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress console output (logs only)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Build and run a scenario")
    run_parser.add_argument(
        "config",
        nargs="?",
        default="config.yml",
        help="Configuration file path (default: config.yml)",
    )
    run_parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Output directory for artifacts (overrides output.directory)",
    )
    run_parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Station placement seed (overrides layout.seed)",
    )
    run_parser.add_argument(
        "--no-trace",
        action="store_true",
        help="Run bare: disable captures, animation and flow summary",
    )
    run_parser.set_defaults(func=run_command)

    # Plan command
    plan_parser = subparsers.add_parser(
        "plan", help="Compose a scenario and print its descriptor without running"
    )
    plan_parser.add_argument(
        "config",
        nargs="?",
        default="config.yml",
        help="Configuration file path (default: config.yml)",
    )
    plan_parser.add_argument(
        "-d",
        "--descriptor",
        default=None,
        help="Write the YAML descriptor to this file instead of stdout",
    )
    plan_parser.add_argument("--seed", type=int, default=None, help="Placement seed")
    plan_parser.set_defaults(func=plan_command)

    # Info command
    info_parser = subparsers.add_parser("info", help="Show configuration information")
    info_parser.add_argument(
        "config",
        nargs="?",
        default="config.yml",
        help="Configuration file path (default: config.yml)",
    )
    info_parser.set_defaults(func=info_command)

    # Summary command
    summary_parser = subparsers.add_parser(
        "summary", help="Tabulate a flow-summary file produced by a run"
    )
    summary_parser.add_argument("flows", help="Flow-summary JSON path")
    summary_parser.set_defaults(func=summary_command)

    # Parse arguments and dispatch
    args = parser.parse_args()

    # Configure logging based on arguments
    import logging

    from wlangen.log_config import set_global_log_level

    # Determine log level from flags
    if args.verbose:
        log_level = logging.DEBUG
    else:
        log_level = logging.INFO

    set_global_log_level(log_level)

    # Suppress print output if --quiet is set
    if args.quiet:
        import builtins

        builtins.print = lambda *args, **kwargs: None

    if not hasattr(args, "func") or args.func is None:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
