"""Command-line interface for tourney."""

import sys
import logging
import argparse
import asyncio
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

from tourney import __version__
from tourney.config.loader import load_config, ConfigError
from tourney.config.validator import validate_config, ValidationError
from tourney.dashboard.app import DashboardApp
from tourney.dashboard.state import DashboardState
from tourney.services import build_simulated_services
from tourney.ui.console_ui import ConsoleUI
from tourney.ui.headless_logger import HeadlessLogger


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog='tourney',
        description='Terminal dashboard for tournament data downloads, training, predictions and submissions',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Interactive dashboard using ./config.yaml (or built-in defaults)
  tourney

  # Minimal log output for CI/automation
  tourney --ui headless

  # Keys take effect after Enter (no raw terminal mode)
  tourney --input line

  # Use custom config file, no automatic training
  tourney --config /path/to/config.yaml --no-auto-train

Instant keys: d download, u upload, s/t train, p predict, r refresh,
n new model wizard, / command mode, h help, q quit
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--config',
        type=Path,
        metavar='PATH',
        help='Path to config.yaml (default: ./config.yaml if present)'
    )

    parser.add_argument(
        '--ui',
        choices=['rich', 'headless'],
        default='rich',
        help='UI mode: rich (interactive dashboard, default) or headless (minimal logging for CI/automation)'
    )

    parser.add_argument(
        '--no-auto-train',
        action='store_true',
        help='Do not start training automatically after all datasets download. Overrides config.'
    )

    parser.add_argument(
        '--input',
        choices=['auto', 'raw', 'line'],
        help='Keyboard input mode: auto (raw with fallback), raw, or line (press Enter). Overrides config.'
    )

    return parser


def _setup_logging(config: dict, dashboard_state: Optional[DashboardState] = None) -> None:
    """
    Setup logging configuration from config.

    Args:
        config: Configuration dictionary
        dashboard_state: State of the interactive dashboard; when given, console
            output is suppressed and service warnings go to the events panel
    """
    logging_config = config.get('logging', {})

    level_str = logging_config.get('level', 'INFO').upper()
    level = getattr(logging, level_str, logging.INFO)

    handlers = []

    # Console handler for headless mode only; the rich display owns the terminal otherwise
    if logging_config.get('console', True) and dashboard_state is None:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
        handlers.append(console_handler)

    log_file = logging_config.get('file')
    if log_file:
        try:
            log_path = Path(log_file).expanduser()
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_path)
            file_handler.setLevel(level)
            file_handler.setFormatter(
                logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
            )
            handlers.append(file_handler)
        except OSError as e:
            print(f"Error: Could not create log file '{log_file}': {e}", file=sys.stderr)
            sys.exit(1)

    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=level,
        handlers=handlers,
        force=True  # Override any existing configuration
    )

    if dashboard_state is not None:
        from tourney.ui.event_log_handler import setup_event_logging
        setup_event_logging(dashboard_state.events, level=max(level, logging.WARNING))


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point for tourney CLI.

    Args:
        argv: Command-line arguments (default: sys.argv)

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
        validate_config(config)
    except (ConfigError, ValidationError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    # Apply CLI overrides
    if args.no_auto_train:
        config['auto_train']['enabled'] = False

    if args.input:
        config['input']['mode'] = args.input

    try:
        return asyncio.run(run_dashboard(config, args))
    except KeyboardInterrupt:
        print("\n\nDashboard interrupted by user.", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"\nFatal error: {e}", file=sys.stderr)
        return 1


async def run_dashboard(config: dict, args: argparse.Namespace) -> int:
    """
    Build and run the dashboard (async).

    Args:
        config: Loaded configuration
        args: Parsed command-line arguments

    Returns:
        Exit code
    """
    state = DashboardState.from_config(config)

    if args.ui == 'headless':
        _setup_logging(config)
        renderer = HeadlessLogger(config)
    else:
        _setup_logging(config, dashboard_state=state)
        renderer = ConsoleUI(config)

    services, refresher = build_simulated_services(config)
    app = DashboardApp(config, renderer, services, refresher, state=state)

    logger.debug(f"tourney v{__version__} starting ({args.ui} UI)")
    return await app.run()
