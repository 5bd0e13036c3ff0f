"""
Entry point: ``cloudbrowser`` / ``python -m cloudbrowser``.

Sets up file logging, builds the Model and API client from the
configuration, then hands control to the Textual app.
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__, get_log_path
from .api import CloudClient
from .config import ConfigManager, config_manager
from .debug_log import DebugLogger
from .model import Model

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cloudbrowser",
        description="Interactive terminal browser for OVHcloud Public Cloud projects.",
    )
    parser.add_argument("--debug", action="store_true", help="log at DEBUG level")
    parser.add_argument("--project", help="cloud project to open instead of the configured default")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def setup_logging(manager: ConfigManager, debug: bool = False) -> None:
    level_name = "DEBUG" if debug else manager.get_log_level()
    logging.basicConfig(
        filename=manager.get_custom_log_path() or get_log_path(),
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
    )


def build_model(manager: ConfigManager, project: Optional[str] = None) -> Model:
    config = manager.get_config()
    return Model(
        cloud_project=project or manager.get_default_project(),
        refresh_interval=float(config.ui.refresh_interval),
        notification_seconds=float(config.ui.notification_seconds),
        debug_visible_entries=int(config.ui.debug_visible_entries),
        debug_logger=DebugLogger(int(config.debug.capacity)),
    )


def build_client(manager: ConfigManager, debug_logger: Optional[DebugLogger]) -> CloudClient:
    api = manager.get_api_config()
    return CloudClient(
        endpoint=api.endpoint,
        application_key=api.application_key,
        application_secret=api.application_secret,
        consumer_key=api.consumer_key,
        timeout=float(api.timeout),
        debug_logger=debug_logger,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(config_manager, args.debug)
    logging.info(f"Starting cloudbrowser {__version__}")

    try:
        model = build_model(config_manager, args.project)
        client = build_client(config_manager, model.debug_logger)
    except ValueError as e:
        logging.error(f"Invalid configuration: {e}")
        print(f"cloudbrowser: invalid configuration: {e}", file=sys.stderr)
        return 2

    # Imported late so --help and --version work without a terminal.
    from .textual_app import run

    try:
        creation_command = run(model, client, config_manager)
    except KeyboardInterrupt:
        logging.info("KeyboardInterrupt caught, exiting...")
        return 0
    except Exception as e:
        logging.critical(f"Critical error: {e}", exc_info=True)
        raise

    if creation_command:
        logging.info(f"Handing off to: {creation_command}")
        print_creation_command(creation_command)
    return 0


def print_creation_command(command: str) -> None:
    print()
    print("🚀 To create a new resource, run:")
    print()
    print(f"   {command}")
    print()


if __name__ == "__main__":
    sys.exit(main())
