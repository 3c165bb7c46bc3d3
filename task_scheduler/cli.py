"""Command-line entry point: load the configuration and run the scheduler until stopped."""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import Sequence

from .autobuy.strategy import AutoBuyPlugin
from .config import DEFAULT_CONFIG_PATH, ConfigError, ConfigLoader
from .manager import TaskManager, TaskManagerError

logger = logging.getLogger(__name__)

_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the task scheduler until SIGINT or SIGTERM; return the exit status."""
    parser = argparse.ArgumentParser(
        prog="task-scheduler", description="Run configured tasks on cron schedules."
    )
    parser.add_argument(
        "-c",
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"main configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger.info("starting task scheduler")

    loader = ConfigLoader(args.config)
    try:
        main_config = loader.load_main_config()
    except ConfigError as exc:
        logger.error("loading main config failed: %s", exc)
        return 1
    try:
        loader.validate_config(main_config)
    except ConfigError as exc:
        logger.error("config validation failed: %s", exc)
        return 1

    manager = TaskManager()
    manager.register_plugin(AutoBuyPlugin())

    for info in loader.load_all_tasks(main_config):
        try:
            manager.add_task(info)
        except TaskManagerError as exc:
            logger.warning("adding task failed: %s, error: %s", info.name, exc)

    stop = threading.Event()
    previous = {sig: signal.getsignal(sig) for sig in _STOP_SIGNALS}
    for sig in _STOP_SIGNALS:
        signal.signal(sig, lambda signum, frame: stop.set())

    manager.start()
    try:
        logger.info("task scheduler running, press Ctrl+C to stop")
        while not stop.wait(0.2):
            pass
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        logger.info("stopping task scheduler")
        manager.stop()
    logger.info("task scheduler stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())