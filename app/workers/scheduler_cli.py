from __future__ import annotations

import argparse
import json
import logging
import time

from app.config import load_config, setup_logging
from app.services.container import ServiceContainer

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Run the WaterKontrol worker: telemetry ingest, schedule tick and liveness sweep."""
    parser = argparse.ArgumentParser(prog="waterkontrol-worker")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one schedule tick and one liveness sweep, print the results and exit",
    )
    parser.add_argument(
        "--no-mqtt",
        action="store_true",
        help="Do not connect to the broker (commands are logged as failed)",
    )
    args = parser.parse_args(argv)

    config = load_config()
    setup_logging(debug=config.DEBUG, log_level=config.log_level)

    container = ServiceContainer.build(
        config,
        enable_mqtt=False if args.no_mqtt else None,
        start_scheduler=not args.once,
    )

    if args.once:
        try:
            results = {}
            for task_name in container.scheduler.task_names:
                outcome = container.scheduler.run_now(task_name)
                results[task_name] = outcome.result if outcome and outcome.success else None
            print(json.dumps(results, indent=2, default=str))
            return 0
        finally:
            container.shutdown()

    logger.info("Worker running (press Ctrl+C to stop)")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Stopping worker...")
    finally:
        try:
            container.shutdown()
        except (RuntimeError, OSError, AttributeError, TypeError):
            logger.exception("Failed to shut down worker cleanly")
            return 1
    return 0


if __name__ == "__main__":
    import sys

    raise SystemExit(main(sys.argv[1:]))
