from __future__ import annotations

import logging
import time
from pathlib import Path

from . import config, db
from .control import ControlServer
from .monitor import Monitor


def setup_logging() -> None:
    level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def main() -> None:
    """Start the control server and the monitoring loop, run until Ctrl+C."""
    setup_logging()
    logger = logging.getLogger(__name__)

    Path(config.DATA_DIR).mkdir(parents=True, exist_ok=True)
    logger.info("Initializing database…")
    db.init_db()

    monitor = Monitor()
    server = ControlServer(monitor)
    base_url = server.start()
    logger.info("Dashboard API available at %s", base_url)

    monitor.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutting down…")
    finally:
        monitor.stop()
        server.stop()
        monitor.join(timeout=config.HTTP_TIMEOUT_SECONDS)


if __name__ == "__main__":
    main()
