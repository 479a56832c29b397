"""
Command-line entry point for the status service.

Responsibilities:
- Load .env before configuration is read
- Run uvicorn with the configured host and port
- Leave graceful shutdown to uvicorn's signal handling and the app lifespan
"""

from __future__ import annotations

import uvicorn
from dotenv import load_dotenv

from config import AppConfig
from observability.logger import log_event


def main() -> None:
    load_dotenv()
    config = AppConfig.load_from_env()

    log_event({
        "event_type": "SERVER_LAUNCH",
        "host": config.host,
        "port": config.port,
        "environment": config.env,
    })

    uvicorn.run(
        "server.asgi:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
        # lifespan disconnect_all() has its own hard limit; leave headroom
        timeout_graceful_shutdown=config.shutdown_timeout_ms // 1000 + 1,
    )


if __name__ == "__main__":
    main()
