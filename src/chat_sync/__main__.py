"""Entrypoint: python -m chat_sync"""
from __future__ import annotations

import logging

import uvicorn

from chat_sync.api.middleware.correlation_id import CorrelationIdFilter
from chat_sync.config import settings


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s [%(request_id)s]: %(message)s",
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(CorrelationIdFilter())


def main() -> None:
    configure_logging()
    uvicorn.run(
        "chat_sync.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level=settings.LOG_LEVEL.lower(),
        log_config=None,
    )


if __name__ == "__main__":
    main()
