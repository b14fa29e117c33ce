from __future__ import annotations

import uvicorn

from app.core.config import settings
from app.core.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def main() -> None:
    setup_logging(log_level=settings.log_level, log_file=settings.log_file)
    logger.info(f"Starting {settings.app_name} on {settings.host}:{settings.port}")
    uvicorn.run("app.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
