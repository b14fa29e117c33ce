from __future__ import annotations

import os
from functools import lru_cache


class Settings:
    """Application configuration exposed via lazy singleton."""

    def __init__(self) -> None:
        self.app_name = os.getenv("APP_NAME", "Live Rooms")
        self.frontend_url = os.getenv("FRONTEND_URL", "http://localhost:5173")
        origins = os.getenv("CORS_ORIGINS")
        self.cors_origins = [o.strip() for o in origins.split(",") if o.strip()] if origins else [self.frontend_url]
        self.default_poll_seconds = int(os.getenv("DEFAULT_POLL_SECONDS", 60))
        self.max_poll_seconds = int(os.getenv("MAX_POLL_SECONDS", 3600))
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.log_file = os.getenv("LOG_FILE")
        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = int(os.getenv("PORT", 8000))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
