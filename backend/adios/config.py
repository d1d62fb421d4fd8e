"""Environment-backed configuration."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(Path(__file__).parent.parent / ".env")

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


@dataclass(frozen=True)
class Settings:
    """Runtime configuration read once from the environment."""

    database_url: Optional[str]
    zoom_client_id: str
    zoom_client_secret: str
    zoom_secret_token: str
    base_url: str
    zoom_api_url: str = "https://api.zoom.us/v2"
    zoom_oauth_url: str = "https://zoom.us"
    zoom_http_timeout_seconds: float = 10.0
    cron_disabled: bool = False
    job_max_attempts: int = 5

    @property
    def zoom_redirect_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/oauth/zoom"

    @classmethod
    def from_env(cls) -> "Settings":
        timeout = float(os.getenv("ZOOM_HTTP_TIMEOUT_SECONDS", "10"))
        if timeout <= 0:
            timeout = 10.0

        max_attempts = int(os.getenv("JOB_MAX_ATTEMPTS", "5"))
        if max_attempts <= 0:
            max_attempts = 1

        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            zoom_client_id=os.getenv("ZOOM_CLIENT_ID", ""),
            zoom_client_secret=os.getenv("ZOOM_CLIENT_SECRET", ""),
            zoom_secret_token=os.getenv("ZOOM_SECRET_TOKEN", ""),
            base_url=os.getenv("BASE_URL", "http://localhost:8000"),
            zoom_api_url=os.getenv("ZOOM_API_URL", "https://api.zoom.us/v2").rstrip("/"),
            zoom_oauth_url=os.getenv("ZOOM_OAUTH_URL", "https://zoom.us").rstrip("/"),
            zoom_http_timeout_seconds=timeout,
            cron_disabled=_env_flag("CRON_DISABLED"),
            job_max_attempts=max_attempts,
        )

    def warn_if_incomplete(self) -> None:
        """Log the settings that leave parts of the service unusable."""
        if not self.database_url:
            logger.warning("DATABASE_URL not set. Database features will be unavailable.")
        if not self.zoom_client_id or not self.zoom_client_secret:
            logger.warning(
                "ZOOM_CLIENT_ID or ZOOM_CLIENT_SECRET not set. "
                "Token refresh and OAuth login will fail."
            )
        if not self.zoom_secret_token:
            logger.warning(
                "ZOOM_SECRET_TOKEN not set - every webhook request will be rejected."
            )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
