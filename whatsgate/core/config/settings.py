"""
Settings for the WhatsGate gateway.

Simple, reliable environment variable configuration for session storage and
the per-request connection lifecycle.
"""

import os
import tomllib
from pathlib import Path

from dotenv import load_dotenv

# Load .env file for local development - look in current working directory
load_dotenv(".env")


def _get_version_from_pyproject() -> str:
    """
    Read version from pyproject.toml file.

    Returns:
        Version string from pyproject.toml, or fallback version
    """
    current_path = Path(__file__)
    for parent in [current_path.parent, *current_path.parents]:
        pyproject_path = parent / "pyproject.toml"
        if pyproject_path.exists():
            try:
                with open(pyproject_path, "rb") as f:
                    pyproject_data = tomllib.load(f)
                    version = pyproject_data.get("project", {}).get("version")
                    if version:
                        return version
            except (OSError, tomllib.TOMLDecodeError):
                continue

    return "0.1.0"


def _parse_browser(raw: str) -> tuple[str, str, str]:
    parts = [part.strip() for part in raw.split(",")]
    if len(parts) != 3 or not all(parts):
        raise ValueError("BROWSER_NAME must look like 'Ubuntu,Chrome,20.0.04'")
    return parts[0], parts[1], parts[2]


class Settings:
    """Application settings with environment-based configuration."""

    def __init__(self):
        # ================================================================
        # Version & General Configuration
        # ================================================================
        self.version: str = _get_version_from_pyproject()
        self.port: int = int(os.getenv("PORT", "8000"))
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")
        self.log_dir: str = os.getenv("LOG_DIR", "./logs")
        self.environment: str = os.getenv("ENVIRONMENT", "DEV")

        # ================================================================
        # Session Store Configuration
        # ================================================================
        self.session_backend: str = os.getenv("SESSION_BACKEND", "memory")
        self.session_retention_days: int = int(
            os.getenv("SESSION_RETENTION_DAYS", "30")
        )
        self.presence_ttl_seconds: int = int(
            os.getenv("PRESENCE_TTL_SECONDS", "86400")
        )

        # Redis connection settings (only used if the redis backend is selected)
        self.redis_url: str | None = os.getenv("REDIS_URL")
        self.redis_max_connections: int = int(os.getenv("REDIS_MAX_CONNECTIONS", "64"))
        self.redis_key_prefix: str = os.getenv("REDIS_KEY_PREFIX", "whatsgate")

        # ================================================================
        # Connection Lifecycle Configuration
        # ================================================================
        self.request_timeout_seconds: float = float(
            os.getenv("REQUEST_TIMEOUT_SECONDS", "25")
        )
        self.connect_settle_seconds: float = float(
            os.getenv("CONNECT_SETTLE_SECONDS", "3")
        )
        self.retry_delay_seconds: float = float(os.getenv("RETRY_DELAY_SECONDS", "3"))
        self.max_connect_retries: int = int(os.getenv("MAX_CONNECT_RETRIES", "3"))
        self.pairing_window_seconds: float = float(
            os.getenv("PAIRING_WINDOW_SECONDS", "60")
        )
        self.media_download_timeout_seconds: float = float(
            os.getenv("MEDIA_DOWNLOAD_TIMEOUT_SECONDS", "15")
        )
        self.media_max_bytes: int = int(os.getenv("MEDIA_MAX_BYTES", str(5 * 1024 * 1024)))

        # ================================================================
        # Protocol Library Configuration
        # ================================================================
        # Import path of the protocol client factory, e.g. "mypkg.adapter:factory"
        self.protocol_factory: str | None = os.getenv("PROTOCOL_FACTORY")
        self.browser: tuple[str, str, str] = _parse_browser(
            os.getenv("BROWSER_NAME", "Ubuntu,Chrome,20.0.04")
        )

        self._validate_settings()

    def _validate_settings(self):
        """Validate settings values."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        if self.log_level.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        self.log_level = self.log_level.upper()

        valid_environments = ["DEV", "PROD"]
        if self.environment.upper() not in valid_environments:
            self.environment = "DEV"  # Default fallback
        self.environment = self.environment.upper()

        self.session_backend = self.session_backend.lower()
        if self.session_backend not in ("memory", "redis"):
            raise ValueError("SESSION_BACKEND must be 'memory' or 'redis'")
        if self.session_backend == "redis" and not self.redis_url:
            raise ValueError("REDIS_URL is required when SESSION_BACKEND=redis")

        if self.session_retention_days <= 0:
            raise ValueError("SESSION_RETENTION_DAYS must be positive")
        if self.request_timeout_seconds <= 0:
            raise ValueError("REQUEST_TIMEOUT_SECONDS must be positive")
        if self.max_connect_retries < 0:
            raise ValueError("MAX_CONNECT_RETRIES must not be negative")

    @property
    def session_retention_seconds(self) -> int:
        """Retention window expressed in seconds."""
        return self.session_retention_days * 86400

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "DEV"


# Global settings instance
settings = Settings()
