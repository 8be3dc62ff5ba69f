"""
Settings for the Omnihook ingestion service.

Simple, reliable environment variable configuration. Platform secrets are
optional at import time; a missing secret rejects the matching webhooks.
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


def _get_bool(name: str, default: bool) -> bool:
    """Read a boolean flag from the environment."""
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings with environment-based configuration."""

    def __init__(self):
        # ================================================================
        # Version & General Configuration
        # ================================================================
        self.version: str = _get_version_from_pyproject()
        self.host: str = os.getenv("HOST", "0.0.0.0")
        self.port: int = int(os.getenv("PORT", "8000"))
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")
        self.log_dir: str = os.getenv("LOG_DIR", "./logs")
        self.environment: str = os.getenv("ENVIRONMENT", "DEV")

        # ================================================================
        # Record Store Configuration
        # ================================================================
        self.database_url: str = os.getenv(
            "DATABASE_URL", "sqlite+aiosqlite:///./omnihook.db"
        )
        self.db_pool_size: int = int(os.getenv("DB_POOL_SIZE", "20"))
        self.db_max_overflow: int = int(os.getenv("DB_MAX_OVERFLOW", "40"))
        self.db_echo: bool = _get_bool("DB_ECHO", False)
        self.auto_create_tables: bool = _get_bool("AUTO_CREATE_TABLES", True)

        # Retry policy for transient storage failures
        self.storage_max_retries: int = int(os.getenv("STORAGE_MAX_RETRIES", "3"))
        self.storage_base_delay: float = float(
            os.getenv("STORAGE_BASE_DELAY", "0.2")
        )
        self.storage_max_delay: float = float(os.getenv("STORAGE_MAX_DELAY", "5.0"))

        # ================================================================
        # Realtime Configuration (Optional)
        # ================================================================
        self.redis_url: str | None = os.getenv("REDIS_URL")
        self.realtime_channel_prefix: str = os.getenv(
            "REALTIME_CHANNEL_PREFIX", "omnihook"
        )

        # ================================================================
        # Platform Secrets
        # ================================================================
        self.facebook_app_secret: str | None = os.getenv("FACEBOOK_APP_SECRET")
        self.instagram_app_secret: str | None = os.getenv("INSTAGRAM_APP_SECRET")
        self.whatsapp_app_secret: str | None = os.getenv("WHATSAPP_APP_SECRET")
        self.line_channel_secret: str | None = os.getenv("LINE_CHANNEL_SECRET")

        # Subscription handshake tokens
        self.facebook_verify_token: str | None = os.getenv("FACEBOOK_VERIFY_TOKEN")
        self.instagram_verify_token: str | None = os.getenv("INSTAGRAM_VERIFY_TOKEN")
        self.whatsapp_verify_token: str | None = os.getenv("WHATSAPP_VERIFY_TOKEN")

        # Explicit switch, never derived from ENVIRONMENT
        self.allow_unsigned_webhooks: bool = _get_bool(
            "ALLOW_UNSIGNED_WEBHOOKS", False
        )

        # ================================================================
        # Webhook Processing
        # ================================================================
        self.webhook_background_processing: bool = _get_bool(
            "WEBHOOK_BACKGROUND_PROCESSING", True
        )

        # ================================================================
        # Profile Enrichment
        # ================================================================
        self.enrichment_enabled: bool = _get_bool("ENRICHMENT_ENABLED", True)
        self.enrichment_timeout: float = float(os.getenv("ENRICHMENT_TIMEOUT", "5"))
        self.graph_api_version: str = os.getenv("GRAPH_API_VERSION", "v18.0")
        self.graph_api_base_url: str = os.getenv(
            "GRAPH_API_BASE_URL", "https://graph.facebook.com"
        )
        self.line_api_base_url: str = os.getenv(
            "LINE_API_BASE_URL", "https://api.line.me"
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
            self.environment = "DEV"
        self.environment = self.environment.upper()

        if self.storage_max_retries < 1:
            raise ValueError("STORAGE_MAX_RETRIES must be at least 1")
        if self.enrichment_timeout <= 0:
            raise ValueError("ENRICHMENT_TIMEOUT must be positive")

    def app_secret_for(self, platform: str) -> str | None:
        """
        Get the signing secret configured for a platform.

        Args:
            platform: Platform value (facebook, instagram, line, whatsapp)

        Returns:
            Secret string, or None when the platform has none configured
        """
        return {
            "facebook": self.facebook_app_secret,
            "instagram": self.instagram_app_secret,
            "whatsapp": self.whatsapp_app_secret,
            "line": self.line_channel_secret,
        }.get(platform)

    def verify_token_for(self, platform: str) -> str | None:
        """Get the subscription handshake token configured for a platform."""
        return {
            "facebook": self.facebook_verify_token,
            "instagram": self.instagram_verify_token,
            "whatsapp": self.whatsapp_verify_token,
        }.get(platform)

    @property
    def has_redis(self) -> bool:
        """Check if Redis is configured."""
        return self.redis_url is not None

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "DEV"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "PROD"


# Global settings instance
settings = Settings()
