"""
Configuration management for the tracker.
Handles loading settings from environment variables and config files.
"""

import os
from pathlib import Path
from typing import Optional
from dataclasses import dataclass
from dotenv import load_dotenv


@dataclass
class TrackerConfig:
    """Main configuration class for the tracker server."""

    # Server
    host: str = "0.0.0.0"
    port: int = 3000

    # Tracking cache
    cache_ttl_seconds: int = 600  # 10 minutes

    # === Amazon (authenticated provider) ===
    amazon_username: str = ""
    amazon_password: str = ""
    amazon_base_url: str = "https://www.amazon.com"
    amazon_session_ttl: int = 3600  # seconds an authenticated session is trusted

    # Outbound requests
    request_timeout: int = 30  # seconds

    # Logging
    log_level: str = "INFO"
    log_file: str = "logs/tracker.log"

    @property
    def amazon_configured(self) -> bool:
        return bool(self.amazon_username and self.amazon_password)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "TrackerConfig":
        """Load configuration from environment variables."""

        # Try to load from .env file
        if env_file:
            load_dotenv(env_file)
        else:
            # Try common locations
            for env_path in ["config.env", ".env", "../config.env"]:
                if Path(env_path).exists():
                    load_dotenv(env_path)
                    break

        return cls(
            # Server
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),

            # Cache
            cache_ttl_seconds=int(os.getenv("CACHE_TTL_SECONDS", "600")),

            # Amazon
            amazon_username=os.getenv("AMZ_USER", ""),
            amazon_password=os.getenv("AMZ_PASSWORD", ""),
            amazon_base_url=os.getenv("AMZ_BASE_URL", "https://www.amazon.com"),
            amazon_session_ttl=int(os.getenv("AMZ_SESSION_TTL", "3600")),

            request_timeout=int(os.getenv("REQUEST_TIMEOUT", "30")),

            # Logging
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE", "logs/tracker.log"),
        )

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors and warnings."""
        errors = []

        if not 0 < self.port < 65536:
            errors.append(f"PORT must be between 1 and 65535, got {self.port}")
        if self.cache_ttl_seconds <= 0:
            errors.append("CACHE_TTL_SECONDS must be positive")

        # Amazon is only needed when an Amazon order is tracked
        if not self.amazon_configured:
            errors.append("Warning: AMZ_USER/AMZ_PASSWORD not set - Amazon tracking disabled")

        return errors


# Global config instance
_config: Optional[TrackerConfig] = None


def get_config() -> TrackerConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = TrackerConfig.from_env()
    return _config


def init_config(env_file: Optional[str] = None) -> TrackerConfig:
    """Initialize configuration from environment."""
    global _config
    _config = TrackerConfig.from_env(env_file)
    return _config
