import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ALLOWED_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration loaded from environment variables."""

    # --- Required Variables ---
    log_group_name: str
    log_stream_name: str

    # --- Optional Variables with Defaults ---
    fields: str
    log_level: str
    service_name: str

    @classmethod
    def load_from_env(cls) -> "AppConfig":
        """
        Loads configuration from environment variables, performing validation.
        Fails fast with a ConfigurationError if anything is invalid.
        """
        try:
            # --- Handle required string variables ---
            log_group_name = _require("LOG_GROUP_NAME")
            log_stream_name = _require("LOG_STREAM_NAME")

            # --- Handle optional variables ---
            # An empty field list ships every access-log column.
            fields = os.getenv("FIELDS", "")
            service_name = os.getenv("SERVICE_NAME", "alb-log-shipper").strip()
            if not service_name:
                raise ValueError("SERVICE_NAME must not be blank.")

            log_level = os.getenv("LOG_LEVEL", "INFO").upper()
            if log_level not in ALLOWED_LOG_LEVELS:
                raise ValueError(
                    f"LOG_LEVEL must be one of {ALLOWED_LOG_LEVELS}, not '{log_level}'"
                )

        except KeyError as e:
            raise ConfigurationError(
                f"environment variable {e.args[0]} is required",
                context={"variable": e.args[0]},
            ) from e
        except (ValueError, TypeError) as e:
            raise ConfigurationError(
                f"Invalid value for an environment variable: {e}"
            ) from e

        return cls(
            log_group_name=log_group_name,
            log_stream_name=log_stream_name,
            fields=fields,
            log_level=log_level,
            service_name=service_name,
        )


def _require(name: str) -> str:
    value = os.environ.get(name, "").strip()
    if not value:
        raise KeyError(name)
    return value


# --- Singleton Factory Function (Lazy-loaded and Cached) ---
@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """
    Loads the application configuration from environment variables.
    The result is cached using lru_cache, so the environment is only read once
    on the first call. This avoids import-time side effects.
    """
    logger.info("Loading application configuration from environment...")
    return AppConfig.load_from_env()
