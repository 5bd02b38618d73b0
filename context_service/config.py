"""
Service configuration read from CONTEXT_SERVICE_* environment variables.
"""

from typing import Optional
from functools import lru_cache
from pydantic import BaseModel, Field
import os

ENV_PREFIX = "CONTEXT_SERVICE_"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _env_bool(name: str, default: bool) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Runtime settings"""
    service_name: str = "context-service"
    log_level: str = "INFO"
    log_format: str = "json"

    host: str = "0.0.0.0"
    port: int = 8000

    request_topic: str = "context.requests"
    response_topic: str = "context.responses"
    consumer_group: str = "context-service"
    consumer_enabled: bool = True
    message_type: str = "context"

    retry_backoff_seconds: float = Field(default=3.0, gt=0)
    handler_timeout_seconds: float = Field(default=30.0, gt=0)
    idempotency_ttl_seconds: int = Field(default=3600, gt=0)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the environment, falling back to defaults"""
        defaults = cls()
        return cls(
            service_name=_env("SERVICE_NAME", defaults.service_name),
            log_level=_env("LOG_LEVEL", defaults.log_level),
            log_format=_env("LOG_FORMAT", defaults.log_format),
            host=_env("HOST", defaults.host),
            port=int(_env("PORT", str(defaults.port))),
            request_topic=_env("REQUEST_TOPIC", defaults.request_topic),
            response_topic=_env("RESPONSE_TOPIC", defaults.response_topic),
            consumer_group=_env("CONSUMER_GROUP", defaults.consumer_group),
            consumer_enabled=_env_bool("CONSUMER_ENABLED", defaults.consumer_enabled),
            message_type=_env("MESSAGE_TYPE", defaults.message_type),
            retry_backoff_seconds=float(_env("RETRY_BACKOFF_SECONDS", str(defaults.retry_backoff_seconds))),
            handler_timeout_seconds=float(_env("HANDLER_TIMEOUT_SECONDS", str(defaults.handler_timeout_seconds))),
            idempotency_ttl_seconds=int(_env("IDEMPOTENCY_TTL_SECONDS", str(defaults.idempotency_ttl_seconds))),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
