from __future__ import annotations

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from messaging_resilience.logging import get_log_level_value

ENV_PREFIX = "MESSAGING_"


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class ResilienceSettings(BaseSettings):
    """Settings for the request resilience layer and push connection."""

    model_config = prefixed_settings_config(ENV_PREFIX)

    api_base_url: str = "http://localhost:8080"
    ws_url: str = "ws://localhost:8080/ws"
    request_timeout_seconds: float = 10.0
    breaker_failure_threshold: int = 5
    breaker_reset_timeout_seconds: float = 30.0
    cache_max_age_seconds: float = 300.0
    retry_budget: int = 3
    retry_base_delay_seconds: float = 1.0
    reconnect_max_attempts: int = 10
    reconnect_base_delay_seconds: float = 1.0
    reconnect_max_delay_seconds: float = 30.0
    log_level: str = "INFO"

    @field_validator("api_base_url", "ws_url", mode="before")
    @classmethod
    def _normalize_url(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip().rstrip("/")
        if not normalized:
            raise ValueError("URL settings must be non-empty")
        return normalized

    @field_validator("ws_url")
    @classmethod
    def _validate_ws_scheme(cls, value: str) -> str:
        if not value.startswith(("ws://", "wss://")):
            raise ValueError("ws_url must use the ws:// or wss:// scheme")
        return value

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        get_log_level_value(value)
        return value.strip().upper()

    @model_validator(mode="after")
    def _validate_policies(self) -> ResilienceSettings:
        if self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be > 0")
        if self.breaker_failure_threshold < 1:
            raise ValueError("breaker_failure_threshold must be >= 1")
        if self.breaker_reset_timeout_seconds < 0:
            raise ValueError("breaker_reset_timeout_seconds must be >= 0")
        if self.cache_max_age_seconds < 0:
            raise ValueError("cache_max_age_seconds must be >= 0")
        if self.retry_budget < 0:
            raise ValueError("retry_budget must be >= 0")
        if self.retry_base_delay_seconds < 0:
            raise ValueError("retry_base_delay_seconds must be >= 0")
        if self.reconnect_max_attempts < 0:
            raise ValueError("reconnect_max_attempts must be >= 0")
        if self.reconnect_base_delay_seconds < 0:
            raise ValueError("reconnect_base_delay_seconds must be >= 0")
        if self.reconnect_max_delay_seconds < self.reconnect_base_delay_seconds:
            raise ValueError(
                "reconnect_max_delay_seconds must be >= reconnect_base_delay_seconds"
            )
        return self
