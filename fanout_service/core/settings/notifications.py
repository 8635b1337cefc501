"""Notification engine settings."""

from __future__ import annotations

from typing import Annotated

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class NotificationSettings(BaseSettings):
    """Dispatch and read-path configuration.

    Environment variables use NOTIFY_ prefix.
    Example: NOTIFY_ANONYMOUS_USER_ID=1, NOTIFY_DEFAULT_CHANNELS=email,websocket
    """

    anonymous_user_id: int = Field(
        default=1,
        description="Sentinel user id for guests; never receives notifications",
    )
    default_load_limit: int = Field(
        default=5,
        ge=1,
        description="Page size used by the loader when the caller gives none",
    )
    max_load_limit: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Upper bound for a single loader page",
    )
    default_channels: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["none"],
        description=(
            "Channel tags used for recipients that have no explicit opt-in "
            "('none' records the notification without delivering it)"
        ),
    )
    metrics_enabled: bool = Field(
        default=True,
        description="Record Prometheus metrics for dispatch and delivery",
    )

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @field_validator("default_channels", mode="before")
    @classmethod
    def _split_channels(cls, value: object) -> object:
        """Accept a comma separated string from the environment."""
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @model_validator(mode="after")
    def _check_limits(self) -> NotificationSettings:
        if self.default_load_limit > self.max_load_limit:
            msg = "NOTIFY_DEFAULT_LOAD_LIMIT must not exceed NOTIFY_MAX_LOAD_LIMIT"
            raise ValueError(msg)
        return self
