"""Runtime configuration using Pydantic Settings.

Values come from environment variables with the ``PROPFX_`` prefix (or an
optional ``.env`` file) and fall back to the defaults below. Retrieve the
shared instance through ``get_settings``.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process-wide defaults for propfx instances.

    Attributes map to environment variables, e.g. ``history_limit`` <-
    ``PROPFX_HISTORY_LIMIT``.
    """

    history_limit: int = Field(
        default=64,
        ge=1,
        description="Maximum number of undo snapshots kept per instance",
    )  # fmt: skip
    task_loop: Literal["asyncio", "manual"] = Field(
        default="asyncio",
        description="Host loop used for scheduled jobs when none was set explicitly",
    )  # fmt: skip
    isolated_error_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="ERROR",
        description="Log level for failures caught at listener/observer/job boundaries",
    )

    @field_validator("isolated_error_level", "task_loop", mode="before")
    @classmethod
    def normalize_case(cls, v: str, info) -> str:
        if v is None:
            return v
        v = str(v).strip()
        return v.upper() if info.field_name == "isolated_error_level" else v.lower()

    model_config = SettingsConfigDict(
        env_prefix="PROPFX_",
        case_sensitive=False,
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )


@lru_cache
def get_settings() -> Settings:
    """Return the cached ``Settings`` instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
