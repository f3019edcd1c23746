"""Configuration management for fireflow."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FireSettings(BaseSettings):
    """Global fireflow configuration loaded from environment variables.

    Every field can be overridden with a ``FIRE_``-prefixed variable,
    e.g. ``FIRE_DIR_NAME=.fire`` or ``FIRE_LOG_LEVEL=debug``.
    """

    # Project layout
    dir_name: str = Field(".specs-fire", description="State directory under the project root")
    state_file: str = Field("state.yaml", description="State document inside the state directory")
    runs_dir: str = Field("runs", description="Run folders inside the state directory")
    run_log_name: str = Field("run.md", description="Run artifact inside each run folder")

    # Run numbering
    run_prefix: str = "run"
    run_id_width: int = 3

    # Checkpoint defaults
    default_checkpoint: str = "plan"
    default_phase: str = "plan"

    # Logging configuration
    log_level: str = "WARNING"

    model_config = SettingsConfigDict(
        env_prefix="FIRE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"FIRE_LOG_LEVEL must be one of {allowed}, got: {v}")
        return v_upper

    @field_validator("run_id_width")
    @classmethod
    def validate_width(cls, v: int) -> int:
        if not (1 <= v <= 9):
            raise ValueError(f"FIRE_RUN_ID_WIDTH must be between 1 and 9, got: {v}")
        return v

    @field_validator("dir_name", "state_file", "runs_dir", "run_log_name", "run_prefix")
    @classmethod
    def validate_non_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("layout names cannot be blank")
        return v.strip()


def load_environment(env_file: Optional[Path] = None) -> None:
    """Load environment variables from .env files.

    Priority: ``env_file`` (or cwd/.env) > ~/.env

    Args:
        env_file: Explicit .env path (default: .env in current directory)
    """
    home_env = Path.home() / ".env"
    local_env = env_file or Path.cwd() / ".env"

    if home_env.exists():
        load_dotenv(home_env)
    if local_env.exists():
        load_dotenv(local_env, override=True)


@lru_cache(maxsize=1)
def get_settings() -> FireSettings:
    """Return the process-wide settings, built once from the environment."""
    return FireSettings()


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    get_settings.cache_clear()
