"""Settings for the deploy worker, read with pydantic-settings.

All values can be provided through the environment with the ``TFDEPLOY_``
prefix or through a ``.env`` file:

    TFDEPLOY_REDIS_URL=redis://redis:6379/0
    TFDEPLOY_POLICY_FILE=/etc/tfdeploy/policy.yaml
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Worker settings.

    Everything has a default so unit tests can build a ``Settings()`` without
    any environment; production deployments override the URLs and credentials.
    """

    model_config = SettingsConfigDict(
        env_prefix="TFDEPLOY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Logging ===
    service_name: str = Field(default="tfdeploy", description="Service name for structured logging")
    log_format: Literal["json", "console"] = Field(default="console", description="Log output format")
    log_level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")

    # === Redis ===
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
        examples=["redis://redis:6379/0"],
    )
    signal_stream: str = Field(default="tfdeploy:signals", description="Stream carrying root signals")
    audit_stream: str = Field(default="tfdeploy:audit", description="Stream receiving audit job events")
    consumer_group: str = Field(default="tfdeploy-workers")
    consumer_name: str = Field(default="tfdeploy-worker-1")

    # === GitHub App ===
    github_app_id: str | None = Field(default=None, description="GitHub App ID")
    github_app_private_key_path: str = Field(default="/app/keys/github_app.pem")
    github_api_url: str = Field(default="https://api.github.com")

    # === Policy / execution ===
    policy_file: str | None = Field(default=None, description="YAML file with repo policies")
    workdir_root: str = Field(default="/tmp/tfdeploy", description="Where roots are checked out")
    command_timeout_seconds: float = Field(default=3600.0, gt=0)
    default_tf_version: str = Field(default="1.5.7", description="Used when a root pins no version")

    # === Activity retry policy ===
    activity_max_attempts: int = Field(default=5, ge=1)
    activity_timeout_seconds: float = Field(default=30.0, gt=0)
    activity_backoff_seconds: float = Field(default=1.0, ge=0)
    check_run_max_attempts: int = Field(default=5, ge=1)

    # === Root workflow ===
    revision_receive_timeout_seconds: float = Field(
        default=60 * 60,
        gt=0,
        description="Idle time after which a root workflow shuts down",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v


@lru_cache
def get_settings() -> Settings:
    return Settings()
