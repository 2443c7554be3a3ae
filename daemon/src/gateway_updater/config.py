"""
Gateway Updater Configuration Management
"""
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Updater settings loaded from environment variables (GATEWAY_UPDATE_*)"""

    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_UPDATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    json_logs: bool = Field(default=False, description="Emit JSON logs instead of console output")
    log_file: Optional[str] = Field(
        default=None, description="Optional path of a JSON update log on disk"
    )

    # Update Request Defaults
    default_timeout_seconds: float = Field(
        default=1200.0, gt=0, description="Overall time budget for one update attempt"
    )
    default_channel: Literal["stable", "beta"] = Field(
        default="stable", description="Release channel used when none is requested"
    )

    # Source Control
    git_binary: str = Field(default="git", description="git executable")
    tag_pattern: str = Field(default="v*", description="Glob selecting release tags")
    fetch_retries: int = Field(
        default=1, ge=0, description="Extra fetch attempts before reporting a network error"
    )
    fetch_retry_delay_seconds: float = Field(
        default=2.0, ge=0, description="Pause between fetch attempts"
    )
    rollback_timeout_seconds: float = Field(
        default=120.0, gt=0, description="Budget for the rollback checkout, independent of the update"
    )

    # Protected Build Artifacts
    protected_paths: List[str] = Field(
        default_factory=lambda: ["dist/control-ui/"],
        description="Build artifact directories excluded from cleanliness checks",
    )
    asset_entry_file: str = Field(
        default="index.html",
        description="File whose presence at the target commit means the asset is tracked",
    )

    # Build & Health Check
    build_script: str = Field(default="build", description="Primary build script")
    ui_build_script: str = Field(default="ui:build", description="UI bundle build script")
    cli_name: str = Field(default="gateway", description="Gateway CLI script used for doctor")
    health_check_command: Optional[List[str]] = Field(
        default=None, description="Override for the post-update diagnostic command"
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
