"""
Configuration management using Pydantic Settings.
Every value can be overridden from the environment or a local .env file.
"""
import logging
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from taskbridge.models.task import TaskQueueConfig


class Settings(BaseSettings):
    """Bridge settings with validation and environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="taskbridge", description="Server name advertised over MCP")
    debug: bool = Field(default=False, description="Debug mode")

    # Task queue
    max_concurrent_tasks: int = Field(default=3, ge=1, description="Running task ceiling")
    idempotency_window_seconds: int = Field(default=24 * 60 * 60, ge=1, description="How long finished tasks stay deduplicable")
    cleanup_interval_seconds: float = Field(default=3600.0, gt=0, description="Registry eviction sweep interval")
    response_timeout_seconds: float = Field(default=60.0, gt=0, description="Sync submission response deadline")
    workspace_release_delay_seconds: float = Field(default=60.0, ge=0, description="Delay before detaching a finished workspace")
    output_preview_chars: int = Field(default=5000, ge=1, description="Output kept on the registry entry")
    notification_preview_chars: int = Field(default=1000, ge=1, description="Output included in completion notices")

    # Execution backend
    runner_timeout_ms: int = Field(default=300000, ge=1000, description="Default execution timeout")
    runner_image: str = Field(default="ghcr.io/anthropics/claude-code:latest", description="Container image for docker mode")
    runner_cpu_limit: Optional[str] = Field(default="2.0", description="docker --cpus")
    runner_memory_limit: Optional[str] = Field(default="2g", description="docker --memory")
    runner_grace_period_ms: int = Field(default=5000, ge=0, description="SIGTERM to SIGKILL grace period")
    workspace_dir: str = Field(default="/opt/stacks", description="Host directory holding per-task workspaces")
    opencode_server_enabled: bool = Field(default=False, description="Run tasks on an OpenCode server instead of docker")
    opencode_server_url: Optional[str] = Field(default=None, description="OpenCode server base URL")

    # Workspace store (Letta)
    letta_api_url: str = Field(default="http://localhost:8283", description="Letta API base URL")
    letta_api_token: str = Field(default="", description="Letta API bearer token")
    letta_timeout_seconds: float = Field(default=30.0, gt=0, description="Letta request timeout")
    workspace_max_events: int = Field(default=50, ge=1, description="Events kept per workspace block")
    workspace_block_limit: int = Field(default=50000, ge=1000, description="Workspace block character limit")
    workspace_update_retries: int = Field(default=3, ge=0, description="Retries on workspace write conflicts")

    # Chat (Matrix)
    matrix_enabled: bool = Field(default=False, description="Create a chat room per task")
    matrix_homeserver_url: str = Field(default="", description="Matrix homeserver URL")
    matrix_access_token: str = Field(default="", description="Matrix bot access token")
    matrix_user_id: str = Field(default="", description="Matrix bot user id")
    matrix_default_human_observers: str = Field(default="", description="Comma-separated observers invited to every room")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format: json or text")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        allowed = ["json", "text"]
        if v not in allowed:
            raise ValueError(f"Log format must be one of {allowed}")
        return v

    def default_observers(self) -> List[str]:
        """Deployment-wide observers invited to every task room."""
        return [
            observer.strip()
            for observer in self.matrix_default_human_observers.split(",")
            if observer.strip()
        ]

    def task_queue_config(self) -> TaskQueueConfig:
        return TaskQueueConfig(
            max_concurrent_tasks=self.max_concurrent_tasks,
            idempotency_window_ms=self.idempotency_window_seconds * 1000,
            cleanup_interval_seconds=self.cleanup_interval_seconds,
        )

    def get_log_level(self) -> int:
        """Get logging level as integer."""
        return getattr(logging, self.log_level)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings
    """
    return Settings()
