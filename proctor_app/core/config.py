"""
Deployment configuration loaded from ``PROCTOR_*`` environment variables.

Architecture note:
Values are parsed and validated here once, at startup. The session core only
sees the resulting ``SessionPolicy``. Server values such as host, port, log
level, question file and report directory are consumed by ``app_main``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from proctor_app.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from proctor_app.constants.session_constants import (
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_EXECUTION_TIMEOUT_SECONDS,
    DEFAULT_VALIDATION_TIMEOUT_SECONDS,
    DEFAULT_VIOLATION_THRESHOLD,
    RECORDING_CHUNK_SECONDS,
    RECORDING_MAX_CHUNKS,
)
from proctor_app.core.session_policy import SessionPolicy, TimePolicy


class ProctorSettings(BaseSettings):
    """Server and session settings read from the environment."""

    model_config = SettingsConfigDict(
        env_prefix="PROCTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    question_file: Path | None = None
    report_dir: Path | None = None

    # Session rules
    violation_threshold: int = Field(default=DEFAULT_VIOLATION_THRESHOLD, gt=0)
    time_policy: TimePolicy = TimePolicy.SESSION
    require_media: bool = False
    require_fullscreen: bool = False
    debounce_seconds: float = Field(default=DEFAULT_DEBOUNCE_SECONDS, ge=0)

    # Collaborator timeouts
    execution_timeout: float = Field(default=DEFAULT_EXECUTION_TIMEOUT_SECONDS, gt=0)
    validation_timeout: float = Field(default=DEFAULT_VALIDATION_TIMEOUT_SECONDS, gt=0)

    # Recording buffer
    recording_chunk_seconds: int = Field(default=RECORDING_CHUNK_SECONDS, gt=0)
    recording_max_chunks: int = Field(default=RECORDING_MAX_CHUNKS, gt=0)

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value

    def build_policy(self) -> SessionPolicy:
        return SessionPolicy(
            violation_threshold=self.violation_threshold,
            time_policy=self.time_policy,
            require_media=self.require_media,
            require_fullscreen=self.require_fullscreen,
            debounce_seconds=self.debounce_seconds,
            execution_timeout_seconds=self.execution_timeout,
            validation_timeout_seconds=self.validation_timeout,
            recording_chunk_seconds=self.recording_chunk_seconds,
            recording_max_chunks=self.recording_max_chunks,
        )
