"""
Settings - runtime configuration for userlog

One validated model holds every knob: where the database lives, the default
read window, and how the process logs and listens. Values come from keyword
arguments in code and tests, or from USERLOG_* environment variables.
"""

import os
from datetime import timedelta
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

from userlog.kernel.logging import is_production

ENV_PREFIX = "USERLOG_"


class Settings(BaseModel):
    """
    userlog configuration

    The read-window defaults mirror what the event listing endpoints have
    always served: the last hour, twenty events at a time.
    """

    db_path: Path = Field(
        default=Path(".userlog.db"),
        description="Path to the SQLite database file",
    )

    default_window_seconds: int = Field(
        default=3600,
        ge=1,
        description="How far back event listings reach when no cursor is given",
    )

    default_limit: int = Field(
        default=20,
        ge=1,
        description="Page size for event listings when no limit is given",
    )

    max_limit: int = Field(
        default=1000,
        ge=1,
        description="Largest page size a caller may request",
    )

    busy_timeout_ms: int = Field(
        default=5000,
        ge=0,
        description="How long a connection waits on a locked database",
    )

    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )

    json_logs: bool = Field(
        default=False,
        description="Emit JSON log lines instead of console output",
    )

    http_host: str = Field(default="0.0.0.0")
    http_port: int = Field(default=5000, ge=1, le=65535)
    metrics_port: int | None = Field(
        default=None,
        ge=1,
        le=65535,
        description="Serve Prometheus metrics on this port (disabled if None)",
    )

    @model_validator(mode="after")
    def _check_limits(self) -> "Settings":
        if self.default_limit > self.max_limit:
            raise ValueError(
                f"default_limit {self.default_limit} exceeds max_limit {self.max_limit}"
            )
        return self

    @property
    def default_window(self) -> timedelta:
        return timedelta(seconds=self.default_window_seconds)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: object) -> "Settings":
        """
        Build settings from USERLOG_* environment variables

        USERLOG_DB_PATH maps to db_path, USERLOG_HTTP_PORT to http_port, and
        so on. Explicit keyword overrides win over the environment. With
        ENVIRONMENT=production, JSON logs are the default.

        Args:
            environ: Mapping to read from (defaults to os.environ)
            **overrides: Field values that take precedence

        Returns:
            Validated Settings
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        if "json_logs" not in values and is_production():
            values["json_logs"] = True
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)
