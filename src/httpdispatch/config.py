"""Dispatcher-wide defaults, optionally read from the environment."""

from __future__ import annotations

import os
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import DispatchValidationError
from .request_options import LogLevel

ENV_PREFIX = "HTTPDISPATCH_"

_ENV_FIELDS = ("max_retries", "retry_wait", "timeout", "log_level", "log_transport")


class DispatchSettings(BaseModel):
    """Defaults applied to every call whose :class:`RequestOptions` leaves a field unset."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_retries: int = Field(default=0, ge=0)
    retry_wait: float = Field(default=0.0, ge=0)
    timeout: float | None = Field(default=None, gt=0)
    log_level: LogLevel = LogLevel.NONE
    log_transport: bool = False
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("log_level", mode="before")
    @classmethod
    def _parse_log_level(cls, value: Any) -> LogLevel:
        return LogLevel.parse(value)

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX, environ: Mapping[str, str] | None = None) -> DispatchSettings:
        """Read ``<prefix>MAX_RETRIES``, ``RETRY_WAIT``, ``TIMEOUT``, ``LOG_LEVEL`` and ``LOG_TRANSPORT``."""
        env = os.environ if environ is None else environ
        values: dict[str, str] = {}
        for name in _ENV_FIELDS:
            raw = env.get(f"{prefix}{name.upper()}")
            if raw is None or not raw.strip():
                continue
            values[name] = raw.strip()
        return cls.build(**values)

    @classmethod
    def build(cls, **values: Any) -> DispatchSettings:
        try:
            return cls(**values)
        except ValidationError as exc:
            raise DispatchValidationError(f"Invalid dispatch settings: {exc}", cause=exc) from exc
