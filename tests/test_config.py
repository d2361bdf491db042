from __future__ import annotations

import pytest

from httpdispatch.config import DispatchSettings
from httpdispatch.exceptions import DispatchValidationError
from httpdispatch.request_options import LogLevel


def test_defaults() -> None:
    settings = DispatchSettings()

    assert settings.max_retries == 0
    assert settings.retry_wait == 0.0
    assert settings.timeout is None
    assert settings.log_level is LogLevel.NONE
    assert settings.log_transport is False
    assert settings.headers == {}


def test_from_env_reads_prefixed_values() -> None:
    settings = DispatchSettings.from_env(
        environ={
            "HTTPDISPATCH_MAX_RETRIES": "3",
            "HTTPDISPATCH_RETRY_WAIT": "0.25",
            "HTTPDISPATCH_TIMEOUT": "10",
            "HTTPDISPATCH_LOG_LEVEL": "body",
            "HTTPDISPATCH_LOG_TRANSPORT": "true",
            "UNRELATED": "x",
        }
    )

    assert settings.max_retries == 3
    assert settings.retry_wait == 0.25
    assert settings.timeout == 10.0
    assert settings.log_level is LogLevel.BODY
    assert settings.log_transport is True


def test_from_env_ignores_blank_values() -> None:
    settings = DispatchSettings.from_env(environ={"HTTPDISPATCH_TIMEOUT": "  "})

    assert settings.timeout is None


def test_from_env_reads_process_environment(monkeypatch) -> None:
    monkeypatch.setenv("APP_MAX_RETRIES", "2")

    assert DispatchSettings.from_env(prefix="APP_").max_retries == 2


@pytest.mark.parametrize(
    "environ",
    [
        {"HTTPDISPATCH_MAX_RETRIES": "-1"},
        {"HTTPDISPATCH_TIMEOUT": "0"},
        {"HTTPDISPATCH_RETRY_WAIT": "soon"},
        {"HTTPDISPATCH_LOG_LEVEL": "verbose"},
    ],
)
def test_invalid_env_values_raise(environ: dict[str, str]) -> None:
    with pytest.raises(DispatchValidationError, match="Invalid dispatch settings"):
        DispatchSettings.from_env(environ=environ)


def test_settings_are_frozen() -> None:
    settings = DispatchSettings()

    with pytest.raises(Exception):
        settings.max_retries = 5


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("none", LogLevel.NONE), ("Basic", LogLevel.BASIC), (" BODY ", LogLevel.BODY), ("2", LogLevel.BODY), (1, LogLevel.BASIC)],
)
def test_log_level_parse(raw: str | int, expected: LogLevel) -> None:
    assert LogLevel.parse(raw) is expected


def test_log_levels_are_ordered() -> None:
    assert LogLevel.NONE < LogLevel.BASIC < LogLevel.BODY
