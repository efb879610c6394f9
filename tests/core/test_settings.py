from __future__ import annotations

import pytest

from mcp_log_ingest_server.core.settings import (
    MAX_WORKERS_ENV,
    SAMPLE_LINES_ENV,
    TAIL_MAX_POLL_ENV,
    TAIL_POLL_ENV,
    IngestSettings,
    resolve_settings,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (MAX_WORKERS_ENV, SAMPLE_LINES_ENV, TAIL_POLL_ENV, TAIL_MAX_POLL_ENV):
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_env() -> None:
    assert resolve_settings() == IngestSettings()


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(MAX_WORKERS_ENV, "4")
    monkeypatch.setenv(SAMPLE_LINES_ENV, "50")
    monkeypatch.setenv(TAIL_POLL_ENV, "0.5")
    monkeypatch.setenv(TAIL_MAX_POLL_ENV, "5")
    cfg = resolve_settings()
    assert cfg == IngestSettings(max_workers=4, sample_lines=50, tail_poll_seconds=0.5, tail_max_poll_seconds=5.0)


@pytest.mark.parametrize(
    ("name", "value"),
    [
        (MAX_WORKERS_ENV, "many"),
        (MAX_WORKERS_ENV, "0"),
        (SAMPLE_LINES_ENV, "-1"),
        (TAIL_POLL_ENV, "fast"),
        (TAIL_POLL_ENV, "0"),
    ],
)
def test_invalid_env_values(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=name):
        resolve_settings()


def test_max_poll_must_not_be_below_poll(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(TAIL_POLL_ENV, "3")
    monkeypatch.setenv(TAIL_MAX_POLL_ENV, "1")
    with pytest.raises(ValueError):
        resolve_settings()
