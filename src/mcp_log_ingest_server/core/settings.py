"""Environment-driven settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

MAX_WORKERS_ENV = "LOG_INGEST_MAX_WORKERS"
SAMPLE_LINES_ENV = "LOG_INGEST_SAMPLE_LINES"
TAIL_POLL_ENV = "LOG_INGEST_TAIL_POLL_SECONDS"
TAIL_MAX_POLL_ENV = "LOG_INGEST_TAIL_MAX_POLL_SECONDS"


@dataclass(frozen=True, slots=True)
class IngestSettings:
    max_workers: int = 1
    sample_lines: int = 20
    tail_poll_seconds: float = 0.25
    tail_max_poll_seconds: float = 2.0


def _env_int(name: str, *, minimum: int) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _env_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if value <= 0:
        raise ValueError(f"{name} must be > 0")
    return value


def resolve_settings(base: IngestSettings | None = None) -> IngestSettings:
    """Return settings with environment overrides applied."""
    cfg = base or IngestSettings()
    overrides: dict[str, object] = {}

    workers = _env_int(MAX_WORKERS_ENV, minimum=1)
    if workers is not None:
        overrides["max_workers"] = workers
    sample = _env_int(SAMPLE_LINES_ENV, minimum=1)
    if sample is not None:
        overrides["sample_lines"] = sample
    poll = _env_float(TAIL_POLL_ENV)
    if poll is not None:
        overrides["tail_poll_seconds"] = poll
    max_poll = _env_float(TAIL_MAX_POLL_ENV)
    if max_poll is not None:
        overrides["tail_max_poll_seconds"] = max_poll

    if not overrides:
        return cfg
    cfg = replace(cfg, **overrides)
    if cfg.tail_max_poll_seconds < cfg.tail_poll_seconds:
        raise ValueError(f"{TAIL_MAX_POLL_ENV} must be >= {TAIL_POLL_ENV}")
    return cfg
