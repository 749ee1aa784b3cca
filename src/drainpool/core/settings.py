"""Pool settings loaded from the environment.

``PoolSettings`` gathers every knob of a coordination episode so that
services embedding drainpool configure it the same way: ``DRAINPOOL_``
environment variables, an optional ``.env`` file, validated at startup.

Examples:
    >>> import os
    >>> os.environ["DRAINPOOL_WORKER_COUNT"] = "8"
    >>> PoolSettings().worker_count
    8
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PoolSettings(BaseSettings):
    """Settings for one worker pool.

    Fields
    ──────
    worker_count     : Number of concurrent workers per episode
    policy           : ``structured`` (fail-fast) or ``unstructured`` (fan-out/join)
    join             : Unstructured join mode
    deadline_seconds : Optional per-episode deadline (structured policy only)
    queue_maxsize    : Work queue capacity, 0 for unbounded
    log_level        : Structlog log level
    log_json         : Force JSON (True) or console (False) rendering, auto if unset
    database_url     : URL for the SQL resource provider
    """

    model_config = SettingsConfigDict(
        env_prefix="DRAINPOOL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Coordination ─────────────────────────────────────────────
    worker_count: int = Field(default=3, ge=1)
    policy: Literal["structured", "unstructured"] = "structured"
    join: Literal["first_failure", "all_outcomes", "detached"] = "first_failure"
    deadline_seconds: float | None = Field(default=None, gt=0)
    queue_maxsize: int = Field(default=0, ge=0)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    # ── Storage ──────────────────────────────────────────────────
    database_url: str = "sqlite:///drainpool.db"
