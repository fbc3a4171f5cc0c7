"""Unified configuration schema for il_sync.

Defines Pydantic models for the config file structure with dedicated
sections for synchronisation and logging.

Usage:
    from il_sync.config_schema import UnifiedConfig, build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=unified.sync.model_dump())
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class SyncSection(BaseModel):
    """Sync settings.

    Every field is optional to support zero-config: env vars and CLI args
    can supply the connection values at runtime instead.
    """

    root: str | None = Field(default=None, description="Local sync root")
    server_url: str | None = Field(default=None, description="Document store URL")
    auth_token: str | None = Field(default=None, description="Sync token")
    last_sync_at: str = Field(default="", description="Sync cursor")
    blob_host: str = Field(
        default="blob.vercel-storage.com",
        description="Host serving uploaded images",
    )
    document_extensions: list[str] = Field(
        default_factory=lambda: [".md"],
        description="File suffixes synced as documents",
    )
    debounce_seconds: float = Field(default=3.0, gt=0)
    pull_interval_seconds: float = Field(default=30.0, gt=0)
    timeout_seconds: float = Field(default=60.0, gt=0)
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )

    model_config = {"frozen": True}

    @field_validator("last_sync_at", mode="before")
    @classmethod
    def _cursor_none_to_empty(cls, v):
        return "" if v is None else str(v)

    @field_validator("document_extensions")
    @classmethod
    def _normalise_extensions(cls, v: list[str]) -> list[str]:
        return [e.lower() if e.startswith(".") else f".{e.lower()}" for e in v]


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` is always valid.
    """

    sync: SyncSection = Field(default_factory=SyncSection)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults; unknown top-level keys are ignored.
    """
    if not raw_data:
        return UnifiedConfig()

    known = {k: v for k, v in raw_data.items() if k in UnifiedConfig.model_fields}
    ignored = sorted(set(raw_data) - set(known))
    if ignored:
        logger.debug("Ignoring unknown config sections: %s", ", ".join(ignored))
    return UnifiedConfig(**{k: v for k, v in known.items() if v is not None})
