"""Engine configuration.

Settings come from three places, later ones winning:

1. dataclass defaults
2. a YAML file (``EngineConfig.from_file``)
3. ``EXQL_*`` environment variables (``EngineConfig.from_env``)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

DEFAULT_EXTRACTOR_ORDER: tuple[str, ...] = (
    "deadline",
    "name",
    "time",
    "location",
    "numeric",
    "status",
    "relationship",
)

ENV_PREFIX = "EXQL_"

# Bounds for list row caps.
MIN_LIST_LIMIT = 20
MAX_LIST_LIMIT = 50


@dataclass(frozen=True)
class EngineConfig:
    """Configuration for the query engine and its collaborators."""

    # Storage
    db_path: str = "./data/exchangeql.duckdb"
    learning_path: str = "./data/query-learning.json"

    # Learning store
    flush_every: int = 10
    max_successful_history: int = 1000
    max_failed_history: int = 500

    # Result cache
    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 256

    # Synthesis
    list_limit: int = 25
    max_list_limit: int = 50

    # Execution
    execution_timeout_seconds: float = 10.0
    privileged_enabled: bool = True

    # Schema catalog
    catalog_ttl_seconds: float = 1800.0

    # Extraction
    extractor_order: tuple[str, ...] = field(default=DEFAULT_EXTRACTOR_ORDER)

    def __post_init__(self) -> None:
        if not MIN_LIST_LIMIT <= self.list_limit <= self.max_list_limit <= MAX_LIST_LIMIT:
            raise ValueError(
                f"list_limit and max_list_limit must satisfy {MIN_LIST_LIMIT} <= list_limit <= max_list_limit <= {MAX_LIST_LIMIT}"
            )
        if self.flush_every < 1:
            raise ValueError("flush_every must be at least 1")
        if self.execution_timeout_seconds <= 0:
            raise ValueError("execution_timeout_seconds must be positive")
        unknown = set(self.extractor_order) - set(DEFAULT_EXTRACTOR_ORDER)
        if unknown:
            raise ValueError(f"Unknown extractor(s) in extractor_order: {sorted(unknown)}")

    @classmethod
    def from_mapping(cls, values: dict[str, Any], base: EngineConfig | None = None) -> EngineConfig:
        """Build a config from a plain mapping, coercing strings where needed."""
        base = base or cls()
        known = {f.name: f for f in fields(cls)}
        unknown = set(values) - set(known)
        if unknown:
            raise ValueError(f"Unknown config key(s): {sorted(unknown)}")

        updates = {}
        for name, raw in values.items():
            updates[name] = _coerce(name, raw, getattr(base, name))
        return replace(base, **updates)

    @classmethod
    def from_file(cls, path: str | Path, base: EngineConfig | None = None) -> EngineConfig:
        """Load settings from a YAML file."""
        target = Path(path)
        parsed = yaml.safe_load(target.read_text()) or {}
        if not isinstance(parsed, dict):
            raise ValueError(f"Config file {target} must contain a mapping")
        return cls.from_mapping(parsed, base)

    @classmethod
    def from_env(cls, base: EngineConfig | None = None, environ: dict[str, str] | None = None) -> EngineConfig:
        """Apply ``EXQL_<FIELD>`` environment overrides.

        ``EXQL_CONFIG`` names an optional YAML file that is applied first.
        """
        env = os.environ if environ is None else environ
        config = base or cls()

        config_file = env.get(f"{ENV_PREFIX}CONFIG")
        if config_file:
            config = cls.from_file(config_file, config)

        values = {}
        for f in fields(cls):
            key = f"{ENV_PREFIX}{f.name.upper()}"
            if key in env:
                values[f.name] = env[key]
        if values:
            config = cls.from_mapping(values, config)
        return config


def _coerce(name: str, raw: Any, current: Any) -> Any:
    if isinstance(current, bool):
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, tuple):
        if isinstance(raw, str):
            return tuple(part.strip() for part in raw.split(",") if part.strip())
        return tuple(raw)
    if isinstance(current, str):
        return str(raw)
    raise ValueError(f"Cannot coerce config value for {name!r}")
