"""
Runtime configuration for the memory store.

Values are resolved in this order (later wins):

1. built-in defaults
2. the ``memory:`` section of ``config.yaml`` at the project root
3. environment variables (``.env`` is loaded first via python-dotenv)

    MEMORY_DB_PATH=data/memory.db
    MEMORY_JOURNAL_MODE=WAL
    MEMORY_LOG_LEVEL=INFO
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_CONFIG = _PROJECT_ROOT / "config.yaml"
_DEFAULT_DB = _PROJECT_ROOT / "data" / "memory.db"

_JOURNAL_MODES = {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"}


class MemoryConfig(BaseModel):
    """Settings consumed by ``SQLiteMemoryStore``."""

    db_path: Path = Field(default=_DEFAULT_DB, description="SQLite database file")
    journal_mode: str = Field(default="WAL", description="PRAGMA journal_mode value")
    log_level: str = Field(default="INFO", description="Level for the store logger")

    @field_validator("journal_mode")
    @classmethod
    def _check_journal_mode(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in _JOURNAL_MODES:
            raise ValueError(f"Unsupported journal_mode: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("db_path")
    @classmethod
    def _resolve_path(cls, v: Path) -> Path:
        # relative paths are anchored at the project root, not the cwd
        return v if v.is_absolute() else _PROJECT_ROOT / v


def load_config(path: Optional[Path] = None) -> MemoryConfig:
    """
    Build a ``MemoryConfig`` from config.yaml and the environment.

    Parameters
    ----------
    path : Path, optional
        YAML file to read instead of the project-level ``config.yaml``.
        A missing file is not an error; defaults are used.
    """
    load_dotenv()

    cfg_path = Path(path) if path else _DEFAULT_CONFIG
    values: dict = {}
    if cfg_path.exists():
        with open(cfg_path) as f:
            values = dict((yaml.safe_load(f) or {}).get("memory") or {})

    env_map = {
        "MEMORY_DB_PATH": "db_path",
        "MEMORY_JOURNAL_MODE": "journal_mode",
        "MEMORY_LOG_LEVEL": "log_level",
    }
    for env_key, field in env_map.items():
        value = os.getenv(env_key, "").strip()
        if value:
            values[field] = value

    return MemoryConfig(**values)
