"""Unit tests for src/utils/config.py, logging.py and tracing.py"""
from __future__ import annotations
import logging
from pathlib import Path
from unittest.mock import patch
import pytest

_NO_MEMORY_ENV = {"MEMORY_DB_PATH": "", "MEMORY_JOURNAL_MODE": "", "MEMORY_LOG_LEVEL": ""}


# ══════════════════════════════════════════════════════════════════════════════
# Config
# ══════════════════════════════════════════════════════════════════════════════

class TestLoadConfig:

    @patch("src.utils.config.load_dotenv")
    @patch.dict("os.environ", _NO_MEMORY_ENV, clear=False)
    def test_defaults_when_file_missing(self, _dotenv, tmp_path):
        from src.utils.config import load_config
        cfg = load_config(tmp_path / "missing.yaml")
        assert cfg.journal_mode == "WAL"
        assert cfg.log_level == "INFO"
        assert cfg.db_path.name == "memory.db"
        assert cfg.db_path.is_absolute()

    @patch("src.utils.config.load_dotenv")
    @patch.dict("os.environ", _NO_MEMORY_ENV, clear=False)
    def test_reads_yaml_section(self, _dotenv, tmp_path):
        from src.utils.config import load_config
        cfg_file = tmp_path / "config.yaml"
        db = tmp_path / "custom.db"
        cfg_file.write_text(f"memory:\n  db_path: {db}\n  journal_mode: delete\n  log_level: debug\n")
        cfg = load_config(cfg_file)
        assert cfg.db_path == db
        assert cfg.journal_mode == "DELETE"
        assert cfg.log_level == "DEBUG"

    @patch("src.utils.config.load_dotenv")
    def test_env_overrides_yaml(self, _dotenv, tmp_path):
        from src.utils.config import load_config
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("memory:\n  journal_mode: DELETE\n")
        env = {"MEMORY_DB_PATH": str(tmp_path / "env.db"), "MEMORY_JOURNAL_MODE": "WAL", "MEMORY_LOG_LEVEL": ""}
        with patch.dict("os.environ", env, clear=False):
            cfg = load_config(cfg_file)
        assert cfg.db_path == tmp_path / "env.db"
        assert cfg.journal_mode == "WAL"

    @patch("src.utils.config.load_dotenv")
    @patch.dict("os.environ", _NO_MEMORY_ENV, clear=False)
    def test_relative_path_anchored_at_project_root(self, _dotenv, tmp_path):
        from src.utils.config import load_config
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("memory:\n  db_path: data/other.db\n")
        cfg = load_config(cfg_file)
        root = Path(__file__).resolve().parents[1]
        assert cfg.db_path == root / "data" / "other.db"

    @patch("src.utils.config.load_dotenv")
    @patch.dict("os.environ", _NO_MEMORY_ENV, clear=False)
    def test_empty_yaml_uses_defaults(self, _dotenv, tmp_path):
        from src.utils.config import load_config
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("")
        assert load_config(cfg_file).journal_mode == "WAL"

    def test_invalid_journal_mode_rejected(self):
        from src.utils.config import MemoryConfig
        with pytest.raises(ValueError):
            MemoryConfig(journal_mode="sideways")

    def test_store_uses_config_journal_mode(self, tmp_path):
        from src.memory import SQLiteMemoryStore
        from src.utils.config import MemoryConfig
        cfg = MemoryConfig(db_path=tmp_path / "memory.db", journal_mode="DELETE")
        with SQLiteMemoryStore(config=cfg) as store:
            mode = store._conn.execute("PRAGMA journal_mode").fetchone()[0]
            assert store.db_path == tmp_path / "memory.db"
        assert mode.upper() == "DELETE"


# ══════════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════════

class TestGetLogger:

    def test_single_handler(self):
        from src.utils.logging import get_logger
        a = get_logger("tests.memory.single")
        b = get_logger("tests.memory.single")
        assert a is b
        assert len(a.handlers) == 1

    def test_level_by_name(self):
        from src.utils.logging import get_logger
        assert get_logger("tests.memory.named", "debug").level == logging.DEBUG

    def test_unknown_level_name_falls_back_to_info(self):
        from src.utils.logging import get_logger
        assert get_logger("tests.memory.unknown", "chatty").level == logging.INFO


# ══════════════════════════════════════════════════════════════════════════════
# Tracing
# ══════════════════════════════════════════════════════════════════════════════

class TestTraceable:

    @patch.dict("os.environ", {"LANGCHAIN_TRACING_V2": "", "LANGCHAIN_API_KEY": ""}, clear=False)
    def test_noop_when_disabled(self):
        from src.utils.tracing import traceable

        def fn(x):
            return x * 2

        assert traceable(name="double")(fn) is fn

    @patch.dict("os.environ", {"LANGCHAIN_TRACING_V2": "true", "LANGCHAIN_API_KEY": ""}, clear=False)
    def test_requires_api_key(self):
        from src.utils.tracing import _tracing_enabled
        assert _tracing_enabled() is False

    @patch.dict("os.environ", {"LANGCHAIN_TRACING_V2": "true", "LANGCHAIN_API_KEY": "ls__test"}, clear=False)
    def test_enabled_with_key(self):
        from src.utils.tracing import _tracing_enabled
        assert _tracing_enabled() is True
