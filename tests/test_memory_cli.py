"""Unit tests for src/memory/cli.py"""
from __future__ import annotations
import json
from unittest.mock import MagicMock
import pytest

from src.memory import ContextItem, HistoryEntry, Message, SQLiteMemoryStore
from src.memory.cli import main


@pytest.fixture
def db(tmp_path):
    path = tmp_path / "memory.db"
    with SQLiteMemoryStore(db_path=path, logger=MagicMock()) as store:
        store.create_conversation("alice-telegram", metadata={"lang": "en"})
        store.create_conversation("bob-discord")
        store.store_context(ContextItem(id="c1", type="pdf", content="text"), "alice-telegram")
        store.store_message(Message(id="m1", role="user", content="hi", timestamp=100), "alice-telegram")
        store.store_message(Message(id="m2", role="assistant", content="hello", timestamp=200), "alice-telegram")
        store.store_history(HistoryEntry(id="h1", type="note", content="a"), "alice-telegram")
    return path


def _run(capsys, *argv):
    code = main(list(argv))
    out = capsys.readouterr()
    return code, out


class TestCli:

    def test_check(self, capsys, db):
        code, out = _run(capsys, "--db", str(db), "check")
        assert code == 0
        assert json.loads(out.out)["status"] == "healthy"

    def test_list_filters_platform(self, capsys, db):
        code, out = _run(capsys, "--db", str(db), "list", "--platform", "discord")
        assert code == 0
        rows = json.loads(out.out)
        assert [r["id"] for r in rows] == ["bob-discord"]

    def test_show_with_limit(self, capsys, db):
        code, out = _run(capsys, "--db", str(db), "show", "alice-telegram", "--limit", "1")
        assert code == 0
        conv = json.loads(out.out)
        assert [m["id"] for m in conv["messages"]] == ["m2"]
        assert conv["metadata"] == {"lang": "en"}

    def test_show_missing_conversation_fails(self, capsys, db):
        code, out = _run(capsys, "--db", str(db), "show", "nobody-nowhere")
        assert code == 1
        assert "not found" in out.err

    def test_show_non_positive_limit_fails(self, capsys, db):
        for limit in ("0", "-3"):
            code, out = _run(capsys, "--db", str(db), "show", "alice-telegram", "--limit", limit)
            assert code == 1
            assert out.err.startswith("error:")
            assert "limit" in out.err

    def test_delete_then_history_kept(self, capsys, db):
        code, _ = _run(capsys, "--db", str(db), "delete", "alice-telegram")
        assert code == 0
        code, out = _run(capsys, "--db", str(db), "history", "alice-telegram")
        assert code == 0
        assert len(json.loads(out.out)) == 1

    def test_delete_history(self, capsys, db):
        code, out = _run(capsys, "--db", str(db), "delete-history", "alice-telegram")
        assert code == 0
        assert json.loads(out.out)["removed"] == 1

    def test_requires_command(self, db):
        with pytest.raises(SystemExit):
            main(["--db", str(db)])
