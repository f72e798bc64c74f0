"""Tests for the command line interface."""

import json
from unittest.mock import patch

import pytest
import yaml

from codeflow.__main__ import main


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    """Offline config for an authenticated user."""
    monkeypatch.delenv("CODEFLOW_REMOTE_URL", raising=False)
    monkeypatch.delenv("CODEFLOW_USER_ID", raising=False)
    monkeypatch.delenv("CODEFLOW_DB_PATH", raising=False)

    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "user": {"user_id": "alice-uid", "display_name": "Alice"},
                "storage": {"db_path": str(tmp_path / "local.db")},
            }
        )
    )
    return path


@pytest.fixture
def source(tmp_path):
    path = tmp_path / "hello.py"
    path.write_text("print('hello')\n")
    return path


def run(config_path, *argv) -> int:
    with patch("sys.argv", ["codeflow", "-c", str(config_path), *argv]):
        return main()


class TestCommitCommands:
    def test_commit_and_log(self, config_path, source, capsys):
        assert run(config_path, "commit", str(source), "-m", "first") == 0
        capsys.readouterr()

        assert run(config_path, "log", "--json") == 0
        commits = json.loads(capsys.readouterr().out)

        assert [c["message"] for c in commits] == ["first"]
        assert commits[0]["language"] == "Python"
        assert commits[0]["author"] == "Alice"
        assert commits[0]["sync_status"] == "local_only"

    def test_unchanged_code_not_committed(self, config_path, source, capsys):
        run(config_path, "commit", str(source), "-m", "first")

        assert run(config_path, "commit", str(source), "-m", "again") == 1
        assert "Nothing to commit" in capsys.readouterr().out
        assert run(config_path, "commit", str(source), "-m", "again", "--allow-empty") == 0

    def test_empty_message_is_an_error(self, config_path, source, capsys):
        assert run(config_path, "commit", str(source), "-m", "  ") == 1
        assert "Error" in capsys.readouterr().err

    def test_unknown_extension_needs_language(self, config_path, tmp_path, capsys):
        path = tmp_path / "notes.txt"
        path.write_text("x")

        assert run(config_path, "commit", str(path), "-m", "m") == 1
        assert run(config_path, "commit", str(path), "-m", "m", "-l", "Go") == 0

    def test_checkout(self, config_path, source, tmp_path, capsys):
        run(config_path, "commit", str(source), "-m", "first")
        capsys.readouterr()
        run(config_path, "log", "--json")
        commit_id = json.loads(capsys.readouterr().out)[0]["id"]
        target = tmp_path / "restored.py"

        assert run(config_path, "checkout", commit_id[:8], "-o", str(target)) == 0
        assert target.read_text() == "print('hello')\n"

    def test_push_without_remote_fails(self, config_path, source, capsys):
        run(config_path, "commit", str(source), "-m", "first")

        assert run(config_path, "push") == 1
        assert "No remote store configured" in capsys.readouterr().out

    def test_status_json(self, config_path, source, capsys):
        run(config_path, "commit", str(source), "-m", "first")
        capsys.readouterr()

        assert run(config_path, "status", "--json") == 0
        status = json.loads(capsys.readouterr().out)

        assert status["identity"]["guest"] is False
        assert status["remote"]["url"] is None
        assert status["commits"]["pending_commits"] == 1


class TestHistoryCommands:
    def test_save_and_list_offline(self, config_path, source, capsys):
        assert run(config_path, "history", "save", str(source), "--title", "hi") == 0
        capsys.readouterr()

        assert run(config_path, "history", "list", "--json") == 0
        records = json.loads(capsys.readouterr().out)

        assert len(records) == 1
        assert records[0]["id"].startswith("local-")
        assert records[0]["title"] == "hi"

    def test_clear(self, config_path, source, capsys):
        run(config_path, "history", "save", str(source))

        assert run(config_path, "history", "clear") == 0
        assert "Cleared 1" in capsys.readouterr().out

    def test_history_requires_subcommand(self, config_path):
        assert run(config_path, "history") == 1


def test_no_command_prints_help(config_path, capsys):
    assert run(config_path) == 1
    assert "usage" in capsys.readouterr().out
