"""Unit tests for polytext.cli — CLI command parsing and execution."""

import json

import pytest

import polytext.cli as cli_mod


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    """File-backed SQLite database; the CLI opens its own engine per command."""
    monkeypatch.chdir(tmp_path)
    return f"sqlite:///{tmp_path / 'cli.db'}"


def _run(db_url, *argv):
    return cli_mod.main(["--db-url", db_url, *argv])


class TestCLIParsing:

    def test_module_has_expected_commands(self):
        for name in ("cmd_init", "cmd_list", "cmd_set", "cmd_delete"):
            assert hasattr(cli_mod, name)

    def test_no_command_prints_help(self, capsys):
        assert cli_mod.main([]) == 0
        assert "usage: polytext" in capsys.readouterr().out


class TestCommands:

    def test_init(self, db_url, capsys):
        assert _run(db_url, "init") == 0
        assert "[OK] Translation table ready" in capsys.readouterr().out

    def test_set_and_list(self, db_url, capsys):
        _run(db_url, "init")
        assert _run(db_url, "set", "articles", "1", "title", "de", "Hallo") == 0
        assert _run(db_url, "set", "articles", "1", "title", "en", "Hello") == 0
        capsys.readouterr()

        assert _run(db_url, "list", "articles", "1", "--json") == 0
        rows = json.loads(capsys.readouterr().out)
        assert [(r["locale"], r["text"]) for r in rows] == [("de", "Hallo"), ("en", "Hello")]

    def test_list_filters(self, db_url, capsys):
        _run(db_url, "init")
        _run(db_url, "set", "articles", "1", "title", "de", "Hallo")
        _run(db_url, "set", "articles", "1", "body", "de", "Text")
        capsys.readouterr()

        _run(db_url, "list", "articles", "1", "--key", "body")
        out = capsys.readouterr().out
        assert "Text" in out
        assert "Hallo" not in out
        assert "1 translation(s)" in out

    def test_list_empty(self, db_url, capsys):
        _run(db_url, "init")
        capsys.readouterr()
        assert _run(db_url, "list", "articles", "9") == 0
        assert "No translations for articles:9" in capsys.readouterr().out

    def test_set_empty_removes(self, db_url, capsys):
        _run(db_url, "init")
        _run(db_url, "set", "articles", "1", "title", "de", "Hallo")
        assert _run(db_url, "set", "articles", "1", "title", "de", "") == 0
        assert "removed" in capsys.readouterr().out

        _run(db_url, "list", "articles", "1", "--json")
        assert json.loads(capsys.readouterr().out) == []

    def test_set_rejects_long_locale(self, db_url, capsys):
        _run(db_url, "init")
        assert _run(db_url, "set", "articles", "1", "title", "de-DE-x", "Hallo") == 1
        assert "[ERROR]" in capsys.readouterr().out

    def test_delete(self, db_url, capsys):
        _run(db_url, "init")
        _run(db_url, "set", "articles", "1", "title", "de", "Hallo")
        assert _run(db_url, "delete", "articles", "1", "title", "de") == 0
        assert _run(db_url, "delete", "articles", "1", "title", "de") == 1
        assert "[WARN]" in capsys.readouterr().out

    def test_invalid_config(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "translatable.yaml").write_text(
            "translatable:\n  empty_value_policy: never\n", encoding="utf-8"
        )
        assert cli_mod.main(["init"]) == 1
        assert "Invalid configuration" in capsys.readouterr().out
