"""Tests for the command line interface."""

import json

import pytest

from conftest import CC_ID_1, CC_ID_2, CX_ID_1, CX_ID_2
from session_catalog.config import SCHEMA_VERSION
from session_catalog.main import main


@pytest.fixture
def run(populated_home, config, capsys):
    def invoke(*argv):
        code = main(list(argv), config=config)
        return code, capsys.readouterr().out
    return invoke


class TestCli:
    """Smoke tests for each subcommand."""

    def test_list_json(self, run):
        code, out = run("list", "--json")
        assert code == 0
        data = json.loads(out)
        assert [(d["source"], d["id"]) for d in data][:2] == [("codex", CX_ID_2), ("claudecode", CC_ID_2)]
        assert len(data) == 4

    def test_list_by_source(self, run):
        code, out = run("list", "--source", "codex", "--json")
        assert code == 0
        assert {d["source"] for d in json.loads(out)} == {"codex"}

    def test_default_command_is_list(self, run):
        code, out = run()
        assert code == 0
        assert "codex" in out

    def test_unknown_source(self, run):
        code, out = run("list", "--source", "gemini")
        assert code == 2
        assert "unknown session source" in out

    def test_resume_json(self, run):
        code, out = run("resume", CX_ID_1[:12], "--json")
        assert code == 0
        data = json.loads(out)
        assert data["arguments"] == ["resume", CX_ID_1]
        assert data["model_flag"] == ["-m", "gpt-5.3-codex"]
        assert data["reasoning_effort_flag"] == ["-c", 'model_reasoning_effort="high"']
        assert data["working_directory"] == "/tmp/demo"

    def test_resume_ambiguous_prefix(self, run):
        code, out = run("resume", "019c24fb")
        assert code == 1
        assert "Ambiguous" in out

    def test_resume_unknown(self, run):
        code, out = run("resume", "ffffffff")
        assert code == 1
        assert "No session matches" in out

    def test_show(self, run):
        code, out = run("show", CC_ID_1)
        assert code == 0
        assert "build the login form" in out
        assert "React login form" in out

    def test_search(self, run):
        code, out = run("search", "pagination")
        assert code == 0
        assert "1 match(es)" in out
        assert "pagination" in out

    def test_search_invalid_pattern(self, run):
        code, out = run("search", "(oops")
        assert code == 2
        assert "invalid regex" in out

    def test_stats(self, run):
        code, out = run("stats", "--days", "3")
        assert code == 0
        assert "CLAUDE CODE:" in out
        assert "CODEX:" in out
        assert "gpt-5.3-codex" in out

    def test_cache_info_and_clear(self, run, config):
        run("list")
        code, out = run("cache", "info")
        assert code == 0
        assert f"Schema version: {SCHEMA_VERSION}" in out

        code, out = run("cache", "clear")
        assert code == 0
        assert not config.cache_path.exists()

    def test_version(self, run):
        code, out = run("--version")
        assert code == 0
        assert "session-catalog" in out
