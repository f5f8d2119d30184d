"""Tests for search functionality."""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import CC_ID_1, CX_ID_1, CX_ID_2, codex_message, codex_meta, codex_rollout_path, write_jsonl
from session_catalog import search as search_module
from session_catalog.catalog import SessionCatalog
from session_catalog.index import SessionIndex
from session_catalog.models import Session, SessionSource
from session_catalog.search import (
    FullTextCache,
    InvalidSearchPattern,
    SearchEngine,
    matches_filter,
    parse_date_value,
    parse_search_query,
)

BASE_TIME = datetime(2026, 2, 13, 12, 0, tzinfo=timezone.utc)


def _codex_session(tmp_path, n, text="needle in a haystack"):
    session_id = f"019c24fb-0000-7a20-99d0-{n:012d}"
    path = write_jsonl(tmp_path / f"rollout-{session_id}.jsonl", [
        codex_meta(session_id),
        codex_message("user", "unrelated opening"),
        codex_message("assistant", text),
    ])
    return Session(
        id=session_id,
        source=SessionSource.CODEX,
        project_path="/tmp/demo",
        started_at=BASE_TIME + timedelta(minutes=n),
        last_active_at=BASE_TIME + timedelta(minutes=n),
        transcript_ref=str(path),
        display=f"session {n}",
    )


@pytest.fixture
def loaded_index(populated_home, config):
    return SessionCatalog(config).load()


class TestQueryParsing:
    """Tests for search query parsing."""

    def test_simple_query(self):
        query, filters = parse_search_query("authentication")
        assert query == "authentication"
        assert filters == {}

    def test_source_modifier(self):
        query, filters = parse_search_query("source:codex authentication")
        assert query == "authentication"
        assert filters["sources"] == [SessionSource.CODEX]

    def test_short_source_label(self):
        _, filters = parse_search_query("source:cc login")
        assert filters["sources"] == [SessionSource.CLAUDE_CODE]

    def test_unknown_source_matches_nothing(self):
        _, filters = parse_search_query("source:gemini login")
        assert filters["sources"] == []

    def test_multiple_modifiers(self):
        query, filters = parse_search_query("source:claude-code project:webapp React")
        assert query == "React"
        assert filters["sources"] == [SessionSource.CLAUDE_CODE]
        assert filters["project"] == "webapp"

    def test_date_modifiers(self):
        query, filters = parse_search_query("after:7d before:1d auth")
        assert query == "auth"
        assert filters["after"] < filters["before"]


class TestDateParsing:
    """Tests for date value parsing."""

    def test_relative_days(self):
        result = parse_date_value("7d")
        expected = datetime.now().astimezone() - timedelta(days=7)
        assert abs((result - expected).total_seconds()) < 60

    def test_relative_hours(self):
        result = parse_date_value("24h")
        expected = datetime.now().astimezone() - timedelta(hours=24)
        assert abs((result - expected).total_seconds()) < 60

    def test_iso_date_is_local_and_aware(self):
        result = parse_date_value("2024-01-15")
        assert result.tzinfo is not None
        assert (result.year, result.month, result.day) == (2024, 1, 15)

    def test_invalid_date(self):
        assert parse_date_value("not-a-date") is None


class TestSearchEngine:
    """Tests for regex transcript search."""

    def test_finds_matching_line_per_source(self, loaded_index):
        results = SearchEngine(loaded_index).search("pagination")
        assert [r.session_id for r in results] == [CX_ID_1]
        assert results[0].session.source is SessionSource.CODEX
        assert results[0].match_text == "add pagination to the list endpoint"
        assert results[0].role == "user"

    def test_case_insensitive(self, loaded_index):
        results = SearchEngine(loaded_index).search("REACT LOGIN")
        assert [r.session_id for r in results] == [CC_ID_1]

    def test_one_hit_per_session(self, loaded_index):
        results = SearchEngine(loaded_index).search("pagination|offset")
        assert len(results) == 1

    def test_source_scope(self, loaded_index):
        engine = SearchEngine(loaded_index)
        assert engine.search("importer", sources=[SessionSource.CLAUDE_CODE]) == []
        assert [r.session_id for r in engine.search("importer", sources=[SessionSource.CODEX])] == [CX_ID_2]

    def test_project_scope(self, loaded_index):
        results = SearchEngine(loaded_index).search(".", project="importer")
        assert [r.session_id for r in results] == [CX_ID_2]

    def test_invalid_pattern_touches_no_files(self, loaded_index, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("transcript opened")

        monkeypatch.setattr(search_module, "iter_messages", fail)
        with pytest.raises(InvalidSearchPattern):
            SearchEngine(loaded_index).search("(unclosed")

    def test_invalid_pattern_is_value_error(self, loaded_index):
        with pytest.raises(ValueError):
            SearchEngine(loaded_index).search("[a-")

    def test_early_stop_returns_newest(self, tmp_path):
        sessions = [_codex_session(tmp_path, n) for n in range(20)]
        index = SessionIndex({SessionSource.CODEX: sessions})

        results = SearchEngine(index).search("needle", max_results=5)

        assert [r.session_id for r in results] == [s.id for s in reversed(sessions[-5:])]

    def test_early_stop_reads_no_further(self, tmp_path, monkeypatch):
        sessions = [_codex_session(tmp_path, n) for n in range(20)]
        index = SessionIndex({SessionSource.CODEX: sessions})
        opened = []
        real = search_module.iter_messages

        def counting(session, **kwargs):
            opened.append(session.id)
            return real(session, **kwargs)

        monkeypatch.setattr(search_module, "iter_messages", counting)
        SearchEngine(index).search("needle", max_results=5)
        assert len(opened) == 5

    def test_unreadable_transcript_is_skipped(self, tmp_path, monkeypatch):
        sessions = [_codex_session(tmp_path, n) for n in range(3)]
        index = SessionIndex({SessionSource.CODEX: sessions})
        broken = sessions[2].id
        real = search_module.iter_messages

        def flaky(session, **kwargs):
            if session.id == broken:
                raise PermissionError("denied")
            return real(session, **kwargs)

        monkeypatch.setattr(search_module, "iter_messages", flaky)
        engine = SearchEngine(index)
        results = engine.search("needle")

        assert [r.session_id for r in results] == [sessions[1].id, sessions[0].id]
        assert engine.skipped == [broken]

    def test_query_with_modifiers(self, loaded_index):
        engine = SearchEngine(loaded_index)
        assert [r.session_id for r in engine.query("source:codex profile")] == [CX_ID_2]
        assert engine.query("source:cc profile") == []
        assert engine.query("source:unknown profile") == []
        assert engine.query("source:codex") == []

    def test_shared_rollout_matches_only_the_owning_session(self, home, config):
        write_jsonl(codex_rollout_path(home, CX_ID_1), [
            codex_meta(CX_ID_1),
            codex_message("user", "alpha question"),
            codex_meta(CX_ID_2, ts="2026-02-13T18:00:00.000Z"),
            codex_message("user", "beta question", ts="2026-02-13T18:00:01.000Z"),
        ])
        index = SessionCatalog(config).load()
        engine = SearchEngine(index)

        assert [r.session_id for r in engine.search("beta")] == [CX_ID_2]
        assert [r.session_id for r in engine.search("alpha")] == [CX_ID_1]
        hits = {r.session_id: r.match_text for r in engine.search("question")}
        assert hits == {CX_ID_1: "alpha question", CX_ID_2: "beta question"}


class TestQuickFilter:
    """Tests for the list-view quick filter."""

    def test_metadata_match(self, loaded_index):
        session = loaded_index.get_exact(SessionSource.CLAUDE_CODE, CC_ID_1)
        assert matches_filter(session, "LOGIN")
        assert matches_filter(session, "webapp")
        assert matches_filter(session, "")
        assert not matches_filter(session, "retry decorator")

    def test_source_label_match(self, loaded_index):
        session = loaded_index.get_exact(SessionSource.CODEX, CX_ID_1)
        assert matches_filter(session, "codex")

    def test_full_text_match_is_memoized(self, loaded_index):
        session = loaded_index.get_exact(SessionSource.CLAUDE_CODE, CC_ID_1)
        cache = FullTextCache()
        assert matches_filter(session, "react login", cache)
        assert len(cache) == 1
        assert matches_filter(session, "here is a", cache)
        assert len(cache) == 1

    def test_memo_refreshes_when_transcript_changes(self, tmp_path):
        session = _codex_session(tmp_path, 1, text="first words")
        cache = FullTextCache()
        assert "first words" in cache.text_for(session)

        write_jsonl(tmp_path / f"rollout-{session.id}.jsonl", [
            codex_meta(session.id),
            codex_message("assistant", "completely different and longer words"),
        ])
        assert "completely different" in cache.text_for(session)
