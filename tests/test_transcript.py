"""Tests for lazy transcript reading."""

import pytest

from conftest import (
    CC_ID_1,
    CX_ID_1,
    CX_ID_2,
    claude_assistant,
    claude_user,
    codex_message,
    codex_meta,
    codex_rollout_path,
    codex_turn,
    write_jsonl,
)
from session_catalog.models import Session, SessionSource
from session_catalog.transcript import full_text, iter_messages, parse_claude_record, parse_codex_record


class TestRecordParsing:
    """Tests for per-record parsing."""

    def test_claude_string_content(self):
        msg = parse_claude_record(claude_user(CC_ID_1, "hello"))
        assert (msg.kind, msg.role, msg.text) == ("user", "user", "hello")

    def test_claude_block_content_and_model(self):
        msg = parse_claude_record(claude_assistant(CC_ID_1, "answer", model="claude-opus-4-6"))
        assert msg.text == "answer"
        assert msg.model == "claude-opus-4-6"

    def test_claude_api_error(self):
        record = claude_assistant(CC_ID_1, "overloaded")
        record["isApiErrorMessage"] = True
        assert parse_claude_record(record).is_api_error

    def test_codex_only_messages(self):
        assert parse_codex_record(codex_meta(CX_ID_1)) is None
        assert parse_codex_record(codex_turn()) is None
        msg = parse_codex_record(codex_message("assistant", "done"))
        assert (msg.kind, msg.role, msg.text) == ("assistant", "assistant", "done")


class TestIterMessages:
    """Tests for iter_messages."""

    def test_skips_internal_and_malformed(self, tmp_path):
        path = write_jsonl(tmp_path / "t.jsonl", [
            {"type": "progress", "data": {}},
            "not json",
            claude_user(CC_ID_1, "question"),
            claude_assistant(CC_ID_1, "reply"),
        ])
        session = Session(id=CC_ID_1, source=SessionSource.CLAUDE_CODE, transcript_ref=str(path))
        assert [m.text for m in iter_messages(session)] == ["question", "reply"]
        assert full_text(session) == "question\nreply"

    def test_codex_transcript(self, tmp_path):
        path = write_jsonl(tmp_path / "r.jsonl", [
            codex_meta(CX_ID_1),
            codex_turn(),
            codex_message("user", "hi"),
            codex_message("assistant", "hello"),
        ])
        session = Session(id=CX_ID_1, source=SessionSource.CODEX, transcript_ref=str(path))
        assert [(m.role, m.text) for m in iter_messages(session)] == [("user", "hi"), ("assistant", "hello")]

    def test_codex_rollout_with_two_sessions_is_scoped_by_id(self, tmp_path):
        path = write_jsonl(codex_rollout_path(tmp_path, CX_ID_1), [
            codex_meta(CX_ID_1),
            codex_message("user", "alpha question"),
            codex_meta(CX_ID_2),
            codex_message("user", "beta question"),
        ])
        first = Session(id=CX_ID_1, source=SessionSource.CODEX, transcript_ref=str(path))
        second = Session(id=CX_ID_2, source=SessionSource.CODEX, transcript_ref=str(path))

        assert [m.text for m in iter_messages(first)] == ["alpha question"]
        assert [m.text for m in iter_messages(second)] == ["beta question"]
        assert full_text(second) == "beta question"

    def test_codex_messages_before_meta_belong_to_that_meta(self, tmp_path):
        path = write_jsonl(codex_rollout_path(tmp_path, CX_ID_1), [
            codex_message("user", "early question"),
            codex_meta(CX_ID_2),
            codex_message("assistant", "late answer"),
        ])
        named = Session(id=CX_ID_1, source=SessionSource.CODEX, transcript_ref=str(path))
        declared = Session(id=CX_ID_2, source=SessionSource.CODEX, transcript_ref=str(path))

        assert list(iter_messages(named)) == []
        assert [m.text for m in iter_messages(declared)] == ["early question", "late answer"]

    def test_codex_messages_without_meta_use_file_name_id(self, tmp_path):
        path = write_jsonl(codex_rollout_path(tmp_path, CX_ID_1), [
            codex_turn(),
            codex_message("user", "no meta here"),
        ])
        session = Session(id=CX_ID_1, source=SessionSource.CODEX, transcript_ref=str(path))
        assert [m.text for m in iter_messages(session)] == ["no meta here"]

    def test_missing_transcript_raises(self, tmp_path):
        no_ref = Session(id="a", source=SessionSource.CODEX)
        with pytest.raises(OSError):
            list(iter_messages(no_ref))
        gone = Session(id="a", source=SessionSource.CODEX, transcript_ref=str(tmp_path / "gone.jsonl"))
        with pytest.raises(OSError):
            list(iter_messages(gone))
