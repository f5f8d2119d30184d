"""Shared fixtures: synthetic ~/.claude and ~/.codex trees under tmp_path."""

import json
from pathlib import Path

import pytest

from session_catalog.config import CatalogConfig

CC_ID_1 = "11111111-1111-4111-8111-111111111111"
CC_ID_2 = "22222222-2222-4222-8222-222222222222"
CX_ID_1 = "019c24fb-6f78-7a20-99d0-88871c381f5d"
CX_ID_2 = "019c24fb-0000-7a20-99d0-000000000002"


def write_jsonl(path: Path, records, trailing_newline: bool = True) -> Path:
    """Write records (dicts or raw strings) as JSON lines."""
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
    text = "\n".join(lines)
    if trailing_newline and lines:
        text += "\n"
    path.write_text(text)
    return path


def claude_user(session_id, text, ts="2026-02-13T17:00:00.000Z", cwd="/tmp/webapp"):
    return {
        "type": "user",
        "sessionId": session_id,
        "timestamp": ts,
        "cwd": cwd,
        "message": {"role": "user", "content": text},
    }


def claude_assistant(session_id, text, model="claude-opus-4-6", ts="2026-02-13T17:01:00.000Z"):
    return {
        "type": "assistant",
        "sessionId": session_id,
        "timestamp": ts,
        "message": {"role": "assistant", "model": model, "content": [{"type": "text", "text": text}]},
    }


def codex_meta(session_id, cwd="/tmp/demo", ts="2026-02-13T17:00:00.000Z"):
    return {"type": "session_meta", "timestamp": ts,
            "payload": {"id": session_id, "timestamp": ts, "cwd": cwd}}


def codex_turn(model="gpt-5.3-codex high", effort="HIGH", ts="2026-02-13T17:00:01.000Z", **extra):
    payload = {"model": model, "effort": effort}
    payload.update(extra)
    return {"type": "turn_context", "timestamp": ts, "payload": payload}


def codex_message(role, text, ts="2026-02-13T17:00:02.000Z"):
    block = "input_text" if role == "user" else "output_text"
    return {"type": "response_item", "timestamp": ts,
            "payload": {"type": "message", "role": role, "content": [{"type": block, "text": text}]}}


def codex_rollout_path(home: Path, session_id: str, day="2026/02/13") -> Path:
    return home / ".codex" / "sessions" / day / f"rollout-2026-02-13T17-00-00-{session_id}.jsonl"


def claude_transcript_path(home: Path, session_id: str, project="/tmp/webapp") -> Path:
    return home / ".claude" / "projects" / project.replace("/", "-") / f"{session_id}.jsonl"


@pytest.fixture
def home(tmp_path):
    return tmp_path


@pytest.fixture
def config(home):
    return CatalogConfig.for_home(home)


@pytest.fixture
def populated_home(home):
    """Two Claude Code sessions and two Codex sessions with history."""
    write_jsonl(home / ".claude" / "history.jsonl", [
        {"display": "build the login form", "timestamp": 1771002000000, "project": "/tmp/webapp",
         "sessionId": CC_ID_1},
        {"display": "fix flaky tests", "timestamp": 1771005600000, "project": "/tmp/api",
         "sessionId": CC_ID_2},
    ])
    write_jsonl(claude_transcript_path(home, CC_ID_1), [
        {"type": "file-history-snapshot", "messageId": "x"},
        claude_user(CC_ID_1, "build the login form"),
        claude_assistant(CC_ID_1, "Here is a React login form"),
    ])
    write_jsonl(claude_transcript_path(home, CC_ID_2, "/tmp/api"), [
        claude_user(CC_ID_2, "fix flaky tests", ts="2026-02-13T18:00:00.000Z", cwd="/tmp/api"),
        claude_assistant(CC_ID_2, "The retry decorator was missing", model="claude-sonnet-4-5",
                         ts="2026-02-13T18:01:00.000Z"),
    ])

    write_jsonl(home / ".codex" / "history.jsonl", [
        {"session_id": CX_ID_1, "ts": 1771002000, "text": "add pagination"},
        {"session_id": CX_ID_2, "ts": 1771009200, "text": "profile the importer"},
    ])
    write_jsonl(codex_rollout_path(home, CX_ID_1), [
        codex_meta(CX_ID_1),
        codex_turn(),
        codex_message("user", "add pagination to the list endpoint"),
        codex_message("assistant", "Added limit/offset pagination"),
    ])
    write_jsonl(codex_rollout_path(home, CX_ID_2), [
        codex_meta(CX_ID_2, cwd="/tmp/importer", ts="2026-02-13T19:00:00.000Z"),
        codex_turn(model="gpt-5.2-codex", effort="medium", ts="2026-02-13T19:00:01.000Z"),
        codex_message("user", "profile the importer", ts="2026-02-13T19:00:02.000Z"),
    ])
    return home
