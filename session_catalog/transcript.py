"""Lazy, line-by-line access to session transcripts."""

import json
from pathlib import Path
from typing import Iterator, Optional

from .models import Message, Session, SessionSource
from .providers.base import INTERNAL_TYPES, block_text, content_blocks
from .providers.codex import entry_session_id, meta_session_id, session_id_from_file_name


def parse_claude_record(data: dict) -> Optional[Message]:
    """Claude Code record -> Message. Content may be a string or a block list."""
    kind = data.get("type") or ""
    message = data.get("message")
    if not isinstance(message, dict):
        message = {}
    blocks = content_blocks(message.get("content"))
    text = "\n".join(t for t in (block_text(b) for b in blocks) if t).strip()
    model = message.get("model")
    return Message(
        kind=kind,
        role=message.get("role") or kind or "assistant",
        text=text,
        model=model if isinstance(model, str) else "",
        is_api_error=bool(data.get("isApiErrorMessage")),
        timestamp=data.get("timestamp") or "",
        blocks=blocks,
    )


def parse_codex_record(data: dict) -> Optional[Message]:
    """Codex ``response_item`` message -> Message; every other record kind is None."""
    if data.get("type") != "response_item":
        return None
    payload = data.get("payload")
    if not isinstance(payload, dict) or payload.get("type") != "message":
        return None
    role = payload.get("role") or "assistant"
    blocks = content_blocks(payload.get("content"))
    model = payload.get("model")
    return Message(
        kind="user" if role == "user" else "assistant",
        role=role,
        text="\n".join(t for t in (block_text(b) for b in blocks) if t).strip(),
        model=model if isinstance(model, str) else "",
        timestamp=data.get("timestamp") or "",
        blocks=blocks,
    )


def _iter_records(path: Path) -> Iterator[dict]:
    with open(path, encoding="utf-8", errors="replace") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(data, dict):
                yield data


def _iter_codex_messages(session: Session, path: Path) -> Iterator[Message]:
    """Messages of one session in a rollout file that may hold several.

    Identity is tracked the way the Codex reader tracks it: each
    ``session_meta`` sets the current id, explicit record ids override it,
    and messages seen before any meta are held until an id is known.
    """
    file_id = session_id_from_file_name(path)
    current: Optional[str] = None
    pending: list[Message] = []

    for data in _iter_records(path):
        if data.get("type") == "session_meta":
            current = meta_session_id(data) or current or file_id
            if current is not None and pending:
                if current == session.id:
                    yield from pending
                pending = []
            continue

        msg = parse_codex_record(data)
        if msg is None:
            continue
        owner = entry_session_id(data) or current
        if owner is None:
            pending.append(msg)
        elif owner == session.id:
            yield msg

    if pending and file_id == session.id:
        yield from pending


def iter_messages(session: Session, skip_internal: bool = True) -> Iterator[Message]:
    """Stream a session's messages without loading the whole transcript.

    Raises OSError if the transcript cannot be opened; malformed lines
    are skipped silently. Codex messages belonging to another session in
    the same rollout file are not yielded.
    """
    if not session.transcript_ref:
        raise FileNotFoundError(f"session {session.id} has no transcript")

    path = Path(session.transcript_ref)
    if session.source is SessionSource.CODEX:
        messages = _iter_codex_messages(session, path)
    else:
        messages = (m for m in map(parse_claude_record, _iter_records(path)) if m is not None)

    for msg in messages:
        if skip_internal and msg.kind in INTERNAL_TYPES:
            continue
        yield msg


def full_text(session: Session) -> str:
    """All message text of a session joined by newlines."""
    return "\n".join(msg.text for msg in iter_messages(session) if msg.text)
