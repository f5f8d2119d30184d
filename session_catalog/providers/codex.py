"""Codex source reader.

Codex rollout files have no outer object per session: ``session_meta``,
``turn_context`` and ``response_item`` records are interleaved, and
``session_meta`` is not guaranteed to come first. The reader keeps one
builder per session id while streaming and finalizes them at EOF.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..models import SessionSource
from . import register_reader
from .base import (
    HistorySummary,
    ReadResult,
    SourceReader,
    TranscriptInfo,
    content_text,
    iter_json_lines,
    looks_like_session_id,
    normalize_model,
    parse_iso,
)

logger = logging.getLogger(__name__)

_EFFORT_RE = re.compile(r"^[a-z0-9_-]+$")


def normalize_effort(value) -> Optional[str]:
    """Lower-cased reasoning effort ("HIGH" -> "high"), or None if malformed."""
    if not isinstance(value, str):
        return None
    normalized = value.strip().lower()
    if not normalized or not _EFFORT_RE.match(normalized):
        return None
    return normalized


def session_id_from_file_name(path: Path) -> Optional[str]:
    """The uuid Codex embeds at the end of rollout file names."""
    stem = path.name[:-len(".jsonl")] if path.name.endswith(".jsonl") else path.stem
    if len(stem) < 36:
        return None
    candidate = stem[-36:]
    return candidate if looks_like_session_id(candidate) else None


def entry_session_id(data: dict) -> Optional[str]:
    """Explicit session id carried by a record, top-level or inside payload."""
    payload = data.get("payload")
    for container in (data, payload if isinstance(payload, dict) else {}):
        for key in ("sessionId", "session_id"):
            value = container.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def meta_session_id(data: dict) -> Optional[str]:
    """The id a ``session_meta`` record declares, if any."""
    payload = data.get("payload")
    meta_id = payload.get("id") if isinstance(payload, dict) else None
    return meta_id if isinstance(meta_id, str) and meta_id else None


@dataclass
class CodexSessionBuilder:
    """Partial session accumulated while streaming a rollout file."""

    session_id: Optional[str] = None
    cwd: str = ""
    meta_cwd: str = ""
    meta_model: Optional[str] = None
    context_model: Optional[str] = None
    reasoning_effort: Optional[str] = None
    first_ts: Optional[datetime] = None
    last_ts: Optional[datetime] = None
    first_prompt: str = ""
    saw_meta: bool = False
    saw_context: bool = False
    records: int = 0

    def touch(self, ts: Optional[datetime]) -> None:
        if ts is None:
            return
        if self.first_ts is None or ts < self.first_ts:
            self.first_ts = ts
        if self.last_ts is None or ts > self.last_ts:
            self.last_ts = ts

    def apply_session_meta(self, payload: dict) -> None:
        self.saw_meta = True
        cwd = payload.get("cwd")
        if isinstance(cwd, str) and cwd:
            self.meta_cwd = cwd
        self.touch(parse_iso(payload.get("timestamp")))
        model = normalize_model(payload.get("model"))
        if model:
            self.meta_model = model

    def apply_turn_context(self, payload: dict) -> None:
        self.saw_context = True
        model = normalize_model(payload.get("model"))
        if model:
            self.context_model = model
        effort = normalize_effort(payload.get("effort"))
        if effort is None:
            mode = payload.get("collaboration_mode")
            settings = mode.get("settings") if isinstance(mode, dict) else None
            if isinstance(settings, dict):
                effort = normalize_effort(settings.get("reasoning_effort"))
        if effort:
            self.reasoning_effort = effort
        cwd = payload.get("cwd")
        if isinstance(cwd, str) and cwd:
            self.cwd = cwd

    def apply_message(self, payload: dict) -> None:
        model = normalize_model(payload.get("model"))
        if model:
            self.context_model = model
        if not self.first_prompt and payload.get("role") == "user":
            text = content_text(payload.get("content"))
            # Codex injects <environment_context>/<user_instructions> blocks as user turns
            if text and not text.startswith("<"):
                self.first_prompt = text.split("\n")[0].strip()

    def absorb(self, other: "CodexSessionBuilder") -> None:
        """Fold an earlier builder (seen before this id was known) into this one."""
        self.touch(other.first_ts)
        self.touch(other.last_ts)
        self.cwd = self.cwd or other.cwd
        self.meta_cwd = self.meta_cwd or other.meta_cwd
        self.meta_model = self.meta_model or other.meta_model
        # Later records win for per-turn values; other precedes self in file order
        self.context_model = self.context_model or other.context_model
        self.reasoning_effort = self.reasoning_effort or other.reasoning_effort
        self.first_prompt = other.first_prompt or self.first_prompt
        self.saw_meta = self.saw_meta or other.saw_meta
        self.saw_context = self.saw_context or other.saw_context
        self.records += other.records

    def finalize(self, path: Path, size: int) -> Optional[TranscriptInfo]:
        if not self.session_id or not self.records:
            return None
        return TranscriptInfo(
            session_id=self.session_id,
            path=path,
            size=size,
            cwd=self.meta_cwd or self.cwd,
            model=self.context_model or self.meta_model,
            reasoning_effort=self.reasoning_effort,
            first_ts=self.first_ts,
            last_ts=self.last_ts,
            first_prompt=self.first_prompt,
            orphaned_context=self.saw_context and not self.saw_meta,
        )


@register_reader
class CodexReader(SourceReader):
    """Reader for ``~/.codex/history.jsonl`` and rollout files."""

    source = SessionSource.CODEX
    display_name = "Codex"

    def discover_transcripts(self) -> list[Path]:
        """Discover rollout files under sessions/ and archived_sessions/."""
        files = []
        for root in self.paths.transcript_roots:
            if not root.is_dir():
                continue
            try:
                files.extend(p for p in sorted(root.rglob("*.jsonl")) if p.is_file())
            except OSError as e:
                logger.info(f"Cannot walk {root}: {e}")
        return files

    def read_transcript(self, path: Path, result: ReadResult) -> list[TranscriptInfo]:
        """Stream one rollout file, scoping records to the current known identity.

        The id in the file name is provisional: records seen before the
        first ``session_meta`` belong to that meta's session, and fall
        back to the file-name id only if no meta ever names one.
        """
        try:
            size = path.stat().st_size
        except OSError:
            result.warn(f"{path} disappeared before it could be read")
            return []

        builders: dict[str, CodexSessionBuilder] = {}
        pending: Optional[CodexSessionBuilder] = None
        file_id = session_id_from_file_name(path)
        current: Optional[str] = None

        def builder_for(session_id: str) -> CodexSessionBuilder:
            if session_id not in builders:
                builders[session_id] = CodexSessionBuilder(session_id=session_id)
            return builders[session_id]

        for data in iter_json_lines(path, result):
            record_type = data.get("type")
            payload = data.get("payload")
            if not isinstance(payload, dict):
                payload = {}
            ts = parse_iso(data.get("timestamp"))

            if record_type == "session_meta":
                current = meta_session_id(data) or current or file_id
                if current is None:
                    pending = pending or CodexSessionBuilder()
                    builder = pending
                else:
                    builder = builder_for(current)
                    if pending is not None:
                        builder.absorb(pending)
                        pending = None
                builder.records += 1
                builder.touch(ts)
                builder.apply_session_meta(payload)
                continue

            session_id = entry_session_id(data) or current
            if session_id is None:
                pending = pending or CodexSessionBuilder()
                builder = pending
            else:
                builder = builder_for(session_id)
            builder.records += 1
            builder.touch(ts)

            if record_type == "turn_context":
                builder.apply_turn_context(payload)
            elif record_type == "response_item" and payload.get("type") == "message":
                builder.apply_message(payload)

        if pending is not None and pending.records:
            if file_id:
                builder_for(file_id).absorb(pending)
            else:
                result.warn(f"{pending.records} record(s) in {path} never matched a session id")

        infos = []
        for builder in builders.values():
            info = builder.finalize(path, size)
            if info is not None:
                infos.append(info)
        return infos

    def pick_transcript(self, current: TranscriptInfo, candidate: TranscriptInfo,
                        history: Optional[HistorySummary]) -> TranscriptInfo:
        """Prefer the rollout file named after the session, then the newest."""
        current_own = session_id_from_file_name(current.path) == current.session_id
        candidate_own = session_id_from_file_name(candidate.path) == candidate.session_id
        if candidate_own != current_own:
            return candidate if candidate_own else current
        if candidate.last_ts and (current.last_ts is None or candidate.last_ts > current.last_ts):
            return candidate
        return current
