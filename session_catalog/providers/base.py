"""Base class and shared parsing helpers for source readers."""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from ..config import SourcePaths
from ..fingerprint import fingerprint_file, prefix_digest
from ..models import HistoryEntry, Session, SessionSource, SourceFingerprint

logger = logging.getLogger(__name__)

# Transcript record kinds that carry no conversation content
INTERNAL_TYPES = ("file-history-snapshot", "progress", "queue-operation")

DISPLAY_MAX_LEN = 120
# History prefix hashed to detect a rewritten (not just appended) file
HEAD_BYTES = 4096
_MODEL_RE = re.compile(r"^[A-Za-z0-9_.:/-]+$")
_UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")


def normalize_timestamp(raw) -> Optional[datetime]:
    """Epoch seconds or milliseconds (values below 1e12 are seconds) to UTC datetime."""
    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw <= 0:
        return None
    if raw < 1_000_000_000_000:
        raw = raw * 1000
    return datetime.fromtimestamp(int(raw) / 1000, tz=timezone.utc)


def parse_iso(value) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp ("...Z" allowed) into an aware datetime."""
    if not isinstance(value, str) or not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def normalize_model(model) -> Optional[str]:
    """First whitespace token of a model name, or None if it isn't a plausible id.

    Codex writes models like "gpt-5.3-codex high"; Claude Code writes
    "<synthetic>" for locally generated messages.
    """
    if not isinstance(model, str):
        return None
    parts = model.split()
    if not parts:
        return None
    first = parts[0]
    if first == "<synthetic>" or not _MODEL_RE.match(first):
        return None
    return first


def looks_like_session_id(value: str) -> bool:
    return bool(_UUID_RE.match(value))


def sanitize_display(text: str, max_len: int = DISPLAY_MAX_LEN) -> str:
    """Collapse whitespace and truncate a label."""
    text = " ".join(text.split())
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def block_text(block) -> Optional[str]:
    if not isinstance(block, dict):
        return None
    if block.get("type") not in ("text", "input_text", "output_text"):
        return None
    text = block.get("text")
    return text if isinstance(text, str) else None


def content_blocks(content) -> list:
    """Message content as a list of blocks (plain strings become one text block)."""
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    if isinstance(content, list):
        return content
    return []


def content_text(content) -> str:
    return "\n".join(t for t in (block_text(b) for b in content_blocks(content)) if t).strip()


@dataclass
class TranscriptInfo:
    """What a reader learned from one session's own transcript."""

    session_id: str
    path: Path
    size: int = 0
    cwd: str = ""
    model: Optional[str] = None
    reasoning_effort: Optional[str] = None
    first_ts: Optional[datetime] = None
    last_ts: Optional[datetime] = None
    first_prompt: str = ""
    orphaned_context: bool = False

    def touch(self, ts: Optional[datetime]) -> None:
        if ts is None:
            return
        if self.first_ts is None or ts < self.first_ts:
            self.first_ts = ts
        if self.last_ts is None or ts > self.last_ts:
            self.last_ts = ts

    def to_dict(self) -> dict:
        data = asdict(self)
        data["path"] = str(self.path)
        data["first_ts"] = self.first_ts.isoformat() if self.first_ts else None
        data["last_ts"] = self.last_ts.isoformat() if self.last_ts else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TranscriptInfo":
        return cls(
            session_id=data["session_id"],
            path=Path(data["path"]),
            size=int(data.get("size", 0)),
            cwd=data.get("cwd", ""),
            model=data.get("model"),
            reasoning_effort=data.get("reasoning_effort"),
            first_ts=parse_iso(data.get("first_ts")),
            last_ts=parse_iso(data.get("last_ts")),
            first_prompt=data.get("first_prompt", ""),
            orphaned_context=bool(data.get("orphaned_context", False)),
        )


@dataclass
class FileEntry:
    """Parsed output of one transcript file, reusable while its fingerprint holds."""

    fingerprint: SourceFingerprint
    transcripts: list[TranscriptInfo] = field(default_factory=list)
    skipped_lines: int = 0

    def to_dict(self) -> dict:
        return {
            "fingerprint": self.fingerprint.to_dict(),
            "transcripts": [t.to_dict() for t in self.transcripts],
            "skipped_lines": self.skipped_lines,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FileEntry":
        return cls(
            fingerprint=SourceFingerprint.from_dict(data["fingerprint"]),
            transcripts=[TranscriptInfo.from_dict(t) for t in data.get("transcripts", [])],
            skipped_lines=int(data.get("skipped_lines", 0)),
        )


@dataclass
class HistoryCheckpoint:
    """How far the history file was parsed, and what it yielded.

    ``offset`` is the byte position after the last consumed line and
    ``head_digest`` covers the first ``HEAD_BYTES`` before it, so a file
    that only grew can be resumed and a rewritten one is parsed again.
    """

    fingerprint: SourceFingerprint
    offset: int
    head_digest: str
    entries: list[HistoryEntry] = field(default_factory=list)
    skipped_lines: int = 0

    def to_dict(self) -> dict:
        return {
            "fingerprint": self.fingerprint.to_dict(),
            "offset": self.offset,
            "head_digest": self.head_digest,
            "entries": [e.to_dict() for e in self.entries],
            "skipped_lines": self.skipped_lines,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HistoryCheckpoint":
        return cls(
            fingerprint=SourceFingerprint.from_dict(data["fingerprint"]),
            offset=int(data["offset"]),
            head_digest=str(data["head_digest"]),
            entries=[HistoryEntry.from_dict(e) for e in data.get("entries", [])],
            skipped_lines=int(data.get("skipped_lines", 0)),
        )


@dataclass
class ReaderState:
    """Per-file results of an earlier read, handed back to the next one."""

    history: Optional[HistoryCheckpoint] = None
    files: list[FileEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "history": self.history.to_dict() if self.history else None,
            "files": [f.to_dict() for f in self.files],
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ReaderState":
        data = data or {}
        history = data.get("history")
        return cls(
            history=HistoryCheckpoint.from_dict(history) if history else None,
            files=[FileEntry.from_dict(f) for f in data.get("files", [])],
        )


@dataclass
class ReadResult:
    """Everything one reader produced in a single pass."""

    source: SessionSource
    sessions: list[Session] = field(default_factory=list)
    history: list[HistoryEntry] = field(default_factory=list)
    fingerprints: list[SourceFingerprint] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    skipped_lines: int = 0
    state: ReaderState = field(default_factory=ReaderState)
    # Files actually opened this pass; reused files are not listed
    parsed_files: list[str] = field(default_factory=list)
    history_resumed_from: int = 0

    def warn(self, message: str) -> None:
        logger.debug(message)
        self.warnings.append(message)


class LineCursor:
    """Byte offset just past the last line consumed from a JSON-lines file."""

    def __init__(self, offset: int = 0):
        self.offset = offset


def iter_json_lines(path: Path, result: ReadResult, cursor: Optional[LineCursor] = None) -> Iterator[dict]:
    """Stream JSON objects from a JSON-lines file.

    Malformed lines are counted on ``result`` and skipped. A trailing
    line with no newline that fails to parse is a record still being
    written and ends the stream quietly. A file that vanishes or fails
    mid-read keeps whatever was yielded so far.

    With a ``cursor``, reading starts at ``cursor.offset`` and the cursor
    moves past every line consumed, so a later pass can resume there.
    """
    skipped = 0
    try:
        with open(path, "rb") as f:
            if cursor is not None and cursor.offset:
                f.seek(cursor.offset)
            for raw in f:
                complete = raw.endswith(b"\n")
                line = raw.decode("utf-8", errors="replace").strip()
                try:
                    data = json.loads(line) if line else None
                except json.JSONDecodeError:
                    if not complete:
                        break
                    data = None
                if cursor is not None:
                    cursor.offset += len(raw)
                if not line:
                    continue
                if not isinstance(data, dict):
                    skipped += 1
                    continue
                yield data
    except FileNotFoundError:
        result.warn(f"{path} disappeared while reading; keeping partial data")
    except OSError as e:
        result.warn(f"Failed reading {path}: {e}")
    finally:
        if skipped:
            result.skipped_lines += skipped
            result.warn(f"{skipped} malformed line(s) skipped in {path}")


def parse_history_entry(data: dict) -> Optional[HistoryEntry]:
    """Normalize one history line from either source."""
    session_id = data.get("sessionId") or data.get("session_id")
    if not isinstance(session_id, str) or not session_id:
        return None

    raw_ts = data.get("timestamp")
    if raw_ts is None:
        raw_ts = data.get("ts")
    timestamp = normalize_timestamp(raw_ts)
    if timestamp is None:
        timestamp = parse_iso(raw_ts)

    display = data.get("display") or data.get("text") or ""
    cwd = data.get("project") or data.get("cwd") or None
    return HistoryEntry(
        session_id=session_id,
        timestamp=timestamp,
        model=normalize_model(data.get("model")),
        cwd=cwd if isinstance(cwd, str) else None,
        display=display if isinstance(display, str) else "",
    )


@dataclass
class HistorySummary:
    """All history entries of one session folded together."""

    count: int = 0
    display: str = ""
    project: str = ""
    first_ts: Optional[datetime] = None
    last_ts: Optional[datetime] = None
    model: Optional[str] = None
    model_ts: Optional[datetime] = None

    def add(self, entry: HistoryEntry) -> None:
        self.count += 1
        ts = entry.timestamp
        newest = self.count == 1 or (ts is not None and (self.last_ts is None or ts >= self.last_ts))
        if newest:
            if ts is not None:
                self.last_ts = ts
            self.display = entry.display or self.display
            self.project = entry.cwd or self.project
        else:
            if not self.display and entry.display:
                self.display = entry.display
            if not self.project and entry.cwd:
                self.project = entry.cwd
        if ts is not None and (self.first_ts is None or ts < self.first_ts):
            self.first_ts = ts
        if entry.model and (self.model is None or (ts is not None and (self.model_ts is None or ts >= self.model_ts))):
            self.model = entry.model
            self.model_ts = ts


def summarize_history(entries: list[HistoryEntry]) -> dict[str, HistorySummary]:
    summaries: dict[str, HistorySummary] = {}
    for entry in entries:
        summaries.setdefault(entry.session_id, HistorySummary()).add(entry)
    return summaries


def build_session(
    source: SessionSource,
    session_id: str,
    history: Optional[HistorySummary],
    transcript: Optional[TranscriptInfo],
) -> Optional[Session]:
    """Merge history and transcript knowledge into one Session.

    Model precedence: the transcript's own metadata, then the latest
    history entry carrying a model, then absent.
    """
    if not session_id:
        return None

    project = (history.project if history else "") or (transcript.cwd if transcript else "")
    times = [t for t in (
        history.first_ts if history else None,
        history.last_ts if history else None,
        transcript.first_ts if transcript else None,
        transcript.last_ts if transcript else None,
    ) if t is not None]
    started_at = min(times) if times else None
    last_active_at = max(times) if times else None

    display = (history.display if history else "") or (transcript.first_prompt if transcript else "")
    display = sanitize_display(display or project)

    if not display and started_at is None and transcript is None:
        return None

    model = None
    if transcript and transcript.model:
        model = transcript.model
    elif history and history.model:
        model = history.model

    return Session(
        id=session_id,
        source=source,
        project_path=project,
        started_at=started_at,
        last_active_at=last_active_at,
        model=model,
        reasoning_effort=transcript.reasoning_effort if transcript else None,
        transcript_ref=str(transcript.path) if transcript else None,
        size_bytes=transcript.size if transcript else 0,
        display=display,
        orphaned_context=transcript.orphaned_context if transcript else False,
    )


class SourceReader(ABC):
    """Abstract base class for source readers.

    Each assistant (Claude Code, Codex) implements this interface to turn
    its history file and transcripts into normalized sessions. Readers
    are independent and share no state.
    """

    source: SessionSource
    display_name: str = ""

    def __init__(self, paths: SourcePaths):
        self.paths = paths

    def is_available(self) -> bool:
        """Check if this source's home directory exists."""
        return self.paths.home.exists()

    @abstractmethod
    def discover_transcripts(self) -> list[Path]:
        """List transcript files under the transcript roots (no parsing)."""
        ...

    def discover_files(self) -> list[Path]:
        """Every file a full read would open."""
        files = []
        if self.paths.history_file.is_file():
            files.append(self.paths.history_file)
        files.extend(self.discover_transcripts())
        return files

    def _resume_point(self, checkpoint: Optional[HistoryCheckpoint], live: SourceFingerprint) -> int:
        """Offset to continue parsing history from, or 0 to parse it all again."""
        if checkpoint is None or checkpoint.offset <= 0 or live.size < checkpoint.offset:
            return 0
        if live.size <= checkpoint.fingerprint.size:
            return 0
        try:
            head = prefix_digest(Path(live.path), min(checkpoint.offset, HEAD_BYTES))
        except OSError:
            return 0
        return checkpoint.offset if head == checkpoint.head_digest else 0

    def read_history(self, result: ReadResult,
                     checkpoint: Optional[HistoryCheckpoint] = None) -> list[HistoryEntry]:
        """Parse the history file, resuming after ``checkpoint`` when the file only grew."""
        path = self.paths.history_file
        live = fingerprint_file(path) if path.is_file() else None
        if live is None:
            logger.info(f"No {self.display_name} history at {path}")
            return []
        result.fingerprints.append(live)

        if checkpoint is not None and checkpoint.fingerprint == live:
            result.state.history = checkpoint
            result.skipped_lines += checkpoint.skipped_lines
            return list(checkpoint.entries)

        start = self._resume_point(checkpoint, live)
        entries = list(checkpoint.entries) if start else []
        skipped_before = checkpoint.skipped_lines if start else 0
        if start:
            logger.debug(f"Resuming {self.display_name} history at byte {start}")

        result.parsed_files.append(live.path)
        result.history_resumed_from = start
        cursor = LineCursor(start)
        counted = result.skipped_lines
        for data in iter_json_lines(path, result, cursor):
            entry = parse_history_entry(data)
            if entry is not None:
                entries.append(entry)
        skipped = skipped_before + result.skipped_lines - counted
        result.skipped_lines += skipped_before

        try:
            head = prefix_digest(path, min(cursor.offset, HEAD_BYTES))
        except OSError:
            head = ""
        result.state.history = HistoryCheckpoint(live, cursor.offset, head, entries, skipped)
        return entries

    @abstractmethod
    def read_transcript(self, path: Path, result: ReadResult) -> list[TranscriptInfo]:
        """Parse one transcript file into per-session info."""
        ...

    def pick_transcript(self, current: TranscriptInfo, candidate: TranscriptInfo,
                        history: Optional[HistorySummary]) -> TranscriptInfo:
        """Choose between two transcripts claiming the same session id."""
        return candidate if candidate.size > current.size else current

    def read_transcripts(self, result: ReadResult, previous: list[FileEntry]) -> list[FileEntry]:
        """Parse changed or new transcript files; reuse entries whose fingerprint still matches."""
        known = {entry.fingerprint.path: entry for entry in previous}
        entries = []
        for path in self.discover_transcripts():
            live = fingerprint_file(path)
            if live is None:
                result.warn(f"{path} disappeared before it could be read")
                continue
            result.fingerprints.append(live)

            cached = known.get(live.path)
            if cached is not None and cached.fingerprint == live:
                result.skipped_lines += cached.skipped_lines
                entries.append(cached)
                continue

            result.parsed_files.append(live.path)
            counted = result.skipped_lines
            transcripts = self.read_transcript(path, result)
            entries.append(FileEntry(live, transcripts, result.skipped_lines - counted))
        return entries

    def read(self, previous: Optional[ReaderState] = None) -> ReadResult:
        """Read everything for this source.

        ``previous`` is the state of an earlier read: unchanged transcript
        files are taken from it without being opened, and history parsing
        resumes where it stopped if the file was only appended to.
        """
        previous = previous or ReaderState()
        result = ReadResult(source=self.source)
        result.history = self.read_history(result, previous.history)
        result.state.files = self.read_transcripts(result, previous.files)
        summaries = summarize_history(result.history)

        transcripts: dict[str, TranscriptInfo] = {}
        for entry in result.state.files:
            for info in entry.transcripts:
                existing = transcripts.get(info.session_id)
                if existing is None:
                    transcripts[info.session_id] = info
                else:
                    transcripts[info.session_id] = self.pick_transcript(
                        existing, info, summaries.get(info.session_id)
                    )

        for session_id in sorted(summaries.keys() | transcripts.keys()):
            session = build_session(
                self.source, session_id, summaries.get(session_id), transcripts.get(session_id)
            )
            if session is not None:
                result.sessions.append(session)

        result.fingerprints.sort(key=lambda fp: fp.path)
        if result.skipped_lines:
            logger.warning(f"{result.skipped_lines} lines skipped in source {self.source.label}")
        logger.debug(f"{self.display_name}: parsed {len(result.parsed_files)} file(s)")
        return result
