"""Unified session model for both assistant sources."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class SessionSource(str, Enum):
    """The two independent assistant ecosystems."""

    CLAUDE_CODE = "claudecode"
    CODEX = "codex"

    @property
    def label(self) -> str:
        return "claude code" if self is SessionSource.CLAUDE_CODE else "codex"

    @property
    def list_label(self) -> str:
        return "cc" if self is SessionSource.CLAUDE_CODE else "codex"

    @property
    def assistant_label(self) -> str:
        return "Claude" if self is SessionSource.CLAUDE_CODE else "Codex"

    @classmethod
    def parse(cls, value: str) -> "SessionSource":
        """Accept cache keys and the short/long labels ("cc", "claude code")."""
        key = value.strip().lower().replace("-", " ").replace("_", " ")
        for source in cls:
            if key in (source.value, source.label, source.list_label, source.label.replace(" ", "")):
                return source
        raise ValueError(f"unknown session source: {value!r}")


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _dt_from_str(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


@dataclass
class Session:
    """One normalized conversation from either source."""

    # Identity
    id: str
    source: SessionSource

    # Project context
    project_path: str = ""

    # Timing
    started_at: Optional[datetime] = None
    last_active_at: Optional[datetime] = None

    # Metadata
    model: Optional[str] = None
    reasoning_effort: Optional[str] = None  # Codex only

    # Transcript location, read lazily
    transcript_ref: Optional[str] = None
    size_bytes: int = 0

    display: str = ""

    # Codex: metadata came only from turn_context records, never session_meta
    orphaned_context: bool = False

    @property
    def key(self) -> tuple[str, str]:
        return (self.source.value, self.id)

    @property
    def short_id(self) -> str:
        return self.id[:8]

    @property
    def project_name(self) -> str:
        return Path(self.project_path).name if self.project_path else ""

    @property
    def sort_time(self) -> datetime:
        return self.last_active_at or self.started_at or EPOCH

    def to_dict(self) -> dict:
        data = asdict(self)
        data["source"] = self.source.value
        data["started_at"] = _dt_to_str(self.started_at)
        data["last_active_at"] = _dt_to_str(self.last_active_at)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        return cls(
            id=data["id"],
            source=SessionSource(data["source"]),
            project_path=data.get("project_path", ""),
            started_at=_dt_from_str(data.get("started_at")),
            last_active_at=_dt_from_str(data.get("last_active_at")),
            model=data.get("model"),
            reasoning_effort=data.get("reasoning_effort"),
            transcript_ref=data.get("transcript_ref"),
            size_bytes=int(data.get("size_bytes", 0)),
            display=data.get("display", ""),
            orphaned_context=bool(data.get("orphaned_context", False)),
        )


@dataclass
class HistoryEntry:
    """One line of a source's append-only history log."""

    session_id: str
    timestamp: Optional[datetime]
    model: Optional[str] = None
    cwd: Optional[str] = None
    display: str = ""

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = _dt_to_str(self.timestamp)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "HistoryEntry":
        return cls(
            session_id=data["session_id"],
            timestamp=_dt_from_str(data.get("timestamp")),
            model=data.get("model"),
            cwd=data.get("cwd"),
            display=data.get("display", ""),
        )


@dataclass(frozen=True)
class SourceFingerprint:
    """Cheap proxy for "has this file changed since the cache was written"."""

    path: str
    size: int
    mtime_ns: int
    digest: str = ""  # content hash, only when mtime is unusable

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SourceFingerprint":
        return cls(
            path=str(data["path"]),
            size=int(data["size"]),
            mtime_ns=int(data["mtime_ns"]),
            digest=str(data.get("digest", "")),
        )


@dataclass
class Message:
    """A normalized transcript message."""

    kind: str  # record type: "user", "assistant", "system", ...
    role: str
    text: str
    model: str = ""
    is_api_error: bool = False
    timestamp: str = ""
    blocks: list = field(default_factory=list)


@dataclass
class SearchResult:
    """A single search hit: the session and the first matching line."""

    session: Session
    role: str  # "user" or "assistant"
    match_text: str

    @property
    def session_id(self) -> str:
        return self.session.id


class LookupStatus(str, Enum):
    FOUND = "found"
    AMBIGUOUS = "ambiguous"
    NOT_FOUND = "not_found"


@dataclass
class PrefixLookup:
    """Outcome of an id-prefix lookup."""

    status: LookupStatus
    matches: list[Session] = field(default_factory=list)

    @property
    def session(self) -> Optional[Session]:
        if self.status is LookupStatus.FOUND:
            return self.matches[0]
        return None


@dataclass
class ResumeDirective:
    """What to run to resume a session; spawning it is the caller's job."""

    executable_candidates: list[str]
    arguments: list[str]
    model_flag: Optional[tuple[str, str]] = None
    reasoning_effort_flag: Optional[tuple[str, str]] = None
    working_directory: Optional[str] = None

    def argv(self, executable: str) -> list[str]:
        """Full argument vector for one of the candidate executables."""
        argv = [executable, *self.arguments]
        if self.model_flag:
            argv.extend(self.model_flag)
        if self.reasoning_effort_flag:
            argv.extend(self.reasoning_effort_flag)
        return argv
