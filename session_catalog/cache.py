"""On-disk session cache.

The cache is one JSON document holding, per source, the sessions a
reader produced, the fingerprints of the files it read, and the
per-file state that lets the next read skip unchanged files::

    {"schema_version": 3,
     "sources": {"claudecode": {"fingerprints": [...], "sessions": [...],
                                "history_entries": 12, "skipped_lines": 0,
                                "history": {"fingerprint": {...}, "offset": 2048,
                                            "head_digest": "...", "entries": [...],
                                            "skipped_lines": 0},
                                "files": [{"fingerprint": {...},
                                           "transcripts": [...],
                                           "skipped_lines": 0}]},
                 "codex": {...}}}

Writes go to a temporary file in the same directory which is then
renamed over the target, so a concurrent reader sees either the old or
the new document, never a partial one.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

from .config import SCHEMA_VERSION
from .fingerprint import describe_difference, fingerprints_equal
from .models import Session, SessionSource, SourceFingerprint
from .providers.base import ReaderState

logger = logging.getLogger(__name__)


@dataclass
class SourcePartition:
    """Cached output of one source's reader."""

    fingerprints: list[SourceFingerprint] = field(default_factory=list)
    sessions: list[Session] = field(default_factory=list)
    history_entries: int = 0
    skipped_lines: int = 0
    state: ReaderState = field(default_factory=ReaderState)

    def to_dict(self) -> dict:
        return {
            "fingerprints": [fp.to_dict() for fp in self.fingerprints],
            "sessions": [s.to_dict() for s in self.sessions],
            "history_entries": self.history_entries,
            "skipped_lines": self.skipped_lines,
            **self.state.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SourcePartition":
        return cls(
            fingerprints=[SourceFingerprint.from_dict(fp) for fp in data.get("fingerprints", [])],
            sessions=[Session.from_dict(s) for s in data.get("sessions", [])],
            history_entries=int(data.get("history_entries", 0)),
            skipped_lines=int(data.get("skipped_lines", 0)),
            state=ReaderState.from_dict(data),
        )


@dataclass
class CacheSnapshot:
    schema_version: int = SCHEMA_VERSION
    sources: dict[SessionSource, SourcePartition] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "schema_version": self.schema_version,
            "sources": {source.value: part.to_dict() for source, part in sorted(self.sources.items())},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CacheSnapshot":
        sources = {}
        for key, part in data["sources"].items():
            sources[SessionSource(key)] = SourcePartition.from_dict(part)
        return cls(schema_version=int(data["schema_version"]), sources=sources)


class CacheStatus(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    UNREADABLE = "unreadable"


@dataclass
class CacheDecision:
    status: CacheStatus
    stale_sources: list[SessionSource] = field(default_factory=list)

    def is_stale(self, source: SessionSource) -> bool:
        return self.status is CacheStatus.UNREADABLE or source in self.stale_sources


def validate(
    snapshot: Optional[CacheSnapshot],
    live: Mapping[SessionSource, list[SourceFingerprint]],
) -> CacheDecision:
    """Compare a cached snapshot against live fingerprints.

    Pure: no filesystem access. A missing snapshot or schema mismatch is
    UNREADABLE (every source rebuilds); otherwise each source whose
    fingerprint set differs, or that the snapshot lacks, is listed stale.
    """
    if snapshot is None or snapshot.schema_version != SCHEMA_VERSION:
        return CacheDecision(CacheStatus.UNREADABLE, list(live.keys()))

    stale = []
    for source, fingerprints in live.items():
        partition = snapshot.sources.get(source)
        if partition is None:
            stale.append(source)
        elif not fingerprints_equal(partition.fingerprints, fingerprints):
            logger.debug(
                f"{source.label} cache stale: {describe_difference(partition.fingerprints, fingerprints)}"
            )
            stale.append(source)

    if stale:
        return CacheDecision(CacheStatus.STALE, stale)
    return CacheDecision(CacheStatus.FRESH)


class CacheManager:
    """Sole reader and writer of the snapshot file."""

    def __init__(self, cache_path: Path):
        self.cache_path = Path(cache_path)

    def load(self) -> Optional[CacheSnapshot]:
        """Load the snapshot, or None if missing, corrupt or from another schema."""
        try:
            with open(self.cache_path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.info(f"Ignoring unreadable cache {self.cache_path}: {e}")
            return None

        if not isinstance(data, dict) or data.get("schema_version") != SCHEMA_VERSION:
            logger.info(f"Ignoring cache {self.cache_path}: schema version mismatch")
            return None
        try:
            return CacheSnapshot.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.info(f"Ignoring malformed cache {self.cache_path}: {e}")
            return None

    def store(self, snapshot: CacheSnapshot) -> bool:
        """Atomically replace the snapshot file. Failures are logged, not raised."""
        tmp_name = None
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.cache_path.name}.", suffix=".tmp", dir=self.cache_path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot.to_dict(), f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.cache_path)
            tmp_name = None
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to write session cache {self.cache_path}: {e}")
            return False
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def clear(self) -> bool:
        """Delete the snapshot file. Returns whether one existed."""
        try:
            self.cache_path.unlink()
            return True
        except FileNotFoundError:
            return False
