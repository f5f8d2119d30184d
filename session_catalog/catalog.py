"""Build the session index, reusing the on-disk cache wherever it is still valid."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .cache import CacheDecision, CacheManager, CacheSnapshot, CacheStatus, SourcePartition, validate
from .config import CatalogConfig
from .fingerprint import fingerprint_files
from .index import SessionIndex
from .models import SessionSource
from .providers import get_all_readers
from .providers.base import SourceReader

logger = logging.getLogger(__name__)


@dataclass
class LoadReport:
    """What happened during one load: cache outcome, re-read sources, warnings."""

    decision: Optional[CacheDecision] = None
    reread: list[SessionSource] = field(default_factory=list)
    parsed_files: dict[SessionSource, list[str]] = field(default_factory=dict)
    warnings: dict[SessionSource, list[str]] = field(default_factory=dict)
    skipped_lines: dict[SessionSource, int] = field(default_factory=dict)
    cache_written: bool = False


class SessionCatalog:
    """Readers + fingerprints + cache -> SessionIndex."""

    def __init__(self, config: CatalogConfig,
                 cache: Optional[CacheManager] = None,
                 readers: Optional[dict[SessionSource, SourceReader]] = None):
        self.config = config
        self.cache = cache or CacheManager(config.cache_path)
        self.readers = readers or get_all_readers(config)
        self.report = LoadReport()

    def live_fingerprints(self) -> dict[SessionSource, list]:
        return {source: fingerprint_files(reader.discover_files()) for source, reader in self.readers.items()}

    def load(self) -> SessionIndex:
        """Load every source: cached partitions where fresh, readers where stale.

        A stale source is handed its cached per-file state, so only the
        files that changed are parsed again.
        """
        report = LoadReport()
        snapshot = self.cache.load()
        decision = validate(snapshot, self.live_fingerprints())
        report.decision = decision

        if decision.status is CacheStatus.FRESH:
            logger.debug("Session cache is fresh")
        elif decision.status is CacheStatus.UNREADABLE:
            logger.info("Session cache unreadable or missing; rebuilding all sources")
        else:
            logger.info(f"Session cache stale for: {', '.join(s.label for s in decision.stale_sources)}")

        partitions: dict[SessionSource, SourcePartition] = {}
        for source, reader in self.readers.items():
            cached = snapshot.sources.get(source) if snapshot is not None else None
            if cached is not None and not decision.is_stale(source):
                partitions[source] = cached
                continue

            result = reader.read(cached.state if cached is not None else None)
            report.reread.append(source)
            report.parsed_files[source] = result.parsed_files
            report.warnings[source] = result.warnings
            report.skipped_lines[source] = result.skipped_lines
            partitions[source] = SourcePartition(
                fingerprints=result.fingerprints,
                sessions=result.sessions,
                history_entries=len(result.history),
                skipped_lines=result.skipped_lines,
                state=result.state,
            )

        index = SessionIndex()
        for source, partition in partitions.items():
            index.set_source(source, partition.sessions, partition.history_entries)
            report.skipped_lines.setdefault(source, partition.skipped_lines)

        if report.reread:
            report.cache_written = self.cache.store(CacheSnapshot(sources=partitions))

        self.report = report
        return index


def load_index(config: Optional[CatalogConfig] = None) -> SessionIndex:
    """Convenience wrapper: load the index for the current environment."""
    return SessionCatalog(config or CatalogConfig.from_env()).load()
