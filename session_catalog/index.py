"""In-memory index of every known session, per source."""

from typing import Callable, Iterable, Iterator, Optional

from .models import LookupStatus, PrefixLookup, Session, SessionSource
from .resume import is_resumable, most_recent_model, resume_directive


class SessionIndex:
    """Owns all Session objects for the process lifetime.

    Sessions are kept per source, newest ``last_active_at`` first.
    Sessions from different sources are never merged, even when their
    ids collide.
    """

    def __init__(self, sessions_by_source: Optional[dict[SessionSource, Iterable[Session]]] = None,
                 history_counts: Optional[dict[SessionSource, int]] = None):
        self._by_source: dict[SessionSource, list[Session]] = {source: [] for source in SessionSource}
        self._by_key: dict[tuple[str, str], Session] = {}
        self.history_counts: dict[SessionSource, int] = {source: 0 for source in SessionSource}
        for source, sessions in (sessions_by_source or {}).items():
            self.set_source(source, sessions, (history_counts or {}).get(source, 0))

    def set_source(self, source: SessionSource, sessions: Iterable[Session], history_entries: int = 0) -> None:
        """Replace one source's sessions."""
        for old in self._by_source[source]:
            self._by_key.pop(old.key, None)
        ordered = []
        for session in sessions:
            if session.source is not source:
                raise ValueError(f"session {session.id} belongs to {session.source.label}, not {source.label}")
            if session.key in self._by_key:
                continue
            self._by_key[session.key] = session
            ordered.append(session)
        ordered.sort(key=lambda s: (s.sort_time, s.id), reverse=True)
        self._by_source[source] = ordered
        self.history_counts[source] = history_entries

    def sessions(self, source: SessionSource) -> list[Session]:
        """Every session of a source, resumable or not, newest first."""
        return list(self._by_source[source])

    def all(self, source: SessionSource) -> list[Session]:
        """Resumable sessions of a source, newest first."""
        return [s for s in self._by_source[source] if is_resumable(s)]

    def filter(self, predicate: Callable[[Session], bool],
               sources: Optional[Iterable[SessionSource]] = None) -> Iterator[Session]:
        """Lazily yield resumable sessions matching ``predicate``, one source after another."""
        for source in (sources or SessionSource):
            for session in self._by_source[source]:
                if is_resumable(session) and predicate(session):
                    yield session

    def newest_first(self, sources: Optional[Iterable[SessionSource]] = None) -> list[Session]:
        """Resumable sessions of the given sources merged newest first (each labelled by ``source``)."""
        merged = [s for source in (sources or SessionSource) for s in self.all(source)]
        merged.sort(key=lambda s: (s.sort_time, s.id), reverse=True)
        return merged

    def get_exact(self, source: SessionSource, session_id: str) -> Optional[Session]:
        return self._by_key.get((source.value, session_id))

    def find_by_prefix(self, text: str, sources: Optional[Iterable[SessionSource]] = None) -> PrefixLookup:
        """Resolve an id or id prefix among resumable sessions.

        An exact id match beats prefix matches. More than one candidate
        at the winning level is AMBIGUOUS, none is NOT_FOUND.
        """
        text = text.strip()
        if not text:
            return PrefixLookup(LookupStatus.NOT_FOUND)

        exact, prefixed = [], []
        for session in self.filter(lambda s: s.id.startswith(text), sources):
            (exact if session.id == text else prefixed).append(session)

        for candidates in (exact, prefixed):
            if len(candidates) == 1:
                return PrefixLookup(LookupStatus.FOUND, candidates)
            if candidates:
                return PrefixLookup(LookupStatus.AMBIGUOUS, candidates)
        return PrefixLookup(LookupStatus.NOT_FOUND)

    def fallback_model(self, session: Session) -> Optional[str]:
        """The source's most recently used model, for sessions that never recorded one."""
        if session.model:
            return session.model
        return most_recent_model(self._by_source[session.source], session.source, exclude_id=session.id)

    def resume_directive(self, session: Session, commands=None):
        return resume_directive(session, self.fallback_model(session), commands)

    def to_dicts(self) -> dict[str, list[dict]]:
        return {source.value: [s.to_dict() for s in self._by_source[source]] for source in SessionSource}

    def __len__(self) -> int:
        return len(self._by_key)
