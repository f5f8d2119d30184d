"""Search functionality for sessions."""

import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from .index import SessionIndex
from .models import SearchResult, Session, SessionSource
from .transcript import full_text, iter_messages

logger = logging.getLogger(__name__)

MODIFIER_PATTERN = r'\b(source|project|before|after):(\S+)'


class InvalidSearchPattern(ValueError):
    """The search pattern is not a valid regular expression."""

    def __init__(self, pattern: str, error: re.error):
        super().__init__(f"invalid regex {pattern!r}: {error}")
        self.pattern = pattern
        self.error = error


def compile_pattern(pattern: str) -> re.Pattern:
    """Compile a case-insensitive pattern; never falls back to a literal match."""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise InvalidSearchPattern(pattern, e) from e


def parse_search_query(query: str) -> tuple[str, dict]:
    """Parse search query with modifiers.

    Syntax:
        source:codex            - Filter by source ("cc", "claude-code", "codex")
        project:api-server      - Filter by project path
        before:2024-01-15       - Sessions before date
        after:2024-01-01        - Sessions after date
        after:7d                - Sessions in last 7 days
        after:1h                - Sessions in last hour

    Returns:
        (clean_query, filters_dict)
    """
    filters = {}

    for key, value in re.findall(MODIFIER_PATTERN, query):
        key = key.lower()
        if key == 'source':
            try:
                filters['sources'] = [SessionSource.parse(value)]
            except ValueError:
                filters['sources'] = []
        elif key == 'project':
            filters['project'] = value
        elif key == 'before':
            filters['before'] = parse_date_value(value)
        elif key == 'after':
            filters['after'] = parse_date_value(value)

    clean_query = re.sub(MODIFIER_PATTERN, '', query).strip()
    return clean_query, filters


def parse_date_value(value: str) -> datetime | None:
    """Parse a date value (ISO date or relative like '7d', '1h') as local time."""
    relative_match = re.match(r'^(\d+)([dhwm])$', value.lower())
    if relative_match:
        amount = int(relative_match.group(1))
        unit = relative_match.group(2)
        now = datetime.now().astimezone()

        if unit == 'h':
            return now - timedelta(hours=amount)
        elif unit == 'd':
            return now - timedelta(days=amount)
        elif unit == 'w':
            return now - timedelta(weeks=amount)
        elif unit == 'm':
            return now - timedelta(days=amount * 30)

    try:
        dt = datetime.fromisoformat(value)
        return dt if dt.tzinfo else dt.astimezone()
    except ValueError:
        pass

    for fmt in ['%Y-%m-%d', '%Y/%m/%d', '%m-%d', '%m/%d']:
        try:
            dt = datetime.strptime(value, fmt)
            # If no year, use current year
            if dt.year == 1900:
                dt = dt.replace(year=datetime.now().year)
            return dt.astimezone()
        except ValueError:
            continue

    return None


def session_in_scope(session: Session, project: Optional[str] = None,
                     before: Optional[datetime] = None, after: Optional[datetime] = None) -> bool:
    if project and project.lower() not in session.project_path.lower():
        return False
    if before and not (session.last_active_at and session.last_active_at < before):
        return False
    if after and not (session.last_active_at and session.last_active_at > after):
        return False
    return True


def first_matching_line(session: Session, pattern: re.Pattern) -> Optional[SearchResult]:
    """Stream a transcript and return its first matching non-empty line."""
    for msg in iter_messages(session, skip_internal=True):
        if not msg.text:
            continue
        for line in msg.text.splitlines():
            line = line.strip()
            if line and pattern.search(line):
                return SearchResult(session=session, role=msg.role, match_text=line)
    return None


class SearchEngine:
    """Regex search over transcripts, newest sessions first."""

    def __init__(self, index: SessionIndex):
        self.index = index
        self.skipped: list[str] = []

    def search(
        self,
        pattern: str,
        sources: Optional[Iterable[SessionSource]] = None,
        project: Optional[str] = None,
        max_results: int = 50,
        before: Optional[datetime] = None,
        after: Optional[datetime] = None,
    ) -> list[SearchResult]:
        """Find at most ``max_results`` sessions whose transcript matches ``pattern``.

        At most one hit per session; the limit applies to the whole search.
        Unreadable transcripts are skipped and noted in ``self.skipped``.
        Raises InvalidSearchPattern before touching any file.
        """
        compiled = compile_pattern(pattern)
        self.skipped = []
        results: list[SearchResult] = []
        if max_results <= 0:
            return results

        for session in self.index.newest_first(sources):
            if not session_in_scope(session, project, before, after):
                continue
            try:
                hit = first_matching_line(session, compiled)
            except OSError as e:
                logger.warning(f"Skipping {session.source.label} session {session.id}: {e}")
                self.skipped.append(session.id)
                continue
            if hit is not None:
                results.append(hit)
                if len(results) >= max_results:
                    break
        return results

    def query(self, query: str, max_results: int = 50) -> list[SearchResult]:
        """Search with inline modifiers (``source:``, ``project:``, ``before:``, ``after:``)."""
        clean_query, filters = parse_search_query(query)
        if not clean_query or filters.get('sources') == []:
            return []
        return self.search(
            clean_query,
            sources=filters.get('sources'),
            project=filters.get('project'),
            before=filters.get('before'),
            after=filters.get('after'),
            max_results=max_results,
        )


@dataclass
class _TextEntry:
    size: int
    mtime_ns: int
    text: str


class FullTextCache:
    """Lower-cased transcript text per session, reused while the file is unchanged."""

    def __init__(self):
        self._entries: dict[tuple[str, str], _TextEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def text_for(self, session: Session) -> str:
        try:
            st = os.stat(session.transcript_ref) if session.transcript_ref else None
        except OSError:
            st = None
        size, mtime_ns = (st.st_size, st.st_mtime_ns) if st else (0, 0)

        entry = self._entries.get(session.key)
        if entry is None or entry.size != size or entry.mtime_ns != mtime_ns:
            try:
                text = full_text(session).lower()
            except OSError:
                text = ""
            entry = _TextEntry(size, mtime_ns, text)
            self._entries[session.key] = entry
        return entry.text


def matches_filter(session: Session, query: str, text_cache: Optional[FullTextCache] = None) -> bool:
    """Quick filter used by list views: metadata first, transcript text last."""
    q = query.strip().lower()
    if not q:
        return True
    if (
        q in session.display.lower()
        or q in session.project_path.lower()
        or q in session.id.lower()
        or q in session.source.label
        or q in session.source.list_label
    ):
        return True
    if text_cache is None:
        return False
    return q in text_cache.text_for(session)
