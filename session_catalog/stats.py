"""Per-source statistics. Sources are never summed or interleaved."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional

from .index import SessionIndex
from .models import EPOCH, SessionSource

DEFAULT_DAYS = 14
TOP_MODELS = 8


@dataclass
class SourceStats:
    source: SessionSource
    sessions: int = 0
    resumable_sessions: int = 0
    history_entries: int = 0
    first_session_date: Optional[date] = None
    top_models: list[tuple[str, int]] = field(default_factory=list)
    daily_sessions: list[tuple[date, int]] = field(default_factory=list)
    hourly_sessions: list[int] = field(default_factory=lambda: [0] * 24)


@dataclass
class StatsReport:
    computed_on: date
    days: int
    sources: list[SourceStats]

    def for_source(self, source: SessionSource) -> SourceStats:
        for row in self.sources:
            if row.source is source:
                return row
        raise KeyError(source)


def rank_models(model_counts: Counter, last_used: dict[str, datetime], limit: int = TOP_MODELS) -> list[tuple[str, int]]:
    """Most used first; ties go to the most recently used model."""
    ranked = sorted(
        model_counts.items(),
        key=lambda item: (item[1], last_used.get(item[0], EPOCH), item[0]),
        reverse=True,
    )
    return ranked[:limit]


def source_stats(index: SessionIndex, source: SessionSource, days: int, today: date) -> SourceStats:
    """Stats for one source, counting resumable and non-resumable sessions alike."""
    row = SourceStats(source=source, history_entries=index.history_counts.get(source, 0))
    model_counts: Counter = Counter()
    last_used: dict[str, datetime] = {}
    window_start = today - timedelta(days=days - 1)
    daily: Counter = Counter()

    for session in index.sessions(source):
        row.sessions += 1
        if session.model:
            model_counts[session.model] += 1
            if session.model not in last_used or session.sort_time > last_used[session.model]:
                last_used[session.model] = session.sort_time

        if session.started_at or session.last_active_at:
            first = (session.started_at or session.last_active_at).astimezone().date()
            if row.first_session_date is None or first < row.first_session_date:
                row.first_session_date = first

        if session.last_active_at is None:
            continue
        local = session.last_active_at.astimezone()
        row.hourly_sessions[local.hour] += 1
        day = local.date()
        if window_start <= day <= today:
            daily[day] += 1

    row.resumable_sessions = len(index.all(source))
    row.top_models = rank_models(model_counts, last_used)
    row.daily_sessions = [(window_start + timedelta(days=i), daily[window_start + timedelta(days=i)])
                          for i in range(days)]
    return row


def build_stats(index: SessionIndex, days: int = DEFAULT_DAYS, today: Optional[date] = None) -> StatsReport:
    """Compute a StatsReport with one independent section per source."""
    today = today or datetime.now().astimezone().date()
    days = max(days, 1)
    return StatsReport(
        computed_on=today,
        days=days,
        sources=[source_stats(index, source, days, today) for source in SessionSource],
    )
