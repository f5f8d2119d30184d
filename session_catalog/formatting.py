"""Display helpers shared by CLI output."""

from datetime import datetime
from pathlib import Path
from typing import Optional

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")
LARGE_TRANSCRIPT_BYTES = 1_048_576


def truncate(text: str, max_len: int = 100) -> str:
    """Collapse whitespace and truncate text with ellipsis."""
    text = " ".join(text.split())
    if len(text) <= max_len:
        return text
    return text[:max(max_len - 3, 0)] + "..."


def human_file_size(size: int) -> str:
    if size <= 0:
        return "0 B"
    value = float(size)
    unit = 0
    while value >= 1024.0 and unit + 1 < len(SIZE_UNITS):
        value /= 1024.0
        unit += 1
    if unit == 0:
        return f"{value:.0f} {SIZE_UNITS[unit]}"
    if value >= 10.0:
        return f"{value:.1f} {SIZE_UNITS[unit]}"
    return f"{value:.2f} {SIZE_UNITS[unit]}"


def _ago(when: datetime, now: Optional[datetime]) -> Optional[str]:
    now = now or datetime.now().astimezone()
    delta = now - when
    mins = int(delta.total_seconds() // 60)
    if mins < 1:
        return "just now"
    if mins < 60:
        return f"{mins}m ago"
    if mins < 24 * 60:
        return f"{mins // 60}h ago"
    return None


def relative_time(when: Optional[datetime], now: Optional[datetime] = None) -> str:
    """"5m ago" / "3h ago" for recent times, the local date otherwise."""
    if when is None:
        return "—"
    return _ago(when, now) or when.astimezone().strftime("%Y-%m-%d")


def list_time(when: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Like relative_time, but older values also show the clock time."""
    if when is None:
        return "—"
    return _ago(when, now) or when.astimezone().strftime("%Y-%m-%d %H:%M")


def short_project(project: str, home: Optional[Path] = None) -> str:
    """Abbreviate the home directory prefix to ``~``."""
    home_s = str(home or Path.home())
    if project.startswith(home_s):
        return "~" + project[len(home_s):]
    return project


def session_id_hex_tail(session_id: str, count: int = 5) -> str:
    """Last ``count`` hex digits of an id (the last characters if it has fewer)."""
    hex_chars = [c for c in session_id if c in "0123456789abcdefABCDEF"]
    if len(hex_chars) >= count:
        return "".join(hex_chars[-count:])
    return session_id[-count:]
