#!/usr/bin/env python3
"""Session Catalog - browse and resume Claude Code and Codex sessions.

Entry point for the CLI application.
"""

import argparse
import json
import logging
import sys
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .catalog import SessionCatalog
from .config import CatalogConfig
from .formatting import (
    LARGE_TRANSCRIPT_BYTES,
    human_file_size,
    list_time,
    relative_time,
    session_id_hex_tail,
    short_project,
    truncate,
)
from .index import SessionIndex
from .models import LookupStatus, Session, SessionSource
from .search import InvalidSearchPattern, SearchEngine, parse_date_value
from .stats import build_stats
from .transcript import iter_messages

console = Console()


def _sources(args) -> Optional[list[SessionSource]]:
    if not getattr(args, "source", None):
        return None
    return [SessionSource.parse(args.source)]


def _load(config: CatalogConfig) -> SessionIndex:
    catalog = SessionCatalog(config)
    index = catalog.load()
    for source, count in catalog.report.skipped_lines.items():
        if count:
            console.print(f"[yellow]{count} lines skipped in source {source.label}[/yellow]", highlight=False)
    return index


def _resolve(index: SessionIndex, text: str) -> Optional[Session]:
    lookup = index.find_by_prefix(text)
    if lookup.status is LookupStatus.NOT_FOUND:
        console.print(f"No session matches: {text}")
        return None
    if lookup.status is LookupStatus.AMBIGUOUS:
        console.print(f"Ambiguous id prefix {text!r} matches {len(lookup.matches)} sessions:")
        for s in lookup.matches[:10]:
            console.print(f"  {s.source.list_label:<6} {s.id}  {escape(truncate(s.display, 60))}", highlight=False)
        return None
    return lookup.session


def cmd_list(args, config: CatalogConfig):
    """List resumable sessions, newest first."""
    index = _load(config)
    sessions = index.newest_first(_sources(args))
    if args.project:
        sessions = [s for s in sessions if args.project.lower() in s.project_path.lower()]
    if args.since:
        since = parse_date_value(args.since)
        if since is None:
            console.print(f"Invalid --since value: {args.since}")
            return 1
        sessions = [s for s in sessions if s.last_active_at and s.last_active_at >= since]
    sessions = sessions[:args.limit]

    if args.json:
        print(json.dumps([s.to_dict() for s in sessions], indent=2))
        return 0

    if not sessions:
        console.print("No sessions found.")
        return 0

    table = Table(show_header=True, header_style="bold")
    table.add_column("Source")
    table.add_column("ID")
    table.add_column("When")
    table.add_column("Size", justify="right")
    table.add_column("Project")
    table.add_column("Session")
    for s in sessions:
        size = human_file_size(s.size_bytes) if s.size_bytes else "—"
        if s.size_bytes > LARGE_TRANSCRIPT_BYTES:
            size = f"[red]{size}[/red]"
        table.add_row(
            s.source.list_label,
            session_id_hex_tail(s.id),
            list_time(s.last_active_at),
            size,
            escape(short_project(s.project_path)),
            escape(truncate(s.display, 60)),
        )
    console.print(table)
    return 0


def cmd_show(args, config: CatalogConfig):
    """Print a session's conversation."""
    index = _load(config)
    session = _resolve(index, args.session_id)
    if session is None:
        return 1

    console.print(f"Session: {escape(truncate(session.display, 120))}", highlight=False)
    console.print(f"Source: {session.source.list_label}")
    console.print(f"Session ID (full): {session.id}", highlight=False)
    console.print(f"{short_project(session.project_path)}  ·  {relative_time(session.last_active_at)}",
                  highlight=False)
    console.print()

    try:
        messages = [m for m in iter_messages(session) if m.kind in ("user", "assistant")]
    except OSError as e:
        console.print(f"Cannot read transcript: {e}")
        return 1
    if args.tail:
        messages = messages[-args.tail:]

    assistant = session.source.assistant_label
    for msg in messages:
        if not msg.text:
            continue
        if msg.kind == "user":
            if msg.text.startswith(("<local-command", "<command-name")):
                continue
            console.print(f"[bold]You:[/bold] {escape(msg.text)}", highlight=False)
        elif msg.is_api_error:
            console.print(f"[red]Error:[/red] {escape(truncate(msg.text, 500))}", highlight=False)
        elif msg.model and msg.model != "<synthetic>":
            console.print(f"[bold]{assistant} ({msg.model}):[/bold] {escape(msg.text)}", highlight=False)
        else:
            console.print(f"[bold]{assistant}:[/bold] {escape(msg.text)}", highlight=False)
        console.print()
    return 0


def cmd_resume(args, config: CatalogConfig):
    """Print how to resume a session (the caller decides whether to exec it)."""
    index = _load(config)
    session = _resolve(index, args.session_id)
    if session is None:
        return 1

    directive = index.resume_directive(session, config.resume_commands)
    if args.json:
        print(json.dumps({
            "executable_candidates": directive.executable_candidates,
            "arguments": directive.arguments,
            "model_flag": list(directive.model_flag) if directive.model_flag else None,
            "reasoning_effort_flag": list(directive.reasoning_effort_flag) if directive.reasoning_effort_flag else None,
            "working_directory": directive.working_directory,
        }, indent=2))
        return 0

    if directive.working_directory:
        console.print(f"cd {directive.working_directory}", highlight=False)
    for executable in directive.executable_candidates:
        console.print(" ".join(directive.argv(executable)), highlight=False)
    return 0


def cmd_search(args, config: CatalogConfig):
    """Regex search across transcripts."""
    index = _load(config)
    engine = SearchEngine(index)
    try:
        results = engine.search(
            args.pattern,
            sources=_sources(args),
            project=args.project,
            max_results=args.limit,
        )
    except InvalidSearchPattern as e:
        console.print(f"[red]{escape(str(e))}[/red]", highlight=False)
        return 2

    if not results:
        console.print("No matches found.")
        return 0

    console.print(f"{len(results)} match(es)\n")
    for result in results:
        s = result.session
        role_label = "You" if result.role == "user" else s.source.assistant_label
        console.print(f"{s.short_id}  {relative_time(s.last_active_at)}  {short_project(s.project_path)}",
                      highlight=False)
        console.print(f"  {escape(truncate(s.display, 80))}", highlight=False)
        console.print(f"  {role_label}: {escape(truncate(result.match_text, 100))}\n", highlight=False)
    if engine.skipped:
        console.print(f"[yellow]{len(engine.skipped)} session(s) skipped (unreadable transcript)[/yellow]")
    return 0


def _bar(count: int, max_count: int, width: int = 30) -> str:
    if max_count <= 0:
        return ""
    return "█" * min(count * width // max_count, width)


def cmd_stats(args, config: CatalogConfig):
    """Per-source usage statistics."""
    index = _load(config)
    report = build_stats(index, days=args.days)

    console.print(f"Computed: {report.computed_on.isoformat()}")
    for row in report.sources:
        console.print()
        console.print(f"[bold]{row.source.label.upper()}:[/bold]")
        first = row.first_session_date.isoformat() if row.first_session_date else "—"
        console.print(f"  Sessions: {row.sessions:,} ({row.resumable_sessions:,} resumable)")
        console.print(f"  History entries: {row.history_entries:,}")
        console.print(f"  First session: {first}")

        if row.top_models:
            console.print("  Top models:")
            for model, count in row.top_models:
                console.print(f"    {model:<32} {count:>6,}", highlight=False)

        console.print(f"  Last {report.days} days:")
        max_day = max((c for _, c in row.daily_sessions), default=0)
        for day, count in row.daily_sessions:
            console.print(f"    {day.isoformat()} {count:>5} {_bar(count, max_day)}", highlight=False)
    return 0


def cmd_cache(args, config: CatalogConfig):
    """Inspect or clear the session cache."""
    catalog = SessionCatalog(config)
    if args.action == "clear":
        if catalog.cache.clear():
            console.print(f"Cleared session cache: {config.cache_path}")
        else:
            console.print("No cache file found.")
        return 0

    snapshot = catalog.cache.load()
    if snapshot is None:
        console.print(f"Session cache: not found or unreadable ({config.cache_path})")
        return 0
    size = config.cache_path.stat().st_size
    console.print(f"Session cache: {config.cache_path}")
    console.print(f"  Schema version: {snapshot.schema_version}")
    console.print(f"  Size: {human_file_size(size)}")
    for source, partition in sorted(snapshot.sources.items()):
        console.print(
            f"  {source.label}: {len(partition.sessions)} sessions, "
            f"{len(partition.fingerprints)} files, {partition.skipped_lines} skipped lines"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Browse and resume Claude Code and Codex sessions",
        prog="session-catalog",
    )
    parser.add_argument("--version", "-V", action="store_true", help="Show version")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    list_parser = subparsers.add_parser("list", help="List resumable sessions (default)")
    list_parser.add_argument("--source", "-s", help="cc/claude-code or codex")
    list_parser.add_argument("--project", "-p", help="Filter by project path substring")
    list_parser.add_argument("--since", help="Only sessions active since (e.g. 7d, 2024-01-15)")
    list_parser.add_argument("--limit", "-l", type=int, default=50, help="Max sessions to show")
    list_parser.add_argument("--json", action="store_true", help="JSON output")

    show_parser = subparsers.add_parser("show", help="Show a session's conversation")
    show_parser.add_argument("session_id", help="Session id or unique prefix")
    show_parser.add_argument("--tail", "-t", type=int, help="Only the last N messages")

    resume_parser = subparsers.add_parser("resume", help="Print the command that resumes a session")
    resume_parser.add_argument("session_id", help="Session id or unique prefix")
    resume_parser.add_argument("--json", action="store_true", help="JSON output")

    search_parser = subparsers.add_parser("search", help="Regex search across transcripts")
    search_parser.add_argument("pattern", help="Case-insensitive regular expression")
    search_parser.add_argument("--source", "-s", help="cc/claude-code or codex")
    search_parser.add_argument("--project", "-p", help="Filter by project path substring")
    search_parser.add_argument("--limit", "-l", type=int, default=20, help="Max sessions to show")

    stats_parser = subparsers.add_parser("stats", help="Per-source statistics")
    stats_parser.add_argument("--days", "-d", type=int, default=14, help="Days in the activity histogram")

    cache_parser = subparsers.add_parser("cache", help="Manage the session cache")
    cache_parser.add_argument("action", choices=["clear", "info"], help="Cache action")

    return parser


def main(argv: Optional[list[str]] = None, config: Optional[CatalogConfig] = None) -> int:
    """Main entry point for session-catalog CLI."""
    if argv is None:
        argv = sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.version:
        from . import __version__
        print(f"session-catalog {__version__}")
        return 0

    config = config or CatalogConfig.from_env()
    commands = {
        "list": cmd_list,
        "show": cmd_show,
        "resume": cmd_resume,
        "search": cmd_search,
        "stats": cmd_stats,
        "cache": cmd_cache,
    }
    if args.command is None:
        args = parser.parse_args([*argv, "list"])
    try:
        return commands[args.command](args, config)
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]", highlight=False)
        return 2


if __name__ == "__main__":
    sys.exit(main())
