"""Filesystem locations for both sources and the session cache."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .models import SessionSource

SCHEMA_VERSION = 3
CACHE_FILE_NAME = f"sessions-v{SCHEMA_VERSION}.json"
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "session-catalog"

DEFAULT_RESUME_COMMANDS = {
    SessionSource.CLAUDE_CODE: ["cc", "claude"],
    SessionSource.CODEX: ["c", "codex"],
}


@dataclass
class SourcePaths:
    """Where one source keeps its history file and transcripts."""

    source: SessionSource
    home: Path
    history_file: Path
    transcript_roots: list[Path]

    @classmethod
    def claude_code(cls, home: Path) -> "SourcePaths":
        return cls(
            source=SessionSource.CLAUDE_CODE,
            home=home,
            history_file=home / "history.jsonl",
            transcript_roots=[home / "projects"],
        )

    @classmethod
    def codex(cls, home: Path) -> "SourcePaths":
        return cls(
            source=SessionSource.CODEX,
            home=home,
            history_file=home / "history.jsonl",
            transcript_roots=[home / "sessions", home / "archived_sessions"],
        )


@dataclass
class CatalogConfig:
    """Explicit configuration handed to readers, the cache and the catalog."""

    claude_code: SourcePaths
    codex: SourcePaths
    cache_path: Path
    resume_commands: dict[SessionSource, list[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_RESUME_COMMANDS.items()}
    )

    def paths_for(self, source: SessionSource) -> SourcePaths:
        if source is SessionSource.CLAUDE_CODE:
            return self.claude_code
        return self.codex

    @classmethod
    def for_home(cls, home: Path, cache_dir: Optional[Path] = None) -> "CatalogConfig":
        """Config rooted at a single home directory (``~/.claude``, ``~/.codex``)."""
        home = Path(home)
        cache_dir = cache_dir or home / ".cache" / "session-catalog"
        return cls(
            claude_code=SourcePaths.claude_code(home / ".claude"),
            codex=SourcePaths.codex(home / ".codex"),
            cache_path=cache_dir / CACHE_FILE_NAME,
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CatalogConfig":
        """Build the config from the process environment.

        Honors ``CLAUDE_CONFIG_DIR`` and ``CODEX_HOME`` (the assistants'
        own overrides) plus ``SESSION_CATALOG_CACHE_DIR``.
        """
        env = os.environ if environ is None else environ
        home = Path(env.get("HOME") or Path.home())

        claude_home = Path(env["CLAUDE_CONFIG_DIR"]) if env.get("CLAUDE_CONFIG_DIR") else home / ".claude"
        codex_home = Path(env["CODEX_HOME"]) if env.get("CODEX_HOME") else home / ".codex"
        if env.get("SESSION_CATALOG_CACHE_DIR"):
            cache_dir = Path(env["SESSION_CATALOG_CACHE_DIR"])
        elif environ is None:
            cache_dir = DEFAULT_CACHE_DIR
        else:
            cache_dir = home / ".cache" / "session-catalog"

        return cls(
            claude_code=SourcePaths.claude_code(claude_home),
            codex=SourcePaths.codex(codex_home),
            cache_path=cache_dir / CACHE_FILE_NAME,
        )
