"""Claude Code source reader."""

import logging
from pathlib import Path
from typing import Optional

from ..models import SessionSource
from . import register_reader
from .base import (
    INTERNAL_TYPES,
    HistorySummary,
    ReadResult,
    SourceReader,
    TranscriptInfo,
    content_text,
    iter_json_lines,
    looks_like_session_id,
    normalize_model,
    parse_iso,
)

logger = logging.getLogger(__name__)

SUBAGENT_FILE_PREFIX = "agent-"


def encode_path(path: str) -> str:
    """Project directory name Claude Code uses for a cwd."""
    return path.replace("/", "-")


def decode_path(encoded: str) -> str:
    """Decode directory name back to original path (lossy for dashes)."""
    return encoded.replace("-", "/")


def is_prompt_text(text: str) -> bool:
    """Whether user text is something a human typed (not an injected tag block)."""
    stripped = text.strip()
    if not stripped:
        return False
    return not stripped.startswith(("<system-reminder>", "<local-command", "<command-name", "<command-message"))


@register_reader
class ClaudeCodeReader(SourceReader):
    """Reader for ``~/.claude/history.jsonl`` and ``~/.claude/projects``."""

    source = SessionSource.CLAUDE_CODE
    display_name = "Claude Code"

    def discover_transcripts(self) -> list[Path]:
        """Discover all JSONL transcript files, one directory per project."""
        files = []
        for root in self.paths.transcript_roots:
            if not root.is_dir():
                continue
            try:
                project_dirs = sorted(root.iterdir())
            except OSError as e:
                logger.info(f"Cannot list {root}: {e}")
                continue
            for project_dir in project_dirs:
                if not project_dir.is_dir():
                    continue
                for jsonl_file in sorted(project_dir.glob("*.jsonl")):
                    if jsonl_file.name.startswith(SUBAGENT_FILE_PREFIX):
                        continue
                    files.append(jsonl_file)
        return files

    def read_transcript(self, path: Path, result: ReadResult) -> list[TranscriptInfo]:
        """Parse a Claude Code JSONL transcript."""
        try:
            size = path.stat().st_size
        except OSError:
            result.warn(f"{path} disappeared before it could be read")
            return []

        info = TranscriptInfo(session_id=path.stem, path=path, size=size)
        embedded_id = ""
        saw_record = False

        for data in iter_json_lines(path, result):
            msg_type = data.get("type")
            if msg_type in INTERNAL_TYPES:
                continue
            saw_record = True

            if not embedded_id and isinstance(data.get("sessionId"), str):
                embedded_id = data["sessionId"]
            if not info.cwd and isinstance(data.get("cwd"), str):
                info.cwd = data["cwd"]
            info.touch(parse_iso(data.get("timestamp")))

            message = data.get("message")
            if not isinstance(message, dict):
                continue

            if msg_type == "assistant":
                model = normalize_model(message.get("model"))
                if model:
                    info.model = model
            elif msg_type == "user" and not info.first_prompt and not data.get("isMeta"):
                text = content_text(message.get("content"))
                if is_prompt_text(text):
                    info.first_prompt = text.split("\n")[0].strip()

        if not saw_record:
            return []

        if not looks_like_session_id(path.stem) and embedded_id:
            info.session_id = embedded_id
        if not info.cwd:
            info.cwd = decode_path(path.parent.name)
        return [info]

    def pick_transcript(self, current: TranscriptInfo, candidate: TranscriptInfo,
                        history: Optional[HistorySummary]) -> TranscriptInfo:
        """Prefer the transcript stored under the history's project dir, else the newest."""
        if history and history.project:
            expected = encode_path(history.project)
            if candidate.path.parent.name == expected and current.path.parent.name != expected:
                return candidate
            if current.path.parent.name == expected:
                return current
        if candidate.last_ts and (current.last_ts is None or candidate.last_ts > current.last_ts):
            return candidate
        return current
