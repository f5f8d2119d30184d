"""Decide whether a session can be resumed, and how."""

import os
from pathlib import Path
from typing import Iterable, Optional, Sequence

from .config import DEFAULT_RESUME_COMMANDS
from .models import ResumeDirective, Session, SessionSource
from .providers.base import normalize_model
from .providers.codex import normalize_effort

MODEL_FLAGS = {
    SessionSource.CLAUDE_CODE: "--model",
    SessionSource.CODEX: "-m",
}


def is_resumable(session: Session) -> bool:
    """A session is resumable iff its transcript is still a readable file,
    it has an id, and (Codex) its metadata did not come solely from
    turn_context records with no session_meta ever seen.
    """
    if not session.id:
        return False
    if session.source is SessionSource.CODEX and session.orphaned_context:
        return False
    if not session.transcript_ref:
        return False
    path = Path(session.transcript_ref)
    return path.is_file() and os.access(path, os.R_OK)


def most_recent_model(sessions: Iterable[Session], source: SessionSource,
                      exclude_id: str = "") -> Optional[str]:
    """Model of the newest other session of the same source that recorded one."""
    best = None
    for session in sessions:
        if session.source is not source or session.id == exclude_id or not session.model:
            continue
        if best is None or session.sort_time > best.sort_time:
            best = session
    return best.model if best else None


def resume_directive(
    session: Session,
    fallback_model: Optional[str] = None,
    commands: Optional[dict[SessionSource, Sequence[str]]] = None,
) -> ResumeDirective:
    """Build the command to continue a session in its own assistant."""
    commands = commands or DEFAULT_RESUME_COMMANDS
    if session.source is SessionSource.CLAUDE_CODE:
        arguments = ["--resume", session.id]
    else:
        arguments = ["resume", session.id]

    model = normalize_model(session.model) or normalize_model(fallback_model)
    model_flag = (MODEL_FLAGS[session.source], model) if model else None

    effort_flag = None
    if session.source is SessionSource.CODEX:
        effort = normalize_effort(session.reasoning_effort)
        if effort:
            effort_flag = ("-c", f'model_reasoning_effort="{effort}"')

    return ResumeDirective(
        executable_candidates=list(commands[session.source]),
        arguments=arguments,
        model_flag=model_flag,
        reasoning_effort_flag=effort_flag,
        working_directory=session.project_path or None,
    )
