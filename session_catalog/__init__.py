"""Session Catalog - a cached, resumable index of Claude Code and Codex sessions."""

__version__ = "0.1.0"

from .catalog import SessionCatalog, load_index  # noqa: E402
from .config import CatalogConfig  # noqa: E402
from .index import SessionIndex  # noqa: E402
from .models import Session, SessionSource  # noqa: E402

__all__ = [
    "CatalogConfig",
    "Session",
    "SessionCatalog",
    "SessionIndex",
    "SessionSource",
    "load_index",
]
