"""Source reader registry."""

from typing import Type

from ..config import CatalogConfig
from ..models import SessionSource
from .base import SourceReader

# Registry of all source readers, keyed by source
_READERS: dict[SessionSource, Type[SourceReader]] = {}


def register_reader(reader_class: Type[SourceReader]) -> Type[SourceReader]:
    """Decorator to register a reader class."""
    _READERS[reader_class.source] = reader_class
    return reader_class


def get_reader(source: SessionSource, config: CatalogConfig) -> SourceReader:
    """Get a reader for one source, wired to that source's paths."""
    return _READERS[source](config.paths_for(source))


def get_all_readers(config: CatalogConfig) -> dict[SessionSource, SourceReader]:
    """Get one reader per known source, in SessionSource order."""
    return {source: get_reader(source, config) for source in SessionSource if source in _READERS}


# Import readers to trigger registration
from . import claude_code  # noqa: F401, E402
from . import codex  # noqa: F401, E402
