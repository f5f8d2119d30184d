"""File fingerprints used to decide whether cached sessions are still valid."""

import hashlib
import logging
import os
from pathlib import Path
from typing import Iterable, Optional

from .models import SourceFingerprint

logger = logging.getLogger(__name__)


def _content_digest(path: Path) -> str:
    """md5 of the file content, read in chunks."""
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1 << 16), b""):
            digest.update(chunk)
    return digest.hexdigest()


def prefix_digest(path: Path, length: int) -> str:
    """md5 of the first ``length`` bytes, to tell an appended file from a rewritten one."""
    digest = hashlib.md5()
    with open(path, "rb") as f:
        digest.update(f.read(length))
    return digest.hexdigest()


def fingerprint_file(path: Path) -> Optional[SourceFingerprint]:
    """Fingerprint one file, or None if it cannot be stat'ed."""
    try:
        st = os.stat(path)
    except OSError:
        return None

    digest = ""
    if st.st_mtime_ns <= 0:
        # Unusable mtime (some network/archive filesystems report 0)
        try:
            digest = _content_digest(path)
        except OSError:
            return None

    return SourceFingerprint(
        path=str(path),
        size=st.st_size,
        mtime_ns=st.st_mtime_ns,
        digest=digest,
    )


def fingerprint_files(paths: Iterable[Path]) -> list[SourceFingerprint]:
    """Fingerprint every path that still exists, sorted by path."""
    result = []
    for path in paths:
        fp = fingerprint_file(path)
        if fp is not None:
            result.append(fp)
    result.sort(key=lambda fp: fp.path)
    return result


def fingerprints_equal(a: Iterable[SourceFingerprint], b: Iterable[SourceFingerprint]) -> bool:
    """True iff both sets cover the same paths with identical size, mtime and digest."""
    left = {fp.path: fp for fp in a}
    right = {fp.path: fp for fp in b}
    if left.keys() != right.keys():
        return False
    return all(left[path] == right[path] for path in left)


def describe_difference(cached: Iterable[SourceFingerprint], live: Iterable[SourceFingerprint]) -> str:
    """Short human summary of what changed, for debug logging."""
    old = {fp.path: fp for fp in cached}
    new = {fp.path: fp for fp in live}
    added = len(new.keys() - old.keys())
    removed = len(old.keys() - new.keys())
    changed = sum(1 for path in old.keys() & new.keys() if old[path] != new[path])
    return f"{added} added, {removed} removed, {changed} changed"
