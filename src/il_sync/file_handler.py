"""File handler module: tree walking, encoding-aware read, atomic write.

Provides the local filesystem primitives used by both reconcilers.
Paths handed to the sync engine are always forward-slash and relative to
the sync root, whatever the host's separator.
"""

import os
import tempfile
from collections.abc import Iterable, Iterator
from pathlib import Path

from charset_normalizer import from_bytes

# =============================================================================
# Path helpers
# =============================================================================


def relative_slash_path(root: Path, path: Path) -> str:
    """Return *path* relative to *root* with forward slashes.

    The root itself maps to ``""``.
    """
    rel = path.relative_to(root).as_posix()
    return "" if rel == "." else rel


def is_document(path: Path, extensions: Iterable[str]) -> bool:
    """True when *path* has one of the document *extensions* (case-insensitive)."""
    suffix = path.suffix.lower()
    return any(suffix == ext.lower() for ext in extensions)


def walk_tree(root: Path) -> Iterator[tuple[Path, list[str], list[str]]]:
    """Walk *root* top-down in a stable (sorted) order.

    Unreadable directories are skipped.  Hidden entries (dot-names) are
    excluded, which also keeps editor swap files and ``.git`` out of the
    sync.
    """
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
        files = sorted(f for f in filenames if not f.startswith("."))
        yield Path(dirpath), dirnames, files


# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    try:
        return (raw.decode("utf-8"), "utf-8")
    except UnicodeDecodeError:
        pass

    result = from_bytes(raw).best()
    if result is None:
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        content = str(result)
    return (content, encoding)


def write_bytes_atomic(path: Path, data: bytes) -> int:
    """Write *data* to *path* atomically, creating parent directories.

    The bytes go to a temporary file in the same directory which then
    replaces the target, so readers (and the change watcher) never see a
    half-written file.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp", prefix=".")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return len(data)


def write_file(path: Path, content: str, encoding: str = "utf-8") -> int:
    """Write text content to a file, creating parent directories as needed.

    Args:
        path: Path to the output file.
        content: String content to write.
        encoding: Encoding to use (default: utf-8).

    Returns:
        Number of bytes written.
    """
    return write_bytes_atomic(path, content.encode(encoding))
