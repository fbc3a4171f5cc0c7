"""Deterministic identifiers derived from sync-root-relative paths.

The same relative path always maps to the same identifier, so a push that
is re-run (after a crash, or simply on the next debounce) re-derives the
ids it used before and the remote store upserts instead of duplicating.
"""

from __future__ import annotations

import hashlib


def derive_id(path: str) -> str:
    """Return a UUID-shaped identifier for *path*.

    The identifier is the first 16 bytes of the SHA-256 digest of the
    UTF-8 encoded path, laid out as ``8-4-4-4-12`` hex groups.  No version
    or variant bits are set; the remote only needs the shape.

    Args:
        path: Forward-slash path relative to the sync root
            (e.g. ``"notes/today.md"``).

    Returns:
        Lower-case identifier such as
        ``"3b4c1f0a-9d2e-41aa-8f00-5e6d7c8b9a01"``.
    """
    h = hashlib.sha256(path.encode("utf-8")).hexdigest()
    return f"{h[0:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"
