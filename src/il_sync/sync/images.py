"""Image references embedded in document content.

Documents reference images with the markdown-style ``![alt](target)``
syntax.  A target is *local* when it is a relative path (uploaded on
push) and *remote* when it is an absolute URL; remote targets on the
configured blob host are downloaded on pull and rewritten to a bare
local filename.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import PurePosixPath
from urllib.parse import unquote, urlparse

from il_sync.sync.models import ImageRef

IMAGE_REF_PATTERN = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)")
REMOTE_IMAGE_PATTERN = re.compile(r"!\[([^\]]*)\]\((https?://[^)]+)\)")


def find_image_refs(content: str) -> list[ImageRef]:
    """Return every image reference in *content*, in order, without
    duplicates."""
    refs: list[ImageRef] = []
    for match in IMAGE_REF_PATTERN.finditer(content):
        ref = ImageRef(alt=match.group(1), target=match.group(2))
        if ref not in refs:
            refs.append(ref)
    return refs


def local_image_refs(content: str) -> list[ImageRef]:
    """Return the distinct references in *content* that point at local files."""
    return [ref for ref in find_image_refs(content) if ref.is_local]


def replace_ref(content: str, ref: ImageRef, target: str) -> str:
    """Replace every exact ``![alt](old)`` span of *ref* with one pointing
    at *target*.  Nothing else in *content* is touched."""
    return content.replace(ref.markdown, ref.with_target(target).markdown)


def is_blob_url(url: str, blob_host: str) -> bool:
    """True when *url* is served by *blob_host* (or one of its subdomains)."""
    host = (urlparse(url).hostname or "").lower()
    blob_host = blob_host.lower()
    return host == blob_host or host.endswith("." + blob_host)


def blob_filename(url: str) -> str:
    """Local filename for a blob *url*: its final path segment.

    Falls back to ``"image"`` when the URL path has no usable segment.
    """
    name = PurePosixPath(unquote(urlparse(url).path)).name
    if name in ("", ".", ".."):
        return "image"
    return name


def rewrite_remote_refs(
    content: str,
    blob_host: str,
    fetch: Callable[[ImageRef], str | None],
) -> str:
    """Rewrite blob-host image references in *content*.

    *fetch* is called once per matching reference and returns the new
    target (normally the local filename), or ``None`` to leave the
    reference as it is.  References to other hosts are never passed to
    *fetch*.
    """

    def _replace(match: re.Match) -> str:
        ref = ImageRef(alt=match.group(1), target=match.group(2))
        if not is_blob_url(ref.target, blob_host):
            return match.group(0)
        target = fetch(ref)
        if target is None:
            return match.group(0)
        return ref.with_target(target).markdown

    return REMOTE_IMAGE_PATTERN.sub(_replace, content)
