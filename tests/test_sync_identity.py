"""Tests for path-derived identifiers."""

from __future__ import annotations

import re

from il_sync.sync.identity import derive_id

UUID_SHAPE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


class TestDeriveId:
    """Tests for derive_id()."""

    def test_known_value(self) -> None:
        """The id is the SHA-256 prefix of the path in 8-4-4-4-12 groups."""
        assert derive_id("notes/today.md") == "d0035ab4-899a-73c1-5bef-f3b4ff4a78f2"

    def test_single_character_path(self) -> None:
        assert derive_id("a") == "ca978112-ca1b-bdca-fac2-31b39a23dc4d"

    def test_deterministic(self) -> None:
        assert derive_id("x/y/z.md") == derive_id("x/y/z.md")

    def test_shape(self) -> None:
        for path in ("", "a", "deeply/nested/folder", "ünïcode/ファイル.md"):
            assert UUID_SHAPE.match(derive_id(path)), path

    def test_distinct_paths_distinct_ids(self) -> None:
        paths = ["a", "a/b", "a/b.md", "b", "A"]
        assert len({derive_id(p) for p in paths}) == len(paths)
