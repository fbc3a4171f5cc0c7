"""End-to-end tests: push from one client, pull into another.

Both clients share one ``InMemoryGateway``, which stands in for the
remote store.
"""

from __future__ import annotations

from pathlib import Path

from il_sync.sync.gateway import InMemoryGateway
from il_sync.sync.identity import derive_id
from il_sync.sync.pull import PullReconciler
from il_sync.sync.push import PushReconciler
from il_sync.sync.state import CursorStore

from conftest import make_tree


def _files(root: Path) -> dict[str, bytes]:
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


def _dirs(root: Path) -> set[str]:
    return {p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_dir()}


class TestRoundTrip:
    def test_tree_without_images_reproduced(self, tmp_path: Path) -> None:
        gateway = InMemoryGateway()
        source = make_tree(
            tmp_path / "a",
            {
                "journal/2024/jan.md": "# January\n",
                "journal/2024/feb.md": "# February\n",
                "journal/empty/": "",
                "readme.md": "root doc",
                "ünïcode/ファイル.md": "multi-byte ✓",
            },
        )
        target = tmp_path / "b"
        target.mkdir()

        PushReconciler(source, gateway, CursorStore()).run()
        PullReconciler(target, gateway, CursorStore()).run()

        assert _files(target) == _files(source)
        assert _dirs(target) == _dirs(source)

    def test_images_travel_through_blob_store(self, tmp_path: Path) -> None:
        gateway = InMemoryGateway()
        source = make_tree(
            tmp_path / "a",
            {"notes/day.md": "![pic](assets/p.png)", "notes/assets/p.png": b"\x89PNG"},
        )
        target = tmp_path / "b"
        target.mkdir()

        PushReconciler(source, gateway, CursorStore()).run()
        report = PullReconciler(target, gateway, CursorStore()).run()

        assert report.images == 1
        assert (target / "notes/p.png").read_bytes() == b"\x89PNG"
        assert (target / "notes/day.md").read_text() == "![pic](p.png)"
        # The pushing client's own file is never rewritten
        assert (source / "notes/day.md").read_text() == "![pic](assets/p.png)"

    def test_edit_propagates_after_initial_sync(self, tmp_path: Path) -> None:
        gateway = InMemoryGateway()
        source = make_tree(tmp_path / "a", {"n/x.md": "v1"})
        target = tmp_path / "b"
        target.mkdir()
        push_store, pull_store = CursorStore(), CursorStore()

        PushReconciler(source, gateway, push_store).run()
        PullReconciler(target, gateway, pull_store).run()

        (source / "n/x.md").write_text("v2")
        PushReconciler(source, gateway, push_store).run()
        report = PullReconciler(target, gateway, pull_store).run()

        assert (target / "n/x.md").read_text() == "v2"
        assert report.documents == 1
        assert gateway.documents[derive_id("n/x.md")].content == "v2"

    def test_pulled_tree_pushes_back_without_duplicates(self, tmp_path: Path) -> None:
        gateway = InMemoryGateway()
        source = make_tree(tmp_path / "a", {"x/y/z.md": "z"})
        target = tmp_path / "b"
        target.mkdir()

        PushReconciler(source, gateway, CursorStore()).run()
        folders, documents = len(gateway.folders), len(gateway.documents)

        PullReconciler(target, gateway, CursorStore()).run()
        PushReconciler(target, gateway, CursorStore()).run()

        assert len(gateway.folders) == folders
        assert len(gateway.documents) == documents
