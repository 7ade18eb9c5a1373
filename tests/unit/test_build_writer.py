"""Unit tests for the build writer."""

import threading
from pathlib import Path

import pytest

from buildcart.core.exceptions import WriteError
from buildcart.services.build_writer import CURRENT_POINTER, BuildWriter


class CancelAfterChecks(threading.Event):
    """Event that reports itself set after a number of checks."""

    def __init__(self, checks: int):
        super().__init__()
        self.remaining = checks

    def is_set(self) -> bool:
        self.remaining -= 1
        return self.remaining < 0


class TestWriteTree:
    """Tests for materializing rendered documents."""

    def test_writes_nested_files(self, writer: BuildWriter, build_root: Path):
        root = writer.write_tree(
            "acme/v1",
            {"index.html": b"<h1>Home</h1>", "product/skates.html": b"skates"},
        )

        assert root == build_root.resolve() / "acme" / "v1"
        assert (root / "index.html").read_bytes() == b"<h1>Home</h1>"
        assert (root / "product" / "skates.html").read_bytes() == b"skates"

    def test_copies_placeholder_asset(self, writer: BuildWriter):
        root = writer.write_tree("acme/v1", {"index.html": b"home"})

        assert (root / "assets" / "placeholder.svg").is_file()

    def test_overwrites_previous_content(self, writer: BuildWriter):
        writer.write_tree("acme/v1", {"index.html": b"old"})
        root = writer.write_tree("acme/v1", {"index.html": b"new"})

        assert (root / "index.html").read_bytes() == b"new"

    def test_leaves_no_temporary_files(self, writer: BuildWriter):
        root = writer.write_tree("acme/v1", {"index.html": b"home", "a/b.html": b"b"})

        leftovers = [p for p in root.rglob("*") if p.name.endswith(".tmp")]
        assert leftovers == []

    @pytest.mark.parametrize("path", ["../escape.html", "/etc/passwd", ""])
    def test_rejects_paths_outside_namespace(self, writer: BuildWriter, path: str):
        with pytest.raises(WriteError):
            writer.write_tree("acme/v1", {path: b"x"})

    def test_io_failure_raises_write_error(self, tmp_path: Path):
        # A regular file where the build root directory should be
        blocker = tmp_path / "blocked"
        blocker.write_text("not a directory")
        writer = BuildWriter(root=blocker)

        with pytest.raises(WriteError) as exc_info:
            writer.write_tree("acme/v1", {"index.html": b"home"})

        assert exc_info.value.message.startswith("Build write failed:")

    def test_missing_static_asset_raises_write_error(self, build_root: Path, tmp_path: Path):
        writer = BuildWriter(root=build_root, static_assets=[tmp_path / "missing.svg"])

        with pytest.raises(WriteError):
            writer.write_tree("acme/v1", {"index.html": b"home"})


    def test_cancelled_before_start_writes_nothing(self, writer: BuildWriter, build_root: Path):
        cancelled = threading.Event()
        cancelled.set()

        with pytest.raises(WriteError) as exc_info:
            writer.write_tree("acme/v1", {"index.html": b"home"}, cancelled=cancelled)

        assert exc_info.value.message == "Build write failed: build write cancelled"
        assert not (build_root / "acme" / "v1").exists()

    def test_cancelled_midway_removes_partial_tree(self, writer: BuildWriter, build_root: Path):
        cancelled = CancelAfterChecks(2)
        files = {"index.html": b"home", "about.html": b"about", "cart.html": b"cart"}

        with pytest.raises(WriteError):
            writer.write_tree("acme/v1", files, cancelled=cancelled)

        assert not (build_root / "acme" / "v1").exists()

    def test_other_versions_survive_cancellation(self, writer: BuildWriter):
        previous = writer.write_tree("acme/v1", {"index.html": b"old"})
        cancelled = threading.Event()
        cancelled.set()

        with pytest.raises(WriteError):
            writer.write_tree("acme/v2", {"index.html": b"new"}, cancelled=cancelled)

        assert (previous / "index.html").read_bytes() == b"old"


class TestBuildPointer:
    """Tests for the live version pointer."""

    def test_activate_and_read_current_version(self, writer: BuildWriter, build_root: Path):
        writer.write_tree("acme/v1", {"index.html": b"home"})
        pointer = writer.activate("acme", "v1")

        assert pointer == build_root.resolve() / "acme" / CURRENT_POINTER
        assert writer.current_version("acme") == "v1"

    def test_current_version_without_pointer(self, writer: BuildWriter):
        assert writer.current_version("acme") is None

    def test_build_exists(self, writer: BuildWriter):
        writer.write_tree("acme/v1", {"index.html": b"home"})

        assert writer.build_exists("acme", "v1") is True
        assert writer.build_exists("acme", "v2") is False
