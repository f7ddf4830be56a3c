"""Tests for deterministic folder packaging."""

from __future__ import annotations

import gzip
import os
import tarfile
from pathlib import Path
from unittest.mock import patch

import pytest

from s3sync.archive import archive_name_for, package, resolve_source, write_archive
from s3sync.errors import ArchiveIOError, ConfigError, NotFoundError
from s3sync.fingerprint import digest_file


def _members(archive_path: Path) -> list[tarfile.TarInfo]:
    with tarfile.open(archive_path, "r:gz") as tar:
        return tar.getmembers()


class TestPackage:
    """Creating archives from a folder."""

    def test_creates_named_archive(self, sample_tree: Path, out_dir: Path):
        archive = package(sample_tree, output_dir=out_dir)

        assert archive.archive_name == "foo.tar.gz"
        assert archive.path == out_dir / "foo.tar.gz"
        assert archive.path.exists()
        assert archive.source_path.resolve() == sample_tree.resolve()
        assert archive.reused is False
        assert archive.size == archive.path.stat().st_size
        assert archive.digest == digest_file(archive.path)

    def test_entries_are_depth_first_and_sorted(self, sample_tree: Path, out_dir: Path):
        archive = package(sample_tree, output_dir=out_dir)
        names = [m.name for m in _members(archive.path)]

        assert names == [
            "foo",
            "foo/a.txt",
            "foo/empty",
            "foo/sub",
            "foo/sub/b.txt",
            "foo/sub/link.txt",
        ]

    def test_entry_types_and_bodies(self, sample_tree: Path, out_dir: Path):
        archive = package(sample_tree, output_dir=out_dir)

        with tarfile.open(archive.path, "r:gz") as tar:
            by_name = {m.name: m for m in tar.getmembers()}
            assert by_name["foo"].isdir()
            assert by_name["foo/empty"].isdir()
            assert by_name["foo/a.txt"].isfile()
            assert tar.extractfile("foo/a.txt").read() == b"hi"
            assert tar.extractfile("foo/sub/b.txt").read() == b"nested"

            link = by_name["foo/sub/link.txt"]
            assert link.issym()
            assert link.linkname == "../a.txt"
            assert link.size == 0

    def test_symlink_to_directory_is_not_followed(
        self, sample_tree: Path, out_dir: Path
    ):
        os.symlink("sub", sample_tree / "loop")
        archive = package(sample_tree, output_dir=out_dir)
        names = [m.name for m in _members(archive.path)]

        assert "foo/loop" in names
        assert not any(n.startswith("foo/loop/") for n in names)

    def test_gzip_header_has_no_timestamp_or_name(
        self, sample_tree: Path, out_dir: Path
    ):
        archive = package(sample_tree, output_dir=out_dir)
        header = archive.path.read_bytes()[:10]

        assert header[:2] == b"\x1f\x8b"
        flags = header[3]
        assert flags & 0x08 == 0  # FNAME
        assert header[4:8] == b"\x00\x00\x00\x00"

    def test_extractable_with_standard_gzip(self, sample_tree: Path, out_dir: Path):
        archive = package(sample_tree, output_dir=out_dir)
        raw = gzip.decompress(archive.path.read_bytes())
        assert len(raw) % 512 == 0

    def test_defaults_to_current_directory(
        self, sample_tree: Path, tmp_path: Path, monkeypatch
    ):
        cwd = tmp_path / "cwd"
        cwd.mkdir()
        monkeypatch.chdir(cwd)

        archive = package(sample_tree)

        assert archive.path.resolve() == (cwd / "foo.tar.gz").resolve()

    def test_output_inside_source_is_not_packed(self, sample_tree: Path):
        archive = package(sample_tree, output_dir=sample_tree)
        names = [m.name for m in _members(archive.path)]

        assert "foo/foo.tar.gz" not in names
        assert not any(n.endswith(".tmp") for n in names)

    def test_relative_source_is_resolved(
        self, sample_tree: Path, out_dir: Path, monkeypatch
    ):
        monkeypatch.chdir(sample_tree.parent)
        archive = package("foo", output_dir=out_dir)
        assert archive.source_path == sample_tree


class TestDeterminism:
    """Unchanged trees yield byte-identical archives."""

    def test_forced_rebuild_is_byte_identical(
        self, sample_tree: Path, out_dir: Path
    ):
        first = package(sample_tree, output_dir=out_dir)
        first_bytes = first.path.read_bytes()

        second = package(sample_tree, output_dir=out_dir, force=True)

        assert second.reused is False
        assert second.path.read_bytes() == first_bytes
        assert second.digest == first.digest

    def test_separate_outputs_match(self, sample_tree: Path, tmp_path: Path):
        a = package(sample_tree, output_dir=tmp_path / "a")
        b = package(sample_tree, output_dir=tmp_path / "b")
        assert a.digest == b.digest

    def test_content_change_changes_digest(self, sample_tree: Path, out_dir: Path):
        before = package(sample_tree, output_dir=out_dir)
        (sample_tree / "a.txt").write_bytes(b"changed")
        after = package(sample_tree, output_dir=out_dir, force=True)
        assert after.digest != before.digest


class TestReuse:
    """An existing archive is kept unless forced."""

    def test_existing_archive_is_reused(self, sample_tree: Path, out_dir: Path):
        first = package(sample_tree, output_dir=out_dir)
        mtime = first.path.stat().st_mtime_ns

        (sample_tree / "a.txt").write_bytes(b"changed after packaging")
        second = package(sample_tree, output_dir=out_dir)

        assert second.reused is True
        assert second.digest == first.digest
        assert second.path.stat().st_mtime_ns == mtime

    def test_digest_is_recomputed_on_reuse(self, sample_tree: Path, out_dir: Path):
        """A reused archive is fingerprinted from its current bytes."""
        archive_path = out_dir / "foo.tar.gz"
        archive_path.write_bytes(b"hi")

        archive = package(sample_tree, output_dir=out_dir)

        assert archive.reused is True
        assert archive.digest == "SfaKXIST7CwL9ImCHCH8Ow=="

    def test_force_rewrites(self, sample_tree: Path, out_dir: Path):
        archive_path = out_dir / "foo.tar.gz"
        archive_path.write_bytes(b"stale")

        archive = package(sample_tree, output_dir=out_dir, force=True)

        assert archive.reused is False
        assert archive.path.read_bytes() != b"stale"


class TestFailures:
    """Missing sources and read errors."""

    def test_missing_source(self, tmp_path: Path):
        with pytest.raises(NotFoundError):
            package(tmp_path / "nope")

    def test_source_is_a_file(self, tmp_path: Path):
        f = tmp_path / "file.txt"
        f.write_text("x")
        with pytest.raises(NotFoundError):
            resolve_source(f)

    def test_root_has_no_name(self):
        with pytest.raises(ConfigError):
            archive_name_for(Path("/"))

    def test_read_error_leaves_no_archive(self, sample_tree: Path, out_dir: Path):
        real_open = open

        def failing_open(path, *args, **kwargs):
            if str(path).endswith("b.txt"):
                raise PermissionError("denied")
            return real_open(path, *args, **kwargs)

        with patch("s3sync.archive.open", failing_open, create=True):
            with pytest.raises(ArchiveIOError):
                package(sample_tree, output_dir=out_dir)

        assert list(out_dir.iterdir()) == []

    def test_failed_rebuild_keeps_previous_archive(
        self, sample_tree: Path, out_dir: Path
    ):
        good = package(sample_tree, output_dir=out_dir)
        good_bytes = good.path.read_bytes()

        with patch("s3sync.archive._add_entry", side_effect=OSError("disk gone")):
            with pytest.raises(ArchiveIOError):
                write_archive(sample_tree, good.path)

        assert good.path.read_bytes() == good_bytes
        assert sorted(p.name for p in out_dir.iterdir()) == ["foo.tar.gz"]
