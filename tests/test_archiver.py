# =============================================================================
# APPFORGE ARCHIVER TESTS
# =============================================================================
# Tests for the streaming ZIP writer.
# =============================================================================

import io
import stat
import zipfile
from unittest.mock import patch

import pytest

from appforge.core.archiver import ArchiveFailed, stream_archive


def unzip(chunks) -> zipfile.ZipFile:
    return zipfile.ZipFile(io.BytesIO(b"".join(chunks)))


class TestStreamArchive:
    """Test ZIP streaming."""

    def test_archive_completeness(self, reference_tree):
        """Every file appears with its relative path and exact bytes."""
        zf = unzip(stream_archive(reference_tree))

        expected = {
            p.relative_to(reference_tree).as_posix(): p.read_bytes()
            for p in reference_tree.rglob("*")
            if p.is_file()
        }
        names = {n for n in zf.namelist() if not n.endswith("/")}
        assert names == set(expected)
        for name, data in expected.items():
            assert zf.read(name) == data
        assert zf.testzip() is None

    def test_directories_included(self, reference_tree):
        zf = unzip(stream_archive(reference_tree))
        assert "values/" in zf.namelist()
        assert "charts/external/grafana/tempo/1.0.0/" in zf.namelist()

    def test_empty_directory_included(self, tmp_path):
        (tmp_path / "empty").mkdir()
        zf = unzip(stream_archive(tmp_path))
        assert zf.namelist() == ["empty/"]

    def test_streams_in_chunks(self, tmp_path):
        """Large content is emitted before the archive is finished."""
        (tmp_path / "big.bin").write_bytes(bytes(range(256)) * 4096)

        stream = stream_archive(tmp_path, compression_level=0, chunk_size=4096)
        first = next(stream)
        rest = list(stream)

        assert first
        assert len(rest) > 1
        assert unzip([first, *rest]).read("big.bin") == bytes(range(256)) * 4096

    def test_uses_deflate(self, reference_tree):
        zf = unzip(stream_archive(reference_tree))
        info = zf.getinfo("values/grafana.yaml")
        assert info.compress_type == zipfile.ZIP_DEFLATED

    def test_vanished_file_is_warning(self, tmp_path):
        (tmp_path / "keep.txt").write_text("keep")
        (tmp_path / "gone.txt").write_text("gone")

        real_from_file = zipfile.ZipInfo.from_file

        def vanish(path, arcname, **kwargs):
            if arcname == "gone.txt":
                raise FileNotFoundError(path)
            return real_from_file(path, arcname, **kwargs)

        with patch("appforge.core.archiver.zipfile.ZipInfo.from_file", side_effect=vanish):
            zf = unzip(stream_archive(tmp_path))

        assert zf.namelist() == ["keep.txt"]

    def test_read_error_is_fatal(self, tmp_path):
        (tmp_path / "locked.txt").write_text("secret")

        with patch("builtins.open", side_effect=PermissionError("denied")):
            with pytest.raises(ArchiveFailed):
                list(stream_archive(tmp_path))

    def test_compression_level_applied(self, tmp_path):
        data = "".join(str(i * i) for i in range(20000)).encode()
        (tmp_path / "squares.txt").write_bytes(data)

        stored = unzip(stream_archive(tmp_path, compression_level=0)).getinfo("squares.txt")
        packed = unzip(stream_archive(tmp_path, compression_level=9)).getinfo("squares.txt")

        assert stored.compress_size >= len(data)
        assert packed.compress_size < len(data)


class TestSymlinks:
    """Links are archived as links; their targets are never read."""

    def test_file_link_outside_root_not_followed(self, tmp_path):
        (tmp_path / "outside-secret.txt").write_text("TOP SECRET")
        workdir = tmp_path / "work"
        workdir.mkdir()
        (workdir / "link.txt").symlink_to("../outside-secret.txt")

        zf = unzip(stream_archive(workdir))

        info = zf.getinfo("link.txt")
        assert stat.S_ISLNK(info.external_attr >> 16)
        assert zf.read("link.txt") == b"../outside-secret.txt"

    def test_directory_link_not_descended(self, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "key").write_text("PRIVATE")
        workdir = tmp_path / "work"
        workdir.mkdir()
        (workdir / "shared").symlink_to(outside)

        zf = unzip(stream_archive(workdir))

        assert zf.namelist() == ["shared"]
        assert stat.S_ISLNK(zf.getinfo("shared").external_attr >> 16)
        assert zf.read("shared") == str(outside).encode()

    def test_dangling_link_archived(self, tmp_path):
        (tmp_path / "dangling").symlink_to("does-not-exist")

        zf = unzip(stream_archive(tmp_path))

        assert zf.read("dangling") == b"does-not-exist"
