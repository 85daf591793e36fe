# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# THE ARCHIVER - STREAMING ZIP WRITER
# -----------------------------------------------------------------------------
# Responsibility: Serialize a tailored working copy into a ZIP, handing out
# bytes as they are produced. The archive is never held in memory whole.
#
# zipfile writes to an unseekable sink here, so every entry gets a data
# descriptor and we can drain the sink after each chunk.
# -----------------------------------------------------------------------------

import io
import os
import stat
import time
import zipfile
from collections.abc import Iterator
from pathlib import Path

from rich.console import Console

console = Console()

CHUNK_SIZE = 64 * 1024


class ArchiveFailed(Exception):
    """Raised when a file in the working copy cannot be archived."""

    pass


class _ChunkSink(io.RawIOBase):
    """Write-only, unseekable buffer that gets emptied by the generator."""

    def __init__(self) -> None:
        super().__init__()
        self._buffer = bytearray()
        self._position = 0

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        self._buffer += data
        self._position += len(data)
        return len(data)

    def tell(self) -> int:
        return self._position

    def drain(self) -> bytes:
        data = bytes(self._buffer)
        self._buffer.clear()
        return data


def _walk(root: Path) -> Iterator[tuple[Path, str]]:
    """
    Every directory and file under root, sorted, with its archive name.

    Directory names end in "/". Symlinks to directories are not descended
    into and keep a plain name, so they are archived as links.
    """
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        base = Path(dirpath)
        for name in dirnames:
            path = base / name
            arcname = path.relative_to(root).as_posix()
            yield path, arcname if path.is_symlink() else arcname + "/"
        for name in sorted(filenames):
            path = base / name
            yield path, path.relative_to(root).as_posix()


def _set_compress_level(zinfo: zipfile.ZipInfo, level: int) -> None:
    if hasattr(zinfo, "compress_level"):
        zinfo.compress_level = level
    else:
        # Python < 3.13
        zinfo._compresslevel = level


def _link_entry(path: Path, arcname: str) -> tuple[zipfile.ZipInfo, bytes]:
    """A ZIP entry holding the link text itself, never the target's bytes."""
    st = path.lstat()
    date_time = max(time.localtime(st.st_mtime)[:6], (1980, 1, 1, 0, 0, 0))
    zinfo = zipfile.ZipInfo(arcname, date_time)
    zinfo.create_system = 3
    zinfo.external_attr = (stat.S_IFLNK | 0o777) << 16
    return zinfo, os.readlink(path).encode("utf-8", "surrogateescape")


def stream_archive(
    root: Path, compression_level: int = 9, chunk_size: int = CHUNK_SIZE
) -> Iterator[bytes]:
    """
    Stream root as a ZIP archive.

    Args:
        root: Directory to archive (paths are stored relative to it).
        compression_level: Deflate level, 0-9.
        chunk_size: Read size per file chunk.

    Yields:
        Non-empty chunks of ZIP bytes.

    Raises:
        ArchiveFailed: If any file cannot be read. A file that vanished
            between walk and read is only a warning.
    """
    root = Path(root)
    sink = _ChunkSink()
    entries = 0

    try:
        with zipfile.ZipFile(
            sink,
            mode="w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=compression_level,
            strict_timestamps=False,
        ) as zf:
            for path, arcname in _walk(root):
                if path.is_symlink():
                    try:
                        zinfo, target = _link_entry(path, arcname)
                    except FileNotFoundError:
                        console.print(f"[yellow][ZIP] Skipping vanished link: {arcname}[/yellow]")
                        continue
                    zf.writestr(zinfo, target)
                    entries += 1
                    data = sink.drain()
                    if data:
                        yield data
                    continue

                if arcname.endswith("/"):
                    try:
                        zf.write(path, arcname)
                    except FileNotFoundError:
                        console.print(f"[yellow][ZIP] Skipping vanished dir: {arcname}[/yellow]")
                        continue
                    entries += 1
                    continue

                try:
                    zinfo = zipfile.ZipInfo.from_file(path, arcname, strict_timestamps=False)
                    src = open(path, "rb")
                except FileNotFoundError:
                    console.print(f"[yellow][ZIP] Skipping vanished file: {arcname}[/yellow]")
                    continue

                zinfo.compress_type = zipfile.ZIP_DEFLATED
                _set_compress_level(zinfo, compression_level)
                with src, zf.open(zinfo, mode="w") as dest:
                    while True:
                        chunk = src.read(chunk_size)
                        if not chunk:
                            break
                        dest.write(chunk)
                        data = sink.drain()
                        if data:
                            yield data
                entries += 1

                data = sink.drain()
                if data:
                    yield data
    except OSError as e:
        console.print(f"[red][ZIP] Archive failed: {e}[/red]")
        raise ArchiveFailed(f"Cannot archive {root.name}: {e}") from e

    data = sink.drain()
    if data:
        yield data

    console.print(f"[green][ZIP] Archived {entries} entries ({sink.tell()} bytes)[/green]")
