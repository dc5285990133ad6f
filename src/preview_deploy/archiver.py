"""Deterministic ZIP archives of build directories, preserving modes and symlinks."""
import io
import logging
import os
import shutil
import stat
import tempfile
import zipfile
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

logger = logging.getLogger(__name__)

# Fixed timestamp so identical trees produce identical bytes
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)

# lrwxrwxrwx
SYMLINK_MODE = stat.S_IFLNK | 0o777

# ZipInfo.create_system value for UNIX hosts, required for external_attr modes
UNIX_SYSTEM = 3

MAX_COMPRESSION_LEVEL = 9


class Compression(Enum):
    """Compression strategies available to call sites."""
    STORE = "store"
    MAX_DEFLATE = "deflate"

    @property
    def zip_method(self) -> int:
        return zipfile.ZIP_STORED if self is Compression.STORE else zipfile.ZIP_DEFLATED

    @property
    def level(self) -> Optional[int]:
        return None if self is Compression.STORE else MAX_COMPRESSION_LEVEL


def iter_entries(directory: Path) -> Iterator[Path]:
    """Yield regular files and symlinks under directory in sorted order, never following links."""
    with os.scandir(directory) as it:
        entries = sorted(it, key=lambda entry: entry.name)

    for entry in entries:
        path = Path(entry.path)
        if entry.is_symlink():
            yield path
        elif entry.is_dir(follow_symlinks=False):
            yield from iter_entries(path)
        elif entry.is_file(follow_symlinks=False):
            yield path
        else:
            logger.debug(f"Skipping special file {path}")


def _read_file(path: Path) -> bytes:
    return path.read_bytes()


def _entry_info(name: str, mode: int, compression: Compression) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=ZIP_EPOCH)
    info.create_system = UNIX_SYSTEM
    info.external_attr = (mode & 0xFFFF) << 16
    info.compress_type = compression.zip_method
    return info


def archive_directory(
    directory: Union[str, Path],
    compression: Compression = Compression.MAX_DEFLATE,
) -> bytes:
    """
    Archive every file and symlink below directory into an in-memory ZIP.

    Symlinks are stored as their target string with SYMLINK_MODE; regular
    files keep their permission bits. Entry names are POSIX paths relative to
    directory.

    Raises:
        OSError: If any entry cannot be read. No partial archive is returned.
    """
    root = Path(directory)
    buffer = io.BytesIO()
    count = 0

    with zipfile.ZipFile(buffer, "w", compression=compression.zip_method) as zipf:
        for path in iter_entries(root):
            name = path.relative_to(root).as_posix()
            st = path.lstat()
            if stat.S_ISLNK(st.st_mode):
                data = os.fsencode(os.readlink(path))
                info = _entry_info(name, SYMLINK_MODE, compression)
            else:
                data = _read_file(path)
                info = _entry_info(name, st.st_mode, compression)
            zipf.writestr(info, data, compress_type=compression.zip_method, compresslevel=compression.level)
            count += 1

    archive = buffer.getvalue()
    logger.info(f"Archived {root} ({len(archive)} bytes, {count} entries, {compression.value})")
    return archive


def archive_with_root_folder(
    directory: Union[str, Path],
    extra_directories: Optional[Dict[str, Union[str, Path]]] = None,
    compression: Compression = Compression.MAX_DEFLATE,
) -> bytes:
    """
    Archive directory so its own folder name is the top-level entry.

    The tree is staged into a temporary directory that is removed on every exit
    path. extra_directories maps additional top-level names to source trees;
    missing sources are skipped.
    """
    source = Path(directory).resolve()
    with tempfile.TemporaryDirectory(prefix="zip-") as temp_dir:
        staging = Path(temp_dir)
        shutil.copytree(source, staging / source.name, symlinks=True)
        for name, extra in (extra_directories or {}).items():
            if extra and Path(extra).exists():
                shutil.copytree(extra, staging / name, symlinks=True)
        return archive_directory(staging, compression)


def extract_archive(data: bytes, destination: Union[str, Path]) -> List[Path]:
    """Extract an archive produced by archive_directory, restoring modes and symlinks."""
    dest_root = Path(destination)
    extracted = []

    with zipfile.ZipFile(io.BytesIO(data)) as zipf:
        for info in zipf.infolist():
            name = Path(info.filename)
            if name.is_absolute() or ".." in name.parts:
                raise ValueError(f"Refusing to extract unsafe entry: {info.filename}")

            target = dest_root / name
            target.parent.mkdir(parents=True, exist_ok=True)
            mode = info.external_attr >> 16
            content = zipf.read(info)

            if stat.S_ISLNK(mode):
                os.symlink(os.fsdecode(content), target)
            else:
                target.write_bytes(content)
                if mode:
                    os.chmod(target, stat.S_IMODE(mode))
            extracted.append(target)

    return extracted
