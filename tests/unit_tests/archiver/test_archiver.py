import io
import os
import stat
import tempfile
import zipfile

import pytest

from preview_deploy import archiver
from preview_deploy.archiver import (
    SYMLINK_MODE,
    Compression,
    archive_directory,
    archive_with_root_folder,
    extract_archive,
)
from tests.fixtures.build_trees import make_static_build, write_file


def _infos(data):
    with zipfile.ZipFile(io.BytesIO(data)) as zipf:
        return {info.filename: info for info in zipf.infolist()}


def test_entries_are_relative_posix_paths_in_sorted_order(tmp_path):
    build = make_static_build(tmp_path / "build")

    with zipfile.ZipFile(io.BytesIO(archive_directory(build))) as zipf:
        names = zipf.namelist()

    assert names == ["assets/app.js", "bin/run.sh", "index.html", "link.html"]


def test_symlink_is_stored_as_link_not_followed(tmp_path):
    build = make_static_build(tmp_path / "build")

    data = archive_directory(build)
    link = _infos(data)["link.html"]

    assert link.external_attr >> 16 == SYMLINK_MODE
    assert stat.S_ISLNK(link.external_attr >> 16)
    with zipfile.ZipFile(io.BytesIO(data)) as zipf:
        assert zipf.read("link.html") == b"index.html"


def test_permission_bits_are_preserved(tmp_path):
    build = make_static_build(tmp_path / "build")

    infos = _infos(archive_directory(build))

    assert stat.S_IMODE(infos["bin/run.sh"].external_attr >> 16) == 0o755
    assert stat.S_IMODE(infos["index.html"].external_attr >> 16) == 0o644


def test_extract_restores_tree(tmp_path):
    build = make_static_build(tmp_path / "build")
    out = tmp_path / "out"

    extract_archive(archive_directory(build), out)

    assert (out / "index.html").read_bytes() == (build / "index.html").read_bytes()
    assert (out / "link.html").is_symlink()
    assert os.readlink(out / "link.html") == "index.html"
    assert stat.S_IMODE(os.stat(out / "bin" / "run.sh").st_mode) == 0o755


def test_archive_is_deterministic_across_mtimes(tmp_path):
    build = make_static_build(tmp_path / "build")

    first = archive_directory(build)
    os.utime(build / "index.html", (0, 0))
    second = archive_directory(build)

    assert first == second


def test_store_and_deflate_strategies(tmp_path):
    build = make_static_build(tmp_path / "build")

    stored = _infos(archive_directory(build, Compression.STORE))["assets/app.js"]
    deflated = _infos(archive_directory(build, Compression.MAX_DEFLATE))["assets/app.js"]

    assert stored.compress_type == zipfile.ZIP_STORED
    assert stored.compress_size == stored.file_size
    assert deflated.compress_type == zipfile.ZIP_DEFLATED
    assert deflated.compress_size < deflated.file_size


def test_read_failure_aborts_whole_archive(tmp_path, monkeypatch):
    build = make_static_build(tmp_path / "build")

    def unreadable(path):
        raise PermissionError(f"denied: {path}")

    monkeypatch.setattr(archiver, "_read_file", unreadable)

    with pytest.raises(OSError):
        archive_directory(build)


def test_root_folder_archive_nests_build_and_extra_directories(tmp_path):
    build = make_static_build(tmp_path / ".next")
    public = tmp_path / "public"
    write_file(public / "favicon.ico", b"\x00\x01")

    names = set(_infos(archive_with_root_folder(build, {"public": public, "missing": tmp_path / "nope"})))

    assert ".next/index.html" in names
    assert ".next/link.html" in names
    assert "public/favicon.ico" in names
    assert not any(name.startswith("missing/") for name in names)


def test_root_folder_staging_is_removed(tmp_path, monkeypatch):
    build = make_static_build(tmp_path / "build")
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(scratch))

    archive_with_root_folder(build)
    assert list(scratch.iterdir()) == []

    monkeypatch.setattr(archiver, "_read_file", lambda path: (_ for _ in ()).throw(OSError("boom")))
    with pytest.raises(OSError):
        archive_with_root_folder(build)
    assert list(scratch.iterdir()) == []


def test_extract_rejects_parent_traversal(tmp_path):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zipf:
        zipf.writestr("../escape.txt", b"nope")

    with pytest.raises(ValueError):
        extract_archive(buffer.getvalue(), tmp_path / "out")
