import hashlib
import os
import shutil

import pytest

from conftest import tar_contents, tar_infos
from debpack.assembler import assemble, build_tar_gz
from debpack.errors import ArchiveIOError, ValidationError


def test_data_archive_roundtrip(tmp_path, staging_root, demo_metadata):
    (staging_root / "etc" / "demo").mkdir(parents=True)
    (staging_root / "etc" / "demo" / "conf.ini").write_text("[a]\nb = 1\n")

    _, data_tgz = assemble(staging_root, None, demo_metadata)
    data = tar_contents(data_tgz)

    assert data["./usr/local/bin/hello"] == b"hi"
    assert data["./etc/demo/conf.ini"] == b"[a]\nb = 1\n"
    assert "." in data and data["."] is None
    assert "./usr/local/bin" in data


def test_data_entries_are_relative_and_sorted(staging_root, demo_metadata):
    (staging_root / "a").write_bytes(b"")

    _, data_tgz = assemble(staging_root, None, demo_metadata)
    names = [m.name for m in tar_infos(data_tgz)]

    assert names[0] == "."
    assert all(n == "." or n.startswith("./") for n in names)
    assert names[1:] == sorted(names[1:])


def test_ownership_and_mtime_normalized(staging_root, demo_metadata):
    control_tgz, data_tgz = assemble(staging_root, None, demo_metadata, mtime=1234)

    for tgz in (control_tgz, data_tgz):
        for member in tar_infos(tgz):
            assert (member.uid, member.gid) == (0, 0)
            assert (member.uname, member.gname) == ("root", "root")
            assert member.mtime == 1234


def test_control_archive_has_manifest_and_record(staging_root, demo_metadata):
    control_tgz, _ = assemble(staging_root, None, demo_metadata)
    control = tar_contents(control_tgz)

    md5 = hashlib.md5(b"hi").hexdigest()
    assert control["./md5sums"] == f"{md5}  usr/local/bin/hello\n".encode()
    assert b"Package: demo\n" in control["./control"]


def test_control_overrides_are_included(tmp_path, staging_root, demo_metadata):
    debian = tmp_path / "debian"
    debian.mkdir()
    (debian / "postinst").write_text("#!/bin/sh\nexit 0\n")
    (debian / "conffiles").write_text("/etc/demo/conf.ini\n")

    control_tgz, _ = assemble(staging_root, debian, demo_metadata)
    modes = {m.name: m.mode for m in tar_infos(control_tgz)}

    assert modes["./postinst"] == 0o755
    assert modes["./conffiles"] == 0o644
    assert modes["./control"] == 0o644
    assert sorted(modes) == [".", "./conffiles", "./control", "./md5sums", "./postinst"]


def test_supplied_control_record_passes_through(tmp_path, staging_root, demo_metadata):
    debian = tmp_path / "debian"
    debian.mkdir()
    supplied = b"Package: handmade\nVersion: 7\nArchitecture: amd64\nDescription: x\n"
    (debian / "control").write_bytes(supplied)

    control_tgz, _ = assemble(staging_root, debian, demo_metadata)

    assert tar_contents(control_tgz)["./control"] == supplied


def test_missing_override_dir_is_skipped(tmp_path, staging_root, demo_metadata):
    control_tgz, _ = assemble(staging_root, tmp_path / "nope", demo_metadata)

    assert sorted(tar_contents(control_tgz)) == [".", "./control", "./md5sums"]


def test_inputs_are_not_modified(tmp_path, staging_root, demo_metadata):
    debian = tmp_path / "debian"
    debian.mkdir()
    (debian / "postinst").write_text("#!/bin/sh\n")

    assemble(staging_root, debian, demo_metadata)

    assert sorted(p.name for p in debian.iterdir()) == ["postinst"]
    assert sorted(p.relative_to(staging_root).as_posix() for p in staging_root.rglob("*")) == [
        "usr", "usr/local", "usr/local/bin", "usr/local/bin/hello",
    ]


def test_symlinks_are_archived_as_links(staging_root, demo_metadata):
    os.symlink("hello", staging_root / "usr" / "local" / "bin" / "hey")

    control_tgz, data_tgz = assemble(staging_root, None, demo_metadata)
    link = next(m for m in tar_infos(data_tgz) if m.name == "./usr/local/bin/hey")

    assert link.issym() and link.linkname == "hello"
    assert b"usr/local/bin/hey" not in tar_contents(control_tgz)["./md5sums"]


def test_identical_inputs_give_identical_bytes(tmp_path, staging_root, demo_metadata):
    first = assemble(staging_root, None, demo_metadata)
    copy = tmp_path / "copy"
    shutil.copytree(staging_root, copy)
    os.utime(copy / "usr" / "local" / "bin" / "hello", (1, 1))

    second = assemble(copy, None, demo_metadata)

    assert first == second


def test_missing_root_is_a_validation_error(tmp_path, demo_metadata):
    with pytest.raises(ValidationError):
        assemble(tmp_path / "missing", None, demo_metadata)


def test_compression_failure_is_io_error(staging_root, demo_metadata, monkeypatch):
    import debpack.assembler as assembler

    def broken(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(assembler, "_gzip", broken)

    with pytest.raises(ArchiveIOError, match="disk full"):
        assemble(staging_root, None, demo_metadata)


def test_build_tar_gz_keeps_file_modes(tmp_path):
    (tmp_path / "tool").write_bytes(b"#!/bin/sh\n")
    (tmp_path / "tool").chmod(0o750)

    member = next(m for m in tar_infos(build_tar_gz(tmp_path)) if m.name == "./tool")

    assert member.mode == 0o750


def test_unlistable_directory_aborts_archive(tmp_path, monkeypatch):
    (tmp_path / "locked").mkdir()
    (tmp_path / "locked" / "hidden").write_bytes(b"x")
    real_scandir = os.scandir

    def scandir(path="."):
        if os.path.basename(os.fspath(path)) == "locked":
            raise PermissionError(13, "Permission denied", os.fspath(path))
        return real_scandir(path)

    monkeypatch.setattr(os, "scandir", scandir)

    with pytest.raises(ArchiveIOError, match="Cannot list .*locked"):
        build_tar_gz(tmp_path)


def test_symlinked_maintainer_script_is_archived_as_file(tmp_path, staging_root, demo_metadata):
    scripts = tmp_path / "scripts"
    scripts.mkdir()
    (scripts / "postinst").write_text("#!/bin/sh\nexit 0\n")
    (scripts / "postinst").chmod(0o644)
    debian = tmp_path / "debian"
    debian.mkdir()
    os.symlink("../scripts/postinst", debian / "postinst")

    control_tgz, _ = assemble(staging_root, debian, demo_metadata)
    infos = {m.name: m for m in tar_infos(control_tgz)}

    assert infos["./postinst"].isreg()
    assert infos["./postinst"].mode == 0o755
    assert tar_contents(control_tgz)["./postinst"] == b"#!/bin/sh\nexit 0\n"
