"""Read and write the outer ``ar`` container of a ``.deb``."""

import hashlib
import io
import logging
import os
import tarfile
import tempfile
from pathlib import Path
from typing import BinaryIO, List, Tuple

from debpack.errors import ArchiveIOError
from debpack.manifest import MANIFEST_FILE, parse_manifest

logger = logging.getLogger(__name__)

AR_MAGIC = b"!<arch>\n"
VERSION_MARKER = b"2.0\n"
MEMBER_NAMES = ("debian-binary", "control.tar.gz", "data.tar.gz")


def _ar_header(name: str, size: int, mtime: int = 0) -> bytes:
    if len(name) > 16:
        raise ValueError(f"Name '{name}' too long for simple ar (16 char max).")
    header = (
        name.ljust(16) +
        str(mtime).ljust(12) +
        "0".ljust(6) +
        "0".ljust(6) +
        "100644".ljust(8) +
        str(size).ljust(10) +
        "`\n"
    ).encode("ascii")
    if len(header) != 60:
        raise RuntimeError("Ar header not 60 bytes.")
    return header


def _add_ar_member(ar_file: BinaryIO, name: str, content: bytes, mtime: int = 0):
    ar_file.write(_ar_header(name, len(content), mtime))
    ar_file.write(content)
    if len(content) % 2 == 1:
        ar_file.write(b"\n")


def write_package(output: Path, control_tgz: bytes, data_tgz: bytes,
                  version_marker: bytes = VERSION_MARKER, mtime: int = 0) -> Path:
    """
    Write the three-member container to ``output``.

    Content goes to a temporary file in the same directory which is renamed
    over ``output`` only after every member has been flushed to disk.
    """
    output = Path(output)
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{output.name}.", suffix=".partial", dir=output.parent)
    except OSError as e:
        raise ArchiveIOError(f"Cannot create {output}: {e}") from e

    try:
        with os.fdopen(fd, "wb") as ar:
            ar.write(AR_MAGIC)
            _add_ar_member(ar, MEMBER_NAMES[0], version_marker, mtime)
            _add_ar_member(ar, MEMBER_NAMES[1], control_tgz, mtime)
            _add_ar_member(ar, MEMBER_NAMES[2], data_tgz, mtime)
            ar.flush()
            os.fsync(ar.fileno())
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, output)
    except BaseException as e:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        if isinstance(e, OSError):
            raise ArchiveIOError(f"Failed to write {output}: {e}") from e
        raise

    logger.info(f"Wrote {output} ({output.stat().st_size:,} bytes)")
    return output


def read_members(fp: BinaryIO) -> List[Tuple[str, bytes]]:
    if fp.read(8) != AR_MAGIC:
        raise ValueError("Missing ar global header")
    members = []
    while True:
        hdr = fp.read(60)
        if not hdr:
            break
        if len(hdr) < 60:
            raise ValueError("Truncated member header")
        name = hdr[0:16].decode("ascii", "ignore").strip().rstrip("/")
        size = int(hdr[48:58].decode("ascii").strip() or "0")
        data = fp.read(size)
        if len(data) != size:
            raise ValueError(f"Truncated member {name!r}")
        if size % 2 == 1:
            fp.read(1)
        members.append((name, data))
    return members


def read_package(path: Path) -> List[Tuple[str, bytes]]:
    with open(path, "rb") as f:
        return read_members(f)


def _strip_dot(name: str) -> str:
    return name[2:] if name.startswith("./") else name


def read_tar_member(tgz: bytes, name: str) -> bytes:
    """Return the content of ``name`` (with or without a leading ``./``) from a tar.gz."""
    with tarfile.open(fileobj=io.BytesIO(tgz), mode="r:gz") as tar:
        for member in tar.getmembers():
            if member.isreg() and _strip_dot(member.name) == _strip_dot(name):
                return tar.extractfile(member).read()
    raise KeyError(name)


def verify_package(path: Path) -> List[str]:
    """Check a built package; an empty list means it is well formed."""
    try:
        members = read_package(path)
    except (OSError, ValueError) as e:
        return [f"cannot read ar archive: {e}"]

    problems = []
    order = tuple(n for n, _ in members)
    if order != MEMBER_NAMES:
        problems.append(f"member order is {list(order)}, expected {list(MEMBER_NAMES)}")
    contents = dict(members)
    if contents.get("debian-binary") != VERSION_MARKER:
        problems.append("wrong debian-binary contents")

    control_tgz = contents.get("control.tar.gz")
    data_tgz = contents.get("data.tar.gz")
    if control_tgz is None or data_tgz is None:
        return problems + ["missing control.tar.gz or data.tar.gz"]

    try:
        read_tar_member(control_tgz, "control")
    except KeyError:
        problems.append("control file missing inside control.tar.gz")
    except (tarfile.TarError, OSError, EOFError) as e:
        return problems + [f"cannot read control.tar.gz: {e}"]

    try:
        manifest = parse_manifest(read_tar_member(control_tgz, MANIFEST_FILE).decode("utf-8", "surrogateescape"))
    except KeyError:
        return problems + ["md5sums missing inside control.tar.gz"]

    with tarfile.open(fileobj=io.BytesIO(control_tgz), mode="r:gz") as tar:
        for member in tar:
            if member.uid != 0 or member.gid != 0:
                problems.append(f"control.tar.gz: {member.name} is not owned by 0:0")

    try:
        actual = {}
        with tarfile.open(fileobj=io.BytesIO(data_tgz), mode="r:gz") as tar:
            for member in tar:
                if member.isreg():
                    digest = hashlib.md5(tar.extractfile(member).read()).hexdigest()
                    actual[_strip_dot(member.name)] = digest
                if member.uid != 0 or member.gid != 0:
                    problems.append(f"{member.name} is not owned by 0:0")
    except (tarfile.TarError, OSError, EOFError) as e:
        return problems + [f"cannot read data.tar.gz: {e}"]

    if actual != manifest:
        missing = sorted(set(actual) - set(manifest))
        extra = sorted(set(manifest) - set(actual))
        changed = sorted(k for k in set(actual) & set(manifest) if actual[k] != manifest[k])
        for rel in missing:
            problems.append(f"{rel} not listed in md5sums")
        for rel in extra:
            problems.append(f"{rel} listed in md5sums but not in data.tar.gz")
        for rel in changed:
            problems.append(f"md5 mismatch for {rel}")
    return problems
