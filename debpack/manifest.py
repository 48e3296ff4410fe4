"""md5 manifest of a staged tree, in the format of a package's ``md5sums`` member."""

import hashlib
import logging
import os
from pathlib import Path
from typing import Dict

from debpack.errors import ArchiveIOError

logger = logging.getLogger(__name__)

MANIFEST_FILE = "md5sums"
CHUNK_SIZE = 65536


def _sort_key(relpath: str) -> bytes:
    return relpath.encode("utf-8", "surrogateescape")


def file_md5(path: Path) -> str:
    h = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def raise_walk_error(err: OSError):
    """``os.walk`` onerror hook: a directory that cannot be listed aborts the walk."""
    raise ArchiveIOError(f"Cannot list {err.filename}: {err.strerror or err}") from err


def list_regular_files(root: Path):
    """Relative POSIX paths of every regular file under root, byte-wise sorted."""
    found = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=raise_walk_error):
        for name in filenames:
            full = os.path.join(dirpath, name)
            if os.path.islink(full) or not os.path.isfile(full):
                continue
            found.append(Path(os.path.relpath(full, root)).as_posix())
    return sorted(found, key=_sort_key)


def compute_manifest(root: Path) -> Dict[str, str]:
    root = Path(root)
    manifest: Dict[str, str] = {}
    for relpath in list_regular_files(root):
        try:
            manifest[relpath] = file_md5(root / relpath)
        except OSError as e:
            raise ArchiveIOError(f"Cannot hash {relpath}: {e}") from e
    logger.debug(f"Hashed {len(manifest)} file(s) under {root}")
    return manifest


def render_manifest(manifest: Dict[str, str]) -> str:
    return "".join(f"{digest}  {relpath}\n" for relpath, digest in manifest.items())


def parse_manifest(text: str) -> Dict[str, str]:
    manifest: Dict[str, str] = {}
    for line in text.splitlines():
        if not line.strip():
            continue
        digest, _, relpath = line.partition("  ")
        manifest[relpath] = digest
    return manifest


def write_manifest(root: Path, dest: Path) -> Dict[str, str]:
    manifest = compute_manifest(root)
    try:
        Path(dest).write_text(render_manifest(manifest), encoding="utf-8",
                              errors="surrogateescape", newline="\n")
    except OSError as e:
        raise ArchiveIOError(f"Cannot write manifest {dest}: {e}") from e
    return manifest
