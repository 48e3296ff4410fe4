"""Build the control and data sub-archives of a package."""

import gzip
import io
import logging
import os
import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple

from debpack.control import ControlMetadata, resolve_control
from debpack.errors import ArchiveIOError, ValidationError
from debpack.manifest import MANIFEST_FILE, raise_walk_error, write_manifest

logger = logging.getLogger(__name__)

MAINTAINER_SCRIPTS = ("preinst", "postinst", "prerm", "postrm", "config")


def _sorted_entries(src_dir: Path) -> List[str]:
    """Every directory, file and symlink below src_dir, parents before children."""
    entries = []
    for dirpath, dirnames, filenames in os.walk(src_dir, onerror=raise_walk_error):
        for name in dirnames + filenames:
            full = os.path.join(dirpath, name)
            entries.append(Path(os.path.relpath(full, src_dir)).as_posix())
    return sorted(entries, key=lambda p: p.encode("utf-8", "surrogateescape"))


def _normalize(tinfo: tarfile.TarInfo, mtime: int) -> tarfile.TarInfo:
    tinfo.uid = 0
    tinfo.gid = 0
    tinfo.uname = "root"
    tinfo.gname = "root"
    tinfo.mtime = mtime
    tinfo.pax_headers = {}
    return tinfo


def _gzip(raw: bytes, mtime: int) -> bytes:
    gz_bio = io.BytesIO()
    with gzip.GzipFile(fileobj=gz_bio, mode="wb", compresslevel=9, mtime=mtime) as gz:
        gz.write(raw)
    return gz_bio.getvalue()


def build_tar_gz(src_dir: Path, mtime: int = 0, control: bool = False) -> bytes:
    """
    Archive src_dir as ``./<relpath>`` entries owned by root:root.

    With ``control`` set, maintainer scripts get mode 0755 and every other file
    0644; otherwise modes are kept as found on disk.
    """
    bio = io.BytesIO()
    with tarfile.open(fileobj=bio, mode="w", format=tarfile.GNU_FORMAT) as tar:
        top = tar.gettarinfo(str(src_dir), ".")
        top.mode = 0o755
        tar.addfile(_normalize(top, mtime))
        for rel in _sorted_entries(src_dir):
            full = src_dir / rel
            tinfo = tar.gettarinfo(str(full), f"./{rel}")
            if tinfo is None:
                logger.warning(f"Skipping unsupported file type: {rel}")
                continue
            _normalize(tinfo, mtime)
            if control and tinfo.isreg():
                tinfo.mode = 0o755 if full.name in MAINTAINER_SCRIPTS else 0o644
            if tinfo.isreg():
                with open(full, "rb") as f:
                    tar.addfile(tinfo, f)
            else:
                tar.addfile(tinfo)
    return _gzip(bio.getvalue(), mtime)


def assemble(staging_root: Path, control_dir: Optional[Path], metadata: ControlMetadata,
             mtime: int = 0) -> Tuple[bytes, bytes]:
    """
    Produce ``(control.tar.gz, data.tar.gz)`` for staging_root.

    The caller's trees are copied into a private temporary area first, so
    neither staging_root nor control_dir is ever modified.
    """
    staging_root = Path(staging_root)
    if not staging_root.is_dir():
        raise ValidationError(f"Root directory not found: {staging_root}")

    with tempfile.TemporaryDirectory(prefix="debpack-assemble-") as work:
        data_dir = Path(work) / "data"
        ctrl_dir = Path(work) / "control"
        try:
            shutil.copytree(staging_root, data_dir, symlinks=True)
            if control_dir is not None and Path(control_dir).is_dir():
                shutil.copytree(control_dir, ctrl_dir, symlinks=False)
                logger.debug(f"Copied control overrides from {control_dir}")
            else:
                ctrl_dir.mkdir()
        except (shutil.Error, OSError) as e:
            raise ArchiveIOError(f"Failed to stage package contents: {e}") from e

        manifest = write_manifest(data_dir, ctrl_dir / MANIFEST_FILE)
        resolve_control(ctrl_dir, metadata)

        try:
            control_tgz = build_tar_gz(ctrl_dir, mtime, control=True)
            data_tgz = build_tar_gz(data_dir, mtime)
        except (tarfile.TarError, OSError) as e:
            raise ArchiveIOError(f"Failed to compress package contents: {e}") from e

    logger.info(
        f"Assembled {metadata.name} {metadata.version}: {len(manifest)} file(s), "
        f"control {len(control_tgz):,} bytes, data {len(data_tgz):,} bytes"
    )
    return control_tgz, data_tgz
