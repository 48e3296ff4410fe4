"""Flat package repository: a directory of ``.deb`` files plus a ``Packages`` index."""

import gzip
import hashlib
import logging
from pathlib import Path
from typing import Dict, List

from debpack.container import read_package, read_tar_member
from debpack.control import parse_control, render_fields

logger = logging.getLogger(__name__)

POOL_PREFIX = "pool"


def read_control_record(deb_path: Path) -> Dict[str, str]:
    members = dict(read_package(deb_path))
    control_tgz = members.get("control.tar.gz")
    if control_tgz is None:
        raise ValueError(f"{deb_path.name}: missing control.tar.gz")
    return parse_control(read_tar_member(control_tgz, "control").decode("utf-8"))


def package_stanza(deb_path: Path) -> str:
    data = deb_path.read_bytes()
    fields = read_control_record(deb_path)
    fields["Filename"] = f"{POOL_PREFIX}/{deb_path.name}"
    fields["Size"] = str(len(data))
    fields["MD5sum"] = hashlib.md5(data).hexdigest()
    fields["SHA256"] = hashlib.sha256(data).hexdigest()
    return render_fields(fields)


def list_packages(repo_dir: Path) -> List[Path]:
    return sorted(p for p in Path(repo_dir).glob("*.deb") if p.is_file())


def render_index(repo_dir: Path) -> str:
    """``Packages`` text for every readable package in repo_dir; broken files are skipped."""
    stanzas = []
    for deb in list_packages(repo_dir):
        try:
            stanzas.append(package_stanza(deb))
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Skipping {deb.name}: {e}")
    return "\n".join(stanzas)


def render_index_gz(repo_dir: Path) -> bytes:
    return gzip.compress(render_index(repo_dir).encode("utf-8"), mtime=0)
