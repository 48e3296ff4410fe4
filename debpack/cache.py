"""Content-addressed cache of prebuilt dependency environments.

Entries live at ``<cache_dir>/<key>.tar.gz`` where ``key`` is the sha256 of the
requirements text. An entry is written to a private temporary file
and renamed into place, so a reader never sees a half-written archive. Entries
never expire; the key must fully determine the environment.
"""

import hashlib
import logging
import os
import tarfile
import tempfile
from pathlib import Path
from typing import Callable, Optional

from debpack.errors import ArchiveIOError

logger = logging.getLogger(__name__)

ENTRY_SUFFIX = ".tar.gz"

EnvironmentBuilder = Callable[[str, Path], None]


def cache_key(spec_text: str) -> str:
    return hashlib.sha256(spec_text.encode("utf-8")).hexdigest()


class DependencyCache:
    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)

    def entry_path(self, key: str) -> Path:
        return self.cache_dir / f"{key}{ENTRY_SUFFIX}"

    def lookup(self, key: str) -> Optional[Path]:
        path = self.entry_path(key)
        return path if path.is_file() else None

    def store(self, key: str, source_dir: Path) -> Path:
        """Archive ``source_dir`` and publish it as the entry for ``key``."""
        entry = self.entry_path(key)
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".partial", dir=self.cache_dir)
        except OSError as e:
            raise ArchiveIOError(f"Cannot write to cache {self.cache_dir}: {e}") from e

        try:
            with os.fdopen(fd, "wb") as raw:
                with tarfile.open(fileobj=raw, mode="w:gz") as tar:
                    tar.add(str(source_dir), arcname=".")
                raw.flush()
                os.fsync(raw.fileno())
            os.replace(tmp_name, entry)
        except BaseException as e:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            if isinstance(e, (OSError, tarfile.TarError)):
                raise ArchiveIOError(f"Failed to store cache entry {key}: {e}") from e
            raise

        logger.info(f"Stored environment in cache: {entry.name}")
        return entry

    def extract(self, key: str, target: Path):
        entry = self.lookup(key)
        if entry is None:
            raise KeyError(key)
        target = Path(target)
        try:
            target.mkdir(parents=True, exist_ok=True)
            with tarfile.open(entry, mode="r:gz") as tar:
                tar.extractall(target, filter="tar")
        except (OSError, tarfile.TarError) as e:
            raise ArchiveIOError(f"Failed to extract cache entry {key} into {target}: {e}") from e

    def fetch_or_build(self, spec_text: str, target: Path, builder: EnvironmentBuilder) -> bool:
        """
        Populate ``target`` with the environment described by ``spec_text``.

        Returns True on a cache hit. On a miss ``builder(spec_text, tmpdir)``
        runs in a fresh temporary directory, the result is stored and then
        extracted, so hits and misses yield the same tree.
        """
        key = cache_key(spec_text)
        if self.lookup(key) is not None:
            logger.info(f"Using cached environment {key[:12]}")
            self.extract(key, target)
            return True

        logger.info(f"No cached environment for {key[:12]}; building")
        with tempfile.TemporaryDirectory(prefix="debpack-env-") as tmp:
            build_dir = Path(tmp) / "env"
            build_dir.mkdir()
            builder(spec_text, build_dir)
            self.store(key, build_dir)
        self.extract(key, target)
        return False

    def purge(self) -> int:
        """Remove every cache entry; returns how many were removed."""
        if not self.cache_dir.is_dir():
            return 0
        removed = 0
        for entry in self.cache_dir.iterdir():
            if entry.name.endswith(ENTRY_SUFFIX) or entry.name.endswith(".partial"):
                entry.unlink()
                removed += 1
        logger.info(f"Removed {removed} cache entr{'y' if removed == 1 else 'ies'} from {self.cache_dir}")
        return removed

    def size(self) -> int:
        if not self.cache_dir.is_dir():
            return 0
        return sum(p.stat().st_size for p in self.cache_dir.iterdir() if p.is_file())

