import io
import logging
import tarfile
from pathlib import Path

import pytest

from debpack.config import ENV_KEYS, PackagerConfig
from debpack.control import ControlMetadata
from debpack.log import HANDLER_NAMES


def tar_contents(tgz: bytes):
    """Map of member name -> bytes (None for non-regular members)."""
    out = {}
    with tarfile.open(fileobj=io.BytesIO(tgz), mode="r:gz") as tar:
        for member in tar.getmembers():
            out[member.name] = tar.extractfile(member).read() if member.isreg() else None
    return out


def tar_infos(tgz: bytes):
    with tarfile.open(fileobj=io.BytesIO(tgz), mode="r:gz") as tar:
        return tar.getmembers()


def tree_snapshot(root: Path):
    """Relative path -> bytes for files, None for directories."""
    snap = {}
    for path in sorted(Path(root).rglob("*")):
        rel = path.relative_to(root).as_posix()
        snap[rel] = path.read_bytes() if path.is_file() else None
    return snap


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for var in list(ENV_KEYS) + ["SOURCE_DATE_EPOCH", "DEBPACK_HOST"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg-cache"))


@pytest.fixture
def staging_root(tmp_path) -> Path:
    root = tmp_path / "root"
    (root / "usr" / "local" / "bin").mkdir(parents=True)
    (root / "usr" / "local" / "bin" / "hello").write_bytes(b"hi")
    return root


@pytest.fixture
def demo_metadata() -> ControlMetadata:
    return ControlMetadata(name="demo", version="1.0.0", vendor="acme", depends=[])


@pytest.fixture
def demo_config(tmp_path, staging_root) -> PackagerConfig:
    return PackagerConfig(
        name="demo",
        version="1.0.0",
        vendor="acme",
        project_dir=tmp_path,
        root=staging_root,
        output=tmp_path / "out" / "demo.deb",
        cache_dir=tmp_path / "cache",
    )


@pytest.fixture(autouse=True)
def reset_logging():
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler.get_name() in HANDLER_NAMES:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
