"""Packager configuration.

A single :class:`PackagerConfig` is built once per invocation and handed to
every stage. Values are layered, lowest precedence first: dataclass defaults,
the project's ``debpack.json``, ``DEBPACK_*`` environment variables,
``SOURCE_DATE_EPOCH`` and finally explicit overrides from the command line.
"""

import json
import logging
import os
import sys
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from debpack.control import ControlMetadata, format_depends
from debpack.errors import ArchiveIOError, ValidationError

logger = logging.getLogger(__name__)

CONFIG_FILE = "debpack.json"

ENV_KEYS = {
    "DEBPACK_NAME": "name",
    "DEBPACK_VERSION": "version",
    "DEBPACK_VENDOR": "vendor",
    "DEBPACK_PREFIX": "install_prefix",
    "DEBPACK_CACHE_DIR": "cache_dir",
    "DEBPACK_WORK_DIR": "work_dir",
    "DEBPACK_PYTHON": "python",
}

PATH_FIELDS = ("root", "debian_dir", "depends_file", "requirements", "output", "work_dir", "cache_dir")


def default_cache_dir() -> Path:
    xdg = os.environ.get("XDG_CACHE_HOME", "")
    base = Path(xdg) if xdg else Path.home() / ".cache"
    return base / "debpack" / "envs"


@dataclass
class PackagerConfig:
    name: str = ""
    version: str = ""
    vendor: str = "unknown"
    license: str = "unknown"
    maintainer: str = "<root@localhost>"
    architecture: str = "all"
    section: str = "default"
    priority: str = "extra"
    homepage: str = "http://localhost"
    description: str = "no description given"
    depends: List[str] = field(default_factory=list)

    project_dir: Path = field(default_factory=Path.cwd)
    root: Optional[Path] = None
    debian_dir: Optional[Path] = None
    depends_file: Optional[Path] = None
    requirements: Optional[Path] = None
    output: Optional[Path] = None
    work_dir: Optional[Path] = None
    cache_dir: Path = field(default_factory=default_cache_dir)

    install_prefix: str = "opt"
    python: str = sys.executable
    source_date_epoch: int = 0
    force: bool = False

    def __post_init__(self):
        self.project_dir = Path(self.project_dir)
        for name in PATH_FIELDS:
            value = getattr(self, name)
            if value is not None and not isinstance(value, Path):
                value = Path(value)
            if value is not None and not value.is_absolute():
                value = self.project_dir / value
            setattr(self, name, value)
        if self.root is None:
            self.root = self.project_dir / "root"
        if self.debian_dir is None:
            self.debian_dir = self.project_dir / "debian"
        if self.depends_file is None:
            self.depends_file = self.project_dir / "depends"
        if self.requirements is None:
            self.requirements = self.project_dir / "requirements.txt"
        if self.work_dir is None:
            self.work_dir = self.project_dir / "build"
        try:
            self.source_date_epoch = int(self.source_date_epoch)
        except (TypeError, ValueError):
            raise ValidationError(f"source_date_epoch must be an integer, got {self.source_date_epoch!r}")
        if isinstance(self.depends, str):
            self.depends = format_depends(self.depends)

    def resolved_depends(self) -> List[str]:
        """Explicit depends win; otherwise read the newline-delimited depends file."""
        if self.depends:
            return list(self.depends)
        if not self.depends_file.is_file():
            return []
        try:
            return format_depends(self.depends_file.read_text(encoding="utf-8"))
        except UnicodeDecodeError as e:
            raise ValidationError(f"Depends file {self.depends_file} is not valid UTF-8: {e}") from e
        except OSError as e:
            raise ArchiveIOError(f"Cannot read depends file {self.depends_file}: {e}") from e

    def control_metadata(self) -> ControlMetadata:
        return ControlMetadata(
            name=self.name,
            version=self.version,
            vendor=self.vendor,
            depends=self.resolved_depends(),
            maintainer=self.maintainer,
            architecture=self.architecture,
            license=self.license,
            section=self.section,
            priority=self.priority,
            homepage=self.homepage,
            description=self.description,
        )

    def output_path(self) -> Path:
        if self.output is not None:
            return self.output
        return self.work_dir / f"{self.name}_{self.version}_{self.architecture}.deb"

    def install_dir(self) -> str:
        """Relative location of the project inside the package payload."""
        return "/".join(p for p in (self.install_prefix.strip("/"), self.name) if p)

    def validate(self):
        if not self.name:
            raise ValidationError("Package name is required")
        if not self.version:
            raise ValidationError("Package version is required")
        if not self.root.is_dir():
            raise ValidationError(f"Root directory not found: {self.root}")
        self.control_metadata().validate()


def read_config_file(path: Path) -> Dict[str, object]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in {path}: {e}") from e
    except OSError as e:
        raise ValidationError(f"Cannot read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError(f"Config file {path} must contain a JSON object")
    known = {f.name for f in fields(PackagerConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValidationError(f"Unknown config key(s) in {path}: {', '.join(unknown)}")
    return data


def env_overrides(env: Mapping[str, str]) -> Dict[str, object]:
    values: Dict[str, object] = {}
    for var, key in ENV_KEYS.items():
        if env.get(var):
            values[key] = env[var]
    epoch = env.get("SOURCE_DATE_EPOCH")
    if epoch:
        try:
            values["source_date_epoch"] = int(epoch)
        except ValueError:
            raise ValidationError(f"SOURCE_DATE_EPOCH must be an integer, got {epoch!r}")
    return values


def load_config(project_dir=None, config_file=None, env: Optional[Mapping[str, str]] = None,
                **overrides) -> PackagerConfig:
    """Build a PackagerConfig for ``project_dir``.

    ``overrides`` whose value is ``None`` are ignored so argparse namespaces can
    be passed through without filtering.
    """
    project_dir = Path(project_dir) if project_dir else Path.cwd()
    env = os.environ if env is None else env

    values: Dict[str, object] = {}
    path = Path(config_file) if config_file else project_dir / CONFIG_FILE
    if path.is_file():
        logger.debug(f"Loading config from {path}")
        values.update(read_config_file(path))
    elif config_file:
        raise ValidationError(f"Config file not found: {path}")

    values.update(env_overrides(env))
    values.update({k: v for k, v in overrides.items() if v is not None})
    values["project_dir"] = project_dir
    return PackagerConfig(**values)


def with_overrides(config: PackagerConfig, **overrides) -> PackagerConfig:
    return replace(config, **{k: v for k, v in overrides.items() if v is not None})
