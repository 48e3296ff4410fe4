"""Project scaffolding (``init``) and cleanup (``clean``)."""

import json
import logging
import shutil
from pathlib import Path

from debpack.cache import DependencyCache
from debpack.config import CONFIG_FILE, PackagerConfig
from debpack.control import ControlMetadata
from debpack.errors import ArchiveIOError, ConflictError, ValidationError

logger = logging.getLogger(__name__)

POSTINST_TEMPLATE = "#!/bin/sh\nset -e\nexit 0\n"


def init_project(project_dir: Path, name: str, version: str = "0.1.0", vendor: str = "unknown",
                 force: bool = False) -> Path:
    """
    Create the layout ``package`` expects::

        debpack.json        name/version/vendor
        root/               files installed under /
        debian/             extra control members (maintainer scripts)
        requirements.txt    Python dependencies, installed with pip
        depends             Debian package dependencies, one per line
    """
    project_dir = Path(project_dir)
    ControlMetadata(name=name, version=version).validate()

    config_path = project_dir / CONFIG_FILE
    if config_path.exists() and not force:
        raise ConflictError(f"{config_path} already exists (use --force to overwrite)")

    try:
        (project_dir / "root" / "usr" / "local" / "bin").mkdir(parents=True, exist_ok=True)
        debian_dir = project_dir / "debian"
        debian_dir.mkdir(parents=True, exist_ok=True)
        postinst = debian_dir / "postinst"
        if not postinst.exists():
            postinst.write_text(POSTINST_TEMPLATE, newline="\n")
            postinst.chmod(0o755)
        for filename, content in (("requirements.txt", ""), ("depends", "")):
            path = project_dir / filename
            if not path.exists():
                path.write_text(content)
        config_path.write_text(json.dumps({"name": name, "version": version, "vendor": vendor}, indent=2) + "\n")
    except OSError as e:
        raise ArchiveIOError(f"Failed to initialise project in {project_dir}: {e}") from e

    logger.info(f"Initialised {name} {version} in {project_dir}")
    return config_path


def clean_project(config: PackagerConfig, purge_cache: bool = False):
    """Remove the work directory (built packages included) and optionally the dependency cache."""
    work_dir = config.work_dir.resolve()
    for protected in (config.project_dir, config.root):
        protected = protected.resolve()
        if work_dir == protected or work_dir in protected.parents:
            raise ValidationError(f"Refusing to clean {work_dir}: it is or contains {protected}")
    if work_dir.is_dir():
        removed = sorted(p.name for p in work_dir.glob("*.deb"))
        shutil.rmtree(work_dir)
        logger.info(f"Removed {work_dir} ({len(removed)} package(s))")
    else:
        logger.info(f"Nothing to clean in {work_dir}")

    if purge_cache:
        cache = DependencyCache(config.cache_dir)
        size = cache.size()
        cache.purge()
        logger.info(f"Freed {size / 1024 / 1024:.1f} MB of cached environments")
