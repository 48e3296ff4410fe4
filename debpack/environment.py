"""Environment builder: installs a requirements list into a directory with pip."""

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path

from debpack.errors import BuildEnvironmentError

logger = logging.getLogger(__name__)


def require_tool(name: str, install_hint: str = None) -> str:
    path = shutil.which(name)
    if path is None:
        hint = f" ({install_hint})" if install_hint else ""
        raise BuildEnvironmentError(f"'{name}' is not installed{hint}")
    return path


class PipEnvironmentBuilder:
    """
    Callable used by :class:`debpack.cache.DependencyCache` on a cache miss.

    ``builder(spec_text, target)`` runs ``pip install --target`` for the given
    requirements text, so the result is a plain directory of importable
    packages that can be dropped anywhere on ``PYTHONPATH``.
    """

    def __init__(self, python: str):
        self.python = python

    def check(self):
        require_tool(self.python)
        result = subprocess.run(
            [self.python, "-m", "pip", "--version"],
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            raise BuildEnvironmentError(f"pip is not available for {self.python}: {result.stderr.strip()}")
        logger.debug(result.stdout.strip())

    def __call__(self, spec_text: str, target: Path):
        with tempfile.NamedTemporaryFile("w", suffix=".txt", prefix="debpack-req-", delete=False) as f:
            f.write(spec_text)
            req_file = f.name
        cmd = [
            self.python, "-m", "pip", "install",
            "--no-cache-dir",
            "--disable-pip-version-check",
            "--target", str(target),
            "-r", req_file,
        ]
        logger.info(f"Installing dependencies into {target}")
        logger.debug(" ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise BuildEnvironmentError(f"Could not run {self.python}: {e}") from e
        finally:
            Path(req_file).unlink(missing_ok=True)
        if result.returncode != 0:
            raise BuildEnvironmentError(f"pip install failed:\n{result.stderr.strip()}")
