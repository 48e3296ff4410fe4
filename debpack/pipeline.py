"""Build pipelines.

A pipeline is an ordered list of named stages sharing a :class:`BuildContext`.
Each stage either completes or raises a :class:`DebpackError`; the runner stops
at the first error and reports which stage failed. Only the final stage
publishes anything, so a failed run never leaves a package behind.
"""

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from debpack.assembler import assemble
from debpack.cache import DependencyCache
from debpack.config import PackagerConfig
from debpack.container import write_package
from debpack.errors import ArchiveIOError, ConflictError, DebpackError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class BuildContext:
    config: PackagerConfig
    staging_root: Optional[Path] = None
    control_tgz: Optional[bytes] = None
    data_tgz: Optional[bytes] = None
    output: Optional[Path] = None
    cache_hit: Optional[bool] = None
    spec_text: str = ""


@dataclass
class PipelineResult:
    ok: bool
    output: Optional[Path] = None
    failed_stage: Optional[str] = None
    error: Optional[DebpackError] = None
    cache_hit: Optional[bool] = None


Stage = Callable[[BuildContext], None]


class Pipeline:
    def __init__(self, name: str):
        self.name = name
        self.stages: List[Tuple[str, Stage]] = []

    def stage(self, name: str, func: Stage) -> "Pipeline":
        self.stages.append((name, func))
        return self

    def run(self, ctx: BuildContext) -> PipelineResult:
        for name, func in self.stages:
            logger.debug(f"[{self.name}] {name}")
            try:
                func(ctx)
            except DebpackError as e:
                logger.error(f"[{self.name}] {name} failed: {e}")
                return PipelineResult(ok=False, failed_stage=name, error=e, cache_hit=ctx.cache_hit)
        return PipelineResult(ok=True, output=ctx.output, cache_hit=ctx.cache_hit)


# =============================================================================
# STAGES
# =============================================================================

def check_config(ctx: BuildContext):
    config = ctx.config
    config.validate()
    output = config.output_path()
    if output.is_dir():
        raise ValidationError(f"Output path is a directory: {output}")
    if output.exists() and not config.force:
        raise ConflictError(f"{output} already exists (use --force to overwrite)")
    if ctx.staging_root is None:
        ctx.staging_root = config.root


def assemble_archives(ctx: BuildContext):
    config = ctx.config
    ctx.control_tgz, ctx.data_tgz = assemble(
        ctx.staging_root,
        config.debian_dir,
        config.control_metadata(),
        mtime=config.source_date_epoch,
    )


def publish_package(ctx: BuildContext):
    ctx.output = write_package(
        ctx.config.output_path(),
        ctx.control_tgz,
        ctx.data_tgz,
        mtime=ctx.config.source_date_epoch,
    )


def build_pipeline() -> Pipeline:
    return (
        Pipeline("build")
        .stage("validate", check_config)
        .stage("assemble", assemble_archives)
        .stage("write", publish_package)
    )


def build_package(config: PackagerConfig) -> PipelineResult:
    """Assemble ``config.root`` into a package at ``config.output_path()``."""
    return build_pipeline().run(BuildContext(config=config))


# =============================================================================
# PROJECT PACKAGING (root + installed dependencies)
# =============================================================================

def read_requirements(config: PackagerConfig) -> str:
    """Requirements text, or an empty string when there is nothing to install."""
    path = config.requirements
    if not path.is_file():
        return ""
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValidationError(f"Requirements file {path} is not valid UTF-8: {e}") from e
    except OSError as e:
        raise ArchiveIOError(f"Cannot read requirements file {path}: {e}") from e
    if not any(line.strip() and not line.strip().startswith("#") for line in text.splitlines()):
        return ""
    return text


def package_project(config: PackagerConfig, builder, use_cache: bool = True) -> PipelineResult:
    """
    Install the project's requirements into an isolated copy of its root, then
    build the package from that copy.

    ``builder`` is called as ``builder(requirements_text, target_dir)``; with
    ``use_cache`` the call is skipped whenever the dependency cache already
    holds an environment for the same requirements text.
    """
    def load_requirements(ctx: BuildContext):
        ctx.spec_text = read_requirements(config)

    def check_builder(ctx: BuildContext):
        if ctx.spec_text and hasattr(builder, "check"):
            builder.check()

    def stage_payload(ctx: BuildContext):
        try:
            shutil.copytree(config.root, ctx.staging_root, symlinks=True)
        except (shutil.Error, OSError) as e:
            raise ArchiveIOError(f"Failed to stage {config.root}: {e}") from e

    def install_dependencies(ctx: BuildContext):
        if not ctx.spec_text:
            logger.info("No requirements to install")
            return
        target = ctx.staging_root / config.install_dir() / "lib"
        if use_cache:
            ctx.cache_hit = DependencyCache(config.cache_dir).fetch_or_build(ctx.spec_text, target, builder)
        else:
            target.mkdir(parents=True, exist_ok=True)
            builder(ctx.spec_text, target)

    with tempfile.TemporaryDirectory(prefix="debpack-payload-") as tmp:
        ctx = BuildContext(config=config, staging_root=Path(tmp) / "root")
        pipeline = (
            Pipeline("package")
            .stage("validate", check_config)
            .stage("requirements", load_requirements)
            .stage("check-builder", check_builder)
            .stage("stage", stage_payload)
            .stage("dependencies", install_dependencies)
            .stage("assemble", assemble_archives)
            .stage("write", publish_package)
        )
        return pipeline.run(ctx)
