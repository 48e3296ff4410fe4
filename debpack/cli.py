"""
debpack command line.

Usage:
    debpack init [DIR] --name NAME [--version V] [--vendor VENDOR]
    debpack build --root DIR --name NAME --version V [--output FILE]
    debpack package [DIR] [--no-cache]
    debpack clean [DIR] [--cache]
    debpack verify FILE
    debpack serve --repo DIR [--host HOST] [--port PORT]
"""

import argparse
import logging
import os
import sys

from debpack import __version__
from debpack.config import load_config
from debpack.container import verify_package
from debpack.environment import PipEnvironmentBuilder
from debpack.errors import DebpackError, ValidationError
from debpack.log import setup_logging
from debpack.pipeline import build_package, package_project
from debpack.project import clean_project, init_project

logger = logging.getLogger(__name__)


class ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _finish(result) -> int:
    if result.ok:
        logger.info(f"Built {result.output}")
        return 0
    return result.error.exit_code


def cmd_init(args) -> int:
    init_project(args.dir, args.name, version=args.version, vendor=args.vendor, force=args.force)
    return 0


def cmd_build(args) -> int:
    for flag in ("root", "name", "version", "output"):
        value = getattr(args, flag)
        if value is not None and not str(value).strip():
            raise ValidationError(f"--{flag} must not be empty")
    config = load_config(
        args.project,
        config_file=args.config,
        root=args.root,
        name=args.name,
        version=args.version,
        vendor=args.vendor,
        debian_dir=args.debian_dir,
        depends_file=args.depends_file,
        output=args.output,
        force=args.force or None,
    )
    return _finish(build_package(config))


def cmd_package(args) -> int:
    config = load_config(args.dir, config_file=args.config, output=args.output, force=args.force or None)
    builder = PipEnvironmentBuilder(config.python)
    result = package_project(config, builder, use_cache=not args.no_cache)
    if result.ok and result.cache_hit is not None:
        logger.info(f"Dependency cache: {'hit' if result.cache_hit else 'miss'}")
    return _finish(result)


def cmd_clean(args) -> int:
    config = load_config(args.dir, config_file=args.config)
    clean_project(config, purge_cache=args.cache)
    return 0


def cmd_verify(args) -> int:
    problems = verify_package(args.package)
    for problem in problems:
        print(f"FAIL: {problem}")
    if problems:
        return 1
    print("PASS")
    return 0


def cmd_serve(args) -> int:
    from debpack.server import serve

    if not os.path.isdir(args.repo):
        raise ValidationError(f"Repository directory not found: {args.repo}")
    serve(args.repo, host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = ArgumentParser(
        prog="debpack",
        description="Build .deb packages from a staged install root.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Also write the log to this file")
    subparsers = parser.add_subparsers(dest="command", parser_class=ArgumentParser)

    p = subparsers.add_parser("init", help="Create a new packaging project")
    p.add_argument("dir", nargs="?", default=".", help="Project directory (default: .)")
    p.add_argument("--name", required=True, help="Package name")
    p.add_argument("--version", default="0.1.0", help="Package version (default: 0.1.0)")
    p.add_argument("--vendor", default="unknown", help="Vendor")
    p.add_argument("--force", action="store_true", help="Overwrite an existing debpack.json")
    p.set_defaults(func=cmd_init)

    p = subparsers.add_parser("build", help="Build a package from an install root")
    p.add_argument("--project", default=None, help="Directory holding debpack.json (default: .)")
    p.add_argument("--config", help="Explicit config file")
    p.add_argument("--root", help="Install root (files destined for /)")
    p.add_argument("--name", help="Package name")
    p.add_argument("--version", help="Package version")
    p.add_argument("--vendor", help="Vendor")
    p.add_argument("--debian-dir", help="Directory of extra control members (postinst, ...)")
    p.add_argument("--depends-file", help="Newline-delimited list of package dependencies")
    p.add_argument("-o", "--output", help="Output .deb path")
    p.add_argument("--force", action="store_true", help="Overwrite an existing output file")
    p.set_defaults(func=cmd_build)

    p = subparsers.add_parser("package", help="Install requirements into the root and build")
    p.add_argument("dir", nargs="?", default=None, help="Project directory (default: .)")
    p.add_argument("--config", help="Explicit config file")
    p.add_argument("-o", "--output", help="Output .deb path")
    p.add_argument("--no-cache", action="store_true", help="Always rebuild the dependency environment")
    p.add_argument("--force", action="store_true", help="Overwrite an existing output file")
    p.set_defaults(func=cmd_package)

    p = subparsers.add_parser("clean", help="Remove build output")
    p.add_argument("dir", nargs="?", default=None, help="Project directory (default: .)")
    p.add_argument("--config", help="Explicit config file")
    p.add_argument("--cache", action="store_true", help="Also purge the dependency cache")
    p.set_defaults(func=cmd_clean)

    p = subparsers.add_parser("verify", help="Check the structure of a built package")
    p.add_argument("package", help="Path to a .deb")
    p.set_defaults(func=cmd_verify)

    p = subparsers.add_parser("serve", help="Serve a directory of packages over HTTP")
    p.add_argument("--repo", required=True, help="Directory containing .deb files")
    p.add_argument("--host", default=os.environ.get("DEBPACK_HOST", "0.0.0.0"))
    p.add_argument("--port", type=int, default=8080)
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.debug, args.log_file)
    try:
        return args.func(args)
    except DebpackError as e:
        logger.error(str(e))
        return e.exit_code


if __name__ == "__main__":
    sys.exit(main())
