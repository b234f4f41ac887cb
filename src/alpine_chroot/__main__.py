"""Command line entry point.

Usage:
    sudo alpine-chroot-install [-a ARCH] [-b BRANCH] [-d DIR] [-p PACKAGES] ...

Every option falls back to the matching environment variable (ARCH,
ALPINE_BRANCH, CHROOT_DIR, ...). ``-k``, ``-p`` and ``-r`` append to the
environment value instead of replacing it.
"""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path

from alpine_chroot import __version__
from alpine_chroot.config import DEFAULT_KEEP_VARS, DEFAULT_PACKAGES, Configuration
from alpine_chroot.errors import ChrootError
from alpine_chroot.host import LocalLinuxHost
from alpine_chroot.observability import StructuredLogger
from alpine_chroot.orchestrator import Orchestrator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="alpine-chroot-install",
        description="Install Alpine Linux into a chroot and generate enter/destroy scripts.",
    )
    parser.add_argument("-a", dest="arch", help="CPU architecture for the chroot (default: host)")
    parser.add_argument("-b", dest="branch", help="Alpine branch (default: latest-stable)")
    parser.add_argument(
        "-d", dest="target_dir", type=Path, help="absolute path of the chroot (default: /alpine)"
    )
    parser.add_argument(
        "-i", dest="bind_dir", type=Path, help="host directory to bind at the same path"
    )
    parser.add_argument(
        "-k", dest="keep_vars", action="append", default=[], help="variable name patterns to keep"
    )
    parser.add_argument("-m", dest="mirror", help="Alpine mirror URI")
    parser.add_argument(
        "-p", dest="packages", action="append", default=[], help="packages to install"
    )
    parser.add_argument(
        "-r", dest="extra_repos", action="append", default=[], help="extra repository URI"
    )
    parser.add_argument("-t", dest="temp_dir", type=Path, help="directory for temporary files")
    parser.add_argument("--apk-tools-uri", dest="apk_tools_uri", help="URI of apk.static")
    parser.add_argument(
        "--apk-tools-sha256", dest="apk_tools_sha256", help="sha256 of the apk.static binary"
    )
    parser.add_argument("--report", type=Path, help="write a provisioning report (.json or .cbor)")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def resolve_config(args: argparse.Namespace, environ: Mapping[str, str]) -> Configuration:
    overrides: dict[str, object] = {
        "arch": args.arch,
        "branch": args.branch,
        "target_dir": args.target_dir,
        "bind_dir": args.bind_dir,
        "mirror": args.mirror,
        "temp_dir": args.temp_dir,
        "apk_tools_uri": args.apk_tools_uri,
        "apk_tools_sha256": args.apk_tools_sha256,
    }
    appended = {
        "keep_vars": ("CHROOT_KEEP_VARS", DEFAULT_KEEP_VARS, args.keep_vars),
        "packages": ("ALPINE_PACKAGES", DEFAULT_PACKAGES, args.packages),
        "extra_repos": ("EXTRA_REPOS", (), args.extra_repos),
    }
    for key, (variable, default, extra) in appended.items():
        if extra:
            base = tuple(environ[variable].split()) if variable in environ else default
            overrides[key] = (*base, *(word for value in extra for word in value.split()))
    return Configuration.from_env(environ, **overrides)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logger = StructuredLogger(stream=sys.stderr)
    try:
        config = resolve_config(args, os.environ)
        report = Orchestrator(LocalLinuxHost(), logger=logger).run(config)
        if args.report is not None:
            report.write(args.report)
    except (ChrootError, OSError) as exc:
        logger.log(operation="main", component="cli", level="error", message=str(exc))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
