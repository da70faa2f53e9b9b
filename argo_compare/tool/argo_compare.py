"""Command line tool for comparing Argo CD Applications between git branches."""

import argparse
import asyncio
from importlib.metadata import PackageNotFoundError, version as package_version
import logging
import os
import sys
import traceback

from argo_compare.cache import ChartCache
from argo_compare.exceptions import ArgoCompareException
from . import branch

_LOGGER = logging.getLogger(__name__)

DISTRIBUTION = "argo-compare"


def _version() -> str:
    try:
        return package_version(DISTRIBUTION)
    except PackageNotFoundError:
        return "dev"


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="argo-compare",
        description="Compare Argo CD applications between git branches.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
    )
    parser.add_argument(
        "--debug",
        "-d",
        action="store_true",
        help="Enable debug mode",
    )
    parser.add_argument(
        "--drop-cache",
        action="store_true",
        help="Drop cache directory and exit",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command")
    branch.BranchAction.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    """argo-compare command line tool main entry point."""
    parser = _make_parser()
    args = parser.parse_args(argv)

    log_level = "DEBUG" if args.debug else args.log_level
    logging.basicConfig(level=log_level)

    try:
        if args.drop_cache:
            ChartCache(branch.default_cache_dir(os.environ)).purge()
            return
        if args.command is None:
            parser.error("a command is required")

        action = args.cls()
        kwargs = vars(args)
        kwargs["version"] = _version()
        asyncio.run(action.run(**kwargs))
    except ArgoCompareException as err:
        if log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print(f"argo-compare error: {err}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
