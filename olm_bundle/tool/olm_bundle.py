"""Command line tool for generating OLM bundles from release manifests."""

import argparse
import asyncio
import logging
import sys
import traceback

from olm_bundle.exceptions import BundleException
from . import generate, kinds

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Command line utility for building an OLM bundle.",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    generate.GenerateAction.register(subparsers)
    kinds.KindsAction.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Olm-bundle command line tool main entry point."""
    parser = _make_parser()
    args = parser.parse_args(argv)

    if args.log_level:
        logging.basicConfig(level=args.log_level)

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except BundleException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("olm-bundle error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
