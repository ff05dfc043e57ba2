"""Test helpers for olm-bundle tools."""

from olm_bundle.tool.olm_bundle import main


def run_command(args: list[str]) -> int:
    """Run the command line tool, returning the exit code."""
    try:
        main(args)
    except SystemExit as err:
        return err.code if isinstance(err.code, int) else 1
    return 0
