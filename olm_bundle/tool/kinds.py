"""Olm-bundle kinds action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import Any, cast

from olm_bundle.manifest import (
    DROPPED_KINDS,
    IGNORED_KINDS,
    KIND_SUFFIX,
    WRITE_KINDS,
    ResourceKind,
)

from .format import PrintFormatter, YamlListFormatter

# Description of what the generator does with each kind.
ACTIONS = {
    ResourceKind.DEPLOYMENT: "embed in csv",
    ResourceKind.CUSTOM_RESOURCE_DEFINITION: "write, own in csv",
}


def kind_table() -> list[dict[str, Any]]:
    """Return a row per handled kind describing how it is bundled."""
    rows = []
    for kind in ResourceKind:
        if kind == ResourceKind.UNSUPPORTED:
            continue
        if kind in WRITE_KINDS:
            action = "write"
        elif kind in IGNORED_KINDS:
            action = "ignore"
        elif kind in DROPPED_KINDS:
            action = "drop"
        else:
            action = ACTIONS[kind]
        rows.append(
            {
                "kind": kind.value,
                "action": action,
                "suffix": KIND_SUFFIX.get(kind, "-"),
            }
        )
    return rows


class KindsAction:
    """Olm-bundle kinds action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "kinds",
                help="List the resource kinds the generator handles",
                description="Print how each resource kind is placed in the bundle.",
            ),
        )
        args.add_argument(
            "--output",
            "-o",
            choices=["table", "yaml"],
            default="table",
            help="Output format of the command",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        rows = kind_table()
        if output == "yaml":
            YamlListFormatter().print(rows)
            return
        PrintFormatter().print(rows)
