"""Olm-bundle generate action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
from typing import cast

from olm_bundle.bundle import generate_bundle

from . import options

_LOGGER = logging.getLogger(__name__)


class GenerateAction:
    """Olm-bundle generate action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "generate",
                help="Generate an OLM bundle from a release manifest",
                description="""Splits a multi-document release manifest into
                    the manifests directory of an OLM bundle and assembles the
                    ClusterServiceVersion from a template.""",
            ),
        )
        options.add_config_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        config = await options.build_config(**kwargs)
        result = await generate_bundle(config)
        for path in result.files:
            print(f"wrote {path}")
        for name in result.skipped:
            _LOGGER.info("Skipped %s", name)
        print(
            f"{config.csv_name}: {len(result.deployments)} deployment(s), "
            f"{len(result.owned_crds)} owned CRD version(s)"
        )
