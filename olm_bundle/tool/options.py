"""Library for common bundle configuration flags."""

from argparse import ArgumentParser
import logging
import pathlib

from olm_bundle.config import BundleConfig, read_config
from olm_bundle.exceptions import InputException

_LOGGER = logging.getLogger(__name__)


def add_config_flags(args: ArgumentParser) -> None:
    """Add flags that build a BundleConfig to the arguments object."""
    args.add_argument(
        "--config",
        help="Optional YAML file with bundle configuration, flags take precedence",
        type=pathlib.Path,
        default=None,
    )
    args.add_argument(
        "--bundle-version",
        help="Version of the operator bundle e.g. 0.9.0-rc.8",
        type=str,
        default=None,
    )
    args.add_argument(
        "--source",
        help="Multi-document YAML file with the release manifests",
        type=pathlib.Path,
        default=None,
    )
    args.add_argument(
        "--output-dir",
        help="Package directory, the bundle is written to <output-dir>/<version>",
        type=pathlib.Path,
        default=None,
    )
    args.add_argument(
        "--templates-dir",
        help="Directory with annotations.yaml and clusterserviceversion.yaml",
        type=pathlib.Path,
        default=None,
    )
    args.add_argument(
        "--package-name",
        help="Name of the operator package",
        type=str,
        default=None,
    )
    args.add_argument(
        "--registry",
        help="Container registry of the controller and runner images",
        type=str,
        default=None,
    )
    args.add_argument(
        "--min-kube-version",
        help="Minimum kubernetes version of the ClusterServiceVersion",
        type=str,
        default=None,
    )
    args.add_argument(
        "--maturity",
        help="Maturity of the ClusterServiceVersion",
        type=str,
        default=None,
    )
    args.add_argument(
        "--replaces",
        help="Previous version replaced by this bundle",
        type=str,
        default=None,
    )


async def build_config(  # type: ignore[no-untyped-def]
    config: pathlib.Path | None = None,
    bundle_version: str | None = None,
    **kwargs,
) -> BundleConfig:
    """Build a BundleConfig from a config file and command line flags."""
    overrides = {
        "version": bundle_version,
        "source": kwargs.get("source"),
        "output_dir": kwargs.get("output_dir"),
        "templates_dir": kwargs.get("templates_dir"),
        "package_name": kwargs.get("package_name"),
        "registry": kwargs.get("registry"),
        "min_kube_version": kwargs.get("min_kube_version"),
        "maturity": kwargs.get("maturity"),
        "replaces": kwargs.get("replaces"),
    }
    if config:
        return (await read_config(config)).update(**overrides)
    if not bundle_version:
        raise InputException("Either --bundle-version or --config is required")
    _LOGGER.debug("No config file specified, using flags only")
    return BundleConfig(version=bundle_version).update(**overrides)
