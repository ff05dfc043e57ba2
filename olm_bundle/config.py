"""Configuration objects for olm-bundle.

A `BundleConfig` holds everything a single generator run needs: the operator
version, where the source manifest and templates live, where the bundle is
written and how container image references are derived. It may be built
directly or read from a YAML file with `read_config`.
"""

from dataclasses import dataclass, fields
import logging
from pathlib import Path
from typing import Any, cast

import aiofiles
from mashumaro import DataClassDictMixin
from mashumaro.codecs.yaml import yaml_decode
from mashumaro.config import BaseConfig
from mashumaro.exceptions import ExtraKeysError, InvalidFieldValue, MissingField

from .exceptions import InputException

__all__ = [
    "BundleConfig",
    "read_config",
]

_LOGGER = logging.getLogger(__name__)


DEFAULT_SOURCE = Path("config/release/tf-controller.all.yaml")
DEFAULT_OUTPUT_DIR = Path("tf-controller")
DEFAULT_TEMPLATES_DIR = Path("templates")
DEFAULT_PACKAGE_NAME = "tf-controller"
DEFAULT_REGISTRY = "ghcr.io/weaveworks"
DEFAULT_CONTROLLER_IMAGE = "tf-controller"
DEFAULT_RUNNER_IMAGE = "tf-runner"
DEFAULT_MIN_KUBE_VERSION = "1.19.0"
DEFAULT_MATURITY = "stable"

ANNOTATIONS_TEMPLATE = "annotations.yaml"
CSV_TEMPLATE = "clusterserviceversion.yaml"
MANIFESTS_DIR = "manifests"
METADATA_DIR = "metadata"


@dataclass
class BundleConfig(DataClassDictMixin):
    """Configuration for a single bundle generator run."""

    version: str
    """Version of the operator, without a leading `v` e.g. `0.9.0-rc.8`."""

    source: Path = DEFAULT_SOURCE
    """Multi-document YAML file with the release manifests."""

    output_dir: Path = DEFAULT_OUTPUT_DIR
    """Package directory, the bundle is written to `<output_dir>/<version>/`."""

    templates_dir: Path = DEFAULT_TEMPLATES_DIR
    """Directory holding the annotations and CSV templates."""

    package_name: str = DEFAULT_PACKAGE_NAME
    """Name of the operator package, used to name the CSV."""

    registry: str = DEFAULT_REGISTRY
    """Container registry prefix for the controller and runner images."""

    controller_image: str = DEFAULT_CONTROLLER_IMAGE
    """Name of the controller image within the registry."""

    runner_image: str = DEFAULT_RUNNER_IMAGE
    """Name of the runner pod image within the registry."""

    min_kube_version: str = DEFAULT_MIN_KUBE_VERSION
    """Minimum compatible kubernetes version of the CSV."""

    maturity: str = DEFAULT_MATURITY
    """Maturity of the CSV."""

    replaces: str | None = None
    """Previous operator version replaced by this one, if any."""

    @property
    def controller_image_ref(self) -> str:
        """Fully qualified controller image for this version."""
        return f"{self.registry}/{self.controller_image}:v{self.version}"

    @property
    def runner_image_ref(self) -> str:
        """Fully qualified runner pod image for this version."""
        return f"{self.registry}/{self.runner_image}:v{self.version}"

    @property
    def csv_name(self) -> str:
        return f"{self.package_name}.v{self.version}"

    @property
    def replaces_name(self) -> str | None:
        if not self.replaces:
            return None
        return f"{self.package_name}.v{self.replaces}"

    @property
    def bundle_dir(self) -> Path:
        return self.output_dir / self.version

    @property
    def manifests_dir(self) -> Path:
        return self.bundle_dir / MANIFESTS_DIR

    @property
    def metadata_dir(self) -> Path:
        return self.bundle_dir / METADATA_DIR

    @property
    def annotations_template(self) -> Path:
        return self.templates_dir / ANNOTATIONS_TEMPLATE

    @property
    def csv_template(self) -> Path:
        return self.templates_dir / CSV_TEMPLATE

    def update(self, **overrides: Any) -> "BundleConfig":
        """Return a copy of the config with any non-None overrides applied."""
        names = {f.name for f in fields(self)}
        values = self.to_dict()
        for key, value in overrides.items():
            if key not in names:
                raise InputException(f"Unknown configuration option '{key}'")
            if value is not None:
                values[key] = value
        return cast(BundleConfig, BundleConfig.from_dict(values))

    class Config(BaseConfig):
        omit_none = True
        forbid_extra_keys = True


async def read_config(config_path: Path) -> BundleConfig:
    """Return the contents of a serialized bundle configuration file."""
    async with aiofiles.open(str(config_path)) as config_file:
        content = await config_file.read()
    if not content.strip():
        raise InputException(f"Configuration file {config_path} is empty")
    try:
        config = yaml_decode(content, BundleConfig)
    except (ExtraKeysError, InvalidFieldValue, MissingField) as err:
        raise InputException(
            f"Invalid configuration file {config_path}: {err}"
        ) from err
    _LOGGER.debug("Loaded configuration from %s: %s", config_path, config)
    return config
