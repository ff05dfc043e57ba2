"""Library for generating an OLM bundle from a release manifest.

The generator makes a single pass over the documents of the release manifest.
Each document is classified by kind and then either written to the bundle
`manifests/` directory, folded into the ClusterServiceVersion (Deployments and
CustomResourceDefinitions), or skipped. The ClusterServiceVersion is assembled
from a template and written once all documents have been visited.

Example usage:

```python
from olm_bundle.bundle import generate_bundle
from olm_bundle.config import BundleConfig

result = await generate_bundle(BundleConfig(version="0.9.0-rc.8"))
for path in result.files:
    print(path)
```

The generator has a closed world view of the input: any kind without explicit
handling raises `UnsupportedKindError` and the ClusterServiceVersion is not
written. Files already written for earlier documents are left in place.
"""

from collections.abc import Awaitable, Callable
import copy
from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any

from .config import BundleConfig
from .exceptions import InputException, UnsupportedKindError
from .manifest import (
    CRDDescription,
    DeploymentSpec,
    IGNORED_KINDS,
    KIND_SUFFIX,
    RUNNER_POD_IMAGE,
    ResourceKind,
    classify,
    read_document,
    read_documents,
    resource_name,
    write_document,
)

__all__ = [
    "BundleGenerator",
    "BundleResult",
    "generate_bundle",
]

_LOGGER = logging.getLogger(__name__)

CSV_SUFFIX = "clusterserviceversion"


@dataclass
class BundleResult:
    """Summary of a bundle generator run."""

    files: list[Path] = field(default_factory=list)
    """Files written to the bundle, in the order they were written."""

    deployments: list[str] = field(default_factory=list)
    """Names of the Deployments embedded in the ClusterServiceVersion."""

    owned_crds: list[CRDDescription] = field(default_factory=list)
    """Owned CRD entries of the ClusterServiceVersion."""

    skipped: list[str] = field(default_factory=list)
    """Resources that were ignored or dropped, as `Kind/name`."""


def rewrite_runner_image(doc: dict[str, Any], image: str) -> bool:
    """Point the runner pod image env var of the controller Deployment at `image`.

    Only the second env entry of the first container is considered. Returns
    True when the value was rewritten.
    """
    try:
        env = doc["spec"]["template"]["spec"]["containers"][0]["env"]
        entry = env[1]
    except (KeyError, IndexError, TypeError):
        return False
    if not isinstance(entry, dict) or entry.get("name") != RUNNER_POD_IMAGE:
        return False
    entry["value"] = image
    return True


def _child(parent: dict[str, Any], key: str) -> dict[str, Any]:
    """Return the mapping at `key`, creating it when absent."""
    if not isinstance(parent.get(key), dict):
        parent[key] = {}
    return parent[key]


class BundleGenerator:
    """Builds the contents of a bundle directory one document at a time."""

    def __init__(self, config: BundleConfig) -> None:
        """Initialize BundleGenerator."""
        self._config = config
        self._deployments: list[DeploymentSpec] = []
        self._crds: list[dict[str, Any]] = []
        self._owned_crds: list[CRDDescription] = []
        self._result = BundleResult()
        self._handlers: dict[
            ResourceKind, Callable[[dict[str, Any]], Awaitable[None]]
        ] = {
            ResourceKind.ROLE: self._write_resource,
            ResourceKind.ROLE_BINDING: self._write_resource,
            ResourceKind.CLUSTER_ROLE_BINDING: self._write_resource,
            ResourceKind.CLUSTER_ROLE: self._write_resource,
            ResourceKind.SECURITY_CONTEXT_CONSTRAINTS: self._write_resource,
            ResourceKind.SERVICE: self._write_resource,
            ResourceKind.DEPLOYMENT: self._add_deployment,
            ResourceKind.CUSTOM_RESOURCE_DEFINITION: self._add_crd,
            ResourceKind.SERVICE_ACCOUNT: self._skip,
            ResourceKind.NETWORK_POLICY: self._skip,
            ResourceKind.NAMESPACE: self._skip,
            ResourceKind.UNSUPPORTED: self._unsupported,
        }

    @property
    def handled_kinds(self) -> set[ResourceKind]:
        """Kinds with a handler registered."""
        return set(self._handlers)

    @property
    def deployments(self) -> list[DeploymentSpec]:
        return list(self._deployments)

    @property
    def crds(self) -> list[dict[str, Any]]:
        return list(self._crds)

    @property
    def result(self) -> BundleResult:
        return self._result

    async def prepare(self) -> None:
        """Create the bundle directories and write the bundle annotations."""
        for path in (self._config.manifests_dir, self._config.metadata_dir):
            path.mkdir(parents=True, exist_ok=True)
        annotations = await read_document(self._config.annotations_template)
        await self._write(self._config.metadata_dir / "annotations.yaml", annotations)

    async def visit(self, doc: dict[str, Any]) -> None:
        """Classify a single release document and emit it to the bundle."""
        if not doc:
            return
        kind = classify(doc)
        if kind in IGNORED_KINDS:
            await self._skip(doc)
            return
        if isinstance(metadata := doc.get("metadata"), dict):
            metadata.pop("namespace", None)
        _LOGGER.debug("Visiting %s %s", kind, resource_name(doc))
        await self._handlers[kind](doc)

    async def visit_all(self, docs: list[dict[str, Any]]) -> None:
        """Visit each release document in order."""
        for doc in docs:
            await self.visit(doc)

    def cluster_service_version(self, template: dict[str, Any]) -> dict[str, Any]:
        """Return the ClusterServiceVersion built from the template and visited resources."""
        csv = copy.deepcopy(template)
        metadata = _child(csv, "metadata")
        metadata["name"] = self._config.csv_name
        _child(metadata, "annotations")["containerImage"] = (
            self._config.controller_image_ref
        )

        spec = _child(csv, "spec")
        install_spec = _child(_child(spec, "install"), "spec")
        install_spec["deployments"] = [
            deployment.to_dict() for deployment in self._deployments
        ]
        spec["version"] = self._config.version
        spec["minKubeVersion"] = self._config.min_kube_version
        spec["maturity"] = self._config.maturity
        if replaces := self._config.replaces_name:
            spec["replaces"] = replaces

        _child(spec, "customresourcedefinitions")["owned"] = [
            description.to_dict() for description in self._owned_crds
        ]
        self._result.owned_crds = list(self._owned_crds)
        return csv

    async def write_cluster_service_version(self) -> Path:
        """Assemble the ClusterServiceVersion and write it to the bundle."""
        template = await read_document(self._config.csv_template)
        csv = self.cluster_service_version(template)
        path = (
            self._config.manifests_dir / f"{self._config.csv_name}.{CSV_SUFFIX}.yaml"
        )
        await self._write(path, csv)
        return path

    async def _write(self, path: Path, doc: dict[str, Any]) -> None:
        await write_document(path, doc)
        self._result.files.append(path)

    async def _write_resource(self, doc: dict[str, Any]) -> None:
        kind = classify(doc)
        if not (name := resource_name(doc)):
            raise InputException(f"Invalid {kind} missing metadata.name: {doc}")
        filename = f"{name}.{KIND_SUFFIX[kind]}.yaml"
        await self._write(self._config.manifests_dir / filename, doc)

    async def _add_deployment(self, doc: dict[str, Any]) -> None:
        if rewrite_runner_image(doc, self._config.runner_image_ref):
            _LOGGER.debug(
                "Set %s of %s to %s",
                RUNNER_POD_IMAGE,
                resource_name(doc),
                self._config.runner_image_ref,
            )
        deployment = DeploymentSpec.parse_doc(doc)
        self._deployments.append(deployment)
        self._result.deployments.append(deployment.name)

    async def _add_crd(self, doc: dict[str, Any]) -> None:
        descriptions = CRDDescription.from_crd(doc)
        if not (singular := doc["spec"]["names"].get("singular")):
            raise InputException(
                f"Invalid CustomResourceDefinition {resource_name(doc)} "
                "missing spec.names.singular"
            )
        self._crds.append(doc)
        self._owned_crds.extend(descriptions)
        filename = f"{singular}.{KIND_SUFFIX[ResourceKind.CUSTOM_RESOURCE_DEFINITION]}.yaml"
        await self._write(self._config.manifests_dir / filename, doc)

    async def _skip(self, doc: dict[str, Any]) -> None:
        _LOGGER.debug("Skipping %s %s", doc.get("kind"), resource_name(doc))
        self._result.skipped.append(f"{doc.get('kind')}/{resource_name(doc)}")

    async def _unsupported(self, doc: dict[str, Any]) -> None:
        kind, name = doc.get("kind"), resource_name(doc)
        _LOGGER.warning(
            "UNSUPPORTED KIND - you must explicitly ignore it or handle it: %s %s",
            kind,
            name,
        )
        raise UnsupportedKindError(kind, name)


async def generate_bundle(config: BundleConfig) -> BundleResult:
    """Generate the bundle for a release manifest as described by `config`."""
    generator = BundleGenerator(config)
    await generator.prepare()
    docs = await read_documents(config.source)
    _LOGGER.info("Generating bundle %s from %s", config.csv_name, config.source)
    await generator.visit_all(docs)
    await generator.write_cluster_service_version()
    return generator.result
