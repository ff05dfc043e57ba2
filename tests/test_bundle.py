"""Tests for the bundle library."""

import logging
from pathlib import Path
from typing import Any

import pytest
import yaml

from olm_bundle.bundle import BundleGenerator, generate_bundle, rewrite_runner_image
from olm_bundle.config import BundleConfig
from olm_bundle.exceptions import InputException, UnsupportedKindError
from olm_bundle.manifest import ResourceKind

TESTDATA = Path("tests/testdata")
TEMPLATES_DIR = TESTDATA / "templates"
VERSION = "0.9.0-rc.8"
CSV_FILE = f"tf-controller.v{VERSION}.clusterserviceversion.yaml"


@pytest.fixture(name="config")
def mock_config(tmp_path: Path) -> BundleConfig:
    """Fixture for a config that writes the bundle to a temp directory."""
    return BundleConfig(
        version=VERSION,
        source=TESTDATA / "release.yaml",
        output_dir=tmp_path / "tf-controller",
        templates_dir=TEMPLATES_DIR,
    )


def role(name: str, namespace: str | None = "flux-system") -> dict[str, Any]:
    metadata = {"name": name}
    if namespace:
        metadata["namespace"] = namespace
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "Role",
        "metadata": metadata,
        "rules": [],
    }


def deployment(name: str, env: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    container: dict[str, Any] = {"name": "manager", "image": "example:v1"}
    if env is not None:
        container["env"] = env
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": name,
            "namespace": "flux-system",
            "labels": {"app": name},
        },
        "spec": {"template": {"spec": {"containers": [container]}}},
    }


def crd(name: str, kind: str, versions: list[str]) -> dict[str, Any]:
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": name},
        "spec": {
            "names": {"kind": kind, "singular": name},
            "versions": [{"name": version} for version in versions],
        },
    }


def read_yaml(path: Path) -> Any:
    return yaml.safe_load(path.read_text())


async def test_generate_bundle(config: BundleConfig) -> None:
    """Test generating a bundle from a release manifest."""
    result = await generate_bundle(config)

    bundle_dir = config.output_dir / VERSION
    manifests = sorted(p.name for p in (bundle_dir / "manifests").iterdir())
    assert manifests == [
        "terraform.crd.yaml",
        "tf-controller.service.yaml",
        CSV_FILE,
        "tf-leader-election-role.role.yaml",
        "tf-leader-election-rolebinding.rolebinding.yaml",
        "tf-manager-role.clusterrole.yaml",
        "tf-manager-rolebinding.clusterrolebinding.yaml",
    ]
    assert [p.name for p in (bundle_dir / "metadata").iterdir()] == [
        "annotations.yaml"
    ]
    assert result.files[0] == bundle_dir / "metadata" / "annotations.yaml"
    assert result.files[-1] == bundle_dir / "manifests" / CSV_FILE
    assert result.deployments == ["tf-controller", "branch-planner"]
    assert result.skipped == [
        "Namespace/flux-system",
        "ServiceAccount/tf-runner",
        "NetworkPolicy/allow-egress",
    ]


async def test_written_resources_drop_namespace(config: BundleConfig) -> None:
    """Test that resources are copied without their namespace."""
    await generate_bundle(config)

    doc = read_yaml(config.manifests_dir / "tf-leader-election-role.role.yaml")
    assert doc == {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "Role",
        "metadata": {"name": "tf-leader-election-role"},
        "rules": [
            {
                "apiGroups": ["coordination.k8s.io"],
                "resources": ["leases"],
                "verbs": ["get", "create", "update"],
            }
        ],
    }
    binding = read_yaml(
        config.manifests_dir / "tf-manager-rolebinding.clusterrolebinding.yaml"
    )
    # Only metadata.namespace is removed, not namespaces of subjects
    assert binding["subjects"][0]["namespace"] == "flux-system"


async def test_annotations_copied(config: BundleConfig) -> None:
    """Test the annotations template is written unchanged."""
    await generate_bundle(config)

    assert read_yaml(config.metadata_dir / "annotations.yaml") == read_yaml(
        TEMPLATES_DIR / "annotations.yaml"
    )


async def test_cluster_service_version(config: BundleConfig) -> None:
    """Test the fields of the generated ClusterServiceVersion."""
    await generate_bundle(config)

    csv = read_yaml(config.manifests_dir / CSV_FILE)
    assert csv["metadata"]["name"] == f"tf-controller.v{VERSION}"
    assert (
        csv["metadata"]["annotations"]["containerImage"]
        == f"ghcr.io/weaveworks/tf-controller:v{VERSION}"
    )
    # Untouched template fields are kept
    assert csv["metadata"]["annotations"]["capabilities"] == "Basic Install"
    assert csv["spec"]["displayName"] == "TF-controller"
    assert csv["spec"]["version"] == VERSION
    assert csv["spec"]["minKubeVersion"] == "1.19.0"
    assert csv["spec"]["maturity"] == "stable"
    assert "replaces" not in csv["spec"]
    assert csv["spec"]["customresourcedefinitions"]["owned"] == [
        {
            "name": "terraforms.infra.contrib.fluxcd.io",
            "displayName": "Terraform",
            "kind": "Terraform",
            "version": "v1alpha1",
            "description": "Terraform",
        },
        {
            "name": "terraforms.infra.contrib.fluxcd.io",
            "displayName": "Terraform",
            "kind": "Terraform",
            "version": "v1alpha2",
            "description": "Terraform",
        },
    ]


async def test_cluster_service_version_deployments(config: BundleConfig) -> None:
    """Test Deployments are embedded in the install strategy in source order."""
    await generate_bundle(config)

    csv = read_yaml(config.manifests_dir / CSV_FILE)
    deployments = csv["spec"]["install"]["spec"]["deployments"]
    assert [d["name"] for d in deployments] == ["tf-controller", "branch-planner"]
    assert deployments[0]["label"] == {"app": "tf-controller"}
    assert "label" not in deployments[1]
    env = deployments[0]["spec"]["template"]["spec"]["containers"][0]["env"]
    assert env[1] == {
        "name": "RUNNER_POD_IMAGE",
        "value": f"ghcr.io/weaveworks/tf-runner:v{VERSION}",
    }
    assert not list(config.manifests_dir.glob("*.deployment.yaml"))


async def test_replaces(config: BundleConfig) -> None:
    """Test the replaced version is recorded in the ClusterServiceVersion."""
    await generate_bundle(config.update(replaces="0.9.0-rc.7"))

    csv = read_yaml(config.manifests_dir / CSV_FILE)
    assert csv["spec"]["replaces"] == "tf-controller.v0.9.0-rc.7"


async def test_unsupported_kind(
    config: BundleConfig, caplog: pytest.LogCaptureFixture
) -> None:
    """Test an unsupported kind stops the run before the CSV is written."""
    config = config.update(source=TESTDATA / "unsupported.yaml")

    with caplog.at_level(logging.WARNING), pytest.raises(
        UnsupportedKindError, match="ConfigMap tf-config"
    ) as excinfo:
        await generate_bundle(config)

    assert excinfo.value.kind == "ConfigMap"
    assert excinfo.value.name == "tf-config"
    assert "UNSUPPORTED KIND" in caplog.text
    # Files written before the unsupported kind remain
    assert (config.manifests_dir / "r1.role.yaml").exists()
    assert not (config.manifests_dir / "after-unsupported.service.yaml").exists()
    assert not (config.manifests_dir / CSV_FILE).exists()


async def test_end_to_end(config: BundleConfig) -> None:
    """Test a stream with one role, deployment and multi-version CRD."""
    generator = BundleGenerator(config)
    await generator.prepare()
    await generator.visit_all(
        [
            role("r1"),
            deployment(
                "d1",
                env=[
                    {"name": "RUNTIME_NAMESPACE", "value": "flux-system"},
                    {"name": "RUNNER_POD_IMAGE", "value": "old"},
                ],
            ),
            crd("c1", "C1", ["v1", "v1alpha1"]),
        ]
    )
    path = await generator.write_cluster_service_version()

    assert (config.manifests_dir / "r1.role.yaml").exists()
    assert (config.manifests_dir / "c1.crd.yaml").exists()
    csv = read_yaml(path)
    deployments = csv["spec"]["install"]["spec"]["deployments"]
    assert [d["name"] for d in deployments] == ["d1"]
    owned = csv["spec"]["customresourcedefinitions"]["owned"]
    assert [(o["name"], o["version"]) for o in owned] == [
        ("c1", "v1"),
        ("c1", "v1alpha1"),
    ]
    assert all(o["kind"] == "C1" and o["displayName"] == "C1" for o in owned)


async def test_owned_crd_order(config: BundleConfig) -> None:
    """Test owned CRDs follow CRD order and then version order."""
    generator = BundleGenerator(config)
    await generator.prepare()
    await generator.visit(crd("b", "B", ["v2", "v1"]))
    await generator.visit(crd("a", "A", ["v1"]))

    csv = generator.cluster_service_version({})
    owned = csv["spec"]["customresourcedefinitions"]["owned"]
    assert [(o["name"], o["version"]) for o in owned] == [
        ("b", "v2"),
        ("b", "v1"),
        ("a", "v1"),
    ]
    assert [d.kind for d in generator.result.owned_crds] == ["B", "B", "A"]


async def test_empty_template_sections(config: BundleConfig) -> None:
    """Test the ClusterServiceVersion sections are created when absent."""
    generator = BundleGenerator(config)
    csv = generator.cluster_service_version({"kind": "ClusterServiceVersion"})
    assert csv == {
        "kind": "ClusterServiceVersion",
        "metadata": {
            "name": f"tf-controller.v{VERSION}",
            "annotations": {
                "containerImage": f"ghcr.io/weaveworks/tf-controller:v{VERSION}"
            },
        },
        "spec": {
            "install": {"spec": {"deployments": []}},
            "version": VERSION,
            "minKubeVersion": "1.19.0",
            "maturity": "stable",
            "customresourcedefinitions": {"owned": []},
        },
    }


async def test_template_not_modified(config: BundleConfig) -> None:
    """Test that assembling the ClusterServiceVersion leaves the template as-is."""
    generator = BundleGenerator(config)
    template: dict[str, Any] = {"spec": {"install": {"spec": {"deployments": []}}}}
    await generator.visit(deployment("d1"))
    generator.cluster_service_version(template)
    assert template == {"spec": {"install": {"spec": {"deployments": []}}}}


@pytest.mark.parametrize(
    "kind",
    ["Namespace", "NetworkPolicy", "ServiceAccount"],
)
async def test_skipped_kinds(config: BundleConfig, kind: str) -> None:
    """Test ignored and dropped kinds produce no output."""
    generator = BundleGenerator(config)
    await generator.prepare()
    await generator.visit(
        {"apiVersion": "v1", "kind": kind, "metadata": {"name": "skipped"}}
    )
    assert not list(config.manifests_dir.iterdir())
    assert not generator.deployments
    assert not generator.crds
    assert generator.result.skipped == [f"{kind}/skipped"]


@pytest.mark.parametrize(
    ("kind", "suffix"),
    [
        ("Role", "role"),
        ("RoleBinding", "rolebinding"),
        ("ClusterRoleBinding", "clusterrolebinding"),
        ("ClusterRole", "clusterrole"),
        ("SecurityContextConstraints", "securitycontextconstraints"),
        ("Service", "service"),
    ],
)
async def test_write_kinds(config: BundleConfig, kind: str, suffix: str) -> None:
    """Test resources copied to the bundle are named by name and kind."""
    generator = BundleGenerator(config)
    await generator.prepare()
    await generator.visit(
        {"kind": kind, "metadata": {"name": "example", "namespace": "default"}}
    )
    assert [p.name for p in config.manifests_dir.iterdir()] == [
        f"example.{suffix}.yaml"
    ]
    assert read_yaml(config.manifests_dir / f"example.{suffix}.yaml") == {
        "kind": kind,
        "metadata": {"name": "example"},
    }


async def test_empty_document_ignored(config: BundleConfig) -> None:
    """Test empty documents are skipped."""
    generator = BundleGenerator(config)
    await generator.visit({})
    assert not generator.result.skipped
    assert not generator.result.files


def test_handlers_exhaustive(config: BundleConfig) -> None:
    """Test every kind has a handler registered."""
    generator = BundleGenerator(config)
    assert generator.handled_kinds == set(ResourceKind)


async def test_crd_missing_versions(config: BundleConfig) -> None:
    """Test a CRD without versions is rejected."""
    generator = BundleGenerator(config)
    doc = crd("c1", "C1", [])
    with pytest.raises(InputException, match="missing spec.versions"):
        await generator.visit(doc)
    assert not generator.crds


@pytest.mark.parametrize(
    ("env", "expected"),
    [
        (
            [{"name": "A", "value": "a"}, {"name": "RUNNER_POD_IMAGE", "value": "x"}],
            "ghcr.io/example/runner:v1.0.0",
        ),
        (
            [{"name": "RUNNER_POD_IMAGE", "value": "x"}, {"name": "B", "value": "b"}],
            "b",
        ),
    ],
)
def test_rewrite_runner_image(env: list[dict[str, Any]], expected: str) -> None:
    """Test only the second env entry of the first container is rewritten."""
    doc = deployment("d1", env=env)
    rewrite_runner_image(doc, "ghcr.io/example/runner:v1.0.0")
    assert doc["spec"]["template"]["spec"]["containers"][0]["env"][1]["value"] == (
        expected
    )


@pytest.mark.parametrize(
    "env",
    [None, [], [{"name": "RUNNER_POD_IMAGE", "value": "x"}]],
)
def test_rewrite_runner_image_missing_env(env: list[dict[str, Any]] | None) -> None:
    """Test deployments without a second env entry are left alone."""
    doc = deployment("d1", env=env)
    assert not rewrite_runner_image(doc, "ghcr.io/example/runner:v1.0.0")


@pytest.mark.parametrize(
    "doc",
    [
        {"kind": "Role", "rules": []},
        {"kind": "Service", "metadata": {"namespace": "default"}},
        {"kind": "ClusterRole", "metadata": {"name": ""}},
    ],
)
async def test_write_kind_missing_name(
    config: BundleConfig, doc: dict[str, Any]
) -> None:
    """Test a resource without a name is rejected instead of written."""
    generator = BundleGenerator(config)
    await generator.prepare()
    with pytest.raises(InputException, match="missing metadata.name"):
        await generator.visit(doc)
    assert not list(config.manifests_dir.iterdir())


async def test_owned_crds_built_when_visited(config: BundleConfig) -> None:
    """Test owned CRD entries are taken from the CRD as it was visited."""
    generator = BundleGenerator(config)
    await generator.prepare()
    doc = crd("c1", "C1", ["v1", "v2"])
    await generator.visit(doc)
    doc["spec"]["versions"] = []

    csv = generator.cluster_service_version({})
    owned = csv["spec"]["customresourcedefinitions"]["owned"]
    assert [o["version"] for o in owned] == ["v1", "v2"]
