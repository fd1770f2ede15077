import pytest
import yaml

from gpustack.core.exceptions import LoadError
from gpustack.core.manifest import RetrySettings
from gpustack.provisioning import (
    EnvironmentSpec,
    ResolvedAction,
    TargetContext,
    resolve,
)
from gpustack.scripts import Payload, ScriptRenderer
from gpustack.scripts._common import assign
from gpustack.scripts.providers._kubernetes import parse_feature_gates
from gpustack.scripts.providers.kubeadm import kubeadm_config
from gpustack.scripts.providers.microk8s import snap_channel

SHA = "0123456789abcdef0123456789abcdef01234567"


def resolve_one(obj: dict) -> ResolvedAction:
    return resolve(EnvironmentSpec.from_dict(obj))[-1]


class FakeRefResolver:
    def __init__(self):
        self.calls = []

    def resolve(self, repo: str, ref: str) -> tuple[str, str]:
        self.calls.append((repo, ref))
        return SHA, SHA[:8]


@pytest.mark.parametrize(
    "obj,provider,snippets",
    [
        (
            {"kernel": {"version": "6.8.0-49-generic"}},
            "kernel",
            ['VERSION=6.8.0-49-generic', "update-grub"],
        ),
        (
            {"nvidiaDriver": {"install": True, "branch": "550"}},
            "nvidia_driver",
            ["PACKAGE=cuda-drivers-550", "nvidia-smi"],
        ),
        (
            {"containerRuntime": {"install": True, "version": "1.7.23"}},
            "containerd",
            ["PACKAGE=containerd.io=1.7.23-1", "SystemdCgroup = true"],
        ),
        (
            {"containerRuntime": {"install": True, "name": "docker"}},
            "docker",
            ["daemon.json", "native.cgroupdriver=systemd"],
        ),
        (
            {"containerRuntime": {"install": True, "name": "crio"}},
            "crio",
            ["CRIO_VERSION=v1.31", "cri-o"],
        ),
        (
            {"nvidiaContainerToolkit": {"install": True}},
            "container_toolkit",
            ["CHANNEL=stable", "nvidia-ctk runtime configure"],
        ),
        (
            {"kubernetes": {"install": True}},
            "kubeadm",
            ["K8S_VERSION=v1.31.1", "kubeadm init", "tigera-operator"],
        ),
        (
            {"kubernetes": {"install": True, "installer": "kind"}},
            "kind",
            ["kindest/node:${K8S_VERSION}", "kind create cluster"],
        ),
        (
            {"kubernetes": {"install": True, "installer": "microk8s"}},
            "microk8s",
            ["CHANNEL=1.31/stable", "microk8s enable nvidia"],
        ),
    ],
)
def test_render(obj: dict, provider: str, snippets: list[str]):
    action = resolve_one(obj)
    assert action.provider == provider
    payload = action.materialize()
    assert isinstance(payload, Payload)
    assert payload.component == action.component
    assert payload.version == action.config.requested_version
    for snippet in snippets:
        assert snippet in payload.install_script
    assert payload.version_script
    assert payload.verify_script
    assert payload.side_effects


def test_renderer_component():
    action = resolve_one({"containerRuntime": {"install": True}})
    renderer = ScriptRenderer(__provider__="containerd")
    response = renderer.render(config=action.config, target=TargetContext())
    assert response.result == action.materialize()


def test_kernel_requires_reboot():
    payload = resolve_one({"kernel": {"version": "6.8.0-49"}}).materialize()
    assert payload.requires_reboot
    assert payload.version == "6.8.0-49"
    assert payload.version_script == "uname -r\n"


def test_standalone_script():
    payload = resolve_one(
        {"containerRuntime": {"install": True}}
    ).materialize(TargetContext(state_dir="/opt/state"))
    script = payload.script
    assert script.startswith("#!/usr/bin/env bash\nset -euo pipefail\n")
    assert "export GPUSTACK_STATE_DIR=/opt/state" in script
    for function in (
        "gpustack_contract()",
        "gpustack_installed_version()",
        "gpustack_verify()",
        "gpustack_install()",
        "gpustack_reboot()",
    ):
        assert function in script
    assert "REQUIRES_REBOOT=false" in script
    assert script.rstrip().endswith(
        'gpustack_contract "$COMPONENT" "$REQUESTED_VERSION" '
        '"$REQUIRES_REBOOT"'
    )


def test_wrap():
    action = resolve_one({"containerRuntime": {"install": True}})
    wrapped = action.materialize().wrap("echo hi\n")
    assert wrapped.startswith("#!/usr/bin/env bash")
    assert wrapped.endswith("\necho hi\n")


def test_retry_settings_reach_the_target():
    target = TargetContext(retry=RetrySettings(delay=3, backoff="linear"))
    payload = resolve_one(
        {"containerRuntime": {"install": True}}
    ).materialize(target)
    assert "export GPUSTACK_RETRY_DELAY=3\n" in payload.script
    assert "export GPUSTACK_RETRY_BACKOFF=linear\n" in payload.wrap("true\n")


def test_toolkit_git_pins_commit():
    action = resolve_one(
        {
            "nvidiaContainerToolkit": {
                "install": True,
                "source": "git",
                "git": {"ref": "refs/tags/v1.17.3"},
            }
        }
    )
    refs = FakeRefResolver()
    payload = action.materialize(TargetContext(ref_resolver=refs))
    assert refs.calls == [(action.config.git_repo, "refs/tags/v1.17.3")]
    assert payload.version == SHA[:8]
    assert f"GIT_COMMIT={SHA[:8]}" in payload.install_script
    assert "PROVENANCE.json" in payload.install_script
    assert "gpustack_provenance_get" in payload.version_script
    assert action.config.git_commit is None


def test_toolkit_git_without_resolver():
    action = resolve_one(
        {
            "nvidiaContainerToolkit": {
                "install": True,
                "source": "git",
                "git": {"ref": "main"},
            }
        }
    )
    payload = action.materialize()
    assert payload.version is None
    assert "git ls-remote" in payload.install_script


def test_kubeadm_git_source():
    action = resolve_one(
        {
            "kubernetes": {
                "install": True,
                "source": "git",
                "git": {"ref": "refs/tags/v1.32.0"},
            }
        }
    )
    payload = action.materialize(TargetContext(ref_resolver=FakeRefResolver()))
    assert "git clone" in payload.install_script
    assert "make WHAT=" in payload.install_script
    assert payload.version == SHA[:8]


def test_kubeadm_legacy_init():
    action = resolve_one(
        {"kubernetes": {"install": True, "version": "v1.29.4"}}
    )
    script = action.materialize().install_script
    assert '--kubernetes-version="$K8S_VERSION"' in script
    assert "--config=" not in script


def test_kubeadm_endpoint():
    action = resolve_one({"kubernetes": {"install": True}})
    script = action.materialize(TargetContext(host="10.0.0.5")).install_script
    assert "CONTROL_PLANE_ENDPOINT=10.0.0.5" in script


@pytest.mark.parametrize(
    "version,api_version",
    [
        ("v1.30.5", "kubeadm.k8s.io/v1beta3"),
        ("v1.31.1", "kubeadm.k8s.io/v1beta4"),
    ],
)
def test_kubeadm_config(version: str, api_version: str):
    action = resolve_one(
        {
            "kubernetes": {
                "install": True,
                "release": {"version": version},
                "featureGates": ["DynamicResourceAllocation=true"],
            }
        }
    )
    init, cluster = yaml.safe_load_all(kubeadm_config(action.config))
    assert init["apiVersion"] == api_version
    assert init["nodeRegistration"]["criSocket"] == (
        "unix:///run/containerd/containerd.sock"
    )
    assert cluster["kind"] == "ClusterConfiguration"
    assert cluster["networking"]["podSubnet"] == "192.168.0.0/16"
    assert cluster["featureGates"] == {"DynamicResourceAllocation": True}


def test_kind_config(tmp_path):
    path = tmp_path / "kind.yaml"
    path.write_text("kind: Cluster\napiVersion: kind.x-k8s.io/v1alpha4")
    action = resolve_one(
        {
            "kubernetes": {
                "install": True,
                "installer": "kind",
                "kindConfig": str(path),
            }
        }
    )
    payload = action.materialize(
        TargetContext(kind_config_path="/etc/kind/cluster.yaml")
    )
    assert "KIND_CONFIG_PATH=/etc/kind/cluster.yaml" in payload.install_script
    assert "apiVersion: kind.x-k8s.io/v1alpha4\nKIND_CONFIG\n" in (
        payload.install_script
    )
    assert "kind config" in payload.side_effects


def test_missing_kind_config(tmp_path):
    action = resolve_one(
        {
            "kubernetes": {
                "install": True,
                "installer": "kind",
                "kindConfig": str(tmp_path / "missing.yaml"),
            }
        }
    )
    with pytest.raises(LoadError):
        action.materialize()


@pytest.mark.parametrize("installer", ["kubeadm", "kind", "microk8s"])
def test_kubernetes_verify_waits_for_ready_nodes(installer: str):
    payload = resolve_one(
        {"kubernetes": {"install": True, "installer": installer}}
    ).materialize()
    assert "wait --for=condition=ready nodes --all" in payload.verify_script
    assert "/tmp" not in payload.verify_script


@pytest.mark.parametrize(
    "version,channel",
    [
        ("v1.31.1", "1.31/stable"),
        ("1.28", "1.28/stable"),
        (None, "latest/stable"),
    ],
)
def test_snap_channel(version, channel: str):
    assert snap_channel(version) == channel


def test_parse_feature_gates():
    assert parse_feature_gates("A=true, B=false,C") == {
        "A": True,
        "B": False,
        "C": True,
    }


def test_assign():
    assert assign(component="containerd", enabled=True, version=None) == (
        "COMPONENT=containerd\nENABLED=true\nVERSION=''\n"
    )
    assert assign(message="two words") == "MESSAGE='two words'\n"
