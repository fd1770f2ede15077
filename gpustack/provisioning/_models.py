from __future__ import annotations

from enum import Enum

from gpustack.core.data_model import SpecModel

from ._constants import DEFAULT_CTK_CHANNEL


class ComponentKind(str, Enum):
    """Component kinds in install order."""

    KERNEL = "kernel"
    DRIVER = "driver"
    CONTAINER_RUNTIME = "container_runtime"
    CONTAINER_TOOLKIT = "container_toolkit"
    ORCHESTRATOR = "orchestrator"


class KernelSpec(SpecModel):
    """Kernel request.

    Args:
        install:
            Whether to install the kernel. When unset the kernel is
            requested whenever a version is given.
        version:
            Kernel release as reported by `uname -r`.
    """

    install: bool | None = None
    version: str | None = None

    @property
    def requested(self) -> bool:
        if self.install is None:
            return bool(self.version)
        return self.install


class NVIDIADriverSpec(SpecModel):
    """NVIDIA driver request.

    Args:
        install: Whether to install the driver.
        source: Install source. Only "package" is supported.
        version: Exact cuda-drivers package version.
        branch: Driver branch, e.g. "550", used when no version is set.
    """

    install: bool = False
    source: str | None = None
    version: str | None = None
    branch: str | None = None


class ContainerRuntimeSpec(SpecModel):
    install: bool = False
    name: str | None = None
    source: str | None = None
    version: str | None = None


class CTKPackageSpec(SpecModel):
    version: str | None = None
    channel: str = DEFAULT_CTK_CHANNEL


class GitSpec(SpecModel):
    repo: str | None = None
    ref: str | None = None


class LatestSpec(SpecModel):
    track: str | None = None
    repo: str | None = None


class ReleaseSpec(SpecModel):
    version: str | None = None


class NVIDIAContainerToolkitSpec(SpecModel):
    """NVIDIA Container Toolkit request.

    Args:
        install: Whether to install the toolkit.
        source: "package" (default), "git" or "latest".
        version: Legacy package version, used when `package` is unset.
        package: Package source settings.
        git: Git source settings. `ref` is required.
        latest: Branch tracking settings.
        enable_cdi: Enable CDI when configuring the runtime.
    """

    install: bool = False
    source: str | None = None
    version: str | None = None
    package: CTKPackageSpec | None = None
    git: GitSpec | None = None
    latest: LatestSpec | None = None
    enable_cdi: bool = False


class KubernetesSpec(SpecModel):
    """Kubernetes request.

    Args:
        install: Whether to install Kubernetes.
        installer: "kubeadm" (default), "kind" or "microk8s".
        source: "release" (default), "git" or "latest".
        version: Legacy release version, used when `release` is unset.
        release: Release source settings.
        git: Git source settings. `ref` is required.
        latest: Branch tracking settings.
        kubelet_release_version: kubernetes/release tag for the
            kubelet systemd units.
        arch: Binary architecture.
        cni_plugins_version: CNI plugins release.
        calico_version: Calico release.
        crictl_version: cri-tools release.
        feature_gates: key=value feature gates.
        endpoint_host: Control plane endpoint host.
        kind_config: Path to a kind cluster config on the local machine.
    """

    install: bool = False
    installer: str | None = None
    source: str | None = None
    version: str | None = None
    release: ReleaseSpec | None = None
    git: GitSpec | None = None
    latest: LatestSpec | None = None
    kubelet_release_version: str | None = None
    arch: str | None = None
    cni_plugins_version: str | None = None
    calico_version: str | None = None
    crictl_version: str | None = None
    feature_gates: list[str] = []
    endpoint_host: str | None = None
    kind_config: str | None = None


class EnvironmentSpec(SpecModel):
    """Declarative description of the stack to provision on one host."""

    kernel: KernelSpec = KernelSpec()
    nvidia_driver: NVIDIADriverSpec = NVIDIADriverSpec()
    container_runtime: ContainerRuntimeSpec = ContainerRuntimeSpec()
    nvidia_container_toolkit: NVIDIAContainerToolkitSpec = (
        NVIDIAContainerToolkitSpec()
    )
    kubernetes: KubernetesSpec = KubernetesSpec()
