"""Turn an environment spec into the ordered list of install actions."""

from __future__ import annotations

import re
from typing import Iterable

import structlog

from gpustack.core import warn
from gpustack.core.exceptions import ResolutionError

from ._constants import (
    CONTAINER_RUNTIMES,
    CONTAINER_TOOLKIT,
    CRI_SOCKETS,
    CTK_CHANNELS,
    DEFAULT_ARCH,
    DEFAULT_CALICO_VERSION,
    DEFAULT_CNI_PLUGINS_VERSION,
    DEFAULT_CONTAINER_RUNTIME,
    DEFAULT_CRICTL_VERSION,
    DEFAULT_CTK_CHANNEL,
    DEFAULT_CTK_REPO,
    DEFAULT_CTK_TRACK,
    DEFAULT_KUBELET_RELEASE_VERSION,
    DEFAULT_KUBERNETES_INSTALLER,
    DEFAULT_KUBERNETES_REPO,
    DEFAULT_KUBERNETES_TRACK,
    DEFAULT_KUBERNETES_VERSION,
    DRIVER_SOURCES,
    KERNEL,
    KIND,
    KUBEADM,
    KUBEADM_CONFIG_MIN_VERSION,
    KUBERNETES_INSTALLERS,
    KUBERNETES_SOURCES,
    NVIDIA_DRIVER,
    RUNTIME_SOURCES,
    SELF_CONTAINED_INSTALLERS,
    SOURCE_GIT,
    SOURCE_LATEST,
    SOURCE_PACKAGE,
    SOURCE_RELEASE,
    TOOLKIT_SOURCES,
)
from ._models import ComponentKind, EnvironmentSpec
from .action import (
    ActionConfig,
    DriverConfig,
    KernelConfig,
    OrchestratorConfig,
    ResolvedAction,
    RuntimeConfig,
    ToolkitConfig,
)
from .constraints import CONSTRAINT_RULES, ConstraintRule, propagate

logger = structlog.get_logger(__name__)

_VERSION_PATTERN = re.compile(r"^v?(\d+)\.(\d+)(?:\.(\d+))?")


class DependencyResolver:
    """Resolve an environment spec into ordered actions.

    Components are evaluated in the fixed order kernel, driver,
    container runtime, container toolkit and orchestrator. A
    self-contained orchestrator such as microk8s replaces everything
    collected before it. The input spec is never modified.

    Args:
        spec: Environment to resolve.
        rules: Constraint rules applied after the list is built.
    """

    def __init__(
        self,
        spec: EnvironmentSpec,
        rules: Iterable[ConstraintRule] = CONSTRAINT_RULES,
    ):
        self.spec = spec.model_copy(deep=True)
        self.rules = tuple(rules)
        self._actions: list[ResolvedAction] = []

    def resolve(self) -> list[ResolvedAction]:
        """Build the action list.

        Returns:
            New list of actions indexed 0..n-1 in install order.

        Raises:
            ResolutionError:
                The spec requests an unsupported or incomplete
                configuration. No partial list is returned.
        """
        self._actions = []
        if self.spec.kernel.requested:
            self.with_kernel()
        if self.spec.nvidia_driver.install:
            self.with_driver()
        if self.spec.container_runtime.install:
            self.with_container_runtime()
        if self.spec.nvidia_container_toolkit.install:
            self.with_container_toolkit()
        if self.spec.kubernetes.install:
            self.with_kubernetes()

        actions = propagate(self._actions, self.rules)
        self._actions = []
        resolved = [
            action.model_copy(update={"order_index": index})
            for index, action in enumerate(actions)
        ]
        logger.debug(
            "Resolved environment",
            actions=[str(action) for action in resolved],
        )
        return resolved

    def with_kernel(self) -> DependencyResolver:
        kernel = self.spec.kernel
        if not kernel.version:
            raise ResolutionError("kernel install requires a version")
        self._add(
            ComponentKind.KERNEL,
            KernelConfig(
                provider=KERNEL,
                component=KERNEL,
                version=kernel.version,
            ),
        )
        return self

    def with_driver(self) -> DependencyResolver:
        driver = self.spec.nvidia_driver
        source = _check_source("nvidia driver", driver.source, DRIVER_SOURCES)
        self._add(
            ComponentKind.DRIVER,
            DriverConfig(
                provider=NVIDIA_DRIVER,
                component=NVIDIA_DRIVER,
                source=source,
                version=driver.version,
                branch=driver.branch,
            ),
        )
        return self

    def with_container_runtime(self) -> DependencyResolver:
        runtime = self.spec.container_runtime
        source = _check_source(
            "container runtime", runtime.source, RUNTIME_SOURCES
        )
        if not runtime.name:
            warn(
                "Container runtime name not set, defaulting",
                runtime=DEFAULT_CONTAINER_RUNTIME,
            )
        name = self._runtime_name()
        self._add(
            ComponentKind.CONTAINER_RUNTIME,
            RuntimeConfig(
                provider=name,
                component=name,
                source=source,
                name=name,
                version=runtime.version,
            ),
        )
        return self

    def with_container_toolkit(self) -> DependencyResolver:
        ctk = self.spec.nvidia_container_toolkit
        source = _check_source(
            "container toolkit", ctk.source, TOOLKIT_SOURCES
        )
        _check_single_source(
            "container toolkit",
            source,
            {
                SOURCE_PACKAGE: ctk.package,
                SOURCE_GIT: ctk.git,
                SOURCE_LATEST: ctk.latest,
            },
        )
        fields: dict = {}
        if source == SOURCE_PACKAGE:
            channel = DEFAULT_CTK_CHANNEL
            version = ctk.version
            if ctk.package is not None:
                channel = ctk.package.channel or DEFAULT_CTK_CHANNEL
                version = ctk.package.version or version
            if channel not in CTK_CHANNELS:
                raise ResolutionError(
                    f"unsupported container toolkit channel: {channel}"
                )
            fields.update(version=version, channel=channel)
        elif source == SOURCE_GIT:
            if ctk.git is None or not ctk.git.ref:
                raise ResolutionError(
                    "container toolkit git source requires a ref"
                )
            fields.update(
                git_repo=ctk.git.repo or DEFAULT_CTK_REPO,
                git_ref=ctk.git.ref,
            )
        else:
            latest = ctk.latest
            fields.update(
                git_repo=(latest and latest.repo) or DEFAULT_CTK_REPO,
                track_branch=(latest and latest.track) or DEFAULT_CTK_TRACK,
            )
        self._add(
            ComponentKind.CONTAINER_TOOLKIT,
            ToolkitConfig(
                provider=CONTAINER_TOOLKIT,
                component=CONTAINER_TOOLKIT,
                source=source,
                container_runtime=self._runtime_name(),
                enable_cdi=ctk.enable_cdi,
                **fields,
            ),
        )
        return self

    def with_kubernetes(self) -> DependencyResolver:
        k8s = self.spec.kubernetes
        installer = k8s.installer or DEFAULT_KUBERNETES_INSTALLER
        if installer not in KUBERNETES_INSTALLERS:
            raise ResolutionError(
                f"unsupported kubernetes installer: {installer}"
            )
        source = k8s.source or SOURCE_RELEASE
        if source not in KUBERNETES_SOURCES:
            raise ResolutionError(f"unsupported kubernetes source: {source}")
        _check_single_source(
            "kubernetes",
            source,
            {
                SOURCE_RELEASE: k8s.release,
                SOURCE_GIT: k8s.git,
                SOURCE_LATEST: k8s.latest,
            },
        )
        if installer in SELF_CONTAINED_INSTALLERS:
            if source != SOURCE_RELEASE:
                raise ResolutionError(
                    f"{installer} only supports the release source"
                )
            # ships its own runtime, so nothing collected so far is needed
            self._actions = []

        fields: dict = {}
        if source == SOURCE_RELEASE:
            version = (
                (k8s.release and k8s.release.version)
                or k8s.version
                or DEFAULT_KUBERNETES_VERSION
            )
            if installer in (KUBEADM, KIND) and not version.startswith("v"):
                raise ResolutionError(
                    f"kubernetes version must start with 'v': {version}"
                )
            fields.update(
                version=version,
                use_legacy_init=(
                    installer == KUBEADM and use_legacy_init(version)
                ),
            )
        elif source == SOURCE_GIT:
            if k8s.git is None or not k8s.git.ref:
                raise ResolutionError("kubernetes git source requires a ref")
            fields.update(
                git_repo=k8s.git.repo or DEFAULT_KUBERNETES_REPO,
                git_ref=k8s.git.ref,
            )
        else:
            latest = k8s.latest
            fields.update(
                git_repo=(latest and latest.repo) or DEFAULT_KUBERNETES_REPO,
                track_branch=(
                    (latest and latest.track) or DEFAULT_KUBERNETES_TRACK
                ),
            )

        runtime = self._runtime_name()
        self._add(
            ComponentKind.ORCHESTRATOR,
            OrchestratorConfig(
                provider=installer,
                component="kubernetes",
                source=source,
                installer=installer,
                container_runtime=runtime,
                cri_socket=CRI_SOCKETS[runtime],
                kubelet_release_version=(
                    k8s.kubelet_release_version
                    or DEFAULT_KUBELET_RELEASE_VERSION
                ),
                arch=k8s.arch or DEFAULT_ARCH,
                cni_plugins_version=(
                    k8s.cni_plugins_version or DEFAULT_CNI_PLUGINS_VERSION
                ),
                calico_version=k8s.calico_version or DEFAULT_CALICO_VERSION,
                crictl_version=k8s.crictl_version or DEFAULT_CRICTL_VERSION,
                feature_gates=",".join(k8s.feature_gates),
                endpoint_host=k8s.endpoint_host,
                kind_config=k8s.kind_config if installer == KIND else None,
                **fields,
            ),
        )
        return self

    def _runtime_name(self) -> str:
        name = self.spec.container_runtime.name or DEFAULT_CONTAINER_RUNTIME
        if name not in CONTAINER_RUNTIMES:
            raise ResolutionError(f"unsupported container runtime: {name}")
        return name

    def _add(self, kind: ComponentKind, config: ActionConfig) -> None:
        self._actions.append(
            ResolvedAction(
                kind=kind,
                order_index=len(self._actions),
                config=config,
            )
        )


def resolve(spec: EnvironmentSpec) -> list[ResolvedAction]:
    """Resolve a spec with a fresh resolver."""
    return DependencyResolver(spec).resolve()


def parse_version(version: str) -> tuple[int, int, int] | None:
    """Parse `v1.31.1` or `1.31` into a comparable tuple."""
    match = _VERSION_PATTERN.match(version)
    if match is None:
        return None
    major, minor, patch = match.groups()
    return int(major), int(minor), int(patch or 0)


def use_legacy_init(version: str) -> bool:
    """Whether a kubeadm release predates config file based init.

    Unparseable versions are treated as current releases.
    """
    parsed = parse_version(version)
    return parsed is not None and parsed < KUBEADM_CONFIG_MIN_VERSION


def _check_source(
    label: str,
    source: str | None,
    allowed: tuple[str, ...],
) -> str:
    source = source or allowed[0]
    if source not in allowed:
        raise ResolutionError(f"unsupported {label} source: {source}")
    return source


def _check_single_source(
    label: str,
    source: str,
    variants: dict[str, object | None],
) -> None:
    for name, value in variants.items():
        if value is not None and name != source:
            raise ResolutionError(
                f"{label} source is '{source}' but '{name}' settings are set"
            )
