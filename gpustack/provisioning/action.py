from __future__ import annotations

from typing import TYPE_CHECKING, Any, Union

from gpustack.core.data_model import DataModelField, FrozenDataModel
from gpustack.core.manifest import DEFAULT_STATE_DIR, RetrySettings

from ._constants import MICROK8S, SOURCE_GIT, SOURCE_LATEST, SOURCE_PACKAGE
from ._models import ComponentKind

if TYPE_CHECKING:
    from gpustack.scripts import Payload


class ActionConfig(FrozenDataModel):
    """Fully defaulted configuration of one action.

    Attributes:
        provider: Script provider that materializes the payload.
        component: Name under which the target records install state.
        source: Install source kind.
    """

    provider: str
    component: str
    source: str = SOURCE_PACKAGE

    @property
    def requested_version(self) -> str | None:
        """Version the installed component must report, None for any."""
        return None


class KernelConfig(ActionConfig):
    version: str

    @property
    def requested_version(self) -> str | None:
        return self.version


class DriverConfig(ActionConfig):
    version: str | None = None
    branch: str | None = None

    @property
    def requested_version(self) -> str | None:
        return self.version


class RuntimeConfig(ActionConfig):
    name: str
    version: str | None = None

    @property
    def requested_version(self) -> str | None:
        return self.version


class ToolkitConfig(ActionConfig):
    container_runtime: str
    enable_cdi: bool = False
    version: str | None = None
    channel: str | None = None
    git_repo: str | None = None
    git_ref: str | None = None
    git_commit: str | None = None
    track_branch: str | None = None

    @property
    def requested_version(self) -> str | None:
        if self.source == SOURCE_PACKAGE:
            return self.version
        return self.git_commit

    @property
    def tracked_ref(self) -> str | None:
        if self.source == SOURCE_GIT:
            return self.git_ref
        if self.source == SOURCE_LATEST:
            return self.track_branch
        return None


class OrchestratorConfig(ActionConfig):
    installer: str
    container_runtime: str
    cri_socket: str
    version: str | None = None
    git_repo: str | None = None
    git_ref: str | None = None
    git_commit: str | None = None
    track_branch: str | None = None
    kubelet_release_version: str
    arch: str
    cni_plugins_version: str
    calico_version: str
    crictl_version: str
    feature_gates: str = ""
    endpoint_host: str | None = None
    use_legacy_init: bool = False
    kind_config: str | None = None

    @property
    def requested_version(self) -> str | None:
        if self.source == SOURCE_GIT:
            return self.git_commit
        if self.source == SOURCE_LATEST or self.installer == MICROK8S:
            # tracked branches and snap channels move, any build is fine
            return None
        return self.version

    @property
    def tracked_ref(self) -> str | None:
        if self.source == SOURCE_GIT:
            return self.git_ref
        if self.source == SOURCE_LATEST:
            return self.track_branch
        return None


ActionConfigType = Union[
    KernelConfig,
    DriverConfig,
    RuntimeConfig,
    ToolkitConfig,
    OrchestratorConfig,
]


class TargetContext(FrozenDataModel):
    """Data a payload needs about the host it will run on.

    Attributes:
        host: Host name or address of the target.
        endpoint_host: Control plane endpoint, defaults to `host`.
        kind_config_path: Where a kind config is placed on the target.
        state_dir: Directory holding the install state markers.
        retry: Delay and backoff of retried steps on the target.
        ref_resolver: Optional object with a
            `resolve(repo, ref) -> (full_sha, short_sha)` method used
            to pin git sources to a commit.
    """

    host: str | None = None
    endpoint_host: str | None = None
    kind_config_path: str = "/etc/kubernetes/kind.yaml"
    state_dir: str = DEFAULT_STATE_DIR
    retry: RetrySettings = RetrySettings()
    ref_resolver: Any = DataModelField(default=None, exclude=True)


class ResolvedAction(FrozenDataModel):
    """One ordered unit of provisioning work."""

    kind: ComponentKind
    order_index: int = 0
    config: ActionConfigType

    @property
    def provider(self) -> str:
        return self.config.provider

    @property
    def component(self) -> str:
        return self.config.component

    def materialize(self, target: TargetContext | None = None) -> Payload:
        """Render the payload that installs this component on the target.

        Args:
            target:
                Target host data. Defaults to an empty context.

        Returns:
            Payload with the scripts and expected side effects.
        """
        from gpustack.scripts import ScriptRenderer

        renderer = ScriptRenderer(__provider__=self.config.provider)
        response = renderer.render(
            config=self.config,
            target=target or TargetContext(),
        )
        return response.result

    def __str__(self) -> str:
        version = self.config.requested_version or self.config.source
        return (
            f"{self.order_index}:{self.kind.value}:{self.provider}@{version}"
        )
