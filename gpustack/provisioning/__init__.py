from ._constants import (
    CONTAINER_RUNTIMES,
    KUBERNETES_INSTALLERS,
)
from ._models import (
    ComponentKind,
    ContainerRuntimeSpec,
    CTKPackageSpec,
    EnvironmentSpec,
    GitSpec,
    KernelSpec,
    KubernetesSpec,
    LatestSpec,
    NVIDIAContainerToolkitSpec,
    NVIDIADriverSpec,
    ReleaseSpec,
)
from .action import (
    ActionConfig,
    DriverConfig,
    KernelConfig,
    OrchestratorConfig,
    ResolvedAction,
    RuntimeConfig,
    TargetContext,
    ToolkitConfig,
)
from .constraints import CONSTRAINT_RULES, ConstraintRule, propagate
from .gitref import GitHubRefResolver, normalize_ref, parse_repo_url
from .provenance import (
    ComponentProvenance,
    ComponentsStatus,
    build_components_status,
)
from .resolver import (
    DependencyResolver,
    parse_version,
    resolve,
    use_legacy_init,
)

__all__ = [
    "CONSTRAINT_RULES",
    "CONTAINER_RUNTIMES",
    "KUBERNETES_INSTALLERS",
    "ActionConfig",
    "CTKPackageSpec",
    "ComponentKind",
    "ComponentProvenance",
    "ComponentsStatus",
    "ConstraintRule",
    "ContainerRuntimeSpec",
    "DependencyResolver",
    "DriverConfig",
    "EnvironmentSpec",
    "GitHubRefResolver",
    "GitSpec",
    "KernelConfig",
    "KernelSpec",
    "KubernetesSpec",
    "LatestSpec",
    "NVIDIAContainerToolkitSpec",
    "NVIDIADriverSpec",
    "OrchestratorConfig",
    "ReleaseSpec",
    "ResolvedAction",
    "RuntimeConfig",
    "TargetContext",
    "ToolkitConfig",
    "build_components_status",
    "normalize_ref",
    "parse_repo_url",
    "parse_version",
    "propagate",
    "resolve",
    "use_legacy_init",
]
