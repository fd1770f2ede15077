from __future__ import annotations

from gpustack.core.data_model import DataModel

from ._constants import (
    SOURCE_GIT,
    SOURCE_LATEST,
    SOURCE_PACKAGE,
    SOURCE_RELEASE,
)
from ._models import EnvironmentSpec, GitSpec, LatestSpec


class ComponentProvenance(DataModel):
    """Where a component was requested to come from."""

    source: str
    version: str | None = None
    branch: str | None = None
    repo: str | None = None
    ref: str | None = None
    commit: str | None = None


class ComponentsStatus(DataModel):
    driver: ComponentProvenance | None = None
    runtime: ComponentProvenance | None = None
    toolkit: ComponentProvenance | None = None
    kubernetes: ComponentProvenance | None = None


def build_components_status(
    spec: EnvironmentSpec,
) -> ComponentsStatus | None:
    """Record the requested source of each installed component.

    Returns:
        Status of the requested components, or None when no component
        is requested.
    """
    status = ComponentsStatus()
    if spec.nvidia_driver.install:
        status.driver = ComponentProvenance(
            source=SOURCE_PACKAGE,
            version=spec.nvidia_driver.version,
            branch=spec.nvidia_driver.branch,
        )
    if spec.container_runtime.install:
        status.runtime = ComponentProvenance(
            source=SOURCE_PACKAGE,
            version=spec.container_runtime.version,
        )
    ctk = spec.nvidia_container_toolkit
    if ctk.install:
        source = ctk.source or SOURCE_PACKAGE
        version = None
        if source == SOURCE_PACKAGE:
            version = (ctk.package and ctk.package.version) or ctk.version
        status.toolkit = _provenance(source, version, ctk.git, ctk.latest)
    k8s = spec.kubernetes
    if k8s.install:
        source = k8s.source or SOURCE_RELEASE
        version = None
        if source == SOURCE_RELEASE:
            version = (k8s.release and k8s.release.version) or k8s.version
        status.kubernetes = _provenance(source, version, k8s.git, k8s.latest)
    if not status.model_dump(exclude_none=True):
        return None
    return status


def _provenance(
    source: str,
    version: str | None,
    git: GitSpec | None,
    latest: LatestSpec | None,
) -> ComponentProvenance:
    provenance = ComponentProvenance(source=source, version=version)
    if source == SOURCE_GIT and git is not None:
        provenance.repo = git.repo
        provenance.ref = git.ref
    elif source == SOURCE_LATEST and latest is not None:
        provenance.repo = latest.repo
        provenance.branch = latest.track
    return provenance
