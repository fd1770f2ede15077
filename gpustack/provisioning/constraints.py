"""Cross-component constraints applied after the action list is built."""

from __future__ import annotations

from typing import Iterable

import structlog

from gpustack.core.data_model import FrozenDataModel

from ._constants import (
    DEVELOPMENT_SOURCES,
    DOCKER,
    KIND,
    KIND_MIN_DOCKER_VERSION,
)
from .action import OrchestratorConfig, ResolvedAction, RuntimeConfig

logger = structlog.get_logger(__name__)


class ConstraintRule(FrozenDataModel):
    """Raise an unpinned runtime version for an orchestrator variant.

    Attributes:
        installer: Orchestrator installer the rule applies to.
        sources: Orchestrator source kinds the rule applies to.
        runtime: Container runtime family that gets adjusted.
        minimum_version: Runtime package version to install.
        reason: Why the variant needs this runtime.
    """

    installer: str
    sources: frozenset[str]
    runtime: str
    minimum_version: str
    reason: str = ""

    def matches(self, config: OrchestratorConfig) -> bool:
        return (
            config.installer == self.installer
            and config.source in self.sources
        )


CONSTRAINT_RULES: tuple[ConstraintRule, ...] = (
    ConstraintRule(
        installer=KIND,
        sources=DEVELOPMENT_SOURCES,
        runtime=DOCKER,
        minimum_version=KIND_MIN_DOCKER_VERSION,
        reason="kind node images built from source need Docker API 1.44+",
    ),
)


def propagate(
    actions: Iterable[ResolvedAction],
    rules: Iterable[ConstraintRule] = CONSTRAINT_RULES,
) -> list[ResolvedAction]:
    """Apply the constraint rules in one pass over the action list.

    Only actions emitted before the orchestrator are adjusted. A runtime
    version set by the user is never overridden.

    Args:
        actions: Actions in emission order.
        rules: Rules to apply.

    Returns:
        New list with adjusted copies; the input actions are untouched.
    """
    result = list(actions)
    rules = tuple(rules)
    for index, action in enumerate(result):
        if not isinstance(action.config, OrchestratorConfig):
            continue
        for rule in rules:
            if not rule.matches(action.config):
                continue
            for earlier_index in range(index):
                adjusted = _apply_runtime_rule(result[earlier_index], rule)
                if adjusted is not None:
                    result[earlier_index] = adjusted
    return result


def _apply_runtime_rule(
    action: ResolvedAction,
    rule: ConstraintRule,
) -> ResolvedAction | None:
    config = action.config
    if not isinstance(config, RuntimeConfig):
        return None
    if config.name != rule.runtime or config.version:
        return None
    logger.info(
        "Raising container runtime version",
        runtime=config.name,
        version=rule.minimum_version,
        reason=rule.reason,
    )
    return action.model_copy(
        update={
            "config": config.model_copy(
                update={"version": rule.minimum_version}
            )
        }
    )
