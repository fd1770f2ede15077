from ._models import (
    ActionReport,
    ActionStatus,
    ContractResult,
    ExecutionState,
    InstallOutcome,
    MarkerStatus,
    ProvisionReport,
    StateMarker,
)
from .executor import Executor, RebootWaiter
from .markers import FileMarkerStore, MarkerStore, TransportMarkerStore
from .probe import CommandProbe
from .retry import RetryPolicy
from .state_machine import (
    TRANSITIONS,
    ComponentProbe,
    ExecutionContract,
    InvalidTransitionError,
)
from .transports import LocalTransport, Transport, TransportResult

__all__ = [
    "TRANSITIONS",
    "ActionReport",
    "ActionStatus",
    "CommandProbe",
    "ComponentProbe",
    "ContractResult",
    "ExecutionContract",
    "ExecutionState",
    "Executor",
    "FileMarkerStore",
    "InstallOutcome",
    "InvalidTransitionError",
    "LocalTransport",
    "MarkerStatus",
    "MarkerStore",
    "ProvisionReport",
    "RebootWaiter",
    "RetryPolicy",
    "StateMarker",
    "Transport",
    "TransportMarkerStore",
    "TransportResult",
]
