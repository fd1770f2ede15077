from typing import Any

from gpustack.core import Component, Response, operation
from gpustack.provisioning.action import ActionConfigType, TargetContext

from ._models import Payload


class ScriptRenderer(Component):
    """Render the bash payload of a resolved action.

    The provider is the installer named by the action config,
    e.g. `ScriptRenderer(__provider__="containerd")`.
    """

    @operation()
    def render(
        self,
        config: ActionConfigType,
        target: TargetContext = TargetContext(),
        **kwargs: Any,
    ) -> Response[Payload]:
        """Render the payload.

        Args:
            config: Fully defaulted action configuration.
            target: Data about the host the payload runs on.

        Returns:
            Payload with the install, version and verify scripts.
        """
        ...
