from __future__ import annotations

__all__ = ["MicroK8s"]

from gpustack.provisioning.action import OrchestratorConfig, TargetContext
from gpustack.provisioning.resolver import parse_version

from .._common import EXIT_KUBERNETES, assign
from ._base import BaseScriptProvider
from ._kubernetes import WAIT_NODES_READY


class MicroK8s(BaseScriptProvider):
    """Install MicroK8s from its snap.

    MicroK8s ships its own container runtime, and its `nvidia` addon
    deploys the driver and toolkit through the GPU operator.
    """

    def install_script(
        self,
        config: OrchestratorConfig,
        target: TargetContext,
    ) -> str:
        return assign(
            component=config.component,
            channel=snap_channel(config.version),
        ) + (
            f"""
gpustack_require_command snap "$COMPONENT"
gpustack_progress "$COMPONENT" 1 3 "Installing microk8s (${{CHANNEL}})"
if ! snap list microk8s &>/dev/null; then
    gpustack_retry 3 "$COMPONENT" \\
        sudo snap install microk8s --classic --channel="$CHANNEL"
fi
sudo usermod -a -G microk8s "$(id -un)"
sudo microk8s status --wait-ready --timeout 300

gpustack_progress "$COMPONENT" 2 3 "Enabling addons"
gpustack_retry 3 "$COMPONENT" sudo microk8s enable dns
if ! gpustack_retry 3 "$COMPONENT" sudo microk8s enable nvidia; then
    gpustack_error {EXIT_KUBERNETES} "$COMPONENT" \\
        "Failed to enable the nvidia addon" \\
        "Check sudo microk8s inspect"
fi

gpustack_progress "$COMPONENT" 3 3 "Writing kubeconfig"
mkdir -p "$HOME/.kube"
sudo microk8s config > "$HOME/.kube/config"
chmod 600 "$HOME/.kube/config"
"""
        )

    def version_script(self, config: OrchestratorConfig) -> str:
        return "snap list microk8s 2>/dev/null | awk 'NR == 2 {print $2}'\n"

    def verify_script(self, config: OrchestratorConfig) -> str:
        return (
            "sudo microk8s status --wait-ready --timeout 60 &>/dev/null\n"
            f"sudo microk8s kubectl {WAIT_NODES_READY} &>/dev/null\n"
        )

    def side_effects(self, config: OrchestratorConfig) -> list[str]:
        return ["snap:microk8s", "$HOME/.kube/config"]


def snap_channel(version: str | None) -> str:
    """Map `v1.31.1` to the `1.31/stable` snap channel."""
    parsed = parse_version(version or "")
    if parsed is None:
        return "latest/stable"
    return f"{parsed[0]}.{parsed[1]}/stable"
