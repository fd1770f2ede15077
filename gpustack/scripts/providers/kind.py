from __future__ import annotations

__all__ = ["Kind"]

from pathlib import Path

from gpustack.core.exceptions import LoadError
from gpustack.provisioning._constants import SOURCE_RELEASE
from gpustack.provisioning.action import OrchestratorConfig, TargetContext

from .._common import EXIT_KUBERNETES, assign
from ._base import BaseScriptProvider, provenance_commit_script
from ._kubernetes import SOURCE_CHECKOUT, WAIT_NODES_READY, variables

KIND_VERSION = "v0.25.0"
CLUSTER_NAME = "gpustack"
PROVENANCE_FILE = "/etc/kind/PROVENANCE.json"

INSTALL_TOOLS = f"""
gpustack_require_command docker "$COMPONENT"
BIN_DIR=/usr/local/bin
if [[ ! -x "$BIN_DIR/kind" ]]; then
    gpustack_retry 3 "$COMPONENT" sudo curl -fsSL -o "$BIN_DIR/kind" \\
        "https://kind.sigs.k8s.io/dl/${{KIND_VERSION}}/kind-linux-${{ARCH}}"
    sudo chmod +x "$BIN_DIR/kind"
fi
if [[ ! -x "$BIN_DIR/kubectl" ]]; then
    KUBECTL_VERSION="$K8S_VERSION"
    if [[ -z "$KUBECTL_VERSION" ]]; then
        KUBECTL_VERSION=$(curl -fsSL https://dl.k8s.io/release/stable.txt)
    fi
    KUBECTL_URL="https://dl.k8s.io/release/${{KUBECTL_VERSION}}/bin/linux"
    gpustack_retry 3 "$COMPONENT" sudo curl -fsSL -o "$BIN_DIR/kubectl" \\
        "${{KUBECTL_URL}}/${{ARCH}}/kubectl"
    sudo chmod +x "$BIN_DIR/kubectl"
fi
"""

BUILD_NODE_IMAGE = """
NODE_IMAGE="gpustack/node:${GIT_COMMIT}"
gpustack_progress "$COMPONENT" 2 3 "Building node image ${NODE_IMAGE}"
sudo kind build node-image --image "$NODE_IMAGE" "$SRC_DIR"
cd /
"""

CREATE_CLUSTER = f"""
gpustack_progress "$COMPONENT" 3 3 "Creating cluster {CLUSTER_NAME}"
if ! sudo kind get clusters 2>/dev/null | grep -qx {CLUSTER_NAME}; then
    CREATE_ARGS=(--name {CLUSTER_NAME} --image "$NODE_IMAGE" --wait 5m)
    if [[ -n "$KIND_CONFIG_PATH" ]]; then
        CREATE_ARGS+=(--config "$KIND_CONFIG_PATH")
    fi
    if ! sudo kind create cluster "${{CREATE_ARGS[@]}}"; then
        gpustack_error {EXIT_KUBERNETES} "$COMPONENT" \\
            "kind create cluster failed" "Check docker logs"
    fi
fi
mkdir -p "$HOME/.kube"
sudo kind get kubeconfig --name {CLUSTER_NAME} > "$HOME/.kube/config"
chmod 600 "$HOME/.kube/config"
"""


class Kind(BaseScriptProvider):
    """Create a kind cluster on the target's docker.

    Release installs use the published `kindest/node` image. Git and
    latest installs build a node image from the Kubernetes sources.
    """

    def install_script(
        self,
        config: OrchestratorConfig,
        target: TargetContext,
    ) -> str:
        script = variables(config, target) + assign(
            kind_version=KIND_VERSION,
            kind_config_path=(
                target.kind_config_path if config.kind_config else None
            ),
        )
        script += (
            '\ngpustack_progress "$COMPONENT" 1 3 "Installing kind"\n'
            + INSTALL_TOOLS
        )
        if config.kind_config:
            script += (
                'sudo mkdir -p "$(dirname "$KIND_CONFIG_PATH")"\n'
                'sudo tee "$KIND_CONFIG_PATH" > /dev/null <<\'KIND_CONFIG\'\n'
                f"{_read_kind_config(config.kind_config)}"
                "KIND_CONFIG\n"
            )
        if config.source == SOURCE_RELEASE:
            script += 'NODE_IMAGE="kindest/node:${K8S_VERSION}"\n'
        else:
            script += SOURCE_CHECKOUT + BUILD_NODE_IMAGE
        script += CREATE_CLUSTER
        if config.source != SOURCE_RELEASE:
            script += (
                f"\ngpustack_write_provenance {PROVENANCE_FILE} "
                f'source {config.source} repo "$GIT_REPO" ref "$GIT_REF" '
                'commit "$GIT_COMMIT" image "$NODE_IMAGE"\n'
            )
        return script

    def version_script(self, config: OrchestratorConfig) -> str:
        if config.source != SOURCE_RELEASE:
            return provenance_commit_script(PROVENANCE_FILE, "kind")
        return (
            "command -v kind &>/dev/null || exit 0\n"
            f"sudo kind get clusters 2>/dev/null | grep -qx {CLUSTER_NAME} "
            "|| exit 0\n"
            f"sudo docker exec {CLUSTER_NAME}-control-plane kubelet --version "
            "2>/dev/null | awk '{print $2}'\n"
        )

    def verify_script(self, config: OrchestratorConfig) -> str:
        return (
            f"kubectl --context kind-{CLUSTER_NAME} "
            f"{WAIT_NODES_READY} &>/dev/null\n"
        )

    def side_effects(self, config: OrchestratorConfig) -> list[str]:
        effects = ["/usr/local/bin/kind", f"docker:{CLUSTER_NAME}"]
        if config.kind_config:
            effects.append("kind config")
        return effects


def _read_kind_config(path: str) -> str:
    try:
        content = Path(path).read_text()
    except OSError as e:
        raise LoadError(f"Cannot read kind config {path}: {e}") from e
    if not content.endswith("\n"):
        content += "\n"
    return content
