from __future__ import annotations

__all__ = ["Kubeadm"]

from typing import Any

import yaml

from gpustack.provisioning._constants import SOURCE_RELEASE
from gpustack.provisioning.action import OrchestratorConfig, TargetContext
from gpustack.provisioning.resolver import parse_version

from .._common import EXIT_KUBERNETES
from ._base import BaseScriptProvider, provenance_commit_script
from ._kubernetes import (
    API_SERVER_PORT,
    DEFAULT_ENDPOINT,
    KERNEL_PREREQUISITES,
    KUBELET_SERVICE,
    NODE_TOOLS,
    POD_NETWORK_CIDR,
    RELEASE_BINARIES,
    SOURCE_BINARIES,
    SOURCE_CHECKOUT,
    WAIT_NODES_READY,
    parse_feature_gates,
    variables,
)

ADMIN_KUBECONFIG = "/etc/kubernetes/admin.conf"
KUBEADM_CONFIG = "/etc/kubernetes/kubeadm-config.yaml"
PROVENANCE_FILE = "/etc/kubernetes/PROVENANCE.json"
CALICO_URL = "https://raw.githubusercontent.com/projectcalico/calico"
KUBEADM_V1BETA4_MIN_VERSION = (1, 31, 0)

CLUSTER_SETUP = f"""
mkdir -p "$HOME/.kube"
sudo cp -f {ADMIN_KUBECONFIG} "$HOME/.kube/config"
sudo chown "$(id -u):$(id -g)" "$HOME/.kube/config"
export KUBECONFIG="$HOME/.kube/config"

gpustack_progress "$COMPONENT" 4 4 "Installing Calico ${{CALICO_VERSION}}"
gpustack_retry 10 "$COMPONENT" kubectl version
CALICO_MANIFESTS="{CALICO_URL}/${{CALICO_VERSION}}/manifests"
if ! kubectl get namespace tigera-operator &>/dev/null; then
    gpustack_retry 3 "$COMPONENT" kubectl create -f \\
        "${{CALICO_MANIFESTS}}/tigera-operator.yaml"
fi
gpustack_retry 10 "$COMPONENT" kubectl wait --for=condition=available \\
    --timeout=300s deployment/tigera-operator -n tigera-operator
if ! kubectl get installations.operator.tigera.io default &>/dev/null; then
    gpustack_retry 3 "$COMPONENT" kubectl apply -f \\
        "${{CALICO_MANIFESTS}}/custom-resources.yaml"
fi

# single node cluster, workloads run on the control plane
kubectl taint nodes --all node-role.kubernetes.io/control-plane:NoSchedule- \\
    2>/dev/null || true
kubectl label node --all node-role.kubernetes.io/worker= --overwrite

if ! gpustack_retry 10 "$COMPONENT" kubectl wait --for=condition=ready \\
    --timeout=300s nodes --all; then
    gpustack_error {EXIT_KUBERNETES} "$COMPONENT" \\
        "Node did not become ready" \\
        "Check kubelet logs with journalctl -u kubelet"
fi
"""


class Kubeadm(BaseScriptProvider):
    """Bootstrap a single node cluster with kubeadm.

    Releases before v1.30.0 are initialized with command line flags,
    newer ones from a kubeadm configuration file.
    """

    def install_script(
        self,
        config: OrchestratorConfig,
        target: TargetContext,
    ) -> str:
        script = variables(config, target) + DEFAULT_ENDPOINT
        script += (
            '\ngpustack_progress "$COMPONENT" 1 4 "Preparing the node"\n'
            + KERNEL_PREREQUISITES
            + NODE_TOOLS
            + '\ngpustack_progress "$COMPONENT" 2 4 '
            '"Installing kubeadm, kubelet and kubectl"\n'
        )
        if config.source == SOURCE_RELEASE:
            script += RELEASE_BINARIES
        else:
            script += SOURCE_CHECKOUT + SOURCE_BINARIES
        script += KUBELET_SERVICE
        script += (
            '\ngpustack_progress "$COMPONENT" 3 4 "Running kubeadm init"\n'
            f"if [[ ! -f {ADMIN_KUBECONFIG} ]]; then\n"
        )
        if config.use_legacy_init:
            script += _legacy_init(config)
        else:
            script += (
                f"sudo tee {KUBEADM_CONFIG} > /dev/null <<KUBEADM_CONFIG\n"
                f"{kubeadm_config(config)}"
                "KUBEADM_CONFIG\n"
                'gpustack_retry 3 "$COMPONENT" sudo kubeadm init '
                f"--config={KUBEADM_CONFIG} --ignore-preflight-errors=all\n"
            )
        script += "fi\n" + CLUSTER_SETUP
        if config.source != SOURCE_RELEASE:
            script += (
                f"\ngpustack_write_provenance {PROVENANCE_FILE} "
                f'source {config.source} repo "$GIT_REPO" ref "$GIT_REF" '
                'commit "$GIT_COMMIT" version "$K8S_VERSION"\n'
            )
        return script

    def version_script(self, config: OrchestratorConfig) -> str:
        if config.source != SOURCE_RELEASE:
            return provenance_commit_script(PROVENANCE_FILE, "kubeadm")
        return (
            f"sudo test -f {ADMIN_KUBECONFIG} || exit 0\n"
            "kubeadm version -o short 2>/dev/null || true\n"
        )

    def verify_script(self, config: OrchestratorConfig) -> str:
        return (
            f"sudo kubectl --kubeconfig={ADMIN_KUBECONFIG} "
            f"{WAIT_NODES_READY} &>/dev/null\n"
        )

    def side_effects(self, config: OrchestratorConfig) -> list[str]:
        return [
            "/etc/fstab",
            "/etc/modules-load.d/k8s.conf",
            "/etc/sysctl.d/kubernetes.conf",
            "/opt/cni/bin",
            "/usr/local/bin/kubeadm",
            "kubelet.service",
            ADMIN_KUBECONFIG,
        ]


def kubeadm_config(config: OrchestratorConfig) -> str:
    """Render the kubeadm init configuration.

    Shell variables in the output are expanded on the target.
    """
    api_version = "kubeadm.k8s.io/v1beta4"
    parsed = parse_version(config.version or "")
    if parsed is not None and parsed < KUBEADM_V1BETA4_MIN_VERSION:
        api_version = "kubeadm.k8s.io/v1beta3"
    init: dict[str, Any] = {
        "apiVersion": api_version,
        "kind": "InitConfiguration",
        "nodeRegistration": {"criSocket": config.cri_socket},
    }
    cluster: dict[str, Any] = {
        "apiVersion": api_version,
        "kind": "ClusterConfiguration",
        "kubernetesVersion": "${K8S_VERSION}",
        "controlPlaneEndpoint": (
            f"${{CONTROL_PLANE_ENDPOINT}}:{API_SERVER_PORT}"
        ),
        "networking": {"podSubnet": POD_NETWORK_CIDR},
    }
    if config.feature_gates:
        cluster["featureGates"] = parse_feature_gates(config.feature_gates)
    return yaml.safe_dump_all([init, cluster], sort_keys=False)


def _legacy_init(config: OrchestratorConfig) -> str:
    args = [
        '--kubernetes-version="$K8S_VERSION"',
        f"--pod-network-cidr={POD_NETWORK_CIDR}",
        "--control-plane-endpoint="
        f'"$CONTROL_PLANE_ENDPOINT:{API_SERVER_PORT}"',
        '--cri-socket="$CRI_SOCKET"',
        "--ignore-preflight-errors=all",
    ]
    if config.feature_gates:
        args.append('--feature-gates="$FEATURE_GATES"')
    flags = " \\\n        ".join(args)
    return (
        'gpustack_retry 3 "$COMPONENT" sudo kubeadm init \\\n'
        f"        {flags}\n"
    )
