"""Steps shared by the Kubernetes installers."""

from __future__ import annotations

from gpustack.provisioning.action import OrchestratorConfig, TargetContext

from .._common import assign

POD_NETWORK_CIDR = "192.168.0.0/16"
API_SERVER_PORT = 6443
WAIT_NODES_READY = "wait --for=condition=ready nodes --all --timeout=60s"

KERNEL_PREREQUISITES = r"""
sudo swapoff -a
sudo sed -i '/ swap / s/^\(.*\)$/#\1/g' /etc/fstab

printf 'overlay\nbr_netfilter\n' | \
    sudo tee /etc/modules-load.d/k8s.conf > /dev/null
sudo modprobe overlay
sudo modprobe br_netfilter

if [[ ! -f /etc/sysctl.d/kubernetes.conf ]]; then
    printf '%s\n' \
        'net.bridge.bridge-nf-call-ip6tables = 1' \
        'net.bridge.bridge-nf-call-iptables = 1' \
        'net.ipv4.ip_forward = 1' | \
        sudo tee /etc/sysctl.d/kubernetes.conf > /dev/null
    sudo sysctl --system > /dev/null
fi
"""

NODE_TOOLS = r"""
BIN_DIR=/usr/local/bin
CNI_DIR=/opt/cni/bin
sudo mkdir -p "$CNI_DIR" "$BIN_DIR"
if [[ ! -f "$CNI_DIR/bridge" ]] || [[ ! -f "$CNI_DIR/loopback" ]]; then
    CNI_URL=https://github.com/containernetworking/plugins/releases/download
    CNI_TARBALL="cni-plugins-linux-${ARCH}-${CNI_PLUGINS_VERSION}.tgz"
    gpustack_retry 3 "$COMPONENT" curl -fsSL -o /tmp/cni-plugins.tgz \
        "${CNI_URL}/${CNI_PLUGINS_VERSION}/${CNI_TARBALL}"
    sudo tar -C "$CNI_DIR" -xzf /tmp/cni-plugins.tgz
fi
if [[ ! -x "$BIN_DIR/crictl" ]]; then
    CRICTL_URL=https://github.com/kubernetes-sigs/cri-tools/releases/download
    CRICTL_TARBALL="crictl-${CRICTL_VERSION}-linux-${ARCH}.tar.gz"
    gpustack_retry 3 "$COMPONENT" curl -fsSL -o /tmp/crictl.tgz \
        "${CRICTL_URL}/${CRICTL_VERSION}/${CRICTL_TARBALL}"
    sudo tar -C "$BIN_DIR" -xzf /tmp/crictl.tgz
fi
"""

RELEASE_BINARIES = r"""
for bin in kubeadm kubelet kubectl; do
    gpustack_retry 3 "$COMPONENT" sudo curl -fsSL -o "$BIN_DIR/$bin" \
        "https://dl.k8s.io/release/${K8S_VERSION}/bin/linux/${ARCH}/${bin}"
    sudo chmod +x "$BIN_DIR/$bin"
done
"""

# Builds the binaries from GIT_REF and records the commit in GIT_COMMIT.
SOURCE_CHECKOUT = r"""
gpustack_check_github_repo "$GIT_REPO" "$COMPONENT"
WORK_DIR=$(mktemp -d)
trap 'rm -rf "$WORK_DIR"' EXIT
SRC_DIR="$WORK_DIR/src/k8s.io/kubernetes"
git clone --quiet --filter=blob:none "$GIT_REPO" "$SRC_DIR"
cd "$SRC_DIR"
git fetch --quiet origin "$GIT_REF" || true
git checkout --quiet "${GIT_COMMIT:-FETCH_HEAD}" 2>/dev/null || \
    git checkout --quiet FETCH_HEAD
GIT_COMMIT=$(git rev-parse --short=8 HEAD)
gpustack_log "INFO" "$COMPONENT" "Building ${GIT_REF} at ${GIT_COMMIT}"
"""

SOURCE_BINARIES = r"""
gpustack_apt_install "$COMPONENT" build-essential rsync
make WHAT="cmd/kubeadm cmd/kubelet cmd/kubectl"
for bin in kubeadm kubelet kubectl; do
    sudo install -m 755 "_output/bin/$bin" "$BIN_DIR/$bin"
done
K8S_VERSION=$("$BIN_DIR/kubeadm" version -o short)
"""

KUBELET_SERVICE = r"""
RELEASE_URL=https://raw.githubusercontent.com/kubernetes/release
RELEASE_URL="${RELEASE_URL}/${KUBELET_RELEASE_VERSION}/cmd/krel/templates"
gpustack_retry 3 "$COMPONENT" curl -fsSL -o /tmp/kubelet.service \
    "${RELEASE_URL}/latest/kubelet/kubelet.service"
sed "s:/usr/bin:${BIN_DIR}:g" /tmp/kubelet.service | \
    sudo tee /etc/systemd/system/kubelet.service > /dev/null
sudo mkdir -p /etc/systemd/system/kubelet.service.d
gpustack_retry 3 "$COMPONENT" curl -fsSL -o /tmp/10-kubeadm.conf \
    "${RELEASE_URL}/latest/kubeadm/10-kubeadm.conf"
sed "s:/usr/bin:${BIN_DIR}:g" /tmp/10-kubeadm.conf | \
    sudo tee /etc/systemd/system/kubelet.service.d/10-kubeadm.conf > /dev/null
sudo systemctl daemon-reload
sudo systemctl enable --now kubelet
"""

DEFAULT_ENDPOINT = r"""
if [[ -z "$CONTROL_PLANE_ENDPOINT" ]]; then
    CONTROL_PLANE_ENDPOINT=$(hostname -I | awk '{print $1}')
fi
"""


def endpoint_host(config: OrchestratorConfig, target: TargetContext) -> str:
    return (
        config.endpoint_host or target.endpoint_host or target.host or ""
    )


def variables(config: OrchestratorConfig, target: TargetContext) -> str:
    """Shell variables every Kubernetes install script starts with."""
    return assign(
        component=config.component,
        k8s_version=config.version,
        git_repo=config.git_repo,
        git_ref=config.tracked_ref,
        git_commit=config.git_commit,
        arch=config.arch,
        cni_plugins_version=config.cni_plugins_version,
        crictl_version=config.crictl_version,
        calico_version=config.calico_version,
        kubelet_release_version=config.kubelet_release_version,
        cri_socket=config.cri_socket,
        feature_gates=config.feature_gates,
        control_plane_endpoint=endpoint_host(config, target),
    )


def parse_feature_gates(feature_gates: str) -> dict[str, bool]:
    """Parse `Name=true,Other=false` into a mapping."""
    gates: dict[str, bool] = {}
    for item in feature_gates.split(","):
        name, _, value = item.strip().partition("=")
        if name:
            gates[name] = value.strip().lower() != "false"
    return gates
