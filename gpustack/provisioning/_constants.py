KERNEL = "kernel"
NVIDIA_DRIVER = "nvidia_driver"
CONTAINER_TOOLKIT = "container_toolkit"

CONTAINERD = "containerd"
DOCKER = "docker"
CRIO = "crio"
CONTAINER_RUNTIMES = (CONTAINERD, DOCKER, CRIO)
DEFAULT_CONTAINER_RUNTIME = CONTAINERD

KUBEADM = "kubeadm"
KIND = "kind"
MICROK8S = "microk8s"
KUBERNETES_INSTALLERS = (KUBEADM, KIND, MICROK8S)
DEFAULT_KUBERNETES_INSTALLER = KUBEADM

# Installers that ship their own container runtime.
SELF_CONTAINED_INSTALLERS = frozenset({MICROK8S})

SOURCE_PACKAGE = "package"
SOURCE_GIT = "git"
SOURCE_LATEST = "latest"
SOURCE_RELEASE = "release"

DRIVER_SOURCES = (SOURCE_PACKAGE,)
RUNTIME_SOURCES = (SOURCE_PACKAGE,)
TOOLKIT_SOURCES = (SOURCE_PACKAGE, SOURCE_GIT, SOURCE_LATEST)
KUBERNETES_SOURCES = (SOURCE_RELEASE, SOURCE_GIT, SOURCE_LATEST)
DEVELOPMENT_SOURCES = frozenset({SOURCE_GIT, SOURCE_LATEST})

DEFAULT_CTK_REPO = "https://github.com/NVIDIA/nvidia-container-toolkit.git"
DEFAULT_CTK_TRACK = "main"
DEFAULT_CTK_CHANNEL = "stable"
CTK_CHANNELS = ("stable", "experimental")

DEFAULT_KUBERNETES_REPO = "https://github.com/kubernetes/kubernetes.git"
DEFAULT_KUBERNETES_TRACK = "master"
DEFAULT_KUBERNETES_VERSION = "v1.31.1"
DEFAULT_KUBELET_RELEASE_VERSION = "v0.17.1"
DEFAULT_ARCH = "amd64"
DEFAULT_CNI_PLUGINS_VERSION = "v1.6.2"
DEFAULT_CALICO_VERSION = "v3.29.1"
DEFAULT_CRICTL_VERSION = "v1.31.1"

# kubeadm releases older than this use flag based `kubeadm init`.
KUBEADM_CONFIG_MIN_VERSION = (1, 30, 0)

CRI_SOCKETS = {
    CONTAINERD: "unix:///run/containerd/containerd.sock",
    DOCKER: "unix:///run/cri-dockerd.sock",
    CRIO: "unix:///run/crio/crio.sock",
}

# Docker API v1.44+ is needed to build kind node images from source.
KIND_MIN_DOCKER_VERSION = "5:24.0.0-1~ubuntu.22.04~jammy"
