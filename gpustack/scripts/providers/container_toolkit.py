from __future__ import annotations

__all__ = ["ContainerToolkit"]

from gpustack.provisioning._constants import SOURCE_PACKAGE
from gpustack.provisioning.action import TargetContext, ToolkitConfig

from .._common import EXIT_TOOLKIT, assign
from ._base import (
    BaseScriptProvider,
    dpkg_version_script,
    provenance_commit_script,
)

PROVENANCE_FILE = "/etc/nvidia-container-toolkit/PROVENANCE.json"
LIBNVIDIA_CONTAINER_URL = "https://nvidia.github.io/libnvidia-container"
GHCR_IMAGE = "ghcr.io/nvidia/container-toolkit"
GO_VERSION = "1.23.4"

PACKAGE_INSTALL = f"""
KEYRING=/usr/share/keyrings/nvidia-container-toolkit-keyring.gpg
gpustack_progress "$COMPONENT" 1 3 "Adding NVIDIA repository (${{CHANNEL}})"
if [[ ! -f "$KEYRING" ]]; then
    gpustack_retry 3 "$COMPONENT" curl -fsSL -o /tmp/nvidia-ctk.key \\
        "{LIBNVIDIA_CONTAINER_URL}/gpgkey"
    sudo gpg --batch --yes --dearmor -o "$KEYRING" /tmp/nvidia-ctk.key
fi
LIST=/etc/apt/sources.list.d/nvidia-container-toolkit.list
gpustack_retry 3 "$COMPONENT" curl -fsSL -o /tmp/nvidia-ctk.list \\
    "{LIBNVIDIA_CONTAINER_URL}/${{CHANNEL}}/deb/nvidia-container-toolkit.list"
sed "s#deb https://#deb [signed-by=${{KEYRING}}] https://#g" \\
    /tmp/nvidia-ctk.list | sudo tee "$LIST" > /dev/null

gpustack_progress "$COMPONENT" 2 3 "Installing NVIDIA Container Toolkit"
if [[ -n "$VERSION" ]]; then
    gpustack_apt_install "$COMPONENT" \\
        "nvidia-container-toolkit=${{VERSION}}" \\
        "nvidia-container-toolkit-base=${{VERSION}}"
else
    gpustack_apt_install "$COMPONENT" nvidia-container-toolkit
fi
"""

# Prefers packages published to GHCR for the commit, builds otherwise.
SOURCE_INSTALL = f"""
WORK_DIR=$(mktemp -d)
trap 'rm -rf "$WORK_DIR"' EXIT
gpustack_check_github_repo "$GIT_REPO" "$COMPONENT"

if [[ -z "$GIT_COMMIT" ]]; then
    GIT_COMMIT=$(git ls-remote "$GIT_REPO" "$GIT_REF" | head -1 | cut -f1)
    GIT_COMMIT="${{GIT_COMMIT:-$GIT_REF}}"
    GIT_COMMIT="${{GIT_COMMIT:0:8}}"
fi
gpustack_log "INFO" "$COMPONENT" "Installing ${{GIT_REF}} at ${{GIT_COMMIT}}"

gpustack_progress "$COMPONENT" 1 3 "Checking GHCR for pre-built packages"
IMAGE="{GHCR_IMAGE}:${{GIT_COMMIT}}"
ENGINE=""
for candidate in docker podman; do
    if command -v "$candidate" &>/dev/null && \\
        sudo "$candidate" pull "$IMAGE" &>/dev/null; then
        ENGINE="$candidate"
        break
    fi
done

if [[ -n "$ENGINE" ]]; then
    gpustack_progress "$COMPONENT" 2 3 "Installing packages from ${{IMAGE}}"
    CONTAINER_ID=$(sudo "$ENGINE" create "$IMAGE")
    sudo "$ENGINE" cp "${{CONTAINER_ID}}:/artifacts" "$WORK_DIR/"
    sudo "$ENGINE" rm "$CONTAINER_ID" > /dev/null
    if [[ -f /etc/debian_version ]]; then
        sudo dpkg -i "$WORK_DIR"/artifacts/*.deb
    else
        sudo rpm -Uvh "$WORK_DIR"/artifacts/*.rpm
    fi
    ARTIFACT="$IMAGE"
else
    gpustack_log "WARN" "$COMPONENT" \\
        "No pre-built image in GHCR, building from source"
    gpustack_progress "$COMPONENT" 2 3 "Building from source"
    git clone --quiet "$GIT_REPO" "$WORK_DIR/src"
    cd "$WORK_DIR/src"
    git fetch --quiet --depth 1 origin "$GIT_REF" || true
    git checkout --quiet "$GIT_COMMIT" 2>/dev/null || \\
        git checkout --quiet FETCH_HEAD

    gpustack_apt_install "$COMPONENT" make curl
    GO_VERSION="${{NVIDIA_CTK_GO_VERSION:-{GO_VERSION}}}"
    case "$(uname -m)" in
        x86_64|amd64) GO_ARCH=amd64 ;;
        aarch64|arm64) GO_ARCH=arm64 ;;
        *) gpustack_error 2 "$COMPONENT" "Unsupported architecture" ;;
    esac
    if [[ ! -x /usr/local/go/bin/go ]]; then
        gpustack_retry 3 "$COMPONENT" curl -fsSL -o /tmp/go.tgz \\
            "https://go.dev/dl/go${{GO_VERSION}}.linux-${{GO_ARCH}}.tar.gz"
        sudo tar -C /usr/local -xzf /tmp/go.tgz
    fi
    export PATH="/usr/local/go/bin:$PATH"
    export GOTOOLCHAIN=auto
    make cmds
    for bin in nvidia-ctk nvidia-cdi-hook nvidia-container-runtime \\
        nvidia-container-runtime-hook; do
        if [[ -f "$bin" ]]; then
            sudo install -m 755 "$bin" /usr/local/bin/
        fi
    done
    ARTIFACT="source-build"
fi
"""

CONFIGURE_RUNTIME = f"""
gpustack_progress "$COMPONENT" 3 3 "Configuring ${{CONTAINER_RUNTIME}}"
sudo nvidia-ctk runtime configure \\
    --runtime="$CONTAINER_RUNTIME" \\
    --set-as-default \\
    --enable-cdi="$ENABLE_CDI"

CONTAINERD_CONFIG=/etc/containerd/config.toml
if [[ "$CONTAINER_RUNTIME" == "containerd" ]] && \\
    ! sudo grep -q 'bin_dir = "/opt/cni/bin"' "$CONTAINERD_CONFIG"; then
    gpustack_log "INFO" "$COMPONENT" "Restoring CNI paths"
    SECTION='/\\[plugins."io.containerd.grpc.v1.cri".cni\\]/,/\\[/'
    REPLACE='s|bin_dir = .*|bin_dir = "/opt/cni/bin"|g'
    sudo sed -i "${{SECTION}}{{${{REPLACE}}}}" "$CONTAINERD_CONFIG"
fi
sudo systemctl restart "$CONTAINER_RUNTIME"

if ! nvidia-ctk --version &>/dev/null; then
    gpustack_error {EXIT_TOOLKIT} "$COMPONENT" \\
        "NVIDIA Container Toolkit verification failed" \\
        "Check the install log and ${{CONTAINER_RUNTIME}} configuration"
fi
"""


class ContainerToolkit(BaseScriptProvider):
    """Install the NVIDIA Container Toolkit and configure the runtime.

    Package installs come from the NVIDIA apt repository channel. Git
    and latest installs pull packages built for the commit from GHCR
    and fall back to building the binaries from source. Every install
    records its origin in `PROVENANCE.json`.
    """

    def install_script(
        self,
        config: ToolkitConfig,
        target: TargetContext,
    ) -> str:
        common = assign(
            component=config.component,
            container_runtime=config.container_runtime,
            enable_cdi=config.enable_cdi,
        )
        if config.source == SOURCE_PACKAGE:
            return (
                common
                + assign(version=config.version, channel=config.channel)
                + PACKAGE_INSTALL
                + CONFIGURE_RUNTIME
                + _write_provenance(
                    source=config.source,
                    channel="$CHANNEL",
                    version="$(nvidia-ctk --version | head -1)",
                )
            )
        return (
            common
            + assign(
                git_repo=config.git_repo,
                git_ref=config.tracked_ref,
                git_commit=config.git_commit,
            )
            + SOURCE_INSTALL
            + CONFIGURE_RUNTIME
            + _write_provenance(
                source=config.source,
                repo="$GIT_REPO",
                ref="$GIT_REF",
                commit="$GIT_COMMIT",
                artifact="$ARTIFACT",
            )
        )

    def version_script(self, config: ToolkitConfig) -> str:
        if config.source == SOURCE_PACKAGE:
            return dpkg_version_script("nvidia-container-toolkit")
        return provenance_commit_script(PROVENANCE_FILE, "nvidia-ctk")

    def verify_script(self, config: ToolkitConfig) -> str:
        return (
            "command -v nvidia-ctk &>/dev/null\n"
            "nvidia-ctk --version &>/dev/null\n"
        )

    def side_effects(self, config: ToolkitConfig) -> list[str]:
        effects = [PROVENANCE_FILE, f"{config.container_runtime}.service"]
        if config.container_runtime == "containerd":
            effects.append("/etc/containerd/config.toml")
        elif config.container_runtime == "docker":
            effects.append("/etc/docker/daemon.json")
        else:
            effects.append("/etc/crio/crio.conf.d")
        if config.source != SOURCE_PACKAGE:
            effects.append("/usr/local/bin/nvidia-ctk")
        return effects


def _write_provenance(**fields: str) -> str:
    args = " ".join(f'{key} "{value}"' for key, value in fields.items())
    return f"\ngpustack_write_provenance {PROVENANCE_FILE} {args}\n"
