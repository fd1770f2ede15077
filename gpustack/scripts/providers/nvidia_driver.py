from __future__ import annotations

__all__ = ["NVIDIADriver"]

from gpustack.provisioning.action import DriverConfig, TargetContext

from .._common import EXIT_DRIVER, assign
from ._base import BaseScriptProvider, dpkg_version_script

CUDA_REPO_URL = "https://developer.download.nvidia.com/compute/cuda/repos"
CUDA_KEYRING = "cuda-keyring_1.1-1_all.deb"


class NVIDIADriver(BaseScriptProvider):
    """Install the NVIDIA driver from the CUDA repository.

    A pinned version installs `cuda-drivers=<version>`, a branch
    installs `cuda-drivers-<branch>`, otherwise the newest driver.
    """

    def install_script(
        self,
        config: DriverConfig,
        target: TargetContext,
    ) -> str:
        return assign(
            component=config.component,
            package=_package_spec(config),
        ) + (
            f"""
gpustack_progress "$COMPONENT" 1 3 "Installing kernel headers"
gpustack_apt_install "$COMPONENT" "linux-headers-$(uname -r)"

gpustack_progress "$COMPONENT" 2 3 "Adding CUDA repository"
DISTRIBUTION=$(. /etc/os-release; echo "$ID$VERSION_ID" | sed -e 's/\\.//g')
if [[ ! -f /usr/share/keyrings/cuda-archive-keyring.gpg ]]; then
    WORK_DIR=$(mktemp -d)
    trap 'rm -rf "$WORK_DIR"' EXIT
    gpustack_retry 3 "$COMPONENT" wget -q -O "$WORK_DIR/{CUDA_KEYRING}" \\
        "{CUDA_REPO_URL}/${{DISTRIBUTION}}/x86_64/{CUDA_KEYRING}"
    sudo dpkg -i "$WORK_DIR/{CUDA_KEYRING}"
fi

gpustack_progress "$COMPONENT" 3 3 "Installing ${{PACKAGE}}"
gpustack_apt_install "$COMPONENT" "$PACKAGE"

if ! nvidia-smi &>/dev/null; then
    gpustack_error {EXIT_DRIVER} "$COMPONENT" \\
        "nvidia-smi failed after installing ${{PACKAGE}}" \\
        "Check that the kernel headers match the running kernel"
fi
"""
        )

    def version_script(self, config: DriverConfig) -> str:
        return dpkg_version_script(_package_name(config))

    def verify_script(self, config: DriverConfig) -> str:
        return "nvidia-smi &>/dev/null\n"

    def side_effects(self, config: DriverConfig) -> list[str]:
        return [
            "/etc/apt/sources.list.d/cuda-*.list",
            _package_name(config),
        ]


def _package_name(config: DriverConfig) -> str:
    if not config.version and config.branch:
        return f"cuda-drivers-{config.branch}"
    return "cuda-drivers"


def _package_spec(config: DriverConfig) -> str:
    if config.version:
        return f"cuda-drivers={config.version}"
    return _package_name(config)
