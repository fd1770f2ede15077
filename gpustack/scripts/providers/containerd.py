from __future__ import annotations

__all__ = ["Containerd"]

from gpustack.provisioning.action import RuntimeConfig, TargetContext

from .._common import EXIT_RUNTIME, assign
from ._base import DOCKER_APT_REPO, BaseScriptProvider, dpkg_version_script


class Containerd(BaseScriptProvider):
    def install_script(
        self,
        config: RuntimeConfig,
        target: TargetContext,
    ) -> str:
        package = "containerd.io"
        if config.version:
            package = f"containerd.io={config.version}-1"
        return (
            assign(component=config.component, package=package)
            + DOCKER_APT_REPO
            + f"""
gpustack_apt_install "$COMPONENT" "$PACKAGE"

sudo mkdir -p /etc/containerd
containerd config default | sudo tee /etc/containerd/config.toml > /dev/null
# kubelet expects the systemd cgroup driver
sudo sed -i 's/SystemdCgroup = false/SystemdCgroup = true/g' \\
    /etc/containerd/config.toml

sudo systemctl enable containerd
sudo systemctl restart containerd
if ! systemctl is-active --quiet containerd; then
    gpustack_error {EXIT_RUNTIME} "$COMPONENT" "containerd failed to start" \\
        "Check journalctl -u containerd"
fi
"""
        )

    def version_script(self, config: RuntimeConfig) -> str:
        return dpkg_version_script("containerd.io", strip_suffix="-1")

    def verify_script(self, config: RuntimeConfig) -> str:
        return (
            "systemctl is-active --quiet containerd\n"
            "sudo ctr version &>/dev/null\n"
        )

    def side_effects(self, config: RuntimeConfig) -> list[str]:
        return [
            "/etc/apt/sources.list.d/docker.list",
            "/etc/containerd/config.toml",
            "containerd.service",
        ]
