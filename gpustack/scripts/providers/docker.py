from __future__ import annotations

__all__ = ["Docker"]

from gpustack.provisioning.action import RuntimeConfig, TargetContext

from .._common import EXIT_RUNTIME, assign
from ._base import DOCKER_APT_REPO, BaseScriptProvider, dpkg_version_script

DAEMON_CONFIG = """{
  "exec-opts": ["native.cgroupdriver=systemd"],
  "log-driver": "json-file",
  "log-opts": {
    "max-size": "100m"
  },
  "storage-driver": "overlay2"
}"""


class Docker(BaseScriptProvider):
    def install_script(
        self,
        config: RuntimeConfig,
        target: TargetContext,
    ) -> str:
        packages = "docker-ce docker-ce-cli containerd.io"
        if config.version and config.version != "latest":
            packages = (
                f"docker-ce={config.version} "
                f"docker-ce-cli={config.version} containerd.io"
            )
        return (
            assign(component=config.component, packages=packages)
            + DOCKER_APT_REPO
            + f"""
# shellcheck disable=SC2086
gpustack_apt_install "$COMPONENT" $PACKAGES

sudo mkdir -p /etc/docker /etc/systemd/system/docker.service.d
sudo tee /etc/docker/daemon.json > /dev/null <<'DAEMON_JSON'
{DAEMON_CONFIG}
DAEMON_JSON

sudo systemctl daemon-reload
sudo systemctl enable docker
sudo systemctl restart docker
sudo usermod -aG docker "$(id -un)" || true
if ! sudo docker info &>/dev/null; then
    gpustack_error {EXIT_RUNTIME} "$COMPONENT" "docker failed to start" \\
        "Check journalctl -u docker"
fi
"""
        )

    def version_script(self, config: RuntimeConfig) -> str:
        return dpkg_version_script("docker-ce")

    def verify_script(self, config: RuntimeConfig) -> str:
        return (
            "systemctl is-active --quiet docker\n"
            "sudo docker info &>/dev/null\n"
        )

    def side_effects(self, config: RuntimeConfig) -> list[str]:
        return [
            "/etc/apt/sources.list.d/docker.list",
            "/etc/docker/daemon.json",
            "docker.service",
        ]
