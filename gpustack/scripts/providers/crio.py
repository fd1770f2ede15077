from __future__ import annotations

__all__ = ["CRIO"]

from gpustack.provisioning.action import RuntimeConfig, TargetContext

from .._common import EXIT_RUNTIME, assign
from ._base import BaseScriptProvider

# cri-o publishes one repository per minor release
DEFAULT_CRIO_STREAM = "v1.31"

CRIO_REPO_URL = "https://pkgs.k8s.io/addons:/cri-o:/stable:"


class CRIO(BaseScriptProvider):
    def install_script(
        self,
        config: RuntimeConfig,
        target: TargetContext,
    ) -> str:
        return assign(
            component=config.component,
            crio_version=config.version or DEFAULT_CRIO_STREAM,
        ) + (
            f"""
REPO_URL="{CRIO_REPO_URL}/${{CRIO_VERSION}}/deb"
KEYRING=/etc/apt/keyrings/cri-o-apt-keyring.gpg
sudo install -m 0755 -d /etc/apt/keyrings
gpustack_retry 3 "$COMPONENT" curl -fsSL -o /tmp/cri-o.key \\
    "${{REPO_URL}}/Release.key"
sudo gpg --batch --yes --dearmor -o "$KEYRING" /tmp/cri-o.key
echo "deb [signed-by=${{KEYRING}}] ${{REPO_URL}}/ /" | \\
    sudo tee /etc/apt/sources.list.d/cri-o.list > /dev/null

gpustack_apt_install "$COMPONENT" cri-o

sudo systemctl daemon-reload
sudo systemctl enable crio
sudo systemctl restart crio
if ! systemctl is-active --quiet crio; then
    gpustack_error {EXIT_RUNTIME} "$COMPONENT" "cri-o failed to start" \\
        "Check journalctl -u crio"
fi
"""
        )

    def version_script(self, config: RuntimeConfig) -> str:
        # release stream, e.g. v1.31
        return (
            "command -v crio &>/dev/null || exit 0\n"
            "crio --version 2>/dev/null | "
            "awk '/^Version:/ {split($2, v, \".\"); "
            "print \"v\" v[1] \".\" v[2]}'\n"
        )

    def verify_script(self, config: RuntimeConfig) -> str:
        return "systemctl is-active --quiet crio\n"

    def side_effects(self, config: RuntimeConfig) -> list[str]:
        return ["/etc/apt/sources.list.d/cri-o.list", "crio.service"]
