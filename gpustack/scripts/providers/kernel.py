from __future__ import annotations

__all__ = ["Kernel"]

from gpustack.provisioning.action import KernelConfig, TargetContext

from .._common import assign
from ._base import BaseScriptProvider


class Kernel(BaseScriptProvider):
    requires_reboot = True

    def install_script(
        self,
        config: KernelConfig,
        target: TargetContext,
    ) -> str:
        return assign(component=config.component, version=config.version) + (
            """
export EDITOR=/bin/true
echo 'debconf debconf/frontend select Noninteractive' | \\
    sudo debconf-set-selections

CURRENT_KERNEL=$(uname -r)
gpustack_log "INFO" "$COMPONENT" \\
    "Replacing kernel ${CURRENT_KERNEL} with ${VERSION}"

# grub boots the newest installed image
sudo rm -rf /boot/*"${CURRENT_KERNEL}"* || true
sudo rm -rf /lib/modules/*"${CURRENT_KERNEL}"*
sudo rm -rf /boot/*.old

gpustack_apt_install "$COMPONENT" \\
    "linux-image-${VERSION}" \\
    "linux-headers-${VERSION}" \\
    "linux-modules-${VERSION}"

sudo update-grub || true
sudo update-initramfs -u -k "${VERSION}" || true
"""
        )

    def version_script(self, config: KernelConfig) -> str:
        return "uname -r\n"

    def verify_script(self, config: KernelConfig) -> str:
        return 'test -d "/lib/modules/$(uname -r)"\n'

    def side_effects(self, config: KernelConfig) -> list[str]:
        return ["/boot", "/lib/modules", "reboot"]
