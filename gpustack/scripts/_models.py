from __future__ import annotations

import textwrap

from gpustack.core.data_model import FrozenDataModel
from gpustack.core.manifest import DEFAULT_STATE_DIR, RetrySettings

from ._common import CONTRACT_FUNCTION, assign, prelude

DEFAULT_REBOOT_SCRIPT = "nohup sudo reboot &>/dev/null &\n"


class Payload(FrozenDataModel):
    """Everything needed to bring one component to its requested state.

    Attributes:
        component: Name of the state marker on the target.
        version: Version the component must report, None for any.
        state_dir: Marker directory on the target.
        install_script: Installs or repairs the component.
        version_script: Prints the installed version, nothing if absent.
        verify_script: Exits 0 when the component works.
        reboot_script: Reboots the target to finish the install.
        requires_reboot: Install only takes effect after a reboot.
        side_effects: Files and services the install changes.
        retry: Delay and backoff of retried steps on the target.
    """

    component: str
    version: str | None = None
    state_dir: str = DEFAULT_STATE_DIR
    install_script: str
    version_script: str
    verify_script: str
    reboot_script: str = DEFAULT_REBOOT_SCRIPT
    requires_reboot: bool = False
    side_effects: list[str] = []
    retry: RetrySettings = RetrySettings()

    def wrap(self, body: str) -> str:
        """Prefix a script body with the shared bash framework."""
        return f"{prelude(self.state_dir, self.retry)}\n{body}"

    @property
    def script(self) -> str:
        """Standalone script running the whole install contract."""
        return (
            f"{prelude(self.state_dir, self.retry)}"
            f"{CONTRACT_FUNCTION}\n"
            f"{_function('gpustack_installed_version', self.version_script)}"
            f"{_function('gpustack_verify', self.verify_script)}"
            f"{_function('gpustack_install', self.install_script)}"
            f"{_function('gpustack_reboot', self.reboot_script)}\n"
            + assign(
                component=self.component,
                requested_version=self.version,
                requires_reboot=self.requires_reboot,
            )
            + 'gpustack_contract "$COMPONENT" "$REQUESTED_VERSION" '
            '"$REQUIRES_REBOOT"\n'
        )


def _function(name: str, body: str) -> str:
    body = textwrap.indent(body.strip("\n") or ":", "    ")
    return f"{name}() {{\n{body}\n}}\n\n"
