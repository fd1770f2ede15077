from __future__ import annotations

from typing import Any

from gpustack.core import Provider, Response
from gpustack.provisioning.action import ActionConfigType, TargetContext

from .._models import DEFAULT_REBOOT_SCRIPT, Payload


class BaseScriptProvider(Provider):
    """Render a payload from the parts each installer provides."""

    requires_reboot: bool = False

    def render(
        self,
        config: ActionConfigType,
        target: TargetContext = TargetContext(),
        **kwargs: Any,
    ) -> Response[Payload]:
        config = self._pin_commit(config, target)
        payload = Payload(
            component=config.component,
            version=config.requested_version,
            state_dir=target.state_dir,
            install_script=self.install_script(config, target),
            version_script=self.version_script(config),
            verify_script=self.verify_script(config),
            reboot_script=DEFAULT_REBOOT_SCRIPT,
            requires_reboot=self.requires_reboot,
            side_effects=self.side_effects(config),
            retry=target.retry,
        )
        return Response(result=payload)

    def install_script(self, config: Any, target: TargetContext) -> str:
        raise NotImplementedError(
            "Install script must be implemented by provider."
        )

    def version_script(self, config: Any) -> str:
        raise NotImplementedError(
            "Version script must be implemented by provider."
        )

    def verify_script(self, config: Any) -> str:
        raise NotImplementedError(
            "Verify script must be implemented by provider."
        )

    def side_effects(self, config: Any) -> list[str]:
        return []

    def _pin_commit(
        self,
        config: ActionConfigType,
        target: TargetContext,
    ) -> ActionConfigType:
        ref = getattr(config, "tracked_ref", None)
        if (
            ref is None
            or target.ref_resolver is None
            or getattr(config, "git_commit", None)
        ):
            return config
        _, short_sha = target.ref_resolver.resolve(config.git_repo, ref)
        return config.model_copy(update={"git_commit": short_sha})


def dpkg_version_script(package: str, strip_suffix: str = "") -> str:
    """Print the installed version of a Debian package."""
    script = (
        f"version=$(dpkg-query -W -f='${{Status}} ${{Version}}' {package} "
        "2>/dev/null || true)\n"
        'if [[ "$version" == "install ok installed "* ]]; then\n'
        '    version="${version#install ok installed }"\n'
    )
    if strip_suffix:
        script += f'    echo "${{version%{strip_suffix}}}"\n'
    else:
        script += '    echo "$version"\n'
    return script + "fi\n"


def provenance_commit_script(path: str, binary: str) -> str:
    """Print the commit recorded in a provenance file."""
    return (
        f"command -v {binary} &>/dev/null || exit 0\n"
        f"gpustack_provenance_get {path} commit\n"
    )


DOCKER_APT_REPO = r"""
if [[ ! -f /etc/apt/keyrings/docker.gpg ]]; then
    gpustack_apt_install "$COMPONENT" ca-certificates curl gnupg
    sudo install -m 0755 -d /etc/apt/keyrings
    gpustack_retry 3 "$COMPONENT" curl -fsSL -o /tmp/docker.asc \
        https://download.docker.com/linux/ubuntu/gpg
    sudo gpg --batch --yes --dearmor -o /etc/apt/keyrings/docker.gpg \
        /tmp/docker.asc
    sudo chmod a+r /etc/apt/keyrings/docker.gpg
fi
if [[ ! -f /etc/apt/sources.list.d/docker.list ]]; then
    echo "deb [arch=$(dpkg --print-architecture) \
signed-by=/etc/apt/keyrings/docker.gpg] \
https://download.docker.com/linux/ubuntu \
$(. /etc/os-release && echo "$VERSION_CODENAME") stable" | \
        sudo tee /etc/apt/sources.list.d/docker.list > /dev/null
fi
"""
