import argparse
import json
import os
import sys

import structlog

from gpustack.execution import (
    Executor,
    FileMarkerStore,
    LocalTransport,
    ProvisionReport,
    RebootWaiter,
    RetryPolicy,
)
from gpustack.provisioning import (
    EnvironmentSpec,
    GitHubRefResolver,
    ResolvedAction,
    TargetContext,
    build_components_status,
    resolve,
)

from ._loader import Loader
from ._log_helper import configure_logging
from .exceptions import BaseError, LoadError
from .manifest import MANIFEST_FILE, Settings

logger = structlog.get_logger(__name__)


def load(path: str, manifest: str) -> tuple[EnvironmentSpec, Settings]:
    loader = Loader(path=path, manifest=manifest)
    settings = loader.get_settings()
    configure_logging(format=settings.log_format, level=settings.log_level)
    try:
        spec = EnvironmentSpec.from_dict(loader.get_spec())
    except ValueError as e:
        raise LoadError(
            f"Invalid spec in {loader.manifest_path}: {e}"
        ) from e
    return spec, settings


def plan(path: str, manifest: str) -> list[ResolvedAction]:
    """
    gpustack Plan
    """
    spec, _ = load(path, manifest)
    return resolve(spec)


def render(
    path: str,
    manifest: str,
    out: str,
    host: str | None,
    pin_refs: bool,
) -> list[str]:
    """
    gpustack Render
    """
    spec, settings = load(path, manifest)
    target = _target(settings, host, pin_refs)
    os.makedirs(out, exist_ok=True)
    paths = []
    for action in resolve(spec):
        payload = action.materialize(target)
        script_path = os.path.join(
            out, f"{action.order_index:02d}-{payload.component}.sh"
        )
        with open(script_path, "w", encoding="utf-8") as f:
            f.write(payload.script)
        os.chmod(script_path, 0o755)
        paths.append(script_path)
    return paths


def apply(
    path: str,
    manifest: str,
    host: str | None,
    pin_refs: bool,
    wait_reboot: bool,
) -> ProvisionReport:
    """
    gpustack Apply
    """
    spec, settings = load(path, manifest)
    actions = resolve(spec)
    transport = LocalTransport()
    executor = Executor(
        transport=transport,
        target=_target(settings, host, pin_refs),
        retry=RetryPolicy.from_settings(settings.retry),
        timeout=settings.timeout,
        reboot_waiter=RebootWaiter(transport) if wait_reboot else None,
    )
    return executor.run(actions)


def status(path: str, manifest: str) -> dict:
    """
    gpustack Status
    """
    spec, settings = load(path, manifest)
    components = build_components_status(spec)
    markers = FileMarkerStore(settings.state_dir).list()
    return {
        "components": components.to_dict() if components else None,
        "markers": {
            name: marker.model_dump(mode="json")
            for name, marker in markers.items()
        },
    }


def _target(
    settings: Settings,
    host: str | None,
    pin_refs: bool,
) -> TargetContext:
    return TargetContext(
        host=host,
        state_dir=settings.state_dir,
        retry=settings.retry,
        ref_resolver=GitHubRefResolver() if pin_refs else None,
    )


def main():
    parser = argparse.ArgumentParser(
        prog="gpustack", description="gpustack CLI"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    plan_parser = subparsers.add_parser(
        "plan", help="Resolve the environment and print the actions"
    )
    render_parser = subparsers.add_parser(
        "render", help="Write the install script of every action"
    )
    apply_parser = subparsers.add_parser(
        "apply", help="Provision this host"
    )
    status_parser = subparsers.add_parser(
        "status", help="Print requested provenance and install markers"
    )
    common_arguments = [
        ("--path", str, ".", "Project directory"),
        ("--manifest", str, MANIFEST_FILE, "Manifest filename"),
    ]
    target_arguments = [
        ("--host", str, None, "Target host name or address"),
    ]
    for arg in common_arguments:
        for subparser in (
            plan_parser,
            render_parser,
            apply_parser,
            status_parser,
        ):
            subparser.add_argument(
                arg[0], type=arg[1], default=arg[2], help=arg[3]
            )
    for subparser in (render_parser, apply_parser):
        for arg in target_arguments:
            subparser.add_argument(
                arg[0], type=arg[1], default=arg[2], help=arg[3]
            )
        subparser.add_argument(
            "--pin-refs",
            action="store_true",
            help="Pin git refs to commits with the GitHub API",
        )
    render_parser.add_argument(
        "--out", type=str, default="payloads", help="Output directory"
    )
    apply_parser.add_argument(
        "--wait-reboot",
        action="store_true",
        help="Wait for the host after a reboot and continue",
    )

    args = parser.parse_args()
    try:
        if args.command == "plan":
            for action in plan(path=args.path, manifest=args.manifest):
                print(action)
        elif args.command == "render":
            paths = render(
                path=args.path,
                manifest=args.manifest,
                out=args.out,
                host=args.host,
                pin_refs=args.pin_refs,
            )
            for script_path in paths:
                print(script_path)
        elif args.command == "apply":
            report = apply(
                path=args.path,
                manifest=args.manifest,
                host=args.host,
                pin_refs=args.pin_refs,
                wait_reboot=args.wait_reboot,
            )
            print(report.to_json(indent=2))
            if report.failed is not None:
                sys.exit(1)
        elif args.command == "status":
            print(
                json.dumps(
                    status(path=args.path, manifest=args.manifest),
                    indent=2,
                )
            )
        else:
            parser.print_help()
    except BaseError as e:
        logger.error(str(e), error=type(e).__name__)
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
