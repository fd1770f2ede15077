from gpustack.provisioning import (
    ComponentProvenance,
    EnvironmentSpec,
    build_components_status,
)


def test_nothing_requested():
    assert build_components_status(EnvironmentSpec()) is None


def test_requested_components():
    spec = EnvironmentSpec.from_dict(
        {
            "nvidiaDriver": {"install": True, "branch": "550"},
            "containerRuntime": {"install": True, "version": "1.7.23"},
            "nvidiaContainerToolkit": {
                "install": True,
                "source": "git",
                "git": {
                    "repo": "https://github.com/NVIDIA/"
                    "nvidia-container-toolkit.git",
                    "ref": "v1.17.3",
                },
            },
            "kubernetes": {
                "install": True,
                "source": "latest",
                "latest": {"track": "release-1.32"},
            },
        }
    )
    status = build_components_status(spec)
    assert status is not None
    assert status.driver == ComponentProvenance(source="package", branch="550")
    assert status.runtime == ComponentProvenance(
        source="package", version="1.7.23"
    )
    assert status.toolkit.source == "git"
    assert status.toolkit.ref == "v1.17.3"
    assert status.toolkit.version is None
    assert status.kubernetes.source == "latest"
    assert status.kubernetes.branch == "release-1.32"


def test_release_version():
    spec = EnvironmentSpec.from_dict(
        {"kubernetes": {"install": True, "version": "v1.30.2"}}
    )
    status = build_components_status(spec)
    assert status.kubernetes == ComponentProvenance(
        source="release", version="v1.30.2"
    )
    assert status.driver is None
