import json
import os
import sys

import pytest
import structlog

from gpustack.core import main as cli

MANIFEST = """
spec:
  containerRuntime:
    install: true
  kubernetes:
    install: true
    installer: microk8s
  nvidiaDriver:
    install: true
settings:
  stateDir: {state_dir}
"""


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    structlog.reset_defaults()


@pytest.fixture
def project(tmp_path, monkeypatch):
    for name in ("STATE_DIR", "LOG_FORMAT", "LOG_LEVEL", "TIMEOUT"):
        monkeypatch.delenv(f"GPUSTACK_{name}", raising=False)
    (tmp_path / "gpustack.yaml").write_text(
        MANIFEST.format(state_dir=tmp_path / "state")
    )
    return tmp_path


def run_cli(monkeypatch, *args: str):
    monkeypatch.setattr(sys, "argv", ["gpustack", *args])
    cli.main()


def test_plan(project, monkeypatch, capsys):
    run_cli(monkeypatch, "plan", "--path", str(project))
    assert capsys.readouterr().out == "0:orchestrator:microk8s@release\n"


def test_plan_resolution_error(tmp_path, monkeypatch):
    (tmp_path / "gpustack.yaml").write_text(
        "spec:\n  kubernetes:\n    install: true\n    installer: k3s\n"
    )
    with pytest.raises(SystemExit) as e:
        run_cli(monkeypatch, "plan", "--path", str(tmp_path))
    assert e.value.code == 2


def test_plan_invalid_manifest(tmp_path, monkeypatch, capsys):
    (tmp_path / "gpustack.yaml").write_text(
        "spec:\n  kubernetes:\n    install: maybe\n"
    )
    with pytest.raises(SystemExit) as e:
        run_cli(monkeypatch, "plan", "--path", str(tmp_path))
    assert e.value.code == 2
    assert "Traceback" not in capsys.readouterr().err


@pytest.mark.parametrize("name", ["LOG_FORMAT", "TIMEOUT"])
def test_plan_invalid_override(project, monkeypatch, name: str):
    monkeypatch.setenv(f"GPUSTACK_{name}", "soon")
    with pytest.raises(SystemExit) as e:
        run_cli(monkeypatch, "plan", "--path", str(project))
    assert e.value.code == 2


def test_render(project):
    out = project / "payloads"
    (path,) = cli.render(
        path=str(project),
        manifest="gpustack.yaml",
        out=str(out),
        host=None,
        pin_refs=False,
    )
    assert os.path.basename(path) == "00-kubernetes.sh"
    with open(path) as f:
        assert "gpustack_contract" in f.read()
    assert os.access(path, os.X_OK)


def test_status(project, monkeypatch, capsys):
    state = project / "state"
    state.mkdir()
    (state / "kubernetes.state").write_text(
        "status=installed\nversion=1.31.1\ninstalled_at=\n"
    )
    run_cli(monkeypatch, "status", "--path", str(project))
    output = json.loads(capsys.readouterr().out)
    assert output["components"]["driver"]["source"] == "package"
    assert output["components"]["kubernetes"]["version"] is None
    assert output["markers"]["kubernetes"]["status"] == "installed"


def test_plan_example(monkeypatch, capsys):
    for name in ("STATE_DIR", "LOG_FORMAT", "LOG_LEVEL", "TIMEOUT"):
        monkeypatch.delenv(f"GPUSTACK_{name}", raising=False)
    examples = os.path.join(os.path.dirname(__file__), "..", "..", "examples")
    run_cli(monkeypatch, "plan", "--path", examples)
    assert capsys.readouterr().out.splitlines() == [
        "0:kernel:kernel@6.8.0-49-generic",
        "1:driver:nvidia_driver@package",
        "2:container_runtime:containerd@package",
        "3:container_toolkit:container_toolkit@git",
        "4:orchestrator:kubeadm@v1.31.1",
    ]
