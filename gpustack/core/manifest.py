from __future__ import annotations

from typing import Any, Literal

from ._yaml_loader import YamlLoader
from .data_model import DataModel, SpecModel

__all__ = [
    "DEFAULT_STATE_DIR",
    "MANIFEST_FILE",
    "Manifest",
    "ManifestMetadata",
    "RetrySettings",
    "Settings",
]


MANIFEST_FILE = "gpustack.yaml"
DEFAULT_STATE_DIR = "/var/lib/gpustack/state"


class ManifestMetadata(DataModel):
    name: str | None = None
    description: str | None = None
    version: str | None = None


class RetrySettings(SpecModel):
    """Retry settings for transient install failures.

    Args:
        attempts: Total attempts, including the first one.
        delay: Seconds to wait between attempts.
        backoff: "fixed" waits `delay` every time, "linear" adds
            `delay` after each failed attempt.
    """

    attempts: int = 3
    delay: float = 5.0
    backoff: Literal["fixed", "linear"] = "fixed"


class Settings(SpecModel):
    state_dir: str = DEFAULT_STATE_DIR
    retry: RetrySettings = RetrySettings()
    timeout: float | None = None
    log_format: Literal["text", "json"] = "text"
    log_level: str = "info"


class Manifest(SpecModel):
    metadata: ManifestMetadata = ManifestMetadata()
    spec: dict[str, Any] = dict()
    settings: Settings = Settings()

    @staticmethod
    def parse(path: str) -> Manifest:
        obj = YamlLoader.load(path=path)
        return Manifest.from_dict(obj)
