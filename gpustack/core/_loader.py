from __future__ import annotations

import importlib
import inspect
import os
from typing import Any

from ._provider import Provider
from ._type_converter import TypeConverter
from .exceptions import LoadError
from .manifest import MANIFEST_FILE, Manifest, Settings

ROOT_PACKAGE_NAME = "gpustack"
ENV_PREFIX = "GPUSTACK_"


class Loader:
    path: str
    manifest_path: str

    manifest: Manifest

    def __init__(
        self,
        path: str = ".",
        manifest: str = MANIFEST_FILE,
    ):
        self.path = path
        self.manifest_path = os.path.join(
            path,
            manifest,
        )
        if not os.path.isfile(self.manifest_path):
            raise LoadError(f"Manifest not found: {self.manifest_path}")
        try:
            self.manifest = Manifest.parse(path=self.manifest_path)
        except (ValueError, OSError) as e:
            raise LoadError(
                f"Invalid manifest {self.manifest_path}: {e}"
            ) from e

    def get_spec(self) -> dict[str, Any]:
        return self.manifest.spec

    def get_settings(self) -> Settings:
        """Manifest settings with GPUSTACK_* environment overrides."""
        settings = self.manifest.settings
        overrides: dict[str, Any] = {}
        for name in ("state_dir", "log_format", "log_level", "timeout"):
            value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if value:
                overrides[name] = value
        if not overrides:
            return settings
        try:
            return Settings.model_validate(settings.to_dict() | overrides)
        except ValueError as e:
            raise LoadError(f"Invalid environment override: {e}") from e

    @staticmethod
    def get_provider_path(
        component_type: str,
        provider_type: str,
    ) -> str:
        if ":" in provider_type:
            return provider_type
        if provider_type.startswith(f"{ROOT_PACKAGE_NAME}."):
            return provider_type
        return f"{component_type}.providers.{provider_type}"

    @staticmethod
    def load_provider_instance(
        path: str | None = None,
        parameters: dict[str, Any] = dict(),
    ) -> Provider:
        if path is None:
            return Provider(**parameters)
        provider = Loader.load_class(path, Provider)
        converted_parameters = TypeConverter.convert_args(
            provider.__init__, parameters
        )
        return provider(**converted_parameters)

    @staticmethod
    def load_class(path: str, type: Any) -> Any:
        class_name = None
        if ":" in path:
            module_name, class_name = path.split(":", 1)
        else:
            module_name = path
        try:
            module = importlib.import_module(module_name)
        except ModuleNotFoundError as e:
            raise LoadError(f"Module {module_name} not found") from e
        if class_name is not None:
            return getattr(module, class_name)
        for _, cls in inspect.getmembers(module, inspect.isclass):
            if issubclass(cls, type) and cls.__module__ == module_name:
                return cls
        raise LoadError(f"{type.__name__} not found at {module_name}")
