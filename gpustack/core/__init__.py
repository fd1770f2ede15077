from ._component import Component
from ._context import Context
from ._decorators import operation
from ._loader import Loader
from ._log_helper import configure_logging, warn
from ._operation import Operation
from ._provider import Provider
from ._response import Response
from ._type_converter import TypeConverter
from .data_model import DataModel, FrozenDataModel, SpecModel

__all__ = [
    "Component",
    "Context",
    "DataModel",
    "FrozenDataModel",
    "Loader",
    "Operation",
    "Provider",
    "Response",
    "SpecModel",
    "TypeConverter",
    "configure_logging",
    "operation",
    "warn",
]
