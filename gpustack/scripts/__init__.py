from ._models import Payload
from .component import ScriptRenderer

__all__ = ["Payload", "ScriptRenderer"]
