# Call handlers
#
# - call_handler.py: CallHandler (ciclo de vida de uma chamada)
# - scripts.py: ScriptRegistry e roteiros embutidos

from .call_handler import CallHandler, CallScript
from .scripts import ScriptRegistry

__all__ = [
    "CallHandler",
    "CallScript",
    "ScriptRegistry",
]
