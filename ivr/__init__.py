# IVR - aplicação Stasis (Asterisk ARI) que toca roteiros de prompts
#
# Lazy imports para evitar RuntimeWarning quando executado como módulo
# Use: from ivr.server import IVRServer
# Ou:  from ivr import Dispatcher

__all__ = [
    "IVRServer",
    "Dispatcher",
    "CallHandler",
    "ARIClient",
]


def __getattr__(name: str):
    """
    Lazy import para evitar circular imports e RuntimeWarning.

    Quando executamos 'python -m ivr', o __init__.py é carregado antes
    do __main__.py; imports diretos causam o warning 'found in sys.modules'.
    """
    if name == "IVRServer":
        from .server import IVRServer
        return IVRServer
    elif name == "Dispatcher":
        from .dispatcher import Dispatcher
        return Dispatcher
    elif name == "CallHandler":
        from .handlers.call_handler import CallHandler
        return CallHandler
    elif name == "ARIClient":
        from .ari.client import ARIClient
        return ARIClient
    raise AttributeError(f"module 'ivr' has no attribute {name!r}")
