"""
Core - Infraestrutura interna do IVR.

Componentes:
- BusEvent, BusEventType: Eventos do barramento normalizados
- EventBus, Subscription: Fan-out de eventos para Dispatcher/CallHandlers
- CancelScope: Cancelamento hierárquico (processo -> chamada)
- errors: Taxonomia de erros
"""

from .events import BusEvent, BusEventType, DIALED_LEG_ARG, END_OF_CALL_TYPES
from .event_bus import EventBus, Subscription
from .cancellation import CancelScope
from .errors import (
    IVRError,
    BusConnectionError,
    ARIRequestError,
    CallCancelled,
    PlaybackError,
    AnswerError,
    HangupError,
    VariableNotFound,
    DialError,
    PromptError,
    UnknownScriptError,
)

__all__ = [
    # Eventos
    'BusEvent',
    'BusEventType',
    'DIALED_LEG_ARG',
    'END_OF_CALL_TYPES',
    'EventBus',
    'Subscription',

    # Cancelamento
    'CancelScope',

    # Erros
    'IVRError',
    'BusConnectionError',
    'ARIRequestError',
    'CallCancelled',
    'PlaybackError',
    'AnswerError',
    'HangupError',
    'VariableNotFound',
    'DialError',
    'PromptError',
    'UnknownScriptError',
]
