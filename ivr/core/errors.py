"""
Exceções do IVR.

Todas herdam de IVRError. Erros de uma chamada ficam locais ao seu
CallHandler: o script é abortado e o hangup de saída ainda é executado.
Somente BusConnectionError no startup encerra o processo.
"""

from typing import Optional


class IVRError(Exception):
    """Base de todos os erros do IVR."""


class BusConnectionError(IVRError, ConnectionError):
    """Falha ao abrir a sessão com o barramento de controle (ARI)."""


class ARIRequestError(IVRError):
    """Requisição HTTP ao ARI falhou (status >= 400 ou erro de transporte)."""

    def __init__(
        self,
        method: str,
        path: str,
        status: Optional[int],
        message: str = "",
    ):
        self.method = method
        self.path = path
        self.status = status
        self.message = message
        super().__init__(f"{method} {path} -> {status or 'no response'}: {message}")

    @property
    def not_found(self) -> bool:
        return self.status == 404


class CallCancelled(IVRError):
    """O escopo de cancelamento da chamada disparou (caller desligou ou shutdown)."""

    def __init__(self, call_id: str, reason: str = ""):
        self.call_id = call_id
        self.reason = reason
        super().__init__(f"call {call_id} cancelled: {reason or 'unknown'}")


class PlaybackError(IVRError):
    """Falha ao tocar um sound-resource URI."""

    def __init__(self, uri: str, reason: str):
        self.uri = uri
        self.reason = reason
        super().__init__(f"playback of {uri!r} failed: {reason}")


class AnswerError(IVRError):
    pass


class HangupError(IVRError):
    pass


class VariableNotFound(IVRError, KeyError):
    """Variável de canal não definida."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"channel variable {self.name!r} is not set"


class DialError(IVRError):
    """Falha ao discar/bridgear para outro endpoint."""

    def __init__(self, destination: str, reason: str):
        self.destination = destination
        self.reason = reason
        super().__init__(f"dial to {destination} failed: {reason}")


class PromptError(IVRError, ValueError):
    """Pedido de prompt sem sons correspondentes (dígito inválido, duração negativa...)."""


class UnknownScriptError(IVRError, KeyError):
    """Script não registrado no ScriptRegistry."""

    def __init__(self, name: str, available: Optional[list] = None):
        self.name = name
        self.available = list(available or [])
        super().__init__(name)

    def __str__(self) -> str:
        return f"unknown script {self.name!r} (available: {', '.join(self.available)})"
