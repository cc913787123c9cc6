"""
CancelScope - Sinal de cancelamento hierárquico.

O servidor tem um escopo de processo; cada CallHandler deriva um escopo
filho. Cancelar o pai cancela todos os filhos; cancelar um filho não
afeta o pai nem os irmãos.
"""

import asyncio
import weakref
from typing import Optional


class CancelScope:
    """
    Uso:
        root = CancelScope()
        call_scope = root.child()

        call_scope.cancel("caller hung up")
        await call_scope.wait()
    """

    def __init__(self, parent: Optional["CancelScope"] = None):
        self._event = asyncio.Event()
        self._reason = ""
        self._children: "weakref.WeakSet[CancelScope]" = weakref.WeakSet()
        self._parent = parent

        if parent is not None:
            parent._children.add(self)
            if parent.cancelled:
                self.cancel(parent.reason)

    def child(self) -> "CancelScope":
        return CancelScope(parent=self)

    def cancel(self, reason: str = "cancelled") -> None:
        """Dispara o escopo e todos os filhos. Idempotente."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        for child in list(self._children):
            child.cancel(reason)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    async def wait(self) -> None:
        await self._event.wait()
