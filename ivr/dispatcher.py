"""
Dispatcher - Ponte entre StasisStart e CallHandlers.

Para cada notificação CALL_STARTED resolve o handle do canal e dispara um
CallHandler em uma task independente. O loop nunca espera um handler
terminar; só para quando o sinal `stop` dispara (ou o stream de eventos
fecha).

Com max_concurrent_calls definido, cada notificação ainda gera uma task,
mas o script só roda quando houver vaga (asyncio.Semaphore).
"""

import asyncio
from typing import Optional, Set

from .core.cancellation import CancelScope
from .core.events import BusEvent, BusEventType
from .handlers.call_handler import CallHandler, CallScript
from .logging_config import get_logger


class Dispatcher:
    """
    Dispatcher de chamadas de uma aplicação Stasis.

    Uso:
        dispatcher = Dispatcher(client, script)
        stop = CancelScope()
        await dispatcher.run(stop)       # até stop.cancel()
        await dispatcher.wait_for_calls(timeout=30)
    """

    def __init__(
        self,
        client,
        script: CallScript,
        logger=None,
        max_concurrent_calls: Optional[int] = None,
    ):
        """
        Args:
            client: ARIClient (ou compatível: subscribe() e channel())
            script: Roteiro executado em cada chamada
            logger: Logger structlog injetado
            max_concurrent_calls: Limite de scripts simultâneos (None = sem limite)
        """
        self.client = client
        self.script = script
        self.logger = logger or get_logger(__name__)
        self.max_concurrent_calls = max_concurrent_calls

        # Escopo pai de todos os handlers; independente do stop do loop
        self.cancel_scope = CancelScope()

        self._slots = asyncio.Semaphore(max_concurrent_calls) if max_concurrent_calls else None
        self._tasks: Set[asyncio.Task] = set()
        self._handled = 0

    @property
    def active_calls(self) -> int:
        return len(self._tasks)

    @property
    def handled_calls(self) -> int:
        return self._handled

    async def run(self, stop: Optional[CancelScope] = None) -> None:
        """
        Loop de despacho.

        Args:
            stop: Sinal que encerra a aceitação de novas chamadas. Handlers
                já em execução não são afetados.
        """
        subscription = self.client.subscribe(BusEventType.CALL_STARTED)
        self.logger.info("Listening for new calls")

        try:
            while True:
                if stop is not None and stop.cancelled:
                    break
                event = await subscription.next(cancel=stop)
                if event is None:
                    break
                self._dispatch(event)
        finally:
            subscription.cancel()
            self.logger.info(
                "Dispatcher stopped",
                handled_calls=self._handled,
                active_calls=self.active_calls,
            )

    def _dispatch(self, event: BusEvent) -> Optional[asyncio.Task]:
        if not event.call_id:
            self.logger.warning("Call start without channel id", ari_type=event.ari_type)
            return None

        self.logger.debug("Got stasis start", channel=event.call_id)

        handler = CallHandler(
            self.client.channel(event.call_id),
            self.script,
            logger=self.logger,
            parent=self.cancel_scope,
        )
        task = asyncio.create_task(self._run_handler(handler), name=f"call-{event.call_id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_handler_done)
        self._handled += 1
        return task

    async def _run_handler(self, handler: CallHandler) -> None:
        if self._slots is None:
            await handler.start()
            return

        if self._slots.locked():
            self.logger.info("Waiting for free call slot", channel=handler.call_id)
        async with self._slots:
            await handler.start()

    def _on_handler_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error(
                "Call handler crashed",
                task=task.get_name(),
                error=str(exc),
                exc_info=exc,
            )

    async def wait_for_calls(self, timeout: Optional[float] = None) -> bool:
        """
        Aguarda os handlers em execução.

        Returns:
            True se todos terminaram, False se o timeout expirou
        """
        if not self._tasks:
            return True
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        return not pending

    def cancel_calls(self, reason: str = "shutdown") -> None:
        """Cancela o escopo de todos os handlers (cada um ainda faz hangup)."""
        self.logger.info("Cancelling active calls", active_calls=self.active_calls, reason=reason)
        self.cancel_scope.cancel(reason)
