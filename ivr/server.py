"""
IVR Server - Processo de longa duração.

Conecta ao ARI, roda o Dispatcher até SIGINT/SIGTERM e faz o shutdown:
1. Para de aceitar chamadas
2. Aguarda as chamadas em curso por `shutdown_grace` segundos
3. Cancela as restantes (cada handler ainda faz hangup) e fecha o cliente
"""

import asyncio
import signal
from typing import Optional

from .ari.client import ARIClient, connect
from .config import IVRConfig
from .core.cancellation import CancelScope
from .core.errors import BusConnectionError, UnknownScriptError
from .dispatcher import Dispatcher
from .handlers.scripts import ScriptRegistry
from .logging_config import get_logger

# Tempo extra para handlers cancelados emitirem o hangup
CANCEL_DRAIN_SECONDS = 5.0


class IVRServer:
    """
    Servidor IVR para uma aplicação Stasis.
    """

    def __init__(self, config: IVRConfig, logger=None):
        self.config = config
        self.logger = (logger or get_logger(__name__)).bind(application=config.application)
        self.stop_scope = CancelScope()

        self.client: Optional[ARIClient] = None
        self.dispatcher: Optional[Dispatcher] = None

    async def start(self) -> None:
        """
        Conecta e prepara o Dispatcher.

        Raises:
            BusConnectionError: conexão com o ARI falhou
            UnknownScriptError: script desconhecido
        """
        script = ScriptRegistry.resolve(self.config.script, self.config.script_params)

        self.client = await connect(
            self.config.ari_url,
            self.config.application,
            username=self.config.ari_username,
            password=self.config.ari_password,
            request_timeout=self.config.request_timeout,
            logger=self.logger,
        )
        self.dispatcher = Dispatcher(
            self.client,
            script,
            logger=self.logger,
            max_concurrent_calls=self.config.max_concurrent_calls,
        )
        self.logger.info(
            "IVR server started",
            script=self.config.script,
            max_concurrent_calls=self.config.max_concurrent_calls,
        )

    def request_stop(self, reason: str = "stop requested") -> None:
        """Para de aceitar chamadas novas."""
        self.logger.info("Stopping IVR server", reason=reason)
        self.stop_scope.cancel(reason)

    async def stop(self) -> None:
        """Drena chamadas em curso e fecha o cliente."""
        if self.dispatcher is not None:
            drained = await self.dispatcher.wait_for_calls(timeout=self.config.shutdown_grace)
            if not drained:
                self.dispatcher.cancel_calls("server shutdown")
                await self.dispatcher.wait_for_calls(timeout=CANCEL_DRAIN_SECONDS)

        if self.client is not None:
            await self.client.close()
            self.client = None

        self.logger.info("IVR server stopped")

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self.request_stop, signal.Signals(signum).name)
            except (NotImplementedError, RuntimeError):
                # Windows / loop fora da main thread
                self.logger.debug("Signal handlers unavailable", signal=signum)

    async def serve_forever(self) -> None:
        """Executa até o stop_scope disparar."""
        await self.start()
        self._install_signal_handlers()

        try:
            await self.dispatcher.run(self.stop_scope)
        finally:
            await self.stop()


async def run_server(config: Optional[IVRConfig] = None) -> int:
    """
    Função helper para rodar o servidor.

    Returns:
        Exit code do processo (1 se a conexão com o ARI falhou,
        2 se o script configurado não existe)
    """
    config = config or IVRConfig.from_env()
    server = IVRServer(config)

    try:
        await server.serve_forever()
    except BusConnectionError as e:
        server.logger.error("Failed to build ARI client", error=str(e))
        return 1
    except UnknownScriptError as e:
        server.logger.error("Invalid script configuration", error=str(e))
        return 2
    return 0
