"""
Script Registry - Roteiros de chamada plugáveis.

Um script é uma coroutine `async def script(handler, **params)` que usa
as operações do CallHandler. O roteiro ativo é escolhido por nome na
configuração (IVR_SCRIPT / IVR_SCRIPT_PARAMS); trocar de fluxo não exige
mexer no CallHandler nem no Dispatcher.

Uso:
    @ScriptRegistry.register("greeting")
    async def greeting(handler, name="hello-world"):
        await handler.play_recording(name)

    script = ScriptRegistry.resolve("greeting", {"name": "welcome"})
"""

import functools
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .call_handler import CallHandler, CallScript
from ..audio.uri import DIGIT_CHARS, sound_uri
from ..core.errors import DialError, UnknownScriptError

logger = logging.getLogger(__name__)


class ScriptRegistry:
    """
    Registro centralizado de scripts (nível de classe, um por processo).
    """

    _scripts: Dict[str, Callable[..., Any]] = {}

    @classmethod
    def register(cls, name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator que registra um script pelo nome."""
        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            if name in cls._scripts:
                logger.warning(f"Script '{name}' já registrado - sobrescrevendo")
            cls._scripts[name] = func
            return func
        return decorator

    @classmethod
    def unregister(cls, name: str) -> bool:
        return cls._scripts.pop(name, None) is not None

    @classmethod
    def get(cls, name: str) -> Optional[Callable[..., Any]]:
        return cls._scripts.get(name)

    @classmethod
    def has(cls, name: str) -> bool:
        return name in cls._scripts

    @classmethod
    def list_names(cls) -> List[str]:
        return sorted(cls._scripts)

    @classmethod
    def resolve(cls, name: str, params: Optional[Dict[str, Any]] = None) -> CallScript:
        """
        Retorna o script pronto para o CallHandler, com params aplicados.

        Raises:
            UnknownScriptError: script desconhecido
        """
        func = cls._scripts.get(name)
        if func is None:
            raise UnknownScriptError(name, cls.list_names())
        if params:
            return functools.partial(func, **params)
        return func


# ----------------------------------------------------------------------
# Scripts embutidos
# ----------------------------------------------------------------------

@ScriptRegistry.register("number-demo")
async def number_demo(handler: CallHandler, number: int = 45678) -> None:
    """Fala um número e encerra (roteiro padrão)."""
    await handler.play_number(number)


@ScriptRegistry.register("congrats")
async def congrats(handler: CallHandler, sound: str = "demo-congrats") -> None:
    await handler.play(sound_uri(sound))


@ScriptRegistry.register("digits-demo")
async def digits_demo(handler: CallHandler, digits: str = "1256*", hash_word: str = "") -> None:
    await handler.play_digits(digits, hash_word)


@ScriptRegistry.register("wait-demo")
async def wait_demo(handler: CallHandler, seconds: float = 10) -> None:
    await handler.wait(timedelta(seconds=seconds))


@ScriptRegistry.register("clock")
async def clock(handler: CallHandler) -> None:
    """Atende e fala a data/hora atual."""
    await handler.answer()
    await handler.play_datetime(datetime.now())


@ScriptRegistry.register("extension-echo")
async def extension_echo(handler: CallHandler, variable: str = "EXTEN") -> None:
    """Atende e repete, dígito a dígito, a extensão discada."""
    await handler.answer()
    extension = await handler.get_channel_variable(variable)
    # Extensões como "s" ou "+5511..." têm caracteres sem som
    digits = "".join(char for char in extension if char in DIGIT_CHARS)
    if not digits:
        handler.logger.info("Nothing to speak", variable=variable, value=extension)
        return
    await handler.play_digits(digits)


@ScriptRegistry.register("dial")
async def dial(
    handler: CallHandler,
    destination: str = "PJSIP/12345",
    timeout: float = 30,
    on_failure: str = "vm-nobodyavail",
) -> None:
    """Disca para outro endpoint; se falhar, avisa o caller."""
    try:
        await handler.dial(destination, timeout)
    except DialError as e:
        handler.logger.error("Failed to dial", error=str(e))
        await handler.play(sound_uri(on_failure))
        return

    # Bridge ativo: só sair quando a chamada acabar
    await handler.wait_for_end()
