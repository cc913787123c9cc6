"""
Sound-resource URIs do ARI.

Funções puras e determinísticas que convertem um pedido lógico
(gravação, número, dígitos, duração, data/hora, espera) em um ou mais
media URIs que o Asterisk sabe tocar.

Os nomes seguem os core sounds do Asterisk (en) e as mesmas regras de
composição do say.c: "digits/40" + "digits/5" + "digits/thousand" ...

Referências:
- https://docs.asterisk.org/Configuration/Applications/Asterisk-REST-Interface-ARI/Introduction-to-ARI-and-Channels/ARI-and-Channels-Simple-Media-Manipulation/
"""

from datetime import datetime, timedelta
from typing import List

from ..core.errors import PromptError

SOUND_SCHEME = "sound:"
RECORDING_SCHEME = "recording:"

# Maior arquivo de silêncio nos core sounds (silence/1 .. silence/10)
MAX_SILENCE_SECONDS = 10

# Caracteres que digits_uris sabe falar
DIGIT_CHARS = "0123456789*#ABCDabcd"

_SCALES = (
    (1_000_000_000, "billion"),
    (1_000_000, "million"),
    (1_000, "thousand"),
)


def sound_uri(name: str) -> str:
    return SOUND_SCHEME + name


def recording_uri(name: str) -> str:
    """URI de uma gravação armazenada (ARI stored recording)."""
    return RECORDING_SCHEME + name


def _below_thousand(num: int) -> List[str]:
    uris: List[str] = []
    if num >= 100:
        uris.append(sound_uri(f"digits/{num // 100}"))
        uris.append(sound_uri("digits/hundred"))
        num %= 100
    if num >= 20:
        uris.append(sound_uri(f"digits/{num // 10 * 10}"))
        num %= 10
    if num:
        uris.append(sound_uri(f"digits/{num}"))
    return uris


def number_uris(num: int) -> List[str]:
    """
    Número falado.

    Example:
        >>> number_uris(45678)
        ['sound:digits/40', 'sound:digits/5', 'sound:digits/thousand',
         'sound:digits/6', 'sound:digits/hundred', 'sound:digits/70', 'sound:digits/8']
    """
    try:
        num = int(num)
    except (TypeError, ValueError) as e:
        raise PromptError(f"not a number: {num!r}") from e
    if num < 0:
        return [sound_uri("digits/minus")] + number_uris(-num)
    if num == 0:
        return [sound_uri("digits/0")]

    uris: List[str] = []
    for value, word in _SCALES:
        if num >= value:
            uris.extend(number_uris(num // value))
            uris.append(sound_uri(f"digits/{word}"))
            num %= value

    uris.extend(_below_thousand(num))
    return uris


def digits_uris(digits: str, hash_word: str = "") -> List[str]:
    """
    Dígitos falados um a um.

    Args:
        digits: 0-9, '*', '#' e A-D (DTMF)
        hash_word: Som usado para '#' (default: "pound")

    Raises:
        PromptError: Caractere sem som correspondente
    """
    uris: List[str] = []
    for char in digits:
        if char in "0123456789":
            uris.append(sound_uri(f"digits/{char}"))
        elif char == "*":
            uris.append(sound_uri("digits/star"))
        elif char == "#":
            uris.append(sound_uri(f"digits/{hash_word or 'pound'}"))
        elif char.lower() in "abcd":
            uris.append(sound_uri(f"letters/{char.lower()}"))
        else:
            raise PromptError(f"unsupported digit {char!r} in {digits!r}")
    return uris


def duration_uris(duration: timedelta) -> List[str]:
    """
    Duração falada em horas, minutos e segundos (frações são descartadas).

    Raises:
        PromptError: Duração negativa
    """
    total = int(duration.total_seconds())
    if total < 0:
        raise PromptError(f"negative duration: {duration}")

    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)

    uris: List[str] = []
    for value, singular, plural in (
        (hours, "hour", "hours"),
        (minutes, "minute", "minutes"),
        (seconds, "second", "seconds"),
    ):
        if value:
            uris.extend(number_uris(value))
            uris.append(sound_uri(singular if value == 1 else plural))

    if not uris:
        uris = number_uris(0) + [sound_uri("seconds")]
    return uris


def _ordinal_day_uris(day: int) -> List[str]:
    # h-1 .. h-20 e h-30 existem; o resto é composto (20 + h-3)
    if day < 21 or day == 30:
        return [sound_uri(f"digits/h-{day}")]
    return [sound_uri(f"digits/{day // 10 * 10}"), sound_uri(f"digits/h-{day % 10}")]


def datetime_uris(moment: datetime) -> List[str]:
    """
    Data e hora faladas: "<dia da semana> <mês> <dia> <ano> at <hora> <minutos> <am/pm>".
    """
    # Asterisk: day-0 = domingo, mon-0 = janeiro
    weekday = (moment.weekday() + 1) % 7

    uris = [
        sound_uri(f"digits/day-{weekday}"),
        sound_uri(f"digits/mon-{moment.month - 1}"),
    ]
    uris.extend(_ordinal_day_uris(moment.day))
    uris.extend(number_uris(moment.year))
    uris.append(sound_uri("digits/at"))

    uris.extend(number_uris(moment.hour % 12 or 12))
    if moment.minute == 0:
        uris.append(sound_uri("digits/oclock"))
    elif moment.minute < 10:
        uris.append(sound_uri("digits/oh"))
        uris.append(sound_uri(f"digits/{moment.minute}"))
    else:
        uris.extend(number_uris(moment.minute))

    uris.append(sound_uri("digits/a-m" if moment.hour < 12 else "digits/p-m"))
    return uris


def wait_uris(duration: timedelta) -> List[str]:
    """
    Silêncio pela duração pedida, em blocos de até 10s (segundos inteiros).

    Raises:
        PromptError: Duração negativa
    """
    remaining = int(duration.total_seconds())
    if remaining < 0:
        raise PromptError(f"negative duration: {duration}")

    uris: List[str] = []
    while remaining > 0:
        chunk = min(remaining, MAX_SILENCE_SECONDS)
        uris.append(sound_uri(f"silence/{chunk}"))
        remaining -= chunk
    return uris
