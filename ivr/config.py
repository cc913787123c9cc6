"""
Configuração do IVR.

Carregada de variáveis de ambiente e validada com pydantic:

    IVR_APPLICATION          Nome da aplicação Stasis (default: ivr)
    ARI_URL                  URL HTTP do ARI (default: http://localhost:8088)
    ARI_USERNAME             Usuário ARI (ari.conf)
    ARI_PASSWORD             Senha ARI
    ARI_REQUEST_TIMEOUT      Timeout de cada comando, segundos (default: 10)
    IVR_SCRIPT               Script executado em cada chamada (default: number-demo)
    IVR_SCRIPT_PARAMS        Parâmetros do script, objeto JSON (default: {})
    IVR_MAX_CONCURRENT_CALLS Limite de scripts simultâneos (default: sem limite)
    IVR_SHUTDOWN_GRACE       Segundos aguardando chamadas no shutdown (default: 30)
    LOG_LEVEL / LOG_JSON / LOG_DIR
"""

import json
import os
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, field_validator


def _parse_bool(value, default: bool = True) -> bool:
    """
    Converte valor para booleano de forma segura.

    Args:
        value: Valor a converter (bool, str, int, None)
        default: Valor padrão se None

    Returns:
        bool
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes', 't')
    return default


def _parse_limit(value) -> Optional[int]:
    """
    Converte limite de chamadas simultâneas.

    "", "none", "0", "unbounded" -> None (sem limite)
    """
    if value is None:
        return None
    if isinstance(value, int):
        return value or None
    value_lower = str(value).strip().lower()
    if value_lower in ('', 'none', '0', 'unbounded', 'inf'):
        return None
    return int(value_lower)


def _parse_params(value) -> Dict[str, Any]:
    """IVR_SCRIPT_PARAMS: objeto JSON."""
    if value is None or value == "":
        return {}
    if isinstance(value, dict):
        return value
    if not isinstance(value, (str, bytes)):
        raise ValueError("IVR_SCRIPT_PARAMS must be a JSON object")
    parsed = json.loads(value)
    if not isinstance(parsed, dict):
        raise ValueError("IVR_SCRIPT_PARAMS must be a JSON object")
    return parsed


class IVRConfig(BaseModel):
    """Configuração do processo IVR."""

    # Barramento (ARI)
    application: str = "ivr"
    ari_url: str = "http://localhost:8088"
    ari_username: str = "asterisk"
    ari_password: str = "asterisk"
    request_timeout: float = 10.0

    # Script
    script: str = "number-demo"
    script_params: Dict[str, Any] = Field(default_factory=dict)

    # Concorrência
    max_concurrent_calls: Optional[int] = None  # None = sem limite
    shutdown_grace: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = True
    log_dir: Optional[str] = None

    model_config = {"extra": "ignore"}

    @field_validator('script_params', mode='before')
    @classmethod
    def parse_script_params(cls, v):
        return _parse_params(v)

    @field_validator('max_concurrent_calls', mode='before')
    @classmethod
    def parse_limit(cls, v):
        return _parse_limit(v)

    @field_validator('log_json', mode='before')
    @classmethod
    def parse_log_json(cls, v):
        return _parse_bool(v, default=True)

    @field_validator('log_dir', mode='before')
    @classmethod
    def parse_log_dir(cls, v):
        return v or None

    @field_validator('application')
    @classmethod
    def validate_application(cls, v):
        if not v or not v.strip():
            raise ValueError("application name must not be empty")
        return v.strip()

    @field_validator('ari_url')
    @classmethod
    def validate_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"ARI_URL must be http(s): {v}")
        return v.rstrip("/")

    @field_validator('request_timeout', 'shutdown_grace')
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError(f"must be positive: {v}")
        return v

    @field_validator('max_concurrent_calls')
    @classmethod
    def validate_limit(cls, v):
        if v is not None and v < 1:
            raise ValueError(f"max_concurrent_calls must be >= 1: {v}")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "IVRConfig":
        """
        Monta a configuração a partir do ambiente.

        Os valores chegam crus (strings); toda conversão fica nos validators,
        então qualquer valor inválido vira ValidationError.

        Raises:
            pydantic.ValidationError: valor inválido
        """
        env = os.environ if environ is None else environ
        return cls(
            application=env.get("IVR_APPLICATION", "ivr"),
            ari_url=env.get("ARI_URL", "http://localhost:8088"),
            ari_username=env.get("ARI_USERNAME", "asterisk"),
            ari_password=env.get("ARI_PASSWORD", "asterisk"),
            request_timeout=env.get("ARI_REQUEST_TIMEOUT", "10"),
            script=env.get("IVR_SCRIPT", "number-demo"),
            script_params=env.get("IVR_SCRIPT_PARAMS"),
            max_concurrent_calls=env.get("IVR_MAX_CONCURRENT_CALLS"),
            shutdown_grace=env.get("IVR_SHUTDOWN_GRACE", "30"),
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_json=env.get("LOG_JSON"),
            log_dir=env.get("LOG_DIR"),
        )
