"""
Structured Logging Configuration.

structlog e logging padrão passam pelo mesmo ProcessorFormatter: eventos
do IVR e registros de bibliotecas (aiohttp, asyncio, core do IVR) saem no
mesmo formato, JSON válido em produção e console colorido em
desenvolvimento. O arquivo rotativo (LOG_DIR) é sempre JSON.

Contexto por chamada via logger.bind(call_id=...).
"""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
from structlog.types import Processor

SERVICE_NAME = "ivr"
SERVICE_VERSION = "0.1.0"


def add_timestamp(
    logger: logging.Logger,
    method_name: str,
    event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Timestamp ISO (UTC) com sufixo Z."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return event_dict


def add_service_info(
    logger: logging.Logger,
    method_name: str,
    event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    event_dict["service"] = SERVICE_NAME
    event_dict["version"] = SERVICE_VERSION
    return event_dict


def _formatter(renderer: Processor, pre_chain: List[Processor]) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def configure_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    json_format: bool = True,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> None:
    """
    Configura logging estruturado.

    Args:
        log_level: Nível de log (DEBUG, INFO, WARNING, ERROR)
        log_dir: Diretório do arquivo rotativo (None = stdout apenas)
        json_format: JSON no stdout (True para produção)
        max_bytes: Tamanho máximo do arquivo de log
        backup_count: Número de backups a manter
    """
    level = getattr(logging, log_level.upper())

    # Rodam para eventos structlog e para registros do logging padrão
    pre_chain: List[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_timestamp,
        add_service_info,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *pre_chain,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    json_renderer = structlog.processors.JSONRenderer()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(_formatter(
        json_renderer if json_format else structlog.dev.ConsoleRenderer(colors=True),
        pre_chain,
    ))
    root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path / f"{SERVICE_NAME}.log",
            maxBytes=max_bytes,
            backupCount=backup_count
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(_formatter(json_renderer, pre_chain))
        root_logger.addHandler(file_handler)

    # Silenciar logs verbose de bibliotecas
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """
    Obtém logger com contexto.

    Uso:
        logger = get_logger(__name__)
        logger.info("message", key="value")
    """
    return structlog.get_logger(name)
