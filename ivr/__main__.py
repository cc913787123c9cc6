"""
IVR package entrypoint.

Uso:
    python -m ivr
    ivr                      (console script)

Exit codes: 0 shutdown limpo, 1 falha de conexão com o ARI,
2 configuração inválida ou script desconhecido.
"""

import asyncio
import sys

from pydantic import ValidationError

from .config import IVRConfig
from .logging_config import configure_logging, get_logger
from .server import run_server

EXIT_INVALID_CONFIG = 2


def main() -> None:
    try:
        config = IVRConfig.from_env()
    except ValidationError as e:
        configure_logging()
        get_logger(__name__).error(
            "Invalid configuration",
            errors=[
                {"field": ".".join(str(part) for part in err["loc"]), "error": err["msg"]}
                for err in e.errors()
            ],
        )
        sys.exit(EXIT_INVALID_CONFIG)

    configure_logging(
        log_level=config.log_level,
        log_dir=config.log_dir,
        json_format=config.log_json,
    )

    sys.exit(asyncio.run(run_server(config)))


if __name__ == "__main__":
    main()
