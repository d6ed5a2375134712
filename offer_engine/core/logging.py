"""Loguru logging configuration"""

import sys
from pathlib import Path
from loguru import logger

PRETTY_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[request_id]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

# "-" outside a request; the HTTP middleware binds the real id
logger.configure(extra={"request_id": "-"})


def setup_logging(
    debug: bool = False,
    log_format: str = "pretty",
    log_to_file: bool = True,
) -> None:
    """Replace loguru sinks with the application's.

    ``pretty`` writes colourised lines to stderr; ``json`` writes one
    serialized record per line for log shippers. Debug mode always uses the
    pretty sink at DEBUG level.
    """
    logger.remove()
    level = "DEBUG" if debug else "INFO"

    if log_format == "pretty" or debug:
        logger.add(sys.stderr, format=PRETTY_FORMAT, level=level, colorize=True)
    else:
        logger.add(sys.stderr, format="{message}", level=level, serialize=True)

    if log_to_file:
        logs_dir = Path("logs")
        logs_dir.mkdir(exist_ok=True)
        logger.add(
            logs_dir / "offers_{time:YYYY-MM-DD}.log",
            format=PRETTY_FORMAT,
            rotation="00:00",
            retention="30 days",
            compression="gz",
            level="INFO",
            colorize=False,
        )


log = logger
