import sys

from loguru import logger

from .settings import Settings

LOG_FORMAT = "{time:YYYY-MM-DD at HH:mm:ss} | {level} | {message}"


def configure_logging(settings: Settings) -> None:
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level, format=LOG_FORMAT)
    if settings.log_file:
        logger.add(
            settings.log_file,
            rotation="50 MB",
            level=settings.log_level,
            format=LOG_FORMAT,
        )
