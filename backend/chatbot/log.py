import sys

from loguru import logger


def configure_logging(level: str = "INFO") -> None:
    """Route loguru output to stderr at the configured level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {name}:{line} - {message}",
    )
