import logging
import traceback
from typing import Optional

DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


def setup_logging(level: int = logging.INFO, fmt: Optional[str] = None) -> None:
    """Configure root logging once. Later calls only adjust the level.

    The CLI calls this before anything else so that --verbose takes effect;
    library modules reach it lazily through get_logger().
    """
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
        return
    logging.basicConfig(level=level, format=fmt or DEFAULT_FORMAT)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a named logger, after ensuring logging is configured."""
    setup_logging_if_needed()
    return logging.getLogger(name or "registry_pruner")


def setup_logging_if_needed() -> None:
    if not logging.getLogger().handlers:
        setup_logging()


def log_exception(logger: logging.Logger, message: str = "An error occurred", exc_info: Optional[BaseException] = None) -> None:
    """Log an unexpected failure with its full traceback.

    Args:
        logger: Logger instance to use
        message: Custom error message to log before the traceback
        exc_info: Exception instance (if None, uses current exception context)
    """
    logger.error(message)
    if exc_info is not None:
        logger.error(f"Exception type: {type(exc_info).__name__}")
        logger.error(f"Exception message: {exc_info}")
        formatted = "".join(traceback.format_exception(type(exc_info), exc_info, exc_info.__traceback__))
    else:
        formatted = traceback.format_exc()
    logger.error("Full traceback:")
    logger.error(formatted)
