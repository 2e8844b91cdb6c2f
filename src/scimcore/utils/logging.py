import logging
from typing import Optional
from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install as install_rich_traceback
from scimcore.config import settings


ROOT_LOGGER = "scimcore"
ENGINE_LOGGER = f"{ROOT_LOGGER}.engine"

console = Console(stderr=True)

install_rich_traceback(show_locals=settings.debug, suppress=["fastapi", "starlette"])


def setup_logging(level: Optional[str] = None, engine_level: Optional[str] = None) -> None:
    """
    Route scimcore, uvicorn and Tortoise logs through a single rich handler.

    The engine loggers (registry, validator, patch, filter, store, storage) live under
    ``scimcore.engine`` and can be tuned separately from the HTTP layer.
    """
    level = level or settings.log_level
    engine_level = engine_level or settings.engine_log_level or level

    handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        tracebacks_show_locals=settings.debug,
        show_path=settings.debug,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s", datefmt="[%X]"))

    root = logging.getLogger(ROOT_LOGGER)
    root.handlers = [handler]
    root.setLevel(level)
    root.propagate = False

    logging.getLogger(ENGINE_LOGGER).setLevel(engine_level)

    for name in ("uvicorn", "uvicorn.error", "tortoise"):
        library_logger = logging.getLogger(name)
        library_logger.handlers = [handler]
        library_logger.propagate = False
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING if settings.is_production else logging.INFO)
    logging.getLogger("tortoise.db_client").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a logger inside the scimcore hierarchy."""
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


setup_logging()

logger = get_logger(ROOT_LOGGER)
