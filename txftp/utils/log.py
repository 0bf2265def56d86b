from __future__ import annotations

import logging
import sys
from logging.config import dictConfig
from typing import TYPE_CHECKING, Any

from twisted.python import log as twisted_log
from twisted.python.failure import Failure

from txftp.settings import Settings

if TYPE_CHECKING:
    from txftp.settings import BaseSettings


DEFAULT_LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "loggers": {
        "txftp": {"level": "DEBUG"},
        "twisted": {"level": "ERROR"},
    },
}

_root_handler: logging.Handler | None = None


def failure_to_exc_info(
    failure: Failure | Any,
) -> tuple[type[BaseException], BaseException, Any] | None:
    """``exc_info`` tuple of a Failure, ``None`` for anything else"""
    if not isinstance(failure, Failure):
        return None
    assert failure.type
    assert failure.value
    return failure.type, failure.value, failure.getTracebackObject()


class TopLevelFormatter(logging.Filter):
    """Shorten the names of records from the given loggers' children to the
    top level name, ``txftp.core.protocol`` is logged as ``txftp``.

    Filters are not inherited by child loggers, so this one belongs on the
    root handler.
    """

    def __init__(self, loggers: list[str] | None = None):
        super().__init__()
        self.loggers: list[str] = loggers or []

    def filter(self, record: logging.LogRecord) -> bool:
        if any(record.name.startswith(logger + ".") for logger in self.loggers):
            record.name = record.name.split(".", 1)[0]
        return True


def configure_logging(
    settings: BaseSettings | None = None, install_root_handler: bool = True
) -> None:
    """Route warnings and Twisted's log through :mod:`logging`, set the
    txftp and Twisted logger levels and, unless ``install_root_handler`` is
    false, add a root handler built from the ``LOG_*`` settings.
    """
    if not sys.warnoptions:
        logging.captureWarnings(True)

    observer = twisted_log.PythonLoggingObserver("twisted")
    observer.start()

    dictConfig(DEFAULT_LOGGING)

    if install_root_handler:
        install_root_handler_from(settings if settings is not None else Settings())


def install_root_handler_from(settings: BaseSettings) -> None:
    """Replace a root handler installed earlier with one for ``settings``"""
    global _root_handler  # noqa: PLW0603

    uninstall_root_handler()
    logging.root.setLevel(logging.NOTSET)
    _root_handler = _get_handler(settings)
    logging.root.addHandler(_root_handler)


def uninstall_root_handler() -> None:
    global _root_handler  # noqa: PLW0603

    if _root_handler is not None and _root_handler in logging.root.handlers:
        logging.root.removeHandler(_root_handler)
    _root_handler = None


def get_root_handler() -> logging.Handler | None:
    return _root_handler


def _get_handler(settings: BaseSettings) -> logging.Handler:
    handler: logging.Handler
    filename = settings.get("LOG_FILE")
    if filename:
        handler = logging.FileHandler(
            filename,
            mode="a" if settings.getbool("LOG_FILE_APPEND") else "w",
            encoding=settings.get("LOG_ENCODING"),
        )
    elif settings.getbool("LOG_ENABLED"):
        handler = logging.StreamHandler()
    else:
        handler = logging.NullHandler()

    handler.setFormatter(
        logging.Formatter(
            fmt=settings.get("LOG_FORMAT"), datefmt=settings.get("LOG_DATEFORMAT")
        )
    )
    handler.setLevel(settings.get("LOG_LEVEL"))
    if settings.getbool("LOG_SHORT_NAMES"):
        handler.addFilter(TopLevelFormatter(["txftp"]))
    return handler
