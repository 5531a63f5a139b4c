"""Console logging setup for the hfrelay CLI."""

from __future__ import annotations

import logging

__all__ = ["configure_logging"]

_MANAGED_HANDLER_FLAG = "_hfrelay_managed_handler"
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _remove_managed_handlers(logger: logging.Logger) -> None:
    """Detach any handlers previously installed by :func:`configure_logging`."""

    for handler in list(logger.handlers):
        if getattr(handler, _MANAGED_HANDLER_FLAG, False):
            logger.removeHandler(handler)
            handler.close()


def configure_logging(level: int = logging.WARNING) -> logging.Logger:
    """Route ``hfrelay`` log records to stderr at ``level``.

    Calling it again replaces the previous handler instead of stacking a new one.
    """

    package_logger = logging.getLogger("hfrelay")
    _remove_managed_handlers(package_logger)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    setattr(handler, _MANAGED_HANDLER_FLAG, True)

    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    return package_logger
