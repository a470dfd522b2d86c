"""Logging setup for the memindex CLI.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed here by the CLI entry point.
"""

from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_HANDLER_NAME = "memindex-cli"

# Chatty third-party loggers kept at WARNING unless --verbose.
_NOISY = ("litellm", "LiteLLM", "httpx", "httpcore", "openai")


def configure_logging(verbose: bool = False) -> None:
    """Install one stderr handler on the ``memindex`` logger.

    Safe to call repeatedly: a previous handler is replaced by one bound to
    the current ``sys.stderr``.

    Args:
        verbose: DEBUG level when True, otherwise WARNING.
    """
    level = logging.DEBUG if verbose else logging.WARNING

    logger = logging.getLogger("memindex")
    logger.setLevel(level)
    for old in [h for h in logger.handlers if h.get_name() == _HANDLER_NAME]:
        logger.removeHandler(old)
    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%H:%M:%S"))
    handler.setLevel(level)
    logger.addHandler(handler)

    for name in _NOISY:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)
