"""Logger factory shared by every localegen module.

Provides:
 - one console handler attached to the ``localegen`` logger tree
 - child loggers per module (localegen.routes, localegen.renderer, ...)
 - a level switch for the CLI ``--verbose`` flag
"""

import logging
import sys

ROOT_LOGGER = "localegen"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name=None):
    """Return a child of the ``localegen`` logger, attaching the console handler once."""
    root = logging.getLogger(ROOT_LOGGER)

    # Avoid double-attaching handlers
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        root.addHandler(handler)
        root.setLevel(logging.INFO)

    if not name:
        return root
    return root.getChild(name)


def configure_logging(verbose=False):
    """Set the level of the whole logger tree."""
    root = get_logger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    return root
