"""
Logging setup.

Modules log through `logging.getLogger(__name__)`; this helper installs
a single stream handler on the root logger at `settings.log_level`.
Calling it twice is harmless.
"""

import logging

from settings import settings

HANDLER_NAME = "wildsparks"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())
    if not any(h.get_name() == HANDLER_NAME for h in root.handlers):
        handler = logging.StreamHandler()
        handler.set_name(HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
