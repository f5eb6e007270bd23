"""Process-wide logging configuration.

Modules log through ``logging.getLogger(__name__)``; applications call
``configure_logging()`` once at startup.

Log format:
    2026-10-17 12:00:00,000 INFO src.pm_pricing.domain.ledger BUY user=u1 market=m1 ...
"""

import logging

from config.settings import settings

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=_FORMAT,
    )
    if not settings.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
