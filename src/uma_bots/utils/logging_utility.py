"""
Logging setup shared by the entry point and the tests.

Components log through injected ``logging.Logger`` instances and tag their
records with an ``at`` field naming the component, e.g.
``logger.warning(msg, extra={"at": "Disputer#WalletBalanceAlarm"})``.
"""

import logging

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(at)s] %(message)s'


class AtFieldFilter(logging.Filter):
    """Give records without an ``at`` field the logger name instead."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "at"):
            record.at = record.name
        return True


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format=LOG_FORMAT)

    # Filters on handlers run for records propagated from every logger
    for handler in logging.getLogger().handlers:
        handler.addFilter(AtFieldFilter())
