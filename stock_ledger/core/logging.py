"""
Logging setup for the stock ledger service.

Every record carries two context fields:

    cid   correlation id of the HTTP request (set by the API middleware)
    doc   source document being posted, e.g. PR-000012 (set by the posting service)

Both fall back to "-" outside a request or a posting.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Optional, Union

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
source_document_var: ContextVar[Optional[str]] = ContextVar("source_document", default=None)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | cid=%(correlation_id)s | doc=%(source_document)s | %(message)s"

# Library loggers that are chatty at INFO.
QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "alembic.runtime.migration")


class LedgerContextFilter(logging.Filter):
    """Copy the request and document context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or "-"
        record.source_document = source_document_var.get() or "-"
        return True


# PUBLIC_INTERFACE
def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """
    Install a single stdout handler on the root logger.

    Safe to call more than once: existing root handlers are replaced, not stacked.
    """
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT))
    handler.addFilter(LedgerContextFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
