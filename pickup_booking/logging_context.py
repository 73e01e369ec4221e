"""Per-request logging context for booking operations.

Every booking, lifecycle change and reminder sweep runs inside a
``request_scope``. The scope carries a request id and the acting party
(resident id, dispatcher, or the sweep itself), and a logging filter
copies both onto each record. One resident's booking can then be
followed from the availability check through the slot lock to the
notification, even with many handler threads interleaving their output.

Usage:
    from pickup_booking.logging_context import get_request_logger, request_scope

    logger = get_request_logger(__name__)
    with request_scope(actor="res-42"):
        logger.info("Booking slot")  # → [REQ-1a2b3c4d res-42] Booking slot

Scopes nest: an inner scope without an explicit id keeps the outer id, so
a lifecycle call made while booking logs under the booking's request.
"""

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

NO_CONTEXT = "-"

_request_id: ContextVar[str] = ContextVar("request_id", default=NO_CONTEXT)
_actor: ContextVar[str] = ContextVar("actor", default=NO_CONTEXT)


def get_request_id() -> str:
    return _request_id.get()


def get_actor() -> str:
    return _actor.get()


def new_request_id() -> str:
    """Generate a fresh ``REQ-xxxxxxxx`` id without installing it."""
    return f"REQ-{uuid.uuid4().hex[:8]}"


@contextmanager
def request_scope(
    actor: Optional[str] = None, request_id: Optional[str] = None
) -> Iterator[str]:
    """Install a request id and actor for the block, restoring the previous ones after.

    Yields the request id in effect inside the block.
    """
    if request_id is None:
        current = _request_id.get()
        request_id = current if current != NO_CONTEXT else new_request_id()
    id_token = _request_id.set(request_id)
    actor_token = _actor.set(actor) if actor is not None else None
    try:
        yield request_id
    finally:
        if actor_token is not None:
            _actor.reset(actor_token)
        _request_id.reset(id_token)


class RequestContextFilter(logging.Filter):
    """Copies the current request id and actor onto every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()  # type: ignore[attr-defined]
        record.actor = _actor.get()  # type: ignore[attr-defined]
        return True


def install_on_handlers(logger: logging.Logger) -> None:
    """Attach the filter to every handler of ``logger`` that lacks it.

    Handler-level filters also cover records from third-party loggers
    (APScheduler) that propagate to the root.
    """
    for handler in logger.handlers:
        if not any(isinstance(f, RequestContextFilter) for f in handler.filters):
            handler.addFilter(RequestContextFilter())


def get_request_logger(name: str) -> logging.Logger:
    """Return a module logger whose records always carry request context."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, RequestContextFilter) for f in logger.filters):
        logger.addFilter(RequestContextFilter())
    return logger
