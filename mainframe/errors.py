"""
mainframe.errors — Service Error Taxonomy
==========================================

Every service raises one of these instead of a bare ``ValueError`` so the
routing layer can map failures to a response without string matching.
Each error carries the operation name and, when known, the affected user.

========================  ==============================================
Class                     Meaning
========================  ==============================================
``ValidationError``       Missing/invalid input, rejected before any I/O
``NotFoundError``         Unknown user, card or report subject
``ConflictError``         Request is valid but would change nothing
``TransientStoreError``   Connection / pool failure after one retry
``InvariantViolation``    A uniqueness invariant was about to break
========================  ==============================================
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, OperationalError

logger = logging.getLogger(__name__)


class MainframeError(Exception):
    """Base class for all service errors."""

    code = "ERROR"

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        user_id: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.user_id = user_id

    def __str__(self) -> str:
        ctx = []
        if self.operation:
            ctx.append(f"op={self.operation}")
        if self.user_id is not None:
            ctx.append(f"user={self.user_id}")
        return f"{self.message} ({', '.join(ctx)})" if ctx else self.message


class ValidationError(MainframeError):
    code = "VALIDATION"

    def __init__(self, message: str, *, fields: dict[str, str] | None = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.fields = fields or {}


class NotFoundError(MainframeError):
    code = "NOT_FOUND"


class ConflictError(MainframeError):
    code = "CONFLICT"


class AlreadyActiveError(ConflictError):
    """The requested card is already the user's active card."""

    code = "ALREADY_ACTIVE"


class TransientStoreError(MainframeError):
    code = "TRANSIENT_STORE"

    def __init__(self, message: str, *, reconnectable: bool = False, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.reconnectable = reconnectable


class InvariantViolation(MainframeError):
    code = "INVARIANT"


@contextmanager
def store_errors(operation: str, user_id: int | None = None) -> Iterator[None]:
    """Translate SQLAlchemy failures raised inside the block.

    ``OperationalError`` becomes :class:`TransientStoreError` and a stray
    ``IntegrityError`` becomes :class:`InvariantViolation`.  Service errors
    pass through untouched.
    """
    try:
        yield
    except IntegrityError as exc:
        logger.error("Invariant violated in %s for user %s: %s", operation, user_id, exc.orig)
        raise InvariantViolation(
            "Uniqueness invariant violated", operation=operation, user_id=user_id,
        ) from exc
    except OperationalError as exc:
        raise TransientStoreError(
            "Database unavailable",
            reconnectable=bool(exc.connection_invalidated),
            operation=operation,
            user_id=user_id,
        ) from exc
