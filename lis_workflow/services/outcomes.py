"""
Discriminated results returned by every lifecycle operation

Expected failures (not found, invalid transition, conflict, validation,
persistence) travel as values. The ``operation`` decorator is the only
place where core exceptions are converted; unexpected exceptions are left
to the caller's top-level handler.
"""

import functools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from ..core.exceptions import (
    LISException, NotFoundException, InvalidTransitionException,
    ConcurrencyConflictException, ValidationException, PersistenceException,
    DatabaseException,
)

logger = logging.getLogger(__name__)


class ErrorKind(Enum):
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    PERSISTENCE = "persistence"


_EXCEPTION_KINDS = (
    (NotFoundException, ErrorKind.NOT_FOUND),
    (InvalidTransitionException, ErrorKind.INVALID_TRANSITION),
    (ConcurrencyConflictException, ErrorKind.CONFLICT),
    (ValidationException, ErrorKind.VALIDATION),
    (PersistenceException, ErrorKind.PERSISTENCE),
    (DatabaseException, ErrorKind.PERSISTENCE),
)


@dataclass
class OperationResult:
    """``{ok: true, updatedAt?}`` or ``{ok: false, error, conflict?}``"""
    ok: bool
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    updated_at: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    
    @classmethod
    def success(cls, updated_at: Optional[str] = None, **payload: Any) -> "OperationResult":
        return cls(ok=True, updated_at=updated_at, payload=payload)
    
    @classmethod
    def failure(cls, error: str, kind: ErrorKind = ErrorKind.PERSISTENCE) -> "OperationResult":
        return cls(ok=False, error=error, kind=kind)
    
    @property
    def conflict(self) -> bool:
        return self.kind is ErrorKind.CONFLICT
    
    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            body: Dict[str, Any] = {"ok": True}
            if self.updated_at is not None:
                body["updatedAt"] = self.updated_at
            body.update({_camel(key): value for key, value in self.payload.items()})
            return body
        
        body = {"ok": False, "error": self.error}
        if self.conflict:
            body["conflict"] = True
        return body


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def error_kind_for(exc: LISException) -> ErrorKind:
    for exc_type, kind in _EXCEPTION_KINDS:
        if isinstance(exc, exc_type):
            return kind
    return ErrorKind.PERSISTENCE


def operation(fallback_message: str):
    """Run an async lifecycle operation and return its failures as values.
    
    ``fallback_message`` is shown when an exception carries no message of
    its own, so callers never render an empty or internal string.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> OperationResult:
            try:
                return await func(*args, **kwargs)
            except LISException as e:
                kind = error_kind_for(e)
                if kind is ErrorKind.PERSISTENCE:
                    logger.error(f"{func.__name__} failed: {e.message}")
                else:
                    logger.warning(f"{func.__name__} rejected ({kind.value}): {e.message}")
                return OperationResult.failure(e.message or fallback_message, kind)
        return wrapper
    return decorator
