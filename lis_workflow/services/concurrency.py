"""
Optimistic concurrency guard

Compares the version token a caller captured (typically at form load) with
the token of the freshly read record. A missing expected token bypasses the
check unless settings.workflow_require_version_token is on.
"""

import logging
from typing import Optional

from ..core.config import settings
from ..core.exceptions import ConcurrencyConflictException, ValidationException

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "Otro usuario modificó este examen"


def has_conflict(current_token: Optional[str], expected_token: Optional[str]) -> bool:
    if expected_token is None or current_token is None:
        return False
    return expected_token != current_token


def ensure_current_version(
    record,
    expected_token: Optional[str],
    require_token: Optional[bool] = None,
    message: str = CONFLICT_MESSAGE,
):
    """Raise ConcurrencyConflictException when the record moved on"""
    if require_token is None:
        require_token = settings.workflow_require_version_token
    
    if expected_token is None and require_token:
        raise ValidationException("Falta la versión esperada del registro; recargue e intente de nuevo")
    
    current_token = record.version_token
    if has_conflict(current_token, expected_token):
        logger.warning(
            f"Version conflict on {type(record).__name__} {record.id}: "
            f"expected {expected_token}, found {current_token}"
        )
        raise ConcurrencyConflictException(message)
