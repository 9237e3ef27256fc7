"""
Shared guards for the lifecycle services
"""

import logging

from ..core.exceptions import InvalidTransitionException, NotFoundException, PersistenceException
from ..models.status import can_transition
from ..store.base import MutationResult, Repository

logger = logging.getLogger(__name__)


def require_transition(record, target, message: str):
    """Refuse a move the transition table does not allow from the current status"""
    if not can_transition(record.status, target):
        logger.warning(
            f"Invalid transition for {type(record).__name__} {record.id}: "
            f"{record.status.value} -> {target.value}"
        )
        raise InvalidTransitionException(message)


def require_status(record, expected, message: str):
    """Refuse an in-place operation unless the record is exactly in ``expected``"""
    if record.status != expected:
        logger.warning(
            f"{type(record).__name__} {record.id} is {record.status.value}, expected {expected.value}"
        )
        raise InvalidTransitionException(message)


def checked_write(result: MutationResult, fallback: str):
    """Return the written record or raise with the store's message"""
    if not result.succeeded:
        raise PersistenceException(result.error_message(fallback))
    return result.data


async def load_or_fail(repository: Repository, record_id, message: str):
    record = await repository.get(record_id) if record_id else None
    if record is None:
        raise NotFoundException(message)
    return record
