"""
Custom exceptions for the LIS workflow core

Every exception raised inside a lifecycle operation derives from
LISException. The operation boundary in services/outcomes.py turns these
into failure results; anything else propagates to the caller.
"""


class LISException(Exception):
    """Base exception for all LIS-related errors"""
    
    def __init__(self, message: str, error_code: str = None):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class DatabaseException(LISException):
    """Database schema and connection exceptions"""
    pass


class PersistenceException(LISException):
    """The data store reported errors or returned no record on a write"""
    pass


class NotFoundException(LISException):
    """Referenced entity id does not resolve"""
    pass


class InvalidTransitionException(LISException):
    """Current status does not permit the requested operation"""
    pass


class ConcurrencyConflictException(LISException):
    """Version token mismatch between caller and stored record"""
    pass


class ValidationException(LISException):
    """Caller-supplied payload failed shape or schema checks"""
    pass
