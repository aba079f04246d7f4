"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Input is malformed or out of range (non-positive amount, missing reference)"""

    pass


class InvalidTransition(DomainException):
    """Operation is not permitted from the entity's current state"""

    pass


class NotFound(DomainException):
    """Account or payment does not exist, or belongs to another customer"""

    pass


class ConcurrencyConflict(DomainException):
    """Row changed between read and conditional write"""

    pass


class PersistenceUnavailable(DomainException):
    """Database is unreachable after retries"""

    pass


class NotificationError(DomainException):
    """Telegram Bot API returned an error or is unavailable"""

    pass
