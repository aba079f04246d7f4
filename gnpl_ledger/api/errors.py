"""Translation of domain exceptions into HTTP responses"""

import logging
import uuid
from fastapi import HTTPException
from gnpl_ledger.domain.exceptions import (
    ConcurrencyConflict,
    DomainException,
    InvalidTransition,
    NotFound,
    PersistenceUnavailable,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_CODES = {
    ValidationError: 422,
    InvalidTransition: 409,
    NotFound: 404,
    ConcurrencyConflict: 409,
    PersistenceUnavailable: 503,
}


def to_http_exception(error: DomainException, request_id: str) -> HTTPException:
    status_code = STATUS_CODES.get(type(error), 500)
    if status_code >= 500:
        logger.error(f"Ledger unavailable: {error}", extra={"request_id": request_id})
        return HTTPException(status_code=status_code, detail="Ledger storage unavailable, retry later")

    logger.warning(f"Request refused: {error}", extra={"request_id": request_id, "error": type(error).__name__})
    return HTTPException(status_code=status_code, detail=str(error))


def parse_id(value: str, label: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {label} ID format")
