"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger
from gnpl_ledger.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_transition(
    entity: str,
    entity_id: str,
    transition: str,
    actor: Optional[str] = None,
    request_id: Optional[str] = None,
    **fields: Any,
) -> None:
    """Log a ledger state transition as one structured audit line"""
    logging.getLogger("gnpl_ledger.audit").info(
        "GNPL transition",
        extra={
            "request_id": request_id,
            "entity": entity,
            "entity_id": entity_id,
            "transition": transition,
            "actor": actor,
            **{key: str(value) if value is not None else None for key, value in fields.items()},
        },
    )
