"""Dependency injection for FastAPI endpoints"""

from datetime import datetime
from typing import Callable, Optional
from fastapi import BackgroundTasks, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session
from gnpl_ledger.config import settings
from gnpl_ledger.domain.models import LedgerEvent
from gnpl_ledger.infrastructure.clients.telegram import TelegramNotifier
from gnpl_ledger.infrastructure.database.session import get_db
from gnpl_ledger.services.ledger_service import LedgerService
from gnpl_ledger.utils.date_utils import utc_now


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_notifier() -> TelegramNotifier:
    """Provide Telegram notifier instance"""
    return TelegramNotifier()


def get_clock() -> Callable[[], datetime]:
    return utc_now


def get_ledger_service(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: TelegramNotifier = Depends(get_notifier),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> LedgerService:
    """Ledger service bound to this request; notifications go out after the response"""

    def notify(event: LedgerEvent) -> None:
        background_tasks.add_task(notifier.deliver, event)

    return LedgerService(db, notify=notify, clock=clock, request_id=get_request_id(request))


def get_admin_actor(x_admin_id: Optional[str] = Header(default=None)) -> str:
    """Admin identity asserted by the gateway; authorization is upstream"""
    if not x_admin_id or not x_admin_id.strip():
        raise HTTPException(status_code=401, detail="Admin identity required")
    return x_admin_id.strip()


def get_customer_id(x_customer_id: Optional[str] = Header(default=None)) -> str:
    """Customer identity (Telegram user id) asserted by the gateway"""
    if not x_customer_id or not x_customer_id.strip():
        raise HTTPException(status_code=401, detail="Customer identity required")
    return x_customer_id.strip()


def verify_cron_secret(x_cron_secret: Optional[str] = Header(default=None)) -> None:
    """Jobs are open when no secret is configured (local runs)"""
    if settings.cron_secret and x_cron_secret != settings.cron_secret:
        raise HTTPException(status_code=401, detail="Invalid cron secret")
