"""Telegram Bot API client for customer notifications, with exponential backoff retry"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, List
import httpx
from gnpl_ledger.config import settings
from gnpl_ledger.domain.exceptions import NotificationError
from gnpl_ledger.domain.models import EventKind, LedgerEvent
from gnpl_ledger.infrastructure.observability.metrics import (
    notification_failure_counter,
    notification_latency_histogram,
)

logger = logging.getLogger(__name__)


def _money(amount: Decimal | None) -> str:
    return f"{settings.currency} {Decimal(amount or 0):.2f}"


def format_message(event: LedgerEvent) -> str:
    """Render the customer-facing text for a ledger event"""
    snapshot = event.snapshot
    lines: List[str | None]

    if event.kind == EventKind.APPLICATION_APPROVED:
        lines = [
            "GNPL request approved.",
            "Trip booking is confirmed.",
            f"Due date: {snapshot.due_date.isoformat()}" if snapshot and snapshot.due_date else None,
            f"Total due: {_money(snapshot.total_due)}" if snapshot else None,
        ]
        penalty = event.penalty
        if penalty and penalty.penalty_enabled and penalty.penalty_percent > 0:
            lines.append(
                f"Penalty: {penalty.penalty_percent:.2f}% every {penalty.penalty_period_days} day(s) after due date"
            )
        else:
            lines.append("Penalty: disabled")
    elif event.kind == EventKind.APPLICATION_REJECTED:
        lines = ["GNPL request rejected.", f"Reason: {event.reason}"]
    elif event.kind == EventKind.PAYMENT_SUBMITTED:
        lines = [
            "GNPL payment submitted. Waiting for admin approval.",
            f"Amount: {_money(event.payment.amount)}" if event.payment else None,
        ]
    elif event.kind == EventKind.PAYMENT_APPROVED:
        lines = [
            "GNPL payment approved.",
            f"Paid: {_money(event.payment.amount)}" if event.payment else None,
            f"Remaining due: {_money(snapshot.total_due)}" if snapshot else None,
            "Your GNPL balance is fully cleared." if snapshot and snapshot.total_due <= 0 else None,
        ]
    elif event.kind == EventKind.PAYMENT_REJECTED:
        lines = ["GNPL payment was rejected.", f"Reason: {event.reason}"]
    else:
        due_in = event.days_until_due or 0
        lines = [
            f"{settings.app_name} GNPL payment reminder",
            "",
            f"Due date: {snapshot.due_date.isoformat()}" if snapshot and snapshot.due_date else None,
            f"Outstanding total: {_money(snapshot.total_due)}" if snapshot else None,
            f"Principal due: {_money(snapshot.principal_outstanding)}" if snapshot else None,
            f"Penalty due: {_money(snapshot.penalty_outstanding)}" if snapshot else None,
            f"Overdue by {abs(due_in)} day(s)." if due_in < 0 else f"{due_in} day(s) left.",
            "Open Mini App and submit your GNPL repayment.",
        ]

    return "\n".join(line for line in lines if line is not None)


class TelegramNotifier:
    """Notification collaborator backed by the Telegram Bot API"""

    def __init__(
        self,
        base_url: str | None = None,
        bot_token: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
    ):
        self.base_url = base_url or settings.telegram_api_base
        self.bot_token = settings.telegram_bot_token if bot_token is None else bot_token
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = max_retries or settings.notify_max_retries
        self.backoff_base = settings.notify_backoff_base if backoff_base is None else backoff_base

    async def send_message(self, chat_id: str, text: str) -> Dict[str, Any]:
        """
        Send a plain-text message to a Telegram chat.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s ... (base * 2^(attempt-1))
        - Retries on 5xx errors and network failures; 4xx fails immediately

        Raises:
            NotificationError: when the bot is not configured or delivery fails
        """
        if not self.bot_token:
            raise NotificationError("Telegram bot token not configured")

        url = f"{self.base_url}/bot{self.bot_token}/sendMessage"
        payload = {"chat_id": chat_id, "text": text, "disable_web_page_preview": True}

        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while True:
                try:
                    with notification_latency_histogram.time():
                        response = await client.post(url, json=payload)
                        response.raise_for_status()
                    return response.json()

                except httpx.HTTPStatusError as e:
                    attempt += 1
                    notification_failure_counter.inc()
                    if e.response.status_code < 500 or attempt >= self.max_retries:
                        raise NotificationError(f"Telegram API error: {e.response.status_code}") from e

                except httpx.RequestError as e:
                    attempt += 1
                    notification_failure_counter.inc()
                    if attempt >= self.max_retries:
                        raise NotificationError(f"Telegram API unreachable: {e}") from e

                await asyncio.sleep(self.backoff_base * (2 ** (attempt - 1)))

    async def deliver(self, event: LedgerEvent) -> bool:
        """
        Deliver a ledger event to its customer.

        Never raises: notification failure must not affect the ledger. Returns
        True when Telegram accepted the message.
        """
        try:
            await self.send_message(event.customer_id, format_message(event))
            return True
        except NotificationError as e:
            logger.warning(
                f"Notification not delivered: {e}",
                extra={"event": event.kind.value, "account_id": str(event.account_id)},
            )
            return False
