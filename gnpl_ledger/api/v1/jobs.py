"""POST /v1/gnpl/jobs/reminders - externally scheduled sweep"""

import logging
from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from gnpl_ledger.api.dependencies import get_ledger_service, get_notifier, get_request_id, verify_cron_secret
from gnpl_ledger.api.errors import to_http_exception
from gnpl_ledger.api.v1.schemas import ReminderRunResponse
from gnpl_ledger.domain.exceptions import DomainException
from gnpl_ledger.infrastructure.clients.telegram import TelegramNotifier
from gnpl_ledger.infrastructure.observability.metrics import reminders_sent_counter
from gnpl_ledger.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/gnpl/jobs/reminders", response_model=ReminderRunResponse, dependencies=[Depends(verify_cron_secret)])
async def run_reminders(
    service: LedgerService = Depends(get_ledger_service),
    notifier: TelegramNotifier = Depends(get_notifier),
    request_id: str = Depends(get_request_id),
):
    """
    Refresh cached statuses and send due repayment reminders.

    Flow:
    1. Copy derived status/principal paid onto stored rows
    2. Select accounts that need a reminder today
    3. Deliver each reminder, marking the account only once Telegram accepted it

    Safe to call repeatedly: an account is reminded at most once per day.
    Ledger calls are blocking (database retries sleep), so they run in the
    threadpool while Telegram delivery is awaited on the loop.
    """
    try:
        updated = await run_in_threadpool(service.materialize_statuses)
        events = await run_in_threadpool(service.due_reminders)
    except DomainException as e:
        raise to_http_exception(e, request_id) from e

    sent = 0
    for event in events:
        if not await notifier.deliver(event):
            continue
        try:
            await run_in_threadpool(service.mark_reminder_sent, event.account_id)
        except DomainException as e:
            logger.error(f"Reminder sent but not recorded: {e}",
                         extra={"request_id": request_id, "account_id": str(event.account_id)})
            continue
        reminders_sent_counter.inc()
        sent += 1

    logger.info(
        "Reminder sweep finished",
        extra={"request_id": request_id, "statuses_updated": updated, "reminders_due": len(events), "reminders_sent": sent},
    )
    return ReminderRunResponse(statuses_updated=updated, reminders_due=len(events), reminders_sent=sent)
