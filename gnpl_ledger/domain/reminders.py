"""Repayment reminder selection"""

from datetime import date
from typing import Optional

from gnpl_ledger.domain.models import PAYABLE_STATUSES, GnplAccount, GnplSettings, Snapshot
from gnpl_ledger.utils.date_utils import days_until


def reminder_due(
    account: GnplAccount,
    snapshot: Snapshot,
    today: date,
    settings: GnplSettings,
) -> Optional[int]:
    """
    Decide whether the customer should be reminded today.

    Returns days until the due date (negative when overdue) if a reminder is
    due, otherwise None. At most one reminder per account per day.
    """
    if not settings.reminder_enabled:
        return None
    if snapshot.status not in PAYABLE_STATUSES or snapshot.total_due <= 0:
        return None
    if snapshot.due_date is None:
        return None
    if account.reminder_last_sent_on == today:
        return None

    due_in = days_until(snapshot.due_date, today)
    if due_in < 0 or due_in <= settings.reminder_days_before:
        return due_in
    return None
