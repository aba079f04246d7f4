"""Unit tests for reminder selection"""

import uuid
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from gnpl_ledger.domain.models import (
    AccountStatus,
    GnplAccount,
    GnplSettings,
    PenaltyConfiguration,
)
from gnpl_ledger.domain.reminders import reminder_due
from gnpl_ledger.domain.snapshot import compute_snapshot


DUE = date(2025, 3, 15)
SETTINGS = GnplSettings(enabled=True, reminder_enabled=True, reminder_days_before=2, penalty=PenaltyConfiguration())


def account(status=AccountStatus.APPROVED, **fields) -> GnplAccount:
    return GnplAccount(
        id=uuid.uuid4(),
        customer_id="tg_1001",
        trip_id="trip_1",
        quantity=1,
        principal_amount=Decimal("1000.00"),
        status=status,
        created_at=datetime(2025, 3, 1, tzinfo=timezone.utc),
        due_date=DUE,
        **fields,
    )


def check(acc: GnplAccount, today: date, settings: GnplSettings = SETTINGS):
    now = datetime.combine(today, datetime.min.time(), tzinfo=timezone.utc) + timedelta(hours=8)
    snapshot = compute_snapshot(acc, [], now, settings.penalty)
    return reminder_due(acc, snapshot, today, settings)


def test_no_reminder_far_from_due_date():
    assert check(account(), DUE - timedelta(days=5)) is None


def test_reminder_inside_lead_window():
    assert check(account(), DUE - timedelta(days=2)) == 2
    assert check(account(), DUE) == 0


def test_overdue_account_is_reminded_daily():
    assert check(account(), DUE + timedelta(days=3)) == -3


def test_only_once_per_day():
    today = DUE + timedelta(days=3)
    assert check(account(reminder_last_sent_on=today), today) is None
    assert check(account(reminder_last_sent_on=today - timedelta(days=1)), today) == -3


def test_reminders_switched_off():
    settings = replace(SETTINGS, reminder_enabled=False)
    assert check(account(), DUE + timedelta(days=3), settings) is None


def test_pending_account_not_reminded():
    pending = account(status=AccountStatus.PENDING_APPROVAL)
    assert check(pending, DUE + timedelta(days=3)) is None
