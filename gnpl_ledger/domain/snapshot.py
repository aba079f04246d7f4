"""Snapshot engine - derives balances and status of a GNPL account on read"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, List

from gnpl_ledger.domain.models import (
    AccountStatus,
    GnplAccount,
    GnplPayment,
    PaymentStatus,
    PenaltyConfiguration,
    Snapshot,
)
from gnpl_ledger.domain.penalty import accrue_penalty, elapsed_periods
from gnpl_ledger.utils.date_utils import ensure_utc, overdue_days as days_overdue, start_of_day
from gnpl_ledger.utils.money import ZERO, to_money


class _Allocation:
    """Running balances while replaying the approved payment history"""

    def __init__(self, principal_amount: Decimal):
        self.principal_outstanding = principal_amount
        self.penalty_accrued = ZERO
        self.penalty_paid = ZERO
        self.unapplied = ZERO

    def charge(self, periods: int, config: PenaltyConfiguration) -> None:
        if periods <= 0:
            return
        self.penalty_accrued += accrue_penalty(
            self.principal_outstanding, periods * config.penalty_period_days, config
        )

    def apply(self, amount: Decimal) -> None:
        # Late fees are collected before principal
        to_penalty = min(amount, self.penalty_accrued - self.penalty_paid)
        remaining = amount - to_penalty
        to_principal = min(remaining, self.principal_outstanding)

        self.penalty_paid += to_penalty
        self.principal_outstanding -= to_principal
        self.unapplied += remaining - to_principal


def credited_at(payment: GnplPayment) -> datetime:
    """When the ledger took the payment in; the customer-supplied payment_date is informational"""
    if payment.approved_at is not None:
        return ensure_utc(payment.approved_at)
    return start_of_day(payment.payment_date)


def approved_history(payments: Iterable[GnplPayment]) -> List[GnplPayment]:
    """Approved payments in the order they were credited"""
    return sorted(
        (p for p in payments if p.status == PaymentStatus.APPROVED),
        key=lambda p: (credited_at(p), ensure_utc(p.created_at), str(p.id)),
    )


def compute_snapshot(
    account: GnplAccount,
    payments: Iterable[GnplPayment],
    now: datetime,
    config: PenaltyConfiguration,
) -> Snapshot:
    """
    Compute the current financial position of an account.

    Nothing here is read from stored balance columns: principal paid, penalty
    accrued and penalty paid are rebuilt from the approved payment history
    every call, so the result is a pure function of the arguments.

    Allocation replays the history in time order. Every penalty period that
    has elapsed since the due date charges `accrue_penalty` on the principal
    outstanding when that period ended; every approved payment pays off
    outstanding penalty first and principal second, at the moment it was
    approved. A payment credited on a period boundary day lands after that
    boundary's charge.

    Example:
        1000.00 due 10 days ago, 5% every 7 days, one 200.00 payment today
        day 7 boundary charges 50.00 -> payment covers 50.00 penalty, 150.00 principal
        principal_outstanding = 850.00, total_due = 850.00
    """
    principal_amount = to_money(account.principal_amount)

    if account.status in (AccountStatus.PENDING_APPROVAL, AccountStatus.REJECTED):
        return Snapshot(
            account_id=account.id,
            status=account.status,
            due_date=None,
            overdue_days=0,
            principal_amount=principal_amount,
            principal_paid=ZERO,
            principal_outstanding=principal_amount,
            penalty_accrued=ZERO,
            penalty_paid=ZERO,
            penalty_outstanding=ZERO,
            total_due=principal_amount,
            amount_unapplied=ZERO,
        )

    overdue_days = days_overdue(account.due_date, now)
    total_periods = elapsed_periods(overdue_days, config)

    ledger = _Allocation(principal_amount)
    periods_charged = 0
    for payment in approved_history(payments):
        if account.due_date is not None:
            offset = days_overdue(account.due_date, credited_at(payment))
            reached = min(total_periods, elapsed_periods(offset, config))
            if reached > periods_charged:
                ledger.charge(reached - periods_charged, config)
                periods_charged = reached
        ledger.apply(to_money(payment.amount))
    ledger.charge(total_periods - periods_charged, config)

    principal_outstanding = max(ZERO, ledger.principal_outstanding)
    penalty_outstanding = max(ZERO, ledger.penalty_accrued - ledger.penalty_paid)
    total_due = principal_outstanding + penalty_outstanding

    if total_due == 0:
        status = AccountStatus.COMPLETED
    elif overdue_days > 0:
        status = AccountStatus.OVERDUE
    else:
        status = AccountStatus.APPROVED

    return Snapshot(
        account_id=account.id,
        status=status,
        due_date=account.due_date,
        overdue_days=overdue_days,
        principal_amount=principal_amount,
        principal_paid=principal_amount - principal_outstanding,
        principal_outstanding=principal_outstanding,
        penalty_accrued=ledger.penalty_accrued,
        penalty_paid=ledger.penalty_paid,
        penalty_outstanding=penalty_outstanding,
        total_due=total_due,
        amount_unapplied=ledger.unapplied,
    )
