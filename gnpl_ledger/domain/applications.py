"""Account lifecycle - opening, approval and rejection of GNPL applications"""

import uuid
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, FrozenSet, Optional

from gnpl_ledger.domain.exceptions import InvalidTransition, ValidationError
from gnpl_ledger.domain.models import AccountStatus, GnplAccount, PenaltyConfiguration
from gnpl_ledger.utils.date_utils import add_days
from gnpl_ledger.utils.money import to_money

DEFAULT_REJECTION_REASON = "GNPL request rejected"

# Explicit transitions only; overdue/completed are derived on read and cached by the ledger
ACCOUNT_TRANSITIONS: Dict[AccountStatus, FrozenSet[AccountStatus]] = {
    AccountStatus.PENDING_APPROVAL: frozenset({AccountStatus.APPROVED, AccountStatus.REJECTED}),
    AccountStatus.APPROVED: frozenset(),
    AccountStatus.OVERDUE: frozenset(),
    AccountStatus.COMPLETED: frozenset(),
    AccountStatus.REJECTED: frozenset(),
}


def ensure_transition(current: AccountStatus, target: AccountStatus) -> None:
    if target not in ACCOUNT_TRANSITIONS[current]:
        raise InvalidTransition(f"Cannot move GNPL account from {current.value} to {target.value}")


def open_account(
    customer_id: str,
    trip_id: str,
    quantity: int,
    unit_price: Decimal,
    now: datetime,
    customer_name: Optional[str] = None,
    customer_phone: Optional[str] = None,
    notes: Optional[str] = None,
) -> GnplAccount:
    """Create a new application in pending_approval; principal is fixed here"""
    if not str(customer_id or "").strip():
        raise ValidationError("customer_id is required")
    if not str(trip_id or "").strip():
        raise ValidationError("trip_id is required")
    if quantity < 1:
        raise ValidationError("quantity must be at least 1")
    if unit_price <= 0:
        raise ValidationError("unit_price must be greater than zero")

    return GnplAccount(
        id=uuid.uuid4(),
        customer_id=str(customer_id).strip(),
        trip_id=str(trip_id).strip(),
        quantity=quantity,
        principal_amount=to_money(Decimal(unit_price) * quantity),
        status=AccountStatus.PENDING_APPROVAL,
        created_at=now,
        customer_name=customer_name,
        customer_phone=customer_phone,
        notes=notes,
    )


def approve_application(
    account: GnplAccount,
    now: datetime,
    config: PenaltyConfiguration,
    actor: Optional[str] = None,
    term_days: Optional[int] = None,
) -> GnplAccount:
    """
    Approve a pending application and fix its due date.

    `term_days` overrides the configured default term for this account only.
    """
    ensure_transition(account.status, AccountStatus.APPROVED)

    term = config.default_term_days if term_days is None else term_days
    if term < 1:
        raise ValidationError("term_days must be at least 1")

    return replace(
        account,
        status=AccountStatus.APPROVED,
        approved_at=now,
        approved_by=actor,
        due_date=add_days(now, term),
        rejection_reason=None,
    )


def reject_application(
    account: GnplAccount,
    reason: Optional[str],
    now: datetime,
    actor: Optional[str] = None,
) -> GnplAccount:
    """Reject a pending application. Rejection is terminal."""
    ensure_transition(account.status, AccountStatus.REJECTED)

    return replace(
        account,
        status=AccountStatus.REJECTED,
        rejected_at=now,
        rejected_by=actor,
        rejection_reason=(reason or "").strip() or DEFAULT_REJECTION_REASON,
    )
