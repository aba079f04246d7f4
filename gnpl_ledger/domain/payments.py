"""Repayment review - submission, approval and rejection of GNPL payments"""

import re
import uuid
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from gnpl_ledger.domain.exceptions import InvalidTransition, ValidationError
from gnpl_ledger.domain.models import (
    PAYABLE_STATUSES,
    GnplAccount,
    GnplPayment,
    PaymentStatus,
    Snapshot,
)
from gnpl_ledger.utils.money import to_money

DEFAULT_REJECTION_REASON = "Payment evidence rejected"

_REFERENCE_TOKEN = re.compile(r"[A-Za-z0-9_-]{3,120}")


def normalize_reference(raw: Optional[str]) -> str:
    """First usable token of a bank/transfer reference, or empty string"""
    match = _REFERENCE_TOKEN.search(str(raw or "").strip())
    return match.group(0) if match else ""


def _positive_amount(amount) -> Decimal:
    try:
        value = to_money(amount)
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValidationError(f"Invalid payment amount: {amount!r}") from e
    if not value.is_finite() or value <= 0:
        raise ValidationError("Payment amount must be greater than zero")
    return value


def submit_payment(
    account: GnplAccount,
    snapshot: Snapshot,
    existing: Iterable[GnplPayment],
    amount,
    reference: Optional[str],
    payment_date: date,
    now: datetime,
    submitted_by: Optional[str] = None,
    receipt_link: Optional[str] = None,
) -> GnplPayment:
    """
    Build a pending repayment for an account.

    Requirements:
    - amount > 0 and a usable reference
    - reference not already used by a pending/approved payment on the account
    - derived status approved/overdue with something still due
    - payment_date between the approval day and today (UTC)
    """
    value = _positive_amount(amount)
    token = normalize_reference(reference)
    if not token:
        raise ValidationError("paymentReference is required")
    if payment_date > now.date():
        raise ValidationError("paymentDate cannot be in the future")
    if account.approved_at is not None and payment_date < account.approved_at.date():
        raise ValidationError("paymentDate cannot be before the GNPL approval date")

    if snapshot.status not in PAYABLE_STATUSES:
        raise InvalidTransition("Payments are allowed only for approved GNPL accounts")
    if snapshot.total_due <= 0:
        raise InvalidTransition("This GNPL account is already fully paid")

    for payment in existing:
        if payment.status != PaymentStatus.REJECTED and payment.payment_reference == token:
            raise ValidationError(f"Payment reference {token} was already submitted")

    return GnplPayment(
        id=uuid.uuid4(),
        account_id=account.id,
        amount=value,
        payment_reference=token,
        payment_date=payment_date,
        status=PaymentStatus.PENDING,
        created_at=now,
        receipt_link=receipt_link or None,
        submitted_by=submitted_by,
    )


def _ensure_pending(payment: GnplPayment, action: str) -> None:
    if payment.status != PaymentStatus.PENDING:
        raise InvalidTransition(f"Only pending payments can be {action} (payment is {payment.status.value})")


def approve_payment(
    payment: GnplPayment,
    snapshot: Snapshot,
    now: datetime,
    actor: Optional[str] = None,
) -> GnplPayment:
    """Approve a pending payment; its allocation is derived by the next snapshot"""
    _ensure_pending(payment, "approved")
    if snapshot.status not in PAYABLE_STATUSES or snapshot.total_due <= 0:
        raise InvalidTransition("Nothing due on this GNPL account")

    return replace(payment, status=PaymentStatus.APPROVED, approved_at=now, approved_by=actor)


def reject_payment(
    payment: GnplPayment,
    reason: Optional[str],
    now: datetime,
    actor: Optional[str] = None,
) -> GnplPayment:
    """Reject a pending payment; no ledger effect"""
    _ensure_pending(payment, "rejected")

    return replace(
        payment,
        status=PaymentStatus.REJECTED,
        rejected_at=now,
        rejected_by=actor,
        rejection_reason=(reason or "").strip() or DEFAULT_REJECTION_REASON,
    )
