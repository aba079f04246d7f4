"""Domain models - pure Python dataclasses representing business entities"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from gnpl_ledger.domain.exceptions import ValidationError


class AccountStatus(str, Enum):
    """Lifecycle of a GNPL account"""

    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    OVERDUE = "overdue"
    COMPLETED = "completed"


# Statuses in which the account carries a live debt (stored value may lag the derived one)
ACTIVE_STATUSES = frozenset({AccountStatus.APPROVED, AccountStatus.OVERDUE, AccountStatus.COMPLETED})
PAYABLE_STATUSES = frozenset({AccountStatus.APPROVED, AccountStatus.OVERDUE})


class PaymentStatus(str, Enum):
    """Review state of a customer-submitted repayment"""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class PenaltyConfiguration:
    """Late-fee and term rules, owned by the settings collaborator"""

    penalty_enabled: bool = True
    penalty_percent: Decimal = Decimal("5")
    penalty_period_days: int = 7
    default_term_days: int = 14
    require_admin_approval: bool = True

    def __post_init__(self):
        if self.penalty_percent < 0:
            raise ValidationError("penalty_percent must be >= 0")
        if self.penalty_period_days < 1:
            raise ValidationError("penalty_period_days must be >= 1")
        if self.default_term_days < 1:
            raise ValidationError("default_term_days must be >= 1")


@dataclass(frozen=True)
class GnplSettings:
    """Full GNPL settings row as read per request"""

    enabled: bool
    reminder_enabled: bool
    reminder_days_before: int
    penalty: PenaltyConfiguration


@dataclass
class GnplAccount:
    """Deferred-payment agreement tied to one trip purchase"""

    id: uuid.UUID
    customer_id: str
    trip_id: str
    quantity: int
    principal_amount: Decimal
    status: AccountStatus
    created_at: datetime
    principal_paid: Decimal = Decimal("0.00")  # cached from the last snapshot, never authoritative
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    due_date: Optional[date] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    reminder_last_sent_on: Optional[date] = None
    version: int = 1


@dataclass
class GnplPayment:
    """Repayment evidence submitted by the customer"""

    id: uuid.UUID
    account_id: uuid.UUID
    amount: Decimal
    payment_reference: str
    payment_date: date
    status: PaymentStatus
    created_at: datetime
    payment_method: str = "manual"
    receipt_link: Optional[str] = None
    submitted_by: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time, fully derived view of an account's balances"""

    account_id: uuid.UUID
    status: AccountStatus
    due_date: Optional[date]
    overdue_days: int
    principal_amount: Decimal
    principal_paid: Decimal
    principal_outstanding: Decimal
    penalty_accrued: Decimal
    penalty_paid: Decimal
    penalty_outstanding: Decimal
    total_due: Decimal
    amount_unapplied: Decimal

    @property
    def can_accept_payment(self) -> bool:
        return self.status in PAYABLE_STATUSES and self.total_due > 0


@dataclass
class AccountView:
    """Account with its payment history and current snapshot"""

    account: GnplAccount
    payments: List[GnplPayment]
    snapshot: Snapshot


class EventKind(str, Enum):
    APPLICATION_APPROVED = "application_approved"
    APPLICATION_REJECTED = "application_rejected"
    PAYMENT_SUBMITTED = "payment_submitted"
    PAYMENT_APPROVED = "payment_approved"
    PAYMENT_REJECTED = "payment_rejected"
    PAYMENT_REMINDER = "payment_reminder"


@dataclass
class LedgerEvent:
    """Transition notice handed to the notification collaborator"""

    kind: EventKind
    customer_id: str
    account_id: uuid.UUID
    snapshot: Optional[Snapshot] = None
    payment: Optional[GnplPayment] = None
    penalty: Optional[PenaltyConfiguration] = None
    reason: Optional[str] = None
    days_until_due: Optional[int] = None
