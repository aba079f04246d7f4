"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from gnpl_ledger.domain.models import AccountView, GnplAccount, GnplPayment, Snapshot


class OpenAccountRequest(BaseModel):
    """Request body for POST /v1/gnpl/accounts (booking flow)"""

    customer_id: str = Field(..., min_length=1, description="Telegram user id of the buyer")
    trip_id: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1, description="Number of tickets")
    unit_price: Decimal = Field(..., gt=0, description="Ticket price in ETB")
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None


class SubmitPaymentRequest(BaseModel):
    """Request body for POST /v1/gnpl/accounts/{id}/payments"""

    amount: Decimal = Field(..., gt=0)
    payment_reference: str = Field(..., min_length=1, description="Bank transfer reference")
    payment_date: Optional[date] = Field(None, description="Defaults to today (UTC)")
    receipt_link: Optional[str] = None


class ApproveApplicationRequest(BaseModel):
    term_days: Optional[int] = Field(None, ge=1, description="Overrides the configured default term")


class RejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class SnapshotSchema(BaseModel):
    """Derived balances at read time"""

    status: str
    due_date: Optional[date] = None
    overdue_days: int
    principal_amount: Decimal
    principal_paid: Decimal
    principal_outstanding: Decimal
    penalty_accrued: Decimal
    penalty_paid: Decimal
    penalty_outstanding: Decimal
    total_due: Decimal
    amount_unapplied: Decimal

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> "SnapshotSchema":
        return cls(
            status=snapshot.status.value,
            due_date=snapshot.due_date,
            overdue_days=snapshot.overdue_days,
            principal_amount=snapshot.principal_amount,
            principal_paid=snapshot.principal_paid,
            principal_outstanding=snapshot.principal_outstanding,
            penalty_accrued=snapshot.penalty_accrued,
            penalty_paid=snapshot.penalty_paid,
            penalty_outstanding=snapshot.penalty_outstanding,
            total_due=snapshot.total_due,
            amount_unapplied=snapshot.amount_unapplied,
        )


class PaymentSchema(BaseModel):
    payment_id: str
    account_id: str
    amount: Decimal
    payment_reference: str
    payment_date: date
    status: str
    receipt_link: Optional[str] = None
    created_at: datetime
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    @classmethod
    def from_payment(cls, payment: GnplPayment) -> "PaymentSchema":
        return cls(
            payment_id=str(payment.id),
            account_id=str(payment.account_id),
            amount=payment.amount,
            payment_reference=payment.payment_reference,
            payment_date=payment.payment_date,
            status=payment.status.value,
            receipt_link=payment.receipt_link,
            created_at=payment.created_at,
            approved_by=payment.approved_by,
            approved_at=payment.approved_at,
            rejected_by=payment.rejected_by,
            rejected_at=payment.rejected_at,
            rejection_reason=payment.rejection_reason,
        )


class AccountSummary(BaseModel):
    """Account as stored; `status` here is the cached value, see snapshot for the live one"""

    account_id: str
    customer_id: str
    trip_id: str
    quantity: int
    principal_amount: Decimal
    status: str
    due_date: Optional[date] = None
    created_at: datetime
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    customer_name: Optional[str] = None

    @classmethod
    def from_account(cls, account: GnplAccount) -> "AccountSummary":
        return cls(
            account_id=str(account.id),
            customer_id=account.customer_id,
            trip_id=account.trip_id,
            quantity=account.quantity,
            principal_amount=account.principal_amount,
            status=account.status.value,
            due_date=account.due_date,
            created_at=account.created_at,
            approved_by=account.approved_by,
            approved_at=account.approved_at,
            rejection_reason=account.rejection_reason,
            customer_name=account.customer_name,
        )


class AccountResponse(BaseModel):
    """Response for GET /v1/gnpl/accounts/{id}"""

    account: AccountSummary
    snapshot: SnapshotSchema
    payments: List[PaymentSchema]

    @classmethod
    def from_view(cls, view: AccountView) -> "AccountResponse":
        return cls(
            account=AccountSummary.from_account(view.account),
            snapshot=SnapshotSchema.from_snapshot(view.snapshot),
            payments=[PaymentSchema.from_payment(p) for p in view.payments],
        )


class AccountListResponse(BaseModel):
    accounts: List[AccountResponse]


class PendingPaymentItem(BaseModel):
    """Pending payment with just enough account context to review it"""

    payment: PaymentSchema
    customer_id: str
    customer_name: Optional[str] = None
    trip_id: str


class PendingPaymentsResponse(BaseModel):
    payments: List[PendingPaymentItem]


class ReminderRunResponse(BaseModel):
    """Response for POST /v1/gnpl/jobs/reminders"""

    statuses_updated: int
    reminders_due: int
    reminders_sent: int
