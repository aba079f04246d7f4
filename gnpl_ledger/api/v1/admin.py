"""Admin review endpoints under /v1/admin/gnpl"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException

from gnpl_ledger.api.dependencies import get_admin_actor, get_ledger_service, get_request_id
from gnpl_ledger.api.errors import parse_id, to_http_exception
from gnpl_ledger.api.v1.schemas import (
    AccountListResponse,
    AccountResponse,
    AccountSummary,
    ApproveApplicationRequest,
    PaymentSchema,
    PendingPaymentItem,
    PendingPaymentsResponse,
    RejectRequest,
)
from gnpl_ledger.domain.exceptions import DomainException
from gnpl_ledger.domain.models import AccountStatus
from gnpl_ledger.services.ledger_service import LedgerService

router = APIRouter()


@router.get("/admin/gnpl/accounts", response_model=AccountListResponse)
def list_accounts(
    status: Optional[str] = None,
    actor: str = Depends(get_admin_actor),
    service: LedgerService = Depends(get_ledger_service),
    request_id: str = Depends(get_request_id),
):
    """All accounts, optionally filtered by live (derived) status"""
    try:
        status_filter = AccountStatus(status) if status else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status}")

    try:
        views = service.list_accounts(status_filter)
    except DomainException as e:
        raise to_http_exception(e, request_id) from e

    return AccountListResponse(accounts=[AccountResponse.from_view(v) for v in views])


@router.get("/admin/gnpl/accounts/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: str,
    actor: str = Depends(get_admin_actor),
    service: LedgerService = Depends(get_ledger_service),
    request_id: str = Depends(get_request_id),
):
    account_uuid = parse_id(account_id, "account")
    try:
        view = service.get_account_view(account_uuid)
    except DomainException as e:
        raise to_http_exception(e, request_id) from e

    return AccountResponse.from_view(view)


@router.post("/admin/gnpl/accounts/{account_id}/approve", response_model=AccountSummary)
def approve_application(
    account_id: str,
    request_body: Optional[ApproveApplicationRequest] = None,
    actor: str = Depends(get_admin_actor),
    service: LedgerService = Depends(get_ledger_service),
    request_id: str = Depends(get_request_id),
):
    account_uuid = parse_id(account_id, "account")
    term_days = request_body.term_days if request_body else None
    try:
        account = service.approve_application(account_uuid, actor=actor, term_days=term_days)
    except DomainException as e:
        raise to_http_exception(e, request_id) from e

    return AccountSummary.from_account(account)


@router.post("/admin/gnpl/accounts/{account_id}/reject", response_model=AccountSummary)
def reject_application(
    account_id: str,
    request_body: Optional[RejectRequest] = None,
    actor: str = Depends(get_admin_actor),
    service: LedgerService = Depends(get_ledger_service),
    request_id: str = Depends(get_request_id),
):
    account_uuid = parse_id(account_id, "account")
    reason = request_body.reason if request_body else None
    try:
        account = service.reject_application(account_uuid, actor=actor, reason=reason)
    except DomainException as e:
        raise to_http_exception(e, request_id) from e

    return AccountSummary.from_account(account)


@router.get("/admin/gnpl/payments/pending", response_model=PendingPaymentsResponse)
def list_pending_payments(
    actor: str = Depends(get_admin_actor),
    service: LedgerService = Depends(get_ledger_service),
    request_id: str = Depends(get_request_id),
):
    try:
        rows = service.list_pending_payments()
    except DomainException as e:
        raise to_http_exception(e, request_id) from e

    return PendingPaymentsResponse(
        payments=[
            PendingPaymentItem(
                payment=PaymentSchema.from_payment(payment),
                customer_id=account.customer_id,
                customer_name=account.customer_name,
                trip_id=account.trip_id,
            )
            for payment, account in rows
        ]
    )


@router.post("/admin/gnpl/payments/{payment_id}/approve", response_model=PaymentSchema)
def approve_payment(
    payment_id: str,
    actor: str = Depends(get_admin_actor),
    service: LedgerService = Depends(get_ledger_service),
    request_id: str = Depends(get_request_id),
):
    """
    Approve a pending payment.

    Penalty is paid before principal; anything beyond the balance is kept as
    unapplied on the account snapshot.
    """
    payment_uuid = parse_id(payment_id, "payment")
    try:
        payment = service.approve_payment(payment_uuid, actor=actor)
    except DomainException as e:
        raise to_http_exception(e, request_id) from e

    return PaymentSchema.from_payment(payment)


@router.post("/admin/gnpl/payments/{payment_id}/reject", response_model=PaymentSchema)
def reject_payment(
    payment_id: str,
    request_body: Optional[RejectRequest] = None,
    actor: str = Depends(get_admin_actor),
    service: LedgerService = Depends(get_ledger_service),
    request_id: str = Depends(get_request_id),
):
    payment_uuid = parse_id(payment_id, "payment")
    reason = request_body.reason if request_body else None
    try:
        payment = service.reject_payment(payment_uuid, actor=actor, reason=reason)
    except DomainException as e:
        raise to_http_exception(e, request_id) from e

    return PaymentSchema.from_payment(payment)
