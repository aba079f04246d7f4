"""Customer and booking endpoints under /v1/gnpl/accounts"""

from fastapi import APIRouter, Depends

from gnpl_ledger.api.dependencies import get_customer_id, get_ledger_service, get_request_id
from gnpl_ledger.api.errors import parse_id, to_http_exception
from gnpl_ledger.api.v1.schemas import (
    AccountListResponse,
    AccountResponse,
    AccountSummary,
    OpenAccountRequest,
    PaymentSchema,
    SubmitPaymentRequest,
)
from gnpl_ledger.domain.exceptions import DomainException
from gnpl_ledger.services.ledger_service import LedgerService

router = APIRouter()


@router.post("/gnpl/accounts", response_model=AccountSummary, status_code=201)
def open_account(
    request_body: OpenAccountRequest,
    service: LedgerService = Depends(get_ledger_service),
    request_id: str = Depends(get_request_id),
):
    """
    Open a GNPL application for a trip purchase.

    Called by the booking flow once the customer picks "Get now, pay later".
    The account starts in pending_approval unless admin approval is switched
    off, in which case it is approved immediately with the default term.
    """
    try:
        account = service.open_account(
            customer_id=request_body.customer_id,
            trip_id=request_body.trip_id,
            quantity=request_body.quantity,
            unit_price=request_body.unit_price,
            customer_name=request_body.customer_name,
            customer_phone=request_body.customer_phone,
            notes=request_body.notes,
        )
    except DomainException as e:
        raise to_http_exception(e, request_id) from e

    return AccountSummary.from_account(account)


@router.get("/gnpl/accounts", response_model=AccountListResponse)
def list_my_accounts(
    customer_id: str = Depends(get_customer_id),
    service: LedgerService = Depends(get_ledger_service),
    request_id: str = Depends(get_request_id),
):
    """Customer's GNPL accounts, most recent first, each with a live snapshot"""
    try:
        views = service.list_accounts_for_customer(customer_id)
    except DomainException as e:
        raise to_http_exception(e, request_id) from e

    return AccountListResponse(accounts=[AccountResponse.from_view(v) for v in views])


@router.get("/gnpl/accounts/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: str,
    customer_id: str = Depends(get_customer_id),
    service: LedgerService = Depends(get_ledger_service),
    request_id: str = Depends(get_request_id),
):
    account_uuid = parse_id(account_id, "account")
    try:
        view = service.get_account_view(account_uuid, customer_id=customer_id)
    except DomainException as e:
        raise to_http_exception(e, request_id) from e

    return AccountResponse.from_view(view)


@router.post("/gnpl/accounts/{account_id}/payments", response_model=PaymentSchema, status_code=201)
def submit_payment(
    account_id: str,
    request_body: SubmitPaymentRequest,
    customer_id: str = Depends(get_customer_id),
    service: LedgerService = Depends(get_ledger_service),
    request_id: str = Depends(get_request_id),
):
    """
    Submit repayment evidence for admin review.

    The payment is pending until an admin approves it; balances only move on
    approval.
    """
    account_uuid = parse_id(account_id, "account")
    try:
        payment = service.submit_payment(
            account_uuid,
            amount=request_body.amount,
            reference=request_body.payment_reference,
            payment_date=request_body.payment_date,
            customer_id=customer_id,
            receipt_link=request_body.receipt_link,
        )
    except DomainException as e:
        raise to_http_exception(e, request_id) from e

    return PaymentSchema.from_payment(payment)
