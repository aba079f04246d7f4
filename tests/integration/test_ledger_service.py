"""Integration tests for LedgerService against the SQLite test database"""

import uuid
import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from gnpl_ledger.domain.exceptions import (
    ConcurrencyConflict,
    InvalidTransition,
    NotFound,
    PersistenceUnavailable,
    ValidationError,
)
from gnpl_ledger.domain.models import AccountStatus, EventKind, PaymentStatus
from gnpl_ledger.infrastructure.database.repositories import AccountRepository, PaymentRepository
from gnpl_ledger.services.ledger_service import LedgerService


def test_open_account_requires_gnpl_enabled(service: LedgerService, configure):
    configure(enabled=False)
    with pytest.raises(ValidationError):
        service.open_account("tg_1001", "trip_1", 1, Decimal("500.00"))


def test_open_account_pending_by_default(service: LedgerService, events):
    account = service.open_account("tg_1001", "trip_1", 2, Decimal("500.00"))

    assert account.status == AccountStatus.PENDING_APPROVAL
    assert account.principal_amount == Decimal("1000.00")
    assert events == []


def test_open_account_auto_approves_without_admin_step(service: LedgerService, configure, events):
    configure(require_admin_approval=False)
    account = service.open_account("tg_1001", "trip_1", 1, Decimal("500.00"))

    assert account.status == AccountStatus.APPROVED
    assert account.approved_by == "system"
    assert account.due_date == date(2025, 3, 15)
    assert [e.kind for e in events] == [EventKind.APPLICATION_APPROVED]


def test_approve_application_emits_event(service: LedgerService, make_account, events):
    account = make_account(term_days=30)

    assert account.status == AccountStatus.APPROVED
    assert account.due_date == date(2025, 3, 31)
    event = events[-1]
    assert event.kind == EventKind.APPLICATION_APPROVED
    assert event.customer_id == "tg_1001"
    assert event.snapshot.total_due == Decimal("1000.00")


def test_reject_application(service: LedgerService, make_account, events):
    account = make_account(approve=False)
    rejected = service.reject_application(account.id, actor="admin_1", reason="Duplicate booking")

    assert rejected.status == AccountStatus.REJECTED
    assert events[-1].kind == EventKind.APPLICATION_REJECTED
    assert events[-1].reason == "Duplicate booking"

    with pytest.raises(InvalidTransition):
        service.approve_application(account.id, actor="admin_1")


def test_unknown_account(service: LedgerService):
    with pytest.raises(NotFound):
        service.get_account_snapshot(uuid.uuid4())


def test_other_customers_account_is_not_found(service: LedgerService, make_account):
    account = make_account()
    with pytest.raises(NotFound):
        service.get_account_snapshot(account.id, customer_id="tg_9999")
    with pytest.raises(NotFound):
        service.submit_payment(account.id, Decimal("10"), "FT1", customer_id="tg_9999")


def test_submit_to_pending_account_is_invalid(service: LedgerService, make_account):
    account = make_account(approve=False)
    with pytest.raises(InvalidTransition):
        service.submit_payment(account.id, Decimal("100.00"), "FT1001", customer_id="tg_1001")


def test_repayment_lifecycle_with_penalty(service: LedgerService, make_account, clock, events):
    """Overdue by 10 days, 200 repaid: 50 penalty first, 150 principal"""
    account = make_account()
    clock.advance(days=24)  # 2025-03-25 09:00, 10 days past due

    snapshot = service.get_account_snapshot(account.id)
    assert snapshot.status == AccountStatus.OVERDUE
    assert snapshot.total_due == Decimal("1050.00")

    payment = service.submit_payment(account.id, Decimal("200.00"), "FT25084XYZ", customer_id="tg_1001")
    assert payment.payment_date == date(2025, 3, 25)
    assert service.get_account_snapshot(account.id).total_due == Decimal("1050.00")

    service.approve_payment(payment.id, actor="admin_1")
    snapshot = service.get_account_snapshot(account.id)

    assert snapshot.penalty_paid == Decimal("50.00")
    assert snapshot.principal_outstanding == Decimal("850.00")
    assert snapshot.total_due == Decimal("850.00")
    assert events[-1].kind == EventKind.PAYMENT_APPROVED
    assert events[-1].snapshot.total_due == Decimal("850.00")

    # cached columns follow the derived values
    stored = AccountRepository(service.db).get(account.id)
    assert stored.status == AccountStatus.OVERDUE
    assert stored.principal_paid == Decimal("150.00")


def test_settlement_completes_account(service: LedgerService, make_account):
    account = make_account(unit_price="500.00")
    first = service.submit_payment(account.id, Decimal("300.00"), "FT1", customer_id="tg_1001")
    second = service.submit_payment(account.id, Decimal("200.00"), "FT2", customer_id="tg_1001")
    service.approve_payment(first.id, actor="admin_1")
    service.approve_payment(second.id, actor="admin_1")

    snapshot = service.get_account_snapshot(account.id)
    assert snapshot.status == AccountStatus.COMPLETED
    assert snapshot.total_due == Decimal("0.00")

    with pytest.raises(InvalidTransition):
        service.submit_payment(account.id, Decimal("1.00"), "FT3", customer_id="tg_1001")


def test_reject_payment_has_no_ledger_effect(service: LedgerService, make_account, events):
    account = make_account()
    payment = service.submit_payment(account.id, Decimal("400.00"), "FT1", customer_id="tg_1001")

    rejected = service.reject_payment(payment.id, actor="admin_1", reason="Receipt unreadable")

    assert rejected.status == PaymentStatus.REJECTED
    assert service.get_account_snapshot(account.id).total_due == Decimal("1000.00")
    assert events[-1].kind == EventKind.PAYMENT_REJECTED

    with pytest.raises(InvalidTransition):
        service.approve_payment(payment.id, actor="admin_1")


def test_concurrent_approvals_cannot_double_count(db: Session, service: LedgerService, make_account, clock, monkeypatch):
    """
    Two full-amount payments approved at the same time: the second writer
    sees its version claim fail, re-reads, finds nothing due and refuses.
    """
    account = make_account()
    p1 = service.submit_payment(account.id, Decimal("1000.00"), "FT1", customer_id="tg_1001")
    p2 = service.submit_payment(account.id, Decimal("1000.00"), "FT2", customer_id="tg_1001")

    other_db = Session(bind=db.get_bind())
    original_save = AccountRepository.save
    raced = []

    def racing_save(self, acc, expected_version):
        if not raced:
            raced.append(True)
            LedgerService(other_db, clock=clock).approve_payment(p2.id, actor="admin_2")
        return original_save(self, acc, expected_version)

    monkeypatch.setattr(AccountRepository, "save", racing_save)
    try:
        with pytest.raises(InvalidTransition):
            service.approve_payment(p1.id, actor="admin_1")
    finally:
        other_db.close()

    snapshot = service.get_account_snapshot(account.id)
    assert snapshot.total_due == Decimal("0.00")
    assert snapshot.principal_paid == Decimal("1000.00")
    assert snapshot.amount_unapplied == Decimal("0.00")

    payments = {p.id: p.status for p in PaymentRepository(db).list_for_account(account.id)}
    assert payments == {p1.id: PaymentStatus.PENDING, p2.id: PaymentStatus.APPROVED}


def test_conflicts_give_up_after_retry_budget(db: Session, clock, configure, make_account, monkeypatch):
    account = make_account()
    service = LedgerService(db, clock=clock, max_conflict_retries=2)
    payment = service.submit_payment(account.id, Decimal("100.00"), "FT1", customer_id="tg_1001")
    attempts = []

    def always_stale(self, acc, expected_version):
        attempts.append(expected_version)
        raise ConcurrencyConflict("stale")

    monkeypatch.setattr(AccountRepository, "save", always_stale)
    with pytest.raises(ConcurrencyConflict):
        service.approve_payment(payment.id, actor="admin_1")

    assert len(attempts) == 3
    assert PaymentRepository(db).get(payment.id).status == PaymentStatus.PENDING


def test_transient_database_errors_are_retried(db: Session, clock, configure, make_account, monkeypatch):
    account = make_account()
    service = LedgerService(db, clock=clock, max_persistence_retries=3, backoff_base=0)
    original = PaymentRepository.list_for_account
    failures = []

    def flaky(self, account_id):
        if len(failures) < 2:
            failures.append(True)
            raise OperationalError("SELECT", {}, Exception("database is locked"))
        return original(self, account_id)

    monkeypatch.setattr(PaymentRepository, "list_for_account", flaky)
    snapshot = service.get_account_snapshot(account.id)

    assert len(failures) == 2
    assert snapshot.total_due == Decimal("1000.00")


def test_persistent_database_errors_surface(db: Session, clock, configure, make_account, monkeypatch):
    account = make_account()
    service = LedgerService(db, clock=clock, max_persistence_retries=1, backoff_base=0)

    def broken(self, account_id):
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    monkeypatch.setattr(PaymentRepository, "list_for_account", broken)
    with pytest.raises(PersistenceUnavailable):
        service.get_account_snapshot(account.id)


def test_notification_failure_does_not_undo_the_write(db: Session, clock, configure, make_account):
    account = make_account(approve=False)

    def exploding_notify(event):
        raise RuntimeError("telegram down")

    service = LedgerService(db, notify=exploding_notify, clock=clock)
    approved = service.approve_application(account.id, actor="admin_1")

    assert approved.status == AccountStatus.APPROVED
    assert AccountRepository(db).get(account.id).status == AccountStatus.APPROVED


def test_list_accounts_filters_by_derived_status(service: LedgerService, make_account, clock):
    late = make_account(term_days=3)
    on_time = make_account(term_days=30)
    pending = make_account(approve=False)
    clock.advance(days=5)

    overdue_ids = [v.account.id for v in service.list_accounts(AccountStatus.OVERDUE)]
    approved_ids = [v.account.id for v in service.list_accounts(AccountStatus.APPROVED)]

    assert overdue_ids == [late.id]
    assert approved_ids == [on_time.id]
    assert {v.account.id for v in service.list_accounts()} == {late.id, on_time.id, pending.id}


def test_customer_listing_includes_snapshots(service: LedgerService, make_account):
    make_account(customer_id="tg_1001")
    make_account(customer_id="tg_2002")

    views = service.list_accounts_for_customer("tg_1001")
    assert len(views) == 1
    assert views[0].snapshot.total_due == Decimal("1000.00")


def test_pending_payments_listing(service: LedgerService, make_account):
    account = make_account()
    payment = service.submit_payment(account.id, Decimal("100.00"), "FT1", customer_id="tg_1001")

    rows = service.list_pending_payments()
    assert [(p.id, a.id) for p, a in rows] == [(payment.id, account.id)]


def test_materialize_statuses(service: LedgerService, make_account, clock):
    account = make_account()
    clock.advance(days=20)

    assert service.materialize_statuses() == 1
    assert AccountRepository(service.db).get(account.id).status == AccountStatus.OVERDUE
    assert service.materialize_statuses() == 0


def test_due_reminders_once_per_day(service: LedgerService, make_account, clock):
    account = make_account()
    make_account(approve=False)
    clock.advance(days=16)  # 2025-03-17, two days late

    reminders = service.due_reminders()
    assert [(e.account_id, e.days_until_due) for e in reminders] == [(account.id, -2)]
    assert reminders[0].kind == EventKind.PAYMENT_REMINDER

    service.mark_reminder_sent(account.id)
    assert service.due_reminders() == []

    clock.advance(days=1)
    assert len(service.due_reminders()) == 1


def test_no_reminders_when_disabled(service: LedgerService, make_account, clock, configure):
    make_account()
    clock.advance(days=16)
    configure(reminder_enabled=False)

    assert service.due_reminders() == []


def test_rejected_account_refuses_payments(service: LedgerService, make_account):
    account = make_account(approve=False)
    service.reject_application(account.id, actor="admin_1", reason="Trip cancelled")

    with pytest.raises(InvalidTransition):
        service.submit_payment(account.id, Decimal("100.00"), "FT1001", customer_id="tg_1001")


def test_backdated_payment_still_pays_penalty_first(service: LedgerService, make_account, clock):
    """30 days late (4 periods, 200 penalty); the payment is dated on the approval day"""
    account = make_account()
    clock.advance(days=44)  # 2025-04-14 09:00

    payment = service.submit_payment(
        account.id, Decimal("1000.00"), "FT1", payment_date=date(2025, 3, 1), customer_id="tg_1001"
    )
    service.approve_payment(payment.id, actor="admin_1")
    snapshot = service.get_account_snapshot(account.id)

    assert snapshot.penalty_accrued == Decimal("200.00")
    assert snapshot.penalty_paid == Decimal("200.00")
    assert snapshot.principal_outstanding == Decimal("200.00")
    assert snapshot.total_due == Decimal("200.00")
    assert snapshot.status == AccountStatus.OVERDUE


@pytest.mark.parametrize("payment_date", [date(2025, 2, 28), date(2099, 1, 1)])
def test_payment_date_outside_account_lifetime_refused(service: LedgerService, make_account, clock, payment_date):
    account = make_account()
    clock.advance(days=44)

    with pytest.raises(ValidationError):
        service.submit_payment(account.id, Decimal("100.00"), "FT1", payment_date=payment_date, customer_id="tg_1001")


def test_sweeps_cover_every_page(db: Session, clock, configure, make_account):
    """Five overdue accounts read two at a time: none is left out"""
    accounts = [make_account(customer_id=f"tg_{n}") for n in range(5)]
    clock.advance(days=16)
    service = LedgerService(db, clock=clock, page_size=2)

    assert {e.account_id for e in service.due_reminders()} == {a.id for a in accounts}
    assert service.materialize_statuses() == 5
    assert {v.account.id for v in service.list_accounts(AccountStatus.OVERDUE)} == {a.id for a in accounts}


def test_pending_payments_load_accounts_in_one_query(service: LedgerService, make_account, monkeypatch):
    first = make_account(customer_id="tg_1001")
    second = make_account(customer_id="tg_2002")
    p1 = service.submit_payment(first.id, Decimal("100.00"), "FT1", customer_id="tg_1001")
    p2 = service.submit_payment(second.id, Decimal("100.00"), "FT2", customer_id="tg_2002")

    original = AccountRepository.get_many
    calls = []

    def counting_get_many(self, account_ids):
        ids = list(account_ids)
        calls.append(ids)
        return original(self, ids)

    monkeypatch.setattr(AccountRepository, "get_many", counting_get_many)
    rows = service.list_pending_payments()

    assert len(calls) == 1
    assert {(p.id, a.id) for p, a in rows} == {(p1.id, first.id), (p2.id, second.id)}
