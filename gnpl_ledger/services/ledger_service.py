"""GNPL ledger orchestration - composes workflows, persistence, settings and notifications"""

import logging
import time
import uuid
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, Iterator, List, Optional, Tuple, TypeVar
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from gnpl_ledger.config import settings as app_config
from gnpl_ledger.domain import applications, payments as payment_workflow
from gnpl_ledger.domain.exceptions import (
    ConcurrencyConflict,
    DomainException,
    NotFound,
    PersistenceUnavailable,
    ValidationError,
)
from gnpl_ledger.domain.models import (
    ACTIVE_STATUSES,
    AccountStatus,
    AccountView,
    EventKind,
    GnplAccount,
    GnplPayment,
    LedgerEvent,
    Snapshot,
)
from gnpl_ledger.domain.reminders import reminder_due
from gnpl_ledger.domain.snapshot import compute_snapshot
from gnpl_ledger.infrastructure.database.repositories import (
    AccountRepository,
    PaymentRepository,
    SettingsRepository,
)
from gnpl_ledger.infrastructure.observability.logging import log_transition
from gnpl_ledger.infrastructure.observability.metrics import (
    conflict_retry_counter,
    persistence_failure_counter,
    record_account_transition,
    record_payment_transition,
)
from gnpl_ledger.utils.date_utils import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

SYSTEM_ACTOR = "system"


def _ignore(event: LedgerEvent) -> None:
    return None


class LedgerService:
    """
    Entry point for every GNPL read and write.

    Reads compose the clock, the account, its payments and the current
    settings, and hand them to `compute_snapshot`. Writes run as a unit of
    work that first claims the account row (conditional update on its
    version), so two approvals racing on the same account cannot both commit
    against the same snapshot: the loser is rolled back and re-run from a
    fresh read.

    Retry policy:
    - ConcurrencyConflict: re-run up to `max_conflict_retries` times
    - OperationalError: exponential backoff up to `max_persistence_retries`,
      then PersistenceUnavailable
    - ValidationError / InvalidTransition / NotFound: never retried
    """

    def __init__(
        self,
        db: Session,
        notify: Callable[[LedgerEvent], None] | None = None,
        clock: Callable[[], datetime] = utc_now,
        max_conflict_retries: int | None = None,
        max_persistence_retries: int | None = None,
        backoff_base: float | None = None,
        request_id: str | None = None,
        page_size: int | None = None,
    ):
        self.db = db
        self.accounts = AccountRepository(db)
        self.payments = PaymentRepository(db)
        self.settings = SettingsRepository(db)
        self.notify = notify or _ignore
        self.clock = clock
        self.request_id = request_id
        self.max_conflict_retries = (
            app_config.conflict_max_retries if max_conflict_retries is None else max_conflict_retries
        )
        self.max_persistence_retries = (
            app_config.persistence_max_retries if max_persistence_retries is None else max_persistence_retries
        )
        self.backoff_base = app_config.persistence_backoff_base if backoff_base is None else backoff_base
        self.page_size = app_config.account_page_size if page_size is None else page_size

    # ------------------------------------------------------------------
    # Unit-of-work plumbing
    # ------------------------------------------------------------------

    def _run(self, operation: str, work: Callable[[], T], commit: bool = True) -> T:
        conflicts = 0
        failures = 0
        while True:
            try:
                result = work()
                if commit:
                    self.db.commit()
                return result

            except ConcurrencyConflict:
                self.db.rollback()
                conflicts += 1
                conflict_retry_counter.labels(operation=operation).inc()
                if conflicts > self.max_conflict_retries:
                    raise
                logger.info(
                    f"Concurrent update on {operation}, retrying",
                    extra={"request_id": self.request_id, "attempt": conflicts},
                )

            except OperationalError as e:
                self.db.rollback()
                failures += 1
                persistence_failure_counter.labels(operation=operation).inc()
                if failures > self.max_persistence_retries:
                    raise PersistenceUnavailable(f"Database unavailable during {operation}") from e
                logger.warning(
                    f"Database error on {operation}, retrying: {e}",
                    extra={"request_id": self.request_id, "attempt": failures},
                )
                time.sleep(self.backoff_base * (2 ** (failures - 1)))

            except DomainException:
                self.db.rollback()
                raise

    def _emit(self, event: LedgerEvent) -> None:
        try:
            self.notify(event)
        except Exception as e:
            logger.warning(
                f"Notification hook failed: {e}",
                extra={"request_id": self.request_id, "event": event.kind.value, "account_id": str(event.account_id)},
            )

    def _load_account(self, account_id: uuid.UUID, customer_id: Optional[str] = None) -> GnplAccount:
        account = self.accounts.get(account_id)
        if account is None or (customer_id is not None and account.customer_id != str(customer_id)):
            raise NotFound("GNPL account not found")
        return account

    def _load_payment(self, payment_id: uuid.UUID) -> GnplPayment:
        payment = self.payments.get(payment_id)
        if payment is None:
            raise NotFound("GNPL payment not found")
        return payment

    def _account_pages(
        self, operation: str, statuses=None
    ) -> Iterator[Tuple[List[GnplAccount], Dict[uuid.UUID, List[GnplPayment]]]]:
        """Every matching account, oldest first, a page (with payment histories) at a time"""
        after = None
        while True:
            def load(after=after):
                page = self.accounts.list_page(statuses, after=after, limit=self.page_size)
                return page, self.payments.list_for_accounts([a.id for a in page])

            page, histories = self._run(operation, load, commit=False)
            if page:
                yield page, histories
            if len(page) < self.page_size:
                return
            after = page[-1]

    def _view(self, account: GnplAccount, history: List[GnplPayment], now: datetime, config) -> AccountView:
        return AccountView(account=account, payments=history, snapshot=compute_snapshot(account, history, now, config))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_account_view(self, account_id: uuid.UUID, customer_id: Optional[str] = None) -> AccountView:
        def work() -> AccountView:
            account = self._load_account(account_id, customer_id)
            history = self.payments.list_for_account(account.id)
            return self._view(account, history, self.clock(), self.settings.get_settings().penalty)

        return self._run("get_account", work, commit=False)

    def get_account_snapshot(self, account_id: uuid.UUID, customer_id: Optional[str] = None) -> Snapshot:
        return self.get_account_view(account_id, customer_id).snapshot

    def list_accounts_for_customer(self, customer_id: str) -> List[AccountView]:
        def work() -> List[AccountView]:
            accounts = self.accounts.list_by_customer(str(customer_id))
            histories = self.payments.list_for_accounts([a.id for a in accounts])
            now, config = self.clock(), self.settings.get_settings().penalty
            return [self._view(a, histories[a.id], now, config) for a in accounts]

        return self._run("list_customer_accounts", work, commit=False)

    def list_accounts(self, status: Optional[AccountStatus] = None) -> List[AccountView]:
        """Admin listing, newest first; the status filter applies to the derived status"""
        config = self._run("list_accounts", lambda: self.settings.get_settings().penalty, commit=False)
        now = self.clock()
        views = []
        for page, histories in self._account_pages("list_accounts"):
            for account in page:
                view = self._view(account, histories[account.id], now, config)
                if status is None or view.snapshot.status == status:
                    views.append(view)
        views.reverse()
        return views

    def list_pending_payments(self) -> List[Tuple[GnplPayment, GnplAccount]]:
        def work() -> List[Tuple[GnplPayment, GnplAccount]]:
            pending = self.payments.list_pending()
            accounts = self.accounts.get_many(p.account_id for p in pending)
            return [(p, accounts[p.account_id]) for p in pending if p.account_id in accounts]

        return self._run("list_pending_payments", work, commit=False)

    # ------------------------------------------------------------------
    # Account lifecycle
    # ------------------------------------------------------------------

    def open_account(
        self,
        customer_id: str,
        trip_id: str,
        quantity: int,
        unit_price: Decimal,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> GnplAccount:
        """
        Register a new GNPL application from the booking flow.

        When admin approval is not required the account is approved on the
        spot by the system actor.
        """
        def work() -> Tuple[GnplAccount, Optional[Snapshot], object]:
            gnpl = self.settings.get_settings()
            if not gnpl.enabled:
                raise ValidationError("GNPL is currently disabled")

            now = self.clock()
            account = applications.open_account(
                customer_id, trip_id, quantity, unit_price, now,
                customer_name=customer_name, customer_phone=customer_phone, notes=notes,
            )
            snapshot = None
            if not gnpl.penalty.require_admin_approval:
                account = applications.approve_application(account, now, gnpl.penalty, actor=SYSTEM_ACTOR)
                snapshot = compute_snapshot(account, [], now, gnpl.penalty)
            return self.accounts.create(account), snapshot, gnpl.penalty

        account, snapshot, config = self._run("open_account", work)

        record_account_transition("opened")
        log_transition("gnpl_account", str(account.id), "opened", request_id=self.request_id,
                       customer_id=account.customer_id, principal_amount=account.principal_amount)
        if snapshot is not None:
            record_account_transition("approved")
            log_transition("gnpl_account", str(account.id), "approved", actor=SYSTEM_ACTOR,
                           request_id=self.request_id, due_date=account.due_date)
            self._emit(LedgerEvent(
                kind=EventKind.APPLICATION_APPROVED,
                customer_id=account.customer_id,
                account_id=account.id,
                snapshot=snapshot,
                penalty=config,
            ))
        return account

    def approve_application(self, account_id: uuid.UUID, actor: str, term_days: Optional[int] = None) -> GnplAccount:
        def work() -> Tuple[GnplAccount, Snapshot, object]:
            account = self._load_account(account_id)
            config = self.settings.get_settings().penalty
            now = self.clock()
            approved = applications.approve_application(account, now, config, actor=actor, term_days=term_days)
            saved = self.accounts.save(approved, expected_version=account.version)
            return saved, compute_snapshot(saved, [], now, config), config

        account, snapshot, config = self._run("approve_application", work)

        record_account_transition("approved")
        log_transition("gnpl_account", str(account.id), "approved", actor=actor, request_id=self.request_id,
                       due_date=account.due_date, total_due=snapshot.total_due)
        self._emit(LedgerEvent(
            kind=EventKind.APPLICATION_APPROVED,
            customer_id=account.customer_id,
            account_id=account.id,
            snapshot=snapshot,
            penalty=config,
        ))
        return account

    def reject_application(self, account_id: uuid.UUID, actor: str, reason: Optional[str] = None) -> GnplAccount:
        def work() -> GnplAccount:
            account = self._load_account(account_id)
            rejected = applications.reject_application(account, reason, self.clock(), actor=actor)
            return self.accounts.save(rejected, expected_version=account.version)

        account = self._run("reject_application", work)

        record_account_transition("rejected")
        log_transition("gnpl_account", str(account.id), "rejected", actor=actor, request_id=self.request_id,
                       reason=account.rejection_reason)
        self._emit(LedgerEvent(
            kind=EventKind.APPLICATION_REJECTED,
            customer_id=account.customer_id,
            account_id=account.id,
            reason=account.rejection_reason,
        ))
        return account

    # ------------------------------------------------------------------
    # Repayments
    # ------------------------------------------------------------------

    def submit_payment(
        self,
        account_id: uuid.UUID,
        amount: Decimal,
        reference: str,
        payment_date: Optional[date] = None,
        customer_id: Optional[str] = None,
        receipt_link: Optional[str] = None,
    ) -> GnplPayment:
        def work() -> Tuple[GnplPayment, GnplAccount]:
            account = self._load_account(account_id, customer_id)
            history = self.payments.list_for_account(account.id)
            now = self.clock()
            snapshot = compute_snapshot(account, history, now, self.settings.get_settings().penalty)
            payment = payment_workflow.submit_payment(
                account, snapshot, history, amount, reference,
                payment_date or now.date(), now,
                submitted_by=customer_id, receipt_link=receipt_link,
            )
            # Claim the account so a submission cannot interleave with another decision
            self.accounts.save(account, expected_version=account.version)
            return self.payments.create(payment), account

        payment, account = self._run("submit_payment", work)

        record_payment_transition("submitted")
        log_transition("gnpl_payment", str(payment.id), "submitted", actor=customer_id, request_id=self.request_id,
                       account_id=account.id, amount=payment.amount, reference=payment.payment_reference)
        self._emit(LedgerEvent(
            kind=EventKind.PAYMENT_SUBMITTED,
            customer_id=account.customer_id,
            account_id=account.id,
            payment=payment,
        ))
        return payment

    def approve_payment(self, payment_id: uuid.UUID, actor: str) -> GnplPayment:
        def work() -> Tuple[GnplPayment, GnplAccount, Snapshot]:
            payment = self._load_payment(payment_id)
            account = self._load_account(payment.account_id)
            history = self.payments.list_for_account(account.id)
            now = self.clock()
            config = self.settings.get_settings().penalty

            before = compute_snapshot(account, history, now, config)
            approved = payment_workflow.approve_payment(payment, before, now, actor=actor)
            after = compute_snapshot(
                account, [approved if p.id == approved.id else p for p in history], now, config
            )

            # Version claim first; nothing else is written if another approval got here before us
            cached = replace(account, status=after.status, principal_paid=after.principal_paid)
            self.accounts.save(cached, expected_version=account.version)
            self.payments.save_decision(approved)
            return approved, account, after

        payment, account, snapshot = self._run("approve_payment", work)

        settled = snapshot.total_due <= 0
        record_payment_transition("approved", settled=settled)
        log_transition("gnpl_payment", str(payment.id), "approved", actor=actor, request_id=self.request_id,
                       account_id=account.id, amount=payment.amount, total_due=snapshot.total_due,
                       account_status=snapshot.status.value)
        self._emit(LedgerEvent(
            kind=EventKind.PAYMENT_APPROVED,
            customer_id=account.customer_id,
            account_id=account.id,
            payment=payment,
            snapshot=snapshot,
        ))
        return payment

    def reject_payment(self, payment_id: uuid.UUID, actor: str, reason: Optional[str] = None) -> GnplPayment:
        def work() -> Tuple[GnplPayment, GnplAccount]:
            payment = self._load_payment(payment_id)
            account = self._load_account(payment.account_id)
            rejected = payment_workflow.reject_payment(payment, reason, self.clock(), actor=actor)
            self.accounts.save(account, expected_version=account.version)
            self.payments.save_decision(rejected)
            return rejected, account

        payment, account = self._run("reject_payment", work)

        record_payment_transition("rejected")
        log_transition("gnpl_payment", str(payment.id), "rejected", actor=actor, request_id=self.request_id,
                       account_id=account.id, reason=payment.rejection_reason)
        self._emit(LedgerEvent(
            kind=EventKind.PAYMENT_REJECTED,
            customer_id=account.customer_id,
            account_id=account.id,
            payment=payment,
            reason=payment.rejection_reason,
        ))
        return payment

    # ------------------------------------------------------------------
    # Sweep support (externally triggered, no in-process scheduler)
    # ------------------------------------------------------------------

    def materialize_statuses(self) -> int:
        """
        Copy derived status and principal paid back onto stored rows for reporting.

        Accounts that change concurrently are skipped; the next sweep picks them up.
        """
        config = self._run("materialize_statuses", lambda: self.settings.get_settings().penalty, commit=False)
        now = self.clock()
        updated = 0
        for page, histories in self._account_pages("materialize_statuses", ACTIVE_STATUSES):
            for account in page:
                snapshot = compute_snapshot(account, histories[account.id], now, config)
                if snapshot.status == account.status and snapshot.principal_paid == account.principal_paid:
                    continue
                cached = replace(account, status=snapshot.status, principal_paid=snapshot.principal_paid)
                try:
                    self.accounts.save(cached, expected_version=account.version)
                    self.db.commit()
                    updated += 1
                except ConcurrencyConflict:
                    self.db.rollback()
                    logger.info("Skipped status cache refresh for busy account", extra={"account_id": str(account.id)})
                except OperationalError as e:
                    self.db.rollback()
                    persistence_failure_counter.labels(operation="materialize_statuses").inc()
                    raise PersistenceUnavailable("Database unavailable during materialize_statuses") from e
        return updated

    def due_reminders(self) -> List[LedgerEvent]:
        """Reminder events for today, or none when GNPL or reminders are switched off"""
        gnpl = self._run("due_reminders", self.settings.get_settings, commit=False)
        if not gnpl.enabled or not gnpl.reminder_enabled:
            return []
        now = self.clock()
        today = now.date()
        events = []
        for page, histories in self._account_pages("due_reminders", [AccountStatus.APPROVED, AccountStatus.OVERDUE]):
            for account in page:
                snapshot = compute_snapshot(account, histories[account.id], now, gnpl.penalty)
                due_in = reminder_due(account, snapshot, today, gnpl)
                if due_in is None:
                    continue
                events.append(LedgerEvent(
                    kind=EventKind.PAYMENT_REMINDER,
                    customer_id=account.customer_id,
                    account_id=account.id,
                    snapshot=snapshot,
                    days_until_due=due_in,
                ))
        return events

    def mark_reminder_sent(self, account_id: uuid.UUID, day: Optional[date] = None) -> None:
        self._run("mark_reminder_sent", lambda: self.accounts.mark_reminded(account_id, day or self.clock().date()))
