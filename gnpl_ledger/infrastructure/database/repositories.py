"""Data access layer for GNPL entities"""

import uuid
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session
from sqlalchemy.sql import func
from gnpl_ledger.config import settings as app_config
from gnpl_ledger.domain.exceptions import ConcurrencyConflict
from gnpl_ledger.domain.models import (
    AccountStatus,
    GnplAccount,
    GnplPayment,
    GnplSettings,
    PaymentStatus,
    PenaltyConfiguration,
)
from gnpl_ledger.infrastructure.database.models import AppSettingsRecord, GNPLAccountRecord, GNPLPaymentRecord
from gnpl_ledger.utils.date_utils import ensure_utc


def _utc(value):
    return ensure_utc(value) if value is not None else None


def _to_account(row: GNPLAccountRecord) -> GnplAccount:
    return GnplAccount(
        id=row.id,
        customer_id=row.customer_id,
        trip_id=row.trip_id,
        quantity=row.quantity,
        principal_amount=Decimal(row.principal_amount),
        principal_paid=Decimal(row.principal_paid),
        status=AccountStatus(row.status),
        created_at=_utc(row.created_at),
        approved_at=_utc(row.approved_at),
        approved_by=row.approved_by,
        due_date=row.due_date,
        rejected_at=_utc(row.rejected_at),
        rejected_by=row.rejected_by,
        rejection_reason=row.rejection_reason,
        customer_name=row.customer_name,
        customer_phone=row.customer_phone,
        notes=row.notes,
        reminder_last_sent_on=row.reminder_last_sent_on,
        version=row.version,
    )


def _to_payment(row: GNPLPaymentRecord) -> GnplPayment:
    return GnplPayment(
        id=row.id,
        account_id=row.account_id,
        amount=Decimal(row.amount),
        payment_reference=row.payment_reference,
        payment_date=row.payment_date,
        status=PaymentStatus(row.status),
        created_at=_utc(row.created_at),
        payment_method=row.payment_method,
        receipt_link=row.receipt_link,
        submitted_by=row.submitted_by,
        approved_by=row.approved_by,
        approved_at=_utc(row.approved_at),
        rejected_by=row.rejected_by,
        rejected_at=_utc(row.rejected_at),
        rejection_reason=row.rejection_reason,
    )


def _account_values(account: GnplAccount) -> dict:
    """Mutable columns; principal_amount, quantity and ownership are fixed at creation"""
    return {
        "status": account.status.value,
        "principal_paid": account.principal_paid,
        "due_date": account.due_date,
        "approved_at": account.approved_at,
        "approved_by": account.approved_by,
        "rejected_at": account.rejected_at,
        "rejected_by": account.rejected_by,
        "rejection_reason": account.rejection_reason,
        "notes": account.notes,
    }


class AccountRepository:
    """Repository for GNPL accounts"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, account: GnplAccount) -> GnplAccount:
        """Persist a new account"""
        row = GNPLAccountRecord(
            id=account.id,
            customer_id=account.customer_id,
            trip_id=account.trip_id,
            quantity=account.quantity,
            principal_amount=account.principal_amount,
            created_at=account.created_at,
            version=account.version,
            customer_name=account.customer_name,
            customer_phone=account.customer_phone,
            **_account_values(account),
        )
        self.db.add(row)
        self.db.flush()
        return _to_account(row)

    def get(self, account_id: uuid.UUID) -> Optional[GnplAccount]:
        row = self.db.execute(
            select(GNPLAccountRecord)
            .where(GNPLAccountRecord.id == account_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return _to_account(row) if row else None

    def get_many(self, account_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, GnplAccount]:
        ids = list(set(account_ids))
        if not ids:
            return {}
        rows = self.db.execute(
            select(GNPLAccountRecord)
            .where(GNPLAccountRecord.id.in_(ids))
            .execution_options(populate_existing=True)
        ).scalars()
        return {row.id: _to_account(row) for row in rows}

    def list_by_customer(self, customer_id: str, limit: int = 50) -> List[GnplAccount]:
        """Most recent accounts first"""
        rows = self.db.execute(
            select(GNPLAccountRecord)
            .where(GNPLAccountRecord.customer_id == customer_id)
            .order_by(GNPLAccountRecord.created_at.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        ).scalars()
        return [_to_account(row) for row in rows]

    def list_page(
        self,
        statuses: Optional[Iterable[AccountStatus]] = None,
        after: Optional[GnplAccount] = None,
        limit: int = 500,
    ) -> List[GnplAccount]:
        """
        One page of accounts, oldest first, keyset-paginated on (created_at, id).

        Pass the last account of the previous page as `after` to continue; a
        page shorter than `limit` is the last one. The status filter is on the
        stored (cached) status, so callers re-derive before deciding anything.
        """
        query = (
            select(GNPLAccountRecord)
            .order_by(GNPLAccountRecord.created_at.asc(), GNPLAccountRecord.id.asc())
            .limit(limit)
        )
        if statuses is not None:
            query = query.where(GNPLAccountRecord.status.in_([s.value for s in statuses]))
        if after is not None:
            query = query.where(
                or_(
                    GNPLAccountRecord.created_at > after.created_at,
                    and_(GNPLAccountRecord.created_at == after.created_at, GNPLAccountRecord.id > after.id),
                )
            )
        rows = self.db.execute(query.execution_options(populate_existing=True)).scalars()
        return [_to_account(row) for row in rows]

    def save(self, account: GnplAccount, expected_version: int) -> GnplAccount:
        """
        Conditional update keyed on the version column.

        Raises:
            ConcurrencyConflict: if another writer bumped the version since it was read
        """
        result = self.db.execute(
            update(GNPLAccountRecord)
            .where(GNPLAccountRecord.id == account.id, GNPLAccountRecord.version == expected_version)
            .values(**_account_values(account), version=expected_version + 1, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrencyConflict(f"GNPL account {account.id} changed since version {expected_version}")
        return replace(account, version=expected_version + 1)

    def mark_reminded(self, account_id: uuid.UUID, day: date) -> None:
        self.db.execute(
            update(GNPLAccountRecord)
            .where(GNPLAccountRecord.id == account_id)
            .values(reminder_last_sent_on=day)
            .execution_options(synchronize_session=False)
        )


class PaymentRepository:
    """Repository for GNPL payments"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, payment: GnplPayment) -> GnplPayment:
        row = GNPLPaymentRecord(
            id=payment.id,
            account_id=payment.account_id,
            amount=payment.amount,
            payment_reference=payment.payment_reference,
            payment_method=payment.payment_method,
            payment_date=payment.payment_date,
            receipt_link=payment.receipt_link,
            status=payment.status.value,
            submitted_by=payment.submitted_by,
            created_at=payment.created_at,
        )
        self.db.add(row)
        self.db.flush()
        return _to_payment(row)

    def get(self, payment_id: uuid.UUID) -> Optional[GnplPayment]:
        row = self.db.execute(
            select(GNPLPaymentRecord)
            .where(GNPLPaymentRecord.id == payment_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return _to_payment(row) if row else None

    def list_for_account(self, account_id: uuid.UUID) -> List[GnplPayment]:
        """Full history, oldest first"""
        rows = self.db.execute(
            select(GNPLPaymentRecord)
            .where(GNPLPaymentRecord.account_id == account_id)
            .order_by(GNPLPaymentRecord.created_at.asc())
            .execution_options(populate_existing=True)
        ).scalars()
        return [_to_payment(row) for row in rows]

    def list_for_accounts(self, account_ids: List[uuid.UUID]) -> Dict[uuid.UUID, List[GnplPayment]]:
        grouped: Dict[uuid.UUID, List[GnplPayment]] = {account_id: [] for account_id in account_ids}
        if not account_ids:
            return grouped
        rows = self.db.execute(
            select(GNPLPaymentRecord)
            .where(GNPLPaymentRecord.account_id.in_(account_ids))
            .order_by(GNPLPaymentRecord.created_at.asc())
            .execution_options(populate_existing=True)
        ).scalars()
        for row in rows:
            grouped[row.account_id].append(_to_payment(row))
        return grouped

    def list_pending(self, limit: int = 500) -> List[GnplPayment]:
        rows = self.db.execute(
            select(GNPLPaymentRecord)
            .where(GNPLPaymentRecord.status == PaymentStatus.PENDING.value)
            .order_by(GNPLPaymentRecord.created_at.desc())
            .limit(limit)
        ).scalars()
        return [_to_payment(row) for row in rows]

    def save_decision(self, payment: GnplPayment) -> GnplPayment:
        """
        Record an approve/reject decision, only if the payment is still pending.

        Raises:
            ConcurrencyConflict: if the payment was decided by someone else meanwhile
        """
        result = self.db.execute(
            update(GNPLPaymentRecord)
            .where(
                GNPLPaymentRecord.id == payment.id,
                GNPLPaymentRecord.status == PaymentStatus.PENDING.value,
            )
            .values(
                status=payment.status.value,
                approved_by=payment.approved_by,
                approved_at=payment.approved_at,
                rejected_by=payment.rejected_by,
                rejected_at=payment.rejected_at,
                rejection_reason=payment.rejection_reason,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrencyConflict(f"GNPL payment {payment.id} is no longer pending")
        return payment


class SettingsRepository:
    """Read-only access to the GNPL settings row"""

    def __init__(self, db: Session):
        self.db = db

    def get_settings(self) -> GnplSettings:
        """Fetched on every call; configuration may change between requests"""
        row = self.db.execute(
            select(AppSettingsRecord)
            .where(AppSettingsRecord.id == "default")
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if row is None:
            return GnplSettings(
                enabled=app_config.gnpl_enabled,
                reminder_enabled=app_config.gnpl_reminder_enabled,
                reminder_days_before=app_config.gnpl_reminder_days_before,
                penalty=PenaltyConfiguration(
                    penalty_enabled=app_config.gnpl_penalty_enabled,
                    penalty_percent=Decimal(app_config.gnpl_penalty_percent),
                    penalty_period_days=app_config.gnpl_penalty_period_days,
                    default_term_days=app_config.gnpl_default_term_days,
                    require_admin_approval=app_config.gnpl_require_admin_approval,
                ),
            )

        return GnplSettings(
            enabled=row.gnpl_enabled,
            reminder_enabled=row.gnpl_reminder_enabled,
            reminder_days_before=row.gnpl_reminder_days_before,
            penalty=PenaltyConfiguration(
                penalty_enabled=row.gnpl_penalty_enabled,
                penalty_percent=Decimal(row.gnpl_penalty_percent),
                penalty_period_days=row.gnpl_penalty_period_days,
                default_term_days=row.gnpl_default_term_days,
                require_admin_approval=row.gnpl_require_admin_approval,
            ),
        )
