"""SQLAlchemy ORM models matching db/schema.sql"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Date, Integer, ForeignKey, Numeric, Text, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class AppSettingsRecord(Base):
    """Singleton settings row (id='default') owned by the admin back office"""

    __tablename__ = "app_settings"

    id = Column(Text, primary_key=True, default="default")
    app_name = Column(Text, nullable=True)
    gnpl_enabled = Column(Boolean, nullable=False, default=False)
    gnpl_require_admin_approval = Column(Boolean, nullable=False, default=True)
    gnpl_default_term_days = Column(Integer, nullable=False, default=14)
    gnpl_penalty_enabled = Column(Boolean, nullable=False, default=True)
    gnpl_penalty_percent = Column(Numeric(5, 2), nullable=False, default=5)
    gnpl_penalty_period_days = Column(Integer, nullable=False, default=7)
    gnpl_reminder_enabled = Column(Boolean, nullable=False, default=True)
    gnpl_reminder_days_before = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class GNPLAccountRecord(Base):
    """GNPL account/application"""

    __tablename__ = "gnpl_accounts"
    __table_args__ = (
        Index("idx_gnpl_accounts_user_status", "customer_id", "status"),
        Index("idx_gnpl_accounts_due_date", "due_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id = Column(Text, nullable=False)
    trip_id = Column(Text, nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    principal_amount = Column(Numeric(12, 2), nullable=False)
    # Denormalized cache of the last computed snapshot; listing/filtering only
    principal_paid = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String(32), nullable=False, default="pending_approval")
    due_date = Column(Date, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approved_by = Column(Text, nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    customer_name = Column(Text, nullable=True)
    customer_phone = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    reminder_last_sent_on = Column(Date, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    payments = relationship("GNPLPaymentRecord", back_populates="account", cascade="all, delete-orphan")


class GNPLPaymentRecord(Base):
    """Customer repayment submission"""

    __tablename__ = "gnpl_payments"
    __table_args__ = (
        Index("idx_gnpl_payments_account_status", "account_id", "status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = Column(UUID(as_uuid=True), ForeignKey("gnpl_accounts.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_reference = Column(Text, nullable=False, index=True)
    payment_method = Column(Text, nullable=False, default="manual")
    payment_date = Column(Date, nullable=False)
    receipt_link = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default="pending")
    submitted_by = Column(Text, nullable=True)
    approved_by = Column(Text, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(Text, nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    account = relationship("GNPLAccountRecord", back_populates="payments")
