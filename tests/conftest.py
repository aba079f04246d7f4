"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Generator, List
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session
from gnpl_ledger.api.dependencies import get_clock, get_notifier
from gnpl_ledger.api.main import create_app
from gnpl_ledger.domain.models import GnplAccount, LedgerEvent
from gnpl_ledger.infrastructure.database.models import AppSettingsRecord, Base
from gnpl_ledger.infrastructure.database.session import build_engine, get_db
from gnpl_ledger.services.ledger_service import LedgerService


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = build_engine(TEST_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# 2025-03-01 09:00 UTC; with the default 14 day term accounts approved now fall due on 2025-03-15
START = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Injectable clock that only moves when a test says so"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self.now += timedelta(days=days, hours=hours)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(START)


@pytest.fixture
def configure(db: Session):
    """
    Seed the app_settings row with GNPL switched on; call again with
    overrides (without the gnpl_ prefix) to change settings mid-test.
    """

    def _configure(**overrides) -> AppSettingsRecord:
        row = db.get(AppSettingsRecord, "default")
        if row is None:
            row = AppSettingsRecord(
                id="default",
                app_name="TicketHub",
                gnpl_enabled=True,
                gnpl_require_admin_approval=True,
                gnpl_default_term_days=14,
                gnpl_penalty_enabled=True,
                gnpl_penalty_percent=Decimal("5"),
                gnpl_penalty_period_days=7,
                gnpl_reminder_enabled=True,
                gnpl_reminder_days_before=0,
            )
            db.add(row)
        for key, value in overrides.items():
            setattr(row, f"gnpl_{key}", value)
        db.commit()
        return row

    _configure()
    return _configure


@pytest.fixture
def events() -> List[LedgerEvent]:
    """Ledger events emitted after commit"""
    return []


@pytest.fixture
def service(db: Session, clock: FrozenClock, configure, events: List[LedgerEvent]) -> LedgerService:
    return LedgerService(db, notify=events.append, clock=clock, backoff_base=0)


@pytest.fixture
def make_account(service: LedgerService):
    """Open (and by default approve) an account through the service"""

    def _make(
        unit_price: str = "1000.00",
        quantity: int = 1,
        customer_id: str = "tg_1001",
        approve: bool = True,
        term_days: int | None = None,
    ) -> GnplAccount:
        account = service.open_account(
            customer_id=customer_id,
            trip_id="trip_lalibela_01",
            quantity=quantity,
            unit_price=Decimal(unit_price),
            customer_name="Abebe K.",
        )
        if approve:
            account = service.approve_application(account.id, actor="admin_1", term_days=term_days)
        return account

    return _make


@pytest.fixture
def notifier() -> MagicMock:
    """Telegram notifier stand-in; deliveries always succeed"""
    mock = MagicMock()
    mock.deliver = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def client(db: Session, clock: FrozenClock, configure, notifier: MagicMock) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_clock] = lambda: clock
    return TestClient(app)
