"""Test configuration and fixtures.

Store behaviour is exercised through ``InMemoryGateway``, which honours the
same compare-and-swap contract as the Postgres gateway: ``update_where``
checks and writes without suspending, so it is atomic under asyncio. Every
other call yields to the event loop once to mimic I/O.
"""

import asyncio
import copy
from collections.abc import AsyncIterator, Generator, Mapping, Sequence
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from itertools import count
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest

from travel_quotes.core.config import Settings, clear_settings_cache
from travel_quotes.core.errors import NotifyError
from travel_quotes.schemas.auth import Principal, PrincipalRole
from travel_quotes.services.notifications import EmailMessage, NotificationDispatcher
from travel_quotes.services.quote_lifecycle import QuoteLifecycleService
from travel_quotes.services.store import TABLE_COLUMNS, Span, check_identifiers

TODAY = date(2026, 3, 10)
_EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)

_DEFAULTS: dict[str, dict[str, Any]] = {
    "quote_participants": {"is_child": False},
    "quote_payments": {"status": "pending"},
    "notification_outbox": {"status": "pending", "attempts": 0, "last_error": None},
}


def _matches(row: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    for column, value in filters.items():
        if value is None:
            if row.get(column) is not None:
                return False
        elif isinstance(value, Span):
            if not value.contains(row.get(column)):
                return False
        elif isinstance(value, list | tuple | set | frozenset):
            if row.get(column) not in value:
                return False
        elif row.get(column) != value:
            return False
    return True


class InMemoryGateway:
    """Dict-backed ``TableGateway`` for unit tests."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self._ticks = count(1)
        self.fail_inserts: set[str] = set()
        self.before_update: Any = None

    def now(self) -> datetime:
        """Strictly increasing timestamps, one per call."""
        return _EPOCH + timedelta(seconds=next(self._ticks))

    def add(self, table: str, **row: Any) -> dict[str, Any]:
        """Seed a row synchronously."""
        check_identifiers(table, list(row))
        stored = {
            **_DEFAULTS.get(table, {}),
            "id": uuid4(),
            "created_at": self.now(),
            **row,
        }
        self.tables.setdefault(table, []).append(stored)
        return stored

    def rows(self, table: str, **filters: Any) -> list[dict[str, Any]]:
        """Synchronous view for assertions."""
        return [dict(r) for r in self.tables.get(table, []) if _matches(r, filters)]

    async def get_by_id(self, table: str, row_id: UUID) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        check_identifiers(table)
        for row in self.tables.get(table, []):
            if row["id"] == row_id:
                return dict(row)
        return None

    async def select_where(
        self,
        table: str,
        filters: Mapping[str, Any],
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        check_identifiers(table, [*filters, *([order_by] if order_by else [])])
        found = self.rows(table, **filters)
        if order_by:
            found.sort(key=lambda r: r[order_by], reverse=descending)
        return found[:limit] if limit is not None else found

    async def insert(
        self, table: str, rows: Sequence[Mapping[str, Any]]
    ) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        if table in self.fail_inserts:
            raise RuntimeError(f"insert into {table} failed")
        return [dict(self.add(table, **row)) for row in rows]

    async def update_where(
        self,
        table: str,
        row_id: UUID,
        expected: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> int:
        await asyncio.sleep(0)
        if self.before_update is not None:
            self.before_update(table, row_id)
        check_identifiers(table, [*patch, *expected])
        # Check and write without an await in between.
        for row in self.tables.get(table, []):
            if row["id"] == row_id and _matches(row, expected):
                row.update(patch)
                if "updated_at" in TABLE_COLUMNS[table] and "updated_at" not in patch:
                    row["updated_at"] = self.now()
                return 1
        return 0

    async def delete_where(self, table: str, filters: Mapping[str, Any]) -> int:
        await asyncio.sleep(0)
        check_identifiers(table, list(filters))
        before = self.tables.get(table, [])
        kept = [r for r in before if not _matches(r, filters)]
        self.tables[table] = kept
        return len(before) - len(kept)

    async def count_by(
        self, table: str, column: str, filters: Mapping[str, Any] | None = None
    ) -> dict[Any, int]:
        await asyncio.sleep(0)
        check_identifiers(table, [column, *(filters or {})])
        counts: dict[Any, int] = {}
        for row in self.rows(table, **(filters or {})):
            counts[row.get(column)] = counts.get(row.get(column), 0) + 1
        return counts

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["InMemoryGateway"]:
        snapshot = copy.deepcopy(self.tables)
        try:
            yield self
        except BaseException:
            self.tables = snapshot
            raise


class RecordingNotifier:
    """Notifier that records messages, or fails every send."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[EmailMessage] = []
        self.fail = fail

    async def send(self, message: EmailMessage) -> None:
        await asyncio.sleep(0)
        if self.fail:
            raise NotifyError("SMTP relay unavailable")
        self.sent.append(message)

    def subjects(self) -> list[str]:
        return [m.subject for m in self.sent]


class QuoteSeeder:
    """Builds agencies, requests and offers directly in the gateway."""

    def __init__(self, gateway: InMemoryGateway) -> None:
        self.gateway = gateway

    def agency(
        self,
        user_id: str = "user-agency-1",
        business_name: str = "Viaggi Rossi",
        email: str | None = "booking@viaggirossi.it",
    ) -> dict[str, Any]:
        return self.gateway.add(
            "agencies",
            user_id=user_id,
            business_name=business_name,
            email=email,
            city="Milano",
            status="active",
        )

    def request(
        self,
        agency: dict[str, Any],
        status: str = "offer_sent",
        title: str = "Tour della Toscana",
    ) -> dict[str, Any]:
        tour = self.gateway.add("tours", title=title)
        return self.gateway.add(
            "quote_requests",
            agency_id=agency["id"],
            request_type="tour",
            product_id=tour["id"],
            departure_id=uuid4(),
            participants_adults=2,
            participants_children=0,
            cabin_type=None,
            num_cabins=None,
            notes=None,
            status=status,
            updated_at=self.gateway.now(),
        )

    def offer(
        self,
        request: dict[str, Any],
        total_price: Decimal | None = Decimal("1200.00"),
        offer_expiry: date | None = None,
    ) -> dict[str, Any]:
        return self.gateway.add(
            "quote_offers",
            request_id=request["id"],
            total_price=total_price,
            conditions="Quota individuale in camera doppia",
            payment_terms="Saldo 30 giorni prima della partenza",
            offer_expiry=offer_expiry,
            package_details=None,
            notes=None,
        )


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset singleton instances between tests."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def mock_db() -> MagicMock:
    """Create mock database connection for testing."""
    db = MagicMock()
    db.fetchval = AsyncMock(return_value=None)
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="UPDATE 0")
    return db


@pytest.fixture
def settings() -> Settings:
    """Settings with a fixed operator distribution list."""
    return Settings(
        brevo_api_key=None,
        admin_notification_emails="ops@mishatravel.com, booking@mishatravel.com",
        sender_name="MishaTravel",
        site_url="https://www.mishatravel.com",
    )


@pytest.fixture
def gateway() -> InMemoryGateway:
    """Empty in-memory gateway."""
    return InMemoryGateway()


@pytest.fixture
def seeder(gateway: InMemoryGateway) -> QuoteSeeder:
    """Row factory bound to the gateway."""
    return QuoteSeeder(gateway)


@pytest.fixture
def notifier() -> RecordingNotifier:
    """Notifier that delivers successfully."""
    return RecordingNotifier()


@pytest.fixture
def dispatcher(
    notifier: RecordingNotifier, gateway: InMemoryGateway
) -> NotificationDispatcher:
    """Dispatcher over the recording notifier."""
    return NotificationDispatcher(notifier, gateway)


@pytest.fixture
def service(
    gateway: InMemoryGateway, dispatcher: NotificationDispatcher, settings: Settings
) -> QuoteLifecycleService:
    """Lifecycle service with a fixed calendar date."""
    return QuoteLifecycleService(gateway, dispatcher, settings, today=lambda: TODAY)


@pytest.fixture
def agency(seeder: QuoteSeeder) -> dict[str, Any]:
    """An agency owned by ``agency_principal``."""
    return seeder.agency()


@pytest.fixture
def agency_principal() -> Principal:
    """Principal of the seeded agency."""
    return Principal(user_id="user-agency-1", role=PrincipalRole.AGENCY)


@pytest.fixture
def operator_principal() -> Principal:
    """Back-office administrator."""
    return Principal(user_id="user-admin-1", role=PrincipalRole.ADMIN)


@pytest.fixture
def today() -> date:
    """Calendar date the lifecycle service sees."""
    return TODAY


@pytest.fixture
def failing_notifier() -> RecordingNotifier:
    """Notifier whose every send raises ``NotifyError``."""
    return RecordingNotifier(fail=True)


@pytest.fixture
def make_service(gateway: InMemoryGateway, settings: Settings) -> Any:
    """Build a lifecycle service around a given notifier."""

    def _make(notifier: RecordingNotifier) -> QuoteLifecycleService:
        return QuoteLifecycleService(
            gateway,
            NotificationDispatcher(notifier, gateway),
            settings,
            today=lambda: TODAY,
        )

    return _make
