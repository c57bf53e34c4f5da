"""Row-level data access for the quote lifecycle.

Two capability objects sit on top of one ``TableGateway``:

- ``ScopedStore`` is bound to a principal and every read it performs carries
  the ownership filter.
- ``PrivilegedStore`` bypasses ownership and is only handed out after the
  authorization guard has checked the caller.
"""

from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

import asyncpg
from attrs import frozen
from beartype import beartype

from ..core.database import Database

# Identifiers allowed in generated SQL. Values are always bound parameters.
TABLE_COLUMNS: dict[str, frozenset[str]] = {
    "agencies": frozenset(
        {"id", "user_id", "business_name", "email", "city", "status", "created_at"}
    ),
    "tours": frozenset({"id", "title", "created_at"}),
    "cruises": frozenset({"id", "title", "created_at"}),
    "quote_requests": frozenset(
        {
            "id",
            "agency_id",
            "request_type",
            "product_id",
            "departure_id",
            "participants_adults",
            "participants_children",
            "cabin_type",
            "num_cabins",
            "notes",
            "status",
            "created_at",
            "updated_at",
        }
    ),
    "quote_offers": frozenset(
        {
            "id",
            "request_id",
            "total_price",
            "conditions",
            "payment_terms",
            "offer_expiry",
            "package_details",
            "notes",
            "created_at",
        }
    ),
    "quote_participants": frozenset(
        {
            "id",
            "request_id",
            "full_name",
            "age",
            "document_type",
            "document_number",
            "is_child",
            "sort_order",
            "created_at",
        }
    ),
    "quote_payments": frozenset(
        {
            "id",
            "request_id",
            "bank_details",
            "amount",
            "reference",
            "status",
            "created_at",
        }
    ),
    "quote_timeline": frozenset(
        {"id", "request_id", "action", "details", "actor", "created_at"}
    ),
    "notification_outbox": frozenset(
        {
            "id",
            "recipients",
            "subject",
            "html_body",
            "status",
            "attempts",
            "last_error",
            "created_at",
            "updated_at",
        }
    ),
}


class UnknownIdentifierError(ValueError):
    """Table or column name outside the whitelist."""


@frozen
class Span:
    """Filter value for a range: ``start`` inclusive, ``end`` exclusive.

    Either bound may be ``None`` for an open side.
    """

    start: Any = None
    end: Any = None

    def contains(self, value: Any) -> bool:
        """Whether ``value`` falls inside the range."""
        if value is None:
            return False
        if self.start is not None and value < self.start:
            return False
        return self.end is None or value < self.end


@beartype
def check_identifiers(table: str, columns: Sequence[str] = ()) -> None:
    """Reject identifiers that are not part of the schema."""
    allowed = TABLE_COLUMNS.get(table)
    if allowed is None:
        raise UnknownIdentifierError(f"Unknown table: {table}")
    for column in columns:
        if column not in allowed:
            raise UnknownIdentifierError(f"Unknown column: {table}.{column}")


@runtime_checkable
class TableGateway(Protocol):
    """Generic CRUD calls the lifecycle engine consumes.

    Filters are column -> value; a list or tuple value means "one of", a
    ``Span`` value is a range and a ``None`` value means ``IS NULL``.
    """

    async def get_by_id(self, table: str, row_id: UUID) -> dict[str, Any] | None: ...

    async def select_where(
        self,
        table: str,
        filters: Mapping[str, Any],
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]: ...

    async def insert(
        self, table: str, rows: Sequence[Mapping[str, Any]]
    ) -> list[dict[str, Any]]: ...

    async def update_where(
        self,
        table: str,
        row_id: UUID,
        expected: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> int: ...

    async def delete_where(self, table: str, filters: Mapping[str, Any]) -> int: ...

    async def count_by(
        self, table: str, column: str, filters: Mapping[str, Any] | None = None
    ) -> dict[Any, int]: ...

    def transaction(self) -> AbstractAsyncContextManager["TableGateway"]: ...


@beartype
def affected_rows(command_tag: str) -> int:
    """Parse the row count from an asyncpg command tag such as ``UPDATE 1``."""
    parts = command_tag.split()
    if not parts or not parts[-1].isdigit():
        return 0
    return int(parts[-1])


def _where_clause(
    filters: Mapping[str, Any], start: int = 1
) -> tuple[str, list[Any]]:
    conditions: list[str] = []
    args: list[Any] = []
    position = start
    for column, value in filters.items():
        if value is None:
            conditions.append(f"{column} IS NULL")
            continue
        if isinstance(value, Span):
            if value.start is not None:
                conditions.append(f"{column} >= ${position}")
                args.append(value.start)
                position += 1
            if value.end is not None:
                conditions.append(f"{column} < ${position}")
                args.append(value.end)
                position += 1
            continue
        if isinstance(value, list | tuple | set | frozenset):
            conditions.append(f"{column} = ANY(${position})")
            args.append(list(value))
        else:
            conditions.append(f"{column} = ${position}")
            args.append(value)
        position += 1
    if not conditions:
        return "TRUE", args
    return " AND ".join(conditions), args


class PostgresGateway:
    """``TableGateway`` over asyncpg.

    Wraps either the pooled ``Database`` or a single connection that is
    already inside a transaction.
    """

    def __init__(self, executor: Database | asyncpg.Connection) -> None:
        """Initialize gateway with a database manager or a bound connection."""
        self._executor = executor

    @beartype
    async def get_by_id(self, table: str, row_id: UUID) -> dict[str, Any] | None:
        """Fetch one row by primary key."""
        check_identifiers(table)
        row = await self._executor.fetchrow(
            f"SELECT * FROM {table} WHERE id = $1", row_id
        )
        return dict(row) if row else None

    @beartype
    async def select_where(
        self,
        table: str,
        filters: Mapping[str, Any],
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Select rows matching every filter."""
        check_identifiers(table, [*filters, *([order_by] if order_by else [])])
        where, args = _where_clause(filters)
        query = f"SELECT * FROM {table} WHERE {where}"
        if order_by:
            query += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'}"
        if limit is not None:
            args.append(limit)
            query += f" LIMIT ${len(args)}"
        rows = await self._executor.fetch(query, *args)
        return [dict(row) for row in rows]

    @beartype
    async def insert(
        self, table: str, rows: Sequence[Mapping[str, Any]]
    ) -> list[dict[str, Any]]:
        """Insert rows and return them as stored."""
        inserted: list[dict[str, Any]] = []
        for row in rows:
            columns = list(row)
            check_identifiers(table, columns)
            placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
            query = f"""
                INSERT INTO {table} ({", ".join(columns)})
                VALUES ({placeholders})
                RETURNING *
            """
            record = await self._executor.fetchrow(query, *row.values())
            if record is not None:
                inserted.append(dict(record))
        return inserted

    @beartype
    async def update_where(
        self,
        table: str,
        row_id: UUID,
        expected: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> int:
        """Conditional update; returns the number of rows changed.

        Zero means the row is gone or no longer matches ``expected``.
        """
        if not patch:
            raise ValueError("update_where requires a non-empty patch")
        check_identifiers(table, [*patch, *expected])
        assignments = [f"{column} = ${i}" for i, column in enumerate(patch, start=1)]
        if "updated_at" in TABLE_COLUMNS[table] and "updated_at" not in patch:
            assignments.append("updated_at = clock_timestamp()")
        where, where_args = _where_clause(
            {"id": row_id, **expected}, start=len(patch) + 1
        )
        query = f"UPDATE {table} SET {', '.join(assignments)} WHERE {where}"
        tag = await self._executor.execute(query, *patch.values(), *where_args)
        return affected_rows(tag)

    @beartype
    async def delete_where(self, table: str, filters: Mapping[str, Any]) -> int:
        """Delete rows matching every filter."""
        if not filters:
            raise ValueError("delete_where requires at least one filter")
        check_identifiers(table, list(filters))
        where, args = _where_clause(filters)
        tag = await self._executor.execute(f"DELETE FROM {table} WHERE {where}", *args)
        return affected_rows(tag)

    @beartype
    async def count_by(
        self, table: str, column: str, filters: Mapping[str, Any] | None = None
    ) -> dict[Any, int]:
        """Row counts grouped by one column."""
        filters = filters or {}
        check_identifiers(table, [column, *filters])
        where, args = _where_clause(filters)
        rows = await self._executor.fetch(
            f"SELECT {column} AS key, count(*) AS total FROM {table} "
            f"WHERE {where} GROUP BY {column}",
            *args,
        )
        return {row["key"]: row["total"] for row in rows}

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["PostgresGateway"]:
        """Run the enclosed calls on one connection inside one transaction."""
        if isinstance(self._executor, Database):
            async with self._executor.transaction() as conn:
                yield PostgresGateway(conn)
        else:
            # Already bound to a connection: nest as a savepoint.
            async with self._executor.transaction():
                yield self


class PrivilegedStore:
    """Unrestricted access. Only use after the guard has authorized the caller."""

    def __init__(self, gateway: TableGateway) -> None:
        """Initialize with the underlying gateway."""
        self.gateway = gateway

    @beartype
    async def get_request(self, request_id: UUID) -> dict[str, Any] | None:
        """Load a quote request regardless of owner."""
        return await self.gateway.get_by_id("quote_requests", request_id)

    @beartype
    async def get_offers(self, request_id: UUID) -> list[dict[str, Any]]:
        """All offers of a request, oldest first."""
        return await self.gateway.select_where(
            "quote_offers", {"request_id": request_id}, order_by="created_at"
        )

    @beartype
    async def get_participants(self, request_id: UUID) -> list[dict[str, Any]]:
        """Participants in entry order."""
        return await self.gateway.select_where(
            "quote_participants", {"request_id": request_id}, order_by="sort_order"
        )

    @beartype
    async def get_payments(self, request_id: UUID) -> list[dict[str, Any]]:
        """Payment requests, oldest first."""
        return await self.gateway.select_where(
            "quote_payments", {"request_id": request_id}, order_by="created_at"
        )

    @beartype
    async def get_timeline(
        self, request_id: UUID, newest_first: bool = True
    ) -> list[dict[str, Any]]:
        """Timeline entries ordered by creation time."""
        return await self.gateway.select_where(
            "quote_timeline",
            {"request_id": request_id},
            order_by="created_at",
            descending=newest_first,
        )

    @beartype
    async def get_agency(self, agency_id: UUID) -> dict[str, Any] | None:
        """Load an agency by id."""
        return await self.gateway.get_by_id("agencies", agency_id)

    @beartype
    async def get_product_title(
        self, request_type: str, product_id: UUID | None
    ) -> str | None:
        """Title of the tour or cruise a request refers to."""
        if product_id is None:
            return None
        table = "cruises" if request_type == "cruise" else "tours"
        row = await self.gateway.get_by_id(table, product_id)
        return row.get("title") if row else None

    @beartype
    async def list_requests(self, filters: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Requests of every agency matching ``filters``, newest first."""
        return await self.gateway.select_where(
            "quote_requests", filters, order_by="created_at", descending=True
        )

    @beartype
    async def count_by_status(self) -> dict[str, int]:
        """Number of requests per stored status value."""
        return await self.gateway.count_by("quote_requests", "status")

    @beartype
    async def get_agencies(
        self, agency_ids: Sequence[UUID]
    ) -> dict[UUID, dict[str, Any]]:
        """Agencies keyed by id."""
        if not agency_ids:
            return {}
        rows = await self.gateway.select_where("agencies", {"id": list(set(agency_ids))})
        return {row["id"]: row for row in rows}

    @beartype
    async def get_product_titles(
        self, requests: Sequence[Mapping[str, Any]]
    ) -> dict[UUID, str]:
        """Tour and cruise titles keyed by product id, loaded in one query per table."""
        titles: dict[UUID, str] = {}
        for table, request_type in (("tours", "tour"), ("cruises", "cruise")):
            ids = {
                row["product_id"]
                for row in requests
                if row.get("request_type") == request_type and row.get("product_id")
            }
            if not ids:
                continue
            rows = await self.gateway.select_where(table, {"id": list(ids)})
            titles.update({row["id"]: row["title"] for row in rows})
        return titles


class ScopedStore:
    """Reads restricted to what one principal owns.

    The agency filter is only available after ``bind_agency``; until then
    the store can only look up the principal's own agencies.
    """

    def __init__(self, gateway: TableGateway, user_id: str) -> None:
        """Initialize store bound to an authenticated user."""
        self._gateway = gateway
        self._user_id = user_id
        self._agency_id: UUID | None = None

    @property
    def agency_id(self) -> UUID | None:
        """Agency the store is bound to, if any."""
        return self._agency_id

    @beartype
    async def get_own_agencies(self) -> list[dict[str, Any]]:
        """Agency rows whose owner is the bound user."""
        return await self._gateway.select_where(
            "agencies", {"user_id": self._user_id}
        )

    @beartype
    def bind_agency(self, agency_id: UUID) -> "ScopedStore":
        """Return a store also filtered by the resolved agency."""
        scoped = ScopedStore(self._gateway, self._user_id)
        scoped._agency_id = agency_id
        return scoped

    def _require_agency(self) -> UUID:
        if self._agency_id is None:
            raise PermissionError("ScopedStore is not bound to an agency")
        return self._agency_id

    @beartype
    async def get_request(self, request_id: UUID) -> dict[str, Any] | None:
        """Load a request only if the bound agency owns it."""
        rows = await self._gateway.select_where(
            "quote_requests",
            {"id": request_id, "agency_id": self._require_agency()},
        )
        return rows[0] if rows else None

    @beartype
    async def list_requests(self) -> list[dict[str, Any]]:
        """The bound agency's requests, newest first."""
        return await self._gateway.select_where(
            "quote_requests",
            {"agency_id": self._require_agency()},
            order_by="created_at",
            descending=True,
        )

    @beartype
    async def list_offers(self) -> list[dict[str, Any]]:
        """Offers on the bound agency's requests, newest first."""
        request_ids = [row["id"] for row in await self.list_requests()]
        if not request_ids:
            return []
        return await self._gateway.select_where(
            "quote_offers",
            {"request_id": request_ids},
            order_by="created_at",
            descending=True,
        )
