"""Shared fixtures: an in-memory stand-in for the Supabase client."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

import httpx
import pytest
from postgrest.exceptions import APIError

from housekeeping.config import Settings
from housekeeping.fallback import FALLBACK_ITEMS
from housekeeping.fields import ITEMS, ROOMS, STAYS, TASKS
from housekeeping.gateway import StorageGateway
from housekeeping.manager import HousekeepingManager
from housekeeping.schema import Room, RoomStatus

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Just enough of the postgrest fluent builder"""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.operation = "select"
        self.columns = "*"
        self.payload: List[Dict[str, Any]] = []
        self.filters: List[tuple] = []
        self.row_limit: Optional[int] = None

    def select(self, columns: str = "*", **kwargs):
        self.operation = "select"
        self.columns = columns
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def or_(self, expression):
        # Not evaluated; every row is returned
        return self

    def gte(self, column, value):
        return self

    def order(self, column, desc=False):
        return self

    def limit(self, count):
        self.row_limit = count
        return self

    def upsert(self, rows):
        self.operation = "upsert"
        self.payload = rows if isinstance(rows, list) else [rows]
        return self

    def insert(self, rows):
        self.operation = "insert"
        self.payload = rows if isinstance(rows, list) else [rows]
        return self

    def execute(self):
        return self.db.execute(self)


class FakeSupabase:
    """
    In-memory tables keyed by name. Failure switches:
      offline          every call raises a transport error
      missing_tables   tables answering 42P01
      missing_columns  per-table columns answering PGRST204
      failing_writes   tables whose writes answer a generic server error
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.offline = False
        self.missing_tables: Set[str] = set()
        self.missing_columns: Dict[str, Set[str]] = {}
        self.failing_writes: Set[str] = set()
        self.calls: List[tuple] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def seed(self, table: str, rows: List[Dict[str, Any]]) -> None:
        self.tables.setdefault(table, []).extend(dict(row) for row in rows)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.get(table, [])

    def writes(self, table: Optional[str] = None) -> List[tuple]:
        return [
            call for call in self.calls
            if call[1] in ("upsert", "insert") and (table is None or call[0] == table)
        ]

    def _missing_in(self, table: str, columns) -> List[str]:
        missing = self.missing_columns.get(table, set())
        return [column for column in columns if column in missing]

    def execute(self, query: FakeQuery) -> FakeResponse:
        table = query.table_name
        self.calls.append((table, query.operation, [dict(row) for row in query.payload]))

        if self.offline:
            raise httpx.ConnectError("Network is unreachable")
        if table in self.missing_tables:
            raise APIError({
                "code": "42P01",
                "message": f'relation "public.{table}" does not exist',
                "details": None,
                "hint": None,
            })

        if query.operation == "select":
            requested = [] if query.columns == "*" else [c.strip() for c in query.columns.split(",")]
            self._raise_if_missing(table, requested)
            rows = [
                dict(row) for row in self.rows(table)
                if all(row.get(column) == value for column, value in query.filters)
            ]
            if query.row_limit is not None:
                rows = rows[:query.row_limit]
            return FakeResponse(rows)

        if table in self.failing_writes:
            raise APIError({"code": "XX000", "message": "internal error", "details": None, "hint": None})
        for row in query.payload:
            self._raise_if_missing(table, row.keys())

        stored = self.tables.setdefault(table, [])
        for row in query.payload:
            if query.operation == "upsert":
                for index, existing in enumerate(stored):
                    if existing.get("id") == row.get("id"):
                        stored[index] = {**existing, **row}
                        break
                else:
                    stored.append(dict(row))
            else:
                stored.append(dict(row))
        return FakeResponse([dict(row) for row in query.payload])

    def _raise_if_missing(self, table: str, columns) -> None:
        missing = self._missing_in(table, columns)
        if missing:
            raise APIError({
                "code": "PGRST204",
                "message": f"Could not find the '{missing[0]}' column of '{table}' in the schema cache",
                "details": None,
                "hint": None,
            })


# ========================================
# FIXTURES
# ========================================

@pytest.fixture
def now():
    return NOW


@pytest.fixture
def settings():
    return Settings(
        supabase_url=None,
        supabase_key=None,
        connection_retries=3,
        retry_backoff_seconds=0,
        snapshot_dir=None,
        operator_name="Lan",
    )


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def gateway(fake_db, settings, sleeps):
    return StorageGateway(client=fake_db, settings=settings, sleep=sleeps.append)


def make_room(code="101", status=RoomStatus.DIRTY, room_type="1GM8", facility_id="F001", **kwargs) -> Room:
    return Room(
        id=f"{facility_id}_{code}",
        facility_id=facility_id,
        facility_name=kwargs.pop("facility_name", "Grand Hotel Saigon (Q.1)"),
        code=code,
        status=getattr(status, "value", status),
        room_type=room_type,
        **kwargs,
    )


@pytest.fixture
def seeded_db(fake_db):
    """Store with the standard items, one dirty 1GM8 room and one clean room"""
    fake_db.seed(ITEMS.table, [ITEMS.to_wire(item) for item in FALLBACK_ITEMS])
    fake_db.seed(ROOMS.table, [
        ROOMS.to_wire(make_room("101", RoomStatus.DIRTY)),
        ROOMS.to_wire(make_room("102", RoomStatus.CLEAN)),
    ])
    return fake_db


@pytest.fixture
def manager(seeded_db, gateway, settings):
    mgr = HousekeepingManager(gateway, settings=settings, clock=lambda: NOW)
    mgr.refresh()
    return mgr


def seed_task(db: FakeSupabase, task) -> None:
    db.seed(TASKS.table, [TASKS.to_wire(task)])


def seed_stay(db: FakeSupabase, stay) -> None:
    db.seed(STAYS.table, [STAYS.to_wire(stay)])
