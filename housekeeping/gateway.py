"""
HOUSEKEEPING CORE - Storage Gateway
===================================
Read/write facade over the remote store (Supabase / PostgREST).

- Reads never raise: on failure they serve the last good rows for the table,
  then the built-in datasets.
- Writes never raise: they return a WriteResult. A write that hits a missing
  column is retried once without the entity's newer columns.
- A missing table, or a store that stays unreachable through the connection
  check, puts the gateway in degraded mode for the rest of the session:
  reads serve built-in data and writes are skipped.
"""

import logging
import time
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError
from supabase import create_client

from .cache import SnapshotCache
from .config import Settings, get_settings
from .errors import (
    ConnectivityError, SchemaDriftError, TableMissingError, classify_error,
)
from .fallback import (
    FALLBACK_ITEMS, FALLBACK_RECIPES,
    create_fallback_facilities, create_fallback_rooms,
)
from .fields import (
    EntityMap, FACILITIES, ROOMS, STAYS, TASKS, ITEMS, RECIPES, TRANSACTIONS,
)
from .schema import (
    Facility, Room, Stay, HousekeepingTask, ItemDefinition, RoomRecipe,
    InventoryTransaction, TaskStatus, StayStatus, utc_now, ensure_aware,
)

logger = logging.getLogger("housekeeping.gateway")

CHECK_TABLE = "app_configs"

# Newer columns checked at startup, per table
SCHEMA_CHECKS: Dict[str, List[str]] = {
    STAYS.table: ["lendingjson"],
    ROOMS.table: ["type"],
    TASKS.table: ["points", "checklist", "linen_exchanged"],
    ITEMS.table: ["laundrystock", "in_circulation", "totalassets"],
    RECIPES.table: ["id", "items_json"],
    TRANSACTIONS.table: ["task_id", "room_code"],
}


class ConnectionMode(str, Enum):
    LIVE = "live"
    DEGRADED = "degraded"


class ConnectionState(BaseModel):
    """Connectivity of one gateway. Degraded mode is sticky."""
    mode: ConnectionMode = ConnectionMode.LIVE
    verified: bool = False
    schema_warning: bool = False
    missing_tables: List[str] = Field(default_factory=list)
    missing_columns: Dict[str, List[str]] = Field(default_factory=dict)
    degraded_reason: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.mode == ConnectionMode.DEGRADED

    def degrade(self, reason: str) -> None:
        if self.degraded:
            return
        self.mode = ConnectionMode.DEGRADED
        self.degraded_reason = reason
        logger.warning(f"Switching to degraded mode: {reason}")

    def note_drift(self, table: str, columns: List[str]) -> None:
        self.schema_warning = True
        known = self.missing_columns.setdefault(table, [])
        for column in columns:
            if column not in known:
                known.append(column)

    def note_missing_table(self, table: str) -> None:
        if table not in self.missing_tables:
            self.missing_tables.append(table)


class SchemaReport(BaseModel):
    missing_tables: List[str] = Field(default_factory=list)
    missing_columns: Dict[str, List[str]] = Field(default_factory=dict)

    @property
    def drifted(self) -> bool:
        return bool(self.missing_tables or self.missing_columns)


class WriteStatus(str, Enum):
    WRITTEN = "written"
    WRITTEN_LEGACY = "written_legacy"   # Succeeded without the newer columns
    SKIPPED = "skipped"                 # Degraded mode
    FAILED = "failed"


class WriteResult(BaseModel):
    table: str
    status: WriteStatus
    rows: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != WriteStatus.FAILED


def data_start_date(now: datetime, months: int) -> datetime:
    """First day of the month, `months` months before now"""
    now = ensure_aware(now)
    month_index = now.year * 12 + (now.month - 1) - months
    return now.replace(
        year=month_index // 12, month=month_index % 12 + 1, day=1,
        hour=0, minute=0, second=0, microsecond=0,
    )


class StorageGateway:
    """
    Uniform access to rooms, stays, tasks, items, recipes and the inventory log.

    The Supabase client is injected; without one the gateway starts degraded.
    """

    def __init__(
        self,
        client: Optional[Any] = None,
        settings: Optional[Settings] = None,
        cache: Optional[SnapshotCache] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or get_settings()
        self.client = client
        self.cache = cache or SnapshotCache(self.settings.snapshot_dir)
        self.state = ConnectionState()
        self._sleep = sleep

        if self.client is None:
            self.state.degrade("No store client configured")

    @property
    def is_degraded(self) -> bool:
        return self.state.degraded

    # ========================================
    # CONNECTIVITY & SCHEMA
    # ========================================

    def check_connection(self) -> bool:
        """Check the store is reachable, retrying network failures with a fixed backoff."""
        if self.is_degraded:
            return False

        retries = self.settings.connection_retries
        for attempt in range(1, retries + 1):
            try:
                self.client.table(CHECK_TABLE).select("count").limit(1).execute()
                self.state.verified = True
                return True
            except Exception as e:
                error = classify_error(e, CHECK_TABLE)
                if not isinstance(error, ConnectivityError):
                    # Reachable; the check table itself is the problem
                    logger.info(f"Store reachable, check returned: {error}")
                    self.state.verified = True
                    return True
                logger.warning(f"Connection attempt {attempt}/{retries} failed: {error}")
                if attempt < retries:
                    self._sleep(self.settings.retry_backoff_seconds)

        self.state.degrade(f"Store unreachable after {retries} attempts")
        return False

    def check_schema(self) -> SchemaReport:
        """Look for newer columns and tables. Drift only warns; a missing table degrades."""
        report = SchemaReport()
        if self.is_degraded:
            return report

        for table, columns in SCHEMA_CHECKS.items():
            try:
                self.client.table(table).select(",".join(columns)).limit(1).execute()
            except Exception as e:
                error = classify_error(e, table)
                if isinstance(error, TableMissingError):
                    report.missing_tables.append(table)
                elif isinstance(error, SchemaDriftError):
                    report.missing_columns[table] = list(columns)
                else:
                    logger.warning(f"Schema check on {table} inconclusive: {error}")

        for table, columns in report.missing_columns.items():
            self.state.note_drift(table, columns)
        if report.missing_columns:
            logger.warning(f"[SCHEMA MISMATCH] Missing columns: {report.missing_columns}")

        for table in report.missing_tables:
            self.state.note_missing_table(table)
        if report.missing_tables:
            self.state.degrade(f"Missing tables: {', '.join(report.missing_tables)}")

        return report

    # ========================================
    # READ OPERATIONS
    # ========================================

    def _safe_fetch(self, table: str, build_query: Callable[[Any], Any]) -> Optional[List[Dict[str, Any]]]:
        """Rows from the store, or None when the read failed."""
        try:
            response = build_query(self.client.table(table)).execute()
        except Exception as e:
            error = classify_error(e, table)
            if isinstance(error, TableMissingError):
                self.state.note_missing_table(table)
                self.state.degrade(f"Table {table} is missing")
            elif isinstance(error, SchemaDriftError):
                self.state.schema_warning = True
                logger.warning(f"[SCHEMA MISMATCH] fetching {table}. Using fallback.")
            elif isinstance(error, ConnectivityError):
                logger.warning(f"[NETWORK ERROR] fetching {table}: {error}")
            else:
                logger.error(f"[STORAGE ERROR] fetching {table}: {error}")
            return None

        data = response.data
        if data is None:
            return None
        rows = data if isinstance(data, list) else [data]
        self.state.verified = True
        self.cache.put(table, rows)
        return rows

    def _load_rows(self, entity: EntityMap, rows: List[Dict[str, Any]]) -> List[Any]:
        records = []
        for row in rows:
            try:
                records.append(entity.load(row))
            except ValidationError as e:
                logger.warning(f"Skipping malformed {entity.table} row {row.get('id')}: {e.error_count()} errors")
        return records

    def _read(self, entity: EntityMap, build_query: Callable[[Any], Any], fallback: List[Any]) -> List[Any]:
        if self.is_degraded:
            return list(fallback)

        rows = self._safe_fetch(entity.table, build_query)
        if rows is None:
            if self.is_degraded:
                return list(fallback)
            rows = self.cache.get(entity.table)
            if rows is None:
                return list(fallback)
            logger.info(f"Serving cached {entity.table} ({len(rows)} rows)")
        return self._load_rows(entity, rows)

    def get_facilities(self) -> List[Facility]:
        return self._read(
            FACILITIES,
            lambda q: q.select("*").order("id"),
            create_fallback_facilities(),
        )

    def get_rooms(self) -> List[Room]:
        rooms = self._read(ROOMS, lambda q: q.select("*"), create_fallback_rooms())
        names = {f.id: f.name for f in self.get_facilities()}
        for room in rooms:
            if not room.facility_name and room.facility_id in names:
                room.facility_name = names[room.facility_id]
        return rooms

    def get_stays(self, now: Optional[datetime] = None) -> List[Stay]:
        """Recent stays plus every stay still confirmed or in house"""
        since = data_start_date(now or utc_now(), self.settings.history_months).isoformat()
        return self._read(
            STAYS,
            lambda q: q.select("*").or_(
                f"checkoutDate.gte.{since},"
                f"status.eq.{StayStatus.CONFIRMED.value},status.eq.{StayStatus.CHECKED_IN.value}"
            ),
            [],
        )

    def get_tasks(self, now: Optional[datetime] = None) -> List[HousekeepingTask]:
        """Active tasks plus recent history"""
        since = data_start_date(now or utc_now(), self.settings.history_months).isoformat()
        return self._read(
            TASKS,
            lambda q: q.select("*").or_(
                f"status.eq.{TaskStatus.PENDING.value},"
                f"status.eq.{TaskStatus.IN_PROGRESS.value},"
                f"created_at.gte.{since}"
            ),
            [],
        )

    def get_task(self, task_id: str) -> Optional[HousekeepingTask]:
        """Fresh read of one task; None when unavailable. Not cached."""
        if self.is_degraded:
            return None
        try:
            response = self.client.table(TASKS.table).select("*").eq("id", task_id).limit(1).execute()
        except Exception as e:
            logger.warning(f"Could not re-read task {task_id}: {classify_error(e, TASKS.table)}")
            return None

        rows = response.data or []
        if isinstance(rows, dict):
            rows = [rows]
        records = self._load_rows(TASKS, rows[:1])
        return records[0] if records else None

    def get_active_tasks(self, facility_id: str, room_code: str) -> List[HousekeepingTask]:
        """Fresh read of the room's Pending / In Progress tasks; empty when unavailable. Not cached."""
        if self.is_degraded:
            return []
        try:
            response = (
                self.client.table(TASKS.table)
                .select("*")
                .eq("facility_id", facility_id)
                .eq("room_code", room_code)
                .execute()
            )
        except Exception as e:
            logger.warning(f"Could not re-read tasks for room {room_code}: {classify_error(e, TASKS.table)}")
            return []

        rows = response.data or []
        if isinstance(rows, dict):
            rows = [rows]
        return [task for task in self._load_rows(TASKS, rows) if task.status != TaskStatus.DONE]

    def get_items(self) -> List[ItemDefinition]:
        return self._read(
            ITEMS,
            lambda q: q.select("*").order("name"),
            [item.model_copy() for item in FALLBACK_ITEMS],
        )

    def get_recipes(self) -> Dict[str, RoomRecipe]:
        """Built-in recipes overridden by stored ones"""
        recipes = {key: recipe.model_copy(deep=True) for key, recipe in FALLBACK_RECIPES.items()}
        for recipe in self._read(RECIPES, lambda q: q.select("*"), []):
            recipes[recipe.room_type] = recipe
        return recipes

    def get_transactions(self, limit: int = 200) -> List[InventoryTransaction]:
        return self._read(
            TRANSACTIONS,
            lambda q: q.select("*").order("created_at", desc=True).limit(limit),
            [],
        )

    # ========================================
    # WRITE OPERATIONS
    # ========================================

    def _execute_write(self, table: str, rows: List[Dict[str, Any]], method: str) -> None:
        query = self.client.table(table)
        if method == "insert":
            query.insert(rows).execute()
        else:
            query.upsert(rows).execute()

    def _safe_write(self, entity: EntityMap, rows: List[Dict[str, Any]], method: str = "upsert") -> WriteResult:
        table = entity.table
        if not rows:
            return WriteResult(table=table, status=WriteStatus.WRITTEN)
        if self.is_degraded:
            logger.info(f"Degraded mode: skipped {method} of {len(rows)} row(s) into {table}")
            return WriteResult(table=table, status=WriteStatus.SKIPPED, rows=len(rows))

        try:
            self._execute_write(table, rows, method)
            return WriteResult(table=table, status=WriteStatus.WRITTEN, rows=len(rows))
        except Exception as e:
            error = classify_error(e, table)

        if isinstance(error, SchemaDriftError):
            legacy_rows = [entity.strip_legacy(row) for row in rows]
            self.state.note_drift(table, entity.legacy_columns)
            logger.warning(f"[SCHEMA MISMATCH] {method} into {table}; retrying without newer columns")
            try:
                self._execute_write(table, legacy_rows, method)
                return WriteResult(table=table, status=WriteStatus.WRITTEN_LEGACY, rows=len(rows))
            except Exception as e:
                error = classify_error(e, table)
                logger.error(f"Legacy {method} into {table} failed: {error}")

        if isinstance(error, TableMissingError):
            self.state.note_missing_table(table)
            self.state.degrade(f"Table {table} is missing")
        elif isinstance(error, ConnectivityError):
            logger.warning(f"[NETWORK ERROR] dropped {method} into {table}: {error}")
        elif not isinstance(error, SchemaDriftError):
            logger.error(f"[STORAGE ERROR] {method} into {table}: {error}")

        return WriteResult(table=table, status=WriteStatus.FAILED, rows=len(rows), error=str(error))

    def upsert_room(self, room: Room) -> WriteResult:
        return self._safe_write(ROOMS, [ROOMS.to_wire(room)])

    def sync_tasks(self, tasks: List[HousekeepingTask]) -> WriteResult:
        return self._safe_write(TASKS, [TASKS.to_wire(task) for task in tasks])

    def update_item(self, item: ItemDefinition) -> WriteResult:
        return self._safe_write(ITEMS, [ITEMS.to_wire(item)])

    def add_transactions(self, transactions: List[InventoryTransaction]) -> WriteResult:
        return self._safe_write(
            TRANSACTIONS, [TRANSACTIONS.to_wire(tx) for tx in transactions], method="insert"
        )

    # ========================================
    # STATUS
    # ========================================

    def status(self) -> Dict[str, Any]:
        return {
            "mode": self.state.mode.value,
            "verified": self.state.verified,
            "schema_warning": self.state.schema_warning,
            "missing_tables": list(self.state.missing_tables),
            "missing_columns": dict(self.state.missing_columns),
            "degraded_reason": self.state.degraded_reason,
        }


def create_gateway(settings: Optional[Settings] = None, **kwargs) -> StorageGateway:
    """Gateway over a Supabase client built from settings; degraded when unconfigured."""
    settings = settings or get_settings()
    client = None
    if settings.supabase_url and settings.supabase_key:
        client = create_client(settings.supabase_url, settings.supabase_key)
    else:
        logger.warning("Supabase URL/key not configured; running on built-in data")
    return StorageGateway(client=client, settings=settings, **kwargs)
