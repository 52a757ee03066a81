"""
HOUSEKEEPING CORE - Housekeeping Manager
========================================
Loads rooms, stays, tasks and inventory through the storage gateway, derives
the work list and drives each task through Pending -> In Progress -> Done.

The loaded snapshot only moves forward once every write of a transition has
gone through (or was skipped in degraded mode). The task row is written last
and only when the stock and room writes succeeded, so a failed transition
leaves the stored task in its previous status and can simply be retried:
item counters are recomputed from the same snapshot, so the stock rows get
the same values again. The inventory log does get new entries.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from .catalog import InventoryCatalog, VarianceLine
from .config import Settings, get_settings
from .deriver import derive_tasks, parse_day
from .errors import (
    InvalidTransitionError, PersistenceError, StaleTaskError, TaskNotFoundError,
)
from .gateway import StorageGateway, WriteResult
from .reconcile import (
    ReconciliationResult, annotate_note, plan_stock_mutations, reconcile,
)
from .schema import (
    AnyTask, ChecklistItem, DerivedTask, HousekeepingTask, InventoryTransaction, ItemDefinition,
    Room, RoomRecipe, RoomStatus, Stay, StayStatus, TaskKind, TaskStatus, TaskView,
    default_checklist, ensure_aware, format_timestamp, parse_timestamp, points_for, promote, utc_now,
)

logger = logging.getLogger("housekeeping")


class CompletionPayload(BaseModel):
    """What the housekeeper entered when finishing a room"""
    checklist: Optional[List[ChecklistItem]] = None
    entered_quantities: Dict[str, int] = Field(default_factory=dict)   # item id/name -> qty used
    returned_counts: Dict[str, int] = Field(default_factory=dict)      # item id -> dirty pieces collected
    photo_after: Optional[str] = None


class TransitionOutcome(BaseModel):
    task: HousekeepingTask
    writes: List[WriteResult] = Field(default_factory=list)
    reconciliation: Optional[ReconciliationResult] = None

    @property
    def ok(self) -> bool:
        return all(write.ok for write in self.writes)

    @property
    def failures(self) -> List[WriteResult]:
        return [write for write in self.writes if not write.ok]


class HousekeepingManager:
    """
    Entry point for collaborators.

    Exposes get_derived_tasks(), start_task(id), complete_task(id, payload)
    and get_inventory_variance(). One active editor per task is assumed;
    transitions re-read the task first and refuse to act on a stale copy.
    """

    def __init__(
        self,
        gateway: StorageGateway,
        settings: Optional[Settings] = None,
        operator: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.gateway = gateway
        self.settings = settings or gateway.settings or get_settings()
        self.operator = operator or self.settings.operator_name
        self._clock = clock

        self.rooms: List[Room] = []
        self.stays: List[Stay] = []
        self.tasks: List[HousekeepingTask] = []
        self.items: List[ItemDefinition] = []
        self.recipes: Dict[str, RoomRecipe] = {}
        self._loaded = False

    # ========================================
    # LOADING
    # ========================================

    def connect(self) -> bool:
        """Check connectivity and schema, then load. Returns False when running degraded."""
        self.gateway.check_connection()
        report = self.gateway.check_schema()
        if report.drifted:
            logger.warning(f"⚠️ Database schema is out of date: {report.model_dump()}")
        self.refresh()
        return not self.gateway.is_degraded

    def refresh(self) -> None:
        now = self._clock()
        self.rooms = self.gateway.get_rooms()
        self.stays = self.gateway.get_stays(now)
        self.tasks = self.gateway.get_tasks(now)
        self.items = self.gateway.get_items()
        self.recipes = self.gateway.get_recipes()
        self._loaded = True
        logger.info(
            f"📂 Loaded {len(self.rooms)} rooms, {len(self.stays)} stays, "
            f"{len(self.tasks)} tasks, {len(self.items)} items ({self.gateway.state.mode.value})"
        )

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.refresh()

    @property
    def catalog(self) -> InventoryCatalog:
        return InventoryCatalog(self.items, self.recipes)

    # ========================================
    # QUERIES
    # ========================================

    def get_derived_tasks(self) -> List[TaskView]:
        self._ensure_loaded()
        return derive_tasks(
            self.rooms,
            self.stays,
            self.tasks,
            self._clock(),
            anti_ghost_minutes=self.settings.anti_ghost_minutes,
            default_room_type=self.settings.default_room_type,
        )

    def get_inventory_variance(self) -> List[VarianceLine]:
        """Required vs actual per item, shortages first"""
        self._ensure_loaded()
        return self.catalog.variance(self.rooms)

    # ========================================
    # TRANSITIONS
    # ========================================

    def start_task(self, task_id: str) -> TransitionOutcome:
        """Pending -> In Progress. A virtual task is promoted to a persisted one here."""
        self._ensure_loaded()
        now = self._clock()
        task = self._locate(task_id)

        if isinstance(task, DerivedTask):
            self._check_room_free(task)
            base = promote(task, now, self.operator)
        else:
            if task.status != TaskStatus.PENDING:
                raise InvalidTransitionError(task.id, task.status, "start")
            self._check_remote(task, TaskStatus.PENDING, "start")
            base = task

        started = base.model_copy(update={
            "status": TaskStatus.IN_PROGRESS,
            "started_at": format_timestamp(now),
            "assignee": base.assignee or self.operator,
            "points": points_for(base.kind),
        })

        room = self._find_room(started.facility_id, started.room_code)
        cleaning_room = None
        writes: List[WriteResult] = []
        if room is not None and room.status != RoomStatus.CLEANING:
            cleaning_room = room.model_copy(update={"status": RoomStatus.CLEANING})
            writes.append(self.gateway.upsert_room(cleaning_room))
        self._write_task_last(started, writes)

        outcome = TransitionOutcome(task=started, writes=writes)
        if not outcome.ok:
            logger.error(f"❌ Could not start task for room {started.room_code}: {outcome.failures}")
            raise PersistenceError(f"Could not start task for room {started.room_code}, please retry", outcome)

        self._commit_task(started)
        if cleaning_room is not None:
            self._commit_room(cleaning_room)

        logger.info(f"▶️ Started {started.kind.value} task for room {started.room_code} ({started.id})")
        return outcome

    def complete_task(self, task_id: str, payload: Optional[CompletionPayload] = None) -> TransitionOutcome:
        """In Progress -> Done: reconcile inventory, mark the room clean."""
        self._ensure_loaded()
        payload = payload or CompletionPayload()
        now = self._clock()
        task = self._locate(task_id)

        if isinstance(task, DerivedTask) or task.status != TaskStatus.IN_PROGRESS:
            raise InvalidTransitionError(task.id, task.status, "complete")
        self._check_remote(task, TaskStatus.IN_PROGRESS, "complete")

        room = self._find_room(task.facility_id, task.room_code)
        room_type = (room.room_type if room else None) or self.settings.default_room_type
        lending = []
        if task.kind == TaskKind.CHECKOUT and room is not None:
            stay = self._find_checkout_stay(room, now)
            if stay is not None:
                lending = stay.lending

        catalog = self.catalog
        result = reconcile(
            task.kind,
            room_type,
            payload.entered_quantities,
            payload.returned_counts,
            catalog,
            lending,
        )
        plan = plan_stock_mutations(
            result,
            catalog,
            now,
            room_code=task.room_code,
            facility_name=room.facility_name if room else None,
            task_id=task.id,
            staff_id=self.operator or "SYS",
            staff_name=self.operator or "System",
        )

        if payload.checklist is not None:
            checklist = payload.checklist
        else:
            checklist = task.checklist or default_checklist()

        done = task.model_copy(update={
            "status": TaskStatus.DONE,
            "completed_at": format_timestamp(now),
            "checklist": checklist,
            "linen_exchanged": result.linen_exchanged,
            "note": annotate_note(task.note, result.shortage_note),
            "photo_after": payload.photo_after or task.photo_after,
        })

        writes = [self.gateway.update_item(item) for item in plan.items]
        if plan.transactions:
            writes.append(self.gateway.add_transactions(plan.transactions))
        clean_room = None
        if room is not None:
            clean_room = room.model_copy(update={"status": RoomStatus.CLEAN})
            writes.append(self.gateway.upsert_room(clean_room))
        self._write_task_last(done, writes)

        outcome = TransitionOutcome(task=done, writes=writes, reconciliation=result)
        if not outcome.ok:
            logger.error(f"❌ Completion of room {task.room_code} partly failed: {outcome.failures}")
            raise PersistenceError(f"Could not complete room {task.room_code}, please retry", outcome)

        self._commit_items(plan.items)
        self._commit_task(done)
        if clean_room is not None:
            self._commit_room(clean_room)

        if result.shortages:
            logger.warning(f"⚠️ Room {task.room_code} returned short: {result.shortage_note}")
        logger.info(f"✅ Completed {done.kind.value} task for room {done.room_code} ({done.id})")
        return outcome

    # ========================================
    # HELPER METHODS
    # ========================================

    def _locate(self, task_id: str) -> AnyTask:
        """Persisted task by id, else a virtual task from the current derivation"""
        for task in self.tasks:
            if task.id == task_id:
                return task
        for view in self.get_derived_tasks():
            if view.is_virtual and view.id == task_id:
                return view.task
        raise TaskNotFoundError(task_id)

    def _check_remote(self, task: HousekeepingTask, expected: TaskStatus, action: str) -> None:
        """Refuse to act when the stored task has moved on. An unreadable row is not a conflict."""
        remote = self.gateway.get_task(task.id)
        if remote is None or remote.status == expected:
            return
        self._commit_task(remote)
        logger.warning(f"⛔ Task {task.id} is {remote.status.value} in the store, refusing to {action}")
        raise StaleTaskError(task.id, remote.status, action)

    def _check_room_free(self, task: DerivedTask) -> None:
        """Refuse to promote a virtual task when the room already has an active task in the store."""
        active = self.gateway.get_active_tasks(task.facility_id, task.room_code)
        if not active:
            return
        for remote in active:
            self._commit_task(remote)
        logger.warning(
            f"⛔ Room {task.room_code} already has task {active[0].id} ({active[0].status.value}), refusing to start"
        )
        raise StaleTaskError(task.id, active[0].status, "start")

    def _write_task_last(self, task: HousekeepingTask, writes: List[WriteResult]) -> None:
        """The task row goes out only after every other write succeeded, so a retry still finds its old status."""
        failed = [write for write in writes if not write.ok]
        if failed:
            logger.warning(
                f"⚠️ Holding back task {task.id}: {', '.join(w.table for w in failed)} not written"
            )
            return
        writes.append(self.gateway.sync_tasks([task]))

    def _find_room(self, facility_id: str, room_code: str) -> Optional[Room]:
        for room in self.rooms:
            if room.facility_id == facility_id and room.code == room_code:
                return room
        return None

    def _find_checkout_stay(self, room: Room, now: datetime) -> Optional[Stay]:
        """Most recent stay leaving this room today (or overdue)"""
        now = ensure_aware(now)
        tz = now.tzinfo
        today = now.date()
        candidates = [stay for stay in self.stays if stay.matches_room(room)]
        candidates.sort(key=lambda s: parse_timestamp(s.created_at) or datetime.min.replace(tzinfo=tz), reverse=True)

        for stay in candidates:
            if stay.status == StayStatus.CHECKED_OUT:
                if parse_day(stay.actual_check_out or stay.check_out, tz) == today:
                    return stay
            elif stay.status == StayStatus.CHECKED_IN:
                check_out = parse_day(stay.check_out, tz)
                if check_out is not None and check_out <= today:
                    return stay
        return None

    def _commit_task(self, task: HousekeepingTask) -> None:
        for index, existing in enumerate(self.tasks):
            if existing.id == task.id:
                self.tasks[index] = task
                return
        self.tasks.append(task)

    def _commit_room(self, room: Room) -> None:
        for index, existing in enumerate(self.rooms):
            if existing.key == room.key:
                self.rooms[index] = room
                return

    def _commit_items(self, items: Iterable[ItemDefinition]) -> None:
        by_id = {item.id: item for item in items}
        self.items = [by_id.get(item.id, item) for item in self.items]

    # ========================================
    # REPORTING
    # ========================================

    def get_recent_transactions(self, limit: int = 50) -> List[InventoryTransaction]:
        """Latest audit-log entries, newest first"""
        return self.gateway.get_transactions(limit=limit)

    def get_status_report(self) -> str:
        """Human-readable summary of today's work list"""
        views = self.get_derived_tasks()
        state = self.gateway.state
        snapshots = self.gateway.cache.list_snapshots()
        movements = self.get_recent_transactions(limit=5)

        status_icons = {
            TaskStatus.PENDING: "⬜",
            TaskStatus.IN_PROGRESS: "🔵",
            TaskStatus.DONE: "✅",
        }

        done = sum(1 for v in views if v.display_status == TaskStatus.DONE)
        lines = [
            f"🧹 Housekeeping: {done}/{len(views)} done",
            f"Store: {state.mode.value}" + (" (working offline)" if state.degraded else ""),
        ]
        if state.schema_warning:
            lines.append(f"⚠️ Schema out of date: {state.missing_columns}")
        if snapshots:
            lines.append(f"Last-good data: {len(snapshots)} tables cached")
        lines.extend(["", "Tasks:"])

        for view in views:
            icon = status_icons.get(view.display_status, "❓")
            origin = " (auto)" if view.is_virtual else ""
            assignee = f" [{view.task.assignee}]" if view.task.assignee else ""
            lines.append(
                f"  {icon} {view.facility_name or view.task.facility_id} / {view.task.room_code} "
                f"{view.kind.value}{origin}{assignee}"
            )

        if movements:
            lines.extend(["", "Recent stock movements:"])
            for tx in movements:
                room = f" @ {tx.room_code}" if tx.room_code else ""
                lines.append(f"  {tx.type.value} {tx.item_name or tx.item_id} x{tx.quantity}{room}")

        return "\n".join(lines)
