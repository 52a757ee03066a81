"""
HOUSEKEEPING CORE - Task Derivation
===================================
Builds the day's work list from persisted tasks and live room/stay state.

Pure: no I/O, and malformed timestamps never raise. A task or stay whose
timestamp cannot be parsed is simply left out of the time comparison it
would have taken part in.
"""

from datetime import date, datetime, timedelta, tzinfo
from typing import Dict, Iterable, List, Optional, Tuple

from .schema import (
    Room, RoomStatus, Stay, StayStatus,
    HousekeepingTask, DerivedTask, DerivationBasis, TaskView,
    TaskKind, TaskStatus, TaskPriority,
    STATUS_ORDER, KIND_ORDER,
    ensure_aware, parse_timestamp, format_timestamp,
)

ANTI_GHOST_MINUTES = 120
DEFAULT_ROOM_TYPE = "1GM8"

DIRTY_NOTE = "Phòng báo Bẩn (Tự động đồng bộ)"
STAYOVER_NOTE = "Khách đang ở (Tự động)"

RoomKey = Tuple[str, str]


def parse_day(value: Optional[str], tz: tzinfo) -> Optional[date]:
    """Calendar day of a timestamp in the given zone. Date-only strings are taken as-is."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if len(text) == 10:
        try:
            return date.fromisoformat(text)
        except ValueError:
            return None
    parsed = parse_timestamp(text)
    if parsed is None:
        return None
    return parsed.astimezone(tz).date()


def recent_completions(tasks: Iterable[HousekeepingTask]) -> Dict[RoomKey, datetime]:
    """Latest completion per room; creation time stands in for a missing/invalid completion time."""
    latest: Dict[RoomKey, datetime] = {}
    for task in tasks:
        if task.status != TaskStatus.DONE:
            continue
        finished = parse_timestamp(task.completed_at) or parse_timestamp(task.created_at)
        if finished is None:
            continue
        current = latest.get(task.key)
        if current is None or finished > current:
            latest[task.key] = finished
    return latest


def active_index(tasks: Iterable[HousekeepingTask], now: datetime) -> Dict[RoomKey, HousekeepingTask]:
    """Open tasks, plus tasks done today for same-day history. Later entries win."""
    now = ensure_aware(now)
    today = now.date()
    index: Dict[RoomKey, HousekeepingTask] = {}
    for task in tasks:
        created = parse_timestamp(task.created_at)
        if created is None:
            continue
        if task.status != TaskStatus.DONE or created.astimezone(now.tzinfo).date() == today:
            index[task.key] = task
    return index


def find_stayover(room: Room, stays: Iterable[Stay], today: date, tz: tzinfo) -> Optional[Stay]:
    """In-house stay with check-in before today and check-out after today"""
    for stay in stays:
        if stay.status != StayStatus.CHECKED_IN or not stay.matches_room(room):
            continue
        check_in = parse_day(stay.check_in, tz)
        check_out = parse_day(stay.check_out, tz)
        if check_in is None or check_out is None:
            continue
        if check_in < today < check_out:
            return stay
        # Only the first in-house stay for the room is considered
        return None
    return None


def _sort_key(view: TaskView) -> Tuple[int, int]:
    return (
        STATUS_ORDER.get(view.display_status, len(STATUS_ORDER)),
        KIND_ORDER.get(view.kind, len(KIND_ORDER)),
    )


def derive_tasks(
    rooms: Iterable[Room],
    stays: Iterable[Stay],
    persisted_tasks: Iterable[HousekeepingTask],
    now: datetime,
    anti_ghost_minutes: int = ANTI_GHOST_MINUTES,
    default_room_type: str = DEFAULT_ROOM_TYPE,
) -> List[TaskView]:
    """
    One row per room that has work (or finished work today), sorted
    In Progress -> Pending -> Done, then Checkout -> Dirty -> Stayover -> Vacant.
    """
    now = ensure_aware(now)
    tz = now.tzinfo
    today = now.date()
    cooldown = timedelta(minutes=anti_ghost_minutes)

    persisted_tasks = list(persisted_tasks)
    stays = list(stays)
    last_done = recent_completions(persisted_tasks)
    existing = active_index(persisted_tasks, now)

    views: List[TaskView] = []
    for room in sorted(rooms, key=lambda r: (r.facility_id, r.code)):
        room_type = room.room_type or default_room_type
        task = existing.get(room.key)

        # 1. Persisted task wins. A room already being cleaned shows its stale Pending task as started.
        if task is not None:
            display = task.status
            if room.status == RoomStatus.CLEANING and task.status == TaskStatus.PENDING:
                display = TaskStatus.IN_PROGRESS
            views.append(TaskView(
                task=task,
                display_status=display,
                room_status=room.status,
                room_type=room_type,
                facility_name=room.facility_name,
            ))
            continue

        # Anti-ghost: a room finished moments ago may still read dirty
        finished = last_done.get(room.key)
        if finished is not None and now - finished < cooldown:
            continue

        facility_code = f"{room.facility_id}_{room.code}"

        # 2. Dirty room
        if room.status in (RoomStatus.DIRTY, RoomStatus.CLEANING):
            derived = DerivedTask(
                synthetic_id=f"VIRTUAL_{facility_code}",
                facility_id=room.facility_id,
                room_code=room.code,
                kind=TaskKind.DIRTY,
                priority=TaskPriority.HIGH,
                basis=DerivationBasis.DIRTY_ROOM,
                note=DIRTY_NOTE,
                created_at=format_timestamp(now),
            )
            display = TaskStatus.IN_PROGRESS if room.status == RoomStatus.CLEANING else TaskStatus.PENDING
            views.append(TaskView(
                task=derived,
                display_status=display,
                room_status=room.status,
                room_type=room_type,
                facility_name=room.facility_name,
            ))
            continue

        # 3. Guest staying through today
        if find_stayover(room, stays, today, tz) is not None:
            derived = DerivedTask(
                synthetic_id=f"AUTO_STAYOVER_{facility_code}",
                facility_id=room.facility_id,
                room_code=room.code,
                kind=TaskKind.STAYOVER,
                priority=TaskPriority.NORMAL,
                basis=DerivationBasis.STAYOVER,
                note=STAYOVER_NOTE,
                created_at=format_timestamp(now),
            )
            views.append(TaskView(
                task=derived,
                display_status=TaskStatus.PENDING,
                room_status=room.status,
                room_type=room_type,
                facility_name=room.facility_name,
            ))

    return sorted(views, key=_sort_key)
