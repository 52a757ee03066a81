"""
HOUSEKEEPING CORE - Domain Schema
=================================
Rooms, stays, inventory items, recipes and housekeeping tasks.

Timestamps on records read from the store are kept as the ISO-8601 strings
the store returned; use parse_timestamp() to compare them.
"""

from enum import Enum
from typing import Optional, List, Union
from datetime import datetime, timezone
from pydantic import BaseModel, Field, TypeAdapter, ValidationError
import uuid


class RoomStatus(str, Enum):
    """Live room status (values as operators see them)"""
    CLEAN = "Đã dọn"
    DIRTY = "Bẩn"
    CLEANING = "Đang dọn"
    OUT_OF_SERVICE = "Sửa chữa"


class StayStatus(str, Enum):
    CONFIRMED = "Confirmed"
    CHECKED_IN = "CheckedIn"
    CHECKED_OUT = "CheckedOut"
    CANCELLED = "Cancelled"


class ItemCategory(str, Enum):
    """Inventory item categories"""
    LINEN = "Linen"       # Cycled through laundry
    ASSET = "Asset"       # Durable, cycled
    MINIBAR = "Minibar"   # Sold to guest
    AMENITY = "Amenity"   # Used up, free
    SERVICE = "Service"
    VOUCHER = "Voucher"

    @property
    def is_cyclable(self) -> bool:
        return self in (ItemCategory.LINEN, ItemCategory.ASSET)


class TaskKind(str, Enum):
    CHECKOUT = "Checkout"
    STAYOVER = "Stayover"
    DIRTY = "Dirty"
    VACANT = "Vacant"


class TaskStatus(str, Enum):
    """Task lifecycle states"""
    PENDING = "Pending"           # Not started
    IN_PROGRESS = "In Progress"   # Being cleaned
    DONE = "Done"                 # Terminal


class TaskPriority(str, Enum):
    HIGH = "High"
    NORMAL = "Normal"
    LOW = "Low"


class DerivationBasis(str, Enum):
    """Why a virtual task exists"""
    DIRTY_ROOM = "dirty_room"
    STAYOVER = "stayover"


class TransactionType(str, Enum):
    IN = "IN"
    OUT = "OUT"
    LAUNDRY_SEND = "LAUNDRY_SEND"
    LAUNDRY_RECEIVE = "LAUNDRY_RECEIVE"
    ADJUST = "ADJUST"
    EXCHANGE = "EXCHANGE"
    MINIBAR_SOLD = "MINIBAR_SOLD"
    AMENITY_USED = "AMENITY_USED"


# Workload weight per task kind, stored on the task when it is started
WORKLOAD_POINTS = {
    TaskKind.CHECKOUT: 4,
    TaskKind.DIRTY: 2,
}
DEFAULT_POINTS = 1

STATUS_ORDER = {
    TaskStatus.IN_PROGRESS: 0,
    TaskStatus.PENDING: 1,
    TaskStatus.DONE: 2,
}

KIND_ORDER = {
    TaskKind.CHECKOUT: 0,
    TaskKind.DIRTY: 1,
    TaskKind.STAYOVER: 2,
    TaskKind.VACANT: 3,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


_DATETIME = TypeAdapter(datetime)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (any fraction width, Z or offset); None when absent or malformed."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = _DATETIME.validate_python(value.strip())
    except ValidationError:
        return None
    return ensure_aware(parsed)


def format_timestamp(value: datetime) -> str:
    return ensure_aware(value).isoformat()


# ============================================================
# ROOMS & STAYS
# ============================================================

class Facility(BaseModel):
    id: str
    name: str


class Room(BaseModel):
    """A sellable room. Only `status` is written by this package."""
    id: str
    facility_id: str
    facility_name: Optional[str] = None
    code: str                              # e.g. "101"
    # Known values load as RoomStatus; anything else an operator typed is kept as text
    status: Union[RoomStatus, str] = Field(default=RoomStatus.CLEAN, union_mode="left_to_right")
    room_type: Optional[str] = None        # Keys into RoomRecipe
    note: Optional[str] = None
    price: Optional[float] = None
    price_saturday: Optional[float] = None
    view: Optional[str] = None
    area: Optional[float] = None

    @property
    def key(self) -> tuple:
        return (self.facility_id, self.code)


class LendingRecord(BaseModel):
    """Item borrowed by the guest on top of the room's standard load-out"""
    item_id: str
    item_name: str = ""
    quantity: int = 0
    borrowed_at: Optional[str] = None
    returned: bool = False


class Stay(BaseModel):
    """Booking, read-only here"""
    id: str
    facility_id: Optional[str] = None
    facility_name: Optional[str] = None
    room_code: str
    created_at: Optional[str] = None
    check_in: Optional[str] = None
    check_out: Optional[str] = None
    actual_check_in: Optional[str] = None
    actual_check_out: Optional[str] = None
    status: StayStatus = StayStatus.CONFIRMED
    lending: List[LendingRecord] = Field(default_factory=list)

    def matches_room(self, room: Room) -> bool:
        if self.room_code != room.code:
            return False
        if self.facility_id:
            return self.facility_id == room.facility_id
        return bool(self.facility_name) and self.facility_name == room.facility_name


# ============================================================
# INVENTORY
# ============================================================

class ItemDefinition(BaseModel):
    """Inventory item with its stock counters"""
    id: str
    name: str
    unit: str = ""
    category: ItemCategory = ItemCategory.AMENITY
    price: float = 0
    cost_price: float = 0
    stock: int = 0               # Clean, ready to use
    min_stock: int = 0
    laundry_stock: int = 0       # Dirty, waiting for laundry
    vendor_stock: int = 0        # At the laundry vendor
    in_circulation: int = 0      # In rooms (standard load-out or lent)
    total_assets: int = 0        # Fixed asset count for durable goods
    default_qty: int = 0

    @property
    def actual_assets(self) -> int:
        if self.total_assets:
            return self.total_assets
        return self.stock + self.in_circulation + self.laundry_stock + self.vendor_stock


class RecipeLine(BaseModel):
    item_id: str                 # Item id, or its display name
    quantity: int = 0


class RoomRecipe(BaseModel):
    """Standard load-out of a room type"""
    room_type: str
    description: str = ""
    items: List[RecipeLine] = Field(default_factory=list)


class InventoryTransaction(BaseModel):
    """Append-only audit entry"""
    id: str = Field(default_factory=lambda: f"TR-{uuid.uuid4().hex[:12]}")
    created_at: str = Field(default_factory=lambda: format_timestamp(utc_now()))
    staff_id: str = "SYS"
    staff_name: str = "System"
    item_id: str
    item_name: str = ""
    type: TransactionType
    quantity: int = 0
    price: float = 0
    total: float = 0
    facility_name: Optional[str] = None
    note: Optional[str] = None
    task_id: Optional[str] = None
    room_code: Optional[str] = None


# ============================================================
# TASKS
# ============================================================

class ChecklistItem(BaseModel):
    id: str
    text: str
    completed: bool = False


DEFAULT_CHECKLIST = [
    ChecklistItem(id="1", text="Thay ga giường và vỏ gối"),
    ChecklistItem(id="2", text="Lau dọn nhà vệ sinh"),
    ChecklistItem(id="3", text="Hút bụi và Lau sàn"),
    ChecklistItem(id="4", text="Xịt thơm phòng"),
]


def default_checklist() -> List[ChecklistItem]:
    return [item.model_copy() for item in DEFAULT_CHECKLIST]


class HousekeepingTask(BaseModel):
    """Persisted task, has a durable id"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    facility_id: str
    room_code: str
    kind: TaskKind
    status: TaskStatus = TaskStatus.PENDING
    assignee: Optional[str] = None
    priority: TaskPriority = TaskPriority.NORMAL

    created_at: str = Field(default_factory=lambda: format_timestamp(utc_now()))
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    note: str = ""
    points: Optional[int] = None
    checklist: List[ChecklistItem] = Field(default_factory=list)
    photo_before: Optional[str] = None
    photo_after: Optional[str] = None
    linen_exchanged: Optional[int] = None

    @property
    def key(self) -> tuple:
        return (self.facility_id, self.room_code)


class DerivedTask(BaseModel):
    """Virtual task synthesized from room/stay state. Implicitly Pending."""
    synthetic_id: str
    facility_id: str
    room_code: str
    kind: TaskKind
    priority: TaskPriority
    basis: DerivationBasis
    note: str = ""
    assignee: Optional[str] = None
    created_at: str

    status: TaskStatus = TaskStatus.PENDING

    @property
    def id(self) -> str:
        return self.synthetic_id

    @property
    def key(self) -> tuple:
        return (self.facility_id, self.room_code)


AnyTask = Union[HousekeepingTask, DerivedTask]


def points_for(kind: TaskKind) -> int:
    return WORKLOAD_POINTS.get(kind, DEFAULT_POINTS)


def promote(derived: DerivedTask, now: datetime, operator: Optional[str] = None) -> HousekeepingTask:
    """Turn a virtual task into a persisted one with a fresh id, still Pending."""
    return HousekeepingTask(
        id=str(uuid.uuid4()),
        facility_id=derived.facility_id,
        room_code=derived.room_code,
        kind=derived.kind,
        status=TaskStatus.PENDING,
        assignee=derived.assignee or operator,
        priority=derived.priority,
        created_at=format_timestamp(now),
        note=derived.note,
    )


class TaskView(BaseModel):
    """One row of the derived task list"""
    task: AnyTask
    display_status: TaskStatus
    room_status: Union[RoomStatus, str] = Field(union_mode="left_to_right")
    room_type: str
    facility_name: Optional[str] = None

    @property
    def id(self) -> str:
        return self.task.id

    @property
    def kind(self) -> TaskKind:
        return self.task.kind

    @property
    def is_virtual(self) -> bool:
        return isinstance(self.task, DerivedTask)
