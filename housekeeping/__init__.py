"""
HOUSEKEEPING CORE - Hotel Housekeeping & Inventory
==================================================

Derives the day's cleaning work from room and stay state, tracks each task
from Pending to Done, and reconciles linen and minibar stock when a room is
finished. Keeps working on built-in data when the store is unreachable.

Usage:
    from housekeeping import HousekeepingManager, CompletionPayload, create_gateway

    manager = HousekeepingManager(create_gateway(), operator="Lan")
    manager.connect()

    for view in manager.get_derived_tasks():
        print(view.id, view.kind, view.display_status)

    # Start a (possibly virtual) task, then finish it
    outcome = manager.start_task("VIRTUAL_F001_104")
    manager.complete_task(outcome.task.id, CompletionPayload(
        entered_quantities={"M_COCA": 2},
        returned_counts={"L_GOI": 1},
    ))

    print(manager.get_status_report())
"""

from .schema import (
    RoomStatus,
    StayStatus,
    ItemCategory,
    TaskKind,
    TaskStatus,
    TaskPriority,
    TransactionType,
    Facility,
    Room,
    Stay,
    LendingRecord,
    ItemDefinition,
    RecipeLine,
    RoomRecipe,
    InventoryTransaction,
    ChecklistItem,
    HousekeepingTask,
    DerivedTask,
    TaskView,
    promote,
)

from .errors import (
    HousekeepingError,
    TaskNotFoundError,
    InvalidTransitionError,
    StaleTaskError,
    PersistenceError,
    GatewayError,
)

from .config import Settings, get_settings, configure_logging
from .gateway import StorageGateway, ConnectionState, WriteResult, WriteStatus, create_gateway
from .catalog import InventoryCatalog, VarianceLine, VarianceStatus
from .deriver import derive_tasks
from .reconcile import ReconciliationResult, reconcile
from .manager import HousekeepingManager, CompletionPayload, TransitionOutcome

__version__ = "1.0.0"
__all__ = [
    "HousekeepingManager",
    "CompletionPayload",
    "TransitionOutcome",
    "StorageGateway",
    "ConnectionState",
    "WriteResult",
    "WriteStatus",
    "create_gateway",
    "InventoryCatalog",
    "VarianceLine",
    "VarianceStatus",
    "derive_tasks",
    "reconcile",
    "ReconciliationResult",
    "Settings",
    "get_settings",
    "configure_logging",
    "RoomStatus",
    "StayStatus",
    "ItemCategory",
    "TaskKind",
    "TaskStatus",
    "TaskPriority",
    "TransactionType",
    "Facility",
    "Room",
    "Stay",
    "LendingRecord",
    "ItemDefinition",
    "RecipeLine",
    "RoomRecipe",
    "InventoryTransaction",
    "ChecklistItem",
    "HousekeepingTask",
    "DerivedTask",
    "TaskView",
    "promote",
    "HousekeepingError",
    "TaskNotFoundError",
    "InvalidTransitionError",
    "StaleTaskError",
    "PersistenceError",
    "GatewayError",
]
