"""
HOUSEKEEPING CORE - Inventory Reconciliation
============================================
Turns the quantities a housekeeper entered on completion into stock changes.

Consumables (minibar, amenities, services, vouchers) are depleted: stock goes
down and the usage is attributable to the guest.
Cyclables (linen, assets) are swapped: dirty pieces leave the room for the
laundry pool and clean pieces come out of stock into the room, applied
together so total assets never move.

On a checkout the room's standard linen, plus anything the guest borrowed, is
expected back. What comes back short is written into the task note; the
room is always restocked to standard only.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

from .catalog import InventoryCatalog, ResolvedRecipeLine
from .schema import (
    ItemDefinition, LendingRecord, InventoryTransaction, TransactionType,
    TaskKind, format_timestamp,
)

logger = logging.getLogger("housekeeping.reconcile")

SHORTAGE_LABEL = "[BÁO MẤT/HỎNG]"


class ConsumptionInstruction(BaseModel):
    item_id: str
    item_name: str
    quantity: int
    known: bool = True           # False when the item is not in the catalog


class CycleInstruction(BaseModel):
    """Matched dirty-out / clean-in pair for one item"""
    item_id: str
    item_name: str
    dirty_return_qty: int
    clean_restock_qty: int


class ReturnLine(BaseModel):
    """Expected return for one item on checkout"""
    item_id: str
    name: str
    total_qty: int               # standard + lent
    standard_qty: int
    lending_qty: int = 0


class ReconciliationResult(BaseModel):
    consumed: List[ConsumptionInstruction] = Field(default_factory=list)
    cycled: List[CycleInstruction] = Field(default_factory=list)
    return_list: List[ReturnLine] = Field(default_factory=list)
    shortages: List[str] = Field(default_factory=list)
    linen_exchanged: int = 0

    @property
    def shortage_note(self) -> str:
        return ", ".join(self.shortages)


class StockPlan(BaseModel):
    """Item rows to write back and audit entries to append"""
    items: List[ItemDefinition] = Field(default_factory=list)
    transactions: List[InventoryTransaction] = Field(default_factory=list)
    untracked: Dict[str, int] = Field(default_factory=dict)   # item id -> pieces the pools could not cover


def clamp(quantity) -> int:
    try:
        return max(0, int(quantity))
    except (TypeError, ValueError):
        return 0


# ========================================
# CLASSIFICATION
# ========================================

def classify(entered_quantities: Dict[str, int], catalog: InventoryCatalog) -> ReconciliationResult:
    """Split entered quantities into consumed and cycled. Unknown items count as consumed."""
    result = ReconciliationResult()
    for key, raw_qty in entered_quantities.items():
        qty = clamp(raw_qty)
        if qty <= 0:
            continue

        item = catalog.resolve(key)
        if item is not None and item.category.is_cyclable:
            result.cycled.append(CycleInstruction(
                item_id=item.id,
                item_name=item.name,
                dirty_return_qty=qty,
                clean_restock_qty=qty,
            ))
        else:
            result.consumed.append(ConsumptionInstruction(
                item_id=item.id if item else key,
                item_name=item.name if item else key,
                quantity=qty,
                known=item is not None,
            ))
    return result


def build_return_list(
    recipe_lines: Iterable[ResolvedRecipeLine],
    lending: Iterable[LendingRecord] = (),
) -> List[ReturnLine]:
    """Standard linen/assets of the room, with borrowed items merged on top"""
    combined: Dict[str, ReturnLine] = {}

    for resolved in recipe_lines:
        if resolved.category is None or not resolved.category.is_cyclable:
            continue
        combined[resolved.item_id] = ReturnLine(
            item_id=resolved.item_id,
            name=resolved.name,
            total_qty=resolved.line.quantity,
            standard_qty=resolved.line.quantity,
        )

    for record in lending:
        qty = clamp(record.quantity)
        if qty <= 0:
            continue
        existing = combined.get(record.item_id)
        if existing is not None:
            existing.total_qty += qty
            existing.lending_qty += qty
        else:
            combined[record.item_id] = ReturnLine(
                item_id=record.item_id,
                name=record.item_name or record.item_id,
                total_qty=qty,
                standard_qty=0,
                lending_qty=qty,
            )

    return list(combined.values())


def reconcile(
    kind: TaskKind,
    room_type: Optional[str],
    entered_quantities: Dict[str, int],
    returned_counts: Dict[str, int],
    catalog: InventoryCatalog,
    lending: Iterable[LendingRecord] = (),
) -> ReconciliationResult:
    """
    Classify entered quantities and, for a checkout, reconcile the return list.

    returned_counts holds the housekeeper's dirty count per return-list item;
    an item left out is taken as fully returned.
    """
    result = classify(entered_quantities, catalog)

    if kind != TaskKind.CHECKOUT:
        result.linen_exchanged = sum(pair.clean_restock_qty for pair in result.cycled)
        return result

    result.return_list = build_return_list(catalog.recipe_lines(room_type), lending)
    returned_total = 0
    for line in result.return_list:
        actual_dirty = clamp(returned_counts.get(line.item_id, line.total_qty))
        replenish = line.standard_qty
        returned_total += actual_dirty

        if actual_dirty > 0 or replenish > 0:
            result.cycled.append(CycleInstruction(
                item_id=line.item_id,
                item_name=line.name,
                dirty_return_qty=actual_dirty,
                clean_restock_qty=replenish,
            ))

        if actual_dirty < line.total_qty:
            result.shortages.append(f"{line.name} x{line.total_qty - actual_dirty}")

    result.linen_exchanged = returned_total
    return result


def annotate_note(note: Optional[str], shortage_note: str) -> str:
    note = note or ""
    if not shortage_note:
        return note
    return f"{note}\n{SHORTAGE_LABEL}: {shortage_note}"


# ========================================
# STOCK MUTATIONS
# ========================================

def apply_consumption(item: ItemDefinition, quantity: int) -> ItemDefinition:
    return item.model_copy(update={"stock": max(0, item.stock - quantity)})


def cycle_moves(item: ItemDefinition, dirty_return_qty: int, clean_restock_qty: int) -> Tuple[int, int]:
    """Pieces that can actually move: (dirty to laundry, clean to room).

    Each move is bounded by what its source pool holds, so the sum of the
    pools never changes.
    """
    moved_dirty = min(max(0, dirty_return_qty), item.in_circulation)
    moved_clean = min(max(0, clean_restock_qty), item.stock)
    return moved_dirty, moved_clean


def apply_cycle(item: ItemDefinition, dirty_return_qty: int, clean_restock_qty: int) -> ItemDefinition:
    """Room -> laundry for the dirty pieces, stock -> room for the clean ones"""
    moved_dirty, moved_clean = cycle_moves(item, dirty_return_qty, clean_restock_qty)
    in_circulation = item.in_circulation - moved_dirty + moved_clean
    laundry_stock = item.laundry_stock + moved_dirty
    stock = item.stock - moved_clean

    return item.model_copy(update={
        "in_circulation": in_circulation,
        "laundry_stock": laundry_stock,
        "stock": stock,
    })


def plan_stock_mutations(
    result: ReconciliationResult,
    catalog: InventoryCatalog,
    now: datetime,
    room_code: str,
    facility_name: Optional[str] = None,
    task_id: Optional[str] = None,
    staff_id: str = "SYS",
    staff_name: str = "System",
) -> StockPlan:
    """Fold every instruction into one updated row per item, computed from the catalog's counters."""
    updated: Dict[str, ItemDefinition] = {}
    transactions: List[InventoryTransaction] = []
    untracked: Dict[str, int] = {}
    created_at = format_timestamp(now)

    def audit(item: ItemDefinition, tx_type: TransactionType, quantity: int, total: float, note: str):
        transactions.append(InventoryTransaction(
            created_at=created_at,
            staff_id=staff_id,
            staff_name=staff_name,
            item_id=item.id,
            item_name=item.name,
            type=tx_type,
            quantity=quantity,
            price=item.cost_price,
            total=total,
            facility_name=facility_name,
            note=note,
            task_id=task_id,
            room_code=room_code,
        ))

    for instruction in result.consumed:
        item = updated.get(instruction.item_id) or catalog.resolve(instruction.item_id)
        if item is None:
            continue
        updated[item.id] = apply_consumption(item, instruction.quantity)
        tx_type = TransactionType.MINIBAR_SOLD if item.price > 0 else TransactionType.AMENITY_USED
        audit(item, tx_type, instruction.quantity, item.cost_price * instruction.quantity,
              f"Khách dùng tại phòng {room_code}")

    for pair in result.cycled:
        item = updated.get(pair.item_id) or catalog.resolve(pair.item_id)
        if item is None:
            continue
        moved_dirty, moved_clean = cycle_moves(item, pair.dirty_return_qty, pair.clean_restock_qty)
        updated[item.id] = apply_cycle(item, pair.dirty_return_qty, pair.clean_restock_qty)
        note = f"Phòng {room_code}: thu bẩn {moved_dirty}, cấp sạch {moved_clean}"

        shortfall_dirty = pair.dirty_return_qty - moved_dirty
        shortfall_clean = pair.clean_restock_qty - moved_clean
        if shortfall_dirty or shortfall_clean:
            untracked[item.id] = untracked.get(item.id, 0) + shortfall_dirty + shortfall_clean
            note += f" (ngoài sổ: bẩn {shortfall_dirty}, sạch {shortfall_clean})"
            logger.warning(
                f"⚠️ {item.id}: pools too small for room {room_code}, "
                f"{shortfall_dirty} dirty and {shortfall_clean} clean pieces left untracked"
            )
        audit(item, TransactionType.EXCHANGE, moved_clean, 0, note)

    return StockPlan(items=list(updated.values()), transactions=transactions, untracked=untracked)
