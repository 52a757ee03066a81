"""
HOUSEKEEPING CORE - Wire Field Mapping
======================================
Column names in the store differ from the domain model (lowercased camelCase,
snake_case, legacy spellings). Each entity declares its mapping once here;
the maps are checked for duplicate names when this module is imported.

Fields marked `legacy=True` are newer columns that an older database may
lack. The gateway strips them and retries when a write hits schema drift.
"""

import json
from typing import Any, Callable, Dict, List, Tuple, Type

from pydantic import BaseModel

from .schema import (
    Facility, Room, Stay, ItemDefinition, RoomRecipe,
    HousekeepingTask, InventoryTransaction,
)


def _decode_json_list(value: Any) -> List[Any]:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    return value if isinstance(value, list) else []


def _encode_json_list(value: Any) -> str:
    return json.dumps(value or [], ensure_ascii=False)


def _decode_checklist(value: Any) -> List[Dict[str, Any]]:
    items = []
    for index, entry in enumerate(_decode_json_list(value)):
        if isinstance(entry, dict) and entry.get("text"):
            items.append({
                "id": str(entry.get("id", index + 1)),
                "text": entry["text"],
                "completed": bool(entry.get("completed", False)),
            })
    return items


def _decode_recipe_items(value: Any) -> List[Dict[str, Any]]:
    lines = []
    for entry in _decode_json_list(value):
        if not isinstance(entry, dict):
            continue
        item_id = entry.get("itemId", entry.get("item_id"))
        if item_id:
            lines.append({"item_id": item_id, "quantity": entry.get("quantity", 0)})
    return lines


def _encode_recipe_items(value: Any) -> List[Dict[str, Any]]:
    return [{"itemId": line["item_id"], "quantity": line["quantity"]} for line in value or []]


def _passthrough(value: Any) -> Any:
    return value


class FieldSpec:
    """One domain field <-> one wire column"""

    def __init__(
        self,
        domain: str,
        wire: str,
        aliases: Tuple[str, ...] = (),
        legacy: bool = False,
        decode: Callable[[Any], Any] = _passthrough,
        encode: Callable[[Any], Any] = _passthrough,
    ):
        self.domain = domain
        self.wire = wire
        self.aliases = aliases
        self.legacy = legacy
        self.decode = decode
        self.encode = encode

    @property
    def wire_names(self) -> Tuple[str, ...]:
        return (self.wire,) + self.aliases


class EntityMap:
    """Bidirectional mapping between a table's rows and a domain model"""

    def __init__(self, table: str, model: Type[BaseModel], fields: List[FieldSpec]):
        self.table = table
        self.model = model
        self.fields = fields
        self._validate()

    def _validate(self) -> None:
        model_fields = set(self.model.model_fields)
        seen_domain = set()
        seen_wire = set()
        for field in self.fields:
            if field.domain not in model_fields:
                raise ValueError(f"{self.table}: '{field.domain}' is not a field of {self.model.__name__}")
            if field.domain in seen_domain:
                raise ValueError(f"{self.table}: domain field '{field.domain}' mapped twice")
            seen_domain.add(field.domain)
            for name in field.wire_names:
                if name in seen_wire:
                    raise ValueError(f"{self.table}: wire column '{name}' mapped twice")
                seen_wire.add(name)

    @property
    def legacy_columns(self) -> List[str]:
        return [field.wire for field in self.fields if field.legacy]

    def to_domain(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Wire row -> kwargs for the domain model. Missing columns are left to model defaults."""
        data: Dict[str, Any] = {}
        for field in self.fields:
            for name in field.wire_names:
                if name in row and row[name] is not None:
                    data[field.domain] = field.decode(row[name])
                    break
        return data

    def load(self, row: Dict[str, Any]) -> BaseModel:
        return self.model(**self.to_domain(row))

    def to_wire(self, record: BaseModel, legacy_only: bool = False) -> Dict[str, Any]:
        """Domain model -> wire row. legacy_only drops the newer columns."""
        dumped = record.model_dump(mode="json")
        row: Dict[str, Any] = {}
        for field in self.fields:
            if legacy_only and field.legacy:
                continue
            if field.domain in dumped:
                row[field.wire] = field.encode(dumped[field.domain])
        return row

    def strip_legacy(self, row: Dict[str, Any]) -> Dict[str, Any]:
        legacy = set(self.legacy_columns)
        return {key: value for key, value in row.items() if key not in legacy}


# ============================================================
# ENTITY MAPS
# ============================================================

FACILITIES = EntityMap("facilities", Facility, [
    FieldSpec("id", "id"),
    FieldSpec("name", "facilityName", aliases=("facilityname", "facility_name")),
])

ROOMS = EntityMap("rooms", Room, [
    FieldSpec("id", "id"),
    FieldSpec("facility_id", "facility_id"),
    FieldSpec("facility_name", "facility_name", legacy=True),
    FieldSpec("code", "name"),
    FieldSpec("status", "status"),
    FieldSpec("note", "note"),
    FieldSpec("price", "price"),
    FieldSpec("room_type", "type", legacy=True),
    FieldSpec("view", "view", legacy=True),
    FieldSpec("area", "area", legacy=True),
    FieldSpec("price_saturday", "price_saturday", legacy=True),
])

STAYS = EntityMap("bookings", Stay, [
    FieldSpec("id", "id"),
    FieldSpec("facility_id", "facility_id"),
    FieldSpec("facility_name", "facilityName", aliases=("facilityname",)),
    FieldSpec("room_code", "roomCode", aliases=("roomcode",)),
    FieldSpec("created_at", "createdDate", aliases=("createddate",)),
    FieldSpec("check_in", "checkinDate", aliases=("checkindate",)),
    FieldSpec("check_out", "checkoutDate", aliases=("checkoutdate",)),
    FieldSpec("actual_check_in", "actualCheckIn", aliases=("actualcheckin",)),
    FieldSpec("actual_check_out", "actualCheckOut", aliases=("actualcheckout",)),
    FieldSpec("status", "status"),
    FieldSpec("lending", "lendingjson", aliases=("lendingJson",), legacy=True,
              decode=_decode_json_list, encode=_encode_json_list),
])

TASKS = EntityMap("housekeeping_tasks", HousekeepingTask, [
    FieldSpec("id", "id"),
    FieldSpec("facility_id", "facility_id"),
    FieldSpec("room_code", "room_code"),
    FieldSpec("kind", "task_type"),
    FieldSpec("status", "status"),
    FieldSpec("assignee", "assignee"),
    FieldSpec("priority", "priority"),
    FieldSpec("created_at", "created_at"),
    FieldSpec("started_at", "started_at"),
    FieldSpec("completed_at", "completed_at"),
    FieldSpec("note", "note"),
    FieldSpec("points", "points", legacy=True),
    FieldSpec("checklist", "checklist", legacy=True,
              decode=_decode_checklist, encode=_encode_json_list),
    FieldSpec("photo_before", "photo_before", legacy=True),
    FieldSpec("photo_after", "photo_after", legacy=True),
    FieldSpec("linen_exchanged", "linen_exchanged", legacy=True),
])

ITEMS = EntityMap("service_items", ItemDefinition, [
    FieldSpec("id", "id"),
    FieldSpec("name", "name"),
    FieldSpec("unit", "unit"),
    FieldSpec("category", "category"),
    FieldSpec("price", "price"),
    FieldSpec("stock", "stock"),
    FieldSpec("cost_price", "costprice", aliases=("costPrice",), legacy=True),
    FieldSpec("min_stock", "minstock", aliases=("minStock",), legacy=True),
    FieldSpec("laundry_stock", "laundrystock", aliases=("laundryStock",), legacy=True),
    FieldSpec("vendor_stock", "vendor_stock", legacy=True),
    FieldSpec("in_circulation", "in_circulation", legacy=True),
    FieldSpec("total_assets", "totalassets", legacy=True),
    FieldSpec("default_qty", "default_qty", legacy=True),
])

RECIPES = EntityMap("room_recipes", RoomRecipe, [
    FieldSpec("room_type", "id"),
    FieldSpec("description", "description"),
    FieldSpec("items", "items_json", decode=_decode_recipe_items, encode=_encode_recipe_items),
])

TRANSACTIONS = EntityMap("inventory_transactions", InventoryTransaction, [
    FieldSpec("id", "id"),
    FieldSpec("created_at", "created_at"),
    FieldSpec("staff_id", "staff_id"),
    FieldSpec("staff_name", "staff_name"),
    FieldSpec("item_id", "item_id"),
    FieldSpec("item_name", "item_name"),
    FieldSpec("type", "type"),
    FieldSpec("quantity", "quantity"),
    FieldSpec("price", "price"),
    FieldSpec("total", "total"),
    FieldSpec("facility_name", "facility_name"),
    FieldSpec("note", "note"),
    FieldSpec("task_id", "task_id", legacy=True),
    FieldSpec("room_code", "room_code", legacy=True),
])
