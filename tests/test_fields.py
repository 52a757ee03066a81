import pytest

from housekeeping.fields import (
    EntityMap, FieldSpec, ITEMS, RECIPES, ROOMS, STAYS, TASKS,
)
from housekeeping.schema import (
    ChecklistItem, Facility, HousekeepingTask, RoomStatus, StayStatus, TaskKind, TaskStatus,
)


def test_room_code_travels_as_name():
    row = {"id": "F001_101", "facility_id": "F001", "name": "101", "status": "Bẩn", "type": "1GM8"}
    room = ROOMS.load(row)

    assert room.code == "101"
    assert room.room_type == "1GM8"
    assert ROOMS.to_wire(room)["name"] == "101"


@pytest.mark.parametrize("wire,expected", [
    ("Bẩn", RoomStatus.DIRTY),
    ("Đang dọn", RoomStatus.CLEANING),
    ("Sửa chữa", RoomStatus.OUT_OF_SERVICE),
])
def test_known_room_status_loads_as_enum(wire, expected):
    room = ROOMS.load({"id": "F001_101", "facility_id": "F001", "name": "101", "status": wire})

    assert room.status is expected
    assert ROOMS.to_wire(room)["status"] == wire


def test_free_text_room_status_is_kept():
    room = ROOMS.load({"id": "F001_101", "facility_id": "F001", "name": "101", "status": "Chờ kiểm tra"})

    assert room.status == "Chờ kiểm tra"
    assert not isinstance(room.status, RoomStatus)
    assert ROOMS.to_wire(room)["status"] == "Chờ kiểm tra"


def test_lowercased_aliases_are_read():
    row = {
        "id": "B1",
        "facilityname": "Grand",
        "roomcode": "101",
        "checkindate": "2026-03-08",
        "checkoutdate": "2026-03-12",
        "status": "CheckedIn",
        "lendingJson": '[{"item_id": "L_GOI", "item_name": "Vỏ Gối", "quantity": 2}]',
    }
    stay = STAYS.load(row)

    assert stay.facility_name == "Grand"
    assert stay.status == StayStatus.CHECKED_IN
    assert stay.lending[0].quantity == 2


def test_missing_newer_columns_fall_back_to_defaults():
    row = {
        "id": "T1", "facility_id": "F001", "room_code": "101",
        "task_type": "Dirty", "status": "Pending", "created_at": "2026-03-10T08:00:00Z",
    }
    task = TASKS.load(row)

    assert task.kind == TaskKind.DIRTY
    assert task.points is None
    assert task.checklist == []


def test_task_checklist_round_trips_through_json_text():
    task = HousekeepingTask(
        facility_id="F001", room_code="101", kind=TaskKind.CHECKOUT, status=TaskStatus.DONE,
        checklist=[ChecklistItem(id="1", text="Thay ga", completed=True)],
    )
    wire = TASKS.to_wire(task)

    assert isinstance(wire["checklist"], str)
    assert TASKS.load(wire).checklist == task.checklist


def test_legacy_only_drops_newer_columns():
    task = HousekeepingTask(facility_id="F001", room_code="101", kind=TaskKind.DIRTY, points=2)
    wire = TASKS.to_wire(task, legacy_only=True)

    assert "points" not in wire
    assert "checklist" not in wire
    assert wire["task_type"] == "Dirty"
    assert TASKS.strip_legacy(TASKS.to_wire(task)) == wire


def test_recipe_items_use_camel_case_on_the_wire():
    row = {"id": "1GM8", "description": "x", "items_json": [{"itemId": "L_GA18", "quantity": 1}]}
    recipe = RECIPES.load(row)

    assert recipe.room_type == "1GM8"
    assert recipe.items[0].item_id == "L_GA18"
    assert RECIPES.to_wire(recipe)["items_json"] == [{"itemId": "L_GA18", "quantity": 1}]


def test_item_counters_read_from_either_spelling():
    item = ITEMS.load({"id": "L_X", "name": "X", "category": "Linen", "laundryStock": 4, "costprice": 10})
    assert item.laundry_stock == 4
    assert item.cost_price == 10


def test_duplicate_wire_column_is_rejected():
    with pytest.raises(ValueError):
        EntityMap("facilities", Facility, [
            FieldSpec("id", "id"),
            FieldSpec("name", "id"),
        ])


def test_unknown_domain_field_is_rejected():
    with pytest.raises(ValueError):
        EntityMap("facilities", Facility, [FieldSpec("colour", "colour")])
