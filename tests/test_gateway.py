from datetime import timedelta

import httpx
import pytest
from postgrest.exceptions import APIError

from conftest import NOW, make_room

from housekeeping.cache import SnapshotCache
from housekeeping.errors import (
    ConnectivityError, GatewayError, SchemaDriftError, TableMissingError, classify_error,
)
from housekeeping.fallback import FALLBACK_ITEMS, create_fallback_rooms
from housekeeping.fields import ROOMS, TASKS
from housekeeping.gateway import (
    ConnectionMode, StorageGateway, WriteStatus, create_gateway, data_start_date,
)
from housekeeping.schema import HousekeepingTask, InventoryTransaction, TaskKind, TransactionType


def make_task(**kwargs):
    return HousekeepingTask(facility_id="F001", room_code="101", kind=TaskKind.DIRTY, points=2, **kwargs)


class TestErrorClassification:

    def test_transport_errors_are_connectivity(self):
        assert isinstance(classify_error(httpx.ConnectError("down")), ConnectivityError)
        assert isinstance(classify_error(TimeoutError()), ConnectivityError)

    @pytest.mark.parametrize("code", ["42P01", "PGRST205"])
    def test_missing_table_codes(self, code):
        error = APIError({"code": code, "message": "missing", "details": None, "hint": None})
        assert isinstance(classify_error(error, "rooms"), TableMissingError)

    @pytest.mark.parametrize("code,message", [
        ("PGRST204", "whatever"),
        ("42703", "column does not exist"),
        ("400", "Could not find the 'points' column"),
    ])
    def test_missing_column_codes(self, code, message):
        error = APIError({"code": code, "message": message, "details": None, "hint": None})
        assert isinstance(classify_error(error), SchemaDriftError)

    def test_other_errors_stay_generic(self):
        error = classify_error(ValueError("boom"), "rooms")
        assert type(error) is GatewayError
        assert error.table == "rooms"


class TestConnectionCheck:

    def test_reachable_store_is_live(self, gateway):
        assert gateway.check_connection() is True
        assert gateway.state.verified
        assert gateway.state.mode == ConnectionMode.LIVE

    def test_retries_then_degrades(self, gateway, fake_db, sleeps):
        fake_db.offline = True

        assert gateway.check_connection() is False
        assert len([c for c in fake_db.calls if c[0] == "app_configs"]) == 3
        assert sleeps == [0, 0]
        assert gateway.is_degraded

    def test_non_network_error_counts_as_reachable(self, gateway, fake_db):
        fake_db.missing_tables.add("app_configs")
        assert gateway.check_connection() is True
        assert not gateway.is_degraded

    def test_degraded_mode_is_sticky(self, gateway, fake_db):
        fake_db.offline = True
        gateway.check_connection()
        fake_db.offline = False

        assert gateway.check_connection() is False
        assert gateway.is_degraded

    def test_state_is_per_instance(self, fake_db, settings):
        first = StorageGateway(client=fake_db, settings=settings, sleep=lambda s: None)
        second = StorageGateway(client=fake_db, settings=settings, sleep=lambda s: None)
        first.state.degrade("test")

        assert first.is_degraded
        assert not second.is_degraded

    def test_no_client_starts_degraded(self, settings):
        gateway = create_gateway(settings)
        assert gateway.is_degraded
        assert gateway.get_rooms() == create_fallback_rooms()


class TestSchemaCheck:

    def test_missing_columns_raise_warning_only(self, gateway, fake_db):
        fake_db.missing_columns["housekeeping_tasks"] = {"points"}
        report = gateway.check_schema()

        assert report.missing_columns == {"housekeeping_tasks": ["points", "checklist", "linen_exchanged"]}
        assert gateway.state.schema_warning
        assert not gateway.is_degraded

    def test_missing_table_degrades(self, gateway, fake_db):
        fake_db.missing_tables.add("room_recipes")
        report = gateway.check_schema()

        assert report.missing_tables == ["room_recipes"]
        assert gateway.is_degraded
        assert gateway.state.missing_tables == ["room_recipes"]


class TestReads:

    def test_rows_are_mapped_to_domain(self, gateway, fake_db):
        fake_db.seed("rooms", [ROOMS.to_wire(make_room("101"))])
        rooms = gateway.get_rooms()
        assert [room.code for room in rooms] == ["101"]

    def test_failed_read_serves_last_good_rows(self, gateway, fake_db):
        fake_db.seed("rooms", [ROOMS.to_wire(make_room("101"))])
        gateway.get_rooms()
        fake_db.offline = True

        rooms = gateway.get_rooms()
        assert [room.code for room in rooms] == ["101"]
        assert not gateway.is_degraded

    def test_failed_read_without_cache_serves_fallback(self, gateway, fake_db):
        fake_db.offline = True
        items = gateway.get_items()
        assert [item.id for item in items] == [item.id for item in FALLBACK_ITEMS]

    def test_snapshot_on_disk_survives_restart(self, fake_db, settings, tmp_path):
        settings = settings.model_copy(update={"snapshot_dir": str(tmp_path)})
        fake_db.seed("rooms", [ROOMS.to_wire(make_room("101"))])
        StorageGateway(client=fake_db, settings=settings).get_rooms()

        fake_db.offline = True
        restarted = StorageGateway(client=fake_db, settings=settings, cache=SnapshotCache(str(tmp_path)))
        assert [room.code for room in restarted.get_rooms()] == ["101"]

    def test_missing_table_on_read_degrades_to_fallback(self, gateway, fake_db):
        fake_db.missing_tables.add("rooms")
        rooms = gateway.get_rooms()

        assert gateway.is_degraded
        assert rooms == create_fallback_rooms()

    def test_malformed_rows_are_skipped(self, gateway, fake_db):
        fake_db.seed("housekeeping_tasks", [
            TASKS.to_wire(make_task()),
            {"id": "broken", "facility_id": "F001", "room_code": "101", "task_type": "Laundry"},
        ])
        tasks = gateway.get_tasks(NOW)
        assert len(tasks) == 1

    def test_stored_recipes_override_builtin(self, gateway, fake_db):
        fake_db.seed("room_recipes", [{"id": "1GM8", "description": "custom", "items_json": "[]"}])
        recipes = gateway.get_recipes()

        assert recipes["1GM8"].description == "custom"
        assert "2GM2" in recipes

    def test_get_task_reads_fresh_row(self, gateway, fake_db):
        task = make_task()
        fake_db.seed("housekeeping_tasks", [TASKS.to_wire(task)])
        assert gateway.get_task(task.id).id == task.id
        assert gateway.get_task("other") is None


class TestWrites:

    def test_write_goes_through(self, gateway, fake_db):
        result = gateway.sync_tasks([make_task()])

        assert result.status == WriteStatus.WRITTEN
        assert fake_db.rows("housekeeping_tasks")[0]["points"] == 2

    def test_missing_column_retries_without_newer_fields(self, gateway, fake_db):
        fake_db.missing_columns["housekeeping_tasks"] = {"points"}
        result = gateway.sync_tasks([make_task()])

        assert result.ok
        assert result.status == WriteStatus.WRITTEN_LEGACY
        assert len(fake_db.writes("housekeeping_tasks")) == 2
        stored = fake_db.rows("housekeeping_tasks")[0]
        assert "points" not in stored
        assert stored["task_type"] == "Dirty"
        assert gateway.state.schema_warning

    def test_legacy_retry_failing_is_reported(self, gateway, fake_db):
        fake_db.missing_columns["housekeeping_tasks"] = {"task_type"}
        result = gateway.sync_tasks([make_task()])

        assert result.status == WriteStatus.FAILED
        assert len(fake_db.writes("housekeeping_tasks")) == 2

    def test_network_failure_drops_write(self, gateway, fake_db):
        fake_db.offline = True
        result = gateway.upsert_room(make_room("101"))

        assert result.status == WriteStatus.FAILED
        assert not gateway.is_degraded

    def test_degraded_writes_are_skipped(self, gateway, fake_db):
        gateway.state.degrade("test")
        result = gateway.update_item(FALLBACK_ITEMS[0])

        assert result.status == WriteStatus.SKIPPED
        assert result.ok
        assert fake_db.writes() == []

    def test_transactions_are_inserted(self, gateway, fake_db):
        tx = InventoryTransaction(item_id="M_COCA", type=TransactionType.MINIBAR_SOLD, quantity=1)
        gateway.add_transactions([tx])

        assert fake_db.writes("inventory_transactions")[0][1] == "insert"


def test_data_start_date_goes_back_whole_months():
    assert data_start_date(NOW, 1).isoformat() == "2026-02-01T00:00:00+00:00"
    assert data_start_date(NOW.replace(month=1), 1).isoformat() == "2025-12-01T00:00:00+00:00"
    assert data_start_date(NOW + timedelta(days=30), 0).day == 1


def test_transactions_read_back(gateway, fake_db):
    tx = InventoryTransaction(item_id="M_COCA", type=TransactionType.MINIBAR_SOLD, quantity=1, room_code="101")
    gateway.add_transactions([tx])

    [stored] = gateway.get_transactions()
    assert stored.id == tx.id
    assert stored.room_code == "101"


def test_status_reflects_connection_state(gateway, fake_db):
    fake_db.missing_columns["housekeeping_tasks"] = {"points"}
    gateway.check_schema()
    fake_db.missing_tables.add("rooms")
    gateway.get_rooms()

    status = gateway.status()
    assert status["mode"] == "degraded"
    assert status["schema_warning"] is True
    assert status["missing_tables"] == ["rooms"]
    assert "housekeeping_tasks" in status["missing_columns"]


def test_snapshots_are_listed(tmp_path):
    cache = SnapshotCache(str(tmp_path))
    cache.put("rooms", [{"id": "F001_101"}])
    cache.put("service_items", [])

    snapshots = cache.list_snapshots()
    assert {s["table"] for s in snapshots} == {"rooms", "service_items"}
    assert next(s for s in snapshots if s["table"] == "rooms")["rows"] == 1
