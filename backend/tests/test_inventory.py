# Overview: Pytest coverage for inventory intake, adjustments, rooms and the type taxonomy.

from decimal import Decimal

import pytest

from canopy.models import AuditLog, InventoryAdjustment, InventoryType
from canopy.services import cultivation_service, inventory_service, inventory_type_service, room_service
from canopy.services.audit_service import UndoDetails, parse_details
from canopy.validation import ConflictError, NotFoundError, ValidationError


class TestTaxonomy:

    def test_seed_is_idempotent(self, db_session):
        count = db_session.query(InventoryType).count()
        assert count == len(inventory_type_service.STANDARD_TAXONOMY)
        assert inventory_type_service.seed_standard_types() == 0

    def test_category_containment(self):
        assert inventory_type_service.category_matches("FinishedGoods", "Finished")
        assert not inventory_type_service.category_matches("Dry", "Wet")
        assert not inventory_type_service.category_matches(None, "Wet")

    def test_list_by_category(self, db_session):
        names = {t.name for t in inventory_type_service.list_types(category="Source")}
        assert names == {"Clones", "Seeds"}

    def test_deactivated_type_hidden(self, db_session, type_id):
        inventory_type_service.deactivate_type(type_id("Rosin"))
        names = {t.name for t in inventory_type_service.list_types(category="Extraction")}
        assert "Rosin" not in names


class TestIntake:

    def test_create_item(self, db_session, location_a, room_a, type_id):
        item = inventory_service.create_inventory_item(
            location_a.id, type_id("Wet Flower"), "12.345", room_id=room_a.id
        )
        assert item.quantity == Decimal("12.35")
        assert len(item.barcode) == 16
        log = db_session.query(AuditLog).filter_by(action_type="create_inventory", entity_id=item.id).one()
        assert parse_details(log).created_from == "intake"

    def test_waste_cannot_be_taken_in(self, db_session, location_a, type_id):
        with pytest.raises(ValidationError):
            inventory_service.create_inventory_item(location_a.id, type_id("Waste"), 5)

    @pytest.mark.parametrize("quantity", [0, -1, "abc", None, True, "NaN"])
    def test_bad_quantity(self, db_session, location_a, type_id, quantity):
        with pytest.raises(ValidationError):
            inventory_service.create_inventory_item(location_a.id, type_id("Wet Flower"), quantity)

    def test_cross_location_lookup(self, db_session, location_a, location_b, type_id):
        item = inventory_service.create_inventory_item(location_b.id, type_id("Wet Flower"), 5)
        with pytest.raises(NotFoundError):
            inventory_service.get_inventory_item(location_a.id, item.id)


class TestAdjustments:

    def test_small_adjustment(self, db_session, location_a, type_id):
        item = inventory_service.create_inventory_item(location_a.id, type_id("Dry Trim"), 100)

        result = inventory_service.adjust_inventory(location_a.id, item.id, "-5", "moisture_loss")

        assert result.warning is None
        assert result.adjustment.is_red_flag is False
        db_session.refresh(item)
        assert item.quantity == Decimal("95.00")

    def test_large_adjustment_flagged(self, db_session, location_a, type_id):
        item = inventory_service.create_inventory_item(location_a.id, type_id("Dry Trim"), 100)

        result = inventory_service.adjust_inventory(location_a.id, item.id, 25, "count", reason="Recount")

        assert result.warning == "Large adjustment detected (>10%)"
        assert result.adjustment.is_red_flag is True
        assert result.adjustment.previous_quantity == Decimal("100.00")
        assert result.adjustment.new_quantity == Decimal("125.00")
        log = db_session.query(AuditLog).filter_by(action_type="adjust_inventory").one()
        assert parse_details(log).is_red_flag is True

    def test_negative_result_rejected(self, db_session, location_a, type_id):
        item = inventory_service.create_inventory_item(location_a.id, type_id("Dry Trim"), 10)

        with pytest.raises(ValidationError):
            inventory_service.adjust_inventory(location_a.id, item.id, -11, "damage")

        assert db_session.query(InventoryAdjustment).count() == 0

    def test_unknown_type_rejected(self, db_session, location_a, type_id):
        item = inventory_service.create_inventory_item(location_a.id, type_id("Dry Trim"), 10)
        with pytest.raises(ValidationError):
            inventory_service.adjust_inventory(location_a.id, item.id, 1, "gift")


class TestAdjustmentUndo:

    def _adjust(self, db_session, location_a, type_id, start=100, delta="-30"):
        item = inventory_service.create_inventory_item(location_a.id, type_id("Dry Trim"), start)
        inventory_service.adjust_inventory(location_a.id, item.id, delta, "damage")
        log = db_session.query(AuditLog).filter_by(action_type="adjust_inventory", entity_id=item.id).one()
        return item, log

    def test_undo_restores_previous_quantity(self, db_session, location_a, type_id):
        item, log = self._adjust(db_session, location_a, type_id)

        undo_log = cultivation_service.undo_operation(location_a.id, log.id, reason="Miscount")

        db_session.refresh(item)
        assert item.quantity == Decimal("100.00")
        details = parse_details(undo_log)
        assert isinstance(details, UndoDetails)
        assert details.original_action_type == "adjust_inventory"
        assert details.restored["quantity"] == "100.00"
        reversal = db_session.get(InventoryAdjustment, details.restored["adjustment_id"])
        assert reversal.adjustment == Decimal("30.00")
        assert reversal.previous_quantity == Decimal("70.00")
        assert reversal.new_quantity == Decimal("100.00")

    def test_undo_twice_rejected(self, db_session, location_a, type_id):
        item, log = self._adjust(db_session, location_a, type_id)
        cultivation_service.undo_operation(location_a.id, log.id)

        with pytest.raises(ValidationError):
            cultivation_service.undo_operation(location_a.id, log.id)

    def test_undo_after_later_movement_conflicts(self, db_session, location_a, type_id):
        item, log = self._adjust(db_session, location_a, type_id)
        inventory_service.adjust_inventory(location_a.id, item.id, "-1", "moisture_loss")
        audits_before = db_session.query(AuditLog).count()
        adjustments_before = db_session.query(InventoryAdjustment).count()

        with pytest.raises(ConflictError):
            cultivation_service.undo_operation(location_a.id, log.id)

        db_session.refresh(item)
        assert item.quantity == Decimal("69.00")
        assert db_session.query(AuditLog).count() == audits_before
        assert db_session.query(InventoryAdjustment).count() == adjustments_before

    def test_caller_can_narrow_undoable_actions(self, db_session, location_a, type_id):
        item, log = self._adjust(db_session, location_a, type_id)
        with pytest.raises(ValidationError):
            cultivation_service.undo_operation(location_a.id, log.id, actions={"move_room"})


class TestRooms:

    def test_names_unique_per_location(self, db_session, location_a, location_b, room_a):
        with pytest.raises(ValidationError):
            room_service.create_room(location_a.id, "Veg 1")
        room_service.create_room(location_b.id, "Veg 1")

    def test_delete_occupied_room_rejected(self, db_session, location_a, room_a):
        cultivation_service.create_plant(location_a.id, "Blue Dream", room_a.id)
        with pytest.raises(ValidationError):
            room_service.soft_delete_room(location_a.id, room_a.id)

    def test_delete_empty_room(self, db_session, location_a, room_a):
        room_service.soft_delete_room(location_a.id, room_a.id)
        with pytest.raises(NotFoundError):
            room_service.get_room(location_a.id, room_a.id)
        assert db_session.query(AuditLog).filter_by(action_type="delete_room").count() == 1


def test_adjust_endpoint(client, admin_a_headers, location_a, type_id):
    item = inventory_service.create_inventory_item(location_a.id, type_id("Dry Trim"), 100)

    resp = client.post(f"/api/inventory/items/{item.id}/adjust", headers=admin_a_headers, json={
        "adjustment": "-50",
        "adjustment_type": "theft",
        "reason": "Break-in",
    })

    assert resp.status_code == 200
    assert resp.json["warning"] == "Large adjustment detected (>10%)"
    assert resp.json["inventory_item"]["quantity"] == "50.00"


def test_list_items_endpoint(client, admin_a_headers, location_a, location_b, type_id):
    mine = inventory_service.create_inventory_item(location_a.id, type_id("Dry Trim"), 10)
    inventory_service.create_inventory_item(location_b.id, type_id("Dry Trim"), 10)

    resp = client.get("/api/inventory/items", headers=admin_a_headers)

    assert resp.status_code == 200
    assert [row["id"] for row in resp.json["inventory_items"]] == [mine.id]


def test_undo_adjustment_endpoint(client, admin_a_headers, location_a, room_a, type_id):
    item = inventory_service.create_inventory_item(location_a.id, type_id("Dry Trim"), 100)
    resp = client.post(f"/api/inventory/items/{item.id}/adjust", headers=admin_a_headers, json={
        "adjustment": "-40",
        "adjustment_type": "count",
    })
    assert resp.status_code == 200
    logs = client.get("/api/audit-logs?action_type=adjust_inventory", headers=admin_a_headers).json
    adjust_log_id = logs["audit_logs"][0]["id"]

    resp = client.post(f"/api/inventory/undo/{adjust_log_id}", headers=admin_a_headers, json={"reason": "Recount"})
    assert resp.status_code == 201
    assert resp.json["audit_log"]["details"]["restored"]["quantity"] == "100.00"
    assert client.get(f"/api/inventory/items/{item.id}", headers=admin_a_headers).json["inventory_item"]["quantity"] == "100.00"

    # Room moves are undone through the cultivation module
    plant = cultivation_service.create_plant(location_a.id, "Blue Dream", room_a.id)
    move_room = room_service.create_room(location_a.id, "Flower 9", "flowering")
    cultivation_service.create_room_move(plant_id=plant.id, to_room_id=move_room.id, location_id=location_a.id)
    move_log = client.get("/api/audit-logs?action_type=move_room", headers=admin_a_headers).json["audit_logs"][0]
    assert client.post(f"/api/inventory/undo/{move_log['id']}", headers=admin_a_headers).status_code == 400
