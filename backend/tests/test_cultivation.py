# Overview: Pytest coverage for plants, room moves, mother plants, offspring and undo.

from decimal import Decimal

import pytest

from canopy.models import AuditLog, InventoryItem, Plant, RoomMove
from canopy.services import cultivation_service, inventory_service, room_service
from canopy.services.audit_service import UndoDetails, parse_details
from canopy.validation import ConflictError, NotFoundError, ValidationError


def _plant(location, room, strain="Blue Dream", **kwargs):
    return cultivation_service.create_plant(location.id, strain, room.id, **kwargs)


def _audit_count(db_session, **filters):
    return db_session.query(AuditLog).filter_by(**filters).count()


class TestCreatePlant:

    def test_create_plant_writes_audit(self, db_session, location_a, room_a):
        plant = _plant(location_a, room_a)

        assert plant.status == "active"
        assert plant.phase == "vegetative"
        assert len(plant.barcode) == 16
        assert _audit_count(db_session, action_type="create_plant", entity_id=plant.id) == 1

    def test_invalid_phase(self, db_session, location_a, room_a):
        with pytest.raises(ValidationError):
            _plant(location_a, room_a, phase="dormant")

    def test_room_from_other_location(self, db_session, location_a, room_b):
        with pytest.raises(ValidationError):
            cultivation_service.create_plant(location_a.id, "Blue Dream", room_b.id)

    def test_inactive_room_rejected(self, db_session, location_a, room_a):
        room_service.deactivate_room(location_a.id, room_a.id)
        with pytest.raises(ValidationError):
            _plant(location_a, room_a)

    def test_consumes_source_until_exhausted(self, db_session, location_a, room_a, type_id):
        clones = inventory_service.create_inventory_item(location_a.id, type_id("Clones"), 2, room_id=room_a.id)

        _plant(location_a, room_a, source_inventory_id=clones.id)
        _plant(location_a, room_a, source_inventory_id=clones.id)
        plants_before = db_session.query(Plant).count()
        audits_before = db_session.query(AuditLog).count()

        with pytest.raises(ConflictError):
            _plant(location_a, room_a, source_inventory_id=clones.id)

        assert db_session.query(Plant).count() == plants_before
        assert db_session.query(AuditLog).count() == audits_before
        db_session.refresh(clones)
        assert clones.quantity == Decimal("0.00")
        assert clones.status == "consumed"

    def test_source_from_other_location_not_found(self, db_session, location_a, location_b, room_a, room_b, type_id):
        clones_b = inventory_service.create_inventory_item(location_b.id, type_id("Clones"), 5, room_id=room_b.id)
        with pytest.raises(NotFoundError):
            _plant(location_a, room_a, source_inventory_id=clones_b.id)


class TestPlantUpdates:

    def test_soft_delete_twice(self, db_session, location_a, room_a):
        plant = _plant(location_a, room_a)

        cultivation_service.soft_delete_plant(location_a.id, plant.id)
        assert plant.deleted_at is not None

        with pytest.raises(NotFoundError):
            cultivation_service.soft_delete_plant(location_a.id, plant.id)
        assert _audit_count(db_session, action_type="delete_plant") == 1

    def test_update_records_changed_fields_only(self, db_session, location_a, room_a):
        plant = _plant(location_a, room_a)

        cultivation_service.update_plant(location_a.id, plant.id, {"phase": "flowering", "strain": "Blue Dream"})

        log = db_session.query(AuditLog).filter_by(action_type="update_plant").one()
        details = parse_details(log)
        assert details.old_value == {"phase": "vegetative"}
        assert details.new_value == {"phase": "flowering"}

    def test_update_noop_writes_nothing(self, db_session, location_a, room_a):
        plant = _plant(location_a, room_a)
        cultivation_service.update_plant(location_a.id, plant.id, {"phase": "vegetative"})
        assert _audit_count(db_session, action_type="update_plant") == 0

    def test_update_rejects_unknown_field(self, db_session, location_a, room_a):
        plant = _plant(location_a, room_a)
        with pytest.raises(ValidationError):
            cultivation_service.update_plant(location_a.id, plant.id, {"status": "mother"})


class TestRoomMoves:

    def test_move_plant(self, db_session, location_a, room_a, room_a2):
        plant = _plant(location_a, room_a)

        move = cultivation_service.create_room_move(plant_id=plant.id, to_room_id=room_a2.id, location_id=location_a.id)

        assert move.from_room_id == room_a.id
        assert plant.room_id == room_a2.id
        assert _audit_count(db_session, action_type="move_room", entity_id=plant.id) == 1

    def test_requires_exactly_one_target(self, db_session, location_a, room_a, room_a2, type_id):
        plant = _plant(location_a, room_a)
        item = inventory_service.create_inventory_item(location_a.id, type_id("Wet Flower"), 5, room_id=room_a.id)

        with pytest.raises(ValidationError):
            cultivation_service.create_room_move(to_room_id=room_a2.id, location_id=location_a.id)
        with pytest.raises(ValidationError):
            cultivation_service.create_room_move(
                plant_id=plant.id, inventory_item_id=item.id, to_room_id=room_a2.id, location_id=location_a.id
            )

    def test_missing_destination(self, db_session, location_a, room_a):
        plant = _plant(location_a, room_a)
        with pytest.raises(ValidationError):
            cultivation_service.create_room_move(plant_id=plant.id, location_id=location_a.id)

    def test_destination_in_other_location(self, db_session, location_a, room_a, room_b):
        plant = _plant(location_a, room_a)
        with pytest.raises(ValidationError):
            cultivation_service.create_room_move(plant_id=plant.id, to_room_id=room_b.id, location_id=location_a.id)
        assert db_session.query(RoomMove).count() == 0

    def test_from_room_must_match_current_room(self, db_session, location_a, room_a, room_a2):
        dry_room = room_service.create_room(location_a.id, "Dry 1", "drying")
        plant = _plant(location_a, room_a)
        audits_before = _audit_count(db_session, action_type="move_room")

        with pytest.raises(ValidationError):
            cultivation_service.create_room_move(
                plant_id=plant.id, from_room_id=room_a2.id, to_room_id=dry_room.id, location_id=location_a.id
            )

        db_session.refresh(plant)
        assert plant.room_id == room_a.id
        assert db_session.query(RoomMove).count() == 0
        assert _audit_count(db_session, action_type="move_room") == audits_before

    def test_matching_from_room_recorded(self, db_session, location_a, room_a, room_a2):
        plant = _plant(location_a, room_a)

        move = cultivation_service.create_room_move(
            plant_id=plant.id, from_room_id=room_a.id, to_room_id=room_a2.id, location_id=location_a.id
        )

        assert move.from_room_id == room_a.id
        log = db_session.query(AuditLog).filter_by(action_type="move_room", entity_id=plant.id).one()
        assert parse_details(log).old_room_id == move.from_room_id


class TestMotherPlants:

    def test_convert_and_generate_clones(self, db_session, location_a, room_a, room_a2):
        mother = _plant(location_a, room_a)
        cultivation_service.convert_to_mother_plant(location_a.id, mother.id, notes="Keeper")

        assert mother.is_mother is True
        assert mother.status == "mother"

        item = cultivation_service.generate_clones(location_a.id, mother.id, 12, room_a2.id)

        assert item.quantity == Decimal("12")
        assert item.unit == "units"
        assert item.source_plant_id == mother.id
        assert item.inventory_type.name == "Clones"
        db_session.refresh(mother)
        assert mother.clone_offspring_count == 12

    def test_generate_seeds(self, db_session, location_a, room_a):
        mother = _plant(location_a, room_a)
        cultivation_service.convert_to_mother_plant(location_a.id, mother.id)

        cultivation_service.generate_seeds(location_a.id, mother.id, 40, room_a.id)
        cultivation_service.generate_seeds(location_a.id, mother.id, 10, room_a.id)

        db_session.refresh(mother)
        assert mother.seed_offspring_count == 50
        assert _audit_count(db_session, action_type="generate_seeds") == 2

    def test_non_mother_cannot_generate(self, db_session, location_a, room_a):
        plant = _plant(location_a, room_a)
        items_before = db_session.query(InventoryItem).count()
        audits_before = db_session.query(AuditLog).count()

        with pytest.raises(ValidationError):
            cultivation_service.generate_clones(location_a.id, plant.id, 5, room_a.id)

        assert db_session.query(InventoryItem).count() == items_before
        assert db_session.query(AuditLog).count() == audits_before

    def test_quantity_must_be_positive_integer(self, db_session, location_a, room_a):
        mother = _plant(location_a, room_a)
        cultivation_service.convert_to_mother_plant(location_a.id, mother.id)
        with pytest.raises(ValidationError):
            cultivation_service.generate_clones(location_a.id, mother.id, 0, room_a.id)
        with pytest.raises(ValidationError):
            cultivation_service.generate_clones(location_a.id, mother.id, 2.5, room_a.id)

    def test_only_active_plants_become_mothers(self, db_session, location_a, room_a):
        plant = _plant(location_a, room_a)
        cultivation_service.create_harvest(location_a.id, plant.id, 100)
        with pytest.raises(ValidationError):
            cultivation_service.convert_to_mother_plant(location_a.id, plant.id)


class TestUndo:

    def test_undo_room_move(self, db_session, location_a, room_a, room_a2):
        plant = _plant(location_a, room_a)
        cultivation_service.create_room_move(plant_id=plant.id, to_room_id=room_a2.id, location_id=location_a.id)
        move_log = db_session.query(AuditLog).filter_by(action_type="move_room").one()

        undo_log = cultivation_service.undo_operation(location_a.id, move_log.id, reason="Wrong room")

        db_session.refresh(plant)
        assert plant.room_id == room_a.id
        details = parse_details(undo_log)
        assert isinstance(details, UndoDetails)
        assert details.original_audit_log_id == move_log.id
        assert details.restored["room_id"] == room_a.id
        assert db_session.query(RoomMove).count() == 2

    def test_undo_twice_rejected(self, db_session, location_a, room_a, room_a2):
        plant = _plant(location_a, room_a)
        cultivation_service.create_room_move(plant_id=plant.id, to_room_id=room_a2.id, location_id=location_a.id)
        move_log = db_session.query(AuditLog).filter_by(action_type="move_room").one()
        cultivation_service.undo_operation(location_a.id, move_log.id)

        with pytest.raises(ValidationError):
            cultivation_service.undo_operation(location_a.id, move_log.id)

    def test_unsupported_action_writes_nothing(self, db_session, location_a, room_a):
        plant = _plant(location_a, room_a)
        create_log = db_session.query(AuditLog).filter_by(action_type="create_plant", entity_id=plant.id).one()
        audits_before = db_session.query(AuditLog).count()

        with pytest.raises(ValidationError):
            cultivation_service.undo_operation(location_a.id, create_log.id)

        assert db_session.query(AuditLog).count() == audits_before

    def test_audit_log_from_other_location(self, db_session, location_a, location_b, room_b):
        room_b2 = room_service.create_room(location_b.id, "Flower B", "flowering")
        plant = cultivation_service.create_plant(location_b.id, "OG Kush", room_b.id)
        cultivation_service.create_room_move(plant_id=plant.id, to_room_id=room_b2.id, location_id=location_b.id)
        move_log = db_session.query(AuditLog).filter_by(action_type="move_room").one()

        with pytest.raises(NotFoundError):
            cultivation_service.undo_operation(location_a.id, move_log.id)


def test_plant_endpoints(client, admin_a_headers, room_a, room_a2):
    resp = client.post("/api/cultivation/plants", headers=admin_a_headers, json={
        "strain": "Blue Dream",
        "room_id": room_a.id,
        "phase": "clone",
    })
    assert resp.status_code == 201
    plant_id = resp.json["plant"]["id"]

    resp = client.post("/api/cultivation/room-moves", headers=admin_a_headers, json={
        "plant_id": plant_id,
        "to_room_id": room_a2.id,
    })
    assert resp.status_code == 201

    resp = client.get(f"/api/cultivation/plants/{plant_id}", headers=admin_a_headers)
    assert resp.status_code == 200
    assert resp.json["plant"]["room_id"] == room_a2.id

    resp = client.delete(f"/api/cultivation/plants/{plant_id}", headers=admin_a_headers)
    assert resp.status_code == 200
    resp = client.get(f"/api/cultivation/plants/{plant_id}", headers=admin_a_headers)
    assert resp.status_code == 404
