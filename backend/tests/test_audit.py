# Overview: Pytest coverage for the audit trail and its typed payloads.

from datetime import datetime
from decimal import Decimal

import pytest

from canopy.models import AuditLog, InventoryItem, Plant
from canopy.services import audit_service, conversion_service, cultivation_service, inventory_service
from canopy.services.audit_service import (
    DETAILS_TYPES,
    HarvestDetails,
    PlantCreatedDetails,
    PlantDeletedDetails,
    RoomDetails,
    parse_details,
    record_audit,
)
from canopy.validation import NotFoundError, ValidationError


def test_every_payload_type_is_registered():
    for action in (
        "create_plant", "delete_plant", "update_plant", "move_room", "convert_to_mother",
        "generate_clones", "generate_seeds", "undo_operation", "create_harvest", "create_cure",
        "create_inventory", "create_destruction", "CONVERSION", "adjust_inventory",
        "create_room", "update_room", "delete_room", "transfer_created", "transfer_shipped",
        "transfer_received", "transfer_rejected", "transfer_cancelled",
        "split_inventory", "combine_inventory", "create_lot",
    ):
        assert action in DETAILS_TYPES, action


def test_record_rejects_unknown_action(db_session, location_a):
    with pytest.raises(ValueError):
        record_audit(
            location_id=location_a.id, user_id=None, module="rooms", entity_type="room",
            entity_id=1, action_type="paint_room", details=RoomDetails(name="x", status="active"),
        )


def test_record_rejects_mismatched_payload(db_session, location_a):
    with pytest.raises(TypeError):
        record_audit(
            location_id=location_a.id, user_id=None, module="rooms", entity_type="room",
            entity_id=1, action_type="create_plant", details=RoomDetails(name="x", status="active"),
        )
    db_session.rollback()


def test_payloads_parse_back_to_their_types(db_session, location_a, room_a):
    plant = cultivation_service.create_plant(location_a.id, "Blue Dream", room_a.id)
    cultivation_service.create_harvest(location_a.id, plant.id, "120.5", batch_number="H-9")

    created = parse_details(
        db_session.query(AuditLog).filter_by(action_type="create_plant", entity_id=plant.id).one()
    )
    assert isinstance(created, PlantCreatedDetails)
    assert created.room_id == room_a.id
    assert created.source_inventory_id is None

    harvest = parse_details(db_session.query(AuditLog).filter_by(action_type="create_harvest").one())
    assert isinstance(harvest, HarvestDetails)
    assert harvest.wet_flower_weight == Decimal("120.50")
    assert harvest.batch_number == "H-9"


def test_deleted_at_roundtrips_as_datetime(db_session, location_a, room_a):
    plant = cultivation_service.create_plant(location_a.id, "Blue Dream", room_a.id)
    cultivation_service.soft_delete_plant(location_a.id, plant.id)

    details = parse_details(db_session.query(AuditLog).filter_by(action_type="delete_plant").one())
    assert isinstance(details, PlantDeletedDetails)
    assert isinstance(details.deleted_at, datetime)
    assert details.previous_status == "active"


def test_failed_operation_leaves_no_audit_row(db_session, location_a, room_a):
    before = db_session.query(AuditLog).count()
    with pytest.raises(ValidationError):
        cultivation_service.create_plant(location_a.id, "", room_a.id)
    assert db_session.query(AuditLog).count() == before


def _failing_record_audit(**kwargs):
    raise RuntimeError("audit store unavailable")


def test_audit_failure_rolls_back_plant_and_consumption(db_session, monkeypatch, location_a, room_a, type_id):
    clones = inventory_service.create_inventory_item(location_a.id, type_id("Clones"), 3, room_id=room_a.id)
    audits_before = db_session.query(AuditLog).count()
    monkeypatch.setattr(cultivation_service, "record_audit", _failing_record_audit)

    with pytest.raises(RuntimeError):
        cultivation_service.create_plant(location_a.id, "Blue Dream", room_a.id, source_inventory_id=clones.id)

    assert db_session.query(Plant).count() == 0
    assert db_session.query(AuditLog).count() == audits_before
    db_session.refresh(clones)
    assert clones.quantity == Decimal("3.00")
    assert clones.status == "active"


def test_audit_failure_rolls_back_conversion(db_session, monkeypatch, location_a, room_a, type_id):
    wet = inventory_service.create_inventory_item(location_a.id, type_id("Wet Flower"), 100, room_id=room_a.id)
    items_before = db_session.query(InventoryItem).count()
    audits_before = db_session.query(AuditLog).count()
    monkeypatch.setattr(conversion_service, "record_audit", _failing_record_audit)

    with pytest.raises(RuntimeError):
        conversion_service.convert_wet_to_dry(
            location_a.id, wet.id, type_id("Dry Flower (Cured)"), 80, 60, room_a.id
        )

    assert db_session.query(InventoryItem).count() == items_before
    assert db_session.query(AuditLog).count() == audits_before
    db_session.refresh(wet)
    assert wet.quantity == Decimal("100.00")


def test_logs_are_scoped_to_location(db_session, location_a, location_b, room_a, room_b):
    cultivation_service.create_plant(location_b.id, "OG Kush", room_b.id)
    log_b = db_session.query(AuditLog).filter_by(location_id=location_b.id, action_type="create_plant").one()

    with pytest.raises(NotFoundError):
        audit_service.get_audit_log(location_a.id, log_b.id)
    assert all(log.location_id == location_a.id for log in audit_service.list_audit_logs(location_a.id))


def test_audit_endpoint_filters(client, admin_a_headers, location_a, room_a):
    plant = cultivation_service.create_plant(location_a.id, "Blue Dream", room_a.id)

    resp = client.get(
        f"/api/audit-logs?entity_type=plant&entity_id={plant.id}", headers=admin_a_headers
    )

    assert resp.status_code == 200
    logs = resp.json["audit_logs"]
    assert [log["action_type"] for log in logs] == ["create_plant"]
    assert logs[0]["details"]["strain"] == "Blue Dream"
