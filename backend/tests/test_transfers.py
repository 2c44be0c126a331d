# Overview: Pytest coverage for inter-location transfers.

from decimal import Decimal

import pytest

from canopy.models import AuditLog, InventoryItem
from canopy.services import inventory_service, transfer_service
from canopy.validation import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def dry_item(db_session, location_a, room_a, type_id):
    return inventory_service.create_inventory_item(
        location_a.id, type_id("Dry Flower (Cured)"), 100, room_id=room_a.id, batch_number="LOT-7"
    )


def _create(location_a, location_b, item, quantity=40):
    return transfer_service.create_transfer(
        location_a.id, location_b.id, [{"inventory_item_id": item.id, "quantity": quantity}]
    )


class TestTransferLifecycle:

    def test_ship_and_receive(self, db_session, location_a, location_b, dry_item):
        transfer = _create(location_a, location_b, dry_item)
        assert transfer.status == "PENDING"

        transfer_service.ship_transfer(location_a.id, transfer.id)
        db_session.refresh(dry_item)
        assert dry_item.quantity == Decimal("60.00")

        transfer_service.receive_transfer(location_b.id, transfer.id)
        assert transfer.status == "RECEIVED"

        received = db_session.get(InventoryItem, transfer.lines[0].received_inventory_item_id)
        assert received.location_id == location_b.id
        assert received.quantity == Decimal("40.00")
        assert received.batch_number == "LOT-7"
        assert received.barcode != dry_item.barcode

        actions = [log.action_type for log in db_session.query(AuditLog).filter_by(entity_type="transfer").all()]
        assert sorted(actions) == ["transfer_created", "transfer_received", "transfer_shipped"]

    def test_reject_returns_quantity(self, db_session, location_a, location_b, dry_item):
        transfer = _create(location_a, location_b, dry_item, quantity=100)
        transfer_service.ship_transfer(location_a.id, transfer.id)
        db_session.refresh(dry_item)
        assert dry_item.status == "consumed"

        with pytest.raises(ValidationError):
            transfer_service.receive_transfer(location_b.id, transfer.id, accept=False)

        transfer_service.receive_transfer(location_b.id, transfer.id, accept=False, rejection_reason="Damaged")

        db_session.refresh(dry_item)
        assert transfer.status == "REJECTED"
        assert dry_item.quantity == Decimal("100.00")
        assert dry_item.status == "active"

    def test_cancel_only_before_shipping(self, db_session, location_a, location_b, dry_item):
        pending = _create(location_a, location_b, dry_item)
        transfer_service.cancel_transfer(location_a.id, pending.id, reason="Changed plans")
        assert pending.status == "CANCELLED"

        shipped = _create(location_a, location_b, dry_item)
        transfer_service.ship_transfer(location_a.id, shipped.id)
        with pytest.raises(ValidationError):
            transfer_service.cancel_transfer(location_a.id, shipped.id)

    def test_ship_fails_when_stock_gone(self, db_session, location_a, location_b, dry_item):
        transfer = _create(location_a, location_b, dry_item, quantity=80)
        inventory_service.adjust_inventory(location_a.id, dry_item.id, -50, "damage")

        with pytest.raises(ConflictError):
            transfer_service.ship_transfer(location_a.id, transfer.id)

        assert transfer.status == "PENDING"
        db_session.refresh(dry_item)
        assert dry_item.quantity == Decimal("50.00")


class TestTransferValidation:

    def test_same_location_rejected(self, db_session, location_a, dry_item):
        with pytest.raises(ValidationError):
            transfer_service.create_transfer(
                location_a.id, location_a.id, [{"inventory_item_id": dry_item.id, "quantity": 1}]
            )

    def test_more_than_on_hand_rejected(self, db_session, location_a, location_b, dry_item):
        with pytest.raises(ValidationError):
            _create(location_a, location_b, dry_item, quantity=101)

    def test_item_of_other_location_not_found(self, db_session, location_a, location_b, dry_item):
        with pytest.raises(NotFoundError):
            transfer_service.create_transfer(
                location_b.id, location_a.id, [{"inventory_item_id": dry_item.id, "quantity": 1}]
            )

    def test_only_destination_receives(self, db_session, location_a, location_b, dry_item):
        transfer = _create(location_a, location_b, dry_item)
        transfer_service.ship_transfer(location_a.id, transfer.id)
        with pytest.raises(ValidationError):
            transfer_service.receive_transfer(location_a.id, transfer.id)

    def test_third_location_cannot_see_transfer(self, db_session, location_a, location_b, dry_item):
        from canopy.models import Location
        other = Location(name="Third", ubi="600000003", license_type="Processor", is_active=True)
        db_session.add(other)
        db_session.commit()

        transfer = _create(location_a, location_b, dry_item)
        with pytest.raises(NotFoundError):
            transfer_service.get_transfer(other.id, transfer.id)


def test_transfer_endpoints(client, admin_a_headers, admin_b_headers, location_b, dry_item):
    resp = client.post("/api/transfers", headers=admin_a_headers, json={
        "to_location_id": location_b.id,
        "lines": [{"inventory_item_id": dry_item.id, "quantity": "10.5"}],
    })
    assert resp.status_code == 201
    transfer_id = resp.json["id"]
    assert resp.json["lines"][0]["quantity"] == "10.50"

    resp = client.post(f"/api/transfers/{transfer_id}/ship", headers=admin_a_headers)
    assert resp.status_code == 200

    resp = client.get("/api/transfers?direction=incoming", headers=admin_b_headers)
    assert [t["id"] for t in resp.json["transfers"]] == [transfer_id]

    resp = client.post(f"/api/transfers/{transfer_id}/receive", headers=admin_b_headers, json={})
    assert resp.status_code == 200
    assert resp.json["status"] == "RECEIVED"
