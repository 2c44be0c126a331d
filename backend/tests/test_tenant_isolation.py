# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-location access is denied.

Two locations with their own rooms and users; every request made with a
location A token must behave as if location B's records do not exist:
- Reads of B's records return 404 (never 403, which would reveal existence)
- Writes referencing B's records fail without touching them
- Listings only ever contain A's records
"""

from decimal import Decimal

from canopy.models import AuditLog
from canopy.services import cultivation_service, inventory_service


class TestCrossLocationReads:

    def test_plant_of_other_location_is_404(self, client, admin_a_headers, location_b, room_b):
        plant_b = cultivation_service.create_plant(location_b.id, "OG Kush", room_b.id)

        resp = client.get(f"/api/cultivation/plants/{plant_b.id}", headers=admin_a_headers)
        assert resp.status_code == 404

    def test_room_of_other_location_is_404(self, client, admin_a_headers, room_b):
        resp = client.get(f"/api/rooms/{room_b.id}", headers=admin_a_headers)
        assert resp.status_code == 404

    def test_audit_log_of_other_location_is_404(self, client, db_session, admin_a_headers, location_b, room_b):
        cultivation_service.create_plant(location_b.id, "OG Kush", room_b.id)
        log_b = db_session.query(AuditLog).filter_by(location_id=location_b.id).first()

        resp = client.get(f"/api/audit-logs/{log_b.id}", headers=admin_a_headers)
        assert resp.status_code == 404

    def test_plant_listing_is_scoped(self, client, admin_a_headers, location_a, location_b, room_a, room_b):
        mine = cultivation_service.create_plant(location_a.id, "Blue Dream", room_a.id)
        cultivation_service.create_plant(location_b.id, "OG Kush", room_b.id)

        resp = client.get("/api/cultivation/plants", headers=admin_a_headers)
        assert [p["id"] for p in resp.json["plants"]] == [mine.id]


class TestCrossLocationWrites:

    def test_cannot_adjust_other_location_item(self, client, db_session, admin_a_headers, location_b, type_id):
        item_b = inventory_service.create_inventory_item(location_b.id, type_id("Dry Trim"), 10)

        resp = client.post(f"/api/inventory/items/{item_b.id}/adjust", headers=admin_a_headers, json={
            "adjustment": "-5", "adjustment_type": "damage",
        })
        assert resp.status_code == 404

        db_session.refresh(item_b)
        assert item_b.quantity == Decimal("10.00")

    def test_cannot_plant_into_other_location_room(self, client, admin_a_headers, room_b):
        resp = client.post("/api/cultivation/plants", headers=admin_a_headers, json={
            "strain": "Blue Dream", "room_id": room_b.id,
        })
        assert resp.status_code == 400

    def test_body_location_id_is_ignored(self, client, admin_a_headers, location_a, location_b, room_a):
        resp = client.post("/api/cultivation/plants", headers=admin_a_headers, json={
            "strain": "Blue Dream", "room_id": room_a.id, "location_id": location_b.id,
        })
        assert resp.status_code == 201
        assert resp.json["plant"]["location_id"] == location_a.id

    def test_cannot_move_other_location_plant(self, client, admin_a_headers, location_b, room_a, room_b):
        plant_b = cultivation_service.create_plant(location_b.id, "OG Kush", room_b.id)

        resp = client.post("/api/cultivation/room-moves", headers=admin_a_headers, json={
            "plant_id": plant_b.id, "to_room_id": room_a.id,
        })
        assert resp.status_code == 404


class TestSessionsCarryLocation:

    def test_same_username_in_two_locations(self, client, db_session, location_a, location_b):
        from canopy.services import auth_service
        auth_service.create_user(location_a.id, "grower", "Password123", role="cultivator")
        auth_service.create_user(location_b.id, "grower", "Password123", role="cultivator")

        # Ambiguous without a location
        resp = client.post("/api/auth/login", json={"username": "grower", "password": "Password123"})
        assert resp.status_code == 401

        resp = client.post("/api/auth/login", json={
            "username": "grower", "password": "Password123", "location_ubi": location_b.ubi,
        })
        assert resp.status_code == 200
        assert resp.json["location_id"] == location_b.id
