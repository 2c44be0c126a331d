# Overview: Room CRUD and the "active room in this location" check every lifecycle step uses.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import InventoryItem, Plant, Room
from ..models.cultivation import PLANT_STATUS_DELETED, PLANT_STATUS_DESTROYED
from ..models.inventory import ITEM_STATUS_ACTIVE
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError
from .audit_service import MODULE_ROOMS, FieldChangeDetails, RoomDetails, record_audit
from .concurrency import atomic

logger = logging.getLogger(__name__)

ROOM_STATUS_ACTIVE = "active"
ROOM_STATUS_INACTIVE = "inactive"

ROOM_TYPES = {"clone", "vegetative", "flowering", "drying", "curing", "processing", "storage", "quarantine"}

ROOM_WRITABLE_FIELDS = {"name", "room_type"}


def get_room(location_id: int, room_id: int) -> Room:
    """Room in this location; rooms of other locations are reported as missing."""
    room = db.session.query(Room).filter_by(id=room_id, location_id=location_id).first()
    if room is None or room.deleted_at is not None:
        raise NotFoundError("Room not found")
    return room


def require_active_room(location_id: int, room_id, *, field: str = "room_id") -> Room:
    """
    Lifecycle-facing check: the room must exist in the location and be active.

    Failures here are business-rule violations of the request (400), not
    lookups of the primary entity, so they raise ValidationError.
    """
    if room_id is None:
        raise ValidationError(f"{field} is required")
    room = db.session.query(Room).filter_by(id=room_id, location_id=location_id).first()
    if room is None or room.deleted_at is not None:
        raise ValidationError(f"{field} does not belong to this location")
    if not room.is_usable:
        raise ValidationError(f"Room '{room.name}' is not active")
    return room


def list_rooms(location_id: int, *, include_inactive: bool = False) -> list[Room]:
    q = db.session.query(Room).filter(Room.location_id == location_id, Room.deleted_at.is_(None))
    if not include_inactive:
        q = q.filter(Room.status == ROOM_STATUS_ACTIVE)
    return q.order_by(Room.name.asc()).all()


def _validate_name(location_id: int, name, *, exclude_room_id: int | None = None) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required")
    name = name.strip()
    if len(name) > 120:
        raise ValidationError("name must be at most 120 characters")

    q = db.session.query(Room.id).filter(Room.location_id == location_id, Room.name == name)
    if exclude_room_id is not None:
        q = q.filter(Room.id != exclude_room_id)
    if q.first() is not None:
        raise ValidationError(f"Room '{name}' already exists at this location")
    return name


def _validate_room_type(room_type):
    if room_type is None:
        return None
    if room_type not in ROOM_TYPES:
        raise ValidationError(f"room_type must be one of: {', '.join(sorted(ROOM_TYPES))}")
    return room_type


def create_room(location_id: int, name, room_type=None, *, user_id: int | None = None) -> Room:
    name = _validate_name(location_id, name)
    room_type = _validate_room_type(room_type)

    with atomic():
        room = Room(location_id=location_id, name=name, room_type=room_type, status=ROOM_STATUS_ACTIVE)
        db.session.add(room)
        db.session.flush()

        record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_ROOMS,
            entity_type="room",
            entity_id=room.id,
            action_type="create_room",
            details=RoomDetails(name=room.name, status=room.status),
        )

    logger.info("Room created: location=%s room=%s name=%s", location_id, room.id, room.name)
    return room


def update_room(location_id: int, room_id: int, patch: dict, *, user_id: int | None = None) -> Room:
    room = get_room(location_id, room_id)

    changes = {}
    if "name" in patch:
        changes["name"] = _validate_name(location_id, patch["name"], exclude_room_id=room.id)
    if "room_type" in patch:
        changes["room_type"] = _validate_room_type(patch["room_type"])

    old_value = {key: getattr(room, key) for key in changes}
    if old_value == changes:
        return room

    with atomic():
        for key, value in changes.items():
            setattr(room, key, value)

        record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_ROOMS,
            entity_type="room",
            entity_id=room.id,
            action_type="update_room",
            details=FieldChangeDetails(old_value=old_value, new_value=changes),
        )

    return room


def _occupancy(room_id: int) -> tuple[int, int]:
    plants = (
        db.session.query(db.func.count(Plant.id))
        .filter(
            Plant.room_id == room_id,
            Plant.deleted_at.is_(None),
            Plant.status.notin_([PLANT_STATUS_DELETED, PLANT_STATUS_DESTROYED]),
        )
        .scalar()
    )
    items = (
        db.session.query(db.func.count(InventoryItem.id))
        .filter(
            InventoryItem.room_id == room_id,
            InventoryItem.status == ITEM_STATUS_ACTIVE,
            InventoryItem.deleted_at.is_(None),
        )
        .scalar()
    )
    return plants or 0, items or 0


def set_room_status(location_id: int, room_id: int, status: str, *, user_id: int | None = None) -> Room:
    if status not in (ROOM_STATUS_ACTIVE, ROOM_STATUS_INACTIVE):
        raise ValidationError("status must be 'active' or 'inactive'")

    room = get_room(location_id, room_id)
    if room.status == status:
        return room

    with atomic():
        old_status = room.status
        room.status = status
        record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_ROOMS,
            entity_type="room",
            entity_id=room.id,
            action_type="update_room",
            details=FieldChangeDetails(old_value={"status": old_status}, new_value={"status": status}),
        )
    return room


def deactivate_room(location_id: int, room_id: int, *, user_id: int | None = None) -> Room:
    """Inactive rooms stay visible but can no longer receive plants, items or moves."""
    return set_room_status(location_id, room_id, ROOM_STATUS_INACTIVE, user_id=user_id)


def soft_delete_room(location_id: int, room_id: int, *, user_id: int | None = None) -> Room:
    room = get_room(location_id, room_id)

    plants, items = _occupancy(room.id)
    if plants or items:
        raise ValidationError(
            f"Room '{room.name}' still holds {plants} plant(s) and {items} inventory item(s)"
        )

    with atomic():
        room.deleted_at = utcnow()
        room.status = ROOM_STATUS_INACTIVE
        record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_ROOMS,
            entity_type="room",
            entity_id=room.id,
            action_type="delete_room",
            details=RoomDetails(name=room.name, status=room.status),
        )

    logger.info("Room deleted: location=%s room=%s", location_id, room.id)
    return room
