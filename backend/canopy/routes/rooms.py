# Overview: Flask API routes for room management within the caller's location.

from flask import Blueprint, g, request

from ..decorators import require_auth, require_module
from ..permissions import MODULE_ROOMS
from ..services import room_service
from ..validation import clean_patch


rooms_bp = Blueprint("rooms", __name__, url_prefix="/api/rooms")

# status changes go through set_room_status
PATCH_FIELDS = room_service.ROOM_WRITABLE_FIELDS | {"status"}


@rooms_bp.get("")
@require_auth
@require_module(MODULE_ROOMS)
def list_rooms_route():
    include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true", "yes")
    rooms = room_service.list_rooms(g.location_id, include_inactive=include_inactive)
    return {"rooms": [r.to_dict() for r in rooms]}, 200


@rooms_bp.post("")
@require_auth
@require_module(MODULE_ROOMS)
def create_room_route():
    payload = request.get_json(silent=True) or {}
    room = room_service.create_room(
        g.location_id,
        payload.get("name"),
        payload.get("room_type"),
        user_id=g.current_user.id,
    )
    return {"room": room.to_dict()}, 201


@rooms_bp.get("/<int:room_id>")
@require_auth
@require_module(MODULE_ROOMS)
def get_room_route(room_id: int):
    return {"room": room_service.get_room(g.location_id, room_id).to_dict()}, 200


@rooms_bp.patch("/<int:room_id>")
@require_auth
@require_module(MODULE_ROOMS)
def update_room_route(room_id: int):
    patch = clean_patch(request.get_json(silent=True), PATCH_FIELDS)
    status = patch.pop("status", None)

    room = room_service.update_room(g.location_id, room_id, patch, user_id=g.current_user.id)
    if status is not None:
        room = room_service.set_room_status(g.location_id, room_id, status, user_id=g.current_user.id)
    return {"room": room.to_dict()}, 200


@rooms_bp.delete("/<int:room_id>")
@require_auth
@require_module(MODULE_ROOMS)
def delete_room_route(room_id: int):
    """Soft delete; refused while the room still holds plants or inventory."""
    room = room_service.soft_delete_room(g.location_id, room_id, user_id=g.current_user.id)
    return {"room": room.to_dict()}, 200
