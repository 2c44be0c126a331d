# Overview: Flask API routes for the plant lifecycle; parses input and returns JSON responses.

"""
Cultivation API routes.

SECURITY: All routes require authentication and the cultivation module
(read for GET, write otherwise). The location always comes from the
session; a location_id in the body is ignored.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth, require_module
from ..permissions import MODULE_CULTIVATION
from ..services import cultivation_service, cure_service, destruction_service
from ..validation import require_fields


cultivation_bp = Blueprint("cultivation", __name__, url_prefix="/api/cultivation")


def _bool_arg(name: str):
    raw = request.args.get(name)
    if raw is None:
        return None
    return raw.strip().lower() in ("1", "true", "yes")


# ---------------------------------------------------------------------------
# Strains
# ---------------------------------------------------------------------------

@cultivation_bp.get("/strains")
@require_auth
@require_module(MODULE_CULTIVATION)
def list_strains_route():
    strains = cultivation_service.list_strains(g.location_id)
    return {"strains": [s.to_dict() for s in strains]}, 200


@cultivation_bp.post("/strains")
@require_auth
@require_module(MODULE_CULTIVATION)
def create_strain_route():
    payload = request.get_json(silent=True) or {}
    strain = cultivation_service.create_strain(g.location_id, payload.get("name"))
    return {"strain": strain.to_dict()}, 201


# ---------------------------------------------------------------------------
# Plants
# ---------------------------------------------------------------------------

@cultivation_bp.get("/plants")
@require_auth
@require_module(MODULE_CULTIVATION)
def list_plants_route():
    plants = cultivation_service.list_plants(
        g.location_id,
        status=request.args.get("status"),
        room_id=request.args.get("room_id", type=int),
        strain=request.args.get("strain"),
        is_mother=_bool_arg("is_mother"),
        limit=min(request.args.get("limit", 200, type=int), 500),
        offset=request.args.get("offset", 0, type=int),
    )
    return {"plants": [p.to_dict() for p in plants]}, 200


@cultivation_bp.post("/plants")
@require_auth
@require_module(MODULE_CULTIVATION)
def create_plant_route():
    """
    Create a plant.

    Body: strain, room_id, phase?, source_inventory_id?, consume_amount?, notes?
    When source_inventory_id is given, consume_amount (default 1) is taken
    from that item; running out returns 409.
    """
    payload = request.get_json(silent=True) or {}
    require_fields(payload, ("strain", "room_id"))

    plant = cultivation_service.create_plant(
        location_id=g.location_id,
        strain=payload.get("strain"),
        room_id=payload.get("room_id"),
        phase=payload.get("phase") or "vegetative",
        source_inventory_id=payload.get("source_inventory_id"),
        consume_amount=payload.get("consume_amount", 1),
        user_id=g.current_user.id,
        notes=payload.get("notes"),
    )
    return {"plant": plant.to_dict()}, 201


@cultivation_bp.get("/plants/<int:plant_id>")
@require_auth
@require_module(MODULE_CULTIVATION)
def get_plant_route(plant_id: int):
    plant = cultivation_service.get_plant(g.location_id, plant_id)
    return {"plant": plant.to_dict()}, 200


@cultivation_bp.patch("/plants/<int:plant_id>")
@require_auth
@require_module(MODULE_CULTIVATION)
def update_plant_route(plant_id: int):
    payload = request.get_json(silent=True)
    plant = cultivation_service.update_plant(g.location_id, plant_id, payload, user_id=g.current_user.id)
    return {"plant": plant.to_dict()}, 200


@cultivation_bp.delete("/plants/<int:plant_id>")
@require_auth
@require_module(MODULE_CULTIVATION)
def delete_plant_route(plant_id: int):
    plant = cultivation_service.soft_delete_plant(g.location_id, plant_id, user_id=g.current_user.id)
    return {"plant": plant.to_dict()}, 200


@cultivation_bp.post("/plants/<int:plant_id>/mother")
@require_auth
@require_module(MODULE_CULTIVATION)
def convert_to_mother_route(plant_id: int):
    payload = request.get_json(silent=True) or {}
    plant = cultivation_service.convert_to_mother_plant(
        g.location_id, plant_id, notes=payload.get("notes"), user_id=g.current_user.id
    )
    return {"plant": plant.to_dict()}, 200


def _offspring(plant_id: int, generate):
    payload = request.get_json(silent=True) or {}
    require_fields(payload, ("quantity", "room_id"))
    item = generate(
        g.location_id,
        plant_id,
        payload.get("quantity"),
        payload.get("room_id"),
        notes=payload.get("notes"),
        user_id=g.current_user.id,
    )
    return {"inventory_item": item.to_dict()}, 201


@cultivation_bp.post("/plants/<int:plant_id>/clones")
@require_auth
@require_module(MODULE_CULTIVATION)
def generate_clones_route(plant_id: int):
    return _offspring(plant_id, cultivation_service.generate_clones)


@cultivation_bp.post("/plants/<int:plant_id>/seeds")
@require_auth
@require_module(MODULE_CULTIVATION)
def generate_seeds_route(plant_id: int):
    return _offspring(plant_id, cultivation_service.generate_seeds)


# ---------------------------------------------------------------------------
# Room moves and undo
# ---------------------------------------------------------------------------

@cultivation_bp.post("/room-moves")
@require_auth
@require_module(MODULE_CULTIVATION)
def create_room_move_route():
    """Move exactly one plant or inventory item to another active room."""
    payload = request.get_json(silent=True) or {}
    move = cultivation_service.create_room_move(
        plant_id=payload.get("plant_id"),
        inventory_item_id=payload.get("inventory_item_id"),
        from_room_id=payload.get("from_room_id"),
        to_room_id=payload.get("to_room_id"),
        user_id=g.current_user.id,
        location_id=g.location_id,
        reason=payload.get("reason"),
    )
    return {"room_move": move.to_dict()}, 201


@cultivation_bp.post("/undo/<int:audit_log_id>")
@require_auth
@require_module(MODULE_CULTIVATION)
def undo_operation_route(audit_log_id: int):
    payload = request.get_json(silent=True) or {}
    undo_log = cultivation_service.undo_operation(
        g.location_id, audit_log_id, reason=payload.get("reason"), user_id=g.current_user.id,
        actions={"move_room"},
    )
    return {"audit_log": undo_log.to_dict()}, 201


# ---------------------------------------------------------------------------
# Harvests, cures, destructions
# ---------------------------------------------------------------------------

@cultivation_bp.get("/harvests")
@require_auth
@require_module(MODULE_CULTIVATION)
def list_harvests_route():
    harvests = cultivation_service.list_harvests(g.location_id, plant_id=request.args.get("plant_id", type=int))
    return {"harvests": [h.to_dict() for h in harvests]}, 200


@cultivation_bp.post("/harvests")
@require_auth
@require_module(MODULE_CULTIVATION)
def create_harvest_route():
    payload = request.get_json(silent=True) or {}
    require_fields(payload, ("plant_id", "wet_flower_weight"))
    harvest = cultivation_service.create_harvest(
        g.location_id,
        payload.get("plant_id"),
        payload.get("wet_flower_weight"),
        wet_other_material_weight=payload.get("wet_other_material_weight", 0),
        wet_waste_weight=payload.get("wet_waste_weight", 0),
        batch_number=payload.get("batch_number"),
        user_id=g.current_user.id,
    )
    return {"harvest": harvest.to_dict()}, 201


@cultivation_bp.get("/cures")
@require_auth
@require_module(MODULE_CULTIVATION)
def list_cures_route():
    cures = cure_service.list_cures(g.location_id, plant_id=request.args.get("plant_id", type=int))
    return {"cures": [c.to_dict() for c in cures]}, 200


@cultivation_bp.post("/cures")
@require_auth
@require_module(MODULE_CULTIVATION)
def create_cure_route():
    """
    Record dry weights for a harvest.

    Creates cured flower / other material inventory (unless
    create_inventory is false) and a destruction for the dry waste.
    """
    payload = request.get_json(silent=True) or {}
    require_fields(payload, ("harvest_id", "dry_flower_weight"))
    result = cure_service.create_cure(
        payload.get("harvest_id"),
        payload.get("dry_flower_weight"),
        dry_other_material_weight=payload.get("dry_other_material_weight", 0),
        dry_waste_weight=payload.get("dry_waste_weight", 0),
        user_id=g.current_user.id,
        create_inventory=payload.get("create_inventory", True) is not False,
        location_id=g.location_id,
    )
    return {
        "cure": result.cure.to_dict(),
        "inventory_items": [item.to_dict() for item in result.inventory_items],
        "destruction": result.destruction.to_dict() if result.destruction is not None else None,
    }, 201


@cultivation_bp.get("/destructions")
@require_auth
@require_module(MODULE_CULTIVATION)
def list_destructions_route():
    destructions = destruction_service.list_destructions(
        g.location_id,
        plant_id=request.args.get("plant_id", type=int),
        inventory_item_id=request.args.get("inventory_item_id", type=int),
    )
    return {"destructions": [d.to_dict() for d in destructions]}, 200


@cultivation_bp.post("/destructions")
@require_auth
@require_module(MODULE_CULTIVATION)
def create_destruction_route():
    payload = request.get_json(silent=True) or {}
    destruction = destruction_service.create_destruction(
        payload.get("destruction_reason"),
        payload.get("waste_amount"),
        plant_id=payload.get("plant_id"),
        inventory_item_id=payload.get("inventory_item_id"),
        user_id=g.current_user.id,
        location_id=g.location_id,
    )
    return {"destruction": destruction.to_dict()}, 201
