# Overview: Flask API routes for inventory items, adjustments, splits, combinations, lots and the type taxonomy.

from flask import Blueprint, g, request

from ..decorators import require_auth, require_module
from ..permissions import MODULE_INVENTORY
from ..services import cultivation_service, inventory_service, inventory_type_service, lot_service
from ..validation import require_fields


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/types")
@require_auth
@require_module(MODULE_INVENTORY)
def list_types_route():
    include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true", "yes")
    types = inventory_type_service.list_types(
        category=request.args.get("category"),
        include_inactive=include_inactive,
    )
    return {"inventory_types": [t.to_dict() for t in types]}, 200


@inventory_bp.get("/items")
@require_auth
@require_module(MODULE_INVENTORY)
def list_items_route():
    status = request.args.get("status", inventory_service.ITEM_STATUS_ACTIVE)
    items = inventory_service.list_inventory(
        g.location_id,
        status=None if status == "all" else status,
        inventory_type_id=request.args.get("inventory_type_id", type=int),
        category=request.args.get("category"),
        room_id=request.args.get("room_id", type=int),
        strain_id=request.args.get("strain_id", type=int),
        limit=min(request.args.get("limit", 200, type=int), 500),
        offset=request.args.get("offset", 0, type=int),
    )
    return {"inventory_items": [item.to_dict() for item in items]}, 200


@inventory_bp.post("/items")
@require_auth
@require_module(MODULE_INVENTORY)
def create_item_route():
    """Intake of material that did not come from a tracked lifecycle step."""
    payload = request.get_json(silent=True) or {}
    require_fields(payload, ("inventory_type_id", "quantity"))
    item = inventory_service.create_inventory_item(
        g.location_id,
        payload.get("inventory_type_id"),
        payload.get("quantity"),
        room_id=payload.get("room_id"),
        product_name=payload.get("product_name"),
        strain_id=payload.get("strain_id"),
        batch_number=payload.get("batch_number"),
        user_id=g.current_user.id,
    )
    return {"inventory_item": item.to_dict()}, 201


@inventory_bp.get("/items/<int:item_id>")
@require_auth
@require_module(MODULE_INVENTORY)
def get_item_route(item_id: int):
    item = inventory_service.get_inventory_item(g.location_id, item_id)
    return {"inventory_item": item.to_dict()}, 200


@inventory_bp.post("/items/<int:item_id>/adjust")
@require_auth
@require_module(MODULE_INVENTORY)
def adjust_item_route(item_id: int):
    """
    Signed manual correction.

    Body: adjustment (e.g. "-2.5"), adjustment_type, reason?
    Corrections above 10% come back with a warning and are stored as red flags.
    """
    payload = request.get_json(silent=True) or {}
    require_fields(payload, ("adjustment", "adjustment_type"))
    result = inventory_service.adjust_inventory(
        g.location_id,
        item_id,
        payload.get("adjustment"),
        payload.get("adjustment_type"),
        reason=payload.get("reason"),
        user_id=g.current_user.id,
    )
    body = {
        "inventory_item": result.item.to_dict(),
        "adjustment": result.adjustment.to_dict(),
    }
    if result.warning:
        body["warning"] = result.warning
    return body, 200


@inventory_bp.post("/undo/<int:audit_log_id>")
@require_auth
@require_module(MODULE_INVENTORY)
def undo_adjustment_route(audit_log_id: int):
    """Reverse an adjust_inventory audit entry (409 once the item has changed since)."""
    payload = request.get_json(silent=True) or {}
    undo_log = cultivation_service.undo_operation(
        g.location_id, audit_log_id, reason=payload.get("reason"), user_id=g.current_user.id,
        actions={"adjust_inventory"},
    )
    return {"audit_log": undo_log.to_dict()}, 201


@inventory_bp.post("/items/<int:item_id>/split")
@require_auth
@require_module(MODULE_INVENTORY)
def split_item_route(item_id: int):
    """
    Body: splits [{quantity, room_id?}, ...], reason?
    """
    payload = request.get_json(silent=True) or {}
    require_fields(payload, ("splits",))
    parent, children, record = lot_service.split_inventory(
        g.location_id,
        item_id,
        payload.get("splits"),
        reason=payload.get("reason"),
        user_id=g.current_user.id,
    )
    return {
        "parent_item": parent.to_dict(),
        "split_items": [child.to_dict() for child in children],
        "split": record.to_dict(),
    }, 201


@inventory_bp.post("/combine")
@require_auth
@require_module(MODULE_INVENTORY)
def combine_items_route():
    """
    Body: inventory_item_ids, target_inventory_item_id?, target_room_id?, reason?
    """
    payload = request.get_json(silent=True) or {}
    require_fields(payload, ("inventory_item_ids",))
    combined, record = lot_service.combine_inventory(
        g.location_id,
        payload.get("inventory_item_ids"),
        target_inventory_item_id=payload.get("target_inventory_item_id"),
        target_room_id=payload.get("target_room_id"),
        reason=payload.get("reason"),
        user_id=g.current_user.id,
    )
    return {
        "combined_item": combined.to_dict(),
        "combination": record.to_dict(),
        "source_item_count": len(record.source_ids),
    }, 201


@inventory_bp.post("/lots")
@require_auth
@require_module(MODULE_INVENTORY)
def create_lot_route():
    """
    Body: inventory_item_ids, lot_name, target_room_id, lot_type?
    """
    payload = request.get_json(silent=True) or {}
    require_fields(payload, ("inventory_item_ids", "lot_name", "target_room_id"))
    lot, lot_item = lot_service.create_lot(
        g.location_id,
        payload.get("inventory_item_ids"),
        payload.get("lot_name"),
        payload.get("target_room_id"),
        lot_type=payload.get("lot_type"),
        user_id=g.current_user.id,
    )
    return {"lot": lot.to_dict(), "lot_item": lot_item.to_dict()}, 201


def _page_args() -> dict:
    return {
        "page": request.args.get("page", "1"),
        "per_page": request.args.get("per_page", str(inventory_service.DEFAULT_PER_PAGE)),
    }


@inventory_bp.get("/adjustments")
@require_auth
@require_module(MODULE_INVENTORY)
def list_adjustments_route():
    red_flag_only = request.args.get("red_flag", "").lower() in ("1", "true", "yes")
    return inventory_service.list_adjustments(
        g.location_id,
        inventory_item_id=request.args.get("inventory_item_id", type=int),
        red_flag_only=red_flag_only,
        **_page_args(),
    ), 200


@inventory_bp.get("/splits")
@require_auth
@require_module(MODULE_INVENTORY)
def list_splits_route():
    return lot_service.list_splits(
        g.location_id,
        inventory_item_id=request.args.get("inventory_item_id", type=int),
        **_page_args(),
    ), 200


@inventory_bp.get("/combinations")
@require_auth
@require_module(MODULE_INVENTORY)
def list_combinations_route():
    return lot_service.list_combinations(g.location_id, **_page_args()), 200


@inventory_bp.get("/lots")
@require_auth
@require_module(MODULE_INVENTORY)
def list_lots_route():
    return lot_service.list_lots(g.location_id, **_page_args()), 200
