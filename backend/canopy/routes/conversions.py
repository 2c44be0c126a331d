# Overview: Flask API routes for inventory conversions (wet -> dry -> extraction -> finished).

"""
Conversion API routes.

Every conversion consumes input_weight from the source item, creates one
output item and records material loss. Errors:
- 404: source, output type or room not in the caller's location
- 400: insufficient quantity, wrong category, output > input, usable > output
"""
from flask import Blueprint, g, request

from ..decorators import require_auth, require_module
from ..permissions import MODULE_CONVERSION
from ..services import conversion_service
from ..validation import require_fields


conversions_bp = Blueprint("conversions", __name__, url_prefix="/api/conversions")

_COMMON_FIELDS = ("source_inventory_id", "output_inventory_type_id", "input_weight", "output_weight", "room_id")


def _common_kwargs(payload: dict) -> dict:
    return {
        "location_id": g.location_id,
        "source_inventory_id": payload.get("source_inventory_id"),
        "output_inventory_type_id": payload.get("output_inventory_type_id"),
        "input_weight": payload.get("input_weight"),
        "output_weight": payload.get("output_weight"),
        "room_id": payload.get("room_id"),
        "strain_id": payload.get("strain_id"),
        "batch_number": payload.get("batch_number"),
        "notes": payload.get("notes"),
        "user_id": g.current_user.id,
    }


@conversions_bp.post("/wet-to-dry")
@require_auth
@require_module(MODULE_CONVERSION)
def wet_to_dry_route():
    payload = request.get_json(silent=True) or {}
    require_fields(payload, _COMMON_FIELDS)
    result = conversion_service.convert_wet_to_dry(**_common_kwargs(payload))
    return result.to_dict(), 201


@conversions_bp.post("/dry-to-extraction")
@require_auth
@require_module(MODULE_CONVERSION)
def dry_to_extraction_route():
    payload = request.get_json(silent=True) or {}
    require_fields(payload, _COMMON_FIELDS + ("extraction_method",))
    result = conversion_service.convert_dry_to_extraction(
        extraction_method=payload.get("extraction_method"),
        **_common_kwargs(payload),
    )
    return result.to_dict(), 201


@conversions_bp.post("/extraction-to-finished")
@require_auth
@require_module(MODULE_CONVERSION)
def extraction_to_finished_route():
    payload = request.get_json(silent=True) or {}
    require_fields(payload, _COMMON_FIELDS + ("usable_weight", "units_produced"))
    result = conversion_service.convert_extraction_to_finished(
        usable_weight=payload.get("usable_weight"),
        units_produced=payload.get("units_produced"),
        product_sku=payload.get("product_sku"),
        **_common_kwargs(payload),
    )
    return result.to_dict(), 201


@conversions_bp.get("")
@require_auth
@require_module(MODULE_CONVERSION)
def list_conversions_route():
    """
    Query params: page, per_page (max 100), conversion_type, strain_id,
    room_id, start_date, end_date (ISO-8601; a bare end date is inclusive).
    """
    result = conversion_service.list_conversions(
        g.location_id,
        page=request.args.get("page", "1"),
        per_page=request.args.get("per_page", str(conversion_service.DEFAULT_PER_PAGE)),
        conversion_type=request.args.get("conversion_type"),
        strain_id=request.args.get("strain_id", type=int),
        room_id=request.args.get("room_id", type=int),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
    )
    return result, 200


@conversions_bp.get("/<int:inventory_item_id>")
@require_auth
@require_module(MODULE_CONVERSION)
def get_conversion_route(inventory_item_id: int):
    return {"conversion": conversion_service.get_conversion(g.location_id, inventory_item_id)}, 200
