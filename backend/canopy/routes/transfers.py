# backend/canopy/routes/transfers.py
"""
Inter-location transfer API routes.

The caller's location is the source for create/ship/cancel and the
destination for receive.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth, require_module
from ..permissions import MODULE_TRANSFERS
from ..services import transfer_service
from ..validation import require_fields


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.route("", methods=["POST"])
@require_auth
@require_module(MODULE_TRANSFERS)
def create_transfer():
    """
    Create a new transfer.

    Request body:
    {
        "to_location_id": int,
        "lines": [{"inventory_item_id": int, "quantity": number}, ...],
        "reason": str (optional)
    }

    Returns:
        201: Transfer created
        400: Invalid request
        403: Forbidden
        404: Destination or item not found
    """
    data = request.get_json(silent=True) or {}
    require_fields(data, ("to_location_id", "lines"))

    transfer = transfer_service.create_transfer(
        from_location_id=g.location_id,
        to_location_id=data["to_location_id"],
        lines=data["lines"],
        user_id=g.current_user.id,
        reason=data.get("reason"),
    )
    return transfer_service.get_transfer_summary(g.location_id, transfer.id), 201


@transfers_bp.route("/<int:transfer_id>/ship", methods=["POST"])
@require_auth
@require_module(MODULE_TRANSFERS)
def ship_transfer(transfer_id: int):
    """
    Ship a transfer (mark as IN_TRANSIT).

    Returns:
        200: Transfer shipped
        400: Invalid state
        404: Transfer not found
        409: A source item no longer holds the line quantity
    """
    transfer_service.ship_transfer(g.location_id, transfer_id, user_id=g.current_user.id)
    return transfer_service.get_transfer_summary(g.location_id, transfer_id), 200


@transfers_bp.route("/<int:transfer_id>/receive", methods=["POST"])
@require_auth
@require_module(MODULE_TRANSFERS)
def receive_transfer(transfer_id: int):
    """
    Receive (or reject) an IN_TRANSIT transfer at the destination.

    Request body:
    {
        "accept": bool (default true),
        "rejection_reason": str (required when accept is false)
    }
    """
    data = request.get_json(silent=True) or {}
    transfer_service.receive_transfer(
        g.location_id,
        transfer_id,
        user_id=g.current_user.id,
        accept=data.get("accept", True) is not False,
        rejection_reason=data.get("rejection_reason"),
    )
    return transfer_service.get_transfer_summary(g.location_id, transfer_id), 200


@transfers_bp.route("/<int:transfer_id>/cancel", methods=["POST"])
@require_auth
@require_module(MODULE_TRANSFERS)
def cancel_transfer(transfer_id: int):
    data = request.get_json(silent=True) or {}
    transfer_service.cancel_transfer(
        g.location_id, transfer_id, user_id=g.current_user.id, reason=data.get("reason")
    )
    return transfer_service.get_transfer_summary(g.location_id, transfer_id), 200


@transfers_bp.route("/<int:transfer_id>", methods=["GET"])
@require_auth
@require_module(MODULE_TRANSFERS)
def get_transfer(transfer_id: int):
    return transfer_service.get_transfer_summary(g.location_id, transfer_id), 200


@transfers_bp.route("", methods=["GET"])
@require_auth
@require_module(MODULE_TRANSFERS)
def list_transfers():
    """
    Query parameters:
        direction: incoming | outgoing (optional)
        status: Filter by status (optional)
    """
    transfers = transfer_service.list_transfers(
        g.location_id,
        direction=request.args.get("direction"),
        status=request.args.get("status"),
    )
    return {"transfers": [t.to_dict() for t in transfers]}, 200
