# Overview: Inter-location transfers of inventory with a basic status workflow.

"""
Inter-location transfer service.

LIFECYCLE:
1. PENDING: Transfer created with its lines; nothing is reserved
2. IN_TRANSIT: Shipped from source (each line's item is decremented with a
   conditional UPDATE; any shortfall aborts the whole shipment)
3. RECEIVED: Accepted at destination (a matching item is created there per line)
   REJECTED: Refused at destination (quantities go back to the source items)
4. CANCELLED: Cancelled before shipping

Logistics (drivers, vehicles, manifests, routes) are out of scope.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from ..extensions import db
from ..models import InventoryItem, Location, Transfer, TransferLine
from ..models.inventory import ITEM_STATUS_ACTIVE
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError, to_centigrams, to_weight
from .audit_service import MODULE_TRANSFERS, TransferDetails, record_audit
from .concurrency import atomic, atomic_increment, run_with_retry
from .inventory_service import add_inventory_item, consume_quantity, get_inventory_item

logger = logging.getLogger(__name__)

# Transfer status constants
TRANSFER_STATUS_PENDING = "PENDING"
TRANSFER_STATUS_IN_TRANSIT = "IN_TRANSIT"
TRANSFER_STATUS_RECEIVED = "RECEIVED"
TRANSFER_STATUS_REJECTED = "REJECTED"
TRANSFER_STATUS_CANCELLED = "CANCELLED"


def _line_snapshot(transfer: Transfer) -> list[dict]:
    return [
        {"inventory_item_id": line.inventory_item_id, "quantity": str(line.quantity)}
        for line in transfer.lines
    ]


def _audit(transfer: Transfer, location_id: int, action_type: str, user_id: int | None, note: str | None = None):
    record_audit(
        location_id=location_id,
        user_id=user_id,
        module=MODULE_TRANSFERS,
        entity_type="transfer",
        entity_id=transfer.id,
        action_type=action_type,
        details=TransferDetails(
            from_location_id=transfer.from_location_id,
            to_location_id=transfer.to_location_id,
            status=transfer.status,
            lines=_line_snapshot(transfer),
            note=note,
        ),
    )


def get_transfer(location_id: int, transfer_id: int) -> Transfer:
    """Either side of a transfer may see it; everyone else gets 404."""
    transfer = db.session.query(Transfer).filter_by(id=transfer_id).first()
    if transfer is None or location_id not in (transfer.from_location_id, transfer.to_location_id):
        raise NotFoundError("Transfer not found")
    return transfer


def get_transfer_summary(location_id: int, transfer_id: int) -> dict:
    transfer = get_transfer(location_id, transfer_id)
    return {
        **transfer.to_dict(),
        "lines": [line.to_dict() for line in transfer.lines],
    }


def list_transfers(location_id: int, *, direction: str | None = None, status: str | None = None) -> list[Transfer]:
    q = db.session.query(Transfer)
    if direction == "outgoing":
        q = q.filter(Transfer.from_location_id == location_id)
    elif direction == "incoming":
        q = q.filter(Transfer.to_location_id == location_id)
    elif direction is None:
        q = q.filter(db.or_(Transfer.from_location_id == location_id, Transfer.to_location_id == location_id))
    else:
        raise ValidationError("direction must be 'incoming' or 'outgoing'")
    if status is not None:
        q = q.filter(Transfer.status == status)
    return q.order_by(Transfer.created_at.desc(), Transfer.id.desc()).all()


def create_transfer(
    from_location_id: int,
    to_location_id: int,
    lines: list[dict],
    user_id: int | None = None,
    reason: str | None = None,
) -> Transfer:
    """
    Create a PENDING transfer from the caller's location.

    lines: [{"inventory_item_id": int, "quantity": number}, ...]
    Each item must be active at the source and currently hold the quantity;
    the check is repeated (race-safely) at ship time.
    """
    if from_location_id == to_location_id:
        raise ValidationError("Cannot transfer to the same location")

    destination = db.session.query(Location).filter_by(id=to_location_id).first()
    if destination is None or not destination.is_active:
        raise NotFoundError("Destination location not found")

    if not isinstance(lines, list) or not lines:
        raise ValidationError("At least one transfer line is required")

    validated: list[tuple[InventoryItem, Decimal]] = []
    seen: set[int] = set()
    for raw in lines:
        if not isinstance(raw, dict):
            raise ValidationError("Each line must be an object")
        item = get_inventory_item(from_location_id, raw.get("inventory_item_id"))
        if item.id in seen:
            raise ValidationError(f"Inventory item {item.id} already on this transfer")
        seen.add(item.id)
        if item.status != ITEM_STATUS_ACTIVE:
            raise ValidationError(f"Inventory item {item.id} is {item.status}")
        quantity = to_weight(raw.get("quantity"), "quantity")
        if item.quantity < quantity:
            raise ValidationError(
                f"Insufficient inventory for item {item.id}. On-hand: {item.quantity}, requested: {quantity}"
            )
        validated.append((item, quantity))

    with atomic():
        transfer = Transfer(
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            status=TRANSFER_STATUS_PENDING,
            reason=reason,
            created_by_user_id=user_id,
        )
        db.session.add(transfer)
        db.session.flush()

        for item, quantity in validated:
            db.session.add(TransferLine(transfer_id=transfer.id, inventory_item_id=item.id, quantity=quantity))
        db.session.flush()

        _audit(transfer, from_location_id, "transfer_created", user_id, note=reason)

    logger.info("Transfer created: id=%s %s -> %s lines=%s",
                transfer.id, from_location_id, to_location_id, len(validated))
    return transfer


def ship_transfer(location_id: int, transfer_id: int, user_id: int | None = None) -> Transfer:
    """
    Ship a transfer (mark as IN_TRANSIT).
    Decrements every line's source item; one shortfall aborts them all.
    """
    def _op():
        with atomic():
            transfer = get_transfer(location_id, transfer_id)
            if transfer.from_location_id != location_id:
                raise ValidationError("Only the sending location can ship a transfer")
            if transfer.status != TRANSFER_STATUS_PENDING:
                raise ValidationError(f"Cannot ship transfer in {transfer.status} status")

            for line in transfer.lines:
                item = db.session.get(InventoryItem, line.inventory_item_id)
                consume_quantity(item, line.quantity)

            transfer.status = TRANSFER_STATUS_IN_TRANSIT
            transfer.shipped_by_user_id = user_id
            transfer.shipped_at = utcnow()

            _audit(transfer, transfer.from_location_id, "transfer_shipped", user_id)
        return transfer

    transfer = run_with_retry(_op)
    logger.info("Transfer shipped: id=%s", transfer.id)
    return transfer


def receive_transfer(
    location_id: int,
    transfer_id: int,
    user_id: int | None = None,
    *,
    accept: bool = True,
    rejection_reason: str | None = None,
) -> Transfer:
    """
    Close an IN_TRANSIT transfer at the destination.

    accept=True  -> RECEIVED: a new item per line is created at the
                    destination (same type, strain name, batch).
    accept=False -> REJECTED: each line's quantity goes back onto its
                    source item, which becomes active again.
    """
    if not accept and not (rejection_reason and rejection_reason.strip()):
        raise ValidationError("rejection_reason is required when rejecting a transfer")

    def _op():
        with atomic():
            transfer = get_transfer(location_id, transfer_id)
            if transfer.to_location_id != location_id:
                raise ValidationError("Only the receiving location can receive a transfer")
            if transfer.status != TRANSFER_STATUS_IN_TRANSIT:
                raise ValidationError(f"Cannot receive transfer in {transfer.status} status")

            for line in transfer.lines:
                source = db.session.get(InventoryItem, line.inventory_item_id)
                if accept:
                    received = add_inventory_item(
                        location_id=transfer.to_location_id,
                        inventory_type=source.inventory_type,
                        quantity=line.quantity,
                        unit=source.unit,
                        product_name=source.product_name,
                        batch_number=source.batch_number,
                        usable_weight=source.usable_weight,
                        source_plant_id=source.source_plant_id,
                        harvest_id=source.harvest_id,
                    )
                    line.received_inventory_item_id = received.id
                else:
                    atomic_increment(InventoryItem, source.id, "quantity_cg", to_centigrams(line.quantity))
                    if source.status != ITEM_STATUS_ACTIVE:
                        source.status = ITEM_STATUS_ACTIVE

            now = utcnow()
            transfer.received_by_user_id = user_id
            transfer.received_at = now
            if accept:
                transfer.status = TRANSFER_STATUS_RECEIVED
                _audit(transfer, transfer.to_location_id, "transfer_received", user_id)
            else:
                transfer.status = TRANSFER_STATUS_REJECTED
                transfer.rejection_reason = rejection_reason.strip()
                _audit(transfer, transfer.to_location_id, "transfer_rejected", user_id, note=transfer.rejection_reason)
        return transfer

    transfer = run_with_retry(_op)
    logger.info("Transfer %s: id=%s", transfer.status, transfer.id)
    return transfer


def cancel_transfer(location_id: int, transfer_id: int, user_id: int | None = None, reason: str | None = None) -> Transfer:
    """Cancel a transfer before shipping. Nothing was reserved, so nothing is restored."""
    with atomic():
        transfer = get_transfer(location_id, transfer_id)
        if transfer.from_location_id != location_id:
            raise ValidationError("Only the sending location can cancel a transfer")
        if transfer.status != TRANSFER_STATUS_PENDING:
            raise ValidationError(
                f"Cannot cancel transfer in {transfer.status} status. "
                f"Transfers can only be cancelled before shipping."
            )

        transfer.status = TRANSFER_STATUS_CANCELLED
        transfer.cancelled_by_user_id = user_id
        transfer.cancelled_at = utcnow()

        _audit(transfer, transfer.from_location_id, "transfer_cancelled", user_id, note=reason)

    return transfer
