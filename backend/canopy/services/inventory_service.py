# Overview: Inventory items: intake, barcode assignment, lookup, listing and manual adjustments.

"""
Inventory Item Service

QUANTITY RULES:
- Quantity is never written with read-modify-write. Decreases go through
  conditional_decrement (compare-and-decrement), increases through
  atomic_increment.
- An item drained to zero by consumption becomes `consumed`; by
  destruction, `destroyed`. Drained items stay queryable for lineage.

BARCODES:
- 16-digit numeric strings drawn uniformly from [10^15, 10^16).
- Generation checks for an existing row and re-rolls up to
  BARCODE_MAX_ATTEMPTS times; the unique column is the final guard.
"""

from __future__ import annotations

import logging
import math
import secrets
from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import InventoryAdjustment, InventoryItem, InventoryType, Strain
from ..models.inventory import ITEM_STATUS_ACTIVE, ITEM_STATUS_CONSUMED, ITEM_STATUS_DESTROYED
from ..validation import ConflictError, NotFoundError, ValidationError, to_centigrams, to_positive_int, to_weight
from .audit_service import MODULE_INVENTORY, AdjustmentDetails, InventoryCreatedDetails, record_audit
from .concurrency import atomic, atomic_increment, compare_and_set, conditional_decrement
from .room_service import require_active_room

logger = logging.getLogger(__name__)

BARCODE_MIN = 10 ** 15
BARCODE_SPAN = 9 * 10 ** 15

# Adjustments larger than this share of the previous quantity are flagged
RED_FLAG_THRESHOLD = Decimal("0.10")

ADJUSTMENT_TYPES = {"correction", "moisture_loss", "damage", "theft", "count", "other"}

ITEM_STATUSES = {ITEM_STATUS_ACTIVE, ITEM_STATUS_CONSUMED, ITEM_STATUS_DESTROYED}

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


def _random_barcode() -> str:
    return str(BARCODE_MIN + secrets.randbelow(BARCODE_SPAN))


def generate_barcode(model=InventoryItem) -> str:
    """Return a 16-digit barcode not yet used by any row of `model`."""
    attempts = current_app.config.get("BARCODE_MAX_ATTEMPTS", 5)
    for _ in range(attempts):
        candidate = _random_barcode()
        taken = db.session.query(model.id).filter_by(barcode=candidate).first()
        if taken is None:
            return candidate
        logger.warning("Barcode collision on %s, re-rolling", candidate)
    raise ConflictError("Could not allocate a unique barcode")


def get_inventory_item(location_id: int, inventory_item_id: int) -> InventoryItem:
    item = (
        db.session.query(InventoryItem)
        .filter_by(id=inventory_item_id, location_id=location_id)
        .filter(InventoryItem.deleted_at.is_(None))
        .first()
    )
    if item is None:
        raise NotFoundError("Inventory item not found")
    return item


def require_strain(location_id: int, strain_id) -> Strain | None:
    if strain_id is None:
        return None
    strain = db.session.query(Strain).filter_by(id=strain_id, location_id=location_id).first()
    if strain is None:
        raise ValidationError("strain_id does not belong to this location")
    return strain


def add_inventory_item(
    *,
    location_id: int,
    inventory_type: InventoryType,
    quantity: Decimal,
    room_id: int | None = None,
    unit: str | None = None,
    product_name: str | None = None,
    strain_id: int | None = None,
    batch_number: str | None = None,
    usable_weight: Decimal | None = None,
    source_plant_id: int | None = None,
    harvest_id: int | None = None,
    parent_inventory_item_id: int | None = None,
    sublot_identifier: str | None = None,
    lot_id: int | None = None,
) -> InventoryItem:
    """
    Stage a new item in the current transaction (flush, no commit).

    Building block for lifecycle operations that create inventory as one of
    several writes. Inputs are assumed validated by the caller.
    """
    item = InventoryItem(
        location_id=location_id,
        inventory_type_id=inventory_type.id,
        product_name=product_name or inventory_type.name,
        quantity=quantity,
        unit=unit or inventory_type.unit,
        usable_weight=usable_weight,
        room_id=room_id,
        strain_id=strain_id,
        batch_number=batch_number,
        barcode=generate_barcode(),
        status=ITEM_STATUS_ACTIVE,
        source_plant_id=source_plant_id,
        harvest_id=harvest_id,
        parent_inventory_item_id=parent_inventory_item_id,
        sublot_identifier=sublot_identifier,
        lot_id=lot_id,
    )
    db.session.add(item)
    db.session.flush()
    return item


def create_inventory_item(
    location_id: int,
    inventory_type_id: int,
    quantity,
    *,
    room_id=None,
    product_name: str | None = None,
    strain_id=None,
    batch_number: str | None = None,
    user_id: int | None = None,
) -> InventoryItem:
    """Intake of new material (receiving, initial stock)."""
    quantity = to_weight(quantity, "quantity")

    inventory_type = db.session.query(InventoryType).filter_by(id=inventory_type_id).first()
    if inventory_type is None:
        raise NotFoundError("Inventory type not found")
    if not inventory_type.is_active:
        raise ValidationError(f"Inventory type '{inventory_type.name}' is inactive")
    if inventory_type.is_waste:
        raise ValidationError("Waste cannot be taken into inventory")

    if room_id is not None:
        require_active_room(location_id, room_id)
    require_strain(location_id, strain_id)

    with atomic():
        item = add_inventory_item(
            location_id=location_id,
            inventory_type=inventory_type,
            quantity=quantity,
            room_id=room_id,
            product_name=product_name,
            strain_id=strain_id,
            batch_number=batch_number,
        )
        record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_INVENTORY,
            entity_type="inventory_item",
            entity_id=item.id,
            action_type="create_inventory",
            details=InventoryCreatedDetails(
                created_from="intake",
                quantity=quantity,
                inventory_type=inventory_type.name,
            ),
        )

    logger.info("Inventory created: location=%s item=%s type=%s qty=%s",
                location_id, item.id, inventory_type.name, quantity)
    return item


def consume_quantity(item: InventoryItem, amount: Decimal, *, drained_status: str = ITEM_STATUS_CONSUMED) -> None:
    """
    Race-safe decrement of an item inside the caller's transaction.

    Raises ConflictError when the conditional UPDATE matched no row
    (insufficient quantity, or another writer got there first). Marks the
    item with drained_status once it reaches zero.
    """
    ok = conditional_decrement(
        InventoryItem,
        item.id,
        "quantity_cg",
        to_centigrams(amount),
        extra_filters=(InventoryItem.status == ITEM_STATUS_ACTIVE,),
    )
    if not ok:
        raise ConflictError(
            f"Insufficient quantity on inventory item {item.id} (concurrently modified or depleted)"
        )

    # Expired by the UPDATE; this read sees the committed-in-transaction value
    if item.quantity <= 0:
        item.status = drained_status
        db.session.flush()


def list_inventory(
    location_id: int,
    *,
    status: str | None = ITEM_STATUS_ACTIVE,
    inventory_type_id: int | None = None,
    category: str | None = None,
    room_id: int | None = None,
    strain_id: int | None = None,
    limit: int = 200,
    offset: int = 0,
) -> list[InventoryItem]:
    if status is not None and status not in ITEM_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(sorted(ITEM_STATUSES))}")

    q = db.session.query(InventoryItem).filter(
        InventoryItem.location_id == location_id,
        InventoryItem.deleted_at.is_(None),
    )
    if status is not None:
        q = q.filter(InventoryItem.status == status)
    if inventory_type_id is not None:
        q = q.filter(InventoryItem.inventory_type_id == inventory_type_id)
    if category is not None:
        q = q.join(InventoryType).filter(InventoryType.category == category)
    if room_id is not None:
        q = q.filter(InventoryItem.room_id == room_id)
    if strain_id is not None:
        q = q.filter(InventoryItem.strain_id == strain_id)

    q = q.order_by(InventoryItem.created_at.desc(), InventoryItem.id.desc())
    return q.offset(offset).limit(limit).all()


@dataclass
class AdjustmentResult:
    item: InventoryItem
    adjustment: InventoryAdjustment
    warning: str | None


def adjust_inventory(
    location_id: int,
    inventory_item_id: int,
    adjustment,
    adjustment_type: str,
    *,
    reason: str | None = None,
    user_id: int | None = None,
) -> AdjustmentResult:
    """
    Apply a signed manual correction to an item's quantity.

    A result below zero is rejected. Corrections above 10% of the previous
    quantity (or any correction to an empty item) are stored as red flags.
    """
    if adjustment is None or isinstance(adjustment, bool):
        raise ValidationError("adjustment must be a number")
    negative = str(adjustment).strip().startswith("-")
    magnitude = to_weight(str(adjustment).strip().lstrip("-"), "adjustment")
    delta = -magnitude if negative else magnitude

    if adjustment_type not in ADJUSTMENT_TYPES:
        raise ValidationError(f"adjustment_type must be one of: {', '.join(sorted(ADJUSTMENT_TYPES))}")

    item = get_inventory_item(location_id, inventory_item_id)
    if item.status != ITEM_STATUS_ACTIVE:
        raise ValidationError(f"Cannot adjust a {item.status} inventory item")

    previous = Decimal(item.quantity)
    new_quantity = previous + delta
    if new_quantity < 0:
        raise ValidationError("Adjustment would result in negative quantity")

    is_red_flag = _is_red_flag(previous, delta)

    with atomic():
        if delta < 0:
            ok = conditional_decrement(InventoryItem, item.id, "quantity_cg", to_centigrams(magnitude))
            if not ok:
                raise ConflictError("Inventory item was modified concurrently; retry the adjustment")
        else:
            atomic_increment(InventoryItem, item.id, "quantity_cg", to_centigrams(magnitude))

        record = InventoryAdjustment(
            location_id=location_id,
            inventory_item_id=item.id,
            adjustment=delta,
            previous_quantity=previous,
            new_quantity=new_quantity,
            adjustment_type=adjustment_type,
            reason=reason,
            is_red_flag=is_red_flag,
            created_by_user_id=user_id,
        )
        db.session.add(record)
        db.session.flush()

        record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_INVENTORY,
            entity_type="inventory_item",
            entity_id=item.id,
            action_type="adjust_inventory",
            details=AdjustmentDetails(
                adjustment_id=record.id,
                adjustment_type=adjustment_type,
                old_quantity=previous,
                new_quantity=new_quantity,
                is_red_flag=is_red_flag,
                reason=reason,
            ),
        )

    if is_red_flag:
        logger.warning("Red-flag adjustment: location=%s item=%s %s -> %s",
                       location_id, item.id, previous, new_quantity)

    return AdjustmentResult(
        item=item,
        adjustment=record,
        warning="Large adjustment detected (>10%)" if is_red_flag else None,
    )


def _is_red_flag(previous: Decimal, delta: Decimal) -> bool:
    if previous == 0:
        return True
    return abs(delta) / previous > RED_FLAG_THRESHOLD


def reverse_adjustment(
    location_id: int,
    inventory_item_id: int,
    details: AdjustmentDetails,
    *,
    audit_log_id: int,
    user_id: int | None = None,
) -> InventoryAdjustment:
    """
    Put an item back to the quantity it had before an audited adjustment.
    Runs in the caller's transaction (flush only).

    The write is a compare-and-set against the adjustment's new_quantity, so
    any movement on the item since then raises ConflictError rather than
    being overwritten.
    """
    item = get_inventory_item(location_id, inventory_item_id)
    if item.status != ITEM_STATUS_ACTIVE:
        raise ValidationError(f"Cannot undo an adjustment on a {item.status} inventory item")

    ok = compare_and_set(
        InventoryItem,
        item.id,
        "quantity_cg",
        to_centigrams(details.new_quantity),
        to_centigrams(details.old_quantity),
        extra_filters=(InventoryItem.status == ITEM_STATUS_ACTIVE,),
    )
    if not ok:
        raise ConflictError("Inventory item changed after the adjustment; it can no longer be undone")

    delta = details.old_quantity - details.new_quantity
    record = InventoryAdjustment(
        location_id=location_id,
        inventory_item_id=item.id,
        adjustment=delta,
        previous_quantity=details.new_quantity,
        new_quantity=details.old_quantity,
        adjustment_type="correction",
        reason=f"Undo of audit log {audit_log_id}",
        is_red_flag=_is_red_flag(details.new_quantity, delta),
        created_by_user_id=user_id,
    )
    db.session.add(record)
    db.session.flush()
    return record


def paginate(query, page, per_page) -> tuple[list, dict]:
    """Apply page/per_page to an ordered query; returns (rows, meta)."""
    page = to_positive_int(page, "page")
    per_page = min(to_positive_int(per_page, "per_page"), MAX_PER_PAGE)
    total = query.count()
    rows = query.offset((page - 1) * per_page).limit(per_page).all()
    return rows, {
        "total": total,
        "page": page,
        "per_page": per_page,
        "total_pages": math.ceil(total / per_page) if total else 0,
    }


def list_adjustments(
    location_id: int,
    page=1,
    per_page=DEFAULT_PER_PAGE,
    inventory_item_id=None,
    red_flag_only: bool = False,
) -> dict:
    q = db.session.query(InventoryAdjustment).filter(InventoryAdjustment.location_id == location_id)
    if inventory_item_id is not None:
        q = q.filter(InventoryAdjustment.inventory_item_id == inventory_item_id)
    if red_flag_only:
        q = q.filter(InventoryAdjustment.is_red_flag.is_(True))
    q = q.order_by(InventoryAdjustment.created_at.desc(), InventoryAdjustment.id.desc())

    rows, meta = paginate(q, page, per_page)
    return {"data": [row.to_dict() for row in rows], "meta": meta}
