# Overview: Splitting items into sublots, combining items, and gathering material into lots.

"""
Lot Service

STOCK RULES:
- Parents and sources are drawn down with consume_quantity (the same
  guarded decrement every other consumer uses), never overwritten.
- Drained sources become `consumed` and stay queryable; children, combined
  items and lot items point back at them (parent_inventory_item_id,
  lot_id, and the split/combination records).
- Each operation is one transaction and writes exactly one audit row.
"""

from __future__ import annotations

import json
import logging
from decimal import ROUND_HALF_UP, Decimal

from ..extensions import db
from ..models import InventoryCombination, InventoryItem, InventorySplit, InventoryType, Lot
from ..models.inventory import CATEGORY_DRY, CATEGORY_LOT, CATEGORY_WET, ITEM_STATUS_ACTIVE
from ..validation import WEIGHT_QUANT, NotFoundError, ValidationError, to_centigrams, to_weight
from .audit_service import MODULE_INVENTORY, CombineDetails, LotDetails, SplitDetails, record_audit
from .concurrency import atomic, atomic_increment
from .inventory_service import (
    DEFAULT_PER_PAGE,
    add_inventory_item,
    consume_quantity,
    get_inventory_item,
    paginate,
)
from .inventory_type_service import category_matches, get_type_by_name
from .room_service import require_active_room

logger = logging.getLogger(__name__)

DEFAULT_LOT_TYPE = "Lot of Dry Flower"

# Barcode digits after this offset seed the sublot identifier of a first split
SUBLOT_BARCODE_OFFSET = 8

LOT_SOURCE_CATEGORIES = (CATEGORY_WET, CATEGORY_DRY)


def _shared(items: list[InventoryItem], attr: str):
    """The common value of attr across items, or None when they differ."""
    values = {getattr(item, attr) for item in items}
    return values.pop() if len(values) == 1 else None


def _sum_usable(items: list[InventoryItem]) -> Decimal | None:
    weights = [item.usable_weight for item in items if item.usable_weight is not None]
    return sum(weights, Decimal("0.00")) if weights else None


def _drain(items: list[InventoryItem], quantities: list[Decimal]) -> None:
    # Decrement by what was validated; a concurrent change turns into ConflictError
    for item, quantity in zip(items, quantities):
        consume_quantity(item, quantity)


def _source_summary(items: list[InventoryItem], quantities: list[Decimal]) -> list[dict]:
    return [
        {"inventory_item_id": item.id, "quantity": str(quantity)}
        for item, quantity in zip(items, quantities)
    ]


def _load_sources(location_id: int, inventory_item_ids, *, minimum: int) -> list[InventoryItem]:
    """Distinct, active, non-empty items of the location, in request order."""
    if not isinstance(inventory_item_ids, list) or not inventory_item_ids:
        raise ValidationError("inventory_item_ids must be a non-empty list")
    if len(set(inventory_item_ids)) != len(inventory_item_ids):
        raise ValidationError("inventory_item_ids must not repeat")
    if len(inventory_item_ids) < minimum:
        raise ValidationError(f"At least {minimum} inventory items are required")

    items = [get_inventory_item(location_id, item_id) for item_id in inventory_item_ids]
    for item in items:
        if item.status != ITEM_STATUS_ACTIVE:
            raise ValidationError(f"Inventory item {item.id} is {item.status}")
        if item.quantity <= 0:
            raise ValidationError(f"Inventory item {item.id} is empty")
    return items


# ---------------------------------------------------------------------------
# Split
# ---------------------------------------------------------------------------

def _validate_splits(parent: InventoryItem, splits, location_id: int) -> list[tuple[Decimal, int]]:
    if not isinstance(splits, list) or not splits:
        raise ValidationError("splits must be a non-empty list")

    parsed = []
    for index, split in enumerate(splits, start=1):
        if not isinstance(split, dict):
            raise ValidationError(f"splits[{index}] must be an object")
        quantity = to_weight(split.get("quantity"), f"splits[{index}].quantity")
        if parent.unit != "grams" and quantity != quantity.to_integral_value():
            raise ValidationError(f"splits[{index}].quantity must be a whole number of {parent.unit}")
        room_id = split.get("room_id")
        if room_id is None:
            room_id = parent.room_id
        else:
            require_active_room(location_id, room_id, field=f"splits[{index}].room_id")
        parsed.append((quantity, room_id))
    return parsed


def split_inventory(
    location_id: int,
    inventory_item_id: int,
    splits,
    reason: str | None = None,
    user_id: int | None = None,
) -> tuple[InventoryItem, list[InventoryItem], InventorySplit]:
    """
    Carve sublot children off a parent item.

    splits: [{"quantity": number, "room_id": int?}, ...]; children default
    to the parent's room. The children's total may not exceed the parent's
    quantity. Usable weight moves with the material in proportion.

    Returns (parent, children, split record).
    """
    parent = get_inventory_item(location_id, inventory_item_id)
    if parent.status != ITEM_STATUS_ACTIVE:
        raise ValidationError(f"Cannot split a {parent.status} inventory item")

    parsed = _validate_splits(parent, splits, location_id)
    total = sum((quantity for quantity, _ in parsed), Decimal("0.00"))
    previous = parent.quantity
    if total > previous:
        raise ValidationError(f"Total split quantity {total} exceeds the item's {previous}")

    base = parent.sublot_identifier or parent.barcode[SUBLOT_BARCODE_OFFSET:]
    # Later splits of the same parent continue the numbering
    numbered = (
        db.session.query(InventoryItem.id)
        .filter(InventoryItem.parent_inventory_item_id == parent.id)
        .count()
    )

    parent_usable = parent.usable_weight
    inventory_type = parent.inventory_type

    with atomic():
        consume_quantity(parent, total)

        children = []
        moved_usable = Decimal("0.00")
        for offset, (quantity, room_id) in enumerate(parsed, start=1):
            usable = None
            if parent_usable is not None:
                usable = (parent_usable * quantity / previous).quantize(WEIGHT_QUANT, rounding=ROUND_HALF_UP)
                moved_usable += usable
            child = add_inventory_item(
                location_id=location_id,
                inventory_type=inventory_type,
                quantity=quantity,
                room_id=room_id,
                unit=parent.unit,
                product_name=parent.product_name,
                strain_id=parent.strain_id,
                batch_number=parent.batch_number,
                usable_weight=usable,
                source_plant_id=parent.source_plant_id,
                harvest_id=parent.harvest_id,
                parent_inventory_item_id=parent.id,
                sublot_identifier=f"{base}-{numbered + offset}",
                lot_id=parent.lot_id,
            )
            children.append(child)

        if parent_usable is not None:
            parent.usable_weight = max(parent_usable - moved_usable, Decimal("0.00"))

        record = InventorySplit(
            location_id=location_id,
            parent_inventory_item_id=parent.id,
            child_item_ids=json.dumps([child.id for child in children]),
            reason=reason,
            created_by_user_id=user_id,
        )
        db.session.add(record)
        db.session.flush()

        record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_INVENTORY,
            entity_type="inventory_item",
            entity_id=parent.id,
            action_type="split_inventory",
            details=SplitDetails(
                split_id=record.id,
                previous_quantity=previous,
                remaining_quantity=previous - total,
                child_inventory_item_ids=[child.id for child in children],
                child_quantities=[str(quantity) for quantity, _ in parsed],
                reason=reason,
            ),
        )

    logger.info("Split: location=%s item=%s into %s children (%s)", location_id, parent.id, len(children), total)
    return parent, children, record


# ---------------------------------------------------------------------------
# Combine
# ---------------------------------------------------------------------------

def combine_inventory(
    location_id: int,
    inventory_item_ids,
    target_inventory_item_id=None,
    target_room_id=None,
    reason: str | None = None,
    user_id: int | None = None,
) -> tuple[InventoryItem, InventoryCombination]:
    """
    Merge items of one inventory type.

    With target_inventory_item_id the sources are added onto that existing
    item; otherwise a new item is created (at least two sources). Sources
    must share a room unless target_room_id places the new item elsewhere.

    Returns (combined item, combination record).
    """
    if target_inventory_item_id is not None and target_room_id is not None:
        raise ValidationError("target_room_id only applies when creating a new item")

    sources = _load_sources(location_id, inventory_item_ids, minimum=1 if target_inventory_item_id is not None else 2)

    type_id = _shared(sources, "inventory_type_id")
    if type_id is None:
        raise ValidationError("All items must be of the same inventory type")

    target = None
    if target_inventory_item_id is not None:
        if target_inventory_item_id in inventory_item_ids:
            raise ValidationError("The target item cannot also be a source")
        target = get_inventory_item(location_id, target_inventory_item_id)
        if target.status != ITEM_STATUS_ACTIVE:
            raise ValidationError(f"Cannot combine into a {target.status} inventory item")
        if target.inventory_type_id != type_id:
            raise ValidationError("The target item must be of the same inventory type")
    elif target_room_id is not None:
        require_active_room(location_id, target_room_id, field="target_room_id")
    else:
        rooms = {item.room_id for item in sources}
        if len(rooms) != 1:
            raise ValidationError("All items must be in the same room or specify a target room")
        target_room_id = rooms.pop()

    quantities = [item.quantity for item in sources]
    total = sum(quantities, Decimal("0.00"))
    usable = _sum_usable(sources)
    summary = _source_summary(sources, quantities)

    with atomic():
        _drain(sources, quantities)

        if target is not None:
            atomic_increment(InventoryItem, target.id, "quantity_cg", to_centigrams(total))
            if usable is not None:
                if target.usable_weight_cg is None:
                    target.usable_weight = usable
                else:
                    atomic_increment(InventoryItem, target.id, "usable_weight_cg", to_centigrams(usable))
            combined = target
        else:
            first = sources[0]
            combined = add_inventory_item(
                location_id=location_id,
                inventory_type=first.inventory_type,
                quantity=total,
                room_id=target_room_id,
                unit=first.unit,
                product_name=first.product_name,
                strain_id=_shared(sources, "strain_id"),
                batch_number=_shared(sources, "batch_number"),
                usable_weight=usable,
                lot_id=_shared(sources, "lot_id"),
            )

        record = InventoryCombination(
            location_id=location_id,
            target_inventory_item_id=combined.id,
            source_item_ids=json.dumps([item.id for item in sources]),
            total_quantity=total,
            reason=reason,
            created_by_user_id=user_id,
        )
        db.session.add(record)
        db.session.flush()

        record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_INVENTORY,
            entity_type="inventory_item",
            entity_id=combined.id,
            action_type="combine_inventory",
            details=CombineDetails(
                combination_id=record.id,
                total_quantity=total,
                created_new_item=target is None,
                sources=summary,
                reason=reason,
            ),
        )

    logger.info("Combine: location=%s %s items -> item=%s (%s)", location_id, len(sources), combined.id, total)
    return combined, record


# ---------------------------------------------------------------------------
# Lots
# ---------------------------------------------------------------------------

def _require_lot_type(name: str | None) -> InventoryType:
    name = name or DEFAULT_LOT_TYPE
    lot_type = get_type_by_name(name)
    if lot_type is None:
        raise NotFoundError(f"Lot inventory type '{name}' not found")
    if not category_matches(lot_type.category, CATEGORY_LOT):
        raise ValidationError(f"Inventory type '{name}' is not a lot type")
    if not lot_type.is_active:
        raise ValidationError(f"Inventory type '{name}' is inactive")
    return lot_type


def create_lot(
    location_id: int,
    inventory_item_ids,
    lot_name,
    target_room_id,
    lot_type: str | None = None,
    user_id: int | None = None,
) -> tuple[Lot, InventoryItem]:
    """
    Gather wet or dry items into a named lot.

    The sources are drained into a single lot item (default type
    "Lot of Dry Flower") in target_room_id; lot_name becomes the lot's and
    the item's batch number and must be unused at the location.

    Returns (lot, lot item).
    """
    if not isinstance(lot_name, str) or not lot_name.strip():
        raise ValidationError("lot_name is required")
    lot_name = lot_name.strip()

    sources = _load_sources(location_id, inventory_item_ids, minimum=1)
    for item in sources:
        if not any(category_matches(item.inventory_type.category, c) for c in LOT_SOURCE_CATEGORIES):
            raise ValidationError(f"Inventory item {item.id} is not wet or dry material")

    require_active_room(location_id, target_room_id, field="target_room_id")
    inventory_type = _require_lot_type(lot_type)

    taken = db.session.query(Lot.id).filter_by(location_id=location_id, batch_number=lot_name).first()
    if taken is not None:
        raise ValidationError(f"Lot '{lot_name}' already exists")

    quantities = [item.quantity for item in sources]
    total = sum(quantities, Decimal("0.00"))
    usable = _sum_usable(sources)
    summary = _source_summary(sources, quantities)

    with atomic():
        _drain(sources, quantities)

        lot = Lot(
            location_id=location_id,
            batch_number=lot_name,
            inventory_type_id=inventory_type.id,
            created_by_user_id=user_id,
        )
        db.session.add(lot)
        db.session.flush()

        for item in sources:
            item.lot_id = lot.id

        lot_item = add_inventory_item(
            location_id=location_id,
            inventory_type=inventory_type,
            quantity=total,
            room_id=target_room_id,
            strain_id=_shared(sources, "strain_id"),
            batch_number=lot_name,
            usable_weight=usable,
            lot_id=lot.id,
        )

        record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_INVENTORY,
            entity_type="lot",
            entity_id=lot.id,
            action_type="create_lot",
            details=LotDetails(
                batch_number=lot_name,
                lot_item_id=lot_item.id,
                lot_type=inventory_type.name,
                total_quantity=total,
                sources=summary,
            ),
        )

    logger.info("Lot created: location=%s lot=%s item=%s (%s)", location_id, lot.id, lot_item.id, total)
    return lot, lot_item


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def list_splits(location_id: int, page=1, per_page=DEFAULT_PER_PAGE, inventory_item_id=None) -> dict:
    q = db.session.query(InventorySplit).filter(InventorySplit.location_id == location_id)
    if inventory_item_id is not None:
        q = q.filter(InventorySplit.parent_inventory_item_id == inventory_item_id)
    q = q.order_by(InventorySplit.created_at.desc(), InventorySplit.id.desc())
    rows, meta = paginate(q, page, per_page)
    return {"data": [row.to_dict() for row in rows], "meta": meta}


def list_combinations(location_id: int, page=1, per_page=DEFAULT_PER_PAGE) -> dict:
    q = (
        db.session.query(InventoryCombination)
        .filter(InventoryCombination.location_id == location_id)
        .order_by(InventoryCombination.created_at.desc(), InventoryCombination.id.desc())
    )
    rows, meta = paginate(q, page, per_page)
    return {"data": [row.to_dict() for row in rows], "meta": meta}


def list_lots(location_id: int, page=1, per_page=DEFAULT_PER_PAGE) -> dict:
    q = (
        db.session.query(Lot)
        .filter(Lot.location_id == location_id)
        .order_by(Lot.created_at.desc(), Lot.id.desc())
    )
    rows, meta = paginate(q, page, per_page)
    return {"data": [row.to_dict() for row in rows], "meta": meta}
