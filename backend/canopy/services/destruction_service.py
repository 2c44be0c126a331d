# Overview: Destruction of a plant or an inventory item, with waste weight recorded.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Destruction, Harvest, InventoryItem, Plant
from ..models.cultivation import PLANT_STATUS_DELETED, PLANT_STATUS_DESTROYED
from ..models.inventory import ITEM_STATUS_DESTROYED
from ..validation import NotFoundError, ValidationError, require_exactly_one, to_centigrams, to_weight
from .audit_service import MODULE_CULTIVATION, DestructionDetails, record_audit
from .concurrency import atomic, conditional_decrement
from .inventory_service import consume_quantity

logger = logging.getLogger(__name__)


def _require_reason(reason) -> str:
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("destruction_reason is required")
    return reason.strip()[:255]


def create_destruction(
    destruction_reason,
    waste_amount,
    plant_id=None,
    inventory_item_id=None,
    user_id: int | None = None,
    *,
    location_id: int | None = None,
) -> Destruction:
    """
    Destroy exactly one plant or one inventory item.

    Inventory target: the waste amount is taken off the item with a
    conditional decrement (ConflictError if it is not there); an item
    drained to zero becomes `destroyed`.

    Plant target: the plant becomes `destroyed`. If it was harvested, the
    latest harvest's wet_flower_weight is reduced by the waste amount
    through the same conditional guard; when the harvest holds less than
    that, it is left as it is.
    """
    require_exactly_one(plant_id=plant_id, inventory_item_id=inventory_item_id)
    reason = _require_reason(destruction_reason)
    amount = to_weight(waste_amount, "waste_amount")

    with atomic():
        harvest_id = None

        if plant_id is not None:
            q = db.session.query(Plant).filter(Plant.id == plant_id, Plant.deleted_at.is_(None))
            if location_id is not None:
                q = q.filter(Plant.location_id == location_id)
            plant = q.first()
            if plant is None:
                raise NotFoundError("Plant not found")
            if plant.status in (PLANT_STATUS_DESTROYED, PLANT_STATUS_DELETED):
                raise ValidationError(f"Plant is already {plant.status}")

            plant_id = plant.id
            target_location = plant.location_id
            plant.status = PLANT_STATUS_DESTROYED

            harvest = (
                db.session.query(Harvest)
                .filter_by(plant_id=plant.id)
                .order_by(Harvest.created_at.desc(), Harvest.id.desc())
                .first()
            )
            if harvest is not None:
                harvest_id = harvest.id
                if not conditional_decrement(Harvest, harvest.id, "wet_flower_weight_cg", to_centigrams(amount)):
                    logger.info("Harvest %s holds less than %s g wet flower; left unchanged", harvest.id, amount)
        else:
            q = db.session.query(InventoryItem).filter(
                InventoryItem.id == inventory_item_id,
                InventoryItem.deleted_at.is_(None),
            )
            if location_id is not None:
                q = q.filter(InventoryItem.location_id == location_id)
            item = q.first()
            if item is None:
                raise NotFoundError("Inventory item not found")

            inventory_item_id = item.id
            target_location = item.location_id
            consume_quantity(item, amount, drained_status=ITEM_STATUS_DESTROYED)

        destruction = Destruction(
            location_id=target_location,
            plant_id=plant_id,
            inventory_item_id=inventory_item_id,
            destruction_reason=reason,
            waste_weight=amount,
            created_by_user_id=user_id,
        )
        db.session.add(destruction)
        db.session.flush()

        record_audit(
            location_id=target_location,
            user_id=user_id,
            module=MODULE_CULTIVATION,
            entity_type="destruction",
            entity_id=destruction.id,
            action_type="create_destruction",
            details=DestructionDetails(
                reason=reason,
                waste_weight=amount,
                plant_id=plant_id,
                inventory_item_id=inventory_item_id,
                harvest_id=harvest_id,
            ),
        )

    logger.info("Destruction recorded: id=%s plant=%s item=%s waste=%s",
                destruction.id, plant_id, inventory_item_id, amount)
    return destruction


def list_destructions(location_id: int, *, plant_id: int | None = None,
                      inventory_item_id: int | None = None) -> list[Destruction]:
    q = db.session.query(Destruction).filter_by(location_id=location_id)
    if plant_id is not None:
        q = q.filter_by(plant_id=plant_id)
    if inventory_item_id is not None:
        q = q.filter_by(inventory_item_id=inventory_item_id)
    return q.order_by(Destruction.created_at.desc(), Destruction.id.desc()).all()
