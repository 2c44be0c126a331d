# Overview: Cure step: dry weights against the harvest's wet baseline, cured inventory, cure waste.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from ..extensions import db
from ..models import Cure, Destruction, Harvest, InventoryItem, Plant
from ..models.cultivation import PLANT_STATUS_CURED, PLANT_STATUS_HARVESTED
from ..validation import NotFoundError, ValidationError, to_weight
from .audit_service import (
    MODULE_CULTIVATION,
    MODULE_INVENTORY,
    CureDetails,
    DestructionDetails,
    InventoryCreatedDetails,
    record_audit,
)
from .concurrency import atomic
from .cultivation_service import strain_id_for
from .inventory_service import add_inventory_item
from .inventory_type_service import TYPE_DRY_FLOWER_CURED, TYPE_DRY_TRIM, require_type_by_name

logger = logging.getLogger(__name__)

CURE_WASTE_REASON = "Cure waste"


@dataclass
class CureResult:
    cure: Cure
    inventory_items: list[InventoryItem] = field(default_factory=list)
    destruction: Destruction | None = None


def _check_against_harvest(harvest: Harvest, flower: Decimal, other: Decimal, waste: Decimal) -> None:
    if flower > harvest.wet_flower_weight:
        raise ValidationError("dry_flower_weight exceeds harvested wet_flower_weight")
    if other > harvest.wet_other_material_weight:
        raise ValidationError("dry_other_material_weight exceeds harvested wet_other_material_weight")
    if waste > harvest.wet_waste_weight:
        raise ValidationError("dry_waste_weight exceeds harvested wet_waste_weight")
    if flower + other + waste > harvest.wet_total:
        raise ValidationError("Total dry weight exceeds total harvested wet weight")


def create_cure(
    harvest_id: int,
    dry_flower_weight,
    dry_other_material_weight=0,
    dry_waste_weight=0,
    user_id: int | None = None,
    create_inventory: bool = True,
    *,
    location_id: int | None = None,
) -> CureResult:
    """
    Record the cure of a harvested plant.

    Writes, in one transaction: the Cure row, the plant's move to `cured`,
    one Dry Flower (Cured) item and one Dry Trim item for the non-zero
    components, and a Destruction for the cure waste. Each write gets its
    own audit row. Any failed check leaves no records at all.
    """
    flower = to_weight(dry_flower_weight, "dry_flower_weight", allow_zero=True)
    other = to_weight(dry_other_material_weight, "dry_other_material_weight", allow_zero=True)
    waste = to_weight(dry_waste_weight, "dry_waste_weight", allow_zero=True)
    if flower + other + waste == 0:
        raise ValidationError("At least one dry weight must be > 0")

    with atomic():
        q = db.session.query(Harvest).filter_by(id=harvest_id)
        if location_id is not None:
            q = q.filter_by(location_id=location_id)
        harvest = q.first()
        if harvest is None:
            raise NotFoundError("Harvest not found")

        plant = db.session.query(Plant).filter_by(id=harvest.plant_id).first()
        if plant is None or plant.deleted_at is not None:
            raise NotFoundError("Plant not found")
        if plant.status != PLANT_STATUS_HARVESTED:
            raise ValidationError(f"Only harvested plants can be cured (status is '{plant.status}')")

        _check_against_harvest(harvest, flower, other, waste)

        flower_type = require_type_by_name(TYPE_DRY_FLOWER_CURED) if create_inventory and flower > 0 else None
        trim_type = require_type_by_name(TYPE_DRY_TRIM) if create_inventory and other > 0 else None

        cure = Cure(
            harvest_id=harvest.id,
            plant_id=plant.id,
            dry_flower_weight=flower,
            dry_other_material_weight=other,
            dry_waste_weight=waste,
            created_by_user_id=user_id,
        )
        db.session.add(cure)
        plant.status = PLANT_STATUS_CURED
        plant.phase = PLANT_STATUS_CURED
        db.session.flush()

        result = CureResult(cure=cure)

        for inventory_type, weight, product_name in (
            (flower_type, flower, "Cured Flower"),
            (trim_type, other, "Cured Other Material"),
        ):
            if inventory_type is None:
                continue
            item = add_inventory_item(
                location_id=harvest.location_id,
                inventory_type=inventory_type,
                quantity=weight,
                room_id=plant.room_id,
                product_name=product_name,
                strain_id=strain_id_for(plant.location_id, plant.strain),
                batch_number=harvest.batch_number,
                source_plant_id=plant.id,
                harvest_id=harvest.id,
            )
            record_audit(
                location_id=harvest.location_id,
                user_id=user_id,
                module=MODULE_INVENTORY,
                entity_type="inventory_item",
                entity_id=item.id,
                action_type="create_inventory",
                details=InventoryCreatedDetails(
                    created_from="cure",
                    quantity=weight,
                    inventory_type=inventory_type.name,
                    cure_id=cure.id,
                    plant_id=plant.id,
                    harvest_id=harvest.id,
                ),
            )
            result.inventory_items.append(item)

        if waste > 0:
            destruction = Destruction(
                location_id=harvest.location_id,
                plant_id=plant.id,
                destruction_reason=CURE_WASTE_REASON,
                waste_weight=waste,
                created_by_user_id=user_id,
            )
            db.session.add(destruction)
            db.session.flush()
            record_audit(
                location_id=harvest.location_id,
                user_id=user_id,
                module=MODULE_CULTIVATION,
                entity_type="destruction",
                entity_id=destruction.id,
                action_type="create_destruction",
                details=DestructionDetails(
                    reason=CURE_WASTE_REASON,
                    waste_weight=waste,
                    plant_id=plant.id,
                    harvest_id=harvest.id,
                    cure_id=cure.id,
                ),
            )
            result.destruction = destruction

        record_audit(
            location_id=harvest.location_id,
            user_id=user_id,
            module=MODULE_CULTIVATION,
            entity_type="cure",
            entity_id=cure.id,
            action_type="create_cure",
            details=CureDetails(
                plant_id=plant.id,
                harvest_id=harvest.id,
                dry_flower_weight=flower,
                dry_other_material_weight=other,
                dry_waste_weight=waste,
            ),
        )

    logger.info("Cure created: harvest=%s cure=%s items=%s", harvest_id, cure.id, len(result.inventory_items))
    return result


def list_cures(location_id: int, *, plant_id: int | None = None) -> list[Cure]:
    q = db.session.query(Cure).join(Harvest, Cure.harvest_id == Harvest.id).filter(Harvest.location_id == location_id)
    if plant_id is not None:
        q = q.filter(Cure.plant_id == plant_id)
    return q.order_by(Cure.created_at.desc(), Cure.id.desc()).all()
