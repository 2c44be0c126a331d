# Overview: Inventory type reference data (the material taxonomy) and lookups.

"""
Inventory types are static reference data. They are seeded once per
database and never deleted; retiring a type means deactivating it so items
that already reference it keep resolving.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import InventoryType
from ..models.inventory import (
    CATEGORY_DRY,
    CATEGORY_EXTRACTION,
    CATEGORY_FINISHED,
    CATEGORY_LOT,
    CATEGORY_SOURCE,
    CATEGORY_WASTE,
    CATEGORY_WET,
    INVENTORY_CATEGORIES,
)
from ..validation import NotFoundError, ValidationError
from .concurrency import atomic

logger = logging.getLogger(__name__)

# Names the lifecycle services look up directly
TYPE_CLONES = "Clones"
TYPE_SEEDS = "Seeds"
TYPE_WASTE = "Waste"
TYPE_DRY_FLOWER_CURED = "Dry Flower (Cured)"
TYPE_DRY_TRIM = "Dry Trim"

# (name, category, unit, description)
STANDARD_TAXONOMY = [
    (TYPE_CLONES, CATEGORY_SOURCE, "units", "Cannabis plant clones"),
    (TYPE_SEEDS, CATEGORY_SOURCE, "units", "Cannabis seeds"),
    (TYPE_WASTE, CATEGORY_WASTE, "grams", "Waste material, logged and destroyed"),
    ("Wet Flower", CATEGORY_WET, "grams", "Freshly harvested whole flower (wet weight)"),
    ("Wet Trim", CATEGORY_WET, "grams", "Fresh trim from harvest"),
    ("Wet Whole Plant", CATEGORY_WET, "grams", "Whole plant wet biomass including stems"),
    ("Fresh Frozen Flower", CATEGORY_WET, "grams", "Flower frozen immediately for extraction"),
    ("Fresh Frozen Trim", CATEGORY_WET, "grams", "Trim frozen post-harvest for extraction"),
    (TYPE_DRY_FLOWER_CURED, CATEGORY_DRY, "grams", "Dried and cured flower"),
    (TYPE_DRY_TRIM, CATEGORY_DRY, "grams", "Dried trim separated from cured flower"),
    ("Bucked Flower", CATEGORY_DRY, "grams", "Flower removed from stems and cured"),
    ("Smalls/Shake", CATEGORY_DRY, "grams", "Loose cured flower pieces and shake"),
    ("Lot of Wet Flower", CATEGORY_LOT, "grams", "Batch of harvested flower not yet cured"),
    ("Lot of Dry Flower", CATEGORY_LOT, "grams", "Batch of dried and cured flower"),
    ("Lot of Trim", CATEGORY_LOT, "grams", "Batch of trim material"),
    ("Crude Extract (Solvent)", CATEGORY_EXTRACTION, "grams", "Unrefined solvent-based extraction"),
    ("Distillate", CATEGORY_EXTRACTION, "grams", "Refined distillate"),
    ("Live Resin", CATEGORY_EXTRACTION, "grams", "Extract from fresh frozen flower"),
    ("Rosin", CATEGORY_EXTRACTION, "grams", "Solventless extract from heat and pressure"),
    ("Hash/Kief", CATEGORY_EXTRACTION, "grams", "Concentrated trichomes"),
    ("Pre-Rolls", CATEGORY_FINISHED, "units", "Pre-rolled cannabis"),
    ("Edibles (Gummies)", CATEGORY_FINISHED, "units", "Infused gummies"),
    ("Tinctures", CATEGORY_FINISHED, "units", "Infused tinctures"),
    ("Vape Cartridges", CATEGORY_FINISHED, "units", "Filled vape cartridges"),
    ("Flower Packaging (Ready for Sale)", CATEGORY_FINISHED, "units", "Packaged retail flower"),
]


def seed_standard_types() -> int:
    """
    Insert any missing taxonomy rows. Existing rows are left as they are.

    Returns the number of types created. Caller commits.
    """
    existing = {name for (name,) in db.session.query(InventoryType.name).all()}
    created = 0
    for name, category, unit, description in STANDARD_TAXONOMY:
        if name in existing:
            continue
        db.session.add(InventoryType(
            name=name,
            category=category,
            unit=unit,
            description=description,
            is_source=category == CATEGORY_SOURCE,
            is_waste=category == CATEGORY_WASTE,
            can_convert=category != CATEGORY_WASTE,
            is_active=True,
        ))
        created += 1

    db.session.flush()
    if created:
        logger.info("Seeded %s inventory types", created)
    return created


def get_type_by_name(name: str) -> InventoryType | None:
    return db.session.query(InventoryType).filter_by(name=name, is_active=True).first()


def require_type_by_name(name: str) -> InventoryType:
    """Lookup used by lifecycle steps; a missing fixed type is a setup problem (400)."""
    inventory_type = get_type_by_name(name)
    if inventory_type is None:
        raise ValidationError(f"Inventory type '{name}' is not configured")
    return inventory_type


def get_type(inventory_type_id: int) -> InventoryType:
    inventory_type = db.session.query(InventoryType).filter_by(id=inventory_type_id).first()
    if inventory_type is None:
        raise NotFoundError("Inventory type not found")
    return inventory_type


def category_matches(category: str | None, expected: str) -> bool:
    """Category compatibility is containment ("FinishedGoods" satisfies "Finished")."""
    return bool(category) and expected in category


def list_types(*, category: str | None = None, include_inactive: bool = False) -> list[InventoryType]:
    if category is not None and category not in INVENTORY_CATEGORIES:
        raise ValidationError(f"Unknown category '{category}'")

    q = db.session.query(InventoryType)
    if category is not None:
        q = q.filter_by(category=category)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return q.order_by(InventoryType.category.asc(), InventoryType.name.asc()).all()


def deactivate_type(inventory_type_id: int) -> InventoryType:
    with atomic():
        inventory_type = get_type(inventory_type_id)
        if not inventory_type.is_active:
            raise ValidationError("Inventory type is already inactive")
        inventory_type.is_active = False
    logger.info("Inventory type deactivated: %s", inventory_type.name)
    return inventory_type
