# Overview: Inventory conversion pipeline (wet -> dry -> extraction -> finished goods) and its query side.

"""
Conversion Service

Each conversion consumes part of one source item and creates one new item
of a later category:

    WET_TO_DRY              Wet        -> Dry
    DRY_TO_EXTRACTION       Dry        -> Extraction
    EXTRACTION_TO_FINISHED  Extraction -> FinishedGoods

MASS BALANCE:
- material_loss_grams = input_weight - output_weight, never negative
  (output > input is rejected)
- loss_percentage = loss / input * 100, stored with two decimals
- output_weight + material_loss_grams == input_weight exactly (Decimal)

ORDER OF CHECKS (all before the transaction):
    source exists in location (404) -> enough quantity (400)
    -> source category (400) -> output type exists (404) and category (400)
    -> room exists in location (404) -> weights (400)

The transaction then creates the output item, decrements the source with a
conditional UPDATE (409 when another writer drained it first) and writes a
CONVERSION audit row keyed on the new item.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from ..extensions import db
from ..models import AuditLog, InventoryItem, InventoryType
from ..models.inventory import CATEGORY_DRY, CATEGORY_EXTRACTION, CATEGORY_WET
from ..time_utils import parse_date_range
from ..validation import WEIGHT_QUANT, NotFoundError, ValidationError, to_positive_int, to_weight
from .audit_service import (
    MODULE_CONVERSION,
    ConversionDetails,
    latest_for_entity,
    parse_details,
    record_audit,
)
from .concurrency import atomic
from .inventory_service import add_inventory_item, consume_quantity, get_inventory_item, require_strain
from .inventory_type_service import category_matches
from .room_service import get_room

logger = logging.getLogger(__name__)

CONVERSION_ACTION = "CONVERSION"

WET_TO_DRY = "WET_TO_DRY"
DRY_TO_EXTRACTION = "DRY_TO_EXTRACTION"
EXTRACTION_TO_FINISHED = "EXTRACTION_TO_FINISHED"

CONVERSION_TYPES = (WET_TO_DRY, DRY_TO_EXTRACTION, EXTRACTION_TO_FINISHED)

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


@dataclass(frozen=True)
class ConversionStep:
    conversion_type: str
    input_category: str
    output_category: str
    input_label: str
    output_label: str


STEPS = {
    WET_TO_DRY: ConversionStep(WET_TO_DRY, CATEGORY_WET, CATEGORY_DRY, "wet", "dry"),
    DRY_TO_EXTRACTION: ConversionStep(DRY_TO_EXTRACTION, CATEGORY_DRY, CATEGORY_EXTRACTION, "dry", "extraction"),
    # "Finished" matches the FinishedGoods category
    EXTRACTION_TO_FINISHED: ConversionStep(
        EXTRACTION_TO_FINISHED, CATEGORY_EXTRACTION, "Finished", "extraction", "finished goods"
    ),
}


@dataclass
class ConversionResult:
    conversion: InventoryItem
    material_loss_grams: Decimal
    loss_percentage: Decimal

    def to_dict(self) -> dict:
        return {
            "conversion": self.conversion.to_dict(),
            "material_loss_grams": str(self.material_loss_grams),
            "loss_percentage": str(self.loss_percentage),
        }


def compute_loss(input_weight: Decimal, output_weight: Decimal) -> tuple[Decimal, Decimal]:
    """Return (material_loss_grams, loss_percentage). Output above input is rejected."""
    if output_weight > input_weight:
        raise ValidationError("output_weight cannot exceed input_weight")
    loss = input_weight - output_weight
    percentage = (loss / input_weight * 100).quantize(WEIGHT_QUANT, rounding=ROUND_HALF_UP)
    return loss, percentage


def _load_output_type(step: ConversionStep, output_inventory_type_id) -> InventoryType:
    output_type = db.session.query(InventoryType).filter_by(id=output_inventory_type_id).first()
    if output_type is None:
        raise NotFoundError("Output inventory type not found")
    if not category_matches(output_type.category, step.output_category):
        raise ValidationError(f"Output inventory type must be a {step.output_label} type")
    if not output_type.is_active:
        raise ValidationError(f"Output inventory type '{output_type.name}' is inactive")
    return output_type


def _convert(
    step: ConversionStep,
    location_id: int,
    source_inventory_id,
    output_inventory_type_id,
    input_weight,
    output_weight,
    room_id,
    *,
    strain_id=None,
    batch_number: str | None = None,
    notes: str | None = None,
    extraction_method: str | None = None,
    usable_weight: Decimal | None = None,
    units_produced: int | None = None,
    product_sku: str | None = None,
    user_id: int | None = None,
) -> ConversionResult:
    input_weight = to_weight(input_weight, "input_weight")
    output_weight = to_weight(output_weight, "output_weight")

    source = get_inventory_item(location_id, source_inventory_id)
    if source.quantity < input_weight:
        raise ValidationError("Insufficient source inventory quantity")
    if not category_matches(source.inventory_type.category, step.input_category):
        raise ValidationError(f"Source inventory must be a {step.input_label} type")
    if not source.inventory_type.can_convert:
        raise ValidationError(f"Inventory type '{source.inventory_type.name}' cannot be converted")

    output_type = _load_output_type(step, output_inventory_type_id)
    room = get_room(location_id, room_id)
    require_strain(location_id, strain_id)

    loss, percentage = compute_loss(input_weight, output_weight)

    if units_produced is not None:
        quantity, unit = Decimal(units_produced), "units"
    else:
        quantity, unit = output_weight, "grams"

    batch_number = batch_number or source.batch_number
    product_name = f"Conversion Output - {batch_number}" if batch_number else output_type.name

    with atomic():
        item = add_inventory_item(
            location_id=location_id,
            inventory_type=output_type,
            quantity=quantity,
            unit=unit,
            usable_weight=usable_weight if usable_weight is not None else output_weight,
            room_id=room.id,
            product_name=product_name,
            strain_id=strain_id if strain_id is not None else source.strain_id,
            batch_number=batch_number,
            source_plant_id=source.source_plant_id,
            harvest_id=source.harvest_id,
        )
        consume_quantity(source, input_weight)

        record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_CONVERSION,
            entity_type="inventory_item",
            entity_id=item.id,
            action_type=CONVERSION_ACTION,
            details=ConversionDetails(
                conversion_type=step.conversion_type,
                source_inventory_id=source.id,
                input_weight_grams=input_weight,
                output_weight_grams=output_weight,
                material_loss_grams=loss,
                loss_percentage=percentage,
                batch_number=batch_number,
                strain_id=item.strain_id,
                extraction_method=extraction_method,
                usable_weight=usable_weight,
                units_produced=units_produced,
                product_sku=product_sku,
                notes=notes,
            ),
        )

    logger.info(
        "Conversion %s: location=%s source=%s -> item=%s in=%s out=%s loss=%s%%",
        step.conversion_type, location_id, source_inventory_id, item.id, input_weight, output_weight, percentage,
    )
    return ConversionResult(conversion=item, material_loss_grams=loss, loss_percentage=percentage)


def convert_wet_to_dry(
    location_id: int,
    source_inventory_id,
    output_inventory_type_id,
    input_weight,
    output_weight,
    room_id,
    *,
    strain_id=None,
    batch_number: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> ConversionResult:
    return _convert(
        STEPS[WET_TO_DRY], location_id, source_inventory_id, output_inventory_type_id,
        input_weight, output_weight, room_id,
        strain_id=strain_id, batch_number=batch_number, notes=notes, user_id=user_id,
    )


def convert_dry_to_extraction(
    location_id: int,
    source_inventory_id,
    output_inventory_type_id,
    input_weight,
    output_weight,
    room_id,
    extraction_method,
    *,
    strain_id=None,
    batch_number: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> ConversionResult:
    if not isinstance(extraction_method, str) or not extraction_method.strip():
        raise ValidationError("extraction_method is required")
    return _convert(
        STEPS[DRY_TO_EXTRACTION], location_id, source_inventory_id, output_inventory_type_id,
        input_weight, output_weight, room_id,
        strain_id=strain_id, batch_number=batch_number, notes=notes,
        extraction_method=extraction_method.strip(), user_id=user_id,
    )


def convert_extraction_to_finished(
    location_id: int,
    source_inventory_id,
    output_inventory_type_id,
    input_weight,
    output_weight,
    usable_weight,
    units_produced,
    room_id,
    *,
    strain_id=None,
    batch_number: str | None = None,
    product_sku: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> ConversionResult:
    """
    Extraction to finished goods. The new item's quantity is units_produced
    (unit "units"); usable_weight must not exceed output_weight.
    """
    output = to_weight(output_weight, "output_weight")
    usable = to_weight(usable_weight, "usable_weight")
    if usable > output:
        raise ValidationError("usable_weight cannot exceed output_weight")
    units = to_positive_int(units_produced, "units_produced")

    return _convert(
        STEPS[EXTRACTION_TO_FINISHED], location_id, source_inventory_id, output_inventory_type_id,
        input_weight, output, room_id,
        strain_id=strain_id, batch_number=batch_number, notes=notes,
        usable_weight=usable, units_produced=units, product_sku=product_sku, user_id=user_id,
    )


# ---------------------------------------------------------------------------
# Query side
# ---------------------------------------------------------------------------

def _conversion_view(item: InventoryItem, log: AuditLog | None) -> dict:
    data = item.to_dict()
    data["conversion_details"] = log.details_dict if log is not None else None
    data["converted_at"] = log.to_dict()["created_at"] if log is not None else None
    return data


def get_conversion(location_id: int, inventory_item_id: int) -> dict:
    """The converted item plus the details of its latest CONVERSION audit row."""
    item = (
        db.session.query(InventoryItem)
        .filter_by(id=inventory_item_id, location_id=location_id)
        .first()
    )
    if item is None:
        raise NotFoundError("Conversion not found")

    log = latest_for_entity(location_id, "inventory_item", item.id, CONVERSION_ACTION)
    return _conversion_view(item, log)


def list_conversions(
    location_id: int,
    page=1,
    per_page=DEFAULT_PER_PAGE,
    conversion_type: str | None = None,
    strain_id=None,
    room_id=None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> dict:
    """
    Paginated conversions: audit rows are filtered first (location, date
    range, parsed conversion_type), the matching items are fetched (strain
    and room filters apply there) and the two are re-joined in memory,
    newest first.
    """
    page = to_positive_int(page, "page")
    per_page = min(to_positive_int(per_page, "per_page"), MAX_PER_PAGE)
    if conversion_type is not None and conversion_type not in CONVERSION_TYPES:
        raise ValidationError(f"conversion_type must be one of: {', '.join(CONVERSION_TYPES)}")

    try:
        start, end = parse_date_range(start_date, end_date)
    except ValueError:
        raise ValidationError("start_date and end_date must be ISO-8601 dates with start before end")

    q = db.session.query(AuditLog).filter(
        AuditLog.location_id == location_id,
        AuditLog.action_type == CONVERSION_ACTION,
        AuditLog.entity_type == "inventory_item",
    )
    if start is not None:
        q = q.filter(AuditLog.created_at >= start)
    if end is not None:
        q = q.filter(AuditLog.created_at <= end)
    logs = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).all()

    if conversion_type is not None:
        logs = [log for log in logs if parse_details(log).conversion_type == conversion_type]

    latest_by_item: dict[int, AuditLog] = {}
    for log in logs:
        latest_by_item.setdefault(log.entity_id, log)

    items_by_id: dict[int, InventoryItem] = {}
    if latest_by_item:
        iq = db.session.query(InventoryItem).filter(
            InventoryItem.location_id == location_id,
            InventoryItem.id.in_(list(latest_by_item.keys())),
        )
        if strain_id is not None:
            iq = iq.filter(InventoryItem.strain_id == strain_id)
        if room_id is not None:
            iq = iq.filter(InventoryItem.room_id == room_id)
        items_by_id = {item.id: item for item in iq.all()}

    rows = [
        _conversion_view(items_by_id[item_id], log)
        for item_id, log in latest_by_item.items()
        if item_id in items_by_id
    ]

    total = len(rows)
    start_index = (page - 1) * per_page
    return {
        "data": rows[start_index:start_index + per_page],
        "meta": {
            "total": total,
            "page": page,
            "per_page": per_page,
            "total_pages": math.ceil(total / per_page) if total else 0,
        },
    }
