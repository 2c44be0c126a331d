# Overview: Append-only audit trail with typed detail payloads.

"""
Canopy Audit Invariants (authoritative)

- Append-only: rows are inserted, never updated or deleted.
- Written inside the same DB transaction as the mutation they record
  (flush only, the caller's atomic() block commits). A failed audit write
  rolls the whole operation back.
- Every action_type has exactly one details dataclass; the stored JSON must
  be enough to reconstruct (and for move_room and adjust_inventory,
  reverse) the action.
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from ..extensions import db
from ..models import AuditLog
# Audit rows are filed under the same module names that gate route access
from ..permissions import (  # noqa: F401
    MODULE_CONVERSION,
    MODULE_CULTIVATION,
    MODULE_INVENTORY,
    MODULE_ROOMS,
    MODULE_TRANSFERS,
)
from ..time_utils import to_utc_z
from ..validation import NotFoundError

# action_type -> details class
DETAILS_TYPES: dict[str, type] = {}


def details_for(*action_types: str):
    """Register a details dataclass as the payload for the given action types."""
    def decorator(cls):
        for action_type in action_types:
            DETAILS_TYPES[action_type] = cls
        return cls
    return decorator


@dataclass(frozen=True)
class AuditDetails:
    def to_json(self) -> str:
        return json.dumps(dataclasses.asdict(self), default=_json_default, sort_keys=True)


@details_for("create_plant")
@dataclass(frozen=True)
class PlantCreatedDetails(AuditDetails):
    strain: str
    room_id: int
    phase: str
    source_inventory_id: Optional[int] = None
    consumed_amount: Optional[Decimal] = None


@details_for("delete_plant")
@dataclass(frozen=True)
class PlantDeletedDetails(AuditDetails):
    deleted_at: datetime
    previous_status: str


@details_for("update_plant", "update_room")
@dataclass(frozen=True)
class FieldChangeDetails(AuditDetails):
    old_value: dict
    new_value: dict


@details_for("move_room")
@dataclass(frozen=True)
class RoomMoveDetails(AuditDetails):
    room_move_id: int
    old_room_id: Optional[int]
    new_room_id: int
    reason: Optional[str] = None


@details_for("convert_to_mother")
@dataclass(frozen=True)
class MotherConversionDetails(AuditDetails):
    previous_status: str
    notes: Optional[str] = None


@details_for("generate_clones", "generate_seeds")
@dataclass(frozen=True)
class OffspringDetails(AuditDetails):
    mother_plant_id: int
    inventory_item_id: int
    quantity: int
    room_id: int
    notes: Optional[str] = None


@details_for("undo_operation")
@dataclass(frozen=True)
class UndoDetails(AuditDetails):
    original_audit_log_id: int
    original_action_type: str
    restored: dict
    reason: Optional[str] = None


@details_for("create_harvest")
@dataclass(frozen=True)
class HarvestDetails(AuditDetails):
    plant_id: int
    wet_flower_weight: Decimal
    wet_other_material_weight: Decimal
    wet_waste_weight: Decimal
    batch_number: Optional[str] = None


@details_for("create_cure")
@dataclass(frozen=True)
class CureDetails(AuditDetails):
    plant_id: int
    harvest_id: int
    dry_flower_weight: Decimal
    dry_other_material_weight: Decimal
    dry_waste_weight: Decimal


@details_for("create_inventory")
@dataclass(frozen=True)
class InventoryCreatedDetails(AuditDetails):
    created_from: str
    quantity: Decimal
    inventory_type: str
    cure_id: Optional[int] = None
    plant_id: Optional[int] = None
    harvest_id: Optional[int] = None


@details_for("create_destruction")
@dataclass(frozen=True)
class DestructionDetails(AuditDetails):
    reason: str
    waste_weight: Decimal
    plant_id: Optional[int] = None
    inventory_item_id: Optional[int] = None
    harvest_id: Optional[int] = None
    cure_id: Optional[int] = None


@details_for("CONVERSION")
@dataclass(frozen=True)
class ConversionDetails(AuditDetails):
    conversion_type: str
    source_inventory_id: int
    input_weight_grams: Decimal
    output_weight_grams: Decimal
    material_loss_grams: Decimal
    loss_percentage: Decimal
    batch_number: Optional[str] = None
    strain_id: Optional[int] = None
    extraction_method: Optional[str] = None
    usable_weight: Optional[Decimal] = None
    units_produced: Optional[int] = None
    product_sku: Optional[str] = None
    notes: Optional[str] = None


@details_for("adjust_inventory")
@dataclass(frozen=True)
class AdjustmentDetails(AuditDetails):
    adjustment_id: int
    adjustment_type: str
    old_quantity: Decimal
    new_quantity: Decimal
    is_red_flag: bool
    reason: Optional[str] = None


@details_for("split_inventory")
@dataclass(frozen=True)
class SplitDetails(AuditDetails):
    split_id: int
    previous_quantity: Decimal
    remaining_quantity: Decimal
    child_inventory_item_ids: list = field(default_factory=list)
    child_quantities: list = field(default_factory=list)
    reason: Optional[str] = None


@details_for("combine_inventory")
@dataclass(frozen=True)
class CombineDetails(AuditDetails):
    combination_id: int
    total_quantity: Decimal
    created_new_item: bool
    sources: list = field(default_factory=list)
    reason: Optional[str] = None


@details_for("create_lot")
@dataclass(frozen=True)
class LotDetails(AuditDetails):
    batch_number: str
    lot_item_id: int
    lot_type: str
    total_quantity: Decimal
    sources: list = field(default_factory=list)


@details_for("create_room", "delete_room")
@dataclass(frozen=True)
class RoomDetails(AuditDetails):
    name: str
    status: str


@details_for("transfer_created", "transfer_shipped", "transfer_received", "transfer_rejected", "transfer_cancelled")
@dataclass(frozen=True)
class TransferDetails(AuditDetails):
    from_location_id: int
    to_location_id: int
    status: str
    lines: list = field(default_factory=list)
    note: Optional[str] = None


def record_audit(
    *,
    location_id: int | None,
    user_id: int | None,
    module: str,
    entity_type: str,
    entity_id: int,
    action_type: str,
    details: AuditDetails,
) -> AuditLog:
    """
    Append one audit row to the current transaction.

    - No domain logic here.
    - No commit: the caller's transaction owns the write.
    """
    expected = DETAILS_TYPES.get(action_type)
    if expected is None:
        raise ValueError(f"Unknown audit action type '{action_type}'")
    if not isinstance(details, expected):
        raise TypeError(
            f"Audit action '{action_type}' expects {expected.__name__}, got {type(details).__name__}"
        )

    log = AuditLog(
        location_id=location_id,
        user_id=user_id,
        module=module,
        entity_type=entity_type,
        entity_id=entity_id,
        action_type=action_type,
        details=details.to_json(),
    )
    db.session.add(log)
    db.session.flush()  # ensures log.id is assigned without committing
    return log


def parse_details(log: AuditLog) -> AuditDetails | None:
    """
    Rebuild the typed payload of a stored audit row.

    Returns None for action types without a registered payload (rows
    written before the type existed).
    """
    cls = DETAILS_TYPES.get(log.action_type)
    if cls is None:
        return None

    raw = log.details_dict
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        if f.name not in raw:
            continue
        value = raw[f.name]
        if value is not None and "Decimal" in str(f.type):
            value = Decimal(str(value))
        elif value is not None and "datetime" in str(f.type):
            value = datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
        kwargs[f.name] = value
    return cls(**kwargs)


def get_audit_log(location_id: int, audit_log_id: int) -> AuditLog:
    log = db.session.query(AuditLog).filter_by(id=audit_log_id, location_id=location_id).first()
    if log is None:
        raise NotFoundError("Audit log not found")
    return log


def latest_for_entity(location_id: int, entity_type: str, entity_id: int, action_type: str) -> AuditLog | None:
    return (
        db.session.query(AuditLog)
        .filter_by(
            location_id=location_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action_type=action_type,
        )
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .first()
    )


def list_audit_logs(
    location_id: int,
    *,
    module: str | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    action_type: str | None = None,
    limit: int = 200,
) -> list[AuditLog]:
    q = db.session.query(AuditLog).filter_by(location_id=location_id)

    if module is not None:
        q = q.filter_by(module=module)
    if entity_type is not None:
        q = q.filter_by(entity_type=entity_type)
    if entity_id is not None:
        q = q.filter_by(entity_id=entity_id)
    if action_type is not None:
        q = q.filter_by(action_type=action_type)

    q = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    return q.limit(limit).all()


def _json_default(value: Any):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return to_utc_z(value)
    raise TypeError(f"Cannot serialize {type(value).__name__} in audit details")
