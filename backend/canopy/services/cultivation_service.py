# Overview: Plant lifecycle: creation, edits, room moves, mother plants, offspring, harvests and undo.

"""
Cultivation Lifecycle Service

STATE MACHINE (Plant.status):
    active -> mother       convert_to_mother_plant
    active -> harvested    create_harvest
    harvested -> cured     cure_service.create_cure
    *      -> destroyed    destruction_service.create_destruction
    *      -> deleted      soft_delete_plant

INVARIANTS:
- Validation runs before any write. Every mutation runs inside atomic() and
  writes its audit row in the same transaction.
- Source inventory consumed by create_plant is decremented with a
  conditional UPDATE; zero affected rows is a ConflictError.
- Offspring counters use an in-database increment.
- Entities in other locations are reported as missing.
- Undo covers room moves and manual inventory adjustments.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from ..extensions import db
from ..models import AuditLog, Harvest, InventoryItem, Plant, RoomMove, Strain
from ..models.cultivation import (
    PLANT_STATUS_ACTIVE,
    PLANT_STATUS_DELETED,
    PLANT_STATUS_DESTROYED,
    PLANT_STATUS_HARVESTED,
    PLANT_STATUS_MOTHER,
)
from ..time_utils import utcnow
from ..validation import (
    NotFoundError,
    ValidationError,
    clean_patch,
    require_exactly_one,
    to_positive_int,
    to_weight,
)
from .audit_service import (
    MODULE_CULTIVATION,
    MODULE_INVENTORY,
    AdjustmentDetails,
    FieldChangeDetails,
    HarvestDetails,
    MotherConversionDetails,
    OffspringDetails,
    PlantCreatedDetails,
    PlantDeletedDetails,
    RoomMoveDetails,
    UndoDetails,
    get_audit_log,
    list_audit_logs,
    parse_details,
    record_audit,
)
from .concurrency import atomic, atomic_increment
from .inventory_service import (
    add_inventory_item,
    consume_quantity,
    generate_barcode,
    get_inventory_item,
    reverse_adjustment,
)
from .inventory_type_service import TYPE_CLONES, TYPE_SEEDS, require_type_by_name
from .room_service import require_active_room

logger = logging.getLogger(__name__)

PLANT_PHASES = {"clone", "seedling", "vegetative", "flowering"}

PLANT_WRITABLE_FIELDS = {"strain", "phase", "room_id", "source_inventory_id", "notes"}

# Actions undo_operation knows how to reverse
UNDOABLE_ACTIONS = {"move_room", "adjust_inventory"}


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_plant(location_id: int, plant_id: int) -> Plant:
    plant = (
        db.session.query(Plant)
        .filter_by(id=plant_id, location_id=location_id)
        .filter(Plant.deleted_at.is_(None))
        .first()
    )
    if plant is None:
        raise NotFoundError("Plant not found")
    return plant


def list_plants(
    location_id: int,
    *,
    status: str | None = None,
    room_id: int | None = None,
    strain: str | None = None,
    is_mother: bool | None = None,
    limit: int = 200,
    offset: int = 0,
) -> list[Plant]:
    q = db.session.query(Plant).filter(Plant.location_id == location_id, Plant.deleted_at.is_(None))
    if status is not None:
        q = q.filter(Plant.status == status)
    if room_id is not None:
        q = q.filter(Plant.room_id == room_id)
    if strain is not None:
        q = q.filter(Plant.strain == strain)
    if is_mother is not None:
        q = q.filter(Plant.is_mother.is_(is_mother))
    return q.order_by(Plant.created_at.desc(), Plant.id.desc()).offset(offset).limit(limit).all()


def get_harvest(location_id: int, harvest_id: int) -> Harvest:
    harvest = db.session.query(Harvest).filter_by(id=harvest_id, location_id=location_id).first()
    if harvest is None:
        raise NotFoundError("Harvest not found")
    return harvest


def list_harvests(location_id: int, *, plant_id: int | None = None) -> list[Harvest]:
    q = db.session.query(Harvest).filter_by(location_id=location_id)
    if plant_id is not None:
        q = q.filter_by(plant_id=plant_id)
    return q.order_by(Harvest.created_at.desc(), Harvest.id.desc()).all()


def create_strain(location_id: int, name) -> Strain:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required")
    name = name.strip()
    existing = db.session.query(Strain).filter_by(location_id=location_id, name=name).first()
    if existing is not None:
        raise ValidationError(f"Strain '{name}' already exists at this location")

    with atomic():
        strain = Strain(location_id=location_id, name=name)
        db.session.add(strain)
    return strain


def list_strains(location_id: int) -> list[Strain]:
    return db.session.query(Strain).filter_by(location_id=location_id).order_by(Strain.name.asc()).all()


def strain_id_for(location_id: int, strain_name: str) -> int | None:
    strain = db.session.query(Strain.id).filter_by(location_id=location_id, name=strain_name).first()
    return strain[0] if strain else None


def _validate_strain(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("strain is required")
    value = value.strip()
    if len(value) > 120:
        raise ValidationError("strain must be at most 120 characters")
    return value


def _validate_phase(value) -> str:
    if value not in PLANT_PHASES:
        raise ValidationError(f"phase must be one of: {', '.join(sorted(PLANT_PHASES))}")
    return value


# ---------------------------------------------------------------------------
# Plants
# ---------------------------------------------------------------------------

def create_plant(
    location_id: int,
    strain,
    room_id,
    phase: str = "vegetative",
    source_inventory_id=None,
    consume_amount=1,
    user_id: int | None = None,
    notes: str | None = None,
) -> Plant:
    """
    Create a plant, optionally consuming one unit (or consume_amount) of a
    source inventory item such as a clone or seed batch.

    Concurrent callers racing for the same stock: exactly as many succeed as
    the stock allows; the rest get ConflictError and leave no trace.
    """
    strain = _validate_strain(strain)
    phase = _validate_phase(phase)
    require_active_room(location_id, room_id)
    amount = to_weight(consume_amount, "consume_amount")

    source = None
    if source_inventory_id is not None:
        source = get_inventory_item(location_id, source_inventory_id)

    with atomic():
        if source is not None:
            consume_quantity(source, amount)

        plant = Plant(
            location_id=location_id,
            strain=strain,
            room_id=room_id,
            phase=phase,
            status=PLANT_STATUS_ACTIVE,
            notes=notes,
            source_inventory_id=source.id if source is not None else None,
            barcode=generate_barcode(Plant),
            created_by_user_id=user_id,
        )
        db.session.add(plant)
        db.session.flush()

        record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_CULTIVATION,
            entity_type="plant",
            entity_id=plant.id,
            action_type="create_plant",
            details=PlantCreatedDetails(
                strain=strain,
                room_id=room_id,
                phase=phase,
                source_inventory_id=source.id if source is not None else None,
                consumed_amount=amount if source is not None else None,
            ),
        )

    logger.info("Plant created: location=%s plant=%s strain=%s", location_id, plant.id, strain)
    return plant


def soft_delete_plant(location_id: int, plant_id: int, user_id: int | None = None) -> Plant:
    plant = get_plant(location_id, plant_id)

    with atomic():
        previous_status = plant.status
        deleted_at = utcnow()
        plant.deleted_at = deleted_at
        plant.status = PLANT_STATUS_DELETED

        record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_CULTIVATION,
            entity_type="plant",
            entity_id=plant.id,
            action_type="delete_plant",
            details=PlantDeletedDetails(deleted_at=deleted_at, previous_status=previous_status),
        )

    logger.info("Plant soft deleted: location=%s plant=%s", location_id, plant.id)
    return plant


def update_plant(location_id: int, plant_id: int, patch: dict | None, user_id: int | None = None) -> Plant:
    patch = clean_patch(patch, PLANT_WRITABLE_FIELDS)
    plant = get_plant(location_id, plant_id)

    changes: dict = {}
    if "strain" in patch:
        changes["strain"] = _validate_strain(patch["strain"])
    if "phase" in patch:
        changes["phase"] = _validate_phase(patch["phase"])
    if "room_id" in patch:
        require_active_room(location_id, patch["room_id"])
        changes["room_id"] = patch["room_id"]
    if "source_inventory_id" in patch:
        source_id = patch["source_inventory_id"]
        if source_id is not None:
            exists = (
                db.session.query(InventoryItem.id)
                .filter_by(id=source_id, location_id=location_id)
                .first()
            )
            if exists is None:
                raise ValidationError("source_inventory_id does not reference an inventory item in this location")
        changes["source_inventory_id"] = source_id
    if "notes" in patch:
        changes["notes"] = patch["notes"] or None

    old_value = {key: getattr(plant, key) for key in changes}
    changed = {key: value for key, value in changes.items() if old_value[key] != value}
    if not changed:
        return plant

    with atomic():
        for key, value in changed.items():
            setattr(plant, key, value)

        record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_CULTIVATION,
            entity_type="plant",
            entity_id=plant.id,
            action_type="update_plant",
            details=FieldChangeDetails(
                old_value={key: old_value[key] for key in changed},
                new_value=changed,
            ),
        )

    return plant


# ---------------------------------------------------------------------------
# Room moves
# ---------------------------------------------------------------------------

def _load_move_target(plant_id, inventory_item_id, location_id):
    if plant_id is not None:
        q = db.session.query(Plant).filter(Plant.id == plant_id, Plant.deleted_at.is_(None))
        if location_id is not None:
            q = q.filter(Plant.location_id == location_id)
        target = q.first()
        if target is None:
            raise NotFoundError("Plant not found")
        if target.status == PLANT_STATUS_DESTROYED:
            raise ValidationError("Destroyed plants cannot be moved")
        return "plant", target

    q = db.session.query(InventoryItem).filter(
        InventoryItem.id == inventory_item_id,
        InventoryItem.deleted_at.is_(None),
    )
    if location_id is not None:
        q = q.filter(InventoryItem.location_id == location_id)
    target = q.first()
    if target is None:
        raise NotFoundError("Inventory item not found")
    return "inventory_item", target


def create_room_move(
    plant_id=None,
    inventory_item_id=None,
    from_room_id=None,
    to_room_id=None,
    user_id: int | None = None,
    location_id: int | None = None,
    reason: str | None = None,
) -> RoomMove:
    """
    Move one plant or one inventory item to another room of its location.

    from_room_id is optional; when given it must be an active room of the
    same location and match where the target currently is. The target's
    current room_id is what gets recorded as the old value (and what undo
    restores).
    """
    if to_room_id is None:
        raise ValidationError("to_room_id is required")
    require_exactly_one(plant_id=plant_id, inventory_item_id=inventory_item_id)

    entity_type, target = _load_move_target(plant_id, inventory_item_id, location_id)
    target_location = target.location_id

    require_active_room(target_location, to_room_id, field="to_room_id")
    if from_room_id is not None:
        require_active_room(target_location, from_room_id, field="from_room_id")

    old_room_id = target.room_id
    if from_room_id is not None and from_room_id != old_room_id:
        raise ValidationError(
            f"from_room_id {from_room_id} does not match the current room ({old_room_id})"
        )
    if old_room_id == to_room_id:
        raise ValidationError("Target is already in that room")

    with atomic():
        move = RoomMove(
            location_id=target_location,
            plant_id=target.id if entity_type == "plant" else None,
            inventory_item_id=target.id if entity_type == "inventory_item" else None,
            from_room_id=old_room_id,
            to_room_id=to_room_id,
            reason=reason,
            moved_by_user_id=user_id,
        )
        db.session.add(move)
        target.room_id = to_room_id
        db.session.flush()

        record_audit(
            location_id=target_location,
            user_id=user_id,
            module=MODULE_CULTIVATION,
            entity_type=entity_type,
            entity_id=target.id,
            action_type="move_room",
            details=RoomMoveDetails(
                room_move_id=move.id,
                old_room_id=old_room_id,
                new_room_id=to_room_id,
                reason=reason,
            ),
        )

    logger.info("Room move: %s=%s %s -> %s", entity_type, target.id, old_room_id, to_room_id)
    return move


# ---------------------------------------------------------------------------
# Mother plants and offspring
# ---------------------------------------------------------------------------

def convert_to_mother_plant(location_id: int, plant_id: int, notes: str | None = None, user_id: int | None = None) -> Plant:
    plant = get_plant(location_id, plant_id)
    if plant.status != PLANT_STATUS_ACTIVE:
        raise ValidationError(f"Only active plants can become mother plants (status is '{plant.status}')")

    with atomic():
        previous_status = plant.status
        plant.is_mother = True
        plant.status = PLANT_STATUS_MOTHER
        if notes:
            plant.notes = notes

        record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_CULTIVATION,
            entity_type="plant",
            entity_id=plant.id,
            action_type="convert_to_mother",
            details=MotherConversionDetails(previous_status=previous_status, notes=notes),
        )

    logger.info("Plant converted to mother: location=%s plant=%s", location_id, plant.id)
    return plant


def _generate_offspring(
    location_id: int,
    mother_plant_id: int,
    quantity,
    room_id,
    notes: str | None,
    user_id: int | None,
    *,
    type_name: str,
    counter: str,
    action_type: str,
) -> InventoryItem:
    quantity = to_positive_int(quantity, "quantity")
    mother = get_plant(location_id, mother_plant_id)
    if not mother.is_mother or mother.status != PLANT_STATUS_MOTHER:
        raise ValidationError("Plant is not a mother plant")
    require_active_room(location_id, room_id)
    inventory_type = require_type_by_name(type_name)

    with atomic():
        item = add_inventory_item(
            location_id=location_id,
            inventory_type=inventory_type,
            quantity=Decimal(quantity),
            unit="units",
            room_id=room_id,
            product_name=f"{mother.strain} {type_name}",
            strain_id=strain_id_for(location_id, mother.strain),
            source_plant_id=mother.id,
        )
        atomic_increment(Plant, mother.id, counter, quantity)

        record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_CULTIVATION,
            entity_type="plant",
            entity_id=mother.id,
            action_type=action_type,
            details=OffspringDetails(
                mother_plant_id=mother.id,
                inventory_item_id=item.id,
                quantity=quantity,
                room_id=room_id,
                notes=notes,
            ),
        )

    logger.info("%s: mother=%s item=%s quantity=%s", action_type, mother.id, item.id, quantity)
    return item


def generate_clones(location_id: int, mother_plant_id: int, quantity, room_id,
                    notes: str | None = None, user_id: int | None = None) -> InventoryItem:
    return _generate_offspring(
        location_id, mother_plant_id, quantity, room_id, notes, user_id,
        type_name=TYPE_CLONES,
        counter="clone_offspring_count",
        action_type="generate_clones",
    )


def generate_seeds(location_id: int, mother_plant_id: int, quantity, room_id,
                   notes: str | None = None, user_id: int | None = None) -> InventoryItem:
    return _generate_offspring(
        location_id, mother_plant_id, quantity, room_id, notes, user_id,
        type_name=TYPE_SEEDS,
        counter="seed_offspring_count",
        action_type="generate_seeds",
    )


# ---------------------------------------------------------------------------
# Harvest
# ---------------------------------------------------------------------------

def create_harvest(
    location_id: int,
    plant_id: int,
    wet_flower_weight,
    wet_other_material_weight=0,
    wet_waste_weight=0,
    batch_number: str | None = None,
    user_id: int | None = None,
) -> Harvest:
    """Record wet weights for an active plant; they cap every later cure."""
    flower = to_weight(wet_flower_weight, "wet_flower_weight")
    other = to_weight(wet_other_material_weight, "wet_other_material_weight", allow_zero=True)
    waste = to_weight(wet_waste_weight, "wet_waste_weight", allow_zero=True)

    plant = get_plant(location_id, plant_id)
    if plant.status != PLANT_STATUS_ACTIVE:
        raise ValidationError(f"Only active plants can be harvested (status is '{plant.status}')")

    with atomic():
        harvest = Harvest(
            location_id=location_id,
            plant_id=plant.id,
            wet_flower_weight=flower,
            wet_other_material_weight=other,
            wet_waste_weight=waste,
            batch_number=batch_number,
            created_by_user_id=user_id,
        )
        db.session.add(harvest)
        plant.status = PLANT_STATUS_HARVESTED
        plant.phase = PLANT_STATUS_HARVESTED
        db.session.flush()

        record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_CULTIVATION,
            entity_type="harvest",
            entity_id=harvest.id,
            action_type="create_harvest",
            details=HarvestDetails(
                plant_id=plant.id,
                wet_flower_weight=flower,
                wet_other_material_weight=other,
                wet_waste_weight=waste,
                batch_number=batch_number,
            ),
        )

    logger.info("Harvest created: location=%s plant=%s harvest=%s", location_id, plant.id, harvest.id)
    return harvest


# ---------------------------------------------------------------------------
# Undo
# ---------------------------------------------------------------------------

def _already_undone(log: AuditLog) -> bool:
    undos = list_audit_logs(
        log.location_id,
        entity_type=log.entity_type,
        entity_id=log.entity_id,
        action_type="undo_operation",
    )
    return any(parse_details(u).original_audit_log_id == log.id for u in undos)


def undo_operation(location_id: int, audit_log_id: int, reason: str | None = None,
                   user_id: int | None = None, actions=UNDOABLE_ACTIONS) -> AuditLog:
    """
    Reverse a previously audited action: a room move or a manual
    inventory adjustment.

    Validation (unsupported action, already undone, vanished room) happens
    before the transaction, so a rejected undo writes nothing. Undoing an
    adjustment fails with ConflictError once the item has moved on.
    `actions` narrows what the caller may reverse.
    Returns the undo_operation audit row.
    """
    original = get_audit_log(location_id, audit_log_id)
    if original.action_type not in actions:
        raise ValidationError(f"Undo is not supported for action '{original.action_type}'")
    if _already_undone(original):
        raise ValidationError("Operation has already been undone")

    details = parse_details(original)
    if original.action_type == "adjust_inventory":
        return _undo_adjustment(location_id, original, details, reason, user_id)
    return _undo_room_move(location_id, original, details, reason, user_id)


def _undo_room_move(location_id, original, details, reason, user_id) -> AuditLog:
    if not isinstance(details, RoomMoveDetails) or details.old_room_id is None:
        raise ValidationError("Audit entry does not record a previous room")

    plant_id = original.entity_id if original.entity_type == "plant" else None
    item_id = original.entity_id if original.entity_type == "inventory_item" else None
    entity_type, target = _load_move_target(plant_id, item_id, location_id)
    require_active_room(location_id, details.old_room_id, field="previous room")

    with atomic():
        current_room_id = target.room_id
        move = RoomMove(
            location_id=location_id,
            plant_id=target.id if entity_type == "plant" else None,
            inventory_item_id=target.id if entity_type == "inventory_item" else None,
            from_room_id=current_room_id,
            to_room_id=details.old_room_id,
            reason=reason or f"Undo of audit log {original.id}",
            moved_by_user_id=user_id,
        )
        db.session.add(move)
        target.room_id = details.old_room_id
        db.session.flush()

        undo_log = record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_CULTIVATION,
            entity_type=entity_type,
            entity_id=target.id,
            action_type="undo_operation",
            details=UndoDetails(
                original_audit_log_id=original.id,
                original_action_type=original.action_type,
                restored={"room_id": details.old_room_id, "room_move_id": move.id},
                reason=reason,
            ),
        )

    logger.info("Undo: audit_log=%s %s=%s restored room %s", original.id, entity_type, target.id, details.old_room_id)
    return undo_log


def _undo_adjustment(location_id, original, details, reason, user_id) -> AuditLog:
    if not isinstance(details, AdjustmentDetails):
        raise ValidationError("Audit entry does not record a previous quantity")

    with atomic():
        reversal = reverse_adjustment(
            location_id,
            original.entity_id,
            details,
            audit_log_id=original.id,
            user_id=user_id,
        )

        undo_log = record_audit(
            location_id=location_id,
            user_id=user_id,
            module=MODULE_INVENTORY,
            entity_type=original.entity_type,
            entity_id=original.entity_id,
            action_type="undo_operation",
            details=UndoDetails(
                original_audit_log_id=original.id,
                original_action_type=original.action_type,
                restored={"quantity": str(details.old_quantity), "adjustment_id": reversal.id},
                reason=reason,
            ),
        )

    logger.info("Undo: audit_log=%s inventory_item=%s restored quantity %s",
                original.id, original.entity_id, details.old_quantity)
    return undo_log
