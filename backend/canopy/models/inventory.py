from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import weight_to_str
from .weights import centigram_column, weight_property

# Inventory type categories (static taxonomy)
CATEGORY_SOURCE = "Source"
CATEGORY_WASTE = "Waste"
CATEGORY_WET = "Wet"
CATEGORY_DRY = "Dry"
CATEGORY_LOT = "Lot"
CATEGORY_EXTRACTION = "Extraction"
CATEGORY_FINISHED = "FinishedGoods"

INVENTORY_CATEGORIES = (
    CATEGORY_SOURCE,
    CATEGORY_WASTE,
    CATEGORY_WET,
    CATEGORY_DRY,
    CATEGORY_LOT,
    CATEGORY_EXTRACTION,
    CATEGORY_FINISHED,
)

# Inventory item statuses
ITEM_STATUS_ACTIVE = "active"
ITEM_STATUS_CONSUMED = "consumed"
ITEM_STATUS_DESTROYED = "destroyed"


class InventoryType(db.Model):
    """
    Reference data: what kind of material an inventory item holds.

    Names are globally unique. Types are never deleted once used; they are
    deactivated instead (is_active=False).
    """
    __tablename__ = "inventory_types"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True, index=True)
    description = db.Column(db.String(255), nullable=True)
    category = db.Column(db.String(32), nullable=False, index=True)
    unit = db.Column(db.String(16), nullable=False, default="grams")

    is_source = db.Column(db.Boolean, nullable=False, default=False)
    is_waste = db.Column(db.Boolean, nullable=False, default=False)
    can_convert = db.Column(db.Boolean, nullable=False, default=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<InventoryType id={self.id} name={self.name!r} category={self.category!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "unit": self.unit,
            "is_source": self.is_source,
            "is_waste": self.is_waste,
            "can_convert": self.can_convert,
            "is_active": self.is_active,
        }


class InventoryItem(db.Model):
    """
    A tracked lot of material at a location.

    quantity is grams for weighed material and a unit count for source
    (clones/seeds) and finished goods; `unit` says which. It is persisted as
    integer hundredths in quantity_cg and only ever decremented through a
    conditional UPDATE on that column (see
    services.concurrency.conditional_decrement), so it can never go negative.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.Index("ix_inventory_items_location_status", "location_id", "status"),
        db.CheckConstraint("quantity_cg >= 0", name="ck_inventory_items_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    inventory_type_id = db.Column(db.Integer, db.ForeignKey("inventory_types.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=True)
    quantity_cg = centigram_column(nullable=False, default=0)
    quantity = weight_property("quantity_cg")
    unit = db.Column(db.String(16), nullable=False, default="grams")
    usable_weight_cg = centigram_column(nullable=True)
    usable_weight = weight_property("usable_weight_cg")

    room_id = db.Column(db.Integer, db.ForeignKey("rooms.id"), nullable=True, index=True)
    strain_id = db.Column(db.Integer, db.ForeignKey("strains.id"), nullable=True, index=True)
    batch_number = db.Column(db.String(64), nullable=True)

    # Random 16-digit code; unique so a collision fails loudly instead of aliasing
    barcode = db.Column(db.String(32), nullable=False, unique=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=ITEM_STATUS_ACTIVE, index=True)

    # Lineage references (plain ints: plants already point back at inventory_items)
    source_plant_id = db.Column(db.Integer, nullable=True, index=True)
    harvest_id = db.Column(db.Integer, nullable=True, index=True)

    # Split children point at their parent; sublot ids number the children
    parent_inventory_item_id = db.Column(db.Integer, nullable=True, index=True)
    sublot_identifier = db.Column(db.String(64), nullable=True)
    lot_id = db.Column(db.Integer, db.ForeignKey("lots.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    inventory_type = db.relationship("InventoryType")
    room = db.relationship("Room")
    strain = db.relationship("Strain")

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} barcode={self.barcode!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "inventory_type_id": self.inventory_type_id,
            "inventory_type": self.inventory_type.name if self.inventory_type else None,
            "category": self.inventory_type.category if self.inventory_type else None,
            "product_name": self.product_name,
            "quantity": weight_to_str(self.quantity),
            "unit": self.unit,
            "usable_weight": weight_to_str(self.usable_weight),
            "room_id": self.room_id,
            "strain_id": self.strain_id,
            "batch_number": self.batch_number,
            "barcode": self.barcode,
            "status": self.status,
            "source_plant_id": self.source_plant_id,
            "harvest_id": self.harvest_id,
            "parent_inventory_item_id": self.parent_inventory_item_id,
            "sublot_identifier": self.sublot_identifier,
            "lot_id": self.lot_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class InventoryAdjustment(db.Model):
    """Manual quantity correction; large swings are flagged for review."""
    __tablename__ = "inventory_adjustments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    adjustment_cg = centigram_column(nullable=False)
    adjustment = weight_property("adjustment_cg")
    previous_quantity_cg = centigram_column(nullable=False)
    previous_quantity = weight_property("previous_quantity_cg")
    new_quantity_cg = centigram_column(nullable=False)
    new_quantity = weight_property("new_quantity_cg")
    adjustment_type = db.Column(db.String(32), nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    is_red_flag = db.Column(db.Boolean, nullable=False, default=False)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    inventory_item = db.relationship("InventoryItem", backref=db.backref("adjustments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "inventory_item_id": self.inventory_item_id,
            "adjustment": weight_to_str(self.adjustment),
            "previous_quantity": weight_to_str(self.previous_quantity),
            "new_quantity": weight_to_str(self.new_quantity),
            "adjustment_type": self.adjustment_type,
            "reason": self.reason,
            "is_red_flag": self.is_red_flag,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class Lot(db.Model):
    """A named batch of wet or dry material gathered into one lot item."""
    __tablename__ = "lots"
    __table_args__ = (
        db.UniqueConstraint("location_id", "batch_number", name="uq_lots_location_batch"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    batch_number = db.Column(db.String(64), nullable=False)
    inventory_type_id = db.Column(db.Integer, db.ForeignKey("inventory_types.id"), nullable=False)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    inventory_type = db.relationship("InventoryType")

    def __repr__(self) -> str:
        return f"<Lot id={self.id} batch_number={self.batch_number!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "batch_number": self.batch_number,
            "inventory_type_id": self.inventory_type_id,
            "inventory_type": self.inventory_type.name if self.inventory_type else None,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class InventorySplit(db.Model):
    """One split of a parent item into sublot children."""
    __tablename__ = "inventory_splits"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    parent_inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    # JSON list of the child item ids, in sublot order
    child_item_ids = db.Column(db.Text, nullable=False, default="[]")
    reason = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    parent_inventory_item = db.relationship("InventoryItem")

    @property
    def child_ids(self) -> list[int]:
        return json.loads(self.child_item_ids or "[]")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "parent_inventory_item_id": self.parent_inventory_item_id,
            "child_inventory_item_ids": self.child_ids,
            "reason": self.reason,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryCombination(db.Model):
    """Several items of one type merged into a target item."""
    __tablename__ = "inventory_combinations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    target_inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    # JSON list of the drained source item ids
    source_item_ids = db.Column(db.Text, nullable=False, default="[]")
    total_quantity_cg = centigram_column(nullable=False)
    total_quantity = weight_property("total_quantity_cg")
    reason = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    target_inventory_item = db.relationship("InventoryItem")

    @property
    def source_ids(self) -> list[int]:
        return json.loads(self.source_item_ids or "[]")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "target_inventory_item_id": self.target_inventory_item_id,
            "source_inventory_item_ids": self.source_ids,
            "total_quantity": weight_to_str(self.total_quantity),
            "reason": self.reason,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
