from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import weight_to_str
from .weights import centigram_column, weight_property

# Plant statuses
PLANT_STATUS_ACTIVE = "active"
PLANT_STATUS_MOTHER = "mother"
PLANT_STATUS_HARVESTED = "harvested"
PLANT_STATUS_CURED = "cured"
PLANT_STATUS_DESTROYED = "destroyed"
PLANT_STATUS_DELETED = "deleted"


class Strain(db.Model):
    __tablename__ = "strains"
    __table_args__ = (
        db.UniqueConstraint("location_id", "name", name="uq_strains_location_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {"id": self.id, "location_id": self.location_id, "name": self.name}


class Plant(db.Model):
    """
    A tracked plant.

    LIFECYCLE:
        active -> mother                  (convert_to_mother_plant)
        active -> harvested -> cured      (create_harvest, create_cure)
        any    -> destroyed               (create_destruction)
        any    -> deleted                 (soft_delete_plant, sets deleted_at)

    Offspring counters are only ever changed with an in-database increment.
    """
    __tablename__ = "plants"
    __table_args__ = (
        db.Index("ix_plants_location_status", "location_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    strain = db.Column(db.String(120), nullable=False)
    room_id = db.Column(db.Integer, db.ForeignKey("rooms.id"), nullable=False, index=True)
    phase = db.Column(db.String(32), nullable=False, default="vegetative")
    status = db.Column(db.String(16), nullable=False, default=PLANT_STATUS_ACTIVE, index=True)
    notes = db.Column(db.Text, nullable=True)

    is_mother = db.Column(db.Boolean, nullable=False, default=False)
    source_inventory_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=True)
    clone_offspring_count = db.Column(db.Integer, nullable=False, default=0)
    seed_offspring_count = db.Column(db.Integer, nullable=False, default=0)

    barcode = db.Column(db.String(32), nullable=True, unique=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    room = db.relationship("Room")
    source_inventory = db.relationship("InventoryItem", foreign_keys=[source_inventory_id])

    def __repr__(self) -> str:
        return f"<Plant id={self.id} strain={self.strain!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "strain": self.strain,
            "room_id": self.room_id,
            "phase": self.phase,
            "status": self.status,
            "notes": self.notes,
            "is_mother": self.is_mother,
            "source_inventory_id": self.source_inventory_id,
            "clone_offspring_count": self.clone_offspring_count,
            "seed_offspring_count": self.seed_offspring_count,
            "barcode": self.barcode,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class Harvest(db.Model):
    """
    Wet-weight baseline recorded when a plant is harvested.

    The wet weights are the ceiling every later Cure is validated against.
    Only plant destruction may reduce wet_flower_weight afterwards.
    """
    __tablename__ = "harvests"
    __table_args__ = (
        db.CheckConstraint("wet_flower_weight_cg >= 0", name="ck_harvests_wet_flower_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    plant_id = db.Column(db.Integer, db.ForeignKey("plants.id"), nullable=False, index=True)

    wet_flower_weight_cg = centigram_column(nullable=False, default=0)
    wet_flower_weight = weight_property("wet_flower_weight_cg")
    wet_other_material_weight_cg = centigram_column(nullable=False, default=0)
    wet_other_material_weight = weight_property("wet_other_material_weight_cg")
    wet_waste_weight_cg = centigram_column(nullable=False, default=0)
    wet_waste_weight = weight_property("wet_waste_weight_cg")
    batch_number = db.Column(db.String(64), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    plant = db.relationship("Plant", backref=db.backref("harvests", lazy=True))

    @property
    def wet_total(self):
        return self.wet_flower_weight + self.wet_other_material_weight + self.wet_waste_weight

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "plant_id": self.plant_id,
            "wet_flower_weight": weight_to_str(self.wet_flower_weight),
            "wet_other_material_weight": weight_to_str(self.wet_other_material_weight),
            "wet_waste_weight": weight_to_str(self.wet_waste_weight),
            "batch_number": self.batch_number,
            "created_at": to_utc_z(self.created_at),
        }


class Cure(db.Model):
    __tablename__ = "cures"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    harvest_id = db.Column(db.Integer, db.ForeignKey("harvests.id"), nullable=False, index=True)
    plant_id = db.Column(db.Integer, db.ForeignKey("plants.id"), nullable=False, index=True)

    dry_flower_weight_cg = centigram_column(nullable=False, default=0)
    dry_flower_weight = weight_property("dry_flower_weight_cg")
    dry_other_material_weight_cg = centigram_column(nullable=False, default=0)
    dry_other_material_weight = weight_property("dry_other_material_weight_cg")
    dry_waste_weight_cg = centigram_column(nullable=False, default=0)
    dry_waste_weight = weight_property("dry_waste_weight_cg")

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    harvest = db.relationship("Harvest", backref=db.backref("cures", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "harvest_id": self.harvest_id,
            "plant_id": self.plant_id,
            "dry_flower_weight": weight_to_str(self.dry_flower_weight),
            "dry_other_material_weight": weight_to_str(self.dry_other_material_weight),
            "dry_waste_weight": weight_to_str(self.dry_waste_weight),
            "created_at": to_utc_z(self.created_at),
        }


class Destruction(db.Model):
    """Terminal waste record for exactly one plant or one inventory item."""
    __tablename__ = "destructions"
    __table_args__ = (
        db.CheckConstraint(
            "(plant_id IS NULL) <> (inventory_item_id IS NULL)",
            name="ck_destructions_single_target",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    plant_id = db.Column(db.Integer, db.ForeignKey("plants.id"), nullable=True, index=True)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=True, index=True)

    destruction_reason = db.Column(db.String(255), nullable=False)
    waste_weight_cg = centigram_column(nullable=False)
    waste_weight = weight_property("waste_weight_cg")

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "plant_id": self.plant_id,
            "inventory_item_id": self.inventory_item_id,
            "destruction_reason": self.destruction_reason,
            "waste_weight": weight_to_str(self.waste_weight),
            "created_at": to_utc_z(self.created_at),
        }


class RoomMove(db.Model):
    """Append-only movement log. The owning entity carries the current room."""
    __tablename__ = "room_moves"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    plant_id = db.Column(db.Integer, db.ForeignKey("plants.id"), nullable=True, index=True)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=True, index=True)
    from_room_id = db.Column(db.Integer, db.ForeignKey("rooms.id"), nullable=True)
    to_room_id = db.Column(db.Integer, db.ForeignKey("rooms.id"), nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    moved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "plant_id": self.plant_id,
            "inventory_item_id": self.inventory_item_id,
            "from_room_id": self.from_room_id,
            "to_room_id": self.to_room_id,
            "reason": self.reason,
            "moved_by_user_id": self.moved_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
