from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Location(db.Model):
    """
    Licensed location: the tenant root.

    Every plant, room, inventory item and audit entry belongs to exactly one
    location. References that cross locations are treated as not found.
    The UBI is the external (state-issued) reference code.
    """
    __tablename__ = "locations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    ubi = db.Column(db.String(32), nullable=False, unique=True, index=True)
    license_type = db.Column(db.String(32), nullable=False, default="Cultivator")

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Location id={self.id} ubi={self.ubi!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "ubi": self.ubi,
            "license_type": self.license_type,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Room(db.Model):
    """
    Grow/processing room within a location.

    Names are unique within a location, not globally. Rooms are soft deleted
    (deleted_at) so historical room moves keep their references.
    """
    __tablename__ = "rooms"
    __table_args__ = (
        db.UniqueConstraint("location_id", "name", name="uq_rooms_location_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    room_type = db.Column(db.String(32), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    location = db.relationship("Location", backref=db.backref("rooms", lazy=True))

    @property
    def is_usable(self) -> bool:
        return self.status == "active" and self.deleted_at is None

    def __repr__(self) -> str:
        return f"<Room id={self.id} name={self.name!r} location_id={self.location_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "name": self.name,
            "room_type": self.room_type,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }
