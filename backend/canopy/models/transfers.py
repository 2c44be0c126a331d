from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import weight_to_str
from .weights import centigram_column, weight_property


class Transfer(db.Model):
    """
    Movement of inventory from one licensed location to another.

    LIFECYCLE:
        PENDING -> IN_TRANSIT -> RECEIVED | REJECTED
        PENDING -> CANCELLED
    """
    __tablename__ = "transfers"
    __table_args__ = (
        db.Index("ix_transfers_from_status", "from_location_id", "status"),
        db.Index("ix_transfers_to_status", "to_location_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    from_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)
    to_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    reason = db.Column(db.String(255), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    shipped_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)

    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.String(255), nullable=True)

    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    lines = db.relationship("TransferLine", backref="transfer", lazy=True, order_by="TransferLine.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "status": self.status,
            "reason": self.reason,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "shipped_at": to_utc_z(self.shipped_at),
            "received_at": to_utc_z(self.received_at),
            "rejection_reason": self.rejection_reason,
            "cancelled_at": to_utc_z(self.cancelled_at),
        }


class TransferLine(db.Model):
    __tablename__ = "transfer_lines"
    __table_args__ = (
        db.UniqueConstraint("transfer_id", "inventory_item_id", name="uq_transfer_lines_item"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("transfers.id"), nullable=False, index=True)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False)
    quantity_cg = centigram_column(nullable=False)
    quantity = weight_property("quantity_cg")

    # Set on RECEIVED: the new item created at the destination
    received_inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_id": self.transfer_id,
            "inventory_item_id": self.inventory_item_id,
            "quantity": weight_to_str(self.quantity),
            "received_inventory_item_id": self.received_inventory_item_id,
        }
