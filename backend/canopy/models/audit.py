from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z


class AuditLog(db.Model):
    """
    Append-only audit trail.

    - One row per mutating action (compound operations write several).
    - Written in the same DB transaction as the mutation it records.
    - Never updated or deleted by application code.
    - details is JSON produced from a typed payload (services.audit_service).
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_location_action_created", "location_id", "action_type", "created_at"),
        db.Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    module = db.Column(db.String(32), nullable=False)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    action_type = db.Column(db.String(32), nullable=False, index=True)
    details = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    @property
    def details_dict(self) -> dict:
        if not self.details:
            return {}
        return json.loads(self.details)

    def __repr__(self) -> str:
        return f"<AuditLog id={self.id} {self.module}/{self.action_type} {self.entity_type}:{self.entity_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "user_id": self.user_id,
            "module": self.module,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action_type": self.action_type,
            "details": self.details_dict,
            "created_at": to_utc_z(self.created_at),
        }
