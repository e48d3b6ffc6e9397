from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z


class ActivityLog(db.Model):
    """
    System-wide, append-only record of a mutating action.

    Written in the same transaction as the change it describes. details is
    a small JSON summary (field names, counts, ids), never a full snapshot.
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("ix_activity_entity", "entity_type", "entity_id"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    user_id = db.Column(db.String(64), nullable=False, index=True)
    action = db.Column(db.String(64), nullable=False, index=True)  # e.g., PRODUCT_CREATED
    entity_type = db.Column(db.String(32), nullable=False)  # e.g., PRODUCT
    entity_id = db.Column(db.String(36), nullable=False)
    details = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "details": self.details,
            "created_at": to_utc_z(self.created_at),
        }
