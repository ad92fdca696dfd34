from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class SyncReceipt(db.Model):
    """
    Idempotency record for a client-pushed row.

    One row per (entity_type, shop_id, client_id). A re-push of the same key
    resolves to server_id instead of creating a second record; payload_hash
    distinguishes an exact retry from a changed record.
    """
    __tablename__ = "sync_receipts"
    __table_args__ = (
        db.UniqueConstraint("entity_type", "shop_id", "client_id", name="uq_sync_receipts_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(32), nullable=False)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    client_id = db.Column(db.String(64), nullable=False)

    server_id = db.Column(db.Integer, nullable=False)
    payload_hash = db.Column(db.String(64), nullable=False)
    pushed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "shop_id": self.shop_id,
            "client_id": self.client_id,
            "server_id": self.server_id,
            "payload_hash": self.payload_hash,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
