from __future__ import annotations

import json

from ..extensions import db
from supplychain.time_utils import to_utc_z


class LedgerEvent(db.Model):
    """
    Append-only event log.

    WHY: External observers follow the ledger through named events with a
    fixed field order (BatchCreated(batchId, timestamp), ...). args_json
    stores the positional arguments as a JSON array so order is preserved
    exactly as emitted.

    IMMUTABLE: Never update or delete.
    """
    __tablename__ = "ledger_events"
    __table_args__ = (
        db.Index("ix_ledger_events_name_batch", "event_name", "batch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_name = db.Column(db.String(64), nullable=False, index=True)

    # Ordered positional arguments, JSON array
    args_json = db.Column(db.Text, nullable=False)

    # Names of the positional arguments, JSON array, same order as args_json
    fields_json = db.Column(db.Text, nullable=False)

    batch_id = db.Column(db.Integer, nullable=True, index=True)
    actor = db.Column(db.String(42), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    @property
    def args(self) -> list:
        return json.loads(self.args_json)

    @property
    def fields(self) -> list:
        return json.loads(self.fields_json)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event": self.event_name,
            "args": self.args,
            "named_args": dict(zip(self.fields, self.args)),
            "batch_id": self.batch_id,
            "actor": self.actor,
            "occurred_at": to_utc_z(self.occurred_at),
        }
