"""Supply chain ledger schema

Revision ID: 0001_supply_chain_schema
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_supply_chain_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "participants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("address", sa.String(42), nullable=False),
        sa.Column("is_frozen", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("frozen_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("frozen_by", sa.String(42), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("participants", schema=None) as batch_op:
        batch_op.create_index("ix_participants_address", ["address"], unique=True)
        batch_op.create_index("ix_participants_is_frozen", ["is_frozen"], unique=False)

    op.create_table(
        "participant_roles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("participant_id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("granted_by", sa.String(42), nullable=True),
        sa.Column("granted_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["participant_id"], ["participants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("participant_id", "role", name="uq_participant_roles"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("participant_roles", schema=None) as batch_op:
        batch_op.create_index("ix_participant_roles_participant_id", ["participant_id"], unique=False)
        batch_op.create_index("ix_participant_roles_role", ["role"], unique=False)

    op.create_table(
        "security_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("address", sa.String(42), nullable=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("action", sa.String(64), nullable=True),
        sa.Column("role", sa.String(32), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("security_events", schema=None) as batch_op:
        batch_op.create_index("ix_security_events_address", ["address"], unique=False)
        batch_op.create_index("ix_security_events_event_type", ["event_type"], unique=False)
        batch_op.create_index("ix_security_events_success", ["success"], unique=False)
        batch_op.create_index("ix_security_events_occurred_at", ["occurred_at"], unique=False)
        batch_op.create_index("ix_security_events_address_type", ["address", "event_type"], unique=False)
        batch_op.create_index("ix_security_events_occurred", ["occurred_at"], unique=False)

    op.create_table(
        "escrow_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payer", sa.String(42), nullable=False),
        sa.Column("payee", sa.String(42), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="OUTSTANDING"),
        sa.Column("batch_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("escrow_entries", schema=None) as batch_op:
        batch_op.create_index("ix_escrow_entries_payer", ["payer"], unique=False)
        batch_op.create_index("ix_escrow_entries_payee", ["payee"], unique=False)
        batch_op.create_index("ix_escrow_entries_status", ["status"], unique=False)
        batch_op.create_index("ix_escrow_entries_batch_id", ["batch_id"], unique=False)
        batch_op.create_index("ix_escrow_entries_payee_status", ["payee", "status"], unique=False)

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("address", sa.String(42), nullable=False),
        sa.Column("balance", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("accounts", schema=None) as batch_op:
        batch_op.create_index("ix_accounts_address", ["address"], unique=True)

    op.create_table(
        "batches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("manufacturer", sa.String(42), nullable=False),
        sa.Column("holder", sa.String(42), nullable=False),
        sa.Column("distributor", sa.String(42), nullable=True),
        sa.Column("retailer", sa.String(42), nullable=True),
        sa.Column("status", sa.String(24), nullable=False, server_default="CREATED"),
        sa.Column("expiry", sa.BigInteger(), nullable=False),
        sa.Column("price", sa.BigInteger(), nullable=False),
        sa.Column("offer_price", sa.BigInteger(), nullable=True),
        sa.Column("content_ref", sa.String(42), nullable=False),
        sa.Column("manufacturer_escrow_id", sa.Integer(), nullable=True),
        sa.Column("distributor_escrow_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("settled_at", sa.BigInteger(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["manufacturer_escrow_id"], ["escrow_entries.id"]),
        sa.ForeignKeyConstraint(["distributor_escrow_id"], ["escrow_entries.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("batches", schema=None) as batch_op:
        batch_op.create_index("ix_batches_manufacturer", ["manufacturer"], unique=False)
        batch_op.create_index("ix_batches_holder", ["holder"], unique=False)
        batch_op.create_index("ix_batches_distributor", ["distributor"], unique=False)
        batch_op.create_index("ix_batches_retailer", ["retailer"], unique=False)
        batch_op.create_index("ix_batches_status", ["status"], unique=False)
        batch_op.create_index("ix_batches_expiry", ["expiry"], unique=False)
        batch_op.create_index("ix_batches_status_holder", ["status", "holder"], unique=False)

    op.create_table(
        "return_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("batch_id", sa.Integer(), nullable=False),
        sa.Column("requester", sa.String(42), nullable=False),
        sa.Column("counterparty", sa.String(42), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("prior_status", sa.String(24), nullable=False),
        sa.Column("escrow_entry_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("resolved_by", sa.String(42), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("resolved_at", sa.BigInteger(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["batch_id"], ["batches.id"]),
        sa.ForeignKeyConstraint(["escrow_entry_id"], ["escrow_entries.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("return_requests", schema=None) as batch_op:
        batch_op.create_index("ix_return_requests_batch_id", ["batch_id"], unique=False)
        batch_op.create_index("ix_return_requests_status", ["status"], unique=False)
        batch_op.create_index("ix_return_requests_batch_status", ["batch_id", "status"], unique=False)

    op.create_table(
        "ledger_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_name", sa.String(64), nullable=False),
        sa.Column("args_json", sa.Text(), nullable=False),
        sa.Column("fields_json", sa.Text(), nullable=False),
        sa.Column("batch_id", sa.Integer(), nullable=True),
        sa.Column("actor", sa.String(42), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("ledger_events", schema=None) as batch_op:
        batch_op.create_index("ix_ledger_events_event_name", ["event_name"], unique=False)
        batch_op.create_index("ix_ledger_events_batch_id", ["batch_id"], unique=False)
        batch_op.create_index("ix_ledger_events_actor", ["actor"], unique=False)
        batch_op.create_index("ix_ledger_events_occurred_at", ["occurred_at"], unique=False)
        batch_op.create_index("ix_ledger_events_name_batch", ["event_name", "batch_id"], unique=False)


def downgrade():
    op.drop_table("ledger_events")
    op.drop_table("return_requests")
    op.drop_table("batches")
    op.drop_table("accounts")
    op.drop_table("escrow_entries")
    op.drop_table("security_events")
    op.drop_table("participant_roles")
    op.drop_table("participants")
