"""initial dashboard schema: plcs, opcua_nodes, user_descriptions

Revision ID: 5b1d0c7e2a94
Revises:
Create Date: 2026-10-16

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "5b1d0c7e2a94"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "plcs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("plc_name", sa.String(length=200), nullable=False),
        sa.Column("plc_ip", sa.String(length=255), nullable=False),
        sa.Column("plc_no", sa.Integer(), nullable=False),
        sa.Column("opcua_url", sa.String(length=500), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("is_connected", sa.Boolean(), nullable=False),
        sa.Column("last_checked", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("address_mappings", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_plcs_plc_ip"), "plcs", ["plc_ip"], unique=False)
    op.create_index(op.f("ix_plcs_plc_no"), "plcs", ["plc_no"], unique=False)
    op.create_index(op.f("ix_plcs_opcua_url"), "plcs", ["opcua_url"], unique=False)

    op.create_table(
        "opcua_nodes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("plc_no", sa.Integer(), nullable=False),
        sa.Column("node_name", sa.String(length=300), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("datatype", sa.String(length=50), nullable=False),
        sa.Column("reg_add", sa.String(length=200), nullable=False),
        sa.Column("user_description", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_opcua_nodes_plc_no"), "opcua_nodes", ["plc_no"], unique=False)
    op.create_index(op.f("ix_opcua_nodes_node_name"), "opcua_nodes", ["node_name"], unique=False)

    op.create_table(
        "user_descriptions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("plc_id", sa.String(length=100), nullable=False),
        sa.Column("node_id", sa.String(length=300), nullable=False),
        sa.Column("user_description", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("plc_id", "node_id", name="uq_user_descriptions_plc_node"),
    )
    op.create_index(op.f("ix_user_descriptions_plc_id"), "user_descriptions", ["plc_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_user_descriptions_plc_id"), table_name="user_descriptions")
    op.drop_table("user_descriptions")
    op.drop_index(op.f("ix_opcua_nodes_node_name"), table_name="opcua_nodes")
    op.drop_index(op.f("ix_opcua_nodes_plc_no"), table_name="opcua_nodes")
    op.drop_table("opcua_nodes")
    op.drop_index(op.f("ix_plcs_opcua_url"), table_name="plcs")
    op.drop_index(op.f("ix_plcs_plc_no"), table_name="plcs")
    op.drop_index(op.f("ix_plcs_plc_ip"), table_name="plcs")
    op.drop_table("plcs")
