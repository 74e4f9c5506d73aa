"""initial schema (endpoints, check_definitions, check_results, system_snapshots)

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-16
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # endpoints 表
    op.create_table(
        "endpoints",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("hostname", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("os", sa.String(100), nullable=False, server_default=""),
        sa.Column("os_version", sa.String(255), nullable=False, server_default=""),
        sa.Column("agent_version", sa.String(50), nullable=False, server_default=""),
        sa.Column("ip_addresses", sa.JSON(), nullable=False),
        sa.Column("last_seen", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="unknown"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # check_definitions 表
    op.create_table(
        "check_definitions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, index=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("check_type", sa.String(50), nullable=False),
        sa.Column("parameters", sa.JSON(), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # check_results 表（只追加）
    op.create_table(
        "check_results",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("endpoint_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("check_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("collected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now(), index=True),
        sa.ForeignKeyConstraint(["endpoint_id"], ["endpoints.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["check_id"], ["check_definitions.id"], ondelete="CASCADE"),
    )

    # system_snapshots 表
    op.create_table(
        "system_snapshots",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("endpoint_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("cpu_usage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("memory_total", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("memory_used", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("disk_total", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("disk_used", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("processes", sa.JSON(), nullable=False),
        sa.Column("open_ports", sa.JSON(), nullable=False),
        sa.Column("installed_software", sa.JSON(), nullable=False),
        sa.Column("collected_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.ForeignKeyConstraint(["endpoint_id"], ["endpoints.id"], ondelete="CASCADE"),
    )


def downgrade() -> None:
    op.drop_table("system_snapshots")
    op.drop_table("check_results")
    op.drop_table("check_definitions")
    op.drop_table("endpoints")
