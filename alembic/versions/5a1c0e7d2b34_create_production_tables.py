"""create scoping and production tables

Revision ID: 5a1c0e7d2b34
Revises:
Create Date: 2026-03-02 10:04:11.318204

Creates scoping_forms, scope_areas and production_projects. Idempotent —
tables created earlier by Base.metadata.create_all() are left alone.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '5a1c0e7d2b34'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(table_name):
    """Check if a table exists."""
    bind = op.get_bind()
    insp = inspect(bind)
    return table_name in insp.get_table_names()


def upgrade() -> None:
    if not _table_exists("scoping_forms"):
        op.create_table(
            "scoping_forms",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("upid", sa.String(), nullable=False),
            sa.Column("project_name", sa.String(), nullable=False),
            sa.Column("project_address", sa.Text(), nullable=True),
            sa.Column("client_company", sa.String(), nullable=True),
            sa.Column("number_of_floors", sa.Integer(), nullable=True),
            sa.Column("dispatch_location", sa.String(), nullable=True),
            sa.Column("era", sa.String(), nullable=True),
            sa.Column("room_density", sa.Integer(), nullable=True),
            sa.Column("est_scan_days", sa.Float(), nullable=True),
            sa.Column("techs_planned", sa.Integer(), nullable=True),
            sa.Column("pricing_tier", sa.String(), nullable=True),
            sa.Column("lod", sa.String(), nullable=True),
            sa.Column("bim_deliverable", sa.String(), nullable=True),
            sa.Column("bim_version", sa.String(), nullable=True),
            sa.Column("georeferencing", sa.Boolean(), nullable=True),
            sa.Column("cad_deliverable", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("upid"),
        )
        op.create_index("ix_scoping_forms_id", "scoping_forms", ["id"])

    if not _table_exists("scope_areas"):
        op.create_table(
            "scope_areas",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("scoping_form_id", sa.Integer(), nullable=False),
            sa.Column("sort_order", sa.Integer(), nullable=True),
            sa.Column("area_type", sa.String(), nullable=True),
            sa.Column("square_footage", sa.Float(), nullable=True),
            sa.Column("project_scope", sa.String(), nullable=True),
            sa.Column("lod", sa.String(), nullable=True),
            sa.Column("cad_deliverable", sa.String(), nullable=True),
            sa.Column("structural", sa.JSON(), nullable=True),
            sa.Column("mepf", sa.JSON(), nullable=True),
            sa.Column("act", sa.JSON(), nullable=True),
            sa.Column("below_floor", sa.JSON(), nullable=True),
            sa.ForeignKeyConstraint(["scoping_form_id"], ["scoping_forms.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_scope_areas_id", "scope_areas", ["id"])

    if not _table_exists("production_projects"):
        op.create_table(
            "production_projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("scoping_form_id", sa.Integer(), nullable=False),
            sa.Column("upid", sa.String(), nullable=False),
            sa.Column("current_stage", sa.String(), nullable=False),
            sa.Column("stage_data", sa.JSON(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["scoping_form_id"], ["scoping_forms.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("scoping_form_id"),
        )
        op.create_index("ix_production_projects_id", "production_projects", ["id"])


def downgrade() -> None:
    for table_name in ["production_projects", "scope_areas", "scoping_forms"]:
        if _table_exists(table_name):
            op.drop_table(table_name)
