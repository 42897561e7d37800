"""
001 — Initial schema: behavior_session table

Revision ID: 001
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSON

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS behavior_risk")

    op.create_table(
        "behavior_session",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("session_id", sa.Integer, nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),

        sa.Column("touch_data", JSON, nullable=False, server_default=sa.text("'[]'::json")),
        sa.Column("motion_data", JSON, nullable=False, server_default=sa.text("'[]'::json")),
        sa.Column("context_data", JSON, nullable=False, server_default=sa.text("'{}'::json")),
        sa.Column("location_data", JSON, nullable=True),
        sa.Column("timing_data", JSON, nullable=False, server_default=sa.text("'{}'::json")),

        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),

        schema="behavior_risk",
    )

    op.create_index("ix_behavior_session_session_id", "behavior_session", ["session_id"], schema="behavior_risk")
    op.create_index("ix_behavior_session_recorded_at", "behavior_session", ["recorded_at"], schema="behavior_risk")


def downgrade() -> None:
    op.drop_table("behavior_session", schema="behavior_risk")
