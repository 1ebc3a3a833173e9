"""Initial migration: create match table

Revision ID: 001_initial_match
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial_match"
down_revision = None
branch_labels = None
depends_on = None

MATCH_STATES = ("scheduled", "live", "reported", "final", "disputed")

INDEXED_COLUMNS = (
    "tournament_id",
    "slot_a",
    "slot_b",
    "scheduled_at",
    "next_match_id_a",
    "next_match_id_b",
)


def upgrade() -> None:
    op.create_table(
        "match",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tournament_id", sa.String(), nullable=False),
        sa.Column("round", sa.Integer(), nullable=False),
        sa.Column("match_index", sa.Integer(), nullable=False),
        sa.Column("best_of", sa.Integer(), nullable=False),
        sa.Column("slot_a", sa.String(), nullable=True),
        sa.Column("slot_b", sa.String(), nullable=True),
        sa.Column("score_a", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("score_b", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "state",
            sa.Enum(*MATCH_STATES, name="matchstate", native_enum=False, length=16),
            nullable=False,
            server_default="scheduled",
        ),
        sa.Column("scheduled_at", sa.DateTime(), nullable=True),
        sa.Column("next_match_id_a", sa.String(), nullable=True),
        sa.Column("next_match_id_b", sa.String(), nullable=True),
        sa.Column("report_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in INDEXED_COLUMNS:
        op.create_index(f"ix_match_{column}", "match", [column])
    op.create_index("ix_match_tournament_round", "match", ["tournament_id", "round"])


def downgrade() -> None:
    op.drop_index("ix_match_tournament_round", table_name="match")
    for column in reversed(INDEXED_COLUMNS):
        op.drop_index(f"ix_match_{column}", table_name="match")
    op.drop_table("match")
