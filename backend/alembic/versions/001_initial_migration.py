"""Initial migration: create tournament, stage, match, prediction tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tournament",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("game", sa.String(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "stage",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("format", sa.String(), nullable=False),
        sa.Column("match_format", sa.String(), nullable=False),
        sa.Column("final_format", sa.String(), nullable=True),
        sa.Column("teams", sa.JSON(), nullable=False),
        sa.Column("qualify_at", sa.Integer(), nullable=True),
        sa.Column("eliminate_at", sa.Integer(), nullable=True),
        sa.Column("current_round", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["tournament_id"],
            ["tournament.id"],
        ),
    )

    # Bracket and Swiss matches share one table; edges point at match_code
    op.create_table(
        "match",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("stage_id", sa.Integer(), nullable=False),
        sa.Column("match_code", sa.String(), nullable=False),
        sa.Column("team_a", sa.String(), nullable=False),
        sa.Column("team_b", sa.String(), nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("bracket_side", sa.String(), nullable=True),
        sa.Column("bracket_position", sa.Integer(), nullable=True),
        sa.Column("next_match_code", sa.String(), nullable=True),
        sa.Column("next_match_slot", sa.String(), nullable=True),
        sa.Column("next_loser_match_code", sa.String(), nullable=True),
        sa.Column("next_loser_match_slot", sa.String(), nullable=True),
        sa.Column("is_bye", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("result_json", sa.JSON(), nullable=True),
        sa.Column("match_format", sa.String(), nullable=False),
        sa.Column("played_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["stage_id"],
            ["stage.id"],
        ),
        sa.UniqueConstraint("stage_id", "match_code", name="uq_match_stage_code"),
    )

    op.create_table(
        "prediction",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("match_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("predicted_winner", sa.String(), nullable=False),
        sa.Column("predicted_score", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["match_id"],
            ["match.id"],
        ),
        sa.UniqueConstraint("match_id", "user_id", name="uq_prediction_match_user"),
    )


def downgrade() -> None:
    op.drop_table("prediction")
    op.drop_table("match")
    op.drop_table("stage")
    op.drop_table("tournament")
