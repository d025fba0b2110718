"""Initial schema: players, tournaments, enrollments, groups, rounds, matches, game results

Revision ID: 001_initial
Revises:
Create Date: 2026-10-01 00:00:00.000000

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
        "player",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("xp", sa.Integer(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("matches_played", sa.Integer(), nullable=False),
        sa.Column("matches_won", sa.Integer(), nullable=False),
        sa.Column("current_streak", sa.Integer(), nullable=False),
        sa.Column("best_streak", sa.Integer(), nullable=False),
        sa.Column("tournament_matches_played", sa.Integer(), nullable=False),
        sa.Column("tournament_matches_won", sa.Integer(), nullable=False),
        sa.Column("tournament_current_streak", sa.Integer(), nullable=False),
        sa.Column("tournament_best_streak", sa.Integer(), nullable=False),
        sa.Column("tournaments_played", sa.Integer(), nullable=False),
        sa.Column("tournaments_won", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_player_name", "player", ["name"])

    op.create_table(
        "tournament",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("format", sa.String(), nullable=False),
        sa.Column("match_type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("base_elo_multiplier", sa.Integer(), nullable=False),
        sa.Column("finals_elo_multiplier", sa.Integer(), nullable=False),
        sa.Column("default_best_of", sa.Integer(), nullable=False),
        sa.Column("group_stage_best_of", sa.Integer(), nullable=True),
        sa.Column("early_rounds_best_of", sa.Integer(), nullable=True),
        sa.Column("semifinals_best_of", sa.Integer(), nullable=True),
        sa.Column("finals_best_of", sa.Integer(), nullable=True),
        sa.Column("swiss_rounds", sa.Integer(), nullable=True),
        sa.Column("group_count", sa.Integer(), nullable=True),
        sa.Column("advance_per_group", sa.Integer(), nullable=True),
        sa.Column("grand_final_reset", sa.Boolean(), nullable=False),
        sa.Column("current_round", sa.Integer(), nullable=True),
        sa.Column("total_rounds", sa.Integer(), nullable=True),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "tournamentgroup",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.UniqueConstraint("tournament_id", "name", name="uq_group_tournament_name"),
    )
    op.create_index("ix_tournamentgroup_tournament_id", "tournamentgroup", ["tournament_id"])

    op.create_table(
        "enrollment",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("partner_id", sa.Integer(), nullable=True),
        sa.Column("seed", sa.Integer(), nullable=True),
        sa.Column("seed_overridden", sa.Boolean(), nullable=False),
        sa.Column("swiss_points", sa.Integer(), nullable=False),
        sa.Column("swiss_opponents", sa.JSON(), nullable=False),
        sa.Column("swiss_bye_count", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=True),
        sa.Column("group_points", sa.Integer(), nullable=False),
        sa.Column("group_wins", sa.Integer(), nullable=False),
        sa.Column("group_losses", sa.Integer(), nullable=False),
        sa.Column("group_point_diff", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("eliminated_at", sa.DateTime(), nullable=True),
        sa.Column("final_placement", sa.Integer(), nullable=True),
        sa.Column("enrolled_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["player_id"], ["player.id"]),
        sa.ForeignKeyConstraint(["partner_id"], ["player.id"]),
        sa.ForeignKeyConstraint(["group_id"], ["tournamentgroup.id"]),
        sa.UniqueConstraint("tournament_id", "player_id", name="uq_enrollment_tournament_player"),
    )
    op.create_index("ix_enrollment_tournament_id", "enrollment", ["tournament_id"])

    op.create_table(
        "round",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("bracket_segment", sa.String(), nullable=False),
        sa.Column("elo_multiplier", sa.Integer(), nullable=False),
        sa.Column("best_of", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.UniqueConstraint(
            "tournament_id", "round_number", "bracket_segment", name="uq_round_tournament_number_segment"
        ),
    )
    op.create_index("ix_round_tournament_id", "round", ["tournament_id"])

    op.create_table(
        "tournamentmatch",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("round_id", sa.Integer(), nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("bracket_segment", sa.String(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=True),
        sa.Column("is_bracket_reset", sa.Boolean(), nullable=False),
        sa.Column("participant_a_id", sa.Integer(), nullable=True),
        sa.Column("participant_b_id", sa.Integer(), nullable=True),
        sa.Column("source_match_a_id", sa.Integer(), nullable=True),
        sa.Column("source_match_b_id", sa.Integer(), nullable=True),
        sa.Column("source_a_role", sa.String(), nullable=True),
        sa.Column("source_b_role", sa.String(), nullable=True),
        sa.Column("winner_id", sa.Integer(), nullable=True),
        sa.Column("scores", sa.JSON(), nullable=True),
        sa.Column("series_score", sa.String(), nullable=True),
        sa.Column("best_of", sa.Integer(), nullable=True),
        sa.Column("elo_multiplier", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("is_walkover", sa.Boolean(), nullable=False),
        sa.Column("walkover_reason", sa.String(), nullable=True),
        sa.Column("is_next_match", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("played_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["round_id"], ["round.id"]),
        sa.ForeignKeyConstraint(["group_id"], ["tournamentgroup.id"]),
        sa.ForeignKeyConstraint(["participant_a_id"], ["enrollment.id"]),
        sa.ForeignKeyConstraint(["participant_b_id"], ["enrollment.id"]),
        sa.ForeignKeyConstraint(["source_match_a_id"], ["tournamentmatch.id"]),
        sa.ForeignKeyConstraint(["source_match_b_id"], ["tournamentmatch.id"]),
        sa.ForeignKeyConstraint(["winner_id"], ["enrollment.id"]),
        sa.UniqueConstraint("tournament_id", "round_id", "position", name="uq_tournament_match_round_position"),
    )
    op.create_index("ix_tournamentmatch_tournament_id", "tournamentmatch", ["tournament_id"])

    op.create_table(
        "gameresult",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("winner_id", sa.Integer(), nullable=False),
        sa.Column("loser_id", sa.Integer(), nullable=False),
        sa.Column("winner_partner_id", sa.Integer(), nullable=True),
        sa.Column("loser_partner_id", sa.Integer(), nullable=True),
        sa.Column("winner_score", sa.Integer(), nullable=False),
        sa.Column("loser_score", sa.Integer(), nullable=False),
        sa.Column("rating_change", sa.Integer(), nullable=False),
        sa.Column("tournament_match_id", sa.Integer(), nullable=True),
        sa.Column("game_number", sa.Integer(), nullable=True),
        sa.Column("logged_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["winner_id"], ["player.id"]),
        sa.ForeignKeyConstraint(["loser_id"], ["player.id"]),
        sa.ForeignKeyConstraint(["winner_partner_id"], ["player.id"]),
        sa.ForeignKeyConstraint(["loser_partner_id"], ["player.id"]),
        sa.ForeignKeyConstraint(["tournament_match_id"], ["tournamentmatch.id"]),
    )
    op.create_index("ix_gameresult_tournament_match_id", "gameresult", ["tournament_match_id"])


def downgrade() -> None:
    op.drop_index("ix_gameresult_tournament_match_id", table_name="gameresult")
    op.drop_table("gameresult")
    op.drop_index("ix_tournamentmatch_tournament_id", table_name="tournamentmatch")
    op.drop_table("tournamentmatch")
    op.drop_index("ix_round_tournament_id", table_name="round")
    op.drop_table("round")
    op.drop_index("ix_enrollment_tournament_id", table_name="enrollment")
    op.drop_table("enrollment")
    op.drop_index("ix_tournamentgroup_tournament_id", table_name="tournamentgroup")
    op.drop_table("tournamentgroup")
    op.drop_table("tournament")
    op.drop_index("ix_player_name", table_name="player")
    op.drop_table("player")
