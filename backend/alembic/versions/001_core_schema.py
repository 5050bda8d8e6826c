"""Initial migration: tournaments, teams, entries, matches, scoring ledger, grants

Revision ID: 001_core_schema
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_core_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tournament",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="draft"),
        sa.Column("umpire_mode", sa.String(), nullable=False, server_default="ASSIGNED"),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "team",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("manager_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_team_manager_user_id", "team", ["manager_user_id"])

    op.create_table(
        "tournamententry",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("team_id", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_checked_in", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("day_token", sa.String(), nullable=True),
        sa.Column("last_checked_in_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["team_id"], ["team.id"]),
        sa.UniqueConstraint("tournament_id", "team_id", name="uq_entry_tournament_team"),
    )
    op.create_index("ix_tournamententry_tournament_id", "tournamententry", ["tournament_id"])
    op.create_index("ix_tournamententry_team_id", "tournamententry", ["team_id"])
    op.create_index(
        "uq_entry_active_day_token",
        "tournamententry",
        ["tournament_id", "day_token"],
        unique=True,
        sqlite_where=sa.text("is_active = 1 AND day_token IS NOT NULL"),
        postgresql_where=sa.text("is_active AND day_token IS NOT NULL"),
    )

    op.create_table(
        "match",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("parent_match_id", sa.Integer(), nullable=True),
        sa.Column("match_type", sa.String(), nullable=False, server_default="individual_match"),
        sa.Column("round_name", sa.String(), nullable=True),
        sa.Column("round_index", sa.Integer(), nullable=True),
        sa.Column("slot_index", sa.Integer(), nullable=True),
        sa.Column("match_number", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("court_number", sa.Integer(), nullable=True),
        sa.Column("umpire_id", sa.Integer(), nullable=True),
        sa.Column("next_match_id", sa.Integer(), nullable=True),
        sa.Column("winner_source_match_a", sa.Integer(), nullable=True),
        sa.Column("winner_source_match_b", sa.Integer(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["parent_match_id"], ["match.id"]),
        sa.ForeignKeyConstraint(["next_match_id"], ["match.id"]),
        sa.ForeignKeyConstraint(["winner_source_match_a"], ["match.id"]),
        sa.ForeignKeyConstraint(["winner_source_match_b"], ["match.id"]),
    )
    op.create_index("ix_match_tournament_id", "match", ["tournament_id"])
    op.create_index("ix_match_parent_match_id", "match", ["parent_match_id"])
    op.create_index("ix_match_next_match_id", "match", ["next_match_id"])
    op.create_index("ix_match_umpire_id", "match", ["umpire_id"])

    op.create_table(
        "matchscore",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("match_id", sa.Integer(), nullable=False),
        sa.Column("game_count_a", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("game_count_b", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("final_score", sa.String(), nullable=True),
        sa.Column("winner_id", sa.Integer(), nullable=True),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
        sa.Column("winning_reason", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["match_id"], ["match.id"]),
        sa.ForeignKeyConstraint(["winner_id"], ["team.id"]),
        sa.UniqueConstraint("match_id"),
    )

    op.create_table(
        "matchpair",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("match_id", sa.Integer(), nullable=False),
        sa.Column("pair_number", sa.Integer(), nullable=False),
        sa.Column("team_id", sa.Integer(), nullable=True),
        sa.Column("player_1_id", sa.Integer(), nullable=True),
        sa.Column("player_2_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["match_id"], ["match.id"]),
        sa.ForeignKeyConstraint(["team_id"], ["team.id"]),
        sa.UniqueConstraint("match_id", "pair_number", name="uq_matchpair_match_slot"),
    )
    op.create_index("ix_matchpair_match_id", "matchpair", ["match_id"])

    op.create_table(
        "point",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("match_id", sa.Integer(), nullable=False),
        sa.Column("point_type", sa.String(), nullable=False),
        sa.Column("client_key", sa.String(), nullable=False),
        sa.Column("is_undone", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("server_received_at", sa.DateTime(), nullable=False),
        sa.Column("undone_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["match_id"], ["match.id"]),
    )
    op.create_index("ix_point_match_received", "point", ["match_id", "server_received_at"])
    op.create_index(
        "uq_point_live_client_key",
        "point",
        ["match_id", "client_key"],
        unique=True,
        sqlite_where=sa.text("is_undone = 0"),
        postgresql_where=sa.text("NOT is_undone"),
    )

    op.create_table(
        "userpermission",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role_type", sa.String(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=True),
        sa.Column("team_id", sa.Integer(), nullable=True),
        sa.Column("match_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["team_id"], ["team.id"]),
        sa.ForeignKeyConstraint(["match_id"], ["match.id"]),
    )
    op.create_index("ix_userpermission_user_id", "userpermission", ["user_id"])
    op.create_index("ix_userpermission_tournament_id", "userpermission", ["tournament_id"])

    op.create_table(
        "scoreaudit",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("match_id", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=False),
        sa.Column("before_game_count_a", sa.Integer(), nullable=False),
        sa.Column("before_game_count_b", sa.Integer(), nullable=False),
        sa.Column("after_game_count_a", sa.Integer(), nullable=False),
        sa.Column("after_game_count_b", sa.Integer(), nullable=False),
        sa.Column("delta_game_count_a", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("delta_game_count_b", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("before_final_score", sa.String(), nullable=True),
        sa.Column("after_final_score", sa.String(), nullable=True),
        sa.Column("match_version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["match_id"], ["match.id"]),
    )
    op.create_index("ix_scoreaudit_match_id", "scoreaudit", ["match_id"])

    op.create_table(
        "notification",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=True),
        sa.Column("match_id", sa.Integer(), nullable=True),
        sa.Column("message", sa.String(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["match_id"], ["match.id"]),
    )
    op.create_index("ix_notification_user_id", "notification", ["user_id"])


def downgrade() -> None:
    op.drop_table("notification")
    op.drop_table("scoreaudit")
    op.drop_table("userpermission")
    op.drop_index("uq_point_live_client_key", table_name="point")
    op.drop_table("point")
    op.drop_table("matchpair")
    op.drop_table("matchscore")
    op.drop_table("match")
    op.drop_index("uq_entry_active_day_token", table_name="tournamententry")
    op.drop_table("tournamententry")
    op.drop_table("team")
    op.drop_table("tournament")
