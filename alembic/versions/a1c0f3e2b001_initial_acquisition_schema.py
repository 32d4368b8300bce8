"""initial acquisition schema

Revision ID: a1c0f3e2b001
Revises:
Create Date: 2026-10-16 09:00:00.000000

Hey future me - the WHOLE acquisition core in one go:

- quality_profiles / custom_formats / delay_profiles  configuration
- pending_releases   deferred candidates, UNIQUE target_key ("media:episode")
- queue              grabbed downloads (state machine)
- history            append-only, UNIQUE (download_id, event_type) so replays don't duplicate
- blocklist          UNIQUE fingerprint
- integration_status circuit breaker per indexer / download client

target_key exists because SQLite treats NULLs as distinct in UNIQUE constraints -
(media_id, NULL episode) would not be unique otherwise!
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1c0f3e2b001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "quality_profiles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("cutoff_quality_id", sa.Integer(), nullable=False),
        sa.Column("upgrade_allowed", sa.Boolean(), nullable=False),
        sa.Column("min_format_score", sa.Integer(), nullable=False),
        sa.Column("cutoff_format_score", sa.Integer(), nullable=False),
        sa.Column("format_scores", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "custom_formats",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("specifications", sa.JSON(), nullable=False),
    )

    op.create_table(
        "delay_profiles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("enable_usenet", sa.Boolean(), nullable=False),
        sa.Column("enable_torrent", sa.Boolean(), nullable=False),
        sa.Column("usenet_delay_minutes", sa.Integer(), nullable=False),
        sa.Column("torrent_delay_minutes", sa.Integer(), nullable=False),
        sa.Column("bypass_if_highest_quality", sa.Boolean(), nullable=False),
        sa.Column("bypass_if_above_custom_format_score", sa.Boolean(), nullable=False),
        sa.Column("minimum_custom_format_score", sa.Integer(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False),
    )
    op.create_index("ix_delay_profiles_sort_order", "delay_profiles", ["sort_order"])

    op.create_table(
        "pending_releases",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("target_key", sa.String(64), nullable=False, unique=True),
        sa.Column("media_id", sa.Integer(), nullable=False),
        sa.Column("episode_id", sa.Integer(), nullable=True),
        sa.Column("candidate", sa.JSON(), nullable=False),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("release_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
    )
    op.create_index("ix_pending_releases_media_id", "pending_releases", ["media_id"])
    op.create_index("ix_pending_releases_release_at", "pending_releases", ["release_at"])

    op.create_table(
        "queue",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("media_id", sa.Integer(), nullable=False),
        sa.Column("episode_id", sa.Integer(), nullable=True),
        sa.Column("candidate", sa.JSON(), nullable=False),
        sa.Column("download_client_id", sa.Integer(), nullable=False),
        sa.Column("download_id", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("progress", sa.Float(), nullable=False),
        sa.Column("size_remaining", sa.BigInteger(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("failure_stage", sa.String(20), nullable=True),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_queue_download_client_id", "queue", ["download_client_id"])
    op.create_index("ix_queue_media_episode", "queue", ["media_id", "episode_id"])
    op.create_index("ix_queue_status", "queue", ["status"])

    op.create_table(
        "history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("media_id", sa.Integer(), nullable=False),
        sa.Column("episode_id", sa.Integer(), nullable=True),
        sa.Column("event_type", sa.String(30), nullable=False),
        sa.Column("source_title", sa.String(512), nullable=False),
        sa.Column("quality_id", sa.Integer(), nullable=False),
        sa.Column("custom_format_score", sa.Integer(), nullable=False),
        sa.Column("download_id", sa.String(255), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        # SQLite can't ALTER TABLE ADD CONSTRAINT - define it inline
        sa.UniqueConstraint("download_id", "event_type", name="uq_history_download_event"),
    )
    op.create_index("ix_history_media_episode", "history", ["media_id", "episode_id"])
    op.create_index("ix_history_date", "history", ["date"])

    op.create_table(
        "blocklist",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("fingerprint", sa.String(64), nullable=False, unique=True),
        sa.Column("media_id", sa.Integer(), nullable=False),
        sa.Column("episode_id", sa.Integer(), nullable=True),
        sa.Column("source_title", sa.String(512), nullable=False),
        sa.Column("indexer_id", sa.Integer(), nullable=False),
        sa.Column("protocol", sa.String(20), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_blocklist_media_id", "blocklist", ["media_id"])

    op.create_table(
        "integration_status",
        sa.Column("integration_key", sa.String(64), primary_key=True),
        sa.Column("initial_failure_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("most_recent_failure_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("escalation_level", sa.Integer(), nullable=False),
        sa.Column("disabled_till", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("integration_status")
    op.drop_index("ix_blocklist_media_id", table_name="blocklist")
    op.drop_table("blocklist")
    op.drop_index("ix_history_date", table_name="history")
    op.drop_index("ix_history_media_episode", table_name="history")
    op.drop_table("history")
    op.drop_index("ix_queue_status", table_name="queue")
    op.drop_index("ix_queue_media_episode", table_name="queue")
    op.drop_index("ix_queue_download_client_id", table_name="queue")
    op.drop_table("queue")
    op.drop_index("ix_pending_releases_release_at", table_name="pending_releases")
    op.drop_index("ix_pending_releases_media_id", table_name="pending_releases")
    op.drop_table("pending_releases")
    op.drop_index("ix_delay_profiles_sort_order", table_name="delay_profiles")
    op.drop_table("delay_profiles")
    op.drop_table("custom_formats")
    op.drop_table("quality_profiles")
