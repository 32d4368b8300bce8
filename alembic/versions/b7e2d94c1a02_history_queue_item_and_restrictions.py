"""key history by queue item, add release_restrictions

Revision ID: b7e2d94c1a02
Revises: a1c0f3e2b001
Create Date: 2026-10-16 15:00:00.000000

Hey future me - TWO changes:

1. history is now UNIQUE (queue_item_id, event_type) instead of
   (download_id, event_type). Torrent clients reuse the info-hash as download id,
   so grabbing the same torrent again (after its blocklist entry was removed)
   collided with the first attempt's history and silently skipped the failure
   pipeline. Old rows keep queue_item_id NULL, NULLs never collide.

   queue ids must never be reused for this to hold. SQLite hands out max(rowid)+1
   unless the table is AUTOINCREMENT, so the queue table is rebuilt with it.
   PostgreSQL sequences never go back, nothing to do there.

2. release_restrictions: must_contain / must_not_contain term lists per name,
   optionally limited to tagged titles.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "b7e2d94c1a02"
down_revision = "a1c0f3e2b001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Key history by queue item and create release_restrictions."""
    from sqlalchemy import inspect

    conn = op.get_bind()
    inspector = inspect(conn)

    history_columns = {col["name"] for col in inspector.get_columns("history")}
    if "queue_item_id" not in history_columns:
        with op.batch_alter_table("history", schema=None) as batch_op:
            batch_op.add_column(sa.Column("queue_item_id", sa.Integer(), nullable=True))
            batch_op.drop_constraint("uq_history_download_event", type_="unique")
            batch_op.create_unique_constraint(
                "uq_history_queue_item_event", ["queue_item_id", "event_type"]
            )
            batch_op.create_index("ix_history_download_id", ["download_id"])

    if conn.dialect.name == "sqlite":
        with op.batch_alter_table(
            "queue",
            schema=None,
            recreate="always",
            table_kwargs={"sqlite_autoincrement": True},
        ):
            pass

    if "release_restrictions" not in inspector.get_table_names():
        op.create_table(
            "release_restrictions",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("name", sa.String(100), nullable=False, unique=True),
            sa.Column("must_contain", sa.JSON(), nullable=False),
            sa.Column("must_not_contain", sa.JSON(), nullable=False),
            sa.Column("tags", sa.JSON(), nullable=False),
        )


def downgrade() -> None:
    """Drop release_restrictions and go back to (download_id, event_type).

    WARNING: fails if history holds the same download id twice for one event type,
    which is exactly what this revision allows. Clean those rows up first.
    """
    op.drop_table("release_restrictions")

    with op.batch_alter_table("history", schema=None) as batch_op:
        batch_op.drop_index("ix_history_download_id")
        batch_op.drop_constraint("uq_history_queue_item_event", type_="unique")
        batch_op.create_unique_constraint(
            "uq_history_download_event", ["download_id", "event_type"]
        )
        batch_op.drop_column("queue_item_id")
