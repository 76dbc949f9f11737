"""Create snippets and snippet_tags tables

Revision ID: 001
Revises: None
Create Date: 2026-10-18 00:00:00.000000+00:00

What:  The snippet store: one row per snippet plus its ordered tag rows.
How:   PostgreSQL UUID keys with gen_random_uuid(), TIMESTAMP WITH TIME ZONE
       defaulting to now(), and ON DELETE CASCADE from tags to snippets.

Rollback: downgrade() drops both tables (all snippets lost).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "snippets",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("owner_id", sa.String(255), nullable=False,
                  comment="Identity-provider subject of the owner"),
        sa.Column("owner_email", sa.String(320), nullable=True,
                  comment="Owner email at last write; display only"),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("language", sa.String(50), nullable=False,
                  comment="Lower-cased language name"),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_snippets"),
        sa.CheckConstraint("length(trim(title)) > 0", name="ck_snippets_title_not_blank"),
        sa.CheckConstraint("length(trim(language)) > 0", name="ck_snippets_language_not_blank"),
    )

    op.create_index("idx_snippets_owner_created", "snippets",
                    ["owner_id", sa.text("created_at DESC")])
    op.create_index("idx_snippets_owner_title", "snippets", ["owner_id", "title"])
    op.create_index("idx_snippets_owner_language", "snippets", ["owner_id", "language"])
    op.create_index("idx_snippets_public_created", "snippets",
                    ["is_public", sa.text("created_at DESC")])
    op.create_index("idx_snippets_language", "snippets", ["language"])
    op.create_index("idx_snippets_title", "snippets", ["title"])

    op.create_table(
        "snippet_tags",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("snippet_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("tag", sa.String(100), nullable=False, comment="Lower-cased tag"),
        sa.PrimaryKeyConstraint("id", name="pk_snippet_tags"),
        sa.ForeignKeyConstraint(
            ["snippet_id"], ["snippets.id"],
            name="fk_snippet_tags_snippet_id",
            ondelete="CASCADE",
        ),
    )
    op.create_index("idx_snippet_tags_tag", "snippet_tags", ["tag"])
    op.create_index("idx_snippet_tags_snippet_position", "snippet_tags",
                    ["snippet_id", "position"])


def downgrade() -> None:
    op.drop_index("idx_snippet_tags_snippet_position", table_name="snippet_tags")
    op.drop_index("idx_snippet_tags_tag", table_name="snippet_tags")
    op.drop_table("snippet_tags")

    for name in (
        "idx_snippets_title",
        "idx_snippets_language",
        "idx_snippets_public_created",
        "idx_snippets_owner_language",
        "idx_snippets_owner_title",
        "idx_snippets_owner_created",
    ):
        op.drop_index(name, table_name="snippets")
    op.drop_table("snippets")
