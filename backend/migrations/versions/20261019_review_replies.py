"""Review replies from profile owners

Revision ID: 20261019_review_replies
Revises: 20261019_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_review_replies"
down_revision = "20261019_initial"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "review_replies",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("review_id", sa.Integer(), nullable=False),
        sa.Column("author_id", sa.Integer(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["review_id"], ["reviews.id"]),
        sa.ForeignKeyConstraint(["author_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("review_id", name="uq_review_replies_review"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("review_replies", schema=None) as batch_op:
        batch_op.create_index("ix_review_replies_author_id", ["author_id"], unique=False)


def downgrade():
    with op.batch_alter_table("review_replies", schema=None) as batch_op:
        batch_op.drop_index("ix_review_replies_author_id")
    op.drop_table("review_replies")
