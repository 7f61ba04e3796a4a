"""initial drip schema

Revision ID: 3b9e1c7d52a0
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b9e1c7d52a0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid_pk() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def _fk(name: str, target: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey(target, ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "companies",
        _uuid_pk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column(
            "notifications_enabled",
            sa.Boolean(),
            nullable=False,
            server_default=sa.true(),
        ),
        _created_at(),
    )
    op.create_table(
        "courses",
        _uuid_pk(),
        _fk("company_id", "companies.id"),
        sa.Column("title", sa.String(length=256), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "is_published", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        _created_at(),
    )
    op.create_index(
        "uq_courses_published_per_company",
        "courses",
        ["company_id"],
        unique=True,
        postgresql_where=sa.text("is_published"),
    )
    op.create_table(
        "modules",
        _uuid_pk(),
        _fk("course_id", "courses.id"),
        sa.Column("title", sa.String(length=256), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("video_url", sa.Text(), nullable=True),
        sa.Column("unlock_day", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
    )
    op.create_index("ix_modules_course_id", "modules", ["course_id"])
    op.create_table(
        "memberships",
        _uuid_pk(),
        _fk("company_id", "companies.id"),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status", sa.String(length=32), nullable=False, server_default="active"
        ),
        sa.Column("username", sa.String(length=128), nullable=True),
    )
    op.create_index("ix_memberships_status", "memberships", ["status"])
    op.create_table(
        "progress",
        _uuid_pk(),
        _fk("membership_id", "memberships.id"),
        _fk("module_id", "modules.id"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("membership_id", "module_id", name="uq_progress_pair"),
    )
    op.create_table(
        "notifications_log",
        _uuid_pk(),
        _fk("membership_id", "memberships.id"),
        _fk("module_id", "modules.id"),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "membership_id", "module_id", name="uq_notifications_log_pair"
        ),
    )


def downgrade() -> None:
    op.drop_table("notifications_log")
    op.drop_table("progress")
    op.drop_index("ix_memberships_status", table_name="memberships")
    op.drop_table("memberships")
    op.drop_index("ix_modules_course_id", table_name="modules")
    op.drop_table("modules")
    op.drop_index("uq_courses_published_per_company", table_name="courses")
    op.drop_table("courses")
    op.drop_table("companies")
