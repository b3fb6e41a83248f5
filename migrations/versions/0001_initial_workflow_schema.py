"""initial_workflow_schema

Create users, properties, approval_groups, projects, funding_details,
attachments, tasks and the append-only approval_history table.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

_MONEY = sa.Numeric(precision=14, scale=2)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("approval_level", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="user"),
            sa.Column("permissions", sa.JSON(), nullable=False),
            sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email", name="uq_users_email"),
        )

    if "properties" not in existing_tables:
        op.create_table(
            "properties",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("address", sa.String(length=500), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )

    if "approval_groups" not in existing_tables:
        op.create_table(
            "approval_groups",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("level", sa.Integer(), nullable=False),
            sa.Column("user_ids", sa.JSON(), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_approval_groups_level", "approval_groups", ["level"])

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("property_id", sa.String(length=36), nullable=False),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("budget", _MONEY, nullable=False),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
            sa.Column("status_before_hold", sa.String(length=30), nullable=True),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="medium"),
            sa.Column("approval_type", sa.String(length=10), nullable=False, server_default="single"),
            sa.Column("approval_level", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("assigned_approver_id", sa.String(length=36), nullable=True),
            sa.Column("assigned_approval_group_id", sa.String(length=36), nullable=True),
            sa.Column("created_by", sa.String(length=36), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            *_timestamps(),
            sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["assigned_approver_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["assigned_approval_group_id"], ["approval_groups.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_projects_property_id", "projects", ["property_id"])
        op.create_index("ix_projects_status", "projects", ["status"])

    if "funding_details" not in existing_tables:
        op.create_table(
            "funding_details",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("project_id", sa.String(length=36), nullable=False),
            sa.Column("type", sa.String(length=20), nullable=False, server_default="deposit"),
            sa.Column("amount", _MONEY, nullable=False),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("payment_status", sa.String(length=10), nullable=False, server_default="unpaid"),
            sa.Column("paid_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("paid_by", sa.String(length=36), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["paid_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_funding_details_project_id", "funding_details", ["project_id"])

    if "attachments" not in existing_tables:
        op.create_table(
            "attachments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("project_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("type_id", sa.String(length=36), nullable=True),
            sa.Column("url", sa.String(length=1000), nullable=True),
            sa.Column("uploaded_by", sa.String(length=36), nullable=True),
            sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_attachments_project_id", "attachments", ["project_id"])

    if "tasks" not in existing_tables:
        op.create_table(
            "tasks",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("property_id", sa.String(length=36), nullable=False),
            sa.Column("project_id", sa.String(length=36), nullable=True),
            sa.Column("assignee_id", sa.String(length=36), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="medium"),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["assignee_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_tasks_property_id", "tasks", ["property_id"])
        op.create_index("ix_tasks_project_id", "tasks", ["project_id"])

    if "approval_history" not in existing_tables:
        op.create_table(
            "approval_history",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("project_id", sa.String(length=36), nullable=False),
            sa.Column("approver_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=30), nullable=False),
            sa.Column("comments", sa.Text(), nullable=False, server_default=""),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["approver_id"], ["users.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_approval_history_project_id", "approval_history", ["project_id"])
        op.create_index("ix_approval_history_approver_id", "approval_history", ["approver_id"])
        op.create_index("ix_approval_history_created_at", "approval_history", ["created_at"])


def downgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    for table in (
        "approval_history",
        "tasks",
        "attachments",
        "funding_details",
        "projects",
        "approval_groups",
        "properties",
        "users",
    ):
        if table in existing_tables:
            op.drop_table(table)
