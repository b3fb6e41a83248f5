"""
PropMan — Property Project Management
Project domain models.

Models:
    - Project: budgeted piece of work on a property, routed through approval
    - FundingDetail: one scheduled disbursement of the project budget
    - Attachment: document attached to a project at creation time
    - Task: unit of work on a property, optionally linked to a project

Money columns are Numeric(14, 2) and surface as ``decimal.Decimal``; nothing
in the funding path touches binary floating point.
"""

import uuid
from datetime import datetime, timezone

from propman.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def _money(value):
    return str(value) if value is not None else None


# ── Constants ────────────────────────────────────────────────────────────────

DRAFT = "draft"
PENDING = "pending"
PENDING_APPROVAL = "pending-approval"
APPROVED = "approved"
PLANNING = "planning"
IN_PROGRESS = "in-progress"
COMPLETED = "completed"
ON_HOLD = "on-hold"
REJECTED = "rejected"

PROJECT_STATUSES = frozenset({
    DRAFT, PENDING, PENDING_APPROVAL, APPROVED, PLANNING,
    IN_PROGRESS, COMPLETED, ON_HOLD, REJECTED,
})

# Statuses a project may be created in
CREATABLE_STATUSES = frozenset({DRAFT, PENDING, PENDING_APPROVAL})

PROJECT_PRIORITIES = frozenset({"low", "medium", "high"})
APPROVAL_TYPES = frozenset({"single", "group"})

FUNDING_TYPES = frozenset({"deposit", "progress", "final", "budget"})
PAID = "paid"
UNPAID = "unpaid"
PAYMENT_STATUSES = frozenset({PAID, UNPAID})

TASK_STATUSES = frozenset({"pending", "in-progress", "completed", "cancelled"})

# Lifecycle moves outside the approval decision itself.  Approval outcomes
# (approved / rejected / requested-changes) live in APPROVAL_TRANSITIONS.
# ``"to": None`` means the target is computed — resume returns to the status
# recorded when the project was put on hold.
PROJECT_TRANSITIONS = {
    "submit_for_approval": {"from": [DRAFT, PENDING, REJECTED], "to": PENDING_APPROVAL},
    "start_planning": {"from": [APPROVED], "to": PLANNING},
    "start_work": {"from": [APPROVED, PLANNING], "to": IN_PROGRESS},
    "complete": {"from": [IN_PROGRESS], "to": COMPLETED},
    "hold": {"from": [APPROVED, PLANNING, IN_PROGRESS], "to": ON_HOLD},
    "resume": {"from": [ON_HOLD], "to": None},
}


# ── Project ──────────────────────────────────────────────────────────────────


class Project(db.Model):
    """
    Central entity of the approval workflow.

    Business rules:
    - approval_level is the MINIMUM approver level (single mode); in group
      mode the assigned group's level must reach it.
    - Exactly one of assigned_approver_id / assigned_approval_group_id is set
      at creation, chosen by approval_type.
    - Sum of funding_details.amount never exceeds budget on any schedule write.
    - Status changes go through the workflow engine only.
    - ``version`` is the optimistic-lock counter; a concurrent writer that
      commits first makes our UPDATE match zero rows (StaleDataError).
    """

    __tablename__ = "projects"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    property_id = db.Column(
        db.String(36),
        db.ForeignKey("properties.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    category = db.Column(db.String(100), default="")
    budget = db.Column(db.Numeric(14, 2, asdecimal=True), nullable=False)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    status = db.Column(
        db.String(30),
        nullable=False,
        default=PENDING,
        index=True,
        comment="draft | pending | pending-approval | approved | planning | in-progress | completed | on-hold | rejected",
    )
    status_before_hold = db.Column(
        db.String(30),
        nullable=True,
        comment="Status to return to when an on-hold project resumes",
    )
    priority = db.Column(db.String(20), nullable=False, default="medium", comment="low | medium | high")

    # Approval routing
    approval_type = db.Column(db.String(10), nullable=False, default="single", comment="single | group")
    approval_level = db.Column(db.Integer, nullable=False, default=1, comment="1 | 2 | 3")
    assigned_approver_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    assigned_approval_group_id = db.Column(
        db.String(36),
        db.ForeignKey("approval_groups.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_by = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __mapper_args__ = {"version_id_col": version}

    # ── Relationships ────────────────────────────────────────────────────
    funding_details = db.relationship(
        "FundingDetail",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="FundingDetail.date",
    )
    attachments = db.relationship(
        "Attachment",
        back_populates="project",
        cascade="all, delete-orphan",
    )
    tasks = db.relationship("Task", back_populates="project", lazy="select")
    property = db.relationship("Property", lazy="joined")

    def to_dict(self, include_children=True):
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "property_id": self.property_id,
            "category": self.category,
            "budget": _money(self.budget),
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "status": self.status,
            "status_before_hold": self.status_before_hold,
            "priority": self.priority,
            "approval_type": self.approval_type,
            "approval_level": self.approval_level,
            "assigned_approver_id": self.assigned_approver_id,
            "assigned_approval_group_id": self.assigned_approval_group_id,
            "created_by": self.created_by,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_children:
            data["funding_details"] = [f.to_dict() for f in self.funding_details]
            data["attachments"] = [a.to_dict() for a in self.attachments]
        return data

    def __repr__(self):
        return f"<Project {self.id} {self.name!r} [{self.status}]>"


# ── FundingDetail ────────────────────────────────────────────────────────────


class FundingDetail(db.Model):
    """
    One scheduled payment against a project's budget.

    paid_date / paid_by are NULL while unpaid and are set together when the
    entry is marked paid. Marking unpaid again clears both.
    """

    __tablename__ = "funding_details"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36),
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type = db.Column(db.String(20), nullable=False, default="deposit", comment="deposit | progress | final | budget")
    amount = db.Column(db.Numeric(14, 2, asdecimal=True), nullable=False)
    date = db.Column(db.Date, nullable=False, comment="Due date")
    payment_status = db.Column(db.String(10), nullable=False, default=UNPAID, comment="paid | unpaid")
    paid_date = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_by = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    project = db.relationship("Project", back_populates="funding_details")

    @property
    def is_paid(self):
        return self.payment_status == PAID

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "type": self.type,
            "amount": _money(self.amount),
            "date": self.date.isoformat() if self.date else None,
            "payment_status": self.payment_status,
            "paid_date": self.paid_date.isoformat() if self.paid_date else None,
            "paid_by": self.paid_by,
        }

    def __repr__(self):
        return f"<FundingDetail {self.id} {self.type} {self.amount} [{self.payment_status}]>"


# ── Attachment ───────────────────────────────────────────────────────────────


class Attachment(db.Model):
    """File reference attached to a project (estimate, invoice, quote, contract...)."""

    __tablename__ = "attachments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36),
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    type_id = db.Column(db.String(36), nullable=True, comment="Attachment type lookup id")
    url = db.Column(db.String(1000), default="")
    uploaded_by = db.Column(db.String(36), nullable=True)
    uploaded_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    project = db.relationship("Project", back_populates="attachments")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "type_id": self.type_id,
            "url": self.url,
            "uploaded_by": self.uploaded_by,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }


# ── Task ─────────────────────────────────────────────────────────────────────


class Task(db.Model):
    """
    Unit of work on a property. project_id is a nullable weak reference —
    standalone property tasks are allowed. The workflow core only reads
    tasks to compute project progress.
    """

    __tablename__ = "tasks"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    property_id = db.Column(
        db.String(36),
        db.ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    project_id = db.Column(
        db.String(36),
        db.ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    assignee_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="pending", comment="pending | in-progress | completed | cancelled")
    priority = db.Column(db.String(20), nullable=False, default="medium")
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    project = db.relationship("Project", back_populates="tasks")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "property_id": self.property_id,
            "project_id": self.project_id,
            "assignee_id": self.assignee_id,
            "status": self.status,
            "priority": self.priority,
        }
