"""
Approval workflow — ApprovalHistory model.

Every approve / reject / request-changes decision on a project creates a new
record. Records are never mutated or deleted, so the history is the audit
trail of who moved a project out of (or back into) pending-approval and why.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import event as _sa_event

from propman.models import db
from propman.models.project import APPROVED, PENDING_APPROVAL, REJECTED

# ── Constants ─────────────────────────────────────────────────────────────────

APPROVAL_ACTIONS = frozenset({"approved", "rejected", "requested-changes"})

# Decision outcome -> resulting project status.  requested-changes keeps the
# project in pending-approval but is still a recorded, status-writing move.
APPROVAL_TRANSITIONS = {
    "approved": {"from": [PENDING_APPROVAL], "to": APPROVED},
    "rejected": {"from": [PENDING_APPROVAL], "to": REJECTED},
    "requested-changes": {"from": [PENDING_APPROVAL], "to": PENDING_APPROVAL},
}


class ApprovalHistory(db.Model):
    """
    Immutable approval decision for a project.

    Business rules:
    - Records are NEVER deleted or updated — append-only log.
    - The most recent record for a project matches its last approval decision.
    - comments may be empty only when action == "approved".
    """

    __tablename__ = "approval_history"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = db.Column(
        db.String(36),
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    approver_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    action = db.Column(
        db.String(30),
        nullable=False,
        comment="approved | rejected | requested-changes",
    )
    comments = db.Column(db.Text, nullable=False, default="")
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "approver_id": self.approver_id,
            "action": self.action,
            "comments": self.comments,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ApprovalHistory {self.id} {self.action} project={self.project_id}>"


@_sa_event.listens_for(ApprovalHistory, "before_update")
def _block_history_update(mapper, connection, target) -> None:  # noqa: ANN001
    """Refuse any ORM UPDATE of an approval history row."""
    from propman.core.exceptions import InvalidStateError

    raise InvalidStateError("ApprovalHistory", "update", target.action, "approval history is append-only")


@_sa_event.listens_for(ApprovalHistory, "before_delete")
def _block_history_delete(mapper, connection, target) -> None:  # noqa: ANN001
    """Refuse any ORM DELETE of an approval history row."""
    from propman.core.exceptions import InvalidStateError

    raise InvalidStateError("ApprovalHistory", "delete", target.action, "approval history is append-only")
