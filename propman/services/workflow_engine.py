"""
Workflow Engine — the only mutation entry point for projects, their funding
schedules and approval history.

Every public operation on an existing project:
  1. takes the per-project lock (same-process writers are serialised),
  2. resolves and validates everything BEFORE touching an ORM attribute,
  3. mutates the ORM objects,
  4. commits once through the persistence gateway.

Any exception after step 1 rolls the session back before it propagates, so a
project's status and its approval-history append land together or not at all.
The ``version`` column catches writers in other processes (ConflictError).

Usage:
    from propman.services.workflow_engine import submit_approval

    project, record = submit_approval(project_id, user_id, "rejected", "budget too high")
"""

import logging
import threading
import uuid
import weakref
from contextlib import contextmanager
from datetime import datetime, timezone

from propman.core.exceptions import (
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from propman.models import db
from propman.models.approval import ApprovalHistory
from propman.models.directory import APPROVAL_LEVELS
from propman.models.project import (
    APPROVAL_TYPES,
    COMPLETED,
    CREATABLE_STATUSES,
    FUNDING_TYPES,
    ON_HOLD,
    PAID,
    PAYMENT_STATUSES,
    PENDING,
    PENDING_APPROVAL,
    PROJECT_PRIORITIES,
    PROJECT_TRANSITIONS,
    UNPAID,
    Attachment,
    FundingDetail,
    Project,
)
from propman.services import approval_policy, funding_ledger
from propman.services.directory_service import get_approval_group, get_property, get_user
from propman.services.persistence import gateway
from propman.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

# Default minimum approver level per approval type
DEFAULT_APPROVAL_LEVEL = {"single": 1, "group": 2}


# ── Per-project locking ────────────────────────────────────────────────────────

# Entries disappear once no writer holds a reference to the lock
_locks: "weakref.WeakValueDictionary[str, threading.RLock]" = weakref.WeakValueDictionary()
_locks_guard = threading.Lock()


def project_lock(project_id) -> threading.RLock:
    """Return the lock serialising writes to *project_id* in this process."""
    with _locks_guard:
        lock = _locks.get(project_id)
        if lock is None:
            lock = threading.RLock()
            _locks[project_id] = lock
        return lock


@contextmanager
def _project_write(project_id):
    with project_lock(project_id):
        try:
            yield
        except Exception:
            gateway.rollback()
            raise


# ── Private helpers ────────────────────────────────────────────────────────────


def _now():
    return datetime.now(timezone.utc)


def _load_project(project_id) -> Project:
    project = db.session.get(Project, project_id) if project_id else None
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def _load_user(user_id):
    user = get_user(user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


def _load_active_user(user_id, project_id=None):
    user = _load_user(user_id)
    if user.is_archived:
        raise UnauthorizedError(
            f"User {user_id} is archived and cannot act on projects",
            user_id=user_id, project_id=project_id,
        )
    return user


def _load_funding_entry(project: Project, funding_id) -> FundingDetail:
    entry = db.session.get(FundingDetail, funding_id) if funding_id else None
    if entry is None or entry.project_id != project.id:
        raise NotFoundError(resource="FundingDetail", resource_id=funding_id)
    return entry


def _append_history(project: Project, user, action: str, comments: str, now) -> ApprovalHistory:
    record = ApprovalHistory(
        project_id=project.id,
        approver_id=user.id,
        action=action,
        comments=comments,
        created_at=now,
    )
    return gateway.save(record)


def _entry_view(entry: FundingDetail) -> dict:
    return {"amount": entry.amount, "date": entry.date, "payment_status": entry.payment_status}


def _parse_paid_date(value, now):
    if not value:
        return now
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _normalize_funding(data: dict, index: int, errors: dict, now) -> dict:
    """Parse one funding payload into column values; collect field errors."""
    if not isinstance(data, dict):
        errors[f"funding_{index}"] = "Funding entry must be an object"
        return {"amount": None, "date": None}

    ftype = data.get("type") or "deposit"
    if ftype not in FUNDING_TYPES:
        errors[f"funding_{index}_type"] = f"Type must be one of: {', '.join(sorted(FUNDING_TYPES))}"

    try:
        due = parse_date_input(data.get("date"))
    except ValueError:
        due = None
        errors[f"funding_{index}_date"] = "Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY."

    status = data.get("payment_status") or UNPAID
    paid_by = None
    paid_date = None
    if status not in PAYMENT_STATUSES:
        errors[f"funding_{index}_payment_status"] = "Payment status must be paid or unpaid"
    elif status == PAID:
        paid_by = data.get("paid_by")
        if not paid_by:
            errors[f"funding_{index}_paid_by"] = "paid_by is required for a paid entry"
        try:
            paid_date = _parse_paid_date(data.get("paid_date"), now)
        except ValueError:
            errors[f"funding_{index}_paid_date"] = "Invalid paid date"

    return {
        "type": ftype,
        "amount": data.get("amount"),
        "date": due,
        "payment_status": status,
        "paid_by": paid_by,
        "paid_date": paid_date,
    }


def _check_schedule(entries: list, budget, field_errors: dict | None = None):
    """Raise ValidationError unless *entries* fit *budget* and are well formed."""
    result = funding_ledger.validate_schedule(entries, budget)
    errors = {**result.errors, **(field_errors or {})}
    if errors:
        raise ValidationError(result.message or "Funding schedule has invalid entries", details=errors)
    return result


def _funding_row(values: dict) -> FundingDetail:
    return FundingDetail(
        type=values["type"],
        amount=funding_ledger.to_money(values["amount"]),
        date=values["date"],
        payment_status=values["payment_status"],
        paid_by=values["paid_by"],
        paid_date=values["paid_date"],
    )


def _resolve_approver(draft: dict, approval_type: str, errors: dict):
    """Return (approver_id, group_id) for the approval mode; exactly one is set."""
    approver_id = draft.get("assigned_approver_id")
    group_id = draft.get("assigned_approval_group_id")
    generic = draft.get("approver_id")

    if approver_id and group_id:
        errors["approver_id"] = "Assign either an approver or an approval group, not both"
        return None, None

    if approval_type == "single":
        if group_id:
            errors["approver_id"] = "Single approval needs an approver, not a group"
            return None, None
        approver_id = approver_id or generic
        if not approver_id:
            errors["approver_id"] = "Approver selection is required"
            return None, None
        approver = get_user(approver_id)
        if approver is None:
            raise NotFoundError(resource="User", resource_id=approver_id)
        if approver.is_archived:
            errors["approver_id"] = "Archived users cannot be assigned as approver"
            return None, None
        return approver.id, None

    if approver_id:
        errors["approver_id"] = "Group approval needs an approval group, not a user"
        return None, None
    group_id = group_id or generic
    if not group_id:
        errors["approver_id"] = "Approver selection is required"
        return None, None
    if get_approval_group(group_id) is None:
        raise NotFoundError(resource="ApprovalGroup", resource_id=group_id)
    return None, group_id


# ── Approval decisions ─────────────────────────────────────────────────────────


def submit_approval(project_id, user_id, action, comments=""):
    """
    Record an approval decision and move the project to the resulting status.

    Returns:
        (project, ApprovalHistory) — the record is the one appended by this call.

    Raises:
        ValidationError: unknown action, or empty comments for reject / request-changes.
        NotFoundError: unknown project or user.
        InvalidStateError: project is not pending-approval.
        UnauthorizedError: approval level or group membership insufficient.
        ConflictError / PersistenceError: commit failed (session rolled back).
    """
    if not approval_policy.is_valid_action(action):
        raise ValidationError(
            f"Unknown approval action: {action}",
            details={"action": "Must be approved, rejected or requested-changes"},
        )

    with _project_write(project_id):
        project = _load_project(project_id)
        user = _load_user(user_id)

        if project.status != PENDING_APPROVAL:
            raise InvalidStateError("Project", action, project.status, "project is not pending approval")

        group = None
        if project.approval_type == "group":
            group = get_approval_group(project.assigned_approval_group_id)

        if not approval_policy.can_act(user, project, group):
            raise UnauthorizedError(
                f"User {user.id} is not allowed to approve project {project.id} "
                f"(required level {project.approval_level})",
                user_id=user.id, project_id=project.id,
            )

        comments = (comments or "").strip()
        if approval_policy.comments_required(action) and not comments:
            raise ValidationError(
                "Comments are required when rejecting or requesting changes",
                details={"comments": "required"},
            )

        now = _now()
        previous = project.status
        project.status = approval_policy.resolve_transition(action)
        project.assigned_approver_id = user.id
        project.updated_at = now
        record = _append_history(project, user, action, comments, now)

        gateway.commit()

    logger.info(
        "Approval decision recorded",
        extra={
            "project_id": project.id,
            "user_id": user.id,
            "action": action,
            "from_status": previous,
            "to_status": project.status,
        },
    )
    return project, record


# ── Lifecycle ─────────────────────────────────────────────────────────────────


def transition_project(project_id, action, user_id):
    """
    Apply a lifecycle move from PROJECT_TRANSITIONS.

    ``hold`` remembers the current status; ``resume`` returns to it.
    ``submit_for_approval`` also re-validates the funding schedule and the
    approver assignment before entering pending-approval.
    """
    if action not in PROJECT_TRANSITIONS:
        raise ValidationError(
            f"Unknown action: {action}",
            details={"action": f"Must be one of: {', '.join(sorted(PROJECT_TRANSITIONS))}"},
        )

    with _project_write(project_id):
        project = _load_project(project_id)
        user = _load_active_user(user_id, project_id)

        check = approval_policy.validate_lifecycle_transition(project, action)
        if not check["valid"]:
            raise InvalidStateError("Project", action, project.status, check["reason"])

        if action == "submit_for_approval":
            if not (project.assigned_approver_id or project.assigned_approval_group_id):
                raise ValidationError(
                    "Approver selection is required", details={"approver_id": "required"},
                )
            _check_schedule([_entry_view(e) for e in project.funding_details], project.budget)

        previous = project.status
        if action == "hold":
            project.status_before_hold = previous
        elif previous == ON_HOLD:
            project.status_before_hold = None
        project.status = check["to"]
        project.updated_at = _now()

        gateway.commit()

    logger.info(
        "Project status changed",
        extra={
            "project_id": project.id,
            "user_id": user.id,
            "action": action,
            "from_status": previous,
            "to_status": project.status,
        },
    )
    return project


def submit_for_approval(project_id, user_id):
    """draft / pending / rejected -> pending-approval."""
    return transition_project(project_id, "submit_for_approval", user_id)


# ── Project creation ───────────────────────────────────────────────────────────


def create_project(draft: dict, created_by):
    """
    Validate a project draft and persist it with its funding schedule and attachments.

    Field errors are collected and raised together as one ValidationError so
    the form can render them inline.  Unknown property / approver / group ids
    raise NotFoundError.
    """
    if not isinstance(draft, dict):
        raise ValidationError("Project payload must be an object")

    creator = _load_active_user(created_by)
    now = _now()
    errors = {}

    name = (draft.get("name") or "").strip()
    if not name:
        errors["name"] = "Project name is required"
    description = (draft.get("description") or "").strip()
    if not description:
        errors["description"] = "Description is required"
    category = (draft.get("category") or "").strip()
    if not category:
        errors["category"] = "Category is required"

    budget = None
    try:
        budget = funding_ledger.to_money(draft.get("budget"), "budget")
    except ValidationError as exc:
        if exc.details.get("budget") == funding_ledger.SUB_CENT_MESSAGE:
            errors["budget"] = funding_ledger.SUB_CENT_MESSAGE
    if "budget" not in errors and (budget is None or budget <= 0):
        errors["budget"] = "Budget must be greater than 0"
    if "budget" in errors:
        budget = None

    property_id = draft.get("property_id")
    if not property_id:
        errors["property_id"] = "Property selection is required"
    elif get_property(property_id) is None:
        raise NotFoundError(resource="Property", resource_id=property_id)

    try:
        start_date = parse_date_input(draft.get("start_date"))
        end_date = parse_date_input(draft.get("end_date"))
    except ValueError as exc:
        start_date = end_date = None
        errors["start_date"] = str(exc)
    if start_date and end_date and start_date >= end_date:
        errors["end_date"] = "End date must be after start date"

    status = draft.get("status") or PENDING
    if status not in CREATABLE_STATUSES:
        errors["status"] = f"New projects must start in one of: {', '.join(sorted(CREATABLE_STATUSES))}"

    priority = draft.get("priority") or "medium"
    if priority not in PROJECT_PRIORITIES:
        errors["priority"] = "Priority must be low, medium or high"

    approval_type = draft.get("approval_type") or "single"
    approver_id = group_id = None
    if approval_type not in APPROVAL_TYPES:
        errors["approval_type"] = "Approval type must be single or group"
    else:
        approver_id, group_id = _resolve_approver(draft, approval_type, errors)

    approval_level = draft.get("approval_level")
    if approval_level is None:
        approval_level = DEFAULT_APPROVAL_LEVEL.get(approval_type, 1)
    try:
        approval_level = None if isinstance(approval_level, bool) else int(approval_level)
    except (TypeError, ValueError):
        approval_level = None
    if approval_level not in APPROVAL_LEVELS:
        errors["approval_level"] = "Approval level must be 1, 2 or 3"

    funding_errors = {}
    funding = [
        _normalize_funding(item, i, funding_errors, now)
        for i, item in enumerate(draft.get("funding_details") or [])
    ]
    errors.update(funding_errors)

    attachments = draft.get("attachments") or []
    for i, att in enumerate(attachments):
        if not isinstance(att, dict) or not (att.get("name") or "").strip():
            errors[f"attachment_{i}_name"] = "Attachment name is required"

    schedule_message = None
    if budget is not None:
        result = funding_ledger.validate_schedule(funding, budget)
        errors = {**result.errors, **errors}
        schedule_message = result.errors.get("funding")

    if errors:
        raise ValidationError(schedule_message or "Project validation failed", details=errors)

    try:
        project = Project(
            id=str(uuid.uuid4()),
            name=name,
            description=description,
            property_id=property_id,
            category=category,
            budget=budget,
            start_date=start_date,
            end_date=end_date,
            status=status,
            priority=priority,
            approval_type=approval_type,
            approval_level=approval_level,
            assigned_approver_id=approver_id,
            assigned_approval_group_id=group_id,
            created_by=creator.id,
            created_at=now,
            updated_at=now,
        )
        project.funding_details = [_funding_row(values) for values in funding]
        project.attachments = [
            Attachment(
                name=att["name"].strip(),
                type_id=att.get("type_id"),
                url=att.get("url") or "",
                uploaded_by=creator.id,
                uploaded_at=now,
            )
            for att in attachments
        ]
        gateway.save(project)
        gateway.commit()
    except Exception:
        gateway.rollback()
        raise

    logger.info(
        "Project created",
        extra={"project_id": project.id, "user_id": creator.id, "action": "create", "to_status": status},
    )
    return project


# ── Funding schedule ───────────────────────────────────────────────────────────


def update_payment_status(project_id, funding_id, status, paid_by=None, now=None):
    """
    Mark one funding entry paid or unpaid; sibling entries are untouched.

    Raises:
        ValidationError: unknown status, or ``paid`` without paid_by.
        NotFoundError: unknown project, entry not on this project, unknown payer.
        InvalidStateError: entry already paid.
    """
    if status not in PAYMENT_STATUSES:
        raise ValidationError(
            f"Invalid payment status: {status}", details={"status": "Must be paid or unpaid"},
        )
    if status == PAID and not paid_by:
        raise ValidationError("paid_by is required to mark an entry paid", details={"paid_by": "required"})

    with _project_write(project_id):
        project = _load_project(project_id)
        entry = _load_funding_entry(project, funding_id)
        now = now or _now()

        if status == PAID:
            payer = _load_user(paid_by)
            funding_ledger.mark_paid(entry, payer.id, now)
        else:
            funding_ledger.mark_unpaid(entry)
        project.updated_at = now

        gateway.commit()

    logger.info(
        "Funding payment status changed",
        extra={
            "project_id": project.id,
            "funding_id": entry.id,
            "user_id": paid_by,
            "action": f"mark_{status}",
        },
    )
    return project


def add_funding_entry(project_id, data: dict, user_id=None):
    """Append a funding entry; rejected as a whole if the schedule no longer fits the budget."""
    with _project_write(project_id):
        project = _load_project(project_id)
        if project.status == COMPLETED:
            raise InvalidStateError("Project", "add_funding", project.status, "project is completed")

        now = _now()
        index = len(project.funding_details)
        field_errors = {}
        values = _normalize_funding(data, index, field_errors, now)
        candidate = [_entry_view(e) for e in project.funding_details] + [values]
        _check_schedule(candidate, project.budget, field_errors)

        entry = _funding_row(values)
        project.funding_details.append(entry)
        project.updated_at = now

        gateway.commit()

    logger.info(
        "Funding entry added",
        extra={"project_id": project.id, "funding_id": entry.id, "user_id": user_id, "action": "add_funding"},
    )
    return project, entry


def update_funding_entry(project_id, funding_id, changes: dict, user_id=None):
    """Edit type / amount / date of an entry and re-validate the whole schedule."""
    with _project_write(project_id):
        project = _load_project(project_id)
        entry = _load_funding_entry(project, funding_id)

        editable = {k: v for k, v in (changes or {}).items() if k in ("type", "amount", "date")}
        if not editable:
            raise ValidationError("Nothing to update", details={"fields": "type, amount or date"})
        if entry.is_paid and "amount" in editable:
            raise InvalidStateError(
                "FundingDetail", "update_amount", entry.payment_status, "mark the entry unpaid first",
            )

        index = project.funding_details.index(entry)
        merged = {
            "type": entry.type,
            "amount": entry.amount,
            "date": entry.date,
            "payment_status": entry.payment_status,
            "paid_by": entry.paid_by,
            "paid_date": entry.paid_date,
            **editable,
        }
        field_errors = {}
        values = _normalize_funding(merged, index, field_errors, entry.paid_date)
        candidate = [_entry_view(e) for e in project.funding_details]
        candidate[index] = values
        _check_schedule(candidate, project.budget, field_errors)

        entry.type = values["type"]
        entry.amount = funding_ledger.to_money(values["amount"])
        entry.date = values["date"]
        project.updated_at = _now()

        gateway.commit()

    logger.info(
        "Funding entry updated",
        extra={"project_id": project.id, "funding_id": entry.id, "user_id": user_id, "action": "update_funding"},
    )
    return project, entry


def remove_funding_entry(project_id, funding_id, user_id=None):
    """Remove an unpaid entry from the schedule."""
    with _project_write(project_id):
        project = _load_project(project_id)
        entry = _load_funding_entry(project, funding_id)
        if entry.is_paid:
            raise InvalidStateError(
                "FundingDetail", "remove", entry.payment_status, "paid entries cannot be removed",
            )

        remaining = [e for e in project.funding_details if e is not entry]
        _check_schedule([_entry_view(e) for e in remaining], project.budget)

        project.funding_details.remove(entry)
        project.updated_at = _now()

        gateway.commit()

    logger.info(
        "Funding entry removed",
        extra={"project_id": project.id, "funding_id": funding_id, "user_id": user_id, "action": "remove_funding"},
    )
    return project


def update_budget(project_id, new_budget, user_id=None):
    """Change a project's budget; refused when it would drop below allocated funding."""
    budget = funding_ledger.to_money(new_budget, "budget")
    if budget <= 0:
        raise ValidationError("Budget must be greater than 0", details={"budget": "Budget must be greater than 0"})

    with _project_write(project_id):
        project = _load_project(project_id)
        allocated = funding_ledger.validate_schedule(
            [_entry_view(e) for e in project.funding_details], budget,
        )
        if allocated.over_by > 0:
            message = (
                f"Budget ({funding_ledger.format_money(budget)}) cannot be lower than allocated funding "
                f"({funding_ledger.format_money(allocated.total_allocated)})"
            )
            raise ValidationError(message, details={"budget": message})

        previous = project.budget
        project.budget = budget
        project.updated_at = _now()

        gateway.commit()

    logger.info(
        "Project budget changed",
        extra={
            "project_id": project.id,
            "user_id": user_id,
            "action": "update_budget",
            "from_budget": str(previous),
            "to_budget": str(budget),
        },
    )
    return project
