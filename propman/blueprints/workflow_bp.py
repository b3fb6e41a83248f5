"""
Project workflow blueprint — JSON API over the workflow engine.

Routes:
  POST   /projects                                   – create project (+funding, attachments)
  GET    /projects                                   – list (property_id, status, start, end)
  GET    /projects/<pid>                             – detail with progress and funding summary
  POST   /projects/<pid>/submit                      – submit for approval
  POST   /projects/<pid>/approvals                   – approve / reject / request changes
  GET    /projects/<pid>/approvals                   – approval history, oldest first
  POST   /projects/<pid>/transitions                 – lifecycle move (start_work, hold, ...)
  PUT    /projects/<pid>/budget                      – change budget
  POST   /projects/<pid>/funding                     – add funding entry
  PUT    /projects/<pid>/funding/<fid>               – edit funding entry
  DELETE /projects/<pid>/funding/<fid>               – remove funding entry
  POST   /projects/<pid>/funding/<fid>/payment       – mark paid / unpaid
  GET    /approvals/pending                          – projects the caller may decide
  GET    /forecast?month=YYYY-MM                     – cash-flow forecast by property
  GET    /approval-groups                            – list groups by level
  POST   /approval-groups                            – create group
  PUT    /approval-groups/<gid>                      – edit group
  GET    /users/active                               – assignable users
  POST   /users/<uid>/archive                        – archive user

The acting user comes from ``user_id`` in the body / query string or the
``X-User`` header.  Services raise typed exceptions; the handlers below map
them to status codes once for every route.
"""

import logging

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import HTTPException

from propman.core.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    UnauthorizedError,
    ValidationError,
)
from propman.services import directory_service, project_queries, workflow_engine
from propman.utils.errors import E, api_error
from propman.utils.helpers import get_json_body, parse_date_input

logger = logging.getLogger(__name__)

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/v1")


# ── Error handlers ───────────────────────────────────────────────────────────


@workflow_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@workflow_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_INVALID, str(error), details=error.details)


@workflow_bp.errorhandler(UnauthorizedError)
def _handle_unauthorized(error: UnauthorizedError):
    return api_error(E.FORBIDDEN, str(error))


@workflow_bp.errorhandler(InvalidStateError)
def _handle_invalid_state(error: InvalidStateError):
    return api_error(E.CONFLICT_STATE, str(error), current_status=error.current_state)


@workflow_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return api_error(E.CONFLICT_VERSION, str(error))


@workflow_bp.errorhandler(PersistenceError)
def _handle_persistence(error: PersistenceError):
    return api_error(E.PERSISTENCE, str(error), retryable=error.retryable)


@workflow_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unexpected error in workflow endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ── helpers ──────────────────────────────────────────────────────────────────


def _current_user_id(data=None):
    """Acting user from body, query string or X-User header (no auth enforcement)."""
    data = data or {}
    return (
        data.get("user_id")
        or request.args.get("user_id")
        or request.headers.get("X-User", "")
    )


def _require_user(data=None):
    user_id = _current_user_id(data)
    if not user_id:
        return None, api_error(E.VALIDATION_REQUIRED, "user_id is required (body, query or X-User header)")
    return user_id, None


def _project_detail(project):
    body = project.to_dict()
    body["progress"] = project_queries.project_progress(project)
    body["funding_summary"] = project_queries.funding_summary(project)
    return body


# ═════════════════════════════════════════════════════════════════════════════
# PROJECTS
# ═════════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/projects", methods=["POST"])
def create_project():
    """Create a project.

    Body: { name, description, category, property_id, budget, start_date, end_date,
            status, priority, approval_type, approver_id | assigned_approver_id |
            assigned_approval_group_id, approval_level,
            funding_details: [{type, amount, date, payment_status}], attachments: [...] }
    """
    data, err = get_json_body()
    if err:
        return err
    user_id, err = _require_user({"user_id": data.get("created_by") or data.get("user_id")})
    if err:
        return err

    project = workflow_engine.create_project(data, created_by=user_id)
    return jsonify(_project_detail(project)), 201


@workflow_bp.route("/projects", methods=["GET"])
def list_projects():
    try:
        start = parse_date_input(request.args.get("start"))
        end = parse_date_input(request.args.get("end"))
    except ValueError as exc:
        return api_error(E.BAD_REQUEST, str(exc))

    projects = project_queries.list_projects(
        property_id=request.args.get("property_id"),
        status=request.args.get("status"),
        start=start,
        end=end,
    )
    return jsonify([p.to_dict(include_children=False) for p in projects])


@workflow_bp.route("/projects/<project_id>", methods=["GET"])
def get_project(project_id):
    project = project_queries.get_project(project_id)
    return jsonify(_project_detail(project))


@workflow_bp.route("/projects/<project_id>/submit", methods=["POST"])
def submit_project(project_id):
    data = request.get_json(silent=True) or {}
    user_id, err = _require_user(data)
    if err:
        return err
    project = workflow_engine.submit_for_approval(project_id, user_id)
    return jsonify(project.to_dict())


@workflow_bp.route("/projects/<project_id>/approvals", methods=["POST"])
def decide_approval(project_id):
    """Record an approval decision.

    Body: { action: approved|rejected|requested-changes, comments, user_id }
    """
    data, err = get_json_body()
    if err:
        return err
    user_id, err = _require_user(data)
    if err:
        return err
    if not data.get("action"):
        return api_error(E.VALIDATION_REQUIRED, "action is required")

    project, record = workflow_engine.submit_approval(
        project_id, user_id, data["action"], data.get("comments", ""),
    )
    return jsonify({"project": project.to_dict(), "history": record.to_dict()}), 201


@workflow_bp.route("/projects/<project_id>/approvals", methods=["GET"])
def approval_history(project_id):
    records = project_queries.get_approval_history(project_id)
    return jsonify([r.to_dict() for r in records])


@workflow_bp.route("/projects/<project_id>/transitions", methods=["POST"])
def transition_project(project_id):
    """Body: { action: start_planning|start_work|complete|hold|resume|submit_for_approval, user_id }"""
    data, err = get_json_body()
    if err:
        return err
    user_id, err = _require_user(data)
    if err:
        return err
    if not data.get("action"):
        return api_error(E.VALIDATION_REQUIRED, "action is required")

    project = workflow_engine.transition_project(project_id, data["action"], user_id)
    return jsonify(project.to_dict())


@workflow_bp.route("/projects/<project_id>/budget", methods=["PUT"])
def update_budget(project_id):
    data, err = get_json_body()
    if err:
        return err
    if "budget" not in data:
        return api_error(E.VALIDATION_REQUIRED, "budget is required")

    project = workflow_engine.update_budget(project_id, data["budget"], user_id=_current_user_id(data))
    return jsonify(_project_detail(project))


# ═════════════════════════════════════════════════════════════════════════════
# FUNDING SCHEDULE
# ═════════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/projects/<project_id>/funding", methods=["POST"])
def add_funding(project_id):
    data, err = get_json_body()
    if err:
        return err
    _, entry = workflow_engine.add_funding_entry(project_id, data, user_id=_current_user_id(data))
    return jsonify(entry.to_dict()), 201


@workflow_bp.route("/projects/<project_id>/funding/<funding_id>", methods=["PUT"])
def update_funding(project_id, funding_id):
    data, err = get_json_body()
    if err:
        return err
    _, entry = workflow_engine.update_funding_entry(
        project_id, funding_id, data, user_id=_current_user_id(data),
    )
    return jsonify(entry.to_dict())


@workflow_bp.route("/projects/<project_id>/funding/<funding_id>", methods=["DELETE"])
def remove_funding(project_id, funding_id):
    workflow_engine.remove_funding_entry(project_id, funding_id, user_id=_current_user_id())
    return jsonify({"deleted": True})


@workflow_bp.route("/projects/<project_id>/funding/<funding_id>/payment", methods=["POST"])
def update_payment(project_id, funding_id):
    """Body: { status: paid|unpaid, paid_by? } — paid_by defaults to the acting user."""
    data, err = get_json_body()
    if err:
        return err
    status = data.get("status")
    if not status:
        return api_error(E.VALIDATION_REQUIRED, "status is required")

    paid_by = data.get("paid_by") or (_current_user_id(data) if status == "paid" else None)
    project = workflow_engine.update_payment_status(project_id, funding_id, status, paid_by=paid_by)
    return jsonify(_project_detail(project))


# ═════════════════════════════════════════════════════════════════════════════
# INBOX & FORECAST
# ═════════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/approvals/pending", methods=["GET"])
def pending_approvals():
    user_id, err = _require_user()
    if err:
        return err
    projects = project_queries.pending_approvals_for(user_id)
    return jsonify([p.to_dict(include_children=False) for p in projects])


@workflow_bp.route("/forecast", methods=["GET"])
def forecast():
    month = request.args.get("month")
    if not month:
        return api_error(E.VALIDATION_REQUIRED, "month is required (YYYY-MM)")
    return jsonify(project_queries.funding_forecast(month))


# ═════════════════════════════════════════════════════════════════════════════
# DIRECTORY
# ═════════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/approval-groups", methods=["GET"])
def list_approval_groups():
    return jsonify([g.to_dict() for g in directory_service.list_approval_groups()])


@workflow_bp.route("/approval-groups", methods=["POST"])
def create_approval_group():
    data, err = get_json_body()
    if err:
        return err
    group = directory_service.create_approval_group(data)
    return jsonify(group.to_dict()), 201


@workflow_bp.route("/approval-groups/<group_id>", methods=["PUT"])
def update_approval_group(group_id):
    data, err = get_json_body()
    if err:
        return err
    group = directory_service.update_approval_group(group_id, data)
    return jsonify(group.to_dict())


@workflow_bp.route("/users/active", methods=["GET"])
def list_active_users():
    return jsonify([u.to_dict() for u in directory_service.list_active_users()])


@workflow_bp.route("/users/<user_id>/archive", methods=["POST"])
def archive_user(user_id):
    user = directory_service.archive_user(user_id)
    return jsonify(user.to_dict())
