"""
Approval Policy — pure decision logic for project approvals.

Given a project, an acting user and (in group mode) the assigned approval
group, decide whether the user may act and which status an action leads to.
Nothing here touches the session or raises for an inadmissible combination;
the workflow engine turns a False / invalid result into a typed error.

Usage:
    from propman.services.approval_policy import can_act, resolve_transition

    if can_act(user, project, group):
        project.status = resolve_transition("approved")
"""

from propman.models.approval import APPROVAL_ACTIONS, APPROVAL_TRANSITIONS
from propman.models.project import ON_HOLD, PENDING_APPROVAL, PROJECT_TRANSITIONS

APPROVE_ACTION = "approved"


def can_act(user, project, group=None) -> bool:
    """
    Return True when *user* may decide *project*'s pending approval.

    single: project is pending-approval and user.approval_level reaches
            project.approval_level.
    group:  project is pending-approval, *group* is the project's assigned
            group, the user is a member and group.level reaches
            project.approval_level.

    Missing user, archived user, missing/mismatched group or an unknown
    approval type all yield False.
    """
    if user is None or project is None:
        return False
    if getattr(user, "is_archived", False):
        return False
    if project.status != PENDING_APPROVAL:
        return False

    required = project.approval_level or 1

    if project.approval_type == "single":
        return (user.approval_level or 0) >= required

    if project.approval_type == "group":
        if group is None or group.id != project.assigned_approval_group_id:
            return False
        return group.has_member(user.id) and (group.level or 0) >= required

    return False


def resolve_transition(action: str) -> str | None:
    """Map an approval action to the status it produces, or None if unknown."""
    rule = APPROVAL_TRANSITIONS.get(action)
    return rule["to"] if rule else None


def is_valid_action(action: str) -> bool:
    return action in APPROVAL_ACTIONS


def comments_required(action: str) -> bool:
    """Comments are optional only for approvals."""
    return action != APPROVE_ACTION


def validate_lifecycle_transition(project, action: str) -> dict:
    """
    Validate a non-approval lifecycle move for the project's current state.

    Returns:
        {"valid": bool, "from": str, "to": str|None, "reason": str|None}
    """
    rule = PROJECT_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": project.status, "to": None,
                "reason": f"Unknown action: {action}"}

    target = rule["to"]
    if project.status == ON_HOLD and action == "resume":
        target = project.status_before_hold

    if project.status not in rule["from"]:
        return {"valid": False, "from": project.status, "to": target,
                "reason": f"Cannot '{action}' from status '{project.status}'"}

    if target is None:
        return {"valid": False, "from": project.status, "to": None,
                "reason": "No prior status recorded to resume to"}

    return {"valid": True, "from": project.status, "to": target, "reason": None}
