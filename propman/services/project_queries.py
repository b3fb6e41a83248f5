"""
Read accessors over projects, funding schedules and approval history.

Nothing here mutates; dashboards, the approvals inbox and the cash-flow
forecast are built from these.  Money sums are computed in Python with the
funding ledger so they stay exact Decimals on every backend.
"""

from __future__ import annotations

import calendar
from datetime import date

from sqlalchemy import or_, select

from propman.core.exceptions import NotFoundError, ValidationError
from propman.models import db
from propman.models.approval import ApprovalHistory
from propman.models.directory import ApprovalGroup, Property
from propman.models.project import PENDING_APPROVAL, PROJECT_STATUSES, FundingDetail, Project
from propman.services import approval_policy, funding_ledger
from propman.services.directory_service import get_user
from propman.utils.helpers import parse_month


def get_project(project_id) -> Project:
    project = db.session.get(Project, project_id) if project_id else None
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def list_projects(
    property_id: str | None = None,
    status: str | None = None,
    start: date | None = None,
    end: date | None = None,
) -> list[Project]:
    """Projects filtered by property, status and a date window.

    The window matches projects whose [start_date, end_date] overlaps
    [start, end]; open-ended project dates always overlap.
    """
    stmt = select(Project)
    if property_id:
        stmt = stmt.where(Project.property_id == property_id)
    if status:
        if status not in PROJECT_STATUSES:
            return []
        stmt = stmt.where(Project.status == status)
    if start:
        stmt = stmt.where(or_(Project.end_date.is_(None), Project.end_date >= start))
    if end:
        stmt = stmt.where(or_(Project.start_date.is_(None), Project.start_date <= end))
    stmt = stmt.order_by(Project.created_at.desc(), Project.name)
    return db.session.execute(stmt).unique().scalars().all()


def get_approval_history(project_id) -> list[ApprovalHistory]:
    """Approval decisions for a project, oldest first."""
    get_project(project_id)
    stmt = (
        select(ApprovalHistory)
        .where(ApprovalHistory.project_id == project_id)
        .order_by(ApprovalHistory.created_at, ApprovalHistory.id)
    )
    return db.session.execute(stmt).scalars().all()


def pending_approvals_for(user_id) -> list[Project]:
    """Pending-approval projects the user is currently allowed to decide."""
    user = get_user(user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)

    projects = db.session.execute(
        select(Project).where(Project.status == PENDING_APPROVAL).order_by(Project.created_at)
    ).unique().scalars().all()
    groups = {g.id: g for g in db.session.execute(select(ApprovalGroup)).scalars().all()}

    return [
        p for p in projects
        if approval_policy.can_act(user, p, groups.get(p.assigned_approval_group_id))
    ]


def project_progress(project: Project) -> int:
    """Percent of the project's tasks that are completed (0 when it has none)."""
    tasks = list(project.tasks or [])
    if not tasks:
        return 0
    done = sum(1 for t in tasks if t.status == "completed")
    return round(done * 100 / len(tasks))


def funding_summary(project: Project) -> dict:
    schedule = funding_ledger.validate_schedule(project.funding_details, project.budget)
    payments = funding_ledger.summarize_payments(project.funding_details)
    return {
        "budget": str(funding_ledger.to_money(project.budget)),
        "total_allocated": str(schedule.total_allocated),
        "remaining": str(schedule.remaining),
        "paid": str(payments["paid"]),
        "unpaid": str(payments["unpaid"]),
        "count": payments["count"],
    }


def funding_forecast(month: str) -> dict:
    """
    Cash-flow forecast: funding entries due in *month* (YYYY-MM), grouped by property.

    Entries whose project's property no longer exists are left out.

    Returns:
        {"month": "YYYY-MM", "totals": {...}, "properties": [
            {"property_id", "property_name", "paid", "unpaid", "total", "count", "entries": [...]}
        ]}
    """
    try:
        year, month_no = parse_month(month)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"month": "Use YYYY-MM"}) from exc

    first = date(year, month_no, 1)
    last = date(year, month_no, calendar.monthrange(year, month_no)[1])

    rows = db.session.execute(
        select(FundingDetail, Project, Property)
        .join(Project, FundingDetail.project_id == Project.id)
        .join(Property, Project.property_id == Property.id)
        .where(FundingDetail.date >= first, FundingDetail.date <= last)
        .order_by(Property.name, FundingDetail.date)
    ).unique().all()

    grouped: dict[str, dict] = {}
    for entry, project, prop in rows:
        bucket = grouped.setdefault(prop.id, {"property": prop, "entries": [], "items": []})
        bucket["entries"].append(entry)
        bucket["items"].append({**entry.to_dict(), "project_name": project.name})

    properties = []
    all_entries = []
    for bucket in grouped.values():
        sums = funding_ledger.summarize_payments(bucket["entries"])
        all_entries.extend(bucket["entries"])
        properties.append({
            "property_id": bucket["property"].id,
            "property_name": bucket["property"].name,
            "paid": str(sums["paid"]),
            "unpaid": str(sums["unpaid"]),
            "total": str(sums["total"]),
            "count": sums["count"],
            "entries": bucket["items"],
        })

    totals = funding_ledger.summarize_payments(all_entries)
    return {
        "month": f"{year:04d}-{month_no:02d}",
        "totals": {
            "paid": str(totals["paid"]),
            "unpaid": str(totals["unpaid"]),
            "total": str(totals["total"]),
            "count": totals["count"],
        },
        "properties": properties,
    }
