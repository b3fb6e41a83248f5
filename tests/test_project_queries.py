"""Read-side tests: listing filters, history order, inbox, progress, forecast."""

from datetime import date

import pytest

from propman.core.exceptions import NotFoundError, ValidationError
from propman.models import db
from propman.models.directory import Property
from propman.models.project import Task
from propman.services import project_queries, workflow_engine


class TestListProjects:
    def test_filters(self, make_project, property_):
        spring = make_project(name="Spring works")
        autumn = make_project(
            name="Autumn works", start_date="2025-09-01", end_date="2025-11-30",
            funding_details=[],
        )

        ids = {p.id for p in project_queries.list_projects(property_id=property_.id)}
        assert ids == {spring.id, autumn.id}

        in_window = project_queries.list_projects(start=date(2025, 10, 1), end=date(2025, 10, 31))
        assert [p.id for p in in_window] == [autumn.id]

        assert project_queries.list_projects(status="pending-approval") == []
        assert project_queries.list_projects(status="not-a-status") == []

    def test_get_missing(self):
        with pytest.raises(NotFoundError):
            project_queries.get_project("nope")


class TestHistoryAndInbox:
    def test_history_oldest_first(self, make_project, users):
        project = make_project(pending=True)
        workflow_engine.submit_approval(project.id, users["l3"].id, "requested-changes", "phase it")
        workflow_engine.submit_approval(project.id, users["l3"].id, "approved", "")
        actions = [h.action for h in project_queries.get_approval_history(project.id)]
        assert actions == ["requested-changes", "approved"]

    def test_history_unknown_project(self):
        with pytest.raises(NotFoundError):
            project_queries.get_approval_history("nope")

    def test_pending_for_level_and_group(self, make_project, users, group):
        single = make_project(pending=True, approval_level=2, name="Single")
        grouped = make_project(pending=True, approval_type="group", approver_id=group.id, name="Grouped")

        l1 = {p.id for p in project_queries.pending_approvals_for(users["l1"].id)}
        l2 = {p.id for p in project_queries.pending_approvals_for(users["l2"].id)}
        l3 = {p.id for p in project_queries.pending_approvals_for(users["l3"].id)}

        assert l1 == {grouped.id}
        assert l2 == {single.id, grouped.id}
        assert l3 == {single.id}

    def test_pending_unknown_user(self):
        with pytest.raises(NotFoundError):
            project_queries.pending_approvals_for("ghost")


def test_progress_from_tasks(make_project, property_):
    project = make_project()
    assert project_queries.project_progress(project) == 0
    for status in ("completed", "completed", "in-progress"):
        db.session.add(Task(name=f"task {status}", property_id=property_.id, project_id=project.id, status=status))
    db.session.commit()
    assert project_queries.project_progress(project) == 67


def test_funding_summary(make_project, users):
    project = make_project()
    workflow_engine.update_payment_status(project.id, project.funding_details[0].id, "paid", paid_by=users["l1"].id)
    assert project_queries.funding_summary(project) == {
        "budget": "10000.00",
        "total_allocated": "7000.00",
        "remaining": "3000.00",
        "paid": "3000.00",
        "unpaid": "4000.00",
        "count": 2,
    }


class TestForecast:
    def test_groups_by_property(self, make_project, users):
        other = Property(name="Alder Court", address="3 Alder Rd")
        db.session.add(other)
        db.session.commit()

        first = make_project()
        make_project(
            name="Car park resurfacing",
            property_id=other.id,
            funding_details=[
                {"type": "deposit", "amount": "1200.50", "date": "2025-03-10"},
                {"type": "final", "amount": "800", "date": "2025-05-01"},
            ],
        )
        workflow_engine.update_payment_status(
            first.id, first.funding_details[0].id, "paid", paid_by=users["l1"].id,
        )

        result = project_queries.funding_forecast("2025-03")
        assert result["month"] == "2025-03"
        assert result["totals"] == {"paid": "3000.00", "unpaid": "1200.50", "total": "4200.50", "count": 2}
        by_name = {p["property_name"]: p for p in result["properties"]}
        assert list(by_name) == ["Alder Court", "Harbour View Apartments"]
        assert by_name["Alder Court"]["unpaid"] == "1200.50"
        assert by_name["Alder Court"]["entries"][0]["project_name"] == "Car park resurfacing"
        assert by_name["Harbour View Apartments"]["paid"] == "3000.00"

    def test_empty_month(self, make_project):
        make_project()
        result = project_queries.funding_forecast("2026-01")
        assert result["properties"] == []
        assert result["totals"]["count"] == 0

    @pytest.mark.parametrize("month", ["2025-13", "march", ""])
    def test_bad_month(self, month):
        with pytest.raises(ValidationError):
            project_queries.funding_forecast(month)
