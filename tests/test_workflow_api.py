"""
Workflow API tests — status codes and payload shapes over the test client.

Ids are captured as plain strings before requests are made; each request
runs in its own app context and session.
"""

import pytest


def _ids(users):
    return {key: user.id for key, user in users.items()}


@pytest.fixture()
def pending_project(make_project):
    return make_project(pending=True, approval_level=3).id


# ═════════════════════════════════════════════════════════════════════════
# Projects
# ═════════════════════════════════════════════════════════════════════════

class TestCreateProjectAPI:
    def test_create_201(self, client, project_draft, users):
        uid = users["creator"].id
        res = client.post("/api/v1/projects", json={**project_draft, "created_by": uid})
        assert res.status_code == 201
        body = res.get_json()
        assert body["status"] == "pending"
        assert body["budget"] == "10000.00"
        assert len(body["funding_details"]) == 2
        assert body["funding_summary"]["total_allocated"] == "7000.00"
        assert body["funding_summary"]["remaining"] == "3000.00"
        assert body["progress"] == 0

    def test_over_budget_422(self, client, project_draft, users):
        uid = users["creator"].id
        payload = {
            **project_draft,
            "created_by": uid,
            "funding_details": project_draft["funding_details"] + [
                {"type": "final", "amount": "4000", "date": "2025-06-01"},
            ],
        }
        res = client.post("/api/v1/projects", json=payload)
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert body["error"] == "Total funding ($11,000) cannot exceed project budget ($10,000)"
        assert "funding" in body["details"]

    def test_creator_from_header(self, client, project_draft, users):
        uid = users["creator"].id
        res = client.post("/api/v1/projects", json=project_draft, headers={"X-User": uid})
        assert res.status_code == 201
        assert res.get_json()["created_by"] == uid

    def test_missing_user_400(self, client, project_draft):
        res = client.post("/api/v1/projects", json=project_draft)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_non_object_body_400(self, client, users):
        res = client.post("/api/v1/projects", json=["not", "an", "object"],
                          headers={"X-User": users["creator"].id})
        assert res.status_code == 400

    def test_unknown_property_404(self, client, project_draft, users):
        uid = users["creator"].id
        res = client.post("/api/v1/projects", json={**project_draft, "property_id": "nope", "created_by": uid})
        assert res.status_code == 404


class TestReadProjectsAPI:
    def test_get_detail(self, client, make_project):
        pid = make_project().id
        res = client.get(f"/api/v1/projects/{pid}")
        assert res.status_code == 200
        assert res.get_json()["id"] == pid

    def test_get_missing_404(self, client):
        res = client.get("/api/v1/projects/does-not-exist")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_list_by_status(self, client, make_project):
        make_project()
        pid = make_project(pending=True, name="Boiler").id
        res = client.get("/api/v1/projects?status=pending-approval")
        assert res.status_code == 200
        assert [p["id"] for p in res.get_json()] == [pid]

    def test_list_bad_date_400(self, client):
        res = client.get("/api/v1/projects?start=31/31/2025")
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════
# Approvals
# ═════════════════════════════════════════════════════════════════════════

class TestApprovalAPI:
    def test_approve_201_and_history(self, client, pending_project, users):
        approver = users["l3"].id
        res = client.post(
            f"/api/v1/projects/{pending_project}/approvals",
            json={"action": "approved", "comments": "", "user_id": approver},
        )
        assert res.status_code == 201
        body = res.get_json()
        assert body["project"]["status"] == "approved"
        assert body["history"]["approver_id"] == approver

        history = client.get(f"/api/v1/projects/{pending_project}/approvals").get_json()
        assert [h["action"] for h in history] == ["approved"]

    def test_insufficient_level_403(self, client, pending_project, users):
        res = client.post(
            f"/api/v1/projects/{pending_project}/approvals",
            json={"action": "approved"},
            headers={"X-User": users["l2"].id},
        )
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"
        assert client.get(f"/api/v1/projects/{pending_project}").get_json()["status"] == "pending-approval"
        assert client.get(f"/api/v1/projects/{pending_project}/approvals").get_json() == []

    def test_reject_without_comment_422(self, client, pending_project, users):
        res = client.post(
            f"/api/v1/projects/{pending_project}/approvals",
            json={"action": "rejected", "comments": "", "user_id": users["l3"].id},
        )
        assert res.status_code == 422
        assert res.get_json()["details"] == {"comments": "required"}

    def test_not_pending_409(self, client, make_project, users):
        pid = make_project().id
        res = client.post(
            f"/api/v1/projects/{pid}/approvals",
            json={"action": "approved", "user_id": users["l3"].id},
        )
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_CONFLICT_STATE"
        assert body["current_status"] == "pending"

    def test_missing_action_400(self, client, pending_project, users):
        res = client.post(
            f"/api/v1/projects/{pending_project}/approvals", json={"user_id": users["l3"].id},
        )
        assert res.status_code == 400

    def test_pending_inbox(self, client, pending_project, users):
        ids = _ids(users)
        mine = client.get("/api/v1/approvals/pending", headers={"X-User": ids["l3"]}).get_json()
        assert [p["id"] for p in mine] == [pending_project]
        theirs = client.get("/api/v1/approvals/pending", headers={"X-User": ids["l2"]}).get_json()
        assert theirs == []

    def test_pending_inbox_requires_user(self, client):
        assert client.get("/api/v1/approvals/pending").status_code == 400


class TestLifecycleAPI:
    def test_submit_and_hold(self, client, make_project, users):
        ids = _ids(users)
        pid = make_project(status="draft").id

        res = client.post(f"/api/v1/projects/{pid}/submit", json={"user_id": ids["creator"]})
        assert res.status_code == 200
        assert res.get_json()["status"] == "pending-approval"

        client.post(f"/api/v1/projects/{pid}/approvals", json={"action": "approved", "user_id": ids["l3"]})
        res = client.post(f"/api/v1/projects/{pid}/transitions", json={"action": "hold", "user_id": ids["creator"]})
        assert res.get_json()["status"] == "on-hold"
        res = client.post(f"/api/v1/projects/{pid}/transitions", json={"action": "resume", "user_id": ids["creator"]})
        assert res.get_json()["status"] == "approved"

    def test_invalid_transition_409(self, client, make_project, users):
        pid = make_project().id
        res = client.post(
            f"/api/v1/projects/{pid}/transitions",
            json={"action": "complete", "user_id": users["creator"].id},
        )
        assert res.status_code == 409


# ═════════════════════════════════════════════════════════════════════════
# Funding & budget
# ═════════════════════════════════════════════════════════════════════════

class TestFundingAPI:
    def test_mark_paid_defaults_payer_to_caller(self, client, make_project, users):
        project = make_project()
        pid, fid, sibling = project.id, project.funding_details[0].id, project.funding_details[1].id
        payer = users["l1"].id

        res = client.post(
            f"/api/v1/projects/{pid}/funding/{fid}/payment",
            json={"status": "paid"}, headers={"X-User": payer},
        )
        assert res.status_code == 200
        entries = {f["id"]: f for f in res.get_json()["funding_details"]}
        assert entries[fid]["payment_status"] == "paid"
        assert entries[fid]["paid_by"] == payer
        assert entries[fid]["paid_date"] is not None
        assert entries[sibling]["payment_status"] == "unpaid"
        assert res.get_json()["funding_summary"]["paid"] == "3000.00"

    def test_double_payment_409(self, client, make_project, users):
        project = make_project()
        pid, fid = project.id, project.funding_details[0].id
        payer = users["l1"].id
        url = f"/api/v1/projects/{pid}/funding/{fid}/payment"
        assert client.post(url, json={"status": "paid", "paid_by": payer}).status_code == 200
        assert client.post(url, json={"status": "paid", "paid_by": payer}).status_code == 409

    def test_add_funding_201_and_over_budget_422(self, client, make_project):
        pid = make_project().id
        res = client.post(f"/api/v1/projects/{pid}/funding",
                          json={"type": "final", "amount": "2500", "date": "2025-06-15"})
        assert res.status_code == 201
        assert res.get_json()["amount"] == "2500.00"
        res = client.post(f"/api/v1/projects/{pid}/funding",
                          json={"type": "final", "amount": "500.01", "date": "2025-06-20"})
        assert res.status_code == 422

    def test_delete_funding(self, client, make_project):
        project = make_project()
        pid, kept, fid = project.id, project.funding_details[0].id, project.funding_details[1].id
        res = client.delete(f"/api/v1/projects/{pid}/funding/{fid}")
        assert res.get_json() == {"deleted": True}
        detail = client.get(f"/api/v1/projects/{pid}").get_json()
        assert [f["id"] for f in detail["funding_details"]] == [kept]

    def test_budget_below_allocation_422(self, client, make_project):
        pid = make_project().id
        res = client.put(f"/api/v1/projects/{pid}/budget", json={"budget": "5000"})
        assert res.status_code == 422
        assert res.get_json()["error"] == "Budget ($5,000) cannot be lower than allocated funding ($7,000)"

    def test_budget_missing_400(self, client, make_project):
        pid = make_project().id
        assert client.put(f"/api/v1/projects/{pid}/budget", json={}).status_code == 400


class TestForecastAPI:
    def test_forecast_month(self, client, make_project):
        make_project()
        body = client.get("/api/v1/forecast?month=2025-04").get_json()
        assert body["month"] == "2025-04"
        assert body["totals"]["total"] == "4000.00"
        assert body["properties"][0]["property_name"] == "Harbour View Apartments"
        assert body["properties"][0]["entries"][0]["project_name"] == "Roof replacement"

    def test_bad_month_422(self, client):
        assert client.get("/api/v1/forecast?month=April").status_code == 422

    def test_missing_month_400(self, client):
        assert client.get("/api/v1/forecast").status_code == 400


class TestDirectoryAPI:
    def test_create_group_and_duplicate_level(self, client, users):
        member = users["l2"].id
        payload = {"name": "Level 2 Approvers", "level": 2, "user_ids": [member]}
        assert client.post("/api/v1/approval-groups", json=payload).status_code == 201
        res = client.post("/api/v1/approval-groups", json={**payload, "name": "Another"})
        assert res.status_code == 422
        assert res.get_json()["details"]["level"] == "This level already exists"

    def test_active_users_and_archive(self, client, users):
        uid = users["l1"].id
        names = [u["name"] for u in client.get("/api/v1/users/active").get_json()]
        assert "Avery Archived" not in names
        assert "Lee One" in names

        assert client.post(f"/api/v1/users/{uid}/archive").status_code == 200
        names = [u["name"] for u in client.get("/api/v1/users/active").get_json()]
        assert "Lee One" not in names


class TestHealthAPI:
    def test_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"

    def test_request_id_header(self, client):
        res = client.get("/api/v1/health", headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"
