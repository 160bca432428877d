from __future__ import annotations

from pms.core.extensions import db
from pms.core.models import WorkflowCase
from pms.workflow.sequences import current_value


def _create_demarcation(client, demo_ids):
    response = client.post(
        "/api/cases",
        json={"case_type": "DEMARCATION", "subject_id": demo_ids["available_property"], "party_id": demo_ids["asha"]},
    )
    assert response.status_code == 201
    return response.get_json()


def test_api_requires_login(client):
    response = client.get("/api/cases")
    assert response.status_code == 401
    assert response.get_json()["error"] == "unauthorized"


def test_login_with_wrong_password_is_rejected(client):
    response = client.post("/auth/login", json={"email": "officer@pms.local", "password": "nope"})
    assert response.status_code == 401
    assert response.get_json()["error"] == "invalid_credentials"


def test_login_and_logout(client, login_officer):
    response = login_officer()
    assert response.status_code == 200
    assert response.get_json()["role"] == "officer"
    assert client.get("/auth/me").get_json()["email"] == "officer@pms.local"
    assert client.post("/auth/logout").status_code == 200
    assert client.get("/auth/me").status_code == 401


def test_demarcation_flow_over_http_and_public_verification(app, client, login_officer, demo_ids):
    login_officer()
    created = _create_demarcation(client, demo_ids)
    case_id = created["id"]
    assert created["status"] == "draft"

    response = client.post(f"/api/cases/{case_id}/checklist", json={"checklist": {"siteVisible": True}})
    assert response.get_json()["status"] == "checklist_pending"

    response = client.post(
        f"/api/cases/{case_id}/inspection/schedule",
        json={"scheduled_at": "2026-10-20T10:00:00Z", "inspector_id": demo_ids["inspector"]},
    )
    assert response.status_code == 200
    assert response.get_json()["status"] == "inspection_scheduled"

    response = client.post(f"/api/cases/{case_id}/inspection/start")
    assert response.status_code == 200

    response = client.post(
        f"/api/cases/{case_id}/inspection/complete",
        json={"result": {"passed": True}, "photos": ["site-1.jpg"], "remarks": "All pillars present"},
    )
    assert response.get_json()["status"] == "inspection_completed"

    response = client.post(f"/api/cases/{case_id}/issue")
    assert response.status_code == 200
    issued = response.get_json()
    assert issued["status"] == "certificate_issued"
    assert issued["certificate_number"].startswith("DEM-CERT-")
    assert issued["qr_code"].endswith(issued["hash_sha256"])

    document = client.get(f"/api/cases/{case_id}/document")
    assert document.status_code == 200
    assert document.headers["Content-Type"] == "application/pdf"
    assert document.data.startswith(b"%PDF")

    client.post("/auth/logout")
    verify = client.get(f"/public/verify/{issued['hash_sha256']}")
    assert verify.status_code == 200
    body = verify.get_json()
    assert body["valid"] is True
    assert body["certificate_number"] == issued["certificate_number"]
    assert body["parcel_no"] == "PRC-0001"

    missing = client.get(f"/public/verify/{'a' * 64}")
    assert missing.status_code == 404
    assert missing.get_json()["valid"] is False


def test_case_detail_lists_inspections_and_events(client, login_officer, demo_ids):
    login_officer()
    case_id = _create_demarcation(client, demo_ids)["id"]
    client.post(f"/api/cases/{case_id}/inspection/schedule", json={})

    body = client.get(f"/api/cases/{case_id}").get_json()
    assert body["case"]["id"] == case_id
    assert len(body["inspections"]) == 1
    assert [event["event_type"] for event in body["events"]] == ["created", "inspection_scheduled"]


def test_error_kinds_map_to_status_codes(client, login_officer, demo_ids):
    login_officer()
    assert client.get("/api/cases/9999").status_code == 404
    assert client.get("/api/cases/9999").get_json()["error"] == "not_found"

    case_id = _create_demarcation(client, demo_ids)["id"]
    response = client.post(f"/api/cases/{case_id}/issue")
    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_state"

    response = client.post(f"/api/cases/{case_id}/inspection/complete", json={})
    assert response.status_code == 400
    assert response.get_json()["error"] == "no_inspection_scheduled"

    client.post(f"/api/cases/{case_id}/checklist", json={"checklist": {"siteVisible": False}})
    response = client.post(f"/api/cases/{case_id}/inspection/schedule", json={})
    assert response.status_code == 400
    assert response.get_json() == {
        "error": "incomplete_checklist",
        "message": "Checklist incomplete. Missing: siteVisible",
    }

    response = client.post("/api/cases", json={"case_type": "PARKING"})
    assert response.status_code == 400
    assert response.get_json()["error"] == "validation_error"

    response = client.get(f"/api/cases/{case_id}/document")
    assert response.status_code == 404


def test_inspector_cannot_issue_or_reject(client, login_inspector, demo_ids):
    login_inspector()
    case_id = _create_demarcation(client, demo_ids)["id"]
    assert client.post(f"/api/cases/{case_id}/issue").status_code == 403
    assert client.post(f"/api/cases/{case_id}/reject", json={"reason": "x"}).status_code == 403


def test_reject_and_list_filters(client, login_admin, demo_ids):
    login_admin()
    case_id = _create_demarcation(client, demo_ids)["id"]
    _create_demarcation(client, demo_ids)

    response = client.post(f"/api/cases/{case_id}/reject", json={"reason": "Duplicate application"})
    assert response.get_json()["status"] == "rejected"

    listed = client.get("/api/cases?status=rejected").get_json()
    assert listed["total"] == 1
    assert listed["cases"][0]["rejection_reason"] == "Duplicate application"
    assert client.get("/api/cases?case_type=DEMARCATION").get_json()["total"] == 2


def test_connection_actions_over_http(client, login_officer, demo_ids):
    login_officer()
    response = client.post(
        "/api/cases",
        json={
            "case_type": "SEWERAGE_CONNECTION",
            "subject_id": demo_ids["allotted_property"],
            "party_id": demo_ids["asha"],
            "details": {"connection_category": "domestic"},
        },
    )
    created = response.get_json()
    assert created["fee"] == "3000.00"
    assert created["status"] == "serviceability_checked"

    response = client.post(f"/api/cases/{created['id']}/actions/activate")
    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_state"

    response = client.post(f"/api/cases/{created['id']}/actions/fly")
    assert response.status_code == 400


def test_reports_json_and_csv(client, login_officer, demo_ids):
    login_officer()
    _create_demarcation(client, demo_ids)

    body = client.get("/api/reports/status").get_json()
    assert body["rows"] == [{"case_type": "DEMARCATION", "status": "draft", "count": 1}]

    response = client.get("/api/reports/status.csv")
    assert response.status_code == 200
    assert response.headers["Content-Type"].startswith("text/csv")
    lines = response.data.decode("utf-8").splitlines()
    assert lines[0] == "case_type,status,count"
    assert lines[1] == "DEMARCATION,draft,1"

    assert client.get("/api/reports/unknown").status_code == 400


def test_cli_sequence_commands(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["sequence-show", "--prefix", "dem", "--year", "2024"])
    assert "no numbers allocated" in result.output

    result = runner.invoke(args=["sequence-reset", "--prefix", "dem", "--year", "2024", "--value", "41"])
    assert result.exit_code == 0
    assert current_value("DEM", 2024) == 41

    result = runner.invoke(args=["sequence-show", "--prefix", "DEM", "--year", "2024"])
    assert "DEM-2024: 41" in result.output

    result = runner.invoke(args=["sla-breaches"])
    assert "No SLA breaches." in result.output


def test_cli_seed_demo_skips_when_users_exist(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["seed-demo"])
    assert "Seed skipped" in result.output
    assert db.session.query(WorkflowCase).count() == 0


def test_registration_valuation_over_http(client, login_officer, login_inspector, demo_ids):
    login_officer()
    response = client.post(
        "/api/cases",
        json={
            "case_type": "REGISTRATION",
            "subject_id": demo_ids["allotted_property"],
            "party_id": demo_ids["asha"],
            "counterparty_id": demo_ids["rohit"],
            "details": {"deed_type": "sale", "consideration_amount": "2000000"},
        },
    )
    case_id = response.get_json()["id"]

    response = client.post(f"/api/cases/{case_id}/valuation", json={"circle_rate": 5000})
    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "kyc_pending"
    assert body["version"] == 2
    assert body["details"]["total_charges"] == "121000.00"

    response = client.post(f"/api/cases/{case_id}/valuation", json={})
    assert response.status_code == 400
    assert response.get_json()["error"] == "validation_error"

    client.post("/auth/logout")
    login_inspector()
    assert client.post(f"/api/cases/{case_id}/valuation", json={"circle_rate": 5000}).status_code == 403
