"""Mini README: API tests for the FastAPI interface.

Structure:
    * project endpoints - display-unit forms, over-allocation messages, cascade delete.
    * expense endpoints - recording and editing in display units, recent history.
    * routing endpoint - landing decisions for authenticated identities.
    * live websocket - initial snapshot, pushed updates and forced refresh.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from grantledger.interface import create_application
from grantledger.ledger import InMemoryLedgerStore

PROJECT_FORM = {
    "name": "NSF Grant #2049",
    "responsible_name": "Prof. Kim",
    "responsible_email": "x@u.edu",
    "total_budget": 10000,
    "materials": 4000,
    "student_labor": 3000,
}


@pytest.fixture()
def client() -> TestClient:
    with TestClient(create_application(InMemoryLedgerStore())) as test_client:
        yield test_client


def _create_project(client: TestClient) -> str:
    response = client.post("/projects", json=PROJECT_FORM)
    assert response.status_code == 201
    return response.json()["project_id"]


def test_create_project_converts_thousands_to_base_units(client: TestClient) -> None:
    project_id = _create_project(client)

    body = client.get(f"/projects/{project_id}").json()

    assert body["total_budget"] == 10_000_000
    assert body["materials"] == 4_000_000
    assert body["equipment"] == 0
    assert body["display_units"]["student_labor"] == pytest.approx(3000.0)


def test_fractional_thousands_are_stored_exactly(client: TestClient) -> None:
    response = client.post(
        "/projects",
        json={**PROJECT_FORM, "total_budget": 4.03, "materials": 2.01, "student_labor": 0},
    )
    huge = client.post(
        "/projects", json={**PROJECT_FORM, "total_budget": "9007199254740993", "materials": 0}
    )

    assert response.status_code == 201
    body = client.get(f"/projects/{response.json()['project_id']}").json()
    assert body["total_budget"] == 4030
    assert body["materials"] == 2010
    assert body["display_units"]["total_budget"] == pytest.approx(4.03)
    assert huge.json()["total_budget"] == 9_007_199_254_740_993_000


def test_over_allocation_reports_excess(client: TestClient) -> None:
    response = client.post(
        "/projects",
        json={**PROJECT_FORM, "total_budget": 1000, "materials": 600, "student_labor": 500},
    )

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["excess"] == 100_000
    assert detail["allocated_sum"] == 1_100_000
    assert client.get("/projects").json()["projects"] == []


def test_overspent_expense_is_recorded_and_flagged(client: TestClient) -> None:
    project_id = _create_project(client)

    recorded = client.post(
        f"/projects/{project_id}/expenses",
        json={"category": "materials", "amount": 5000, "description": "Sequencer reagents"},
    )
    balance = client.get(f"/projects/{project_id}/balance").json()

    assert recorded.status_code == 201
    materials = balance["categories"][0]
    assert materials["over_budget"] is True
    assert materials["percent_used"] == pytest.approx(125.0)
    assert balance["total_remaining"] == 5_000_000


def test_expense_edit_and_recent_history(client: TestClient) -> None:
    project_id = _create_project(client)
    expense_ids = [
        client.post(
            f"/projects/{project_id}/expenses",
            json={"category": "activity", "amount": 1000 + number, "description": f"Trip {number}"},
        ).json()["expense_id"]
        for number in range(6)
    ]

    edited = client.patch(f"/expenses/{expense_ids[0]}", json={"category": "equipment"})
    recent = client.get(f"/projects/{project_id}/expenses").json()
    everything = client.get(f"/projects/{project_id}/expenses", params={"show_all": True}).json()

    assert edited.json()["category"] == "equipment"
    assert len(recent["expenses"]) == 5
    assert recent["total_count"] == 6
    assert len(everything["expenses"]) == 6
    assert client.patch(f"/expenses/{expense_ids[1]}", json={"amount": -1}).status_code == 422


def test_expense_amounts_are_typed_in_display_units(client: TestClient) -> None:
    project_id = _create_project(client)

    recorded = client.post(
        f"/projects/{project_id}/expenses",
        json={"category": "materials", "amount": 2.01, "description": "Pipette tips"},
    ).json()
    edited = client.patch(f"/expenses/{recorded['expense_id']}", json={"amount": "4.03"}).json()
    listed = client.get(f"/projects/{project_id}/expenses").json()["expenses"]

    assert recorded["amount"] == 2010
    assert recorded["display_units"]["amount"] == pytest.approx(2.01)
    assert edited["amount"] == 4030
    assert listed[0]["display_units"]["amount"] == pytest.approx(4.03)
    assert client.get(f"/projects/{project_id}/balance").json()["total_used"] == 4030
    fractional = client.post(
        f"/projects/{project_id}/expenses",
        json={"category": "materials", "amount": "0.0005", "description": "Half a unit"},
    )
    assert fractional.status_code == 422


def test_delete_project_cascades_and_then_404s(client: TestClient) -> None:
    project_id = _create_project(client)
    expense_id = client.post(
        f"/projects/{project_id}/expenses",
        json={"category": "materials", "amount": 10, "description": "Gloves"},
    ).json()["expense_id"]

    assert client.delete(f"/projects/{project_id}").status_code == 200

    assert client.get(f"/projects/{project_id}/balance").status_code == 404
    assert client.delete(f"/expenses/{expense_id}").status_code == 404


def test_route_endpoint_fast_path(client: TestClient) -> None:
    project_id = _create_project(client)

    landing = client.post("/route", json={"email": "x@u.edu", "identity_id": "uid-1"}).json()
    admin = client.post(
        "/route", json={"email": "office@u.edu", "identity_id": "uid-2", "roles": ["admin"]}
    ).json()

    assert landing == {
        "kind": "project_balance",
        "project_id": project_id,
        "project_ids": [project_id],
    }
    assert admin["kind"] == "admin_project_list"


def test_live_balance_streams_updates(client: TestClient) -> None:
    project_id = _create_project(client)

    with client.websocket_connect(f"/projects/{project_id}/live") as websocket:
        initial = websocket.receive_json()
        assert initial["state"] == "live"
        assert initial["snapshot"]["total_used"] == 0

        client.post(
            f"/projects/{project_id}/expenses",
            json={"category": "student_labor", "amount": 250, "description": "RA stipend"},
        )
        pushed = websocket.receive_json()
        assert pushed["snapshot"]["total_used"] == 250_000

        websocket.send_text("refresh")
        refreshed = websocket.receive_json()
        assert refreshed["state"] == "live"
        assert refreshed["snapshot"]["total_used"] == 250_000


def test_live_balance_for_unknown_project(client: TestClient) -> None:
    with client.websocket_connect("/projects/prj_9999/live") as websocket:
        message = websocket.receive_json()

    assert message["state"] == "not_found"
    assert message["snapshot"] is None
