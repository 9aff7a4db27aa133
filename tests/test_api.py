"""
Tests for PrintDesk Backend API endpoints.

Tests cover:
- Health check
- Shop registration
- Pricing configuration CRUD
- Print job intake, status updates and queries
- Error mapping to HTTP status codes
- WebSocket room subscriptions
"""

import pytest
from fastapi.testclient import TestClient

from conftest import PDF_MIME, make_pdf
from printdesk_backend.main import app


@pytest.fixture
def priced_shop(client):
    """Register a shop via the API and price A4 black & white."""
    shop = client.post("/shops", json={"name": "Corner Copies"}).json()
    response = client.post(
        "/pricing-config",
        json={
            "shop_id": shop["id"],
            "paper_type": "A4",
            "print_type": "BLACK_WHITE",
            "single_sided": "2.00",
            "double_sided": "1.20",
        },
    )
    assert response.status_code == 201
    return shop


def _submit(client, shop_id, files=None, **form):
    data = {"shop_id": shop_id, "copies": "3", "paper_type": "A4", "print_type": "BLACK_WHITE"}
    data.update(form)
    if files is None:
        files = [("files", ("thesis.pdf", make_pdf(10), PDF_MIME))]
    return client.post("/print-jobs", data=data, files=files)


class TestHealthCheck:
    def test_health_check_returns_ok(self, client):
        """Health check should return status ok."""
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestShops:
    def test_create_and_get_shop(self, client):
        created = client.post("/shops", json={"name": "Print Hub"})
        assert created.status_code == 201
        fetched = client.get(f"/shops/{created.json()['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["name"] == "Print Hub"

    def test_unknown_shop(self, client):
        response = client.get("/shops/nope")
        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"


class TestPricingConfig:
    def test_duplicate_config_conflicts(self, client, priced_shop):
        """A second row for the same shop and medium is rejected."""
        response = client.post(
            "/pricing-config",
            json={
                "shop_id": priced_shop["id"],
                "paper_type": "A4",
                "print_type": "BLACK_WHITE",
                "single_sided": "3.00",
                "double_sided": "2.00",
            },
        )
        assert response.status_code == 409
        assert response.json()["error"] == "DuplicateConfiguration"

    def test_list_get_update_delete(self, client, priced_shop):
        configs = client.get(f"/pricing-config/{priced_shop['id']}").json()
        assert len(configs) == 1
        config_id = configs[0]["id"]

        assert client.get(f"/pricing-config-by-id/{config_id}").json()["single_sided"] == "2.00"

        updated = client.put(
            f"/pricing-config/{config_id}",
            json={"paper_type": "A3", "print_type": "COLOR", "single_sided": "4.00", "double_sided": "3.00"},
        )
        assert updated.status_code == 200
        assert updated.json()["pricing_config"]["paper_type"] == "A3"
        assert len(updated.json()["all_configurations"]) == 1

        deleted = client.delete(f"/pricing-config/{config_id}")
        assert deleted.status_code == 200
        assert client.get(f"/pricing-config-by-id/{config_id}").status_code == 404

    def test_non_positive_price_rejected(self, client, priced_shop):
        response = client.post(
            "/pricing-config",
            json={
                "shop_id": priced_shop["id"],
                "paper_type": "A4",
                "print_type": "COLOR",
                "single_sided": "0",
                "double_sided": "1.00",
            },
        )
        assert response.status_code == 422

    def test_unknown_shop(self, client):
        response = client.post(
            "/pricing-config",
            json={
                "shop_id": "ghost",
                "paper_type": "A4",
                "print_type": "COLOR",
                "single_sided": "1.00",
                "double_sided": "1.00",
            },
        )
        assert response.status_code == 404


class TestPrintJobs:
    def test_create_print_job(self, client, priced_shop):
        response = _submit(client, priced_shop["id"], customer_name="Ada")
        assert response.status_code == 201

        job = response.json()
        assert job["status"] == "PENDING"
        assert job["total_pages"] == 10
        assert job["total_cost"] == "60.00"
        assert job["customer_name"] == "Ada"
        assert job["files"][0]["file_name"] == "thesis.pdf"
        assert job["files"][0]["pages"] == 10
        assert job["token_number"].startswith("PJ-")

    def test_double_sided_cost(self, client, priced_shop):
        response = _submit(client, priced_shop["id"], print_side="DOUBLE_SIDED")
        assert response.json()["total_cost"] == "36.00"

    def test_no_files(self, client, priced_shop):
        response = _submit(client, priced_shop["id"], files=[])
        assert response.status_code == 400
        assert response.json()["field"] == "files"

    def test_unsupported_file_type(self, client, priced_shop):
        files = [("files", ("notes.txt", b"hello", "text/plain"))]
        response = _submit(client, priced_shop["id"], files=files)
        assert response.status_code == 415
        assert response.json()["content_type"] == "text/plain"
        assert client.get(f"/shops/{priced_shop['id']}/print-jobs").json() == []

    def test_missing_pricing(self, client, priced_shop):
        response = _submit(client, priced_shop["id"], print_type="COLOR")
        assert response.status_code == 422
        assert response.json()["error"] == "ConfigurationNotFound"

        jobs = client.get(f"/shops/{priced_shop['id']}/print-jobs").json()
        assert len(jobs) == 1
        assert jobs[0]["status"] == "PENDING"
        assert jobs[0]["total_cost"] is None

    def test_status_lifecycle(self, client, priced_shop):
        job = _submit(client, priced_shop["id"]).json()

        processing = client.patch(f"/print-jobs/{job['id']}/status", json={"status": "PROCESSING"})
        assert processing.status_code == 200
        assert processing.json()["status"] == "PROCESSING"

        completed = client.patch(f"/print-jobs/{job['id']}/status", json={"status": "COMPLETED"})
        assert completed.json()["status"] == "COMPLETED"
        assert "expires=300" in completed.json()["files"][0]["file_url"]

        again = client.patch(f"/print-jobs/{job['id']}/status", json={"status": "PENDING"})
        assert again.status_code == 409
        assert again.json()["error"] == "InvalidTransition"

    def test_status_update_unknown_job(self, client):
        response = client.patch("/print-jobs/missing/status", json={"status": "PROCESSING"})
        assert response.status_code == 404

    def test_lookup_by_token(self, client, priced_shop):
        job = _submit(client, priced_shop["id"]).json()
        response = client.get(f"/print-jobs/token/{job['token_number']}")
        assert response.status_code == 200
        assert response.json()["status"] == "PENDING"
        assert "files" not in response.json()

    def test_get_single_job(self, client, priced_shop):
        job = _submit(client, priced_shop["id"]).json()
        response = client.get(f"/print-jobs/{job['id']}")
        assert response.status_code == 200
        assert response.json()["files"][0]["id"] == job["files"][0]["id"]

    def test_list_with_status_filter(self, client, priced_shop):
        first = _submit(client, priced_shop["id"]).json()
        _submit(client, priced_shop["id"])
        client.patch(f"/print-jobs/{first['id']}/status", json={"status": "CANCELLED"})

        cancelled = client.get(f"/shops/{priced_shop['id']}/print-jobs", params={"status": "CANCELLED"}).json()
        assert [j["id"] for j in cancelled] == [first["id"]]
        assert len(client.get(f"/shops/{priced_shop['id']}/print-jobs").json()) == 2

    def test_list_with_invalid_status(self, client, priced_shop):
        response = client.get(f"/shops/{priced_shop['id']}/print-jobs", params={"status": "DONE"})
        assert response.status_code == 400

    def test_list_for_unknown_shop(self, client):
        response = client.get("/shops/ghost/print-jobs")
        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"

    def test_pending_job_cannot_be_completed(self, client, priced_shop):
        job = _submit(client, priced_shop["id"]).json()
        response = client.patch(f"/print-jobs/{job['id']}/status", json={"status": "COMPLETED"})
        assert response.status_code == 409
        assert response.json()["current"] == "PENDING"


class TestStartup:
    def test_job_routes_unavailable_before_startup(self):
        """Without the lifespan having run, the notification hub is not bound."""
        app.dependency_overrides.clear()
        response = TestClient(app).get("/print-jobs/token/PJ-1-1")
        assert response.status_code == 503
        assert response.json()["error"] == "NotInitialized"


class TestWebSocketRooms:
    def test_join_rooms(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"action": "joinShopRoom", "shop_id": "s1"})
            assert websocket.receive_json() == {"event": "joined", "data": {"room": "shop_s1"}}
            websocket.send_json({"action": "joinPrintJobRoom", "job_id": "j1"})
            assert websocket.receive_json() == {"event": "joined", "data": {"room": "printjob_j1"}}
            websocket.send_json({"action": "leaveShopRoom", "shop_id": "s1"})
            assert websocket.receive_json() == {"event": "left", "data": {"room": "shop_s1"}}

    def test_unknown_action(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"action": "subscribeEverything"})
            assert websocket.receive_json()["event"] == "error"
