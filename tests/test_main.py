"""Test dashboard and API routes: status codes, redirects and rendered HTML."""

from __future__ import annotations

import importlib
import warnings
from datetime import datetime
from io import BytesIO

import openpyxl
from starlette.testclient import TestClient

from services_dashboard.cache import TaggedCache
from tests.conftest import FakeClock, service_form


def _create(client: TestClient, **overrides) -> dict:
    resp = client.post("/api/services", data=service_form(**overrides))
    assert resp.status_code == 201
    return resp.json()["service"]


# ------------------------------------------------------------------
# JSON API
# ------------------------------------------------------------------


class TestServicesAPI:
    def test_create_returns_camel_case_record(self, client: TestClient) -> None:
        body = client.post("/api/services", data=service_form()).json()
        assert body["success"] is True
        service = body["service"]
        assert service["price"] == 99.5
        assert service["isActive"] is True
        assert service["isFeatured"] is False
        assert service["createdAt"] == service["updatedAt"]

    def test_create_validation_error(self, client: TestClient) -> None:
        resp = client.post("/api/services", data={"name": "", "description": "x", "price": "10"})
        assert resp.status_code == 422
        body = resp.json()
        assert body["success"] is False
        assert body["errorKind"] == "validation"
        assert "name" in body["fieldErrors"]
        assert client.get("/api/services").json() == []

    def test_validation_status_uses_no_deprecated_constant(self) -> None:
        import services_dashboard.main as main_module

        with warnings.catch_warnings():
            warnings.filterwarnings("error", message=".*HTTP_422.*", category=DeprecationWarning)
            importlib.reload(main_module)
        assert main_module._FAILURE_STATUS["validation"] == 422

    def test_list_filters(self, client: TestClient) -> None:
        _create(client, name="Hair cut", isActive="true")
        _create(client, name="Nails", description="Manicure", isActive="false")

        assert len(client.get("/api/services").json()) == 2
        assert [s["name"] for s in client.get("/api/services", params={"status": "false"}).json()] == ["Nails"]
        assert [s["name"] for s in client.get("/api/services", params={"search": "MANI"}).json()] == ["Nails"]
        assert len(client.get("/api/services", params={"status": "bogus"}).json()) == 2

    def test_get_one_and_missing(self, client: TestClient) -> None:
        created = _create(client)
        assert client.get(f"/api/services/{created['id']}").json()["service"]["name"] == "Consulting"
        resp = client.get("/api/services/missing")
        assert resp.status_code == 404
        assert resp.json()["errorKind"] == "not_found"

    def test_update(self, client: TestClient) -> None:
        created = _create(client)
        resp = client.put(
            f"/api/services/{created['id']}",
            data={"name": "X", "description": "Y", "price": "5", "isActive": "false", "isFeatured": "true"},
        )
        assert resp.status_code == 200
        service = resp.json()["service"]
        assert (service["name"], service["price"], service["isActive"], service["isFeatured"]) == ("X", 5.0, False, True)
        assert datetime.fromisoformat(service["updatedAt"]) > datetime.fromisoformat(created["updatedAt"])

    def test_update_missing(self, client: TestClient) -> None:
        assert client.put("/api/services/missing", data=service_form()).status_code == 404

    def test_delete_twice(self, client: TestClient) -> None:
        created = _create(client)
        assert client.delete(f"/api/services/{created['id']}").status_code == 200
        assert client.delete(f"/api/services/{created['id']}").status_code == 404

    def test_listing_sees_mutations(self, client: TestClient) -> None:
        assert client.get("/api/services").json() == []
        created = _create(client)
        assert len(client.get("/api/services").json()) == 1
        client.delete(f"/api/services/{created['id']}")
        assert client.get("/api/services").json() == []

    def test_other_instance_sees_writes_once_its_cache_expires(self, client: TestClient) -> None:
        from services_dashboard.main import create_app

        clock = FakeClock()
        other = TestClient(create_app(cache=TaggedCache(max_age=5, clock=clock)))
        assert other.get("/api/services").json() == []

        _create(client)
        # The write was only invalidated in the first instance's cache.
        assert other.get("/api/services").json() == []

        clock.now = 5
        assert len(other.get("/api/services").json()) == 1

    def test_distinct_searches_do_not_grow_the_cache(self) -> None:
        from services_dashboard.main import create_app

        app = create_app(cache=TaggedCache(max_entries=32))
        client = TestClient(app)
        for n in range(100):
            client.get("/api/services", params={"search": f"term-{n}"})
        assert len(app.state.service_cache) == 32

    def test_health(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ------------------------------------------------------------------
# HTML dashboard
# ------------------------------------------------------------------


class TestDashboardPages:
    def test_root_redirects_to_dashboard(self) -> None:
        from services_dashboard.main import create_app

        client = TestClient(create_app(), follow_redirects=False)
        resp = client.get("/")
        assert resp.status_code in (302, 307)
        assert resp.headers["location"].endswith("/dashboard/services")

    def test_empty_listing(self, client: TestClient) -> None:
        resp = client.get("/dashboard/services")
        assert resp.status_code == 200
        assert "text/html" in resp.headers["content-type"]
        assert "No services found" in resp.text
        assert "const DEBOUNCE_MS = 1500;" in resp.text

    def test_listing_renders_filtered_rows(self, client: TestClient) -> None:
        _create(client, name="Hair cut", isActive="true")
        _create(client, name="Nails", isActive="false")
        resp = client.get("/dashboard/services", params={"status": "true"})
        assert "Hair cut" in resp.text
        assert "Nails" not in resp.text
        assert "All Services (1)" in resp.text

    def test_form_create_redirects(self, client: TestClient) -> None:
        resp = client.post("/dashboard/services", data=service_form(), follow_redirects=False)
        assert resp.status_code == 303
        assert resp.headers["location"] == "/dashboard/services"
        assert "Consulting" in client.get("/dashboard/services").text

    def test_form_error_keeps_entered_data(self, client: TestClient) -> None:
        resp = client.post(
            "/dashboard/services",
            data=service_form(name="Massage", price="not-a-number"),
            follow_redirects=False,
        )
        assert resp.status_code == 422
        assert 'value="Massage"' in resp.text
        assert "price" in resp.text

    def test_form_error_keeps_listing_filters(self, client: TestClient) -> None:
        _create(client, name="Hair cut", isActive="true")
        _create(client, name="Nails", isActive="false")

        resp = client.post(
            "/dashboard/services?status=true",
            data=service_form(name="Massage", price="abc"),
            follow_redirects=False,
        )
        assert resp.status_code == 422
        assert "All Services (1)" in resp.text
        assert "<strong>Hair cut</strong>" in resp.text
        assert "<strong>Nails</strong>" not in resp.text
        assert 'action="/dashboard/services?status=true"' in resp.text

    def test_update_error_keeps_listing_filters(self, client: TestClient) -> None:
        created = _create(client, name="Hair cut")
        _create(client, name="Nails")

        resp = client.post(
            f"/dashboard/services/{created['id']}?search=hair",
            data=service_form(name=""),
            follow_redirects=False,
        )
        assert resp.status_code == 422
        assert "All Services (1)" in resp.text
        assert 'value="hair"' in resp.text
        assert f'action="/dashboard/services/{created["id"]}?search=hair"' in resp.text

    def test_successful_create_returns_to_filtered_listing(self, client: TestClient) -> None:
        resp = client.post(
            "/dashboard/services?search=cons&status=true",
            data=service_form(),
            follow_redirects=False,
        )
        assert resp.status_code == 303
        assert resp.headers["location"] == "/dashboard/services?search=cons&status=true"

    def test_edit_page(self, client: TestClient) -> None:
        created = _create(client)
        resp = client.get(f"/dashboard/services/{created['id']}/edit")
        assert resp.status_code == 200
        assert "Edit Service" in resp.text
        assert f'action="/dashboard/services/{created["id"]}"' in resp.text

    def test_edit_missing_is_404(self, client: TestClient) -> None:
        assert client.get("/dashboard/services/missing/edit").status_code == 404

    def test_form_update_and_delete(self, client: TestClient) -> None:
        created = _create(client)
        resp = client.post(
            f"/dashboard/services/{created['id']}",
            data=service_form(name="Renamed"),
            follow_redirects=False,
        )
        assert resp.status_code == 303
        assert "Renamed" in client.get("/dashboard/services").text

        resp = client.post(f"/dashboard/services/{created['id']}/delete", follow_redirects=False)
        assert resp.status_code == 303
        assert client.post(f"/dashboard/services/{created['id']}/delete").status_code == 404

    def test_export_workbook(self, client: TestClient) -> None:
        _create(client, name="Hair cut", isActive="true")
        _create(client, name="Nails", isActive="false")
        resp = client.get("/dashboard/services/export", params={"status": "false"})
        assert resp.status_code == 200
        assert "spreadsheetml" in resp.headers["content-type"]

        ws = openpyxl.load_workbook(BytesIO(resp.content)).active
        rows = list(ws.iter_rows(values_only=True))
        assert rows[0][:4] == ("ID", "Name", "Description", "Price")
        assert [row[1] for row in rows[1:]] == ["Nails"]
