"""Tests for the HTTP surface: auth, error payloads and the main record flows."""
import pytest
from fastapi.testclient import TestClient

from integration_board.api.routes import get_audit_logger
from integration_board.auth import create_access_token, translate_auth_error
from integration_board.database import get_db
from integration_board.main import app
from integration_board.models.domain import UserRoleAssignment
from integration_board.models.enums import UserRole


@pytest.fixture
def client(session_factory, db_session, audit_logger):
    db_session.add(UserRoleAssignment(user_id="admin_1", role=UserRole.ADMIN))
    db_session.commit()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_audit_logger] = lambda: audit_logger
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {create_access_token('admin_1', 'admin@example.com')}"}


@pytest.fixture
def viewer_headers():
    return {"Authorization": f"Bearer {create_access_token('viewer_1')}"}


def _create_service(client, headers, name):
    response = client.get(f"/api/services/{name}", headers=headers)
    assert response.status_code == 200
    return response.json()


class TestAuth:
    """Every API route needs a valid bearer token."""

    def test_missing_token(self, client):
        response = client.get("/api/services")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "HTTP_401"

    def test_invalid_token(self, client):
        response = client.get("/api/services", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_health_is_public(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_provider_errors_are_translated(self):
        assert translate_auth_error("Invalid login credentials").message == "E-mail ou senha inválidos"
        assert translate_auth_error("Email not confirmed").message == "Confirme seu e-mail antes de entrar."
        assert translate_auth_error("Something else").message == "Something else"


class TestRecordFlows:
    """Create, update, move and delete through the API."""

    def test_viewer_can_read_but_not_write(self, client, admin_headers, viewer_headers):
        _create_service(client, admin_headers, "SMP")

        assert client.get("/api/services/SMP/records", headers=viewer_headers).status_code == 200

        response = client.post("/api/services/SMP/records", json={"client_name": "Acme"}, headers=viewer_headers)
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    def test_viewer_gets_404_for_unknown_service(self, client, viewer_headers):
        response = client.get("/api/services/Inexistente", headers=viewer_headers)
        assert response.status_code == 404

    def test_validation_error_payload(self, client, admin_headers):
        _create_service(client, admin_headers, "RC-V")

        response = client.post(
            "/api/services/RC-V/records",
            json={"client_name": "Acme", "status": "NOVO", "agidesk_ticket": "", "cadastro_date": "2024-01-01"},
            headers=admin_headers,
        )

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "RECORD_INVALID"
        assert [f["label"] for f in error["details"]["missing_fields"]] == ["Chamado Agidesk"]
        assert error["details"]["status_blocked"] is False

    def test_status_blocked_payload(self, client, admin_headers):
        _create_service(client, admin_headers, "SMP")

        response = client.post(
            "/api/services/SMP/records",
            json={"client_name": "Acme", "status": "REUNIAO", "meeting_datetime": "2024-01-01T10:00"},
            headers=admin_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"]["details"]["status_blocked"] is True

    def test_full_flow(self, client, admin_headers, audit_logger):
        _create_service(client, admin_headers, "SMP")

        created = client.post(
            "/api/services/SMP/records",
            json={"client_name": "Acme", "owner": "Ana"},
            headers=admin_headers,
        )
        assert created.status_code == 201
        record = created.json()
        assert record["status"] == "ANDAMENTO"

        duplicate = client.post("/api/services/SMP/records", json={"client_name": "Acme"}, headers=admin_headers)
        assert duplicate.status_code == 409

        moved = client.post(f"/api/records/{record['id']}/move", json={"status": "FINALIZADO"}, headers=admin_headers)
        assert moved.status_code == 200
        body = moved.json()
        assert body["applied"] is False
        assert [f["name"] for f in body["missing_fields"]] == ["end_date"]
        assert body["draft"]["status"] == "FINALIZADO"

        updated = client.patch(
            f"/api/records/{record['id']}",
            json={"status": "FINALIZADO", "end_date": "2024-01-10"},
            headers=admin_headers,
        )
        assert updated.status_code == 200
        assert updated.json()["end_date"] == "2024-01-10"

        audit_logger.flush()
        history = client.get(f"/api/records/{record['id']}/audit", headers=admin_headers).json()
        assert sorted(e["action"] for e in history) == ["CREATE", "STATUS_CHANGE", "UPDATE", "UPDATE"]

        listing = client.get("/api/audit", params={"service": "SMP", "action": "STATUS_CHANGE"}, headers=admin_headers)
        rows = listing.json()
        assert len(rows) == 1
        assert rows[0]["client_name"] == "Acme"
        assert rows[0]["service_name"] == "SMP"

        deleted = client.delete(f"/api/records/{record['id']}", headers=admin_headers)
        assert deleted.status_code == 204
        assert client.get(f"/api/records/{record['id']}", headers=admin_headers).status_code == 404

        audit_logger.flush()
        history = client.get(f"/api/records/{record['id']}/audit", headers=admin_headers).json()
        assert [e["action"] for e in history].count("DELETE") == 1

    def test_record_listing_filters(self, client, admin_headers):
        _create_service(client, admin_headers, "SMP")
        for name, owner in (("Acme", "Ana"), ("Beta Log", "Bruno")):
            client.post("/api/services/SMP/records", json={"client_name": name, "owner": owner}, headers=admin_headers)

        rows = client.get("/api/services/SMP/records", params={"search": "beta"}, headers=admin_headers).json()
        assert [r["client_name"] for r in rows] == ["Beta Log"]

        rows = client.get("/api/records", params={"owner": "Ana"}, headers=admin_headers).json()
        assert [r["client_name"] for r in rows] == ["Acme"]
        assert rows[0]["service_name"] == "SMP"
        assert rows[0]["elapsed_days"] == 0


class TestReporting:
    """Metrics, data quality and exports."""

    def test_statuses_per_service(self, client, admin_headers):
        rows = client.get("/api/statuses", params={"service": "SMP"}).json()
        assert [r["status"] for r in rows] == ["ANDAMENTO", "FINALIZADO", "CANCELADO", "DEVOLVIDO"]

    def test_metrics(self, client, admin_headers):
        _create_service(client, admin_headers, "SMP")
        client.post("/api/services/SMP/records", json={"client_name": "Acme"}, headers=admin_headers)

        response = client.get("/api/metrics", params={"service": "SMP"}, headers=admin_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["kpis"]["total"] == 1
        assert body["kpis"]["open"] == 1
        assert len(body["throughput_weekly"]) == 12
        assert [b["label"] for b in body["aging"]] == ["0–15", "15–25", "25–45", "45+"]

    def test_metrics_unknown_service(self, client, admin_headers):
        assert client.get("/api/metrics", params={"service": "X"}, headers=admin_headers).status_code == 404

    def test_data_quality_empty(self, client, admin_headers):
        response = client.get("/api/data-quality", headers=admin_headers)
        assert response.status_code == 200
        assert response.json() == []

    def test_csv_export(self, client, admin_headers):
        _create_service(client, admin_headers, "SMP")
        client.post("/api/services/SMP/records", json={"client_name": "Acme, Ltda"}, headers=admin_headers)

        response = client.get("/api/services/SMP/records/export.csv", headers=admin_headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.splitlines()
        assert lines[0].startswith("id,client_name,status")
        assert '"Acme, Ltda"' in lines[1]
