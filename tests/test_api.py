"""
API tests - the HTTP surface end to end.

These tests prove:
- Errors come back as {"error": {code, message, details}} with the right status
- Field teams only see and act on their own tickets
- A ticket can be taken from creation to admin signature over HTTP
"""
import jwt
import pytest
from fastapi.testclient import TestClient

from worksign.core.config import get_settings
from worksign.database import get_db
from worksign.main import app
from tests.conftest import TEAM_A

SUMMARY = "Excavated 40m of trench along Elm Street"

TICKET_PAYLOAD = {
    "name_of_work": "Fibre backbone extension",
    "department": "Public Works",
    "field_officer_name": "J. Carter",
    "contact_no": "+15551234567",
    "assignment_name": "Ward 7 trenching",
    "description": "Trench and lay conduit along Elm Street",
    "date_of_commencement": "2026-03-02T00:00:00",
    "number_of_working_days": 2,
    "assigned_team_id": TEAM_A.id,
}


def _auth(sub, role, team_id=None):
    settings = get_settings()
    claims = {"sub": sub, "role": role}
    if team_id:
        claims["team_id"] = team_id
    token = jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return {"Authorization": f"Bearer {token}"}


ADMIN = _auth("admin_1", "admin")
ALICE = _auth("user_alice", "field_team")
BOB = _auth("user_bob", "field_team")
TEAM_A_LOGIN = _auth("team_a_login", "field_team", team_id=TEAM_A.id)


@pytest.fixture
def client(db_session, directory):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def ticket_id(client):
    response = client.post("/api/tickets", json=TICKET_PAYLOAD, headers=ADMIN)
    assert response.status_code == 201
    return response.json()["id"]


def _write(client, ticket_id, day, headers=ALICE):
    response = client.post(
        f"/api/tickets/{ticket_id}/progress",
        json={"day": day, "summary": SUMMARY},
        headers=headers,
    )
    assert response.status_code == 200, response.text
    return response.json()["progress_id"]


def _sign(client, ticket_id, progress_id, headers=ALICE):
    link = client.post(f"/api/tickets/{ticket_id}/progress/{progress_id}/link", headers=headers).json()
    response = client.post(
        f"/api/progress/{link['token']}/signature",
        json={"signature": "J. Carter", "signature_type": "text"},
    )
    assert response.status_code == 200, response.text
    return link["token"]


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "worksign"}


class TestAuthentication:
    """Bearer credential handling."""

    def test_missing_credential(self, client):
        response = client.get("/api/tickets")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTHENTICATION_ERROR"

    def test_bad_credential(self, client):
        response = client.get("/api/tickets", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid token"

    def test_field_team_cannot_assign(self, client, ticket_id):
        response = client.patch(f"/api/tickets/{ticket_id}/assign", json={"team_id": "team_b"}, headers=ALICE)

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "PERMISSION_DENIED"


class TestTickets:
    """Ticket CRUD and visibility."""

    def test_create_ticket(self, client):
        response = client.post("/api/tickets", json=TICKET_PAYLOAD, headers=ADMIN)

        assert response.status_code == 201
        body = response.json()
        assert body["ticket_no"] == f"TKT{body['id']:03d}"
        assert body["status"] == "in_progress"
        assert body["assigned_team_name"] == TEAM_A.name
        assert body["created_by_name"] == "Administrator A"
        assert body["daily_progress"] == []

    def test_create_ticket_validation_error(self, client):
        payload = dict(TICKET_PAYLOAD, number_of_working_days=0)

        response = client.post("/api/tickets", json=payload, headers=ADMIN)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_field_team_cannot_create_for_other_team(self, client):
        response = client.post("/api/tickets", json=TICKET_PAYLOAD, headers=BOB)

        assert response.status_code == 403

    def test_unknown_team(self, client):
        payload = dict(TICKET_PAYLOAD, assigned_team_id="team_z")

        response = client.post("/api/tickets", json=payload, headers=ADMIN)

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Team not found"

    def test_listing_is_scoped_by_team(self, client, ticket_id):
        assert [t["id"] for t in client.get("/api/tickets", headers=ADMIN).json()] == [ticket_id]
        assert [t["id"] for t in client.get("/api/tickets", headers=ALICE).json()] == [ticket_id]
        assert client.get("/api/tickets", headers=BOB).json() == []

    def test_listing_filters_by_status(self, client, ticket_id):
        assert client.get("/api/tickets?status=pending", headers=ADMIN).json() == []
        assert len(client.get("/api/tickets?status=in_progress", headers=ADMIN).json()) == 1

    def test_other_team_cannot_view(self, client, ticket_id):
        response = client.get(f"/api/tickets/{ticket_id}", headers=BOB)

        assert response.status_code == 403

    def test_missing_ticket(self, client):
        response = client.get("/api/tickets/999", headers=ADMIN)

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Ticket not found"

    def test_reassign_and_history(self, client, ticket_id):
        response = client.patch(f"/api/tickets/{ticket_id}/assign", json={"team_id": "team_b"}, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["assigned_team_id"] == "team_b"

        history = client.get(f"/api/tickets/{ticket_id}/history", headers=ADMIN).json()
        assert [h["action"] for h in history] == ["created", "assigned"]

    def test_invalid_status(self, client, ticket_id):
        response = client.patch(f"/api/tickets/{ticket_id}/status", json={"status": "archived"}, headers=ADMIN)

        assert response.status_code == 400
        assert "Invalid status" in response.json()["error"]["message"]

    def test_update_ticket(self, client, ticket_id):
        response = client.patch(
            f"/api/tickets/{ticket_id}", json={"description": "Trench only"}, headers=ADMIN
        )

        assert response.status_code == 200
        assert response.json()["description"] == "Trench only"

    def test_field_team_cannot_edit_schedule(self, client, ticket_id):
        """The assigned team can't shrink or stretch the days the admin gate counts."""
        response = client.patch(
            f"/api/tickets/{ticket_id}", json={"number_of_working_days": 5}, headers=ALICE
        )

        assert response.status_code == 403
        ticket = client.get(f"/api/tickets/{ticket_id}", headers=ADMIN).json()
        assert ticket["number_of_working_days"] == 2


class TestProgressEndpoints:
    """Progress writes, next day and photos."""

    def test_write_and_edit_message(self, client, ticket_id):
        created = client.post(
            f"/api/tickets/{ticket_id}/progress", json={"day": 1, "summary": SUMMARY}, headers=ALICE
        ).json()
        assert created["message"] == "Progress saved successfully"

        edited = client.post(
            f"/api/tickets/{ticket_id}/progress",
            json={"day": 1, "summary": "Laid conduit in the trench", "progress_id": created["progress_id"]},
            headers=ALICE,
        ).json()
        assert edited["message"] == "Progress updated successfully"
        assert edited["progress_id"] == created["progress_id"]

    def test_other_team_cannot_write(self, client, ticket_id):
        response = client.post(
            f"/api/tickets/{ticket_id}/progress", json={"day": 1, "summary": SUMMARY}, headers=BOB
        )

        assert response.status_code == 403

    def test_team_login_writes_without_author(self, client, ticket_id):
        progress_id = _write(client, ticket_id, 1, headers=TEAM_A_LOGIN)

        ticket = client.get(f"/api/tickets/{ticket_id}", headers=ADMIN).json()
        entry = ticket["daily_progress"][0]
        assert entry["id"] == progress_id
        assert entry["team_id"] == TEAM_A.id
        assert entry["author_id"] is None

    def test_next_day(self, client, ticket_id):
        assert client.get(f"/api/tickets/{ticket_id}/progress/next-day", headers=ALICE).json() == {
            "day": 1, "number_of_working_days": 2
        }

        progress_id = _write(client, ticket_id, 1)
        assert client.get(f"/api/tickets/{ticket_id}/progress/next-day", headers=ALICE).json()["day"] == 1

        _sign(client, ticket_id, progress_id)
        assert client.get(f"/api/tickets/{ticket_id}/progress/next-day", headers=ALICE).json()["day"] == 2

    def test_attach_and_remove_photo(self, client, ticket_id):
        progress_id = _write(client, ticket_id, 1)
        url = f"/api/tickets/{ticket_id}/progress/{progress_id}/photos"

        attached = client.post(url, json={"url": "https://cdn.example.com/p1.jpg"}, headers=ALICE)
        assert attached.json()["photos"] == ["https://cdn.example.com/p1.jpg"]

        removed = client.delete(url, params={"url": "https://cdn.example.com/p1.jpg"}, headers=ALICE)
        assert removed.json()["photos"] == []


class TestLinkEndpoints:
    """Links and the unauthenticated signing page."""

    def test_issue_link(self, client, ticket_id):
        progress_id = _write(client, ticket_id, 1)

        first = client.post(f"/api/tickets/{ticket_id}/progress/{progress_id}/link", headers=ALICE).json()
        second = client.post(f"/api/tickets/{ticket_id}/progress/{progress_id}/link", headers=ALICE).json()

        assert first["token"] == second["token"]
        assert first["url"].endswith(f"/progress/{first['token']}")

    def test_other_team_cannot_issue_link(self, client, ticket_id):
        progress_id = _write(client, ticket_id, 1)

        response = client.post(f"/api/tickets/{ticket_id}/progress/{progress_id}/link", headers=BOB)

        assert response.status_code == 403

    def test_public_view(self, client, ticket_id):
        progress_id = _write(client, ticket_id, 1)
        token = client.post(f"/api/tickets/{ticket_id}/progress/{progress_id}/link", headers=ALICE).json()["token"]

        response = client.get(f"/api/progress/{token}")

        assert response.status_code == 200
        body = response.json()
        assert body["ticket"]["assignment_name"] == "Ward 7 trenching"
        assert body["progress"]["day"] == 1
        assert body["progress"]["added_by_name"] == "Alice Moreno"
        assert body["progress"]["field_officer_signed"] is False

    def test_spent_link(self, client, ticket_id):
        progress_id = _write(client, ticket_id, 1)
        token = _sign(client, ticket_id, progress_id)

        view = client.get(f"/api/progress/{token}")
        resign = client.post(f"/api/progress/{token}/signature", json={"signature": "J. Carter"})

        assert view.status_code == 404
        assert resign.status_code == 404
        assert resign.json()["error"]["message"] == "Invalid or expired link"

    def test_bad_signature_type(self, client, ticket_id):
        progress_id = _write(client, ticket_id, 1)
        token = client.post(f"/api/tickets/{ticket_id}/progress/{progress_id}/link", headers=ALICE).json()["token"]

        response = client.post(
            f"/api/progress/{token}/signature", json={"signature": "J. Carter", "signature_type": "stamp"}
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid signature type"


class TestAdminSignatureFlow:
    """From creation to the final admin signature."""

    def test_refused_until_every_day_signed(self, client, ticket_id):
        p1 = _write(client, ticket_id, 1)
        _sign(client, ticket_id, p1)

        readiness = client.get(f"/api/tickets/{ticket_id}/admin-readiness", headers=ADMIN).json()
        assert readiness == {"ready": False, "missing_days": [2], "unsigned_progress_ids": []}

        response = client.post(
            f"/api/tickets/{ticket_id}/admin-signature", json={"signature": "A. Admin"}, headers=ADMIN
        )
        assert response.status_code == 412
        assert response.json()["error"]["details"]["missing_days"] == [2]

    def test_field_team_cannot_admin_sign(self, client, ticket_id):
        response = client.post(
            f"/api/tickets/{ticket_id}/admin-signature", json={"signature": "A. Admin"}, headers=ALICE
        )

        assert response.status_code == 403

    def test_full_flow(self, client, ticket_id):
        for day in (1, 2):
            _sign(client, ticket_id, _write(client, ticket_id, day))
        assert client.get(f"/api/tickets/{ticket_id}/admin-readiness", headers=ADMIN).json()["ready"] is True

        response = client.post(
            f"/api/tickets/{ticket_id}/admin-signature", json={"signature": "A. Admin"}, headers=ADMIN
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "done"
        assert body["admin_signed"] is True
        assert body["assigned_team_id"] is None

        again = client.post(
            f"/api/tickets/{ticket_id}/admin-signature", json={"signature": "A. Admin"}, headers=ADMIN
        )
        assert again.status_code == 409

        # Closed tickets take no more progress, even from admins
        late = client.post(
            f"/api/tickets/{ticket_id}/progress", json={"day": 2, "summary": SUMMARY}, headers=ADMIN
        )
        assert late.status_code == 409

        # Outsiders are refused before learning the ticket is closed
        outsider = client.post(
            f"/api/tickets/{ticket_id}/progress", json={"day": 2, "summary": SUMMARY}, headers=BOB
        )
        assert outsider.status_code == 403
