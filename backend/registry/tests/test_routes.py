from concurrent.futures import Future

import pytest
from fastapi.testclient import TestClient

from registry.console import ConsoleRegistry, RegistryConsole, get_console_registry
from registry.database import get_db
from registry.main import app
from registry.models import AdminUser
from registry.security import get_password_hash
from registry.services import ai_assistant
from registry.services.mail_dispatch import MailDispatcher

PASSWORD = "correct horse battery"


class InlineExecutor:
    def submit(self, fn, *args, **kwargs):
        future = Future()
        future.set_result(fn(*args, **kwargs))
        return future


class RecordingDispatcher(MailDispatcher):
    def __init__(self):
        self.sent = []

    def send(self, *, recipient, subject, html, display_name):
        self.sent.append({"to": recipient, "subject": subject, "html": html})


@pytest.fixture()
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture()
def client(db_session, dispatcher):
    consoles = ConsoleRegistry(
        factory=lambda: RegistryConsole(executor=InlineExecutor(), dispatcher=dispatcher))

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_console_registry] = lambda: consoles
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def admin(db_session):
    user = AdminUser(email="ops@academy.example", full_name="Ops Desk",
                     hashed_password=get_password_hash(PASSWORD))
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture()
def auth_headers(client, admin):
    resp = client.post("/api/auth/login", json={"email": "OPS@academy.example", "password": PASSWORD})
    assert resp.status_code == 200
    return {"Authorization": "Bearer {}".format(resp.json()["access_token"])}


def _register(client, auth_headers, **overrides):
    payload = {
        "full_name": "Layla Haddad",
        "email": "layla@example.com",
        "specialties": ["Arbitration"],
        "issue_date": "2024-02-01",
        "expiry_date": "2026-02-01",
        "renewal_due_date": "",
    }
    payload.update(overrides)
    return client.post("/api/admin/trainers", json=payload, headers=auth_headers)


def test_health_and_root(client):
    assert client.get("/health").json()["status"] == "healthy"
    body = client.get("/")
    assert body.status_code == 200
    assert "X-Request-ID" in body.headers


def test_login_rejects_bad_password(client, admin):
    resp = client.post("/api/auth/login", json={"email": "ops@academy.example", "password": "nope"})
    assert resp.status_code == 401
    assert resp.json() == {
        "detail": "Authentication failed. Invalid credentials.",
        "error": "authentication",
        "setup_required": False,
    }


def test_login_opens_admin_console(client, admin):
    resp = client.post("/api/auth/login", json={"email": "ops@academy.example", "password": PASSWORD})
    body = resp.json()
    assert body["token_type"] == "bearer"
    assert body["console"]["mode"] == "ADMIN"
    assert body["session"]["email"] == "ops@academy.example"


def test_admin_routes_require_token(client):
    assert client.get("/api/admin/console").status_code == 401
    assert client.post("/api/admin/trainers", json={}).status_code == 401


def test_me_returns_session(client, auth_headers):
    assert client.get("/api/auth/me", headers=auth_headers).json()["full_name"] == "Ops Desk"


def test_register_trainer(client, auth_headers):
    resp = _register(client, auth_headers, certification_id="CLIENT-SIDE")
    assert resp.status_code == 201
    trainer = resp.json()
    assert trainer["certification_id"].startswith("ILA-CLT-")
    assert trainer["certification_id"].endswith("-0001")
    assert trainer["renewal_due_date"] is None

    console = client.get("/api/admin/console", headers=auth_headers).json()
    assert console["trainers"][0]["id"] == trainer["id"]
    assert console["activity"][0]["action"] == "Registered new asset: Layla Haddad"


def test_register_requires_name_and_email(client, auth_headers):
    resp = _register(client, auth_headers, email="")
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation"


def test_update_and_delete_trainer(client, auth_headers):
    trainer = _register(client, auth_headers).json()

    resp = client.put("/api/admin/trainers/{}".format(trainer["id"]),
                      json={"status": "Suspended", "certification_id": "X"}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "Suspended"
    assert resp.json()["certification_id"] == trainer["certification_id"]

    resp = client.delete("/api/admin/trainers/{}".format(trainer["id"]), headers=auth_headers)
    assert resp.json() == {"status": "deleted", "id": trainer["id"]}


def test_delete_unknown_trainer(client, auth_headers):
    resp = client.delete("/api/admin/trainers/missing", headers=auth_headers)
    assert resp.status_code == 404
    assert resp.json()["detail"].startswith("Cloud Deletion Failed:")


def test_public_portal_hides_private_fields(client, auth_headers):
    trainer = _register(client, auth_headers).json()
    _register(client, auth_headers, full_name="Omar Khalil", email="omar@example.com",
              specialties=["Corporate Governance"])

    body = client.get("/api/public/portal", params={"q": "arbitration",
                                                    "verify": trainer["certification_id"].lower()}).json()

    assert [t["full_name"] for t in body["directory"]] == ["Layla Haddad"]
    assert body["total"] == 2
    assert "email" not in body["directory"][0]
    assert body["verification"]["found"] is True


def test_verify_endpoint(client, auth_headers):
    trainer = _register(client, auth_headers).json()

    found = client.get("/api/verify/{}".format(trainer["certification_id"]))
    assert found.status_code == 200
    assert found.json()["trainer"]["full_name"] == "Layla Haddad"
    assert "files" not in found.json()["trainer"]

    missing = client.get("/api/verify/ILA-CLT-1999-0001")
    assert missing.status_code == 404
    assert missing.json()["found"] is False


def test_announcement_unavailable_without_ai(client, auth_headers, monkeypatch):
    monkeypatch.setattr(ai_assistant, "client", None)
    trainer = _register(client, auth_headers).json()
    resp = client.get("/api/verify/{}/announcement".format(trainer["id"]))
    assert resp.status_code == 204


def test_announcement_audio(client, auth_headers, monkeypatch):
    monkeypatch.setattr(ai_assistant, "speak_verification_result", lambda name, status: b"ID3")
    trainer = _register(client, auth_headers).json()
    resp = client.get("/api/verify/{}/announcement".format(trainer["certification_id"]))
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "audio/mpeg"
    assert resp.content == b"ID3"


def test_email_workflow_over_http(client, auth_headers, dispatcher, monkeypatch):
    monkeypatch.setattr(ai_assistant, "generate_text",
                        lambda prompt, purpose="text": "Subject: Welcome\nDear Layla,\nWelcome <aboard>.")
    trainer = _register(client, auth_headers).json()

    draft = client.post("/api/admin/emails/draft", headers=auth_headers,
                        json={"trainer_id": trainer["id"], "type": "Welcome Email"}).json()
    assert draft["email_stage"] == "PREVIEW"
    assert draft["email_preview"]["subject"] == "Welcome"

    client.put("/api/admin/emails/preview", headers=auth_headers, json={"subject": "Welcome to the registry"})
    sent = client.post("/api/admin/emails/send", headers=auth_headers).json()

    assert sent["email_stage"] == "LOGGED_DELIVERED"
    assert sent["log"]["status"] == "DELIVERED"
    assert dispatcher.sent[0]["html"] == "Dear Layla,<br>Welcome &lt;aboard&gt;."

    logs = client.get("/api/admin/email-logs", headers=auth_headers).json()
    assert logs["total"] == 1
    assert logs["data"][0]["subject"] == "Welcome to the registry"


def test_draft_unavailable_returns_idle(client, auth_headers, monkeypatch):
    monkeypatch.setattr(ai_assistant, "generate_text", lambda prompt, purpose="text": None)
    trainer = _register(client, auth_headers).json()
    body = client.post("/api/admin/emails/draft", headers=auth_headers,
                       json={"trainer_id": trainer["id"], "type": "Renewal Reminder"}).json()
    assert body["email_stage"] == "IDLE"
    assert body["email_preview"] is None


def test_document_upload(client, auth_headers):
    resp = client.post("/api/admin/trainers/draft-1/documents", headers=auth_headers,
                       files={"file": ("certificate.pdf", b"%PDF-1.4 test", "application/pdf")})
    assert resp.status_code == 201
    entry = resp.json()
    assert entry["type"] == "PDF"
    assert entry["url"].startswith("/files/trainer-vault/documents/draft-1/")
    assert entry["url"].endswith(".pdf")


def test_document_upload_rejects_unsafe_folder_key(client, auth_headers):
    resp = client.post("/api/admin/trainers/draft.1/documents", headers=auth_headers,
                       files={"file": ("certificate.pdf", b"%PDF-1.4 test", "application/pdf")})
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation"


def test_logout_closes_console(client, auth_headers):
    assert client.post("/api/auth/logout", headers=auth_headers).json() == {"status": "signed_out"}
