# =============================================================================
# HTTP API Tests
# =============================================================================
# Drives the FastAPI app through TestClient with the IMAP and SMTP fakes
# plugged in. Using the client as a context manager runs the lifespan, so
# the sweeper starts and sessions are closed on exit.
# =============================================================================

import pytest
from fastapi.testclient import TestClient

from mailhawk.config import Config
from mailhawk.session import SessionRegistry, establish_connection
from mailhawk.smtp import OutboundDispatcher
from mailhawk.web import create_app

LOGIN = {
    "email": "test@example.com",
    "password": "secret",
    "host": "imap.example.com",
    "port": 993,
    "secure": True,
}


def _build_app(fake_imap, smtp_recorder, config=None):
    opened = []

    async def connector(credentials, settings):
        connection = await establish_connection(
            credentials, settings, client_factory=lambda _: fake_imap,
        )
        opened.append(connection)
        return connection

    config = config or Config()
    app = create_app(
        config,
        registry=SessionRegistry(config.sessions),
        connector=connector,
        dispatcher=OutboundDispatcher(config.smtp, config.fetch, smtp_factory=smtp_recorder),
    )
    return app, opened


@pytest.fixture
def client(fake_imap, smtp_recorder):
    app, _ = _build_app(fake_imap, smtp_recorder)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def session_id(client):
    response = client.post("/api/connect", json=LOGIN)
    assert response.status_code == 200
    return response.json()["sessionId"]


# =============================================================================
# Sessions
# =============================================================================

def test_connect(client):
    response = client.post("/api/connect", json=LOGIN)

    data = response.json()
    assert data["success"] is True
    assert data["sessionId"]
    assert client.get("/api/health").json()["sessions"] == 1


def test_connect_wrong_password(client):
    response = client.post("/api/connect", json={**LOGIN, "password": "wrong"})

    assert response.status_code == 401
    data = response.json()
    assert data == {"success": False, "error": data["error"], "code": "authentication_failed"}
    assert "wrong" not in data["error"]


def test_connect_missing_fields(client):
    response = client.post("/api/connect", json={"email": "test@example.com"})

    assert response.status_code == 400
    assert response.json()["code"] == "invalid_request"


def test_connect_over_capacity_closes_the_connection(fake_imap, smtp_recorder):
    config = Config()
    config.sessions.max_sessions = 1
    app, opened = _build_app(fake_imap, smtp_recorder, config)

    with TestClient(app) as client:
        assert client.post("/api/connect", json=LOGIN).status_code == 200
        response = client.post("/api/connect", json=LOGIN)

    assert response.status_code == 503
    assert response.json()["code"] == "capacity_exceeded"
    # Refused before a second connection was opened
    assert len(opened) == 1


@pytest.mark.parametrize("method, path, body", [
    ("get", "/api/folders", None),
    ("get", "/api/emails", None),
    ("get", "/api/email/1", None),
    ("post", "/api/send-email", {"email": {"to": "a@example.com"}}),
    ("post", "/api/forward-email", {"originalEmailId": "1", "to": "a@example.com"}),
])
@pytest.mark.parametrize("session", [None, "no-such-session"])
def test_session_endpoints_require_a_session(client, smtp_recorder, method, path, body, session):
    params = {}
    if session is not None:
        params = {"sessionId": session}
        if body is not None:
            body = {**body, "sessionId": session}

    if method == "get":
        response = client.get(path, params=params)
    else:
        response = client.post(path, json=body)

    assert response.status_code == 401
    assert response.json()["success"] is False
    assert response.json()["code"] == "invalid_session"
    assert smtp_recorder.sent == []


def test_logout(client, session_id, fake_imap):
    assert client.post("/api/logout", json={"sessionId": session_id}).json() == {"success": True}

    assert fake_imap.logged_out
    assert client.get("/api/folders", params={"sessionId": session_id}).status_code == 401
    # Logging out twice is harmless
    assert client.post("/api/logout", json={"sessionId": session_id}).json() == {"success": True}


def test_shutdown_closes_sessions(fake_imap, smtp_recorder):
    app, _ = _build_app(fake_imap, smtp_recorder)

    with TestClient(app) as client:
        client.post("/api/connect", json=LOGIN)
        assert not fake_imap.logged_out

    assert fake_imap.logged_out


# =============================================================================
# Mailbox
# =============================================================================

def test_folders(client, session_id):
    data = client.get("/api/folders", params={"sessionId": session_id}).json()

    assert data["success"] is True
    paths = [f["path"] for f in data["folders"]]
    assert paths == ["INBOX", "Sent", "Work", "Work/Projects", "Work/Projects/Alpha"]
    assert data["folders"][4]["name"] == "Alpha"


def test_folders_with_counts(client, session_id):
    data = client.get("/api/folders", params={"sessionId": session_id, "withCounts": "true"}).json()
    assert data["folders"][0]["unread"] == 2


def test_emails(client, session_id):
    data = client.get("/api/emails", params={"sessionId": session_id, "folder": "INBOX"}).json()

    assert data["success"] is True
    assert "partial" not in data
    assert [e["subject"] for e in data["emails"]] == ["Report", "Newsletter", "Plain"]
    report = data["emails"][0]
    assert report["id"] == "12"
    assert report["hasAttachments"] is True
    assert report["isRead"] is False


def test_emails_unknown_folder(client, session_id):
    response = client.get("/api/emails", params={"sessionId": session_id, "folder": "Nope"})

    assert response.status_code == 500
    assert response.json()["code"] == "folder_error"


def test_email(client, session_id):
    data = client.get("/api/email/9", params={"sessionId": session_id}).json()

    assert data["success"] is True
    assert data["email"]["subject"] == "Newsletter"
    assert data["email"]["isRead"] is True
    assert "<script" not in data["email"]["body"]


def test_email_bad_id(client, session_id):
    response = client.get("/api/email/abc", params={"sessionId": session_id})

    assert response.status_code == 400
    assert response.json()["code"] == "invalid_request"


def test_email_not_found(client, session_id):
    response = client.get("/api/email/999", params={"sessionId": session_id})

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


# =============================================================================
# Outbound
# =============================================================================

def test_send_email(client, session_id, smtp_recorder):
    response = client.post("/api/send-email", json={
        "sessionId": session_id,
        "email": {
            "to": "a@example.com, b@example.com",
            "bcc": ["c@example.com"],
            "subject": "Hi",
            "text": "Hello",
            "html": "<p>Hello</p>",
            "inReplyTo": "<orig@example.com>",
        },
    })

    data = response.json()
    assert data["success"] is True
    message, sender, recipients = smtp_recorder.sent[0]
    assert data["messageId"] == message["Message-ID"]
    assert sender == "test@example.com"
    assert recipients == ["a@example.com", "b@example.com", "c@example.com"]
    assert message["In-Reply-To"] == "<orig@example.com>"
    assert smtp_recorder.clients[0].options["hostname"] == "smtp.example.com"


def test_send_email_with_smtp_config(client, session_id, smtp_recorder):
    client.post("/api/send-email", json={
        "sessionId": session_id,
        "email": {
            "to": ["a@example.com"],
            "subject": "Hi",
            "smtpConfig": {"host": "relay.example.net", "port": 465, "secure": True},
        },
    })

    options = smtp_recorder.clients[0].options
    assert (options["hostname"], options["port"], options["use_tls"]) == ("relay.example.net", 465, True)


def test_send_email_failure(client, session_id, smtp_recorder):
    smtp_recorder.reject_login = True

    response = client.post("/api/send-email", json={
        "sessionId": session_id,
        "email": {"to": "a@example.com", "subject": "Hi"},
    })

    assert response.status_code == 500
    assert response.json()["code"] == "dispatch_failure"


def test_forward_email(client, session_id, smtp_recorder):
    response = client.post("/api/forward-email", json={
        "sessionId": session_id,
        "originalEmailId": 12,
        "folder": "INBOX",
        "to": "dan@example.com",
        "cc": "",
        "additionalText": "FYI",
    })

    assert response.json()["success"] is True
    message, _, recipients = smtp_recorder.sent[0]
    assert message["Subject"] == "Fwd: Report"
    assert recipients == ["dan@example.com"]


def test_forward_email_accepts_null_fields(client, session_id, smtp_recorder):
    response = client.post("/api/forward-email", json={
        "sessionId": session_id,
        "originalEmailId": "9",
        "folder": None,
        "to": ["dan@example.com"],
        "additionalText": None,
    })

    assert response.json()["success"] is True
    message, _, _ = smtp_recorder.sent[0]
    assert message["Subject"] == "Fwd: Newsletter"


def test_forward_email_without_id(client, session_id, smtp_recorder):
    response = client.post("/api/forward-email", json={"sessionId": session_id, "to": "dan@example.com"})

    assert response.status_code == 400
    assert response.json()["code"] == "invalid_request"
    assert smtp_recorder.sent == []


def test_forward_email_checks_session_before_id(client):
    response = client.post("/api/forward-email", json={"sessionId": "no-such-session", "to": "dan@example.com"})

    assert response.status_code == 401
    assert response.json()["code"] == "invalid_session"


# =============================================================================
# Service
# =============================================================================

def test_health(client):
    data = client.get("/api/health").json()

    assert data["status"] == "ok"
    assert data["sessions"] == 0
    assert data["timestamp"]


def test_provider_config(client):
    providers = client.get("/api/config").json()["emailProviders"]

    assert providers[0] == {
        "name": "WEB.DE",
        "imapServer": "imap.web.de",
        "imapPort": 993,
        "smtpServer": "smtp.web.de",
        "smtpPort": 587,
        "secure": True,
    }


def test_default_servers(client):
    assert client.get("/config").json() == {
        "imap": {"host": "imap.web.de", "port": 993, "secure": True},
        "smtp": {"host": "smtp.web.de", "port": 587, "secure": False},
    }
