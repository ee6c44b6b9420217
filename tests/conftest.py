# =============================================================================
# Pytest Configuration and Fixtures
# =============================================================================
# Shared fixtures for the Mailhawk test suite. Network-facing clients are
# replaced by the fakes in tests/fakes.py.
# =============================================================================

import pytest
import tempfile
from pathlib import Path

from mailhawk.config import FetchSettings
from mailhawk.core import Credentials

from fakes import ATTACHMENT_STRUCTURE, FakeIMAP, FakeMailbox, FakeMessage, SMTPRecorder, build_raw


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def credentials():
    """Login data for the fake account."""
    return Credentials(
        email="test@example.com",
        password="secret",
        host="imap.example.com",
        port=993,
        use_tls=True,
    )


@pytest.fixture
def fast_settings():
    """Fetch settings with short watchdogs so timeout tests stay quick."""
    return FetchSettings(
        listing_timeout=0.2,
        message_timeout=0.2,
        large_message_timeout=0.5,
        batch_size=4,
    )


@pytest.fixture
def sample_html_email():
    """Sample HTML email content for rendering tests."""
    return """
    <!DOCTYPE html>
    <html>
    <head>
        <style>
            body { font-family: Arial, sans-serif; }
        </style>
        <script>document.location = "https://evil.example.com";</script>
    </head>
    <body onload="track()">
        <div class="header">
            <h1>Welcome to Our Newsletter!</h1>
        </div>
        <div class="content">
            <p>Hello <strong>User</strong>,</p>
            <ul>
                <li>Bold text: <b>bold</b></li>
                <li>Links: <a href="https://example.com" onclick="steal()">Click here</a></li>
            </ul>
            <img src="cid:logo123" alt="Company Logo" width="200">
        </div>
    </body>
    </html>
    """


@pytest.fixture
def mailbox(sample_html_email):
    """An account with a few folders and three INBOX messages."""
    inbox = [
        FakeMessage(
            uid=7,
            raw=build_raw(subject="Plain", date="Mon, 15 Jan 2024 10:30:00 +0000"),
            flags=["\\Seen"],
        ),
        FakeMessage(
            uid=9,
            raw=build_raw(
                subject="Newsletter",
                date="Tue, 16 Jan 2024 08:00:00 +0000",
                html=sample_html_email,
            ),
        ),
        FakeMessage(
            uid=12,
            raw=build_raw(
                subject="Report",
                sender='"Carol, Finance" <carol@example.com>',
                date="Wed, 17 Jan 2024 09:15:00 +0000",
                text="See attached.",
                attachment=("report.pdf", "application/pdf", b"%PDF-1.4 fake"),
            ),
            structure=ATTACHMENT_STRUCTURE,
        ),
    ]
    return FakeMailbox(
        folders={
            "INBOX": inbox,
            "Sent": [],
            "Work/Projects/Alpha": [],
        },
        unseen={"INBOX": 2, "Sent": 0},
    )


@pytest.fixture
def fake_imap(mailbox):
    """aioimaplib stand-in serving `mailbox`."""
    return FakeIMAP(mailbox)


@pytest.fixture
def smtp_recorder():
    """aiosmtplib stand-in factory recording every message sent."""
    return SMTPRecorder()
