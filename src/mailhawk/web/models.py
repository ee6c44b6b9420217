# =============================================================================
# Request Models
# =============================================================================
# pydantic models for the JSON bodies the API accepts.
#
# The wire format is camelCase (sessionId, originalEmailId, ...); the models
# use snake_case attributes with camelCase aliases. Session ids are optional
# at this level so that a missing id is reported as an invalid session
# (401), not as a malformed request (400).
# =============================================================================

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from mailhawk.core import Credentials
from mailhawk.smtp.client import EmailDraft
from mailhawk.smtp.dispatch import SmtpRelay, recipient_list


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConnectRequest(ApiModel):
    email: str
    password: str
    host: str
    port: int = 993
    secure: bool = True

    def to_credentials(self) -> Credentials:
        return Credentials(
            email=self.email.strip(),
            password=self.password,
            host=self.host.strip(),
            port=self.port,
            use_tls=self.secure,
        )


class SmtpConfig(ApiModel):
    host: str | None = None
    port: int | None = None
    secure: bool | None = None

    def to_relay(self) -> SmtpRelay:
        return SmtpRelay(host=self.host or None, port=self.port, secure=self.secure)


class OutgoingEmail(ApiModel):
    to: str | list[str] = []
    cc: str | list[str] | None = None
    bcc: str | list[str] | None = None
    subject: str = ""
    text: str = ""
    html: str = ""
    in_reply_to: str | None = None
    references: str | list[str] | None = None
    smtp_config: SmtpConfig | None = None

    def to_draft(self) -> EmailDraft:
        references = self.references or []
        if isinstance(references, str):
            references = references.split()
        return EmailDraft(
            to=recipient_list(self.to),
            cc=recipient_list(self.cc),
            bcc=recipient_list(self.bcc),
            subject=self.subject,
            body_text=self.text,
            body_html=self.html,
            in_reply_to=self.in_reply_to or "",
            references=list(references),
        )


class SendRequest(ApiModel):
    session_id: str | None = None
    email: OutgoingEmail = OutgoingEmail()


class ForwardRequest(ApiModel):
    session_id: str | None = None
    original_email_id: str | int | None = None
    folder: str | None = "INBOX"
    to: str | list[str] | None = None
    cc: str | list[str] | None = None
    bcc: str | list[str] | None = None
    additional_text: str | None = ""


class LogoutRequest(ApiModel):
    session_id: str | None = None
