# =============================================================================
# Gateway Errors
# =============================================================================
# The error taxonomy shared by every pipeline and the HTTP boundary.
#
# Each class carries a stable machine-readable `code` and the HTTP status the
# web layer answers with. Transport modules (imap/, smtp/) raise their own
# low-level exceptions; the pipelines translate those into the classes below.
# =============================================================================


class GatewayError(Exception):
    """
    Base class for errors surfaced to gateway clients.

    Attributes:
        code: Stable error code included in JSON responses.
        status_code: HTTP status used when rendering the error.
    """
    code = "gateway_error"
    status_code = 500

    def __init__(self, message: str = "", *, status_code: int | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        """JSON body for this error."""
        return {"success": False, "error": self.message, "code": self.code}


class InvalidSession(GatewayError):
    """No session id was given, or it is not registered."""
    code = "invalid_session"
    status_code = 401


class InvalidRequest(GatewayError):
    """The request is malformed (bad id, missing recipients, ...)."""
    code = "invalid_request"
    status_code = 400


class CapacityExceeded(GatewayError):
    """The session registry is full."""
    code = "capacity_exceeded"
    status_code = 503


# -----------------------------------------------------------------------------
# Connect-time failures
# -----------------------------------------------------------------------------

class ConnectionFailure(GatewayError):
    """Opening or authenticating the IMAP session failed."""
    code = "connection_failure"
    status_code = 500


class AuthenticationFailed(ConnectionFailure):
    """The server rejected the credentials."""
    code = "authentication_failed"
    status_code = 401


class HostUnreachable(ConnectionFailure):
    """The server could not be reached or did not greet in time."""
    code = "host_unreachable"


class ProtocolError(ConnectionFailure):
    """The server answered with something we could not work with."""
    code = "protocol_error"


# -----------------------------------------------------------------------------
# Pipeline failures
# -----------------------------------------------------------------------------

class FolderError(GatewayError):
    """The requested folder could not be selected."""
    code = "folder_error"


class FetchTimeout(GatewayError):
    """A watchdog fired before any usable data arrived."""
    code = "fetch_timeout"
    status_code = 504


class FetchFailure(GatewayError):
    """The fetch itself failed."""
    code = "fetch_failure"


class NotFound(GatewayError):
    """The message id resolves neither as a UID nor as a sequence number."""
    code = "not_found"
    status_code = 404


class ParseFailure(GatewayError):
    """A message body could not be parsed."""
    code = "parse_failure"


class DispatchFailure(GatewayError):
    """Handing the message to the SMTP relay failed."""
    code = "dispatch_failure"
