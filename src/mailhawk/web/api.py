# =============================================================================
# HTTP API
# =============================================================================
# The JSON-over-HTTP boundary of the gateway, built on FastAPI.
#
# Every endpoint except connect/health/config resolves its session first and
# then runs exactly one pipeline. Errors from the pipelines are GatewayError
# subclasses; a single exception handler renders them as
#
#     {"success": false, "error": "<message>", "code": "<code>"}
#
# with the status code the error class carries.
#
# Collaborators (registry, connector, dispatcher) live on app.state so tests
# can build an app around fakes with create_app(...).
# =============================================================================

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mailhawk import __version__
from mailhawk.config import Config, IMAPSettings
from mailhawk.core import Credentials, GatewayError, InvalidRequest
from mailhawk.imap.client import IMAPConnection
from mailhawk.imap.folders import list_folders
from mailhawk.imap.listing import list_messages
from mailhawk.imap.retrieval import fetch_message
from mailhawk.session.establisher import establish_connection
from mailhawk.session.lifecycle import SessionSweeper, shutdown_sessions
from mailhawk.session.registry import SessionRegistry
from mailhawk.smtp.dispatch import OutboundDispatcher, recipient_list
from mailhawk.web.models import ConnectRequest, ForwardRequest, LogoutRequest, SendRequest

logger = logging.getLogger(__name__)

Connector = Callable[[Credentials, IMAPSettings], Awaitable[IMAPConnection]]


@dataclass
class Gateway:
    """The collaborators every request handler works with."""
    config: Config
    registry: SessionRegistry
    connector: Connector
    dispatcher: OutboundDispatcher


def get_gateway(request: Request) -> Gateway:
    return request.app.state.gateway


router = APIRouter(prefix="/api")


# =============================================================================
# Session endpoints
# =============================================================================

@router.post("/connect")
async def connect(body: ConnectRequest, gateway: Gateway = Depends(get_gateway)) -> dict:
    credentials = body.to_credentials()
    logger.info(f"Connect request for {credentials}")

    # Refuse before dialing out if the table is already full
    gateway.registry.check_capacity()

    connection = await gateway.connector(credentials, gateway.config.imap)
    try:
        session_id = gateway.registry.create(connection)
    except GatewayError:
        await connection.close()
        raise

    return {"success": True, "sessionId": session_id}


@router.post("/logout")
async def logout(body: LogoutRequest, gateway: Gateway = Depends(get_gateway)) -> dict:
    if await gateway.registry.close(body.session_id):
        logger.info("Session logged out")
    return {"success": True}


# =============================================================================
# Mailbox endpoints
# =============================================================================

@router.get("/folders")
async def folders(
    session_id: str | None = Query(None, alias="sessionId"),
    with_counts: bool = Query(False, alias="withCounts"),
    gateway: Gateway = Depends(get_gateway),
) -> dict:
    session = gateway.registry.get(session_id)
    result = await list_folders(session.connection, with_counts=with_counts)
    return {"success": True, "folders": [f.to_dict() for f in result]}


@router.get("/emails")
async def emails(
    session_id: str | None = Query(None, alias="sessionId"),
    folder: str = "INBOX",
    gateway: Gateway = Depends(get_gateway),
) -> dict:
    session = gateway.registry.get(session_id)
    result = await list_messages(session.connection, folder or "INBOX", gateway.config.fetch)
    return result.to_dict()


@router.get("/email/{email_id}")
async def email(
    email_id: str,
    session_id: str | None = Query(None, alias="sessionId"),
    folder: str = "INBOX",
    gateway: Gateway = Depends(get_gateway),
) -> dict:
    session = gateway.registry.get(session_id)
    result = await fetch_message(session.connection, email_id, folder or "INBOX", gateway.config.fetch)
    return result.to_dict()


# =============================================================================
# Outbound endpoints
# =============================================================================

@router.post("/send-email")
async def send_email(body: SendRequest, gateway: Gateway = Depends(get_gateway)) -> dict:
    session = gateway.registry.get(body.session_id)
    relay = body.email.smtp_config.to_relay() if body.email.smtp_config else None
    message_id = await gateway.dispatcher.send(session.credentials, body.email.to_draft(), relay)
    return {"success": True, "messageId": message_id}


@router.post("/forward-email")
async def forward_email(body: ForwardRequest, gateway: Gateway = Depends(get_gateway)) -> dict:
    session = gateway.registry.get(body.session_id)
    if body.original_email_id is None:
        raise InvalidRequest("Missing originalEmailId")
    message_id = await gateway.dispatcher.forward(
        session.credentials,
        session.connection,
        str(body.original_email_id),
        folder=body.folder or "INBOX",
        to=recipient_list(body.to),
        cc=recipient_list(body.cc),
        bcc=recipient_list(body.bcc),
        additional_text=body.additional_text or "",
    )
    return {"success": True, "messageId": message_id}


# =============================================================================
# Service endpoints
# =============================================================================

@router.get("/health")
async def health(gateway: Gateway = Depends(get_gateway)) -> dict:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "sessions": len(gateway.registry),
    }


@router.get("/config")
async def provider_config(gateway: Gateway = Depends(get_gateway)) -> dict:
    return {"emailProviders": [p.to_dict() for p in gateway.config.providers]}


async def default_servers(gateway: Gateway = Depends(get_gateway)) -> dict:
    """Default IMAP/SMTP servers for the login form."""
    return {
        "imap": gateway.config.default_imap.to_dict(),
        "smtp": gateway.config.default_smtp.to_dict(),
    }


# =============================================================================
# Error handlers
# =============================================================================

async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = ", ".join(
        ".".join(str(part) for part in error.get("loc", ())[1:]) or "body"
        for error in exc.errors()
    )
    return JSONResponse(
        {"success": False, "error": f"Invalid request: {fields}", "code": "invalid_request"},
        status_code=400,
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error in {request.method} {request.url.path}")
    return JSONResponse(
        {"success": False, "error": "Internal server error", "code": "internal_error"},
        status_code=500,
    )


# =============================================================================
# Application factory
# =============================================================================

def create_app(
    config: Config | None = None,
    *,
    registry: SessionRegistry | None = None,
    connector: Connector | None = None,
    dispatcher: OutboundDispatcher | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Loaded configuration (defaults if omitted).
        registry: Session table; a fresh one if omitted.
        connector: Opens IMAP connections; establish_connection if omitted.
        dispatcher: Sends mail; an OutboundDispatcher if omitted.

    Returns:
        The application, ready for uvicorn.
    """
    config = config or Config()
    registry = registry or SessionRegistry(config.sessions)
    gateway = Gateway(
        config=config,
        registry=registry,
        connector=connector or establish_connection,
        dispatcher=dispatcher or OutboundDispatcher(config.smtp, config.fetch),
    )
    sweeper = SessionSweeper(registry)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper.start()
        logger.info("Mailhawk gateway started")
        try:
            yield
        finally:
            closed = await shutdown_sessions(registry, sweeper)
            logger.info(f"Mailhawk gateway stopped ({closed} session(s) closed)")

    app = FastAPI(title="Mailhawk", version=__version__, lifespan=lifespan)
    app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.server.cors_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    app.include_router(router)
    app.add_api_route("/config", default_servers, methods=["GET"])

    return app
