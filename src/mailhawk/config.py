# =============================================================================
# Configuration Management
# =============================================================================
# Handles loading, saving, and validating Mailhawk configuration.
#
# XDG Base Directory Compliance (https://specifications.freedesktop.org/basedir-spec/):
#   - Config:  $XDG_CONFIG_HOME/mailhawk/  (default: ~/.config/mailhawk/)
#
# Files:
#   - config.toml: Server, fetch, SMTP and session settings, mail providers
#
# Precedence (lowest to highest):
#   1. Built-in defaults (the dataclasses below)
#   2. config.toml
#   3. Environment variables, including those from a .env file in the
#      working directory (MAILHAWK_PORT, CORS_ORIGIN, WEBDE_IMAP_SERVER, ...)
# =============================================================================

import os
import tomllib  # Built into Python 3.11+
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomli_w  # For writing TOML (tomllib is read-only)
from dotenv import load_dotenv


# =============================================================================
# XDG Directory Management
# =============================================================================

# Application identifier used in all XDG paths
APP_NAME = "mailhawk"

MB = 1024 * 1024


def get_xdg_config_home() -> Path:
    """
    Returns the XDG config directory for Mailhawk.

    Respects $XDG_CONFIG_HOME if set, otherwise uses ~/.config/mailhawk/
    This is where user configuration files live (config.toml).
    """
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        base = Path(xdg_config)
    else:
        base = Path.home() / ".config"
    return base / APP_NAME


def ensure_directories() -> dict[str, Path]:
    """
    Creates the config directory if it doesn't exist.

    Returns:
        Dictionary mapping directory type to path.
    """
    dirs = {"config": get_xdg_config_home()}
    for dir_path in dirs.values():
        dir_path.mkdir(parents=True, exist_ok=True)
    return dirs


# =============================================================================
# Configuration Data Structures
# =============================================================================

@dataclass
class ServerConfig:
    """
    Configuration for the HTTP server.

    Attributes:
        host: Interface to bind.
        port: TCP port to listen on.
        cors_origin: Origin allowed to call the API from a browser.
    """
    host: str = "127.0.0.1"
    port: int = 3000
    cors_origin: str = "http://localhost:5173"


@dataclass
class IMAPSettings:
    """
    Configuration for IMAP connections.

    Attributes:
        verify_certificates: Verify server certificates. Turning this off
                             accepts self-signed certificates (logged).
        timeout: Seconds allowed for connecting and logging in.
    """
    verify_certificates: bool = True
    timeout: int = 30


@dataclass
class FetchSettings:
    """
    Limits and watchdogs for the fetch pipelines.

    Attributes:
        listing_limit: Newest messages returned by a folder listing.
        listing_timeout: Seconds before a listing answers with what it has.
        message_timeout: Seconds allowed for retrieving one message.
        large_message_timeout: Seconds allowed once a message turns out
                               to be larger than large_message_threshold.
        large_message_threshold: Size in bytes that counts as large.
        batch_size: Messages per FETCH command while listing.
    """
    listing_limit: int = 30
    listing_timeout: float = 30
    message_timeout: float = 180
    large_message_timeout: float = 600
    large_message_threshold: int = 10 * MB
    batch_size: int = 10


@dataclass
class SMTPSettings:
    """
    Defaults for outgoing mail.

    Attributes:
        default_port: Relay port when the client does not name one.
        secure: Implicit TLS by default (False means STARTTLS if offered).
        verify_certificates: Verify relay certificates.
        timeout: Seconds per SMTP operation.
    """
    default_port: int = 587
    secure: bool = False
    verify_certificates: bool = True
    timeout: int = 30


@dataclass
class SessionSettings:
    """
    Limits for gateway sessions.

    Attributes:
        idle_timeout_minutes: Sessions unused this long are closed.
        max_sessions: New logins are refused beyond this many sessions.
        sweep_interval_seconds: How often idle sessions are looked for.
    """
    idle_timeout_minutes: int = 30
    max_sessions: int = 500
    sweep_interval_seconds: int = 60


@dataclass
class ServerEndpoint:
    """Host, port and TLS mode of one mail server."""
    host: str = ""
    port: int = 993
    secure: bool = True

    def to_dict(self) -> dict:
        return {"host": self.host, "port": self.port, "secure": self.secure}


@dataclass
class EmailProvider:
    """
    A mail provider offered on the login form.

    Attributes:
        name: Display name (e.g., "WEB.DE").
        imap_server / imap_port: IMAP endpoint.
        smtp_server / smtp_port: SMTP endpoint.
        secure: Whether the IMAP connection uses TLS.
    """
    name: str
    imap_server: str = ""
    imap_port: int = 993
    smtp_server: str = ""
    smtp_port: int = 587
    secure: bool = True

    def to_dict(self) -> dict:
        """JSON shape used by /api/config."""
        return {
            "name": self.name,
            "imapServer": self.imap_server,
            "imapPort": self.imap_port,
            "smtpServer": self.smtp_server,
            "smtpPort": self.smtp_port,
            "secure": self.secure,
        }


def default_providers() -> list[EmailProvider]:
    """The providers offered out of the box."""
    return [
        EmailProvider("WEB.DE", "imap.web.de", 993, "smtp.web.de", 587),
        EmailProvider("GMX", "imap.gmx.net", 993, "smtp.gmx.net", 587),
        EmailProvider("Custom"),
    ]


# Environment prefix per provider name
_PROVIDER_ENV = {"WEB.DE": "WEBDE", "GMX": "GMX", "Custom": "DEFAULT"}


@dataclass
class Config:
    """
    Main configuration container for Mailhawk.

    Attributes:
        server: HTTP server settings.
        imap: IMAP connection settings.
        fetch: Fetch pipeline limits and watchdogs.
        smtp: Outgoing mail defaults.
        sessions: Session limits.
        default_imap / default_smtp: Servers suggested by /config.
        providers: Providers listed by /api/config.

    Usage:
        >>> config = Config.load()
        >>> config.server.port
        3000
    """
    server: ServerConfig = field(default_factory=ServerConfig)
    imap: IMAPSettings = field(default_factory=IMAPSettings)
    fetch: FetchSettings = field(default_factory=FetchSettings)
    smtp: SMTPSettings = field(default_factory=SMTPSettings)
    sessions: SessionSettings = field(default_factory=SessionSettings)
    default_imap: ServerEndpoint = field(
        default_factory=lambda: ServerEndpoint("imap.web.de", 993, True)
    )
    default_smtp: ServerEndpoint = field(
        default_factory=lambda: ServerEndpoint("smtp.web.de", 587, False)
    )
    providers: list[EmailProvider] = field(default_factory=default_providers)

    # -------------------------------------------------------------------------
    # File Paths
    # -------------------------------------------------------------------------

    @staticmethod
    def config_file_path() -> Path:
        """Returns the path to the main config file."""
        return get_xdg_config_home() / "config.toml"

    # -------------------------------------------------------------------------
    # Loading and Saving
    # -------------------------------------------------------------------------

    @classmethod
    def load(cls, path: Path | None = None, *, environ: dict[str, str] | None = None) -> "Config":
        """
        Load configuration from the config file and the environment.

        If the config file doesn't exist, starts from the defaults.

        Args:
            path: Config file to read (defaults to the XDG location).
            environ: Environment to read overrides from. Defaults to
                     os.environ after loading a .env file.

        Returns:
            Loaded Config object.

        Raises:
            ConfigError: If the config file or an override is invalid.
        """
        config_path = path or cls.config_file_path()

        data: dict[str, Any] = {}
        if config_path.exists():
            # Load and parse the TOML file
            try:
                with open(config_path, "rb") as f:
                    data = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigError(f"Invalid config file: {e}") from e

        config = cls._from_dict(data)

        if environ is None:
            load_dotenv(override=True)
            environ = dict(os.environ)
        config.apply_environment(environ)
        return config

    def save(self, path: Path | None = None) -> Path:
        """
        Save configuration to the config file.

        Creates the config directory if it doesn't exist.

        Returns:
            The path written.
        """
        config_path = path or self.config_file_path()
        if path is None:
            ensure_directories()

        with open(config_path, "wb") as f:
            tomli_w.dump(self._to_dict(), f)
        return config_path

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """
        Create a Config object from a dictionary (parsed TOML).
        """
        config = cls()

        try:
            # Server settings
            server = data.get("server", {})
            config.server = ServerConfig(
                host=server.get("host", "127.0.0.1"),
                port=int(server.get("port", 3000)),
                cors_origin=server.get("cors_origin", "http://localhost:5173"),
            )

            # IMAP settings
            imap = data.get("imap", {})
            config.imap = IMAPSettings(
                verify_certificates=bool(imap.get("verify_certificates", True)),
                timeout=int(imap.get("timeout", 30)),
            )

            # Fetch settings
            fetch = data.get("fetch", {})
            config.fetch = FetchSettings(
                listing_limit=int(fetch.get("listing_limit", 30)),
                listing_timeout=float(fetch.get("listing_timeout", 30)),
                message_timeout=float(fetch.get("message_timeout", 180)),
                large_message_timeout=float(fetch.get("large_message_timeout", 600)),
                large_message_threshold=int(fetch.get("large_message_threshold", 10 * MB)),
                batch_size=int(fetch.get("batch_size", 10)),
            )

            # SMTP settings
            smtp = data.get("smtp", {})
            config.smtp = SMTPSettings(
                default_port=int(smtp.get("default_port", 587)),
                secure=bool(smtp.get("secure", False)),
                verify_certificates=bool(smtp.get("verify_certificates", True)),
                timeout=int(smtp.get("timeout", 30)),
            )

            # Session settings
            sessions = data.get("sessions", {})
            config.sessions = SessionSettings(
                idle_timeout_minutes=int(sessions.get("idle_timeout_minutes", 30)),
                max_sessions=int(sessions.get("max_sessions", 500)),
                sweep_interval_seconds=int(sessions.get("sweep_interval_seconds", 60)),
            )

            # Default servers
            defaults = data.get("defaults", {})
            if "imap" in defaults:
                config.default_imap = ServerEndpoint(**defaults["imap"])
            if "smtp" in defaults:
                config.default_smtp = ServerEndpoint(**defaults["smtp"])

            # Providers - each key under [providers] is a provider name
            providers_data = data.get("providers")
            if providers_data:
                config.providers = [
                    EmailProvider(name=name, **values)
                    for name, values in providers_data.items()
                ]
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid config value: {e}") from e

        return config

    def _to_dict(self) -> dict[str, Any]:
        """
        Convert Config to a dictionary for TOML serialization.
        """
        data: dict[str, Any] = {}

        data["server"] = {
            "host": self.server.host,
            "port": self.server.port,
            "cors_origin": self.server.cors_origin,
        }
        data["imap"] = {
            "verify_certificates": self.imap.verify_certificates,
            "timeout": self.imap.timeout,
        }
        data["fetch"] = {
            "listing_limit": self.fetch.listing_limit,
            "listing_timeout": self.fetch.listing_timeout,
            "message_timeout": self.fetch.message_timeout,
            "large_message_timeout": self.fetch.large_message_timeout,
            "large_message_threshold": self.fetch.large_message_threshold,
            "batch_size": self.fetch.batch_size,
        }
        data["smtp"] = {
            "default_port": self.smtp.default_port,
            "secure": self.smtp.secure,
            "verify_certificates": self.smtp.verify_certificates,
            "timeout": self.smtp.timeout,
        }
        data["sessions"] = {
            "idle_timeout_minutes": self.sessions.idle_timeout_minutes,
            "max_sessions": self.sessions.max_sessions,
            "sweep_interval_seconds": self.sessions.sweep_interval_seconds,
        }
        data["defaults"] = {
            "imap": self.default_imap.to_dict(),
            "smtp": self.default_smtp.to_dict(),
        }

        # Providers
        data["providers"] = {}
        for provider in self.providers:
            data["providers"][provider.name] = {
                "imap_server": provider.imap_server,
                "imap_port": provider.imap_port,
                "smtp_server": provider.smtp_server,
                "smtp_port": provider.smtp_port,
                "secure": provider.secure,
            }

        return data

    # -------------------------------------------------------------------------
    # Environment Overrides
    # -------------------------------------------------------------------------

    def apply_environment(self, environ: dict[str, str]) -> None:
        """
        Apply environment variable overrides.

        Recognized variables:
            MAILHAWK_HOST, MAILHAWK_PORT (or PORT), CORS_ORIGIN,
            MAILHAWK_VERIFY_CERTS,
            DEFAULT_IMAP_HOST / _PORT / _SECURE, DEFAULT_SMTP_HOST / _PORT / _SECURE,
            <P>_IMAP_SERVER, <P>_IMAP_PORT, <P>_SMTP_SERVER, <P>_SMTP_PORT,
            <P>_SECURE for P in WEBDE, GMX, DEFAULT.

        Raises:
            ConfigError: If a numeric variable is not a number.
        """
        try:
            if "MAILHAWK_HOST" in environ:
                self.server.host = environ["MAILHAWK_HOST"]
            port = environ.get("MAILHAWK_PORT") or environ.get("PORT")
            if port:
                self.server.port = int(port)
            if environ.get("CORS_ORIGIN"):
                self.server.cors_origin = environ["CORS_ORIGIN"]
            if "MAILHAWK_VERIFY_CERTS" in environ:
                verify = _env_flag(environ["MAILHAWK_VERIFY_CERTS"])
                self.imap.verify_certificates = verify
                self.smtp.verify_certificates = verify

            for endpoint, prefix in ((self.default_imap, "DEFAULT_IMAP"), (self.default_smtp, "DEFAULT_SMTP")):
                if environ.get(f"{prefix}_HOST"):
                    endpoint.host = environ[f"{prefix}_HOST"]
                if environ.get(f"{prefix}_PORT"):
                    endpoint.port = int(environ[f"{prefix}_PORT"])
                if f"{prefix}_SECURE" in environ:
                    endpoint.secure = _env_flag(environ[f"{prefix}_SECURE"])

            for provider in self.providers:
                prefix = _PROVIDER_ENV.get(provider.name)
                if prefix is None:
                    continue
                if environ.get(f"{prefix}_IMAP_SERVER"):
                    provider.imap_server = environ[f"{prefix}_IMAP_SERVER"]
                if environ.get(f"{prefix}_IMAP_PORT"):
                    provider.imap_port = int(environ[f"{prefix}_IMAP_PORT"])
                if environ.get(f"{prefix}_SMTP_SERVER"):
                    provider.smtp_server = environ[f"{prefix}_SMTP_SERVER"]
                if environ.get(f"{prefix}_SMTP_PORT"):
                    provider.smtp_port = int(environ[f"{prefix}_SMTP_PORT"])
                if f"{prefix}_SECURE" in environ:
                    provider.secure = _env_flag(environ[f"{prefix}_SECURE"])
        except ValueError as e:
            raise ConfigError(f"Invalid environment value: {e}") from e


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# Exceptions
# =============================================================================

class ConfigError(Exception):
    """Raised when there's an error loading or parsing configuration."""
    pass


# =============================================================================
# Utility Functions
# =============================================================================

def print_paths() -> None:
    """
    Print the config paths for debugging.
    Useful for users wondering where their config is stored.
    """
    print(f"Config:       {get_xdg_config_home()}")
    print(f"Config file:  {Config.config_file_path()}")
