# =============================================================================
# Web Module
# =============================================================================
# The FastAPI application that exposes the gateway as JSON over HTTP.
# =============================================================================

from mailhawk.web.api import create_app

__all__ = ["create_app"]
