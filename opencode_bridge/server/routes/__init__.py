"""Route handlers for the bridge control API."""
from opencode_bridge.server.routes.health import create_health_router
from opencode_bridge.server.routes.sessions import create_sessions_router

__all__ = ["create_health_router", "create_sessions_router"]
