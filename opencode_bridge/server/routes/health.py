"""GET /health endpoint handler."""
from datetime import datetime, timezone

from fastapi import APIRouter, status

from opencode_bridge.config import BridgeConfig
from opencode_bridge.server.models.responses import HealthResponse
from opencode_bridge.sessions.manager import SessionManager


def create_health_router(config: BridgeConfig, manager: SessionManager) -> APIRouter:
    """Create health router with injected dependencies."""
    router = APIRouter()

    @router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK, tags=["status"])
    async def health_check() -> HealthResponse:
        """Check that the bridge is up and report live sessions."""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        return HealthResponse(
            status="healthy", sessions=len(manager),
            agent_server=config.agent.base_url, timestamp=timestamp,
        )

    return router
