from fastapi import APIRouter

from trendclaw.api.deps import GatewayDep
from trendclaw.api.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(gateway: GatewayDep) -> HealthResponse:
    return HealthResponse(status="ok", openclaw_connected=gateway.is_connected())
