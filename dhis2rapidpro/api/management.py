"""Management endpoints: operator dashboard, health and pipeline triggers."""

from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from dhis2rapidpro import __version__
from dhis2rapidpro.pipeline.ports import SyncOperation
from dhis2rapidpro.schemas import ErrorResponse
from dhis2rapidpro.security.policy import REMINDERS_PATH, SCAN_PATH, SYNC_PATH

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Management"])

PROTECTED_RESPONSES: dict[int | str, dict[str, object]] = {
    401: {"description": "Operator credentials required", "model": ErrorResponse},
    302: {"description": "Browser redirected to the login page"},
}


class TriggerResponse(BaseModel):
    """Response to an administrative trigger."""

    operation: str = Field(..., description="Triggered operation")
    status: str = Field(default="triggered", description="Trigger status")
    triggered_by: str | None = Field(default=None, description="Operator that triggered it")


class DashboardResponse(BaseModel):
    """Operator dashboard summary."""

    principal: str | None = Field(default=None, description="Authenticated operator")
    version: str = Field(..., description="Bridge version")
    management_auth: bool = Field(..., description="Whether management paths require login")
    webhook_token_auth: bool = Field(..., description="Whether the webhook requires the token")
    timestamp: str = Field(..., description="Server time (UTC)")


async def _trigger(request: Request, operation: SyncOperation) -> TriggerResponse:
    principal = request.state.principal
    logger.info("trigger_requested", operation=operation.value, principal=principal)
    await request.app.state.pipeline.trigger(operation)
    return TriggerResponse(operation=operation.value, triggered_by=principal)


@router.post(SYNC_PATH, response_model=TriggerResponse, responses=PROTECTED_RESPONSES)
async def trigger_sync(request: Request) -> TriggerResponse:
    """Synchronise DHIS2 users into RapidPro contacts."""
    return await _trigger(request, SyncOperation.SYNC)


@router.post(SCAN_PATH, response_model=TriggerResponse, responses=PROTECTED_RESPONSES)
async def trigger_scan(request: Request) -> TriggerResponse:
    """Scan RapidPro flow runs and report them to DHIS2."""
    return await _trigger(request, SyncOperation.SCAN)


@router.post(REMINDERS_PATH, response_model=TriggerResponse, responses=PROTECTED_RESPONSES)
async def trigger_reminders(request: Request) -> TriggerResponse:
    """Send reporting reminders."""
    return await _trigger(request, SyncOperation.REMINDERS)


@router.get("/management/dashboard", response_model=DashboardResponse, responses=PROTECTED_RESPONSES)
async def dashboard(request: Request) -> DashboardResponse:
    """Operator dashboard summary."""
    settings = request.app.state.settings
    return DashboardResponse(
        principal=request.state.principal,
        version=__version__,
        management_auth=settings.management_auth_enabled,
        webhook_token_auth=settings.webhook_token_auth_enabled,
        timestamp=datetime.now(UTC).isoformat(),
    )


@router.get("/management/health", responses=PROTECTED_RESPONSES)
async def health() -> dict[str, str]:
    """Liveness check."""
    return {"status": "UP", "timestamp": datetime.now(UTC).isoformat()}
