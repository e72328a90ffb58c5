"""Inbound RapidPro webhook endpoint.

Authentication happens in the security middleware; a request that reaches
this handler has already presented the webhook token (when token auth is
enabled).
"""

from typing import Any

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from dhis2rapidpro.schemas import ErrorResponse
from dhis2rapidpro.security.policy import WEBHOOK_PATH

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Webhook"])


class WebhookAck(BaseModel):
    """Acknowledgement returned to RapidPro."""

    status: str = Field(default="accepted", description="Delivery status")


@router.post(
    WEBHOOK_PATH,
    response_model=WebhookAck,
    responses={
        200: {"description": "Message handed to the pipeline"},
        401: {"description": "Missing or invalid webhook token", "model": ErrorResponse},
    },
)
async def receive_webhook(request: Request, payload: dict[str, Any]) -> WebhookAck:
    """Hand a RapidPro webhook message to the synchronization pipeline."""
    await request.app.state.pipeline.receive_webhook(payload)
    logger.debug("webhook_accepted", principal=request.state.principal)
    return WebhookAck()
