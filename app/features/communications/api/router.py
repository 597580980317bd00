"""
Internal trigger for parish message delivery.

Called by a scheduler or ops tooling, never by browsers. Authenticated with
a pre-shared worker token instead of a user session.
"""

import hmac
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel, Field, ValidationError

from app.config import MAX_DELIVERY_JOB_BATCH, Settings, get_settings
from app.db.pool import DatabasePoolManager, get_db
from app.features.communications.processor import DeliveryJobProcessor
from app.features.communications.providers import DeliveryProviderRegistry
from app.features.communications.repository import DeliveryJobRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/internal/parish-admin/communications", tags=["communications"])


class DeliverRequest(BaseModel):
    limit: Annotated[int, Field(ge=1, le=MAX_DELIVERY_JOB_BATCH)] | None = None


def get_provider_registry(request: Request) -> DeliveryProviderRegistry:
    return request.app.state.provider_registry


def get_delivery_processor(
    db: DatabasePoolManager = Depends(get_db),
    registry: DeliveryProviderRegistry = Depends(get_provider_registry),
    settings: Settings = Depends(get_settings),
) -> DeliveryJobProcessor:
    return DeliveryJobProcessor(DeliveryJobRepository(db), registry, settings)


def _presented_token(worker_token: str | None, authorization: str | None) -> str | None:
    if worker_token:
        return worker_token.strip()
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return None


def require_worker_token(
    x_parish_worker_token: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    expected = settings.PARISH_COMMUNICATIONS_WORKER_TOKEN
    if not expected:
        logger.error("Delivery trigger called without PARISH_COMMUNICATIONS_WORKER_TOKEN configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Delivery worker token is not configured",
        )

    presented = _presented_token(x_parish_worker_token, authorization)
    if not presented or not hmac.compare_digest(presented.encode(), expected.encode()):
        logger.warning("Delivery trigger rejected: bad worker token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


async def _requested_limit(request: Request) -> int | None:
    """Optional `{limit}` body; anything unparseable falls back to the default."""
    body = await request.body()
    if not body:
        return None
    try:
        return DeliverRequest.model_validate_json(body).limit
    except ValidationError:
        logger.debug("Ignoring invalid delivery trigger body")
        return None


@router.post("/deliver", dependencies=[Depends(require_worker_token)])
async def deliver_pending_messages(
    request: Request,
    processor: DeliveryJobProcessor = Depends(get_delivery_processor),
):
    limit = await _requested_limit(request)
    summary = await processor.process_pending_jobs(limit)
    return summary.to_dict()
