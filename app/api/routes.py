"""
API Routes - Broker endpoints for membership-gated content.

NO DICTIONARIES - All responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from structlog import get_logger

from app.api.dependencies import get_broker_service
from app.exceptions import (
    InvalidInputError,
    MembershipDeniedError,
    SigningUnavailableError,
    VerificationFailedError,
)
from app.models.api import MembershipStatusResponse, SignedUrlResponse
from app.observability.metrics import metrics
from app.services.broker import BrokerService

logger = get_logger(__name__)

router = APIRouter(tags=["content"])


async def _issue_signed_url(
    broker: BrokerService, addresses: list[str], resource: str | None
) -> SignedUrlResponse:
    """Shared handler body - maps broker errors to HTTP responses."""
    if not addresses or not resource:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing parameters",
        )

    try:
        signed = await broker.request_url(addresses, resource)
        return SignedUrlResponse(url=signed.url)

    except InvalidInputError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc

    except MembershipDeniedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.reason,
        ) from exc

    except (VerificationFailedError, SigningUnavailableError) as exc:
        metrics.record_error(type(exc).__name__, "signed_url")
        logger.error("failed_to_generate_url", resource=resource, error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from exc

    except Exception as exc:
        metrics.record_error(type(exc).__name__, "signed_url")
        logger.error("failed_to_generate_url", resource=resource, error=str(exc), exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from exc


@router.get("/v1/content/{resource:path}", response_model=SignedUrlResponse)
async def get_content_url(
    resource: str,
    address: list[str] | None = Query(None, description="Wallet address(es), in preference order"),
    broker: BrokerService = Depends(get_broker_service),
) -> SignedUrlResponse:
    """
    Get a signed CDN URL for a resource.

    Returns 403 with "No membership" or "Membership expired" when the first
    wallet holding a key has none active.
    """
    return await _issue_signed_url(broker, address or [], resource)


@router.get("/v1/signed-url", response_model=SignedUrlResponse)
async def get_signed_url(
    address: list[str] | None = Query(None, description="Wallet address(es), in preference order"),
    file: str | None = Query(None, description="Resource identifier on the CDN"),
    broker: BrokerService = Depends(get_broker_service),
) -> SignedUrlResponse:
    """Query-string variant of GET /v1/content/{resource}."""
    return await _issue_signed_url(broker, address or [], file)


@router.get("/v1/membership", response_model=MembershipStatusResponse)
async def get_membership(
    address: list[str] | None = Query(None, description="Wallet address(es), in preference order"),
    broker: BrokerService = Depends(get_broker_service),
) -> MembershipStatusResponse:
    """
    Get the membership status for one or more wallets.

    The first wallet that ever held a key decides the status.
    """
    if not address:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing parameters",
        )

    try:
        result = await broker.check_membership(address)

    except InvalidInputError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc

    except VerificationFailedError as exc:
        metrics.record_error(type(exc).__name__, "membership_status")
        logger.error("membership_status_unavailable", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Membership status unavailable",
        ) from exc

    return MembershipStatusResponse(status=result.status, address=result.deciding_wallet)
