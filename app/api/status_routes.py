"""
Status API routes - reachability of the services the gate depends on.

Public, unauthenticated. Results are cached for a few seconds so status
page polling never fans out into RPC traffic.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from enum import Enum

import httpx
from fastapi import APIRouter
from pydantic import BaseModel, Field
from structlog import get_logger

from app.config import settings

logger = get_logger(__name__)
router = APIRouter(tags=["status"])

CHECK_TIMEOUT = 5.0  # seconds
SLOW_PROBE_MS = 1000

_CACHE_TTL_SECONDS = 10
_status_cache: dict[str, tuple[datetime, "ServiceStatusResponse"]] = {}

ETH_CHAIN_ID_CALL = {"jsonrpc": "2.0", "id": 1, "method": "eth_chainId", "params": []}


class StatusLevel(str, Enum):
    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    OUTAGE = "outage"


class ProviderStatus(BaseModel):
    """Outcome of one probe."""

    status: StatusLevel
    latency_ms: int | None = None
    last_check: str = Field(..., description="ISO 8601 timestamp")
    message: str | None = None


class ServiceStatusResponse(BaseModel):
    service: str = "membership-gate"
    status: StatusLevel
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    version: str
    providers: dict[str, ProviderStatus]


# A probe call returns None when the dependency looks healthy, else a
# message explaining why it is degraded.
ProbeCall = Callable[[httpx.AsyncClient], Awaitable[str | None]]


async def _probe(name: str, call: ProbeCall) -> ProviderStatus:
    """Time ``call`` and translate its outcome into a ProviderStatus."""
    checked_at = datetime.now(UTC).isoformat()
    started = time.perf_counter()

    try:
        async with httpx.AsyncClient(timeout=CHECK_TIMEOUT) as client:
            problem = await call(client)
    except httpx.TimeoutException:
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=int(CHECK_TIMEOUT * 1000),
            last_check=checked_at,
            message="Timeout",
        )
    except Exception as exc:
        logger.warning("status_probe_failed", provider=name, error=str(exc))
        return ProviderStatus(
            status=StatusLevel.OUTAGE, last_check=checked_at, message="Connection failed"
        )

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    if problem is None and elapsed_ms > SLOW_PROBE_MS:
        problem = "High latency"

    return ProviderStatus(
        status=StatusLevel.OPERATIONAL if problem is None else StatusLevel.DEGRADED,
        latency_ms=elapsed_ms,
        last_check=checked_at,
        message=problem,
    )


async def _rpc_chain_id(client: httpx.AsyncClient) -> str | None:
    response = await client.post(settings.rpc_url, json=ETH_CHAIN_ID_CALL)
    if response.status_code != 200:
        return f"Unexpected status: {response.status_code}"

    reply = response.json()
    if "result" not in reply:
        error = reply.get("error") or {}
        return f"RPC error: {error.get('message', 'no result in reply')}"

    served = int(reply["result"], 16)
    if served != settings.network_id:
        return f"Chain id mismatch: expected {settings.network_id}, got {served}"
    return None


async def _cdn_edge(client: httpx.AsyncClient) -> str | None:
    # Unsigned requests are refused with 403; any answer below 500 means the edge is up.
    response = await client.head(f"https://{settings.cdn_domain}/")
    if response.status_code >= 500:
        return f"Unexpected status: {response.status_code}"
    return None


async def check_rpc() -> ProviderStatus:
    """JSON-RPC node answers and serves the configured network."""
    return await _probe("rpc", _rpc_chain_id)


async def check_cdn() -> ProviderStatus:
    """CDN edge answers."""
    return await _probe("cdn", _cdn_edge)


def calculate_overall_status(providers: dict[str, ProviderStatus]) -> StatusLevel:
    """Worst provider status wins."""
    seen = {provider.status for provider in providers.values()}
    for level in (StatusLevel.OUTAGE, StatusLevel.DEGRADED):
        if level in seen:
            return level
    return StatusLevel.OPERATIONAL


@router.get("/v1/status", response_model=ServiceStatusResponse)
async def get_status() -> ServiceStatusResponse:
    """Aggregate RPC and CDN reachability, cached for ten seconds."""
    now = datetime.now(UTC)

    cached = _status_cache.get("status")
    if cached is not None and (now - cached[0]).total_seconds() < _CACHE_TTL_SECONDS:
        return cached[1]

    rpc, cdn = await asyncio.gather(check_rpc(), check_cdn())
    providers = {"rpc": rpc, "cdn": cdn}

    response = ServiceStatusResponse(
        service=settings.service_name,
        status=calculate_overall_status(providers),
        timestamp=now.isoformat(),
        version=settings.api_version,
        providers=providers,
    )
    _status_cache["status"] = (now, response)
    logger.debug("status_refreshed", status=response.status.value)
    return response
