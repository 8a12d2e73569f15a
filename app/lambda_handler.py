"""
Lambda Entry Point - Signed URL broker behind API Gateway.

Same contract as GET /v1/signed-url:

    ?address=<wallet>&file=<resource>   (address may repeat)

The signer, and with it the signing key, is kept for the life of the
execution environment. The RPC client is bound to the invocation's event loop
and is closed before returning.
"""

import asyncio
import json
from typing import Any

from app.config import settings
from app.exceptions import InvalidInputError, MembershipDeniedError
from app.observability import get_logger, log_context, metrics, setup_logging
from app.services.access_policy import AccessPolicySigner
from app.services.broker import BrokerService
from app.services.chain import Web3ChainGateway, build_web3
from app.services.membership import MembershipVerifier
from app.services.secret_store import build_secret_store

setup_logging()
logger = get_logger(__name__)

_signer: AccessPolicySigner | None = None


def _get_signer() -> AccessPolicySigner:
    global _signer
    if _signer is None:
        _signer = AccessPolicySigner(settings, build_secret_store(settings))
    return _signer


def _response(status_code: int, body: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json",
            "Access-Control-Allow-Origin": "*",
        },
        "body": json.dumps(body),
    }


def _query_addresses(event: dict[str, Any]) -> list[str]:
    """
    Candidate wallets in request order.

    REST APIs (payload v1) list repeated values under
    multiValueQueryStringParameters; HTTP APIs (v2) join them with commas.
    """
    multi = (event.get("multiValueQueryStringParameters") or {}).get("address")
    if multi:
        return [address.strip() for address in multi if address.strip()]
    joined = (event.get("queryStringParameters") or {}).get("address") or ""
    return [address.strip() for address in joined.split(",") if address.strip()]


async def _issue(addresses: list[str], resource: str) -> str:
    gateway = Web3ChainGateway(build_web3(settings))
    try:
        broker = BrokerService(
            verifier=MembershipVerifier(gateway),
            signer=_get_signer(),
            contract=settings.contract_ref,
        )
        signed = await broker.request_url(addresses, resource)
        return signed.url
    finally:
        await gateway.close()


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """API Gateway proxy handler."""
    request_id = getattr(context, "aws_request_id", None) or "unknown"
    addresses = _query_addresses(event)
    resource = (event.get("queryStringParameters") or {}).get("file")

    with log_context(request_id=request_id):
        if not addresses or not resource:
            return _response(400, {"detail": "Missing parameters"})

        try:
            url = asyncio.run(_issue(addresses, resource))
        except InvalidInputError as exc:
            return _response(400, {"detail": exc.message})
        except MembershipDeniedError as exc:
            return _response(403, {"detail": exc.reason})
        except Exception as exc:
            metrics.record_error(type(exc).__name__, "lambda_signed_url")
            logger.error("failed_to_generate_url", resource=resource, error=str(exc), exc_info=True)
            return _response(500, {"detail": "Internal server error"})

        return _response(200, {"url": url})
