"""
FastAPI Dependencies - Process-wide service instances.

NO DICTIONARIES - All dependencies return typed objects.

The chain client and the signer (which caches the signing key) are built once
per process from the immutable settings; request handlers receive them via
Depends so tests can override them.
"""

from structlog import get_logger

from app.config import settings
from app.services.access_policy import AccessPolicySigner
from app.services.broker import BrokerService
from app.services.chain import ChainGateway, Web3ChainGateway, build_web3
from app.services.membership import MembershipVerifier
from app.services.secret_store import build_secret_store

logger = get_logger(__name__)

_chain_gateway: Web3ChainGateway | None = None
_access_policy_signer: AccessPolicySigner | None = None


def get_chain_gateway() -> ChainGateway:
    """Get the shared chain gateway, creating the RPC client on first use."""
    global _chain_gateway
    if _chain_gateway is None:
        _chain_gateway = Web3ChainGateway(build_web3(settings))
        logger.info(
            "chain_gateway_created", rpc_url=settings.rpc_url, network_id=settings.network_id
        )
    return _chain_gateway


def get_access_policy_signer() -> AccessPolicySigner:
    """Get the shared signer (its signing key is cached for the process)."""
    global _access_policy_signer
    if _access_policy_signer is None:
        _access_policy_signer = AccessPolicySigner(settings, build_secret_store(settings))
    return _access_policy_signer


def get_broker_service() -> BrokerService:
    """Get a broker wired to the shared gateway and signer."""
    return BrokerService(
        verifier=MembershipVerifier(get_chain_gateway()),
        signer=get_access_policy_signer(),
        contract=settings.contract_ref,
    )


async def close_chain_gateway() -> None:
    """Close the RPC client session (application shutdown)."""
    global _chain_gateway
    if _chain_gateway is not None:
        await _chain_gateway.close()
        _chain_gateway = None
