"""
Broker Service - Membership check followed by signed URL issuance.

Shared by the HTTP routes and the Lambda entry point.
"""

from collections.abc import Sequence

from structlog import get_logger

from app.exceptions import InvalidInputError, MembershipDeniedError
from app.models.api import MembershipStatus
from app.models.domain import EntitlementContractRef, MembershipResult, SignedUrl
from app.observability.tracing import add_span_attributes, trace_operation
from app.services.access_policy import AccessPolicySigner
from app.services.membership import MembershipVerifier

logger = get_logger(__name__)


class BrokerService:
    """Grants signed access to a resource for wallets holding an active key."""

    def __init__(
        self,
        verifier: MembershipVerifier,
        signer: AccessPolicySigner,
        contract: EntitlementContractRef,
    ) -> None:
        self.verifier = verifier
        self.signer = signer
        self.contract = contract

    async def check_membership(self, addresses: Sequence[str]) -> MembershipResult:
        """Membership status for the candidate wallets."""
        with trace_operation("membership_verification", candidates=len(addresses)) as span:
            result = await self.verifier.resolve(addresses, self.contract)
            add_span_attributes(span, status=result.status.value)
            return result

    async def request_url(
        self, addresses: Sequence[str], resource: str, ttl_seconds: int | None = None
    ) -> SignedUrl:
        """
        Sign a URL for resource if the wallets hold an active membership.

        Raises:
            InvalidInputError: If addresses or resource are missing/malformed
            MembershipDeniedError: If the status is none or expired
            VerificationFailedError: If the chain cannot be read
            SigningUnavailableError: If the signing key is unavailable
        """
        if not addresses or not resource or not resource.strip():
            raise InvalidInputError("Missing parameters")

        result = await self.check_membership(addresses)
        if result.status != MembershipStatus.ACTIVE:
            logger.info(
                "content_access_denied",
                resource=resource,
                status=result.status.value,
                deciding_wallet=result.deciding_wallet,
            )
            raise MembershipDeniedError(result.status)

        with trace_operation("signed_url_issuance", resource=resource):
            signed = await self.signer.issue(resource, ttl_seconds)

        logger.info(
            "content_access_granted",
            resource=resource,
            wallet=result.deciding_wallet,
            expires_at=signed.expires_at,
        )
        return signed
