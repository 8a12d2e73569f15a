"""
Membership Verifier - Reduce candidate wallets to one membership status.

The first wallet (in caller order) that has ever owned a key decides the
result; later wallets are never read, even when that key has expired.
"""

import time
from collections.abc import Sequence

from structlog import get_logger

from app.exceptions import InvalidInputError, VerificationFailedError
from app.models.api import MembershipStatus
from app.models.domain import EntitlementContractRef, MembershipResult, to_wallet_address
from app.observability.metrics import metrics
from app.services.chain import ChainGateway

logger = get_logger(__name__)


class MembershipVerifier:
    """Reads lock state for candidate wallets. No retries, no caching."""

    def __init__(self, gateway: ChainGateway) -> None:
        self.gateway = gateway

    async def verify(
        self, candidate_wallets: Sequence[str], contract: EntitlementContractRef
    ) -> MembershipStatus:
        """
        Determine membership status for an ordered list of wallets.

        Args:
            candidate_wallets: Non-empty wallet addresses in preference order
            contract: Entitlement contract to query

        Returns:
            MembershipStatus of the first wallet holding any key, NONE otherwise

        Raises:
            InvalidInputError: If no wallets are given or an address is malformed
            VerificationFailedError: If a chain read fails or returns bad data
        """
        result = await self.resolve(candidate_wallets, contract)
        return result.status

    async def resolve(
        self, candidate_wallets: Sequence[str], contract: EntitlementContractRef
    ) -> MembershipResult:
        """Same as verify, also reporting which wallet decided the status."""
        if not candidate_wallets:
            raise InvalidInputError("At least one candidate wallet is required")

        try:
            wallets = [to_wallet_address(w) for w in candidate_wallets]
        except ValueError as exc:
            raise InvalidInputError(str(exc)) from exc

        start = time.perf_counter()
        for wallet in wallets:
            total = await self._read_total_keys(contract, wallet)
            if total == 0:
                continue

            valid = await self._read_has_valid_key(contract, wallet)
            status = MembershipStatus.ACTIVE if valid else MembershipStatus.EXPIRED
            self._record(status, wallet, start, candidates=len(wallets))
            return MembershipResult(status=status, deciding_wallet=wallet)

        self._record(MembershipStatus.NONE, None, start, candidates=len(wallets))
        return MembershipResult(status=MembershipStatus.NONE, deciding_wallet=None)

    async def _read_total_keys(self, contract: EntitlementContractRef, wallet: str) -> int:
        try:
            total = await self.gateway.total_keys(contract.address, wallet)
        except Exception as exc:
            logger.warning("total_keys_read_failed", wallet=wallet, error=str(exc))
            raise VerificationFailedError(wallet, f"totalKeys call failed: {exc}") from exc

        # bool is an int subclass - a boolean here means the ABI is wrong
        if isinstance(total, bool) or not isinstance(total, int) or total < 0:
            raise VerificationFailedError(wallet, f"totalKeys returned non-numeric {total!r}")
        return total

    async def _read_has_valid_key(self, contract: EntitlementContractRef, wallet: str) -> bool:
        try:
            valid = await self.gateway.has_valid_key(contract.address, wallet)
        except Exception as exc:
            logger.warning("has_valid_key_read_failed", wallet=wallet, error=str(exc))
            raise VerificationFailedError(wallet, f"getHasValidKey call failed: {exc}") from exc

        if not isinstance(valid, bool):
            raise VerificationFailedError(wallet, f"getHasValidKey returned non-boolean {valid!r}")
        return valid

    def _record(
        self, status: MembershipStatus, wallet: str | None, start: float, candidates: int
    ) -> None:
        duration = time.perf_counter() - start
        metrics.record_membership_check(status.value, duration)
        logger.info(
            "membership_verified",
            status=status.value,
            deciding_wallet=wallet,
            candidates=candidates,
            duration_seconds=duration,
        )
