"""
Entitlement Transaction Orchestrator - Acquire or renew a membership key.

Runs on the client, once per explicit user action:

    NetworkCheck -> AllowanceCheck -> Submit -> Outcome

There is no internal retry. If the approval lands but submission fails, a
repeat call re-reads the (now sufficient) allowance and goes straight to
Submit. Callers must not run two actions for the same wallet concurrently.
"""

from decimal import Decimal
from typing import Any

from structlog import get_logger
from web3.exceptions import ContractLogicError

from app.config import Settings
from app.exceptions import (
    AllowanceFailureError,
    ContractRevertError,
    InvalidInputError,
    NetworkMismatchError,
)
from app.models.api import TransactionAction
from app.models.domain import (
    EntitlementTransactionIntent,
    StablecoinAllowance,
    to_wallet_address,
)
from app.observability.metrics import metrics
from app.services.chain import ChainGateway
from app.services.error_decoder import decode_contract_error
from app.services.wallet import UNRECOGNIZED_CHAIN, WalletProvider, WalletRequestError

logger = get_logger(__name__)


def extract_revert_data(exc: BaseException) -> str | None:
    """Pull the raw revert payload out of a web3 or wallet error, if it has one."""
    data: Any = None
    if isinstance(exc, ContractLogicError):
        data = exc.data
    elif isinstance(exc, WalletRequestError):
        data = exc.data
        # Wallets nest the payload as {"data": "0x..."} or {"originalError": {"data": ...}}
        if isinstance(data, dict):
            data = data.get("data") or (data.get("originalError") or {}).get("data")

    if isinstance(data, str) and data[:2].lower() == "0x" and len(data) > 2:
        return data
    return None


class EntitlementOrchestrator:
    """Drives purchase and renewal of lock keys through a user's wallet."""

    def __init__(self, settings: Settings, gateway: ChainGateway) -> None:
        self.gateway = gateway
        self.chain = settings.chain_parameters
        self.lock_address = settings.contract_ref.address
        self.payment_token_address = to_wallet_address(settings.payment_token_address)
        self.payment_token_decimals = settings.payment_token_decimals
        self.key_price: Decimal = settings.key_price

    def build_intent(
        self, action: TransactionAction, owner: str, token_id: int | None = None
    ) -> EntitlementTransactionIntent:
        """Intent for the configured lock and price; renewals refer the owner."""
        owner = to_wallet_address(owner)
        return EntitlementTransactionIntent(
            action=action,
            lock_address=self.lock_address,
            owner=owner,
            key_price=self.key_price,
            token_address=self.payment_token_address,
            decimals=self.payment_token_decimals,
            referrer=owner if action == TransactionAction.RENEW else None,
            token_id=token_id,
        )

    # ========================================================================
    # Steps
    # ========================================================================

    async def ensure_network(self, wallet: WalletProvider) -> None:
        """
        Put the wallet on the target chain.

        Raises:
            NetworkMismatchError: If the wallet refuses to switch or add the chain
        """
        chain_id_hex = self.chain.chain_id_hex
        try:
            await wallet.request("wallet_switchEthereumChain", [{"chainId": chain_id_hex}])
            logger.info("wallet_network_switched", wallet=wallet.address, chain_id=chain_id_hex)
            return
        except WalletRequestError as exc:
            if exc.code != UNRECOGNIZED_CHAIN:
                logger.warning(
                    "wallet_network_switch_failed",
                    wallet=wallet.address,
                    code=exc.code,
                    error=exc.message,
                )
                raise NetworkMismatchError(self.chain.chain_id, exc.message) from exc
        except Exception as exc:
            raise NetworkMismatchError(self.chain.chain_id, str(exc)) from exc

        # Unknown chain: adding it also makes it the active one
        logger.info("wallet_network_unknown_adding", wallet=wallet.address, chain_id=chain_id_hex)
        try:
            await wallet.request("wallet_addEthereumChain", [self.chain.to_add_chain_params()])
        except Exception as exc:
            logger.warning("wallet_network_add_failed", wallet=wallet.address, error=str(exc))
            message = exc.message if isinstance(exc, WalletRequestError) else str(exc)
            raise NetworkMismatchError(self.chain.chain_id, message) from exc

        logger.info("wallet_network_added", wallet=wallet.address, chain_id=chain_id_hex)

    async def ensure_allowance(
        self,
        wallet: WalletProvider,
        spender: str,
        min_amount: int,
        token_address: str | None = None,
    ) -> StablecoinAllowance:
        """
        Make sure spender may pull at least min_amount of the stablecoin.

        Reads the current allowance; when short, approves exactly min_amount
        and waits for the approval to be mined. Larger allowances are kept.

        Returns:
            Allowance in effect after this step

        Raises:
            AllowanceFailureError: If reading, approving, or confirming fails
        """
        token = token_address or self.payment_token_address
        owner = wallet.address

        try:
            current = await self.gateway.allowance(token, owner, spender)
        except Exception as exc:
            raise AllowanceFailureError(owner, spender, f"allowance read failed: {exc}") from exc

        allowance = StablecoinAllowance(owner=owner, spender=spender, amount=current)
        if allowance.covers(min_amount):
            logger.info(
                "allowance_sufficient", owner=owner, spender=spender, allowance=current
            )
            return allowance

        logger.info(
            "approval_required",
            owner=owner,
            spender=spender,
            allowance=current,
            required=min_amount,
        )
        try:
            signer = await wallet.get_signer()
            tx = await self.gateway.build_approval(token, owner, spender, min_amount)
            tx_hash = await signer.send_transaction(tx)
            logger.info("approval_submitted", owner=owner, tx_hash=tx_hash)
            status = await self.gateway.wait_for_receipt(tx_hash)
        except WalletRequestError as exc:
            raise AllowanceFailureError(owner, spender, exc.message) from exc
        except Exception as exc:
            raise AllowanceFailureError(owner, spender, f"approval failed: {exc}") from exc

        if status != 1:
            raise AllowanceFailureError(owner, spender, f"approval transaction {tx_hash} reverted")

        logger.info("approval_confirmed", owner=owner, tx_hash=tx_hash)
        return StablecoinAllowance(owner=owner, spender=spender, amount=min_amount)

    # ========================================================================
    # Actions
    # ========================================================================

    async def purchase(
        self, wallet: WalletProvider, intent: EntitlementTransactionIntent | None = None
    ) -> str:
        """
        Buy a new key for the wallet.

        Returns:
            Transaction hash of the purchase

        Raises:
            NetworkMismatchError, AllowanceFailureError, ContractRevertError
        """
        intent = intent or self.build_intent(TransactionAction.PURCHASE, wallet.address)
        if intent.action != TransactionAction.PURCHASE:
            raise InvalidInputError(f"purchase() given a {intent.action.value} intent")
        return await self._execute(wallet, intent)

    async def renew(
        self, wallet: WalletProvider, intent: EntitlementTransactionIntent | None = None
    ) -> str:
        """
        Extend the wallet's existing key.

        Returns:
            Transaction hash of the extension

        Raises:
            NetworkMismatchError, AllowanceFailureError, ContractRevertError
        """
        intent = intent or self.build_intent(TransactionAction.RENEW, wallet.address)
        if intent.action != TransactionAction.RENEW:
            raise InvalidInputError(f"renew() given a {intent.action.value} intent")
        return await self._execute(wallet, intent)

    async def _execute(self, wallet: WalletProvider, intent: EntitlementTransactionIntent) -> str:
        if to_wallet_address(intent.owner) != to_wallet_address(wallet.address):
            raise InvalidInputError("Intent owner does not match the wallet")

        logger.info(
            "entitlement_action_started",
            action=intent.action.value,
            wallet=wallet.address,
            lock=intent.lock_address,
            amount=intent.amount,
        )

        await self.ensure_network(wallet)
        await self.ensure_allowance(
            wallet, intent.lock_address, intent.amount, token_address=intent.token_address
        )

        signer = await wallet.get_signer()
        try:
            if intent.action == TransactionAction.PURCHASE:
                tx = await self.gateway.build_purchase(intent)
            else:
                token_id = intent.token_id
                if token_id is None:
                    token_id = await self.gateway.token_of_owner(intent.lock_address, intent.owner)
                tx = await self.gateway.build_extend(intent, token_id)
            tx_hash = await signer.send_transaction(tx)
        except Exception as exc:
            raw_data = extract_revert_data(exc)
            if raw_data is None:
                logger.warning(
                    "entitlement_action_failed",
                    action=intent.action.value,
                    wallet=wallet.address,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                metrics.record_transaction(intent.action.value, "failed")
                raise
            reason = decode_contract_error(raw_data)
            logger.warning(
                "entitlement_action_reverted",
                action=intent.action.value,
                wallet=wallet.address,
                reason=reason,
            )
            metrics.record_transaction(intent.action.value, "reverted")
            raise ContractRevertError(raw_data, reason) from exc

        logger.info(
            "entitlement_action_submitted",
            action=intent.action.value,
            wallet=wallet.address,
            tx_hash=tx_hash,
        )
        metrics.record_transaction(intent.action.value, "submitted")
        return tx_hash
