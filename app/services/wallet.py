"""
Wallet Capability Interface - What the orchestrator needs from a wallet.

A wallet can answer EIP-1193 style requests (chain switch/add) and hand out a
transaction signer. Nothing else of a wallet SDK is relied on.
"""

from typing import Any, Protocol

from eth_account.signers.local import LocalAccount
from structlog import get_logger
from web3 import AsyncWeb3, Web3

logger = get_logger(__name__)

# EIP-1193 / EIP-3326 provider error codes
USER_REJECTED_REQUEST = 4001
UNSUPPORTED_METHOD = 4200
UNRECOGNIZED_CHAIN = 4902


class WalletRequestError(Exception):
    """Error returned by a wallet provider request."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"Wallet request failed ({code}): {message}")


class TransactionSigner(Protocol):
    """Handle able to sign and broadcast transactions for one account."""

    address: str

    async def send_transaction(self, tx: dict[str, Any]) -> str:
        """
        Sign and broadcast a transaction.

        Returns:
            0x-prefixed transaction hash
        """
        ...


class WalletProvider(Protocol):
    """Minimal wallet capability: request/response RPC plus a signer."""

    address: str

    async def request(self, method: str, params: list[Any]) -> Any:
        """
        Send an EIP-1193 request to the wallet.

        Raises:
            WalletRequestError: If the wallet rejects or fails the request
        """
        ...

    async def get_signer(self) -> TransactionSigner:
        """Get a transaction signer bound to the wallet's account."""
        ...


class LocalAccountSigner:
    """Signer backed by a local eth-account key, broadcasting through an RPC node."""

    def __init__(self, account: LocalAccount, web3: AsyncWeb3) -> None:
        self.account = account
        self.web3 = web3
        self.address = account.address

    async def send_transaction(self, tx: dict[str, Any]) -> str:
        """Fill nonce/chain/gas, sign locally, and broadcast the raw transaction."""
        tx = dict(tx)
        tx.setdefault("from", self.address)
        if "chainId" not in tx:
            tx["chainId"] = await self.web3.eth.chain_id
        if "nonce" not in tx:
            tx["nonce"] = await self.web3.eth.get_transaction_count(self.address, "pending")
        if "gas" not in tx:
            tx["gas"] = await self.web3.eth.estimate_gas(tx)  # type: ignore[arg-type]

        signed = self.account.sign_transaction(tx)
        tx_hash = await self.web3.eth.send_raw_transaction(signed.raw_transaction)

        logger.info("local_transaction_broadcast", sender=self.address, nonce=tx["nonce"])
        return Web3.to_hex(tx_hash)


class LocalKeyWallet:
    """
    Wallet provider for scripts and operators holding a raw key.

    The connected RPC node decides the network: a switch request succeeds only
    when the node already serves the requested chain, and adding networks is
    not supported.
    """

    def __init__(self, account: LocalAccount, web3: AsyncWeb3) -> None:
        self.account = account
        self.web3 = web3
        self.address = account.address

    async def request(self, method: str, params: list[Any]) -> Any:
        """Answer the subset of EIP-1193 requests the orchestrator sends."""
        if method == "eth_accounts":
            return [self.address]

        if method == "eth_chainId":
            return hex(await self.web3.eth.chain_id)

        if method == "wallet_switchEthereumChain":
            requested = int(params[0]["chainId"], 16)
            current = await self.web3.eth.chain_id
            if requested != current:
                raise WalletRequestError(
                    UNRECOGNIZED_CHAIN,
                    f"Unrecognized chain ID {hex(requested)}; RPC node serves {hex(current)}",
                )
            return None

        if method == "wallet_addEthereumChain":
            raise WalletRequestError(UNSUPPORTED_METHOD, "Local key wallet cannot add networks")

        raise WalletRequestError(UNSUPPORTED_METHOD, f"Unsupported method: {method}")

    async def get_signer(self) -> TransactionSigner:
        """Get a signer using the local key."""
        return LocalAccountSigner(self.account, self.web3)
