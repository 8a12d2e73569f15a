"""
Chain Gateway - Read and build calls against the lock and payment token.

All chain access of the service and the orchestrator goes through the
ChainGateway protocol so callers never touch web3 directly.
"""

from typing import Any, Protocol

import aiohttp
from structlog import get_logger
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.contract import AsyncContract

from app.config import Settings
from app.models.domain import ZERO_ADDRESS, EntitlementTransactionIntent

logger = get_logger(__name__)

PUBLIC_LOCK_ABI: list[dict[str, Any]] = [
    {
        "inputs": [{"internalType": "address", "name": "_keyOwner", "type": "address"}],
        "name": "totalKeys",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "_user", "type": "address"}],
        "name": "getHasValidKey",
        "outputs": [{"internalType": "bool", "name": "isValid", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "_keyOwner", "type": "address"},
            {"internalType": "uint256", "name": "_index", "type": "uint256"},
        ],
        "name": "tokenOfOwnerByIndex",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "uint256[]", "name": "_values", "type": "uint256[]"},
            {"internalType": "address[]", "name": "_recipients", "type": "address[]"},
            {"internalType": "address[]", "name": "_referrers", "type": "address[]"},
            {"internalType": "address[]", "name": "_keyManagers", "type": "address[]"},
            {"internalType": "bytes[]", "name": "_data", "type": "bytes[]"},
        ],
        "name": "purchase",
        "outputs": [{"internalType": "uint256[]", "name": "", "type": "uint256[]"}],
        "stateMutability": "payable",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "uint256", "name": "_value", "type": "uint256"},
            {"internalType": "uint256", "name": "_tokenId", "type": "uint256"},
            {"internalType": "address", "name": "_referrer", "type": "address"},
            {"internalType": "bytes", "name": "_data", "type": "bytes"},
        ],
        "name": "extend",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
]

ERC20_ABI: list[dict[str, Any]] = [
    {
        "inputs": [
            {"internalType": "address", "name": "owner", "type": "address"},
            {"internalType": "address", "name": "spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "spender", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
        ],
        "name": "approve",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


class ChainGateway(Protocol):
    """Chain operations used by the verifier and the orchestrator."""

    async def total_keys(self, lock_address: str, owner: str) -> int:
        """Number of keys ever owned by owner on the lock."""
        ...

    async def has_valid_key(self, lock_address: str, owner: str) -> bool:
        """Whether owner currently holds an unexpired key."""
        ...

    async def token_of_owner(self, lock_address: str, owner: str, index: int = 0) -> int:
        """Token id of the owner's key at index."""
        ...

    async def allowance(self, token_address: str, owner: str, spender: str) -> int:
        """ERC-20 allowance from owner to spender in base units."""
        ...

    async def build_approval(
        self, token_address: str, owner: str, spender: str, amount: int
    ) -> dict[str, Any]:
        """Unsigned approve(spender, amount) transaction."""
        ...

    async def build_purchase(self, intent: EntitlementTransactionIntent) -> dict[str, Any]:
        """Unsigned lock purchase transaction for a new key."""
        ...

    async def build_extend(
        self, intent: EntitlementTransactionIntent, token_id: int
    ) -> dict[str, Any]:
        """Unsigned lock extend transaction for an existing key."""
        ...

    async def wait_for_receipt(self, tx_hash: str) -> int:
        """Wait for a transaction to be mined and return its receipt status."""
        ...


def build_web3(settings: Settings) -> AsyncWeb3:
    """Create the process-wide async web3 client for the configured RPC endpoint."""
    provider = AsyncHTTPProvider(
        settings.rpc_url,
        request_kwargs={"timeout": aiohttp.ClientTimeout(total=settings.rpc_timeout_seconds)},
    )
    return AsyncWeb3(provider)


class Web3ChainGateway:
    """ChainGateway backed by an AsyncWeb3 JSON-RPC client."""

    def __init__(self, web3: AsyncWeb3) -> None:
        self.web3 = web3

    def _lock(self, address: str) -> AsyncContract:
        return self.web3.eth.contract(
            address=Web3.to_checksum_address(address), abi=PUBLIC_LOCK_ABI
        )

    def _token(self, address: str) -> AsyncContract:
        return self.web3.eth.contract(address=Web3.to_checksum_address(address), abi=ERC20_ABI)

    async def total_keys(self, lock_address: str, owner: str) -> int:
        result: int = await self._lock(lock_address).functions.totalKeys(
            Web3.to_checksum_address(owner)
        ).call()
        return result

    async def has_valid_key(self, lock_address: str, owner: str) -> bool:
        result: bool = await self._lock(lock_address).functions.getHasValidKey(
            Web3.to_checksum_address(owner)
        ).call()
        return result

    async def token_of_owner(self, lock_address: str, owner: str, index: int = 0) -> int:
        result: int = await self._lock(lock_address).functions.tokenOfOwnerByIndex(
            Web3.to_checksum_address(owner), index
        ).call()
        return result

    async def allowance(self, token_address: str, owner: str, spender: str) -> int:
        result: int = await self._token(token_address).functions.allowance(
            Web3.to_checksum_address(owner), Web3.to_checksum_address(spender)
        ).call()
        return result

    async def build_approval(
        self, token_address: str, owner: str, spender: str, amount: int
    ) -> dict[str, Any]:
        fn = self._token(token_address).functions.approve(Web3.to_checksum_address(spender), amount)
        tx: dict[str, Any] = await fn.build_transaction({"from": Web3.to_checksum_address(owner)})
        return tx

    async def build_purchase(self, intent: EntitlementTransactionIntent) -> dict[str, Any]:
        owner = Web3.to_checksum_address(intent.owner)
        referrer = Web3.to_checksum_address(intent.referrer) if intent.referrer else ZERO_ADDRESS
        # ERC-20 priced lock: price travels in _values, no native value attached
        fn = self._lock(intent.lock_address).functions.purchase(
            [intent.amount], [owner], [referrer], [ZERO_ADDRESS], [b""]
        )
        tx: dict[str, Any] = await fn.build_transaction({"from": owner, "value": 0})
        return tx

    async def build_extend(
        self, intent: EntitlementTransactionIntent, token_id: int
    ) -> dict[str, Any]:
        owner = Web3.to_checksum_address(intent.owner)
        referrer = Web3.to_checksum_address(intent.referrer) if intent.referrer else ZERO_ADDRESS
        fn = self._lock(intent.lock_address).functions.extend(
            intent.amount, token_id, referrer, b""
        )
        tx: dict[str, Any] = await fn.build_transaction({"from": owner, "value": 0})
        return tx

    async def wait_for_receipt(self, tx_hash: str) -> int:
        receipt = await self.web3.eth.wait_for_transaction_receipt(
            tx_hash  # type: ignore[arg-type]
        )
        status: int = receipt["status"]
        logger.info(
            "transaction_receipt_received",
            tx_hash=tx_hash,
            status=status,
            block_number=receipt["blockNumber"],
        )
        return status

    async def close(self) -> None:
        """Release the RPC provider's HTTP session."""
        await self.web3.provider.disconnect()
