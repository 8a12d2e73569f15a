"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

import json
from dataclasses import dataclass
from decimal import Decimal

from web3 import Web3

from app.models.api import MembershipStatus, TransactionAction

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def to_wallet_address(value: str) -> str:
    """
    Canonicalise a wallet address to its EIP-55 checksum form.

    Raises:
        ValueError: If value is not a 20-byte hex address
    """
    if not isinstance(value, str) or not Web3.is_address(value.strip()):
        raise ValueError(f"Invalid wallet address: {value!r}")
    return Web3.to_checksum_address(value.strip())


@dataclass(frozen=True)
class EntitlementContractRef:
    """Entitlement contract (lock) on a specific network."""

    address: str
    network_id: int

    def __post_init__(self) -> None:
        """Validate contract reference."""
        if not Web3.is_address(self.address):
            raise ValueError(f"Invalid contract address: {self.address}")
        if self.network_id <= 0:
            raise ValueError(f"Invalid network id: {self.network_id}")


@dataclass(frozen=True)
class MembershipResult:
    """Verification outcome with the wallet that decided it."""

    status: MembershipStatus
    deciding_wallet: str | None


@dataclass(frozen=True)
class StablecoinAllowance:
    """ERC-20 allowance snapshot - re-read before every decision."""

    owner: str
    spender: str
    amount: int

    def covers(self, required: int) -> bool:
        """Check whether the approved amount is enough for a transfer."""
        return self.amount >= required


@dataclass(frozen=True)
class ChainParameters:
    """Network metadata for wallet_addEthereumChain (EIP-3085)."""

    chain_id: int
    chain_name: str
    rpc_urls: tuple[str, ...]
    native_currency_name: str
    native_currency_symbol: str
    native_currency_decimals: int
    block_explorer_urls: tuple[str, ...]

    @property
    def chain_id_hex(self) -> str:
        """Chain id as the 0x-prefixed hex string wallets expect."""
        return hex(self.chain_id)

    def to_add_chain_params(self) -> dict[str, object]:
        """Build the wallet_addEthereumChain request parameter."""
        return {
            "chainId": self.chain_id_hex,
            "chainName": self.chain_name,
            "rpcUrls": list(self.rpc_urls),
            "nativeCurrency": {
                "name": self.native_currency_name,
                "symbol": self.native_currency_symbol,
                "decimals": self.native_currency_decimals,
            },
            "blockExplorerUrls": list(self.block_explorer_urls),
        }


@dataclass(frozen=True)
class EntitlementTransactionIntent:
    """Purchase or renewal request - consumed by a single submission."""

    action: TransactionAction
    lock_address: str
    owner: str
    key_price: Decimal
    token_address: str
    decimals: int
    referrer: str | None = None
    token_id: int | None = None

    def __post_init__(self) -> None:
        """Validate intent constraints."""
        if self.key_price <= 0:
            raise ValueError(f"Key price must be positive: {self.key_price}")
        if self.decimals < 0:
            raise ValueError(f"Token decimals cannot be negative: {self.decimals}")
        if self.action == TransactionAction.RENEW and not self.referrer:
            raise ValueError("Renewal requires a referrer address")
        if self.action == TransactionAction.PURCHASE and self.token_id is not None:
            raise ValueError("Purchase cannot target an existing token id")
        # Reject prices finer than the token supports
        scaled = self.key_price.scaleb(self.decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(
                f"Key price {self.key_price} has more precision than {self.decimals} decimals"
            )

    @property
    def amount(self) -> int:
        """Key price in token base units."""
        return int(self.key_price.scaleb(self.decimals))


@dataclass(frozen=True)
class AccessPolicy:
    """CloudFront custom policy for a single resource."""

    resource_url: str
    expires_at: int  # epoch seconds

    def serialize(self) -> bytes:
        """
        Canonical policy bytes - exactly what gets signed.

        Key order is fixed (Statement > Resource, Condition > DateLessThan >
        AWS:EpochTime) and separators are compact, so the same policy always
        produces the same bytes.
        """
        document = {
            "Statement": [
                {
                    "Resource": self.resource_url,
                    "Condition": {"DateLessThan": {"AWS:EpochTime": self.expires_at}},
                }
            ]
        }
        return json.dumps(document, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


@dataclass(frozen=True)
class SignedUrl:
    """Signed CDN URL with the policy it embeds."""

    url: str
    policy: AccessPolicy
    key_pair_id: str

    @property
    def expires_at(self) -> int:
        """Expiry instant in epoch seconds."""
        return self.policy.expires_at
