"""
Tests for domain models.

Covers dataclass validation, derived values and policy serialization.
"""

import json
from decimal import Decimal

import pytest

from app.models.api import MembershipStatus, TransactionAction
from app.models.domain import (
    AccessPolicy,
    ChainParameters,
    EntitlementContractRef,
    EntitlementTransactionIntent,
    MembershipResult,
    SignedUrl,
    StablecoinAllowance,
    to_wallet_address,
)

LOCK = "0x1111111111111111111111111111111111111111"
OWNER = "0x000000000000000000000000000000000000000a"
TOKEN = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"


def make_intent(**overrides) -> EntitlementTransactionIntent:
    fields = {
        "action": TransactionAction.PURCHASE,
        "lock_address": LOCK,
        "owner": OWNER,
        "key_price": Decimal("0.1"),
        "token_address": TOKEN,
        "decimals": 6,
    }
    fields.update(overrides)
    return EntitlementTransactionIntent(**fields)


class TestToWalletAddress:
    """Tests for to_wallet_address."""

    def test_checksums_lowercase(self):
        """Lowercase address is returned in checksum form."""
        assert to_wallet_address(TOKEN.lower()) == TOKEN

    def test_strips_whitespace(self):
        """Surrounding whitespace is ignored."""
        assert to_wallet_address(f"  {TOKEN} ") == TOKEN

    @pytest.mark.parametrize("value", ["", "0x123", "not-an-address", "0x" + "g" * 40])
    def test_rejects_malformed(self, value):
        """Malformed addresses raise ValueError."""
        with pytest.raises(ValueError, match="Invalid wallet address"):
            to_wallet_address(value)


class TestEntitlementContractRef:
    """Tests for EntitlementContractRef."""

    def test_valid(self):
        """Valid reference is created."""
        ref = EntitlementContractRef(address=LOCK, network_id=8453)
        assert ref.network_id == 8453

    def test_invalid_address(self):
        """Bad address is rejected."""
        with pytest.raises(ValueError, match="Invalid contract address"):
            EntitlementContractRef(address="0x12", network_id=8453)

    def test_invalid_network(self):
        """Non-positive network id is rejected."""
        with pytest.raises(ValueError, match="Invalid network id"):
            EntitlementContractRef(address=LOCK, network_id=0)


class TestStablecoinAllowance:
    """Tests for StablecoinAllowance."""

    def test_covers_equal_amount(self):
        """Allowance equal to the requirement is enough."""
        assert StablecoinAllowance(OWNER, LOCK, 100_000).covers(100_000)

    def test_does_not_cover_smaller_amount(self):
        """Allowance below the requirement is not enough."""
        assert not StablecoinAllowance(OWNER, LOCK, 99_999).covers(100_000)


class TestChainParameters:
    """Tests for ChainParameters."""

    def test_add_chain_params(self):
        """wallet_addEthereumChain parameter uses camelCase keys and hex chain id."""
        params = ChainParameters(
            chain_id=8453,
            chain_name="Base",
            rpc_urls=("https://mainnet.base.org",),
            native_currency_name="Ether",
            native_currency_symbol="ETH",
            native_currency_decimals=18,
            block_explorer_urls=("https://basescan.org",),
        ).to_add_chain_params()

        assert params["chainId"] == "0x2105"
        assert params["chainName"] == "Base"
        assert params["rpcUrls"] == ["https://mainnet.base.org"]
        assert params["nativeCurrency"] == {"name": "Ether", "symbol": "ETH", "decimals": 18}
        assert params["blockExplorerUrls"] == ["https://basescan.org"]


class TestEntitlementTransactionIntent:
    """Tests for EntitlementTransactionIntent."""

    def test_amount_in_base_units(self):
        """0.1 of a 6-decimal token is 100000 base units."""
        assert make_intent().amount == 100_000

    def test_rejects_zero_price(self):
        """Price must be positive."""
        with pytest.raises(ValueError, match="must be positive"):
            make_intent(key_price=Decimal("0"))

    def test_rejects_excess_precision(self):
        """Price finer than the token decimals is rejected."""
        with pytest.raises(ValueError, match="more precision"):
            make_intent(key_price=Decimal("0.0000001"))

    def test_renew_requires_referrer(self):
        """Renewal without referrer is rejected."""
        with pytest.raises(ValueError, match="referrer"):
            make_intent(action=TransactionAction.RENEW)

    def test_renew_with_referrer(self):
        """Renewal with referrer is accepted."""
        intent = make_intent(action=TransactionAction.RENEW, referrer=OWNER, token_id=3)
        assert intent.token_id == 3

    def test_purchase_rejects_token_id(self):
        """Purchase cannot carry a token id."""
        with pytest.raises(ValueError, match="existing token id"):
            make_intent(token_id=1)


class TestAccessPolicy:
    """Tests for AccessPolicy serialization."""

    def test_canonical_bytes(self):
        """Policy serializes compactly with fixed key order."""
        policy = AccessPolicy(resource_url="https://cdn.test/a.pdf", expires_at=1700000300)
        assert policy.serialize() == (
            b'{"Statement":[{"Resource":"https://cdn.test/a.pdf",'
            b'"Condition":{"DateLessThan":{"AWS:EpochTime":1700000300}}}]}'
        )

    def test_serialization_is_stable(self):
        """Parsing and re-serializing reproduces the same bytes."""
        policy = AccessPolicy(resource_url="https://cdn.test/x", expires_at=42)
        document = json.loads(policy.serialize())
        statement = document["Statement"][0]
        again = AccessPolicy(
            resource_url=statement["Resource"],
            expires_at=statement["Condition"]["DateLessThan"]["AWS:EpochTime"],
        )
        assert again.serialize() == policy.serialize()


class TestResults:
    """Tests for small result dataclasses."""

    def test_signed_url_expiry(self):
        """SignedUrl exposes the policy expiry."""
        policy = AccessPolicy(resource_url="https://cdn.test/x", expires_at=99)
        assert SignedUrl(url="u", policy=policy, key_pair_id="K").expires_at == 99

    def test_membership_result(self):
        """MembershipResult keeps the deciding wallet."""
        result = MembershipResult(status=MembershipStatus.ACTIVE, deciding_wallet=OWNER)
        assert result.deciding_wallet == OWNER
