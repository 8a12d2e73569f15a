"""
Pytest Configuration and Centralized Fixtures.

Provides reusable fakes and fixtures for testing:
- RSA signing key generated for the test session
- Fake chain gateway with per-wallet lock state and call recording
- Fake wallet provider and signer
- Signer, verifier and broker wired to the fakes
- API test client with dependency overrides
"""

import os
from collections.abc import AsyncGenerator
from typing import Any

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import FastAPI
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from web3 import Web3

# Signing key for the whole test session
TEST_RSA_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)
TEST_RSA_PEM = TEST_RSA_KEY.private_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PrivateFormat.PKCS8,
    encryption_algorithm=serialization.NoEncryption(),
).decode("utf-8")

LOCK_ADDRESS = "0x1111111111111111111111111111111111111111"
WALLET_A = "0x000000000000000000000000000000000000000a"
WALLET_B = "0x000000000000000000000000000000000000000b"
WALLET_C = "0x000000000000000000000000000000000000000c"
FIXED_NOW = 1_700_000_000

# Set required environment variables BEFORE importing app modules
os.environ.setdefault("LOCK_ADDRESS", LOCK_ADDRESS)
os.environ.setdefault("CDN_DOMAIN", "cdn.test")
os.environ.setdefault("CDN_KEY_PAIR_ID", "KTESTKEYPAIR")
os.environ.setdefault("CDN_PRIVATE_KEY", TEST_RSA_PEM)
os.environ.setdefault("TRACING_ENABLED", "false")

from app.config import settings  # noqa: E402
from app.models.domain import EntitlementContractRef  # noqa: E402
from app.services.access_policy import AccessPolicySigner  # noqa: E402
from app.services.broker import BrokerService  # noqa: E402
from app.services.membership import MembershipVerifier  # noqa: E402
from app.services.secret_store import StaticSecretStore  # noqa: E402

# ============================================================================
# Chain Fakes
# ============================================================================


class FakeGateway:
    """ChainGateway with in-memory lock state that records every call."""

    def __init__(
        self,
        total_keys: dict[str, Any] | None = None,
        valid_keys: dict[str, Any] | None = None,
        allowance: int = 0,
        receipt_status: int = 1,
        token_id: int = 7,
    ) -> None:
        self.total_keys_by_wallet = {
            Web3.to_checksum_address(k): v for k, v in (total_keys or {}).items()
        }
        self.valid_by_wallet = {
            Web3.to_checksum_address(k): v for k, v in (valid_keys or {}).items()
        }
        self.current_allowance = allowance
        self.receipt_status = receipt_status
        self.allowance_on_receipt: int | None = None
        self.owned_token_id = token_id
        self.fail_total_keys: Exception | None = None
        self.fail_allowance: Exception | None = None
        self.calls: list[tuple[str, Any]] = []
        self.closed = False

    async def total_keys(self, lock_address: str, owner: str) -> Any:
        self.calls.append(("total_keys", owner))
        if self.fail_total_keys:
            raise self.fail_total_keys
        return self.total_keys_by_wallet.get(owner, 0)

    async def has_valid_key(self, lock_address: str, owner: str) -> Any:
        self.calls.append(("has_valid_key", owner))
        return self.valid_by_wallet.get(owner, False)

    async def token_of_owner(self, lock_address: str, owner: str, index: int = 0) -> int:
        self.calls.append(("token_of_owner", owner))
        return self.owned_token_id

    async def allowance(self, token_address: str, owner: str, spender: str) -> int:
        self.calls.append(("allowance", owner))
        if self.fail_allowance:
            raise self.fail_allowance
        return self.current_allowance

    async def build_approval(
        self, token_address: str, owner: str, spender: str, amount: int
    ) -> dict[str, Any]:
        self.calls.append(("build_approval", amount))
        return {"to": token_address, "from": owner, "data": "0xapprove", "amount": amount}

    async def build_purchase(self, intent: Any) -> dict[str, Any]:
        self.calls.append(("build_purchase", intent.amount))
        return {"to": intent.lock_address, "from": intent.owner, "data": "0xpurchase"}

    async def build_extend(self, intent: Any, token_id: int) -> dict[str, Any]:
        self.calls.append(("build_extend", token_id))
        return {"to": intent.lock_address, "from": intent.owner, "data": "0xextend"}

    async def wait_for_receipt(self, tx_hash: str) -> int:
        self.calls.append(("wait_for_receipt", tx_hash))
        # a mined approval moves the allowance, like the token contract would
        if self.receipt_status == 1 and self.allowance_on_receipt is not None:
            self.current_allowance = self.allowance_on_receipt
        return self.receipt_status

    async def close(self) -> None:
        self.closed = True

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


class FakeSigner:
    """TransactionSigner that records transactions and returns sequential hashes."""

    def __init__(self, address: str) -> None:
        self.address = address
        self.sent: list[dict[str, Any]] = []
        self.fail_on: dict[str, Exception] = {}

    async def send_transaction(self, tx: dict[str, Any]) -> str:
        error = self.fail_on.get(tx.get("data", ""))
        if error:
            raise error
        self.sent.append(tx)
        return "0x" + f"{len(self.sent):064x}"


class FakeWallet:
    """WalletProvider answering requests from a method -> result/exception map."""

    def __init__(self, address: str, responses: dict[str, Any] | None = None) -> None:
        self.address = Web3.to_checksum_address(address)
        self.responses = responses or {}
        self.requests: list[tuple[str, list[Any]]] = []
        self.signer = FakeSigner(self.address)

    async def request(self, method: str, params: list[Any]) -> Any:
        self.requests.append((method, params))
        response = self.responses.get(method)
        if isinstance(response, Exception):
            raise response
        return response

    async def get_signer(self) -> FakeSigner:
        return self.signer

    def request_methods(self) -> list[str]:
        return [method for method, _ in self.requests]


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def contract_ref() -> EntitlementContractRef:
    """Entitlement contract under test."""
    return settings.contract_ref


@pytest.fixture
def gateway() -> FakeGateway:
    """Gateway where no wallet holds a key."""
    return FakeGateway()


@pytest.fixture
def wallet() -> FakeWallet:
    """Wallet that accepts every request."""
    return FakeWallet(WALLET_A)


@pytest.fixture
def fixed_clock():
    """Clock pinned to FIXED_NOW."""
    return lambda: float(FIXED_NOW)


@pytest.fixture
def access_policy_signer(fixed_clock) -> AccessPolicySigner:
    """Signer using the session test key and a fixed clock."""
    return AccessPolicySigner(settings, StaticSecretStore(TEST_RSA_PEM), clock=fixed_clock)


@pytest.fixture
def verifier(gateway: FakeGateway) -> MembershipVerifier:
    """Verifier reading from the fake gateway."""
    return MembershipVerifier(gateway)


@pytest.fixture
def broker_service(
    verifier: MembershipVerifier,
    access_policy_signer: AccessPolicySigner,
    contract_ref: EntitlementContractRef,
) -> BrokerService:
    """Broker wired to the fake gateway and the test signer."""
    return BrokerService(verifier=verifier, signer=access_policy_signer, contract=contract_ref)


# ============================================================================
# FastAPI Test Client Fixtures
# ============================================================================


@pytest.fixture
def app() -> FastAPI:
    """Create FastAPI app for testing."""
    from app.main import app as main_app

    return main_app


@pytest.fixture
def client(app: FastAPI, broker_service: BrokerService) -> TestClient:
    """Synchronous test client with the broker wired to fakes."""
    from app.api.dependencies import get_broker_service

    app.dependency_overrides[get_broker_service] = lambda: broker_service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(
    app: FastAPI, broker_service: BrokerService
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client for async tests."""
    from app.api.dependencies import get_broker_service

    app.dependency_overrides[get_broker_service] = lambda: broker_service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
