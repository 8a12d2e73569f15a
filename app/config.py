"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys
from decimal import Decimal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from web3 import Web3

from app.models.domain import ChainParameters, EntitlementContractRef


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Membership Gate API"
    api_version: str = "0.1.0"
    api_description: str = "On-chain membership verification and signed content access"
    cors_allow_origins: str = "*"  # Comma-separated list

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "membership-gate"

    # Chain - NO DEFAULT for the lock, it identifies the membership
    network_id: int = 8453
    rpc_url: str = "https://mainnet.base.org"
    rpc_timeout_seconds: float = 20.0
    lock_address: str = ""

    # Payment token (Base USDC)
    payment_token_address: str = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
    payment_token_decimals: int = 6
    key_price: Decimal = Decimal("0.1")

    # Metadata used when the wallet has to add the network
    chain_name: str = "Base"
    native_currency_name: str = "Ether"
    native_currency_symbol: str = "ETH"
    native_currency_decimals: int = 18
    block_explorer_url: str = "https://basescan.org"

    # CDN signed URLs
    cdn_domain: str = ""
    cdn_key_pair_id: str = ""
    cdn_private_key: str = ""  # PEM, raw or base64 encoded
    cdn_private_key_secret_id: str = ""  # AWS Secrets Manager id, wins over cdn_private_key
    aws_region: str = "us-east-1"
    signed_url_ttl_seconds: int = 300

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        This prevents silent failures that only manifest at runtime.
        """
        errors: list[str] = []

        if not self.lock_address:
            errors.append("LOCK_ADDRESS is required but empty or missing")
        elif not Web3.is_address(self.lock_address):
            errors.append(f"LOCK_ADDRESS is not a valid address: {self.lock_address}")

        if not Web3.is_address(self.payment_token_address):
            errors.append(
                f"PAYMENT_TOKEN_ADDRESS is not a valid address: {self.payment_token_address}"
            )

        if not self.cdn_domain:
            errors.append("CDN_DOMAIN is required but empty or missing")
        if not self.cdn_key_pair_id:
            errors.append("CDN_KEY_PAIR_ID is required but empty or missing")
        if not self.cdn_private_key and not self.cdn_private_key_secret_id:
            errors.append("One of CDN_PRIVATE_KEY or CDN_PRIVATE_KEY_SECRET_ID must be set")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def allowed_origins(self) -> list[str]:
        """Get list of allowed CORS origins."""
        return [o.strip() for o in self.cors_allow_origins.split(",") if o.strip()]

    @property
    def contract_ref(self) -> EntitlementContractRef:
        """Entitlement contract this deployment gates on."""
        return EntitlementContractRef(
            address=Web3.to_checksum_address(self.lock_address),
            network_id=self.network_id,
        )

    @property
    def chain_parameters(self) -> ChainParameters:
        """Network metadata handed to wallets that do not know the target chain."""
        return ChainParameters(
            chain_id=self.network_id,
            chain_name=self.chain_name,
            rpc_urls=(self.rpc_url,),
            native_currency_name=self.native_currency_name,
            native_currency_symbol=self.native_currency_symbol,
            native_currency_decimals=self.native_currency_decimals,
            block_explorer_urls=(self.block_explorer_url,) if self.block_explorer_url else (),
        )


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
