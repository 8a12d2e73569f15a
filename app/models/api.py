"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from enum import Enum

from pydantic import BaseModel, Field


class MembershipStatus(str, Enum):
    """Membership state derived from the entitlement contract."""

    NONE = "none"
    EXPIRED = "expired"
    ACTIVE = "active"


class TransactionAction(str, Enum):
    """On-chain action performed against the entitlement contract."""

    PURCHASE = "purchase"
    RENEW = "renew"


# ============================================================================
# Broker Models
# ============================================================================


class SignedUrlResponse(BaseModel):
    """GET /v1/content/{resource} response."""

    url: str = Field(..., description="Time-limited signed CDN URL")


class MembershipStatusResponse(BaseModel):
    """GET /v1/membership response."""

    status: MembershipStatus
    address: str | None = Field(
        None, description="Wallet that decided the status (None when no wallet holds a key)"
    )
