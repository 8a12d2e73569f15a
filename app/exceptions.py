"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""

from app.models.api import MembershipStatus


class MembershipGateError(Exception):
    """Base exception for all membership gate errors."""

    pass


class InvalidInputError(MembershipGateError):
    """Raised when request parameters are missing or malformed. Never retried."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid input: {message}")


class VerificationFailedError(MembershipGateError):
    """Raised when reading membership state from the chain fails. Retryable by the caller."""

    def __init__(self, address: str, message: str) -> None:
        self.address = address
        self.message = message
        super().__init__(f"Membership verification failed for {address}: {message}")


class MembershipDeniedError(MembershipGateError):
    """Raised when a wallet has no active membership."""

    def __init__(self, status: MembershipStatus) -> None:
        self.status = status
        reason = "No membership" if status == MembershipStatus.NONE else "Membership expired"
        self.reason = reason
        super().__init__(reason)


class SigningUnavailableError(MembershipGateError):
    """Raised when the signing key cannot be retrieved or used. Fatal for the request."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Signing unavailable: {message}")


class NetworkMismatchError(MembershipGateError):
    """Raised when the wallet cannot be switched to (or taught) the target chain."""

    def __init__(self, chain_id: int, message: str) -> None:
        self.chain_id = chain_id
        self.message = message
        super().__init__(
            f"Could not switch wallet to network {chain_id}: {message}. "
            "Switch networks in your wallet and try again."
        )


class AllowanceFailureError(MembershipGateError):
    """Raised when the stablecoin approval could not be read, submitted, or confirmed."""

    def __init__(self, owner: str, spender: str, message: str) -> None:
        self.owner = owner
        self.spender = spender
        self.message = message
        super().__init__(f"Allowance failure for {owner} -> {spender}: {message}")


class ContractRevertError(MembershipGateError):
    """Raised when the entitlement contract reverts - carries decoded reason."""

    def __init__(self, raw_data: str, reason: str) -> None:
        self.raw_data = raw_data
        self.reason = reason
        super().__init__(f"Transaction reverted: {reason}")
