"""
Access Policy Signer - Time-limited CloudFront signed URLs.

The canonical policy bytes (see AccessPolicy.serialize) are signed with
RSA-SHA1 (PKCS#1 v1.5), which is what CloudFront verifies. Policy and
signature are base64 encoded with CloudFront's own character substitution
(+ -> -, = -> _, / -> ~), which is not base64url.
"""

import base64
import binascii
import time
from collections.abc import Callable
from urllib.parse import quote

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from structlog import get_logger

from app.config import Settings
from app.exceptions import InvalidInputError, SigningUnavailableError
from app.models.domain import AccessPolicy, SignedUrl
from app.observability.metrics import metrics
from app.services.secret_store import SecretStore

logger = get_logger(__name__)

# Identifier passed to the secret store when the key comes from configuration
DEFAULT_KEY_SECRET_ID = "cdn-private-key"


def cloudfront_b64encode(data: bytes) -> str:
    """Base64 with CloudFront's URL-safe substitution."""
    encoded = base64.b64encode(data).decode("ascii")
    return encoded.replace("+", "-").replace("=", "_").replace("/", "~")


def load_rsa_private_key(material: str) -> rsa.RSAPrivateKey:
    """
    Parse PEM key material as stored in env vars or secrets.

    Accepts raw PEM, PEM with escaped newlines, or base64 encoded PEM.

    Raises:
        SigningUnavailableError: If the material is not an RSA private key
    """
    pem = material.strip().replace("\\n", "\n")
    if not pem.startswith("-----BEGIN"):
        try:
            pem = base64.b64decode(pem, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise SigningUnavailableError("Signing key is neither PEM nor base64 PEM") from exc

    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise SigningUnavailableError(f"Signing key could not be parsed: {exc}") from exc

    if not isinstance(key, rsa.RSAPrivateKey):
        raise SigningUnavailableError("CDN signing key must be an RSA private key")
    return key


class AccessPolicySigner:
    """
    Issues signed URLs for resources behind the CDN.

    Only call after membership has been confirmed as active.
    """

    def __init__(
        self,
        settings: Settings,
        secret_store: SecretStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cdn_domain = settings.cdn_domain
        self.key_pair_id = settings.cdn_key_pair_id
        self.default_ttl_seconds = settings.signed_url_ttl_seconds
        self.secret_id = settings.cdn_private_key_secret_id or DEFAULT_KEY_SECRET_ID
        self.secret_store = secret_store
        self.clock = clock
        self._private_key: rsa.RSAPrivateKey | None = None

    def resource_url(self, resource: str) -> str:
        """Absolute CDN URL for a resource identifier."""
        path = resource.strip().lstrip("/")
        if not path:
            raise InvalidInputError("Resource identifier cannot be empty")
        return f"https://{self.cdn_domain}/{quote(path)}"

    async def issue(self, resource: str, ttl_seconds: int | None = None) -> SignedUrl:
        """
        Build, sign, and embed an access policy for a resource.

        Args:
            resource: Resource identifier (path on the CDN)
            ttl_seconds: Lifetime of the URL (default from settings)

        Returns:
            SignedUrl with Policy, Signature, and Key-Pair-Id query parameters

        Raises:
            InvalidInputError: If the resource identifier is empty
            SigningUnavailableError: If the key cannot be retrieved or used
        """
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        url = self.resource_url(resource)
        policy = AccessPolicy(resource_url=url, expires_at=int(self.clock()) + ttl)
        policy_bytes = policy.serialize()

        private_key = await self._get_private_key()
        try:
            signature = private_key.sign(policy_bytes, padding.PKCS1v15(), hashes.SHA1())
        except (ValueError, TypeError) as exc:
            metrics.record_signed_url(success=False)
            logger.error("policy_signing_failed", resource=url, error=str(exc))
            raise SigningUnavailableError(f"Policy signing failed: {exc}") from exc

        signed_url = (
            f"{url}?Policy={cloudfront_b64encode(policy_bytes)}"
            f"&Signature={cloudfront_b64encode(signature)}"
            f"&Key-Pair-Id={self.key_pair_id}"
        )

        metrics.record_signed_url(success=True)
        logger.info("signed_url_issued", resource=url, expires_at=policy.expires_at, ttl=ttl)

        return SignedUrl(url=signed_url, policy=policy, key_pair_id=self.key_pair_id)

    async def _get_private_key(self) -> rsa.RSAPrivateKey:
        """Fetch and parse the signing key once per process."""
        if self._private_key is not None:
            return self._private_key

        try:
            material = await self.secret_store.get_secret(self.secret_id)
            private_key = load_rsa_private_key(material)
        except Exception as exc:
            metrics.record_signed_url(success=False)
            logger.error(
                "signing_key_unavailable",
                secret_id=self.secret_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            if isinstance(exc, SigningUnavailableError):
                raise
            raise SigningUnavailableError(f"Signing key retrieval failed: {exc}") from exc

        self._private_key = private_key
        return private_key
