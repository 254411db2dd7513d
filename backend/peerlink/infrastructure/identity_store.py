"""Identity Store — local signing identity, remote public-key cache, HTTP request signatures.

Invariants:
    - Exactly one LocalIdentity per store (per process); create_local_identity is idempotent
    - Private key material exists only for the local identity and never appears in repr/dicts
    - Remote entries hold public PEMs only, cached by domain after a successful fetch
    - verify_request rebuilds the signing string from the ACTUAL inbound request, in the
      order given by the header's `headers` field
    - fetch_remote_public_key is bounded by the HTTP client timeout and only ever raises
      PublicKeyFetchFailedError

Design Decisions:
    - Store object injected by the runtime container, not an ambient global table
      (ADR: test isolation)
    - keyId host decides the lookup: local identity → cache → remote actor fetch
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from urllib.parse import urldefrag

import httpx
from cryptography.hazmat.primitives.asymmetric import rsa

from peerlink.core.domain_types import (
    ACTIVITY_CONTENT_TYPE,
    DEFAULT_SIGNED_HEADERS,
    KEY_FRAGMENT,
    normalize_domain,
)
from peerlink.core.errors import (
    IdentityNotFoundError,
    InvalidSignatureError,
    PublicKeyFetchFailedError,
)
from peerlink.core.peer_instance import actor_url_for, domain_from_url
from peerlink.core.signatures import (
    build_signing_string,
    format_signature_header,
    parse_signature_header,
    signed_header_names,
)
from peerlink.infrastructure import crypto
from peerlink.infrastructure.federation_http import FederationHttpClient

logger = logging.getLogger(__name__)


@dataclass
class LocalIdentity:
    """The node's own signing identity."""
    domain: str
    actor_id: str
    key_id: str
    public_key_pem: str
    private_key: rsa.RSAPrivateKey = field(repr=False)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def public_dict(self) -> dict:
        return {
            "domain": self.domain,
            "actor_id": self.actor_id,
            "key_id": self.key_id,
            "public_key_pem": self.public_key_pem,
            "created_at": self.created_at.isoformat(),
        }


class IdentityStore:
    """Holds the local identity and cached remote public keys."""

    def __init__(self, http: FederationHttpClient | None = None):
        self._http = http
        self._local: LocalIdentity | None = None
        self._remote_keys: dict[str, str] = {}

    @property
    def local(self) -> LocalIdentity | None:
        return self._local

    def create_local_identity(self, domain: str, scheme: str = "https") -> LocalIdentity:
        """Generate the process keypair once; later calls return the same identity."""
        if self._local is not None:
            if self._local.domain != normalize_domain(domain):
                logger.warning(
                    "Local identity already exists, ignoring new domain",
                    extra={"domain": domain},
                )
            return self._local
        private_key = crypto.generate_private_key()
        actor_id = actor_url_for(normalize_domain(domain), scheme)
        self._local = LocalIdentity(
            domain=normalize_domain(domain),
            actor_id=actor_id,
            key_id=f"{actor_id}{KEY_FRAGMENT}",
            public_key_pem=crypto.public_key_pem(private_key),
            private_key=private_key,
        )
        logger.info("Created local signing identity", extra={"domain": self._local.domain})
        return self._local

    def remember_public_key(self, domain: str, public_key_pem: str) -> None:
        """Cache a remote peer's public key (never private material)."""
        self._remote_keys[normalize_domain(domain)] = public_key_pem

    def public_key_for(self, domain: str) -> str:
        """Local or cached public key, or IdentityNotFoundError."""
        domain = normalize_domain(domain)
        if self._local is not None and self._local.domain == domain:
            return self._local.public_key_pem
        pem = self._remote_keys.get(domain)
        if pem is None:
            raise IdentityNotFoundError(domain)
        return pem

    def _private_key_for(self, domain: str) -> LocalIdentity:
        if self._local is None or self._local.domain != normalize_domain(domain):
            raise IdentityNotFoundError(domain)
        return self._local

    def sign(self, domain: str, data: str | bytes) -> str:
        """Base64 signature with the domain's private key."""
        identity = self._private_key_for(domain)
        return crypto.sign_bytes(identity.private_key, data)

    def verify(self, domain: str, data: str | bytes, signature: str) -> None:
        """Verify against the domain's known public key (raises on failure)."""
        crypto.verify_signature(self.public_key_for(domain), data, signature)

    def sign_request(
        self,
        domain: str,
        method: str,
        path: str,
        headers: Mapping[str, str],
        header_names: Iterable[str] = DEFAULT_SIGNED_HEADERS,
    ) -> str:
        """Signature header value for an outgoing request."""
        identity = self._private_key_for(domain)
        header_names = list(header_names)
        signing_string = build_signing_string(method, path, headers, header_names)
        signature = crypto.sign_bytes(identity.private_key, signing_string)
        return format_signature_header(identity.key_id, signature, header_names)

    async def verify_request(
        self,
        signature_header: str | None,
        method: str,
        path: str,
        headers: Mapping[str, str],
    ) -> str:
        """Verify an inbound request; returns the signer's domain.

        Raises InvalidSignatureError (incl. malformed header) or
        PublicKeyFetchFailedError. Never trusts the request on failure.
        """
        fields = parse_signature_header(signature_header)
        key_id = fields["keyId"]
        try:
            signer = domain_from_url(key_id)
        except ValueError:
            raise InvalidSignatureError(f"keyId is not a URL: {key_id!r}")

        signing_string = build_signing_string(
            method, path, headers, signed_header_names(fields),
        )
        try:
            public_pem = self.public_key_for(signer)
        except IdentityNotFoundError:
            public_pem = await self.fetch_remote_public_key(key_id)
            crypto.verify_signature(public_pem, signing_string, fields["signature"])
            return signer

        try:
            crypto.verify_signature(public_pem, signing_string, fields["signature"])
        except InvalidSignatureError:
            if self._local is not None and self._local.domain == signer:
                raise
            # cached remote key may be stale after a key rotation
            public_pem = await self.fetch_remote_public_key(key_id)
            crypto.verify_signature(public_pem, signing_string, fields["signature"])
        return signer

    async def fetch_remote_public_key(self, key_id: str) -> str:
        """Fetch publicKey.publicKeyPem from the actor named by key_id (fragment stripped)."""
        actor_url, _ = urldefrag(key_id)
        if self._http is None:
            raise PublicKeyFetchFailedError(key_id, "no HTTP client configured")
        try:
            status_code, body = await self._http.get_json(
                actor_url, accept=ACTIVITY_CONTENT_TYPE,
            )
        except httpx.HTTPError as e:
            raise PublicKeyFetchFailedError(key_id, f"transport error: {e}")
        if status_code != 200 or not isinstance(body, dict):
            raise PublicKeyFetchFailedError(key_id, f"HTTP {status_code}")
        public_key = body.get("publicKey")
        pem = public_key.get("publicKeyPem") if isinstance(public_key, dict) else None
        if not isinstance(pem, str) or not pem:
            raise PublicKeyFetchFailedError(key_id, "actor has no publicKeyPem")
        try:
            self.remember_public_key(domain_from_url(actor_url), pem)
        except ValueError:
            raise PublicKeyFetchFailedError(key_id, "actor URL has no host")
        return pem
