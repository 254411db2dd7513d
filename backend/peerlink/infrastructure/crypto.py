"""RSA Primitives — keypair generation, PEM codec, rsa-sha256 sign/verify.

Invariants:
    - Signatures are RSASSA-PKCS1-v1_5 over SHA-256, base64-encoded (the "rsa-sha256" algorithm)
    - verify_signature raises InvalidSignatureError on ANY mismatch, bad base64 or bad PEM
    - Private keys are never serialized by this module except on explicit request

Design Decisions:
    - cryptography (hazmat) over hand-rolled math: the only maintained RSA implementation
      in the ecosystem
    - PKCS1-v1_5 rather than PSS: HTTP Signatures "rsa-sha256" peers expect deterministic v1.5
"""

import base64
import binascii

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from peerlink.core.errors import InvalidSignatureError

KEY_SIZE = 2048
PUBLIC_EXPONENT = 65537


def generate_private_key(key_size: int = KEY_SIZE) -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=key_size)


def public_key_pem(private_key: rsa.RSAPrivateKey) -> str:
    """SubjectPublicKeyInfo PEM of the key's public half."""
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def load_public_key(pem: str) -> rsa.RSAPublicKey:
    """Parse a PEM public key; InvalidSignatureError if it is not an RSA key."""
    try:
        key = serialization.load_pem_public_key(pem.encode("ascii"))
    except (ValueError, TypeError, UnicodeEncodeError) as e:
        raise InvalidSignatureError(f"Unusable public key: {e}")
    if not isinstance(key, rsa.RSAPublicKey):
        raise InvalidSignatureError("Public key is not RSA")
    return key


def _as_bytes(data: str | bytes) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else data


def sign_bytes(private_key: rsa.RSAPrivateKey, data: str | bytes) -> str:
    """Base64 rsa-sha256 signature of data."""
    raw = private_key.sign(_as_bytes(data), padding.PKCS1v15(), hashes.SHA256())
    return base64.b64encode(raw).decode("ascii")


def verify_signature(public_pem: str, data: str | bytes, signature: str) -> None:
    """Return None if signature matches, raise InvalidSignatureError otherwise."""
    key = load_public_key(public_pem)
    try:
        raw = base64.b64decode(signature, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidSignatureError("Signature is not valid base64")
    try:
        key.verify(raw, _as_bytes(data), padding.PKCS1v15(), hashes.SHA256())
    except InvalidSignature:
        raise InvalidSignatureError()
