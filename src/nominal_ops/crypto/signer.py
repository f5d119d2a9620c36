"""RSA request signing for the upstream ledger.

The signature is computed over the exact bytes that go on the wire, so callers
must serialize the request once and pass those bytes both here and to the HTTP
client.
"""

from __future__ import annotations

import base64
import json
from typing import Any, NewType

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from ..domain.errors import SigningError

SignatureB64 = NewType("SignatureB64", str)


def json_to_bytes(data: dict[str, Any]) -> bytes:
    """Serialize a request body to the compact JSON bytes that are signed and sent."""
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def load_private_key_from_pem(pem_str: str) -> rsa.RSAPrivateKey:
    """Load an RSA private key from a PEM string.

    Raises:
        SigningError: If the PEM is malformed or holds a non-RSA key.
    """
    try:
        key = serialization.load_pem_private_key(pem_str.encode(), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise SigningError(f"Invalid private key PEM: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise SigningError(
            f"Private key must be RSA, got {type(key).__name__}"
        )
    return key


def sign_bytes(private_key: rsa.RSAPrivateKey, payload_bytes: bytes) -> SignatureB64:
    """Sign bytes with RSA PKCS#1 v1.5 / SHA-256 and return single-line base64."""
    try:
        signature = private_key.sign(payload_bytes, padding.PKCS1v15(), hashes.SHA256())
    except (ValueError, TypeError) as e:
        raise SigningError(f"Failed to sign request body: {e}") from e
    encoded = base64.b64encode(signature).decode("ascii")
    # Travels in an HTTP header.
    return SignatureB64(encoded.replace("\r", "").replace("\n", ""))


class RsaSigner:
    """Deterministic signer bound to one private key."""

    def __init__(self, private_key: rsa.RSAPrivateKey) -> None:
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise SigningError(
                f"Private key must be RSA, got {type(private_key).__name__}"
            )
        self._private_key = private_key

    @classmethod
    def from_pem(cls, pem_str: str) -> "RsaSigner":
        return cls(load_private_key_from_pem(pem_str))

    def sign(self, body: bytes) -> SignatureB64:
        return sign_bytes(self._private_key, body)

    def verify(self, body: bytes, signature_b64: str) -> bool:
        """Check a signature against this key's public half.

        Raises ``InvalidSignature`` on mismatch.
        """
        signature = base64.b64decode(signature_b64, validate=True)
        self._private_key.public_key().verify(
            signature, body, padding.PKCS1v15(), hashes.SHA256()
        )
        return True
