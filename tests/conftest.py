"""Shared pytest fixtures for ledger client tests."""

from __future__ import annotations

from typing import Any, Callable

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from nominal_ops.domain.ledger.entities import LedgerCredentials
from tests.fixtures import build_deal


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    """Generate an RSA signing key once per session (key generation is slow)."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key: rsa.RSAPrivateKey) -> str:
    """Get the signing key as an unencrypted PKCS#8 PEM string."""
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture
def ec_private_key_pem() -> str:
    """Get a non-RSA private key PEM, which the signer must refuse."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture
def credentials(private_key_pem: str) -> LedgerCredentials:
    return LedgerCredentials(
        private_key_pem=private_key_pem,
        sign_system="test-system",
        sign_thumbprint="ABCDEF0123456789",
    )


@pytest.fixture
def deal_factory() -> Callable[..., dict[str, Any]]:
    """Get a builder for valid deal candidates."""
    return build_deal
