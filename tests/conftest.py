"""Shared fixtures: one RSA key pair per test session."""

from __future__ import annotations

import base64

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    """Generate the RSA key pair standing in for a backup session key."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def public_key_pem(rsa_private_key: rsa.RSAPrivateKey) -> str:
    """SubjectPublicKeyInfo PEM of the session key."""
    return rsa_private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


@pytest.fixture(scope="session")
def session_public_key(public_key_pem: str) -> str:
    """Public key as sent by the server: base64 of the PEM document."""
    return base64.b64encode(public_key_pem.encode("ascii")).decode("ascii")
