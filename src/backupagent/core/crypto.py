"""Cryptographic functions for backupagent.

This module provides:
- Hybrid encryption of chunks (AES-256-CBC + RSA-OAEP-SHA256) into envelopes
- Public key loading, including the PEM header compatibility fix-up
- Envelope parsing and decryption for the receiving side
- File checksums with SHA-1

Envelope format (all chunk uploads):
    [4-byte big-endian length L][L bytes: RSA-OAEP(key || iv)][AES-256-CBC ciphertext]
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
import struct
from pathlib import Path

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, padding, serialization
from cryptography.hazmat.primitives.asymmetric import padding as asym_padding
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger(__name__)

# AES-CBC constants
AES_KEY_SIZE = 32  # 256 bits
IV_SIZE = 16  # 128 bits (one AES block)

# Envelope framing
LENGTH_PREFIX = struct.Struct(">I")

# Checksum configuration
CHECKSUM_ALGORITHM = "sha1"
HASH_BLOCK_SIZE = 64 * 1024

PKCS1_PEM_HEADER = "-----BEGIN RSA PUBLIC KEY-----"
PKCS1_PEM_FOOTER = "-----END RSA PUBLIC KEY-----"
SPKI_PEM_HEADER = "-----BEGIN PUBLIC KEY-----"
SPKI_PEM_FOOTER = "-----END PUBLIC KEY-----"

# DER encoding of the rsaEncryption OID (1.2.840.113549.1.1.1)
RSA_ENCRYPTION_OID = bytes.fromhex("06092a864886f70d010101")


class EncryptionError(Exception):
    """Key parsing or cipher failure while building an envelope."""


class EnvelopeError(EncryptionError):
    """Envelope is malformed or cannot be decrypted."""


def _oaep() -> asym_padding.OAEP:
    return asym_padding.OAEP(
        mgf=asym_padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


def _pem_body(pem: str) -> bytes:
    """Decode the base64 body of a PEM document."""
    lines = [
        line.strip()
        for line in pem.strip().splitlines()
        if line.strip() and not line.startswith("-----")
    ]
    return base64.b64decode("".join(lines), validate=True)


def normalize_public_key_pem(pem: str) -> str:
    """Fix a public key PEM whose header does not match its body.

    The backup service exports SubjectPublicKeyInfo keys under an
    ``RSA PUBLIC KEY`` (PKCS#1) header. When the body really is a
    SubjectPublicKeyInfo structure, the header and footer tags are rewritten
    to ``PUBLIC KEY``. The base64 body is never modified, and genuine PKCS#1
    keys are returned unchanged.

    Args:
        pem: PEM-encoded public key.

    Returns:
        PEM text with a header matching its body.
    """
    if PKCS1_PEM_HEADER not in pem:
        return pem

    try:
        der = _pem_body(pem)
    except binascii.Error:
        return pem

    # SubjectPublicKeyInfo opens with the algorithm identifier,
    # PKCS#1 opens directly with the modulus.
    if RSA_ENCRYPTION_OID not in der[:32]:
        return pem

    logger.debug("Rewriting mislabeled RSA PUBLIC KEY header to PUBLIC KEY")
    return pem.replace(PKCS1_PEM_HEADER, SPKI_PEM_HEADER).replace(
        PKCS1_PEM_FOOTER, SPKI_PEM_FOOTER
    )


def load_public_key(public_key: str | bytes | rsa.RSAPublicKey) -> rsa.RSAPublicKey:
    """Load an RSA public key from session key material.

    Accepts the base64-encoded PEM document sent by the backup service,
    plain PEM text or bytes, or an already loaded key.

    Args:
        public_key: Key material.

    Returns:
        The RSA public key.

    Raises:
        EncryptionError: If the material cannot be parsed as an RSA public key.
    """
    if isinstance(public_key, rsa.RSAPublicKey):
        return public_key

    try:
        text = public_key.decode("ascii") if isinstance(public_key, bytes) else public_key
        text = text.strip()
        if not text.startswith("-----BEGIN"):
            text = base64.b64decode(text, validate=True).decode("ascii")

        pem = normalize_public_key_pem(text)
        key = serialization.load_pem_public_key(pem.encode("ascii"))
    except (ValueError, UnsupportedAlgorithm) as e:
        raise EncryptionError(f"Invalid public key: {e}") from e

    if not isinstance(key, rsa.RSAPublicKey):
        raise EncryptionError(f"Expected an RSA public key, got {type(key).__name__}")
    return key


def encrypt_chunk(public_key: str | bytes | rsa.RSAPublicKey, data: bytes) -> bytes:
    """Encrypt a chunk with a fresh AES key wrapped by an RSA public key.

    Every call generates a new 256-bit key and 128-bit IV, so no two
    envelopes share key material.

    Args:
        public_key: Recipient public key (see load_public_key).
        data: Plaintext chunk data.

    Returns:
        Envelope bytes: length prefix || wrapped key and IV || ciphertext.

    Raises:
        EncryptionError: If the key cannot be loaded or encryption fails.
    """
    rsa_key = load_public_key(public_key)

    try:
        key = os.urandom(AES_KEY_SIZE)
        iv = os.urandom(IV_SIZE)

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(data) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        wrapped = rsa_key.encrypt(key + iv, _oaep())
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise EncryptionError(f"Failed to encrypt chunk: {e}") from e

    return LENGTH_PREFIX.pack(len(wrapped)) + wrapped + ciphertext


def parse_envelope(envelope: bytes) -> tuple[bytes, bytes]:
    """Split an envelope into its wrapped key segment and ciphertext.

    Args:
        envelope: Envelope bytes as produced by encrypt_chunk.

    Returns:
        (wrapped_key_iv, ciphertext).

    Raises:
        EnvelopeError: If the framing is invalid.
    """
    if len(envelope) < LENGTH_PREFIX.size:
        raise EnvelopeError(f"Envelope too short: {len(envelope)} bytes")

    (wrapped_len,) = LENGTH_PREFIX.unpack_from(envelope)
    end = LENGTH_PREFIX.size + wrapped_len
    if wrapped_len == 0 or end > len(envelope):
        raise EnvelopeError(
            f"Invalid wrapped key length {wrapped_len} for {len(envelope)}-byte envelope"
        )
    return envelope[LENGTH_PREFIX.size:end], envelope[end:]


def decrypt_envelope(private_key: rsa.RSAPrivateKey, envelope: bytes) -> bytes:
    """Decrypt an envelope produced by encrypt_chunk.

    Args:
        private_key: RSA private key matching the session public key.
        envelope: Envelope bytes.

    Returns:
        The original plaintext chunk.

    Raises:
        EnvelopeError: If the envelope is malformed or decryption fails.
    """
    wrapped, ciphertext = parse_envelope(envelope)

    try:
        key_iv = private_key.decrypt(wrapped, _oaep())
        if len(key_iv) != AES_KEY_SIZE + IV_SIZE:
            raise EnvelopeError(f"Unwrapped key material has {len(key_iv)} bytes")
        key, iv = key_iv[:AES_KEY_SIZE], key_iv[AES_KEY_SIZE:]

        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise EnvelopeError(f"Failed to decrypt envelope: {e}") from e


def compute_file_hash(path: Path) -> str:
    """Compute the SHA-1 checksum of a file.

    Reads the file in blocks to handle large files efficiently.

    Args:
        path: Path to the file to hash.

    Returns:
        Lowercase hexadecimal SHA-1 hash string (40 characters).

    Raises:
        OSError: If the file cannot be read.
    """
    hasher = hashlib.new(CHECKSUM_ALGORITHM)
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(HASH_BLOCK_SIZE), b""):
            hasher.update(block)
    return hasher.hexdigest()
