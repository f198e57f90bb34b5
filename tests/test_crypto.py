"""Tests for crypto module - Hybrid envelopes, key loading and checksums."""

import base64
import hashlib
import struct
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from backupagent.core import (
    EncryptionError,
    EnvelopeError,
    compute_file_hash,
    decrypt_envelope,
    encrypt_chunk,
    load_public_key,
    normalize_public_key_pem,
    parse_envelope,
)


def mislabel(pem: str) -> str:
    """Put a SubjectPublicKeyInfo body under PKCS#1 header tags."""
    return pem.replace("BEGIN PUBLIC KEY", "BEGIN RSA PUBLIC KEY").replace(
        "END PUBLIC KEY", "END RSA PUBLIC KEY"
    )


class TestEncryptChunk:
    """Tests for hybrid chunk encryption."""

    def test_roundtrip(self, rsa_private_key: rsa.RSAPrivateKey, public_key_pem: str) -> None:
        """Decrypting an envelope should return the original data."""
        data = b"Hello, World! " * 100
        envelope = encrypt_chunk(public_key_pem, data)
        assert decrypt_envelope(rsa_private_key, envelope) == data

    def test_roundtrip_empty_data(
        self, rsa_private_key: rsa.RSAPrivateKey, public_key_pem: str
    ) -> None:
        """Empty plaintext should still produce a valid envelope."""
        envelope = encrypt_chunk(public_key_pem, b"")
        _, ciphertext = parse_envelope(envelope)
        assert len(ciphertext) == 16  # one block of padding
        assert decrypt_envelope(rsa_private_key, envelope) == b""

    def test_length_prefix_matches_wrapped_key(self, public_key_pem: str) -> None:
        """The prefix should hold the big-endian length of the wrapped key."""
        envelope = encrypt_chunk(public_key_pem, b"x" * 100)
        (length,) = struct.unpack(">I", envelope[:4])
        assert length == 256  # 2048-bit RSA modulus
        wrapped, ciphertext = parse_envelope(envelope)
        assert len(wrapped) == length
        assert len(ciphertext) == 112  # 100 bytes padded to a 16-byte multiple
        assert len(envelope) == 4 + length + len(ciphertext)

    def test_fresh_key_material_per_call(self, public_key_pem: str) -> None:
        """Encrypting the same data twice should share no key material."""
        data = b"same data" * 10
        wrapped1, ciphertext1 = parse_envelope(encrypt_chunk(public_key_pem, data))
        wrapped2, ciphertext2 = parse_envelope(encrypt_chunk(public_key_pem, data))
        assert wrapped1 != wrapped2
        assert ciphertext1 != ciphertext2

    def test_accepts_base64_encoded_pem(
        self,
        rsa_private_key: rsa.RSAPrivateKey,
        session_public_key: str,
    ) -> None:
        """The base64 PEM sent by the server should be usable directly."""
        envelope = encrypt_chunk(session_public_key, b"chunk data")
        assert decrypt_envelope(rsa_private_key, envelope) == b"chunk data"

    def test_accepts_mislabeled_header(
        self, rsa_private_key: rsa.RSAPrivateKey, public_key_pem: str
    ) -> None:
        """A SubjectPublicKeyInfo key under an RSA PUBLIC KEY header should work."""
        encoded = base64.b64encode(mislabel(public_key_pem).encode()).decode()
        envelope = encrypt_chunk(encoded, b"chunk data")
        assert decrypt_envelope(rsa_private_key, envelope) == b"chunk data"

    def test_invalid_key_raises(self) -> None:
        """Unparseable key material should raise EncryptionError."""
        with pytest.raises(EncryptionError):
            encrypt_chunk("not a key", b"data")

    def test_garbage_pem_raises(self) -> None:
        """A PEM with a corrupt body should raise EncryptionError."""
        pem = "-----BEGIN PUBLIC KEY-----\nAAAA\n-----END PUBLIC KEY-----\n"
        with pytest.raises(EncryptionError):
            encrypt_chunk(pem, b"data")

    def test_non_rsa_key_raises(self) -> None:
        """Only RSA public keys should be accepted."""
        ec_pem = ec.generate_private_key(ec.SECP256R1()).public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        with pytest.raises(EncryptionError, match="RSA"):
            encrypt_chunk(ec_pem, b"data")


class TestPublicKeyLoading:
    """Tests for public key loading and header normalization."""

    def test_normalize_rewrites_mislabeled_header(self, public_key_pem: str) -> None:
        """Header and footer should be rewritten, body untouched."""
        fixed = normalize_public_key_pem(mislabel(public_key_pem))
        assert fixed == public_key_pem

    def test_normalize_keeps_spki_pem(self, public_key_pem: str) -> None:
        """A correctly labeled key should be returned unchanged."""
        assert normalize_public_key_pem(public_key_pem) == public_key_pem

    def test_normalize_keeps_genuine_pkcs1(self, rsa_private_key: rsa.RSAPrivateKey) -> None:
        """A real PKCS#1 key should keep its RSA PUBLIC KEY header."""
        pkcs1_pem = rsa_private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.PKCS1,
        ).decode()
        assert normalize_public_key_pem(pkcs1_pem) == pkcs1_pem

    def test_load_genuine_pkcs1(self, rsa_private_key: rsa.RSAPrivateKey) -> None:
        """A real PKCS#1 key should load."""
        pkcs1_pem = rsa_private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.PKCS1,
        )
        key = load_public_key(pkcs1_pem)
        assert key.public_numbers() == rsa_private_key.public_key().public_numbers()

    def test_load_accepts_key_object(self, rsa_private_key: rsa.RSAPrivateKey) -> None:
        """An already loaded key should be returned as is."""
        public_key = rsa_private_key.public_key()
        assert load_public_key(public_key) is public_key


class TestEnvelopeParsing:
    """Tests for envelope framing errors."""

    def test_too_short(self) -> None:
        """Fewer than 4 bytes should be rejected."""
        with pytest.raises(EnvelopeError, match="too short"):
            parse_envelope(b"\x00\x01")

    def test_zero_length(self) -> None:
        """A zero wrapped-key length should be rejected."""
        with pytest.raises(EnvelopeError):
            parse_envelope(struct.pack(">I", 0) + b"ciphertext")

    def test_length_past_end(self) -> None:
        """A length running past the envelope should be rejected."""
        with pytest.raises(EnvelopeError):
            parse_envelope(struct.pack(">I", 1000) + b"short")

    def test_decrypt_with_wrong_key(self, public_key_pem: str) -> None:
        """Decrypting with another private key should raise EnvelopeError."""
        other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        envelope = encrypt_chunk(public_key_pem, b"secret")
        with pytest.raises(EnvelopeError):
            decrypt_envelope(other_key, envelope)


class TestFileHash:
    """Tests for file checksums."""

    def test_matches_sha1(self, tmp_path: Path) -> None:
        """The checksum should be the SHA-1 hex digest of the content."""
        path = tmp_path / "file.bin"
        data = b"backup content" * 10_000
        path.write_bytes(data)
        assert compute_file_hash(path) == hashlib.sha1(data).hexdigest()

    def test_format(self, tmp_path: Path) -> None:
        """The checksum should be 40 lowercase hex characters."""
        path = tmp_path / "file.bin"
        path.write_bytes(b"abc")
        digest = compute_file_hash(path)
        assert len(digest) == 40
        assert digest == digest.lower()
        assert digest == "a9993e364706816aba3e25717850c26c9cd0d89d"

    def test_idempotent(self, tmp_path: Path) -> None:
        """Hashing the same file twice should give the same result."""
        path = tmp_path / "file.bin"
        path.write_bytes(b"data" * 100_000)
        assert compute_file_hash(path) == compute_file_hash(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing file should raise OSError."""
        with pytest.raises(OSError):
            compute_file_hash(tmp_path / "missing.bin")
