"""Owner-scoped AES-256-GCM encryption for custodied mnemonics.

Each owner gets its own key: PBKDF2-HMAC-SHA256 over the master secret with the
owner's wallet address as salt. A ciphertext therefore only decrypts under the
owner it was sealed for, which is what wallet ownership checks rely on.

Stored format: ``<iv hex>:<auth tag hex>:<ciphertext hex>``.
"""

import hashlib
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from dexbot.config import settings

IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
# Least recently used owners are evicted past this many derived keys
KEY_CACHE_SIZE = 1024


class DecryptionError(Exception):
    """Ciphertext is malformed or was not sealed for the given owner."""


def _master_key_bytes(master_key: str) -> bytes:
    # A 64-hex master key is used raw; anything else is hashed to 32 bytes.
    if len(master_key) == 64:
        try:
            return bytes.fromhex(master_key)
        except ValueError:
            pass
    return hashlib.sha256(master_key.encode()).digest()


class OwnerScopedCipher:
    """Encrypts and decrypts text under keys derived per owner address."""

    def __init__(self, master_key: str, iterations: int = 100_000):
        if not master_key:
            raise RuntimeError(
                "DEXBOT_ENCRYPTION_KEY not set. Generate one with: python -m dexbot.cli generate-key"
            )
        self._master = _master_key_bytes(master_key)
        self.iterations = iterations
        self.derive_key = lru_cache(maxsize=KEY_CACHE_SIZE)(self._derive_key)

    def _derive_key(self, owner_address: str) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=owner_address.encode(),
            iterations=self.iterations,
        )
        return kdf.derive(self._master)

    def encrypt(self, plaintext: str, owner_address: str) -> str:
        iv = os.urandom(IV_LENGTH)
        sealed = AESGCM(self.derive_key(owner_address)).encrypt(iv, plaintext.encode(), None)
        # AESGCM appends the tag to the ciphertext
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, encrypted: str, owner_address: str) -> str:
        parts = encrypted.split(":")
        if len(parts) != 3:
            raise DecryptionError("Invalid encrypted data format")
        try:
            iv, tag, ciphertext = (bytes.fromhex(p) for p in parts)
        except ValueError as e:
            raise DecryptionError(f"Invalid encrypted data encoding: {e}") from e
        if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
            raise DecryptionError("Invalid IV or auth tag length")

        try:
            plaintext = AESGCM(self.derive_key(owner_address)).decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise DecryptionError("Decryption failed for this owner") from e
        return plaintext.decode()


_cipher: OwnerScopedCipher | None = None


def get_cipher() -> OwnerScopedCipher:
    """Return the process-wide cipher built from settings."""
    global _cipher
    if _cipher is None:
        _cipher = OwnerScopedCipher(settings.encryption_key, settings.kdf_iterations)
    return _cipher
