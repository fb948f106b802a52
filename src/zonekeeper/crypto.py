"""Symmetric encryption for credentials and export files.

Two key modes share one cipher (AES-256-GCM with a fresh 96-bit nonce per call):

- Password mode: the key is derived with PBKDF2-HMAC-SHA256 from a password and
  a fresh 16-byte salt. Used for password-protected exports.
- Fixed-key mode (``FixedKeyCipher``): the key is an operator-managed 256-bit
  key given as hex. Used for server-side at-rest storage.

Wrong password and corrupted data both fail with the same ``DecryptionError``.
Malformed base64 or wrong field lengths fail with ``EncodingError``.
"""

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import BaseModel

from zonekeeper.exceptions import DecryptionError, EncodingError, UnsupportedFileVersionError

SALT_LENGTH = 16
NONCE_LENGTH = 12
KEY_LENGTH = 32  # AES-256

# Export file format version -> PBKDF2 iteration count used by that version.
# Append a new version here when the iteration count changes; never edit old entries.
CURRENT_FILE_VERSION = 1
PBKDF2_ITERATIONS_BY_VERSION: dict[int, int] = {
    1: 100_000,
}
PBKDF2_ITERATIONS = PBKDF2_ITERATIONS_BY_VERSION[CURRENT_FILE_VERSION]


class EncryptedBlob(BaseModel):
    """Encrypted payload with each part independently base64-encoded."""

    salt: str
    nonce: str
    ciphertext: str


def get_pbkdf2_iterations(file_version: int) -> int:
    """Get the PBKDF2 iteration count used by an export file version.

    Args:
        file_version: Export file format version.

    Returns:
        Iteration count for that version.

    Raises:
        UnsupportedFileVersionError: If the version is unknown.
    """
    try:
        return PBKDF2_ITERATIONS_BY_VERSION[file_version]
    except KeyError:
        raise UnsupportedFileVersionError(file_version) from None


def derive_key(password: str, salt: bytes, iterations: int) -> bytes:
    """Derive a 256-bit key from a password.

    Args:
        password: The password.
        salt: Random salt (16 bytes).
        iterations: PBKDF2 iteration count.

    Returns:
        32-byte key.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(value: str, field: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise EncodingError(f"Invalid {field}: {e}") from e


def _aes_decrypt(key: bytes, nonce: bytes, ciphertext: bytes) -> bytes:
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag:
        raise DecryptionError() from None


def encrypt(plaintext: bytes, password: str) -> EncryptedBlob:
    """Encrypt data with a password.

    Salt and nonce are drawn fresh on every call, so encrypting the same
    plaintext twice never yields the same output. The key is always derived
    with the current default iteration count.

    Args:
        plaintext: Data to encrypt.
        password: Encryption password.

    Returns:
        EncryptedBlob with base64 salt, nonce and ciphertext.
    """
    salt = os.urandom(SALT_LENGTH)
    nonce = os.urandom(NONCE_LENGTH)
    key = derive_key(password, salt, PBKDF2_ITERATIONS)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, None)
    return EncryptedBlob(
        salt=_b64encode(salt),
        nonce=_b64encode(nonce),
        ciphertext=_b64encode(ciphertext),
    )


def decrypt(blob: EncryptedBlob, password: str, iterations: int | None = None) -> bytes:
    """Decrypt a password-encrypted blob.

    Args:
        blob: Blob produced by encrypt().
        password: Decryption password.
        iterations: PBKDF2 iteration count the blob was produced with.
            Defaults to the current count; pass the historical count to
            read blobs written by older builds.

    Returns:
        The original plaintext.

    Raises:
        EncodingError: If a field is not valid base64 or has the wrong length.
        DecryptionError: If the password is wrong or the data is corrupted.
    """
    salt = _b64decode(blob.salt, "salt")
    nonce = _b64decode(blob.nonce, "nonce")
    ciphertext = _b64decode(blob.ciphertext, "ciphertext")
    if len(salt) != SALT_LENGTH:
        raise EncodingError(f"Invalid salt length: expected {SALT_LENGTH} bytes, got {len(salt)}")
    if len(nonce) != NONCE_LENGTH:
        raise EncodingError(
            f"Invalid nonce length: expected {NONCE_LENGTH} bytes, got {len(nonce)}"
        )

    key = derive_key(password, salt, iterations or PBKDF2_ITERATIONS)
    return _aes_decrypt(key, nonce, ciphertext)


def encrypt_to_string(plaintext: bytes, password: str) -> str:
    """Encrypt data with a password into a single base64 string.

    Layout: base64(salt || nonce || ciphertext).

    Args:
        plaintext: Data to encrypt.
        password: Encryption password.

    Returns:
        Base64 text.
    """
    blob = encrypt(plaintext, password)
    combined = (
        base64.b64decode(blob.salt) + base64.b64decode(blob.nonce) + base64.b64decode(blob.ciphertext)
    )
    return _b64encode(combined)


def decrypt_from_string(data: str, password: str, iterations: int | None = None) -> bytes:
    """Decrypt the output of encrypt_to_string().

    Args:
        data: base64(salt || nonce || ciphertext).
        password: Decryption password.
        iterations: Historical PBKDF2 iteration count (defaults to current).

    Returns:
        The original plaintext.

    Raises:
        EncodingError: If the data is not base64 or too short.
        DecryptionError: If the password is wrong or the data is corrupted.
    """
    combined = _b64decode(data, "encrypted data")
    if len(combined) <= SALT_LENGTH + NONCE_LENGTH:
        raise EncodingError("Invalid encrypted data: too short")

    salt = combined[:SALT_LENGTH]
    nonce = combined[SALT_LENGTH : SALT_LENGTH + NONCE_LENGTH]
    ciphertext = combined[SALT_LENGTH + NONCE_LENGTH :]
    key = derive_key(password, salt, iterations or PBKDF2_ITERATIONS)
    return _aes_decrypt(key, nonce, ciphertext)


class FixedKeyCipher:
    """AES-256-GCM cipher with an operator-managed key.

    Args:
        key: 32-byte key.

    Raises:
        EncodingError: If the key is not 32 bytes.
    """

    def __init__(self, key: bytes):
        if len(key) != KEY_LENGTH:
            raise EncodingError(
                f"Key must be {KEY_LENGTH} bytes ({KEY_LENGTH * 2} hex characters)"
            )
        self._aead = AESGCM(key)

    @classmethod
    def from_hex_key(cls, hex_key: str) -> "FixedKeyCipher":
        """Create a cipher from a hex-encoded key.

        Args:
            hex_key: 64 hex characters.

        Returns:
            FixedKeyCipher instance.

        Raises:
            EncodingError: If the key is not valid hex or has the wrong length.
        """
        try:
            key = bytes.fromhex(hex_key.strip())
        except ValueError as e:
            raise EncodingError(f"Invalid key format: {e}") from e
        return cls(key)

    @staticmethod
    def generate_key() -> str:
        """Generate a random key.

        Returns:
            Hex-encoded 256-bit key.
        """
        return os.urandom(KEY_LENGTH).hex()

    def __repr__(self) -> str:
        return "FixedKeyCipher(key=<redacted>)"

    def encrypt(self, plaintext: str) -> str:
        """Encrypt text.

        Args:
            plaintext: Text to encrypt.

        Returns:
            base64(nonce || ciphertext).
        """
        nonce = os.urandom(NONCE_LENGTH)
        ciphertext = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return _b64encode(nonce + ciphertext)

    def decrypt(self, encrypted: str) -> str:
        """Decrypt the output of encrypt().

        Args:
            encrypted: base64(nonce || ciphertext).

        Returns:
            The original text.

        Raises:
            EncodingError: If the data is not base64 or too short.
            DecryptionError: If the data was not produced with this key or is corrupted.
        """
        combined = _b64decode(encrypted, "encrypted data")
        if len(combined) <= NONCE_LENGTH:
            raise EncodingError("Invalid encrypted data: too short")
        plaintext = self._decrypt(combined[:NONCE_LENGTH], combined[NONCE_LENGTH:])
        return self._decode_text(plaintext)

    def encrypt_blob(self, plaintext: str) -> EncryptedBlob:
        """Encrypt text into the three-field structured encoding.

        The salt field is empty since no key derivation takes place.

        Args:
            plaintext: Text to encrypt.

        Returns:
            EncryptedBlob with empty salt.
        """
        nonce = os.urandom(NONCE_LENGTH)
        ciphertext = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return EncryptedBlob(salt="", nonce=_b64encode(nonce), ciphertext=_b64encode(ciphertext))

    def decrypt_blob(self, blob: EncryptedBlob) -> str:
        """Decrypt the output of encrypt_blob().

        Args:
            blob: Blob produced by encrypt_blob().

        Returns:
            The original text.

        Raises:
            EncodingError: If a field is malformed.
            DecryptionError: If the data was not produced with this key or is corrupted.
        """
        nonce = _b64decode(blob.nonce, "nonce")
        if len(nonce) != NONCE_LENGTH:
            raise EncodingError(
                f"Invalid nonce length: expected {NONCE_LENGTH} bytes, got {len(nonce)}"
            )
        ciphertext = _b64decode(blob.ciphertext, "ciphertext")
        return self._decode_text(self._decrypt(nonce, ciphertext))

    def _decrypt(self, nonce: bytes, ciphertext: bytes) -> bytes:
        try:
            return self._aead.decrypt(nonce, ciphertext, None)
        except InvalidTag:
            raise DecryptionError() from None

    @staticmethod
    def _decode_text(plaintext: bytes) -> str:
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EncodingError(f"Decrypted data is not valid UTF-8: {e}") from e
