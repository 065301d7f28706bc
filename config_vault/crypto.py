"""
Vault Crypto — Password-based encryption and JSON serialization.

Implements the ``AES-CCM-128`` payload format used for encrypted records:
- Key: PBKDF2-HMAC-SHA256(password, salt 8B, iter) truncated to 128 bits
- Cipher: AES-CCM, nonce = iv truncated to (15 - L) bytes
- Output: JSON container {"iv","v","iter","ks","ts","mode","adata","cipher","salt","ct"}
  with base64 binary fields (adata included), readable by the Stanford JS
  Crypto Library (``sjcl.decrypt``).

Security Note:
    Never log passwords, plaintext or ciphertext values.
"""
import os
import base64
import logging
from typing import Any, Optional, Protocol, runtime_checkable

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESCCM

from .conf import VaultSettings
from .exceptions import CipherError

logger = logging.getLogger("config_vault")

KEY_SIZE = 128  # bits
SALT_SIZE = 8
IV_SIZE = 16
MIN_IV_SIZE = 7
FORMAT_VERSION = 1


@runtime_checkable
class Cipher(Protocol):
    """Symmetric password cipher used for encrypted records."""

    def encrypt(self, password: str, plaintext: str) -> str: ...

    def decrypt(self, password: str, ciphertext: str) -> str: ...


# ---------------------------------------------------------------------------
# JSON serialization
# ---------------------------------------------------------------------------

def dumps_json(value: Any) -> str:
    """Serialize a value to JSON text.

    Raises:
        orjson.JSONEncodeError: If the value is not JSON serializable.
    """
    return orjson.dumps(value).decode("utf-8")


def loads_json(text: str) -> Any:
    """Parse JSON text.

    Raises:
        orjson.JSONDecodeError: If the text is not valid JSON.
    """
    return orjson.loads(text)


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(data: str) -> bytes:
    return base64.b64decode(data, validate=True)


def _nonce_for(iv: bytes, message_length: int) -> bytes:
    """Truncate the iv to the CCM nonce size for a message length.

    L is the number of bytes needed to encode the message length (at least 2),
    the nonce takes the remaining 15 - L bytes.
    """
    if len(iv) < MIN_IV_SIZE:
        raise CipherError(f"ccm: iv must be at least {MIN_IV_SIZE} bytes")
    size = 2
    while size < 4 and message_length >> (8 * size):
        size += 1
    size = max(size, 15 - len(iv))
    return iv[:15 - size]


def ccm_seal(
    key: bytes,
    iv: bytes,
    data: bytes,
    tag_length: int,
    adata: bytes = b""
) -> bytes:
    """AES-CCM encrypt with a nonce truncated from iv.

    Returns:
        Ciphertext followed by the authentication tag.
    """
    cipher = AESCCM(key, tag_length=tag_length)
    return cipher.encrypt(_nonce_for(iv, len(data)), data, adata or None)


def ccm_open(
    key: bytes,
    iv: bytes,
    ct: bytes,
    tag_length: int,
    adata: bytes = b""
) -> bytes:
    """Reverse :func:`ccm_seal`.

    Raises:
        CipherError: If ct is shorter than the tag.
        cryptography.exceptions.InvalidTag: If authentication fails.
    """
    if len(ct) < tag_length:
        raise CipherError("ciphertext too short")
    cipher = AESCCM(key, tag_length=tag_length)
    nonce = _nonce_for(iv, len(ct) - tag_length)
    return cipher.decrypt(nonce, ct, adata or None)


# ---------------------------------------------------------------------------
# AES-CCM cipher
# ---------------------------------------------------------------------------

class AESCCMCipher:
    """Password-based AES-CCM-128 cipher.

    Args:
        iterations: PBKDF2 iteration count used for new ciphertexts.
        tag_length: Authentication tag size in bytes.
    """

    def __init__(self, iterations: int = 10000, tag_length: int = 8):
        if iterations < 1:
            raise ValueError("iterations must be a positive integer")
        try:
            AESCCM(bytes(KEY_SIZE // 8), tag_length=tag_length)
        except ValueError as err:
            raise ValueError(f"Unsupported tag length: {tag_length}") from err
        self.iterations = iterations
        self.tag_length = tag_length

    @classmethod
    def from_settings(cls, settings: Optional[VaultSettings] = None) -> "AESCCMCipher":
        settings = settings or VaultSettings()
        return cls(
            iterations=settings.pbkdf2_iterations,
            tag_length=settings.tag_length,
        )

    def __repr__(self) -> str:
        return (
            f"<AESCCMCipher iterations={self.iterations} "
            f"tag_length={self.tag_length}>"
        )

    @staticmethod
    def _derive_key(password: str, salt: bytes, iterations: int) -> bytes:
        """PBKDF2-HMAC-SHA256, first 128 bits of the first block."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE // 8,
            salt=salt,
            iterations=iterations,
        )
        return kdf.derive(password.encode("utf-8"))

    def encrypt(self, password: str, plaintext: str) -> str:
        """Encrypt plaintext under a password.

        Args:
            password: Password for key derivation.
            plaintext: Text to encrypt.

        Returns:
            JSON container string.
        """
        return self._seal(
            password, plaintext, os.urandom(SALT_SIZE), os.urandom(IV_SIZE)
        )

    def _seal(self, password: str, plaintext: str, salt: bytes, iv: bytes) -> str:
        key = self._derive_key(password, salt, self.iterations)
        ct = ccm_seal(key, iv, plaintext.encode("utf-8"), self.tag_length)
        return dumps_json({
            "iv": _b64encode(iv),
            "v": FORMAT_VERSION,
            "iter": self.iterations,
            "ks": KEY_SIZE,
            "ts": self.tag_length * 8,
            "mode": "ccm",
            "adata": "",
            "cipher": "aes",
            "salt": _b64encode(salt),
            "ct": _b64encode(ct),
        })

    def decrypt(self, password: str, ciphertext: str) -> str:
        """Decrypt a JSON container produced by :meth:`encrypt`.

        The iteration count and tag size are read from the container,
        so ciphertexts written with other settings still decrypt.
        Binary fields, ``adata`` included, are base64.

        Raises:
            CipherError: On malformed containers, unsupported parameters,
                a wrong password or tampered ciphertext.
        """
        try:
            params = loads_json(ciphertext)
            if not isinstance(params, dict):
                raise CipherError("ciphertext is not a JSON object")
            if params.get("v", FORMAT_VERSION) != FORMAT_VERSION:
                raise CipherError(f"unsupported format version: {params['v']}")
            if params.get("cipher", "aes") != "aes" or params.get("mode", "ccm") != "ccm":
                raise CipherError("unsupported cipher or mode")
            if params.get("ks", KEY_SIZE) != KEY_SIZE:
                raise CipherError(f"unsupported key size: {params['ks']}")
            tag_bits = params.get("ts", 64)
            if not isinstance(tag_bits, int) or tag_bits % 8:
                raise CipherError(f"unsupported tag size: {tag_bits}")
            iterations = params.get("iter", 10000)
            if not isinstance(iterations, int) or iterations < 1:
                raise CipherError(f"invalid iteration count: {iterations}")
            iv = _b64decode(params["iv"])
            salt = _b64decode(params["salt"])
            ct = _b64decode(params["ct"])
            adata = _b64decode(params.get("adata", ""))
            key = self._derive_key(password, salt, iterations)
            plaintext = ccm_open(key, iv, ct, tag_bits // 8, adata)
            return plaintext.decode("utf-8")
        except CipherError:
            raise
        except InvalidTag as err:
            raise CipherError("authentication failed") from err
        except (KeyError, TypeError, AttributeError, ValueError) as err:
            raise CipherError(f"malformed ciphertext: {err!r}") from err
