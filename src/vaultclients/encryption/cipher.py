"""AES-256-GCM cipher for individual document fields.

Encrypted payload layout (base64 encoded when stored in a document)::

    +---------+-----------+-------------------------+
    | version |  nonce    | ciphertext + GCM tag    |
    | 1 byte  |  12 bytes | len(plaintext) + 16     |
    +---------+-----------+-------------------------+

Values are JSON-serialized before encryption so strings, numbers, booleans,
lists and objects all survive a round trip with their type. The field path is
bound as associated data: a ciphertext copied into another field fails to decrypt.
"""

import base64
import binascii
import hashlib
import hmac
import json
import os
from enum import Enum
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from vaultclients.errors import EncryptionError

PAYLOAD_VERSION = 1
KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16


class EncryptionType(str, Enum):
    """How a field value is turned into ciphertext."""

    DETERMINISTIC = "Deterministic"
    """Equal values give equal ciphertext; supports equality queries."""

    RANDOMIZED = "Randomized"
    """A fresh nonce per encryption; values cannot be queried."""


def generate_key() -> bytes:
    """Generate a new 256-bit data encryption key."""
    return AESGCM.generate_key(bit_length=256)


class FieldCipher:
    """Encrypts and decrypts field values with one data encryption key."""

    def __init__(self, key: bytes):
        if len(key) != KEY_SIZE:
            raise EncryptionError(f"Data encryption key must be {KEY_SIZE} bytes, got {len(key)}")

        # Derive separate keys for the cipher and for deterministic nonces
        self._aead = AESGCM(hmac.new(key, b"field-encryption", hashlib.sha256).digest())
        self._nonce_key = hmac.new(key, b"deterministic-nonce", hashlib.sha256).digest()

    def encrypt(self, value: Any, path: str, encryption_type: EncryptionType) -> str:
        """
        Encrypt one field value.

        Parameters
        ----------
        value : Any
            JSON-serializable value
        path : str
            Field path, bound to the ciphertext as associated data
        encryption_type : EncryptionType
            Deterministic or randomized encryption

        Returns
        -------
        str
            Base64 encoded payload
        """
        plaintext = json.dumps(value, separators=(",", ":"), sort_keys=True).encode("utf-8")
        associated_data = path.encode("utf-8")

        if encryption_type == EncryptionType.DETERMINISTIC:
            digest = hmac.new(self._nonce_key, associated_data + b"\x00" + plaintext, hashlib.sha256).digest()
            nonce = digest[:NONCE_SIZE]
        else:
            nonce = os.urandom(NONCE_SIZE)

        ciphertext = self._aead.encrypt(nonce, plaintext, associated_data)
        return base64.b64encode(bytes([PAYLOAD_VERSION]) + nonce + ciphertext).decode("ascii")

    def decrypt(self, payload: str, path: str) -> Any:
        """Decrypt a payload produced by ``encrypt`` for the same ``path``."""
        if not isinstance(payload, str):
            raise EncryptionError(f"Encrypted value at '{path}' must be a string, got {type(payload).__name__}")

        try:
            raw = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as err:
            raise EncryptionError(f"Encrypted value at '{path}' is not valid base64") from err

        if len(raw) < 1 + NONCE_SIZE + TAG_SIZE:
            raise EncryptionError(f"Encrypted value at '{path}' is truncated")
        if raw[0] != PAYLOAD_VERSION:
            raise EncryptionError(f"Unsupported encryption payload version {raw[0]} at '{path}'")

        nonce = raw[1 : 1 + NONCE_SIZE]
        ciphertext = raw[1 + NONCE_SIZE :]

        try:
            plaintext = self._aead.decrypt(nonce, ciphertext, path.encode("utf-8"))
        except InvalidTag as err:
            raise EncryptionError(f"Cannot decrypt value at '{path}': authentication failed") from err

        return json.loads(plaintext.decode("utf-8"))
