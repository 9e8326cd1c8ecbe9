"""Key Vault backed key store for wrapping data encryption keys."""

import base64
import threading
from dataclasses import dataclass
from typing import (
    Any,
    Dict,
)

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError
from azure.keyvault.keys.crypto import (
    CryptographyClient,
    KeyWrapAlgorithm,
)
from loguru import logger

from vaultclients.errors import (
    EncryptionError,
    require_value,
)


@dataclass(frozen=True)
class DataEncryptionKey:
    """
    A data encryption key in its wrapped (encrypted) form.

    Only the wrapped bytes are kept here, so instances are safe to persist.
    Use ``to_dict``/``from_dict`` to store them next to the data they protect.
    """

    id: str
    master_key_url: str
    wrapped_key: bytes
    key_store_provider_name: str = "AZURE_KEY_VAULT"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "masterKeyUrl": self.master_key_url,
            "wrappedKey": base64.b64encode(self.wrapped_key).decode("ascii"),
            "keyStoreProviderName": self.key_store_provider_name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DataEncryptionKey":
        return cls(
            id=data["id"],
            master_key_url=data["masterKeyUrl"],
            wrapped_key=base64.b64decode(data["wrappedKey"]),
            key_store_provider_name=data.get("keyStoreProviderName", "AZURE_KEY_VAULT"),
        )


class KeyVaultKeyStoreProvider:
    """
    Wraps and unwraps data encryption keys with an Azure Key Vault key.

    Thread-safe: one ``CryptographyClient`` is cached per master key URL.
    """

    provider_name = "AZURE_KEY_VAULT"

    def __init__(
        self,
        credential: TokenCredential,
        key_wrap_algorithm: KeyWrapAlgorithm = KeyWrapAlgorithm.rsa_oaep_256,
    ):
        require_value(credential, "credential")

        self.credential = credential
        self.key_wrap_algorithm = key_wrap_algorithm
        self._crypto_clients: Dict[str, CryptographyClient] = {}
        self._lock = threading.Lock()

    def _get_crypto_client(self, master_key_url: str) -> CryptographyClient:
        require_value(master_key_url, "master_key_url")

        with self._lock:
            client = self._crypto_clients.get(master_key_url)
            if client is None:
                client = CryptographyClient(master_key_url, credential=self.credential)
                self._crypto_clients[master_key_url] = client
            return client

    def wrap_key(self, master_key_url: str, key: bytes) -> bytes:
        """Encrypt ``key`` with the Key Vault key at ``master_key_url``."""
        client = self._get_crypto_client(master_key_url)
        try:
            result = client.wrap_key(self.key_wrap_algorithm, key)
        except AzureError as err:
            logger.error(
                "Cannot wrap data encryption key with '{master_key_url}': {error}",
                master_key_url=master_key_url,
                error=err,
            )
            raise EncryptionError(f"Cannot wrap data encryption key with '{master_key_url}'") from err
        return result.encrypted_key

    def unwrap_key(self, master_key_url: str, wrapped_key: bytes) -> bytes:
        """Decrypt ``wrapped_key`` with the Key Vault key at ``master_key_url``."""
        client = self._get_crypto_client(master_key_url)
        try:
            result = client.unwrap_key(self.key_wrap_algorithm, wrapped_key)
        except AzureError as err:
            logger.error(
                "Cannot unwrap data encryption key with '{master_key_url}': {error}",
                master_key_url=master_key_url,
                error=err,
            )
            raise EncryptionError(f"Cannot unwrap data encryption key with '{master_key_url}'") from err
        return result.key
