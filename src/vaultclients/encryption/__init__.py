"""Field-level encryption for Cosmos DB clients, backed by Azure Key Vault keys."""

from vaultclients.encryption.cipher import (
    EncryptionType,
    FieldCipher,
)
from vaultclients.encryption.client import (
    EncryptedContainerProxy,
    EncryptedCosmosClient,
    EncryptedDatabaseProxy,
)
from vaultclients.encryption.key_store import (
    DataEncryptionKey,
    KeyVaultKeyStoreProvider,
)
from vaultclients.encryption.policy import (
    ClientEncryptionIncludedPath,
    ClientEncryptionPolicy,
)

__all__ = [
    "ClientEncryptionIncludedPath",
    "ClientEncryptionPolicy",
    "DataEncryptionKey",
    "EncryptedContainerProxy",
    "EncryptedCosmosClient",
    "EncryptedDatabaseProxy",
    "EncryptionType",
    "FieldCipher",
    "KeyVaultKeyStoreProvider",
]
