"""Cosmos DB and Blob Storage clients built from connection strings kept in Azure Key Vault."""

from vaultclients.errors import (
    EncryptionError,
    InvalidArgument,
    NotInitialized,
    SecretLookupError,
    VaultClientsError,
)
from vaultclients.factory import (
    ClientFactory,
    CosmosClientOptions,
    create_cosmos_client,
    get_blob_container_client,
    get_factory,
    get_secret,
    initialize,
    initialize_from_settings,
    reset_factory,
)
from vaultclients.settings import Settings

__all__ = [
    "ClientFactory",
    "CosmosClientOptions",
    "EncryptionError",
    "InvalidArgument",
    "NotInitialized",
    "SecretLookupError",
    "Settings",
    "VaultClientsError",
    "create_cosmos_client",
    "get_blob_container_client",
    "get_factory",
    "get_secret",
    "initialize",
    "initialize_from_settings",
    "reset_factory",
]
