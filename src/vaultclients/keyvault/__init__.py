"""Azure Key Vault integration for reading connection string secrets."""

from vaultclients.keyvault.client import (
    BLOB_CONNECTION_STRING_SUFFIX,
    COSMOS_CONNECTION_STRING_SUFFIX,
    SecretReader,
    build_credential,
    secret_name_for,
)

__all__ = [
    "BLOB_CONNECTION_STRING_SUFFIX",
    "COSMOS_CONNECTION_STRING_SUFFIX",
    "SecretReader",
    "build_credential",
    "secret_name_for",
]
