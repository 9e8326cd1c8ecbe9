"""Azure Key Vault client for reading connection string secrets on demand.

Secrets are looked up by name every time a client is built; nothing is cached
here so a rotated connection string is picked up by the next client created.

Secret names follow the ``<account name><suffix>`` convention, for example
``orders-CosmosDB-ConnectionString`` or ``exports-BlobStorage-ConnectionString``.
"""

import logging
import os
from typing import Optional

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError
from azure.identity import (
    DefaultAzureCredential,
    ManagedIdentityCredential,
)
from azure.keyvault.secrets import SecretClient
from loguru import logger

from vaultclients.errors import (
    SecretLookupError,
    require_value,
)

COSMOS_CONNECTION_STRING_SUFFIX = "-CosmosDB-ConnectionString"
BLOB_CONNECTION_STRING_SUFFIX = "-BlobStorage-ConnectionString"


def secret_name_for(account_name: str, suffix: str) -> str:
    """Build the Key Vault secret name holding the connection string of ``account_name``."""
    require_value(account_name, "account_name")
    return account_name + suffix


def quiet_azure_sdk_logging() -> None:
    """Suppress verbose Azure SDK logging."""
    logging.getLogger("azure.identity").setLevel(logging.ERROR)
    logging.getLogger("azure.core.pipeline.policies").setLevel(logging.ERROR)


def build_credential() -> TokenCredential:
    """
    Build the credential used to authenticate against Key Vault.

    Returns
    -------
    TokenCredential
        ``ManagedIdentityCredential`` when running in Azure App Service,
        ``DefaultAzureCredential`` otherwise (supports az login, etc.)
    """
    quiet_azure_sdk_logging()

    if os.getenv("WEBSITE_INSTANCE_ID"):
        logger.debug("Using ManagedIdentityCredential for Azure App Service")
        return ManagedIdentityCredential()

    logger.debug("Using DefaultAzureCredential for local development")
    return DefaultAzureCredential(exclude_visual_studio_code_credential=True)


class SecretReader:
    """Reads single secrets from one Azure Key Vault."""

    def __init__(
        self,
        vault_url: str,
        credential: TokenCredential,
        secret_client: Optional[SecretClient] = None,
    ):
        """
        Initialize the secret reader.

        Parameters
        ----------
        vault_url : str
            Azure Key Vault URL
        credential : TokenCredential
            Credential used by the Key Vault client
        secret_client : Optional[SecretClient]
            Pre-built Key Vault client (tests inject a mock here)
        """
        require_value(vault_url, "vault_url")
        require_value(credential, "credential")

        self.vault_url = vault_url
        self._client = secret_client or SecretClient(vault_url=vault_url, credential=credential)

    def get_secret(self, name: str) -> str:
        """
        Get a single secret value from Key Vault.

        Parameters
        ----------
        name : str
            Name of the secret in Key Vault

        Returns
        -------
        str
            The secret value

        Raises
        ------
        InvalidArgument
            If ``name`` is empty or blank
        SecretLookupError
            If the Key Vault call fails or the secret has no value
        """
        require_value(name, "name")

        try:
            secret = self._client.get_secret(name)
        except AzureError as err:
            logger.error(
                "Cannot retrieve secret '{secret_name}' from key vault '{vault_url}'. Exception: {error}",
                secret_name=name,
                vault_url=self.vault_url,
                error=err,
            )
            raise SecretLookupError(name, self.vault_url) from err

        if secret.value is None:
            logger.error(
                "Secret '{secret_name}' in key vault '{vault_url}' has no value",
                secret_name=name,
                vault_url=self.vault_url,
            )
            raise SecretLookupError(name, self.vault_url, f"Secret '{name}' in key vault '{self.vault_url}' has no value")

        return secret.value

    def close(self) -> None:
        """Close the underlying Key Vault client."""
        self._client.close()
