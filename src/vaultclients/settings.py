"""Settings for the vault-backed client factory."""

from typing import Optional

from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
)


class Settings(BaseSettings):
    """
    Settings for the vault-backed client factory.

    [pydantic.BaseSettings](https://docs.pydantic.dev/latest/concepts/pydantic_settings/) reads
    configuration values from environment variables and validates them.

    This class automatically reads from:
    1. Environment variables (production - Azure Web App Configuration)
    2. .env file (local development)

    All variable names are case-insensitive.
    """

    # Azure Key Vault
    azure_keyvault_url: Optional[str] = None
    """Azure Key Vault URL holding the connection string secrets (e.g., https://<vault>.vault.azure.net/)."""

    # Cosmos DB client defaults
    cosmos_user_agent_prefix: Optional[str] = None
    """User agent tag appended to every Cosmos DB request (optional)."""

    cosmos_use_bulk: bool = False
    """Request bulk execution mode for Cosmos DB clients."""

    cosmos_retry_on_429_forever: bool = False
    """Retry rate-limited (HTTP 429) Cosmos DB requests without an attempt cap."""

    cosmos_use_encryption: bool = False
    """Wrap Cosmos DB clients with field-level encryption backed by Key Vault keys."""

    # Logging
    log_level: str = "INFO"
    """Minimum level written to the stdout log sink."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",  # Load from .env file if it exists (local development)
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra environment variables not defined in the model
        validate_default=True,
    )
