"""Build Cosmos DB and Blob Storage clients from connection strings kept in Azure Key Vault.

A ``ClientFactory`` is created once at application start and handed to the code
that needs clients. Each client request derives the secret name from the
account name, reads the connection string from Key Vault, and builds the
vendor SDK client. Connection strings are never cached.

Applications that prefer a process-wide instance call ``initialize`` once at
startup and use ``get_factory`` (or the module-level shortcuts) afterwards.

Note:
    Vault lookups are not retried here. Throttling and transient failures are
    left to the Azure SDK transport policies and to callers.
"""

from dataclasses import (
    asdict,
    dataclass,
)
from typing import (
    Any,
    Callable,
    Dict,
    Optional,
    TypeVar,
    Union,
)

from azure.core.credentials import TokenCredential
from azure.cosmos import CosmosClient
from azure.identity import DefaultAzureCredential
from azure.storage.blob import (
    BlobServiceClient,
    ContainerClient,
)
from loguru import logger

from vaultclients.encryption import (
    EncryptedCosmosClient,
    KeyVaultKeyStoreProvider,
)
from vaultclients.errors import (
    InvalidArgument,
    NotInitialized,
    require_value,
)
from vaultclients.keyvault.client import (
    BLOB_CONNECTION_STRING_SUFFIX,
    COSMOS_CONNECTION_STRING_SUFFIX,
    SecretReader,
    build_credential,
    secret_name_for,
)
from vaultclients.monitoring.logger import configure_logger
from vaultclients.settings import Settings

T = TypeVar("T")

# Retry settings used when rate-limited requests must be retried without a cap
UNLIMITED_RETRY_ATTEMPTS = 2**31 - 1
UNLIMITED_RETRY_WAIT_SECONDS = UNLIMITED_RETRY_ATTEMPTS // 1000


@dataclass
class CosmosClientOptions:
    """Options applied to every Cosmos DB client built by the factory."""

    allow_bulk_execution: bool = False
    max_retry_attempts_on_rate_limited_requests: Optional[int] = None
    max_retry_wait_time_on_rate_limited_requests: Optional[int] = None
    """Upper bound, in seconds, for waiting on rate-limited requests."""
    application_name: Optional[str] = None
    """Tag appended to the user agent of every request."""

    @classmethod
    def build(
        cls,
        user_agent_prefix: Optional[str] = None,
        use_bulk: bool = False,
        retry_on_429_forever: bool = False,
    ) -> "CosmosClientOptions":
        options = cls(allow_bulk_execution=use_bulk)

        if retry_on_429_forever:
            options.max_retry_attempts_on_rate_limited_requests = UNLIMITED_RETRY_ATTEMPTS
            options.max_retry_wait_time_on_rate_limited_requests = UNLIMITED_RETRY_WAIT_SECONDS

        if user_agent_prefix and user_agent_prefix.strip():
            options.application_name = user_agent_prefix

        return options

    def to_client_kwargs(self) -> Dict[str, Any]:
        """
        Map the options to ``azure-cosmos`` client keyword arguments.

        ``allow_bulk_execution`` has no client-level keyword in the Python SDK;
        callers read it from the options to choose batch operations.
        """
        kwargs: Dict[str, Any] = {}
        if self.max_retry_attempts_on_rate_limited_requests is not None:
            kwargs["retry_throttle_total"] = self.max_retry_attempts_on_rate_limited_requests
        if self.max_retry_wait_time_on_rate_limited_requests is not None:
            kwargs["retry_throttle_backoff_max"] = self.max_retry_wait_time_on_rate_limited_requests
        if self.application_name:
            kwargs["user_agent_suffix"] = self.application_name
        return kwargs


class ClientFactory:
    """
    Resolves connection strings from Key Vault and builds vendor SDK clients.

    The vault URL and credential are fixed at construction.
    """

    def __init__(
        self,
        vault_url: str,
        credential: TokenCredential,
        secret_reader: Optional[SecretReader] = None,
        encryption_credential: Optional[TokenCredential] = None,
    ):
        """
        Initialize the client factory.

        Parameters
        ----------
        vault_url : str
            Azure Key Vault URL holding the connection string secrets
        credential : TokenCredential
            Credential used to read secrets
        secret_reader : Optional[SecretReader]
            Pre-built secret reader (tests inject a mock here)
        encryption_credential : Optional[TokenCredential]
            Credential for Key Vault keys used by encrypted Cosmos DB clients.
            ``DefaultAzureCredential`` is used when not provided.
        """
        require_value(vault_url, "vault_url")
        require_value(credential, "credential")

        self._vault_url = str(vault_url)
        self._credential = credential
        self._secret_reader = secret_reader or SecretReader(self._vault_url, credential)
        self._encryption_credential = encryption_credential
        # Settings the factory was built from, if any
        self.settings: Optional[Settings] = None

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        credential: Optional[TokenCredential] = None,
    ) -> "ClientFactory":
        """
        Build a factory from application settings.

        Raises
        ------
        InvalidArgument
            If ``azure_keyvault_url`` is not configured
        """
        settings = settings or Settings()
        if not settings.azure_keyvault_url:
            raise InvalidArgument("azure_keyvault_url", "AZURE_KEYVAULT_URL is not configured")

        factory = cls(
            settings.azure_keyvault_url,
            credential or build_credential(),
            encryption_credential=credential,
        )
        factory.settings = settings
        return factory

    @property
    def vault_url(self) -> str:
        return self._vault_url

    @property
    def credential(self) -> TokenCredential:
        return self._credential

    def get_secret(self, name: str) -> str:
        """Read one secret value from Key Vault."""
        return self._secret_reader.get_secret(name)

    def resolve_and_build(self, account_name: str, suffix: str, builder: Callable[[str], T]) -> T:
        """
        Derive the secret name, fetch the connection string and build a client from it.

        Parameters
        ----------
        account_name : str
            Logical account name, e.g. ``orders``
        suffix : str
            Secret name suffix for the kind of account
        builder : Callable[[str], T]
            Called with the connection string; returns the client

        Returns
        -------
        T
            Whatever ``builder`` returns
        """
        secret_name = secret_name_for(account_name, suffix)
        connection_string = self.get_secret(secret_name)
        return builder(connection_string)

    def create_cosmos_client(
        self,
        account_name: str,
        user_agent_prefix: Optional[str] = None,
        use_bulk: bool = False,
        retry_on_429_forever: bool = False,
        use_encryption: bool = False,
    ) -> Union[CosmosClient, EncryptedCosmosClient]:
        """
        Create a Cosmos DB client for ``account_name``.

        Parameters
        ----------
        account_name : str
            Account whose ``<account>-CosmosDB-ConnectionString`` secret is used
        user_agent_prefix : Optional[str]
            Tag appended to the user agent; ignored when blank
        use_bulk : bool
            Request bulk execution mode
        retry_on_429_forever : bool
            Retry rate-limited requests without an attempt cap
        use_encryption : bool
            Wrap the client with field-level encryption backed by Key Vault keys

        Returns
        -------
        Union[CosmosClient, EncryptedCosmosClient]
            The client; the caller owns it and is responsible for closing it
        """
        require_value(account_name, "account_name")

        options = self.build_cosmos_options(user_agent_prefix, use_bulk, retry_on_429_forever)
        logger.debug(
            "Creating Cosmos DB client",
            account_name=account_name,
            options=asdict(options),
            use_encryption=use_encryption,
        )

        client = self.resolve_and_build(
            account_name,
            COSMOS_CONNECTION_STRING_SUFFIX,
            lambda connection_string: CosmosClient.from_connection_string(
                connection_string, **options.to_client_kwargs()
            ),
        )

        if use_encryption:
            return EncryptedCosmosClient(client, self._build_key_store_provider())
        return client

    def create_default_cosmos_client(self, account_name: str) -> Union[CosmosClient, EncryptedCosmosClient]:
        """Create a Cosmos DB client using the ``cosmos_*`` values of the factory settings."""
        settings = self.settings or Settings()
        return self.create_cosmos_client(
            account_name,
            user_agent_prefix=settings.cosmos_user_agent_prefix,
            use_bulk=settings.cosmos_use_bulk,
            retry_on_429_forever=settings.cosmos_retry_on_429_forever,
            use_encryption=settings.cosmos_use_encryption,
        )

    @staticmethod
    def build_cosmos_options(
        user_agent_prefix: Optional[str] = None,
        use_bulk: bool = False,
        retry_on_429_forever: bool = False,
    ) -> CosmosClientOptions:
        return CosmosClientOptions.build(user_agent_prefix, use_bulk, retry_on_429_forever)

    def get_blob_container_client(self, account_name: str, container_name: str) -> ContainerClient:
        """
        Get a Blob Storage container client for ``account_name``.

        Parameters
        ----------
        account_name : str
            Account whose ``<account>-BlobStorage-ConnectionString`` secret is used
        container_name : str
            Container the returned client is scoped to

        Returns
        -------
        ContainerClient
            Client for the named container
        """
        require_value(account_name, "account_name")
        require_value(container_name, "container_name")

        logger.debug("Creating Blob Storage container client", account_name=account_name, container=container_name)

        service_client = self.resolve_and_build(
            account_name,
            BLOB_CONNECTION_STRING_SUFFIX,
            BlobServiceClient.from_connection_string,
        )
        return service_client.get_container_client(container_name)

    def _build_key_store_provider(self) -> KeyVaultKeyStoreProvider:
        credential = self._encryption_credential or DefaultAzureCredential()
        return KeyVaultKeyStoreProvider(credential)


#################################
# --- Process-wide registry --- #
#################################

_factory: Optional[ClientFactory] = None


def initialize(vault_url: str, credential: TokenCredential) -> ClientFactory:
    """
    Create the process-wide client factory.

    Call once at startup, before any other thread uses the factory. A second
    call replaces the previous factory.
    """
    global _factory

    _factory = ClientFactory(vault_url, credential)
    logger.info("Client factory initialized", vault_url=_factory.vault_url)
    return _factory


def initialize_from_settings(settings: Optional[Settings] = None, configure_logging: bool = True) -> ClientFactory:
    """Create the process-wide client factory from application settings."""
    global _factory

    settings = settings or Settings()
    if configure_logging:
        configure_logger(level=settings.log_level)

    _factory = ClientFactory.from_settings(settings)
    logger.info("Client factory initialized from settings", vault_url=_factory.vault_url)
    return _factory


def get_factory() -> ClientFactory:
    """
    Get the process-wide client factory.

    Raises
    ------
    NotInitialized
        If ``initialize`` has not been called
    """
    if _factory is None:
        raise NotInitialized()
    return _factory


def reset_factory() -> None:
    """Forget the process-wide client factory."""
    global _factory
    _factory = None


def get_secret(name: str) -> str:
    return get_factory().get_secret(name)


def create_cosmos_client(
    account_name: str,
    user_agent_prefix: Optional[str] = None,
    use_bulk: bool = False,
    retry_on_429_forever: bool = False,
    use_encryption: bool = False,
) -> Union[CosmosClient, EncryptedCosmosClient]:
    return get_factory().create_cosmos_client(
        account_name,
        user_agent_prefix=user_agent_prefix,
        use_bulk=use_bulk,
        retry_on_429_forever=retry_on_429_forever,
        use_encryption=use_encryption,
    )


def get_blob_container_client(account_name: str, container_name: str) -> ContainerClient:
    return get_factory().get_blob_container_client(account_name, container_name)
