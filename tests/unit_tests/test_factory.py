"""Unit tests for factory.py (ClientFactory and CosmosClientOptions)."""

from unittest.mock import (
    MagicMock,
    patch,
)

import pytest
from azure.core.exceptions import ClientAuthenticationError

from tests.fixtures.vault_fixtures import (
    TEST_CONNECTION_STRING,
    TEST_VAULT_URL,
)
from vaultclients.encryption import (
    EncryptedCosmosClient,
    KeyVaultKeyStoreProvider,
)
from vaultclients.errors import (
    InvalidArgument,
    SecretLookupError,
)
from vaultclients.factory import (
    UNLIMITED_RETRY_ATTEMPTS,
    UNLIMITED_RETRY_WAIT_SECONDS,
    ClientFactory,
    CosmosClientOptions,
)


class TestCosmosClientOptions:
    """Tests for CosmosClientOptions."""

    def test_unlimited_retry_constants(self):
        """Test unlimited retry uses the largest 32-bit attempt count and matching wait bound."""
        assert UNLIMITED_RETRY_ATTEMPTS == 2147483647
        assert UNLIMITED_RETRY_WAIT_SECONDS == 2147483

    def test_retry_forever_without_user_agent(self):
        """Test retry-forever options leave the user agent unset."""
        options = CosmosClientOptions.build(user_agent_prefix="", use_bulk=False, retry_on_429_forever=True)

        assert options.allow_bulk_execution is False
        assert options.max_retry_attempts_on_rate_limited_requests == UNLIMITED_RETRY_ATTEMPTS
        assert options.max_retry_wait_time_on_rate_limited_requests == UNLIMITED_RETRY_WAIT_SECONDS
        assert options.application_name is None
        assert options.to_client_kwargs() == {
            "retry_throttle_total": UNLIMITED_RETRY_ATTEMPTS,
            "retry_throttle_backoff_max": UNLIMITED_RETRY_WAIT_SECONDS,
        }

    def test_retry_forever_only_changes_throttle_retries(self):
        """Test unlimited 429 retry leaves the transport connection retry policy at its defaults."""
        from azure.cosmos.cosmos_client import _build_connection_policy

        kwargs = CosmosClientOptions.build(retry_on_429_forever=True).to_client_kwargs()

        policy = _build_connection_policy(dict(kwargs))
        default = _build_connection_policy({})

        assert policy.RetryOptions.MaxRetryAttemptCount == UNLIMITED_RETRY_ATTEMPTS
        assert policy.RetryOptions.MaxWaitTimeInSeconds == UNLIMITED_RETRY_WAIT_SECONDS
        assert policy.ConnectionRetryConfiguration.total_retries == default.ConnectionRetryConfiguration.total_retries
        assert policy.ConnectionRetryConfiguration.backoff_max == default.ConnectionRetryConfiguration.backoff_max

    def test_bulk_with_user_agent(self):
        """Test bulk options with a user agent tag and default retries."""
        options = CosmosClientOptions.build(user_agent_prefix="app1", use_bulk=True, retry_on_429_forever=False)

        assert options.allow_bulk_execution is True
        assert options.max_retry_attempts_on_rate_limited_requests is None
        assert options.application_name == "app1"
        assert options.to_client_kwargs() == {"user_agent_suffix": "app1"}

    @pytest.mark.parametrize("prefix", [None, "", "   "], ids=["none", "empty", "blank"])
    def test_blank_user_agent_ignored(self, prefix):
        """Test blank user agent prefixes are not applied."""
        options = CosmosClientOptions.build(user_agent_prefix=prefix)

        assert options.application_name is None
        assert "user_agent_suffix" not in options.to_client_kwargs()


class TestClientFactoryInit:
    """Tests for ClientFactory initialization."""

    @pytest.mark.parametrize("vault_url", [None, "", "  "], ids=["none", "empty", "blank"])
    def test_rejects_blank_vault_url(self, vault_url, mock_credential):
        """Test blank vault URLs are rejected."""
        with pytest.raises(InvalidArgument):
            ClientFactory(vault_url, mock_credential)

    def test_rejects_missing_credential(self):
        """Test a missing credential is rejected."""
        with pytest.raises(InvalidArgument):
            ClientFactory(TEST_VAULT_URL, None)

    def test_properties(self, factory, mock_credential):
        """Test the vault URL and credential are exposed."""
        assert factory.vault_url == TEST_VAULT_URL
        assert factory.credential is mock_credential
        assert factory.settings is None

    @patch("vaultclients.factory.build_credential")
    @patch("vaultclients.keyvault.client.SecretClient")
    def test_from_settings(self, mock_secret_client_cls, mock_build_credential, mock_settings):
        """Test building the factory from settings picks the deployment credential."""
        factory = ClientFactory.from_settings(mock_settings)

        assert factory.vault_url == TEST_VAULT_URL
        assert factory.credential is mock_build_credential.return_value
        assert factory.settings is mock_settings
        mock_secret_client_cls.assert_called_once_with(
            vault_url=TEST_VAULT_URL, credential=mock_build_credential.return_value
        )

    def test_from_settings_without_vault_url(self, mock_settings):
        """Test settings without a vault URL are rejected."""
        mock_settings.azure_keyvault_url = None

        with pytest.raises(InvalidArgument):
            ClientFactory.from_settings(mock_settings, credential=MagicMock())


class TestResolveAndBuild:
    """Tests for ClientFactory.resolve_and_build."""

    def test_builder_receives_connection_string(self, factory, mock_secret_client):
        """Test the builder is called with the secret value for the derived name."""
        builder = MagicMock(return_value="client")

        result = factory.resolve_and_build("foo", "-Custom-ConnectionString", builder)

        assert result == "client"
        builder.assert_called_once_with(TEST_CONNECTION_STRING)
        mock_secret_client.get_secret.assert_called_once_with("foo-Custom-ConnectionString")

    def test_lookup_failure_skips_builder(self, factory, mock_secret_client):
        """Test the builder is not called when the lookup fails."""
        mock_secret_client.get_secret.side_effect = ClientAuthenticationError("denied")
        builder = MagicMock()

        with pytest.raises(SecretLookupError):
            factory.resolve_and_build("foo", "-Custom-ConnectionString", builder)

        builder.assert_not_called()


class TestCreateCosmosClient:
    """Tests for ClientFactory.create_cosmos_client."""

    @patch("vaultclients.factory.CosmosClient")
    def test_retry_forever_without_user_agent(self, mock_cosmos_cls, factory, mock_secret_client):
        """Test unlimited 429 retry is configured and no user agent tag is set."""
        client = factory.create_cosmos_client("acct", "", False, True, False)

        assert client is mock_cosmos_cls.from_connection_string.return_value
        mock_secret_client.get_secret.assert_called_once_with("acct-CosmosDB-ConnectionString")
        mock_cosmos_cls.from_connection_string.assert_called_once_with(
            TEST_CONNECTION_STRING,
            retry_throttle_total=UNLIMITED_RETRY_ATTEMPTS,
            retry_throttle_backoff_max=UNLIMITED_RETRY_WAIT_SECONDS,
        )

    @patch("vaultclients.factory.CosmosClient")
    def test_encrypted_with_user_agent(self, mock_cosmos_cls, factory):
        """Test encryption wrapping is applied and the user agent tag is set."""
        client = factory.create_cosmos_client("acct", "app1", True, False, True)

        assert isinstance(client, EncryptedCosmosClient)
        assert client.client is mock_cosmos_cls.from_connection_string.return_value
        assert isinstance(client.key_store_provider, KeyVaultKeyStoreProvider)
        mock_cosmos_cls.from_connection_string.assert_called_once_with(
            TEST_CONNECTION_STRING,
            user_agent_suffix="app1",
        )

    @patch("vaultclients.factory.DefaultAzureCredential")
    @patch("vaultclients.factory.CosmosClient")
    def test_encryption_uses_default_credential(self, mock_cosmos_cls, mock_default, secret_reader, mock_credential):
        """Test the key store uses DefaultAzureCredential when no encryption credential is given."""
        factory = ClientFactory(TEST_VAULT_URL, mock_credential, secret_reader=secret_reader)

        client = factory.create_cosmos_client("acct", use_encryption=True)

        assert client.key_store_provider.credential is mock_default.return_value

    @patch("vaultclients.factory.CosmosClient")
    @pytest.mark.parametrize("account_name", [None, "", "   "], ids=["none", "empty", "blank"])
    def test_blank_account(self, mock_cosmos_cls, account_name, factory, mock_secret_client):
        """Test blank account names fail before Key Vault is called."""
        with pytest.raises(InvalidArgument):
            factory.create_cosmos_client(account_name)

        mock_secret_client.get_secret.assert_not_called()
        mock_cosmos_cls.from_connection_string.assert_not_called()

    @patch("vaultclients.factory.CosmosClient")
    def test_lookup_failure_propagates(self, mock_cosmos_cls, factory, mock_secret_client):
        """Test lookup failures reach the caller and no client is built."""
        mock_secret_client.get_secret.side_effect = ClientAuthenticationError("denied")

        with pytest.raises(SecretLookupError):
            factory.create_cosmos_client("acct")

        mock_cosmos_cls.from_connection_string.assert_not_called()

    @patch("vaultclients.factory.CosmosClient")
    def test_connection_string_fetched_per_call(self, mock_cosmos_cls, factory, mock_secret_client):
        """Test the connection string is fetched for each client."""
        factory.create_cosmos_client("acct")
        factory.create_cosmos_client("acct")

        assert mock_secret_client.get_secret.call_count == 2

    @patch("vaultclients.factory.CosmosClient")
    def test_default_cosmos_client_uses_settings(self, mock_cosmos_cls, factory, mock_settings):
        """Test the settings-driven client applies the cosmos_* settings."""
        factory.settings = mock_settings

        client = factory.create_default_cosmos_client("acct")

        assert client is mock_cosmos_cls.from_connection_string.return_value
        mock_cosmos_cls.from_connection_string.assert_called_once_with(
            TEST_CONNECTION_STRING,
            user_agent_suffix="settings-app",
        )


class TestGetBlobContainerClient:
    """Tests for ClientFactory.get_blob_container_client."""

    @patch("vaultclients.factory.BlobServiceClient")
    def test_container_client(self, mock_blob_service_cls, factory, mock_secret_client):
        """Test the container client comes from a service client built from the secret."""
        mock_service = mock_blob_service_cls.from_connection_string.return_value

        container = factory.get_blob_container_client("exports", "daily")

        assert container is mock_service.get_container_client.return_value
        mock_secret_client.get_secret.assert_called_once_with("exports-BlobStorage-ConnectionString")
        mock_blob_service_cls.from_connection_string.assert_called_once_with(TEST_CONNECTION_STRING)
        mock_service.get_container_client.assert_called_once_with("daily")

    @patch("vaultclients.factory.BlobServiceClient")
    @pytest.mark.parametrize(
        "account_name,container_name",
        [
            (None, "daily"),
            ("", "daily"),
            ("  ", "daily"),
            ("exports", None),
            ("exports", ""),
            ("exports", "\t"),
        ],
        ids=["no_account", "empty_account", "blank_account", "no_container", "empty_container", "blank_container"],
    )
    def test_blank_arguments(self, mock_blob_service_cls, account_name, container_name, factory, mock_secret_client):
        """Test blank arguments fail before Key Vault is called."""
        with pytest.raises(InvalidArgument):
            factory.get_blob_container_client(account_name, container_name)

        mock_secret_client.get_secret.assert_not_called()
        mock_blob_service_cls.from_connection_string.assert_not_called()
