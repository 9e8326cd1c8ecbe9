"""Cosmos DB client decorator that encrypts and decrypts designated document fields.

``EncryptedCosmosClient`` wraps an ``azure.cosmos.CosmosClient``. Containers
obtained through it with a ``ClientEncryptionPolicy`` encrypt the policy's
fields before documents are written and decrypt them when documents are read.
Every other attribute is forwarded to the wrapped SDK object unchanged.

Data encryption keys are wrapped with a Key Vault key through the key store
provider and are unwrapped once per process, on first use.
"""

import threading
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Tuple,
)

from loguru import logger

from vaultclients.encryption.cipher import (
    EncryptionType,
    FieldCipher,
    generate_key,
)
from vaultclients.encryption.key_store import (
    DataEncryptionKey,
    KeyVaultKeyStoreProvider,
)
from vaultclients.encryption.policy import (
    ClientEncryptionIncludedPath,
    ClientEncryptionPolicy,
)
from vaultclients.errors import (
    EncryptionError,
    require_value,
)


class EncryptedCosmosClient:
    """Field-level encryption decorator for ``CosmosClient``."""

    def __init__(self, client: Any, key_store_provider: KeyVaultKeyStoreProvider):
        require_value(client, "client")
        require_value(key_store_provider, "key_store_provider")

        self._client = client
        self.key_store_provider = key_store_provider
        self._keys: Dict[str, DataEncryptionKey] = {}
        self._ciphers: Dict[str, FieldCipher] = {}
        self._lock = threading.Lock()

    @property
    def client(self) -> Any:
        """The wrapped ``CosmosClient``."""
        return self._client

    def __getattr__(self, name: str) -> Any:
        return getattr(self._client, name)

    def __enter__(self) -> "EncryptedCosmosClient":
        self._client.__enter__()
        return self

    def __exit__(self, *args) -> None:
        self._client.__exit__(*args)

    def create_data_encryption_key(self, key_id: str, master_key_url: str) -> DataEncryptionKey:
        """
        Generate a new data encryption key wrapped by the Key Vault key at ``master_key_url``.

        The key is registered with this client. Persist the returned value and pass
        it to ``register_data_encryption_key`` in later processes.
        """
        require_value(key_id, "key_id")
        require_value(master_key_url, "master_key_url")

        raw_key = generate_key()
        wrapped_key = self.key_store_provider.wrap_key(master_key_url, raw_key)
        data_encryption_key = DataEncryptionKey(
            id=key_id,
            master_key_url=master_key_url,
            wrapped_key=wrapped_key,
            key_store_provider_name=self.key_store_provider.provider_name,
        )

        with self._lock:
            self._keys[key_id] = data_encryption_key
            self._ciphers[key_id] = FieldCipher(raw_key)

        logger.info("Created data encryption key", key_id=key_id, master_key_url=master_key_url)
        return data_encryption_key

    def register_data_encryption_key(self, data_encryption_key: DataEncryptionKey) -> None:
        """Make a previously created data encryption key available to this client."""
        require_value(data_encryption_key, "data_encryption_key")

        with self._lock:
            self._keys[data_encryption_key.id] = data_encryption_key
            # Drop any cipher built from an older key with the same id
            self._ciphers.pop(data_encryption_key.id, None)

    def has_data_encryption_key(self, key_id: str) -> bool:
        with self._lock:
            return key_id in self._keys

    def get_cipher(self, key_id: str) -> FieldCipher:
        """Return the cipher of ``key_id``, unwrapping the key on first use."""
        with self._lock:
            cipher = self._ciphers.get(key_id)
            if cipher is not None:
                return cipher
            data_encryption_key = self._keys.get(key_id)
        if data_encryption_key is None:
            raise EncryptionError(f"Data encryption key '{key_id}' is not registered")

        # Unwrapping calls Key Vault; it must not hold the lock
        logger.debug("Unwrapping data encryption key", key_id=key_id)
        raw_key = self.key_store_provider.unwrap_key(
            data_encryption_key.master_key_url, data_encryption_key.wrapped_key
        )

        with self._lock:
            if self._keys.get(key_id) is data_encryption_key:
                return self._ciphers.setdefault(key_id, FieldCipher(raw_key))
        # Re-registered while unwrapping
        return self.get_cipher(key_id)

    def get_database_client(self, database: Any) -> "EncryptedDatabaseProxy":
        return EncryptedDatabaseProxy(self, self._client.get_database_client(database))


class EncryptedDatabaseProxy:
    """Database proxy handing out encrypting container proxies."""

    def __init__(self, encrypted_client: EncryptedCosmosClient, database: Any):
        self._encrypted_client = encrypted_client
        self._database = database

    @property
    def database(self) -> Any:
        """The wrapped ``DatabaseProxy``."""
        return self._database

    def __getattr__(self, name: str) -> Any:
        return getattr(self._database, name)

    def get_container_client(
        self,
        container: Any,
        encryption_policy: Optional[ClientEncryptionPolicy] = None,
    ) -> "EncryptedContainerProxy":
        """
        Get a container proxy that applies ``encryption_policy``.

        Raises
        ------
        EncryptionError
            If the policy refers to a data encryption key that is not registered
        """
        policy = encryption_policy or ClientEncryptionPolicy()
        for key_id in policy.key_ids():
            if not self._encrypted_client.has_data_encryption_key(key_id):
                raise EncryptionError(f"Data encryption key '{key_id}' is not registered")

        return EncryptedContainerProxy(
            self._encrypted_client,
            self._database.get_container_client(container),
            policy,
        )


class EncryptedContainerProxy:
    """Container proxy that encrypts documents on write and decrypts them on read."""

    def __init__(
        self,
        encrypted_client: EncryptedCosmosClient,
        container: Any,
        encryption_policy: ClientEncryptionPolicy,
    ):
        self._encrypted_client = encrypted_client
        self._container = container
        self.encryption_policy = encryption_policy
        self._paths = encryption_policy.by_property()

    @property
    def container(self) -> Any:
        """The wrapped ``ContainerProxy``."""
        return self._container

    def __getattr__(self, name: str) -> Any:
        return getattr(self._container, name)

    def encrypt_document(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``body`` with every policy field encrypted. Null values stay null."""
        encrypted = dict(body)
        for property_name, included_path in self._paths.items():
            value = encrypted.get(property_name)
            if value is None:
                continue
            cipher = self._encrypted_client.get_cipher(included_path.client_encryption_key_id)
            encrypted[property_name] = cipher.encrypt(value, included_path.path, included_path.encryption_type)
        return encrypted

    def decrypt_document(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``document`` with every policy field decrypted."""
        decrypted = dict(document)
        for property_name, included_path in self._paths.items():
            value = decrypted.get(property_name)
            if value is None:
                continue
            cipher = self._encrypted_client.get_cipher(included_path.client_encryption_key_id)
            decrypted[property_name] = cipher.decrypt(value, included_path.path)
        return decrypted

    def encrypt_value(self, path: str, value: Any) -> str:
        """
        Encrypt a query parameter for a deterministically encrypted path.

        Raises
        ------
        EncryptionError
            If ``path`` is not in the policy or is encrypted with randomized encryption
        """
        included_path = self._paths.get(path.lstrip("/"))
        if included_path is None:
            raise EncryptionError(f"Path '{path}' is not part of the encryption policy")
        if included_path.encryption_type != EncryptionType.DETERMINISTIC:
            raise EncryptionError(f"Path '{path}' uses randomized encryption and cannot be queried")

        cipher = self._encrypted_client.get_cipher(included_path.client_encryption_key_id)
        return cipher.encrypt(value, included_path.path, included_path.encryption_type)

    def _decrypt_all(self, results: Iterable[Any]) -> Iterator[Any]:
        # VALUE queries return scalars and arrays, which carry no policy fields
        for result in results:
            yield self.decrypt_document(result) if isinstance(result, dict) else result

    def encrypt_patch_operations(self, patch_operations: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Return a copy of ``patch_operations`` with values for policy fields encrypted.

        Raises
        ------
        EncryptionError
            If an operation increments or moves an encrypted field, or targets a path inside one
        """
        encrypted = []
        for operation in patch_operations:
            operation = dict(operation)
            op = operation.get("op", "").lower()
            included_path = self._included_path_for(operation.get("path", ""))
            if op == "move" and (included_path or self._included_path_for(operation.get("from", ""))):
                raise EncryptionError(
                    f"Cannot move encrypted path '{operation.get('from')}' to '{operation.get('path')}'"
                )
            if included_path is not None and op != "remove":
                if op not in ("add", "set", "replace"):
                    raise EncryptionError(
                        f"Patch operation '{op}' is not supported on encrypted path '{included_path.path}'"
                    )
                if operation.get("value") is not None:
                    cipher = self._encrypted_client.get_cipher(included_path.client_encryption_key_id)
                    operation["value"] = cipher.encrypt(
                        operation["value"], included_path.path, included_path.encryption_type
                    )
            encrypted.append(operation)
        return encrypted

    def _included_path_for(self, path: str) -> Optional[ClientEncryptionIncludedPath]:
        parts = path.strip("/").split("/")
        included_path = self._paths.get(parts[0])
        if included_path is not None and len(parts) > 1:
            raise EncryptionError(f"Cannot patch '{path}' inside encrypted path '{included_path.path}'")
        return included_path

    def _encrypt_batch_operation(self, operation: Tuple) -> Tuple:
        op, args = operation[0], tuple(operation[1])
        if op in ("create", "upsert"):
            args = (self.encrypt_document(args[0]),) + args[1:]
        elif op == "replace":
            args = (args[0], self.encrypt_document(args[1])) + args[2:]
        elif op == "patch":
            args = (args[0], self.encrypt_patch_operations(args[1])) + args[2:]
        return (op, args) + tuple(operation[2:])

    def create_item(self, body: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        return self.decrypt_document(self._container.create_item(self.encrypt_document(body), **kwargs))

    def upsert_item(self, body: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        return self.decrypt_document(self._container.upsert_item(self.encrypt_document(body), **kwargs))

    def replace_item(self, item: Any, body: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        return self.decrypt_document(self._container.replace_item(item, self.encrypt_document(body), **kwargs))

    def patch_item(
        self, item: Any, partition_key: Any, patch_operations: List[Dict[str, Any]], **kwargs: Any
    ) -> Dict[str, Any]:
        operations = self.encrypt_patch_operations(patch_operations)
        return self.decrypt_document(self._container.patch_item(item, partition_key, operations, **kwargs))

    def execute_item_batch(self, batch_operations: List[Tuple], partition_key: Any, **kwargs: Any) -> List[Any]:
        """Run a transactional batch, encrypting written documents and decrypting returned ones."""
        operations = [self._encrypt_batch_operation(operation) for operation in batch_operations]
        results = []
        for result in self._container.execute_item_batch(operations, partition_key, **kwargs):
            body = result.get("resourceBody") if isinstance(result, dict) else None
            if isinstance(body, dict):
                result = dict(result, resourceBody=self.decrypt_document(body))
            results.append(result)
        return results

    def read_item(self, item: Any, partition_key: Any, **kwargs: Any) -> Dict[str, Any]:
        return self.decrypt_document(self._container.read_item(item, partition_key, **kwargs))

    def query_items(self, query: str, parameters: Optional[list] = None, **kwargs: Any) -> Iterator[Any]:
        return self._decrypt_all(self._container.query_items(query, parameters=parameters, **kwargs))

    def read_all_items(self, **kwargs: Any) -> Iterator[Dict[str, Any]]:
        return self._decrypt_all(self._container.read_all_items(**kwargs))

    def query_items_change_feed(self, *args: Any, **kwargs: Any) -> Iterator[Dict[str, Any]]:
        return self._decrypt_all(self._container.query_items_change_feed(*args, **kwargs))
