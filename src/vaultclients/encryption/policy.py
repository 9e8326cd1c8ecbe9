"""Client encryption policy: which document fields are encrypted, and with which key."""

from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Dict,
    List,
)

from vaultclients.encryption.cipher import EncryptionType
from vaultclients.errors import (
    EncryptionError,
    require_value,
)


@dataclass(frozen=True)
class ClientEncryptionIncludedPath:
    """One encrypted top-level field, e.g. ``/ssn``."""

    path: str
    client_encryption_key_id: str
    encryption_type: EncryptionType = EncryptionType.RANDOMIZED

    @property
    def property_name(self) -> str:
        """Document property addressed by ``path``."""
        return self.path[1:]


@dataclass(frozen=True)
class ClientEncryptionPolicy:
    """Set of encrypted paths for one container."""

    included_paths: List[ClientEncryptionIncludedPath] = field(default_factory=list)

    def __post_init__(self):
        seen = set()
        for included_path in self.included_paths:
            path = included_path.path
            require_value(path, "path")
            require_value(included_path.client_encryption_key_id, "client_encryption_key_id")

            # Only top-level properties can be encrypted
            if not path.startswith("/") or "/" in path[1:] or len(path) < 2:
                raise EncryptionError(f"Invalid encrypted path '{path}': expected a top-level path like '/ssn'")
            if path == "/id":
                raise EncryptionError("The '/id' path cannot be encrypted")
            if path in seen:
                raise EncryptionError(f"Duplicate encrypted path '{path}'")
            seen.add(path)

    def by_property(self) -> Dict[str, ClientEncryptionIncludedPath]:
        """Map document property names to their encryption settings."""
        return {included_path.property_name: included_path for included_path in self.included_paths}

    def key_ids(self) -> List[str]:
        """Data encryption key ids referenced by this policy."""
        return sorted({included_path.client_encryption_key_id for included_path in self.included_paths})
