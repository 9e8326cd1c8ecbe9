"""Error types raised by the vault-backed client factory."""

from typing import Optional

# Explicit exports
__all__ = [
    "VaultClientsError",
    "InvalidArgument",
    "NotInitialized",
    "SecretLookupError",
    "EncryptionError",
    "require_value",
]


class VaultClientsError(Exception):
    """Base class for every error raised by this package."""


class InvalidArgument(VaultClientsError, ValueError):
    """A required argument was missing or blank."""

    def __init__(self, argument_name: str, message: Optional[str] = None):
        self.argument_name = argument_name
        super().__init__(message or f"Argument '{argument_name}' must not be empty")


class NotInitialized(VaultClientsError, RuntimeError):
    """The process-wide client factory was used before ``initialize`` was called."""

    def __init__(self, message: str = "Client factory has not yet been initialized."):
        super().__init__(message)


class SecretLookupError(VaultClientsError):
    """
    A secret could not be read from Key Vault.

    The underlying Azure SDK error is available through ``__cause__``.
    """

    def __init__(self, secret_name: str, vault_url: str, message: Optional[str] = None):
        self.secret_name = secret_name
        self.vault_url = vault_url
        super().__init__(message or f"Cannot retrieve secret '{secret_name}' from key vault '{vault_url}'")


class EncryptionError(VaultClientsError):
    """Field-level encryption or decryption failed."""


def require_value(value, argument_name: str) -> None:
    """
    Raise ``InvalidArgument`` when ``value`` is None, or a blank string.

    Parameters
    ----------
    value : Any
        Value supplied by the caller
    argument_name : str
        Name reported in the error
    """
    if value is None:
        raise InvalidArgument(argument_name)
    if isinstance(value, str) and not value.strip():
        raise InvalidArgument(argument_name)
