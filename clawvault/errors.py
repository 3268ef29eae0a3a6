"""Exception hierarchy for vault operations.

Every error carries a one-line message and an optional remediation hint.
None of them are transient; callers surface them to the operator and stop.
"""

from __future__ import annotations


class VaultError(Exception):
    """Base class for all vault errors."""

    def __init__(self, message: str, hint: str = ""):
        super().__init__(message)
        self.hint = hint


class NotFoundError(VaultError):
    """Vault file or secret is absent."""


class AlreadyExistsError(VaultError):
    """Vault file exists and --force was not given."""


class InvalidInputError(VaultError, ValueError):
    """Operator input failed validation."""


class InvalidNameError(InvalidInputError):
    pass


class InvalidProviderError(InvalidInputError):
    pass


class InvalidPortError(InvalidInputError):
    pass


class InvalidHostnameError(InvalidInputError):
    pass


class KeyUnavailableError(VaultError):
    """No decryption key could be obtained."""


class DecryptionFailedError(VaultError):
    """Wrong key or corrupt ciphertext."""


class MissingPublicKeyError(VaultError):
    """vault.publicKey is not configured."""


class ConfigError(VaultError):
    """The structured configuration file could not be read."""
