"""Exceptions raised by zonekeeper.

Provider faults (``ProviderError`` and subclasses) are produced once, at the
HTTP boundary of each vendor adapter, and are never re-interpreted further up.
Everything else describes a local failure: account bookkeeping, credential
storage, import/export files or encryption.
"""

from typing import Any


class ZonekeeperError(Exception):
    """Base exception for all zonekeeper errors.

    Attributes:
        code: Stable machine-readable error code.
        message: Human-readable reason.
    """

    code = "Internal"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for an outer API layer.

        Returns:
            Dict with 'code', 'message' and any contextual fields.
        """
        return {"code": self.code, "message": self.message, **self._fields()}

    def _fields(self) -> dict[str, Any]:
        return {}


# =============================================================================
# Provider errors
# =============================================================================


class ProviderError(ZonekeeperError):
    """Normalized fault raised by a DNS provider adapter."""

    code = "ProviderError"

    def __init__(self, provider: str, message: str, raw_message: str | None = None):
        self.provider = provider
        self.raw_message = raw_message
        super().__init__(message)

    def _fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {"provider": self.provider}
        if self.raw_message is not None:
            fields["raw_message"] = self.raw_message
        return fields


class NetworkError(ProviderError):
    """Request could not be sent or the response could not be read."""

    code = "NetworkError"

    def __init__(self, provider: str, detail: str):
        self.detail = detail
        super().__init__(provider, f"[{provider}] Network error: {detail}")

    def _fields(self) -> dict[str, Any]:
        return {**super()._fields(), "detail": self.detail}


class ParseError(ProviderError):
    """Response body did not match the expected shape."""

    code = "ParseError"

    def __init__(self, provider: str, detail: str, raw_body: str | None = None):
        self.detail = detail
        self.raw_body = raw_body
        super().__init__(provider, f"[{provider}] Failed to parse response: {detail}")

    def _fields(self) -> dict[str, Any]:
        return {**super()._fields(), "detail": self.detail}


class SerializationError(ProviderError):
    """Request payload could not be serialized."""

    code = "SerializationError"

    def __init__(self, provider: str, detail: str):
        self.detail = detail
        super().__init__(provider, f"[{provider}] Serialization failed: {detail}")

    def _fields(self) -> dict[str, Any]:
        return {**super()._fields(), "detail": self.detail}


class InvalidCredentialsError(ProviderError):
    """Vendor rejected the credentials."""

    code = "InvalidCredentials"

    def __init__(self, provider: str, raw_message: str | None = None):
        super().__init__(provider, f"[{provider}] Invalid credentials", raw_message)


class RecordExistsError(ProviderError):
    """A record with the same name/type/value already exists."""

    code = "RecordExists"

    def __init__(self, provider: str, record_name: str, raw_message: str | None = None):
        self.record_name = record_name
        super().__init__(provider, f"[{provider}] Record already exists: {record_name}", raw_message)

    def _fields(self) -> dict[str, Any]:
        return {**super()._fields(), "record_name": self.record_name}


class RecordNotFoundError(ProviderError):
    """Referenced record does not exist."""

    code = "RecordNotFound"

    def __init__(self, provider: str, record_id: str, raw_message: str | None = None):
        self.record_id = record_id
        super().__init__(provider, f"[{provider}] Record not found: {record_id}", raw_message)

    def _fields(self) -> dict[str, Any]:
        return {**super()._fields(), "record_id": self.record_id}


class DomainNotFoundError(ProviderError):
    """Referenced domain (zone) does not exist or is not owned by the account."""

    code = "DomainNotFound"

    def __init__(self, provider: str, domain: str, raw_message: str | None = None):
        self.domain = domain
        super().__init__(provider, f"[{provider}] Domain not found: {domain}", raw_message)

    def _fields(self) -> dict[str, Any]:
        return {**super()._fields(), "domain": self.domain}


class UnknownProviderError(ProviderError):
    """Vendor fault whose code is not in the provider's mapping table."""

    code = "Unknown"

    def __init__(self, provider: str, raw_message: str, raw_code: str | None = None):
        self.raw_code = raw_code
        prefix = f"[{provider}] {raw_code}: " if raw_code else f"[{provider}] "
        super().__init__(provider, f"{prefix}{raw_message}", raw_message)

    def _fields(self) -> dict[str, Any]:
        return {**super()._fields(), "raw_code": self.raw_code}


# =============================================================================
# Core errors
# =============================================================================


class AccountNotFoundError(ZonekeeperError):
    """No account with the given ID."""

    code = "AccountNotFound"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")

    def _fields(self) -> dict[str, Any]:
        return {"account_id": self.account_id}


class NoAccountsSelectedError(ZonekeeperError):
    """Export was requested for an empty (or entirely unknown) selection."""

    code = "NoAccountsSelected"

    def __init__(self) -> None:
        super().__init__("No accounts selected for export")


class UnsupportedFileVersionError(ZonekeeperError):
    """Export file format version is newer than this build understands."""

    code = "UnsupportedFileVersion"

    def __init__(self, version: int):
        self.version = version
        super().__init__(f"Unsupported export file version: {version}")

    def _fields(self) -> dict[str, Any]:
        return {"version": self.version}


class CredentialError(ZonekeeperError):
    """Credential store failed to save, load or delete."""

    code = "CredentialError"


class UnreadableCredentialsError(CredentialError):
    """A stored credential entry exists but cannot be decrypted or decoded."""

    def __init__(self, account_id: str, detail: str):
        self.account_id = account_id
        super().__init__(f"Stored credentials for account {account_id} are unreadable: {detail}")

    def _fields(self) -> dict[str, Any]:
        return {"account_id": self.account_id}


class CredentialValidationError(ZonekeeperError):
    """Credential map is missing fields or has an unsupported provider."""

    code = "CredentialValidation"


class ValidationError(ZonekeeperError):
    """Local input validation failed."""

    code = "ValidationError"


class ImportExportError(ZonekeeperError):
    """Export file could not be read, decrypted or parsed."""

    code = "ImportExportError"


class DecryptionError(ZonekeeperError):
    """Decryption failed.

    Wrong password and corrupted ciphertext deliberately produce the same
    error so the two cannot be told apart.
    """

    code = "DecryptionFailed"

    def __init__(self) -> None:
        super().__init__("Decryption failed: invalid password or corrupted data")


class EncodingError(ZonekeeperError):
    """Encrypted payload is structurally invalid (bad base64, wrong lengths)."""

    code = "EncodingError"
