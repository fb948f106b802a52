"""Account lifecycle: create, update, delete, export, import and restore.

The service ties together the credential store, the account repository and
the provider registry. Within one account operation the steps run in a
fixed order (validate, persist credentials, register, persist metadata) and
completed steps are not rolled back if a later one fails.
"""

import uuid
from collections.abc import Callable
from datetime import datetime, timezone

import pydantic
from pydantic import TypeAdapter

from zonekeeper._logging import account_context, get_logger
from zonekeeper.credentials import ProviderCredentials, credentials_from_map
from zonekeeper.crypto import (
    CURRENT_FILE_VERSION,
    EncryptedBlob,
    decrypt,
    decrypt_from_string,
    encrypt_to_string,
    get_pbkdf2_iterations,
)
from zonekeeper.exceptions import (
    AccountNotFoundError,
    CredentialError,
    ImportExportError,
    InvalidCredentialsError,
    NoAccountsSelectedError,
    UnreadableCredentialsError,
    UnsupportedFileVersionError,
    ValidationError,
    ZonekeeperError,
)
from zonekeeper.models import (
    Account,
    AccountStatus,
    BatchDeleteFailure,
    BatchDeleteResult,
    CreateAccountRequest,
    ExportAccountsRequest,
    ExportAccountsResponse,
    ExportedAccount,
    ExportFile,
    ExportFileHeader,
    ImportAccountsRequest,
    ImportFailure,
    ImportPreview,
    ImportPreviewAccount,
    ImportResult,
    ProviderMetadata,
    ProviderType,
    RestoreResult,
    UpdateAccountRequest,
)
from zonekeeper.providers import DnsProvider, create_provider, get_all_provider_metadata
from zonekeeper.registry import ProviderRegistry
from zonekeeper.stores import AccountRepository, CredentialStore

logger = get_logger(__name__)

ProviderFactory = Callable[[ProviderCredentials], DnsProvider]

_EXPORTED_ACCOUNTS = TypeAdapter(list[ExportedAccount])

CREDENTIALS_MISSING = "Credentials missing"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class AccountService:
    """Manages DNS vendor accounts and their live providers.

    Args:
        credential_store: Where credential maps are persisted.
        account_repository: Where account metadata is persisted.
        registry: Registry of live providers, shared with the DNS service.
        app_version: Version stamped into export files (default: package version).
        provider_factory: Builds a provider from credentials (default:
            ``create_provider``).
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        account_repository: AccountRepository,
        registry: ProviderRegistry,
        app_version: str | None = None,
        provider_factory: ProviderFactory = create_provider,
    ):
        if app_version is None:
            from zonekeeper import __version__

            app_version = __version__

        self.credential_store = credential_store
        self.account_repository = account_repository
        self.registry = registry
        self.app_version = app_version
        self._provider_factory = provider_factory

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def list_accounts(self) -> list[Account]:
        return await self.account_repository.find_all()

    async def get_account(self, account_id: str) -> Account:
        """Get one account.

        Raises:
            AccountNotFoundError: If the account does not exist.
        """
        account = await self.account_repository.find_by_id(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def list_providers(self) -> list[ProviderMetadata]:
        return get_all_provider_metadata()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def _build_validated_provider(self, credentials: ProviderCredentials) -> DnsProvider:
        """Build a provider and check its credentials against the vendor.

        Raises:
            InvalidCredentialsError: If the vendor rejects the credentials.
            ProviderError: On network or protocol failures.
        """
        instance = self._provider_factory(credentials)
        try:
            valid = await instance.validate_credentials()
        except ZonekeeperError:
            await instance.aclose()
            raise

        if not valid:
            await instance.aclose()
            raise InvalidCredentialsError(instance.provider_name)
        return instance

    async def _save_credentials(
        self, account_id: str, credentials: ProviderCredentials, provider: DnsProvider
    ) -> None:
        """Persist credentials, closing the not-yet-registered provider on failure."""
        try:
            await self.credential_store.save(account_id, credentials.to_map())
        except Exception:
            await provider.aclose()
            raise

    async def create_account(self, request: CreateAccountRequest) -> Account:
        """Create an account after validating its credentials online.

        Nothing is persisted if validation fails.

        Args:
            request: Name, vendor and raw credential map.

        Returns:
            The new account (status Active).

        Raises:
            CredentialValidationError: If the credential map is malformed.
            InvalidCredentialsError: If the vendor rejects the credentials.
            ProviderError: On network or protocol failures during validation.
        """
        account_id = _new_id()
        with account_context(account_id):
            credentials = credentials_from_map(request.provider, request.credentials)
            provider = await self._build_validated_provider(credentials)

            await self._save_credentials(account_id, credentials, provider)
            self.registry.register(account_id, provider)

            now = _now()
            account = Account(
                id=account_id,
                name=request.name,
                provider=request.provider,
                created_at=now,
                updated_at=now,
                status=AccountStatus.ACTIVE,
            )
            await self.account_repository.save(account)

        logger.info(
            "Account created",
            extra={"account_id": account_id, "provider": str(request.provider)},
        )
        return account

    async def update_account(self, request: UpdateAccountRequest) -> Account:
        """Rename an account and/or replace its credentials.

        New credentials are validated online before anything is saved; on
        success the account's provider is replaced and its status reset to
        Active.

        Raises:
            AccountNotFoundError: If the account does not exist.
            CredentialValidationError: If the new credential map is malformed.
            InvalidCredentialsError: If the vendor rejects the new credentials.
        """
        account = await self.get_account(request.id)
        with account_context(account.id):
            updates: dict[str, object] = {"updated_at": _now()}

            if request.credentials is not None:
                credentials = credentials_from_map(account.provider, request.credentials)
                provider = await self._build_validated_provider(credentials)
                await self._save_credentials(account.id, credentials, provider)
                previous = self.registry.register(account.id, provider)
                if previous is not None:
                    await previous.aclose()
                updates.update(status=AccountStatus.ACTIVE, error=None)

            if request.name is not None:
                updates["name"] = request.name

            account = account.model_copy(update=updates)
            await self.account_repository.save(account)

        logger.info("Account updated", extra={"account_id": account.id})
        return account

    async def delete_account(self, account_id: str) -> None:
        """Delete an account, its credentials and its live provider.

        Credentials that are already gone are tolerated.

        Raises:
            AccountNotFoundError: If the account does not exist.
        """
        await self.get_account(account_id)

        provider = self.registry.unregister(account_id)
        if provider is not None:
            await provider.aclose()

        try:
            await self.credential_store.delete(account_id)
        except CredentialError as e:
            logger.warning(
                "Failed to delete credentials",
                extra={"account_id": account_id, "error": e.message},
            )

        await self.account_repository.delete(account_id)
        logger.info("Account deleted", extra={"account_id": account_id})

    async def batch_delete_accounts(self, account_ids: list[str]) -> BatchDeleteResult:
        """Delete several accounts, collecting per-account failures."""
        failures = []
        for account_id in account_ids:
            try:
                await self.delete_account(account_id)
            except ZonekeeperError as e:
                failures.append(BatchDeleteFailure(id=account_id, reason=e.message))

        return BatchDeleteResult(
            success_count=len(account_ids) - len(failures),
            failed_count=len(failures),
            failures=failures,
        )

    # -------------------------------------------------------------------------
    # Export / import
    # -------------------------------------------------------------------------

    async def export_accounts(self, request: ExportAccountsRequest) -> ExportAccountsResponse:
        """Export accounts with their credentials.

        Every exported account gets a fresh id. Accounts that no longer exist
        or have no stored credentials are skipped with a warning.

        Args:
            request: Account ids, and an optional password to encrypt with.

        Returns:
            Serialized export file and a suggested file name.

        Raises:
            NoAccountsSelectedError: If none of the given ids is an existing account.
            ValidationError: If encryption is requested without a password.
        """
        if not request.account_ids:
            raise NoAccountsSelectedError()
        if request.encrypt and not request.password:
            raise ValidationError("Password is required for encrypted export")

        selected = []
        for account_id in request.account_ids:
            account = await self.account_repository.find_by_id(account_id)
            if account is None:
                logger.warning("Skipping unknown account in export", extra={"account_id": account_id})
            else:
                selected.append(account)
        if not selected:
            raise NoAccountsSelectedError()

        exported = []
        for account in selected:
            try:
                credentials = await self.credential_store.load(account.id)
            except CredentialError as e:
                logger.warning(
                    "Skipping account without credentials in export",
                    extra={"account_id": account.id, "error": e.message},
                )
                continue

            exported.append(
                ExportedAccount(
                    id=_new_id(),
                    name=account.name,
                    provider=str(account.provider),
                    created_at=account.created_at,
                    updated_at=account.updated_at,
                    credentials=credentials,
                )
            )

        now = _now()
        if request.encrypt:
            payload = _EXPORTED_ACCOUNTS.dump_json(exported, by_alias=True)
            data: object = encrypt_to_string(payload, request.password)
        else:
            data = _EXPORTED_ACCOUNTS.dump_python(exported, mode="json", by_alias=True)

        export_file = ExportFile(
            header=ExportFileHeader(
                version=CURRENT_FILE_VERSION,
                encrypted=request.encrypt,
                exported_at=now.isoformat(),
                app_version=self.app_version,
            ),
            data=data,
        )

        logger.info(
            "Accounts exported",
            extra={"count": len(exported), "encrypted": request.encrypt},
        )
        return ExportAccountsResponse(
            content=export_file.model_dump_json(by_alias=True, exclude_none=True, indent=2),
            suggested_filename=f"zonekeeper-backup-{now:%Y%m%d-%H%M%S}.json",
        )

    def _parse_export_file(self, content: str) -> ExportFile:
        """Parse an export file and check its version.

        Raises:
            ImportExportError: If the content is not an export file.
            UnsupportedFileVersionError: If the version is unknown.
        """
        try:
            export_file = ExportFile.model_validate_json(content)
        except pydantic.ValidationError as e:
            raise ImportExportError(f"Invalid export file: {e}") from e

        version = export_file.header.version
        if version > CURRENT_FILE_VERSION:
            raise UnsupportedFileVersionError(version)
        # Also rejects versions that never existed (e.g. 0)
        get_pbkdf2_iterations(version)
        return export_file

    def _decode_accounts(self, export_file: ExportFile, password: str | None) -> list[ExportedAccount]:
        """Decrypt (if needed) and validate the accounts of an export file.

        Raises:
            ValidationError: If the file is encrypted and no password is given.
            DecryptionError: If the password is wrong or the data is corrupted.
            ImportExportError: If the account list is malformed.
        """
        header = export_file.header
        try:
            if not header.encrypted:
                return _EXPORTED_ACCOUNTS.validate_python(export_file.data)

            if not password:
                raise ValidationError("Password is required for encrypted file")
            if not isinstance(export_file.data, str):
                raise ImportExportError("Encrypted export data must be a base64 string")

            iterations = get_pbkdf2_iterations(header.version)
            if header.salt and header.nonce:
                blob = EncryptedBlob(salt=header.salt, nonce=header.nonce, ciphertext=export_file.data)
                plaintext = decrypt(blob, password, iterations)
            else:
                plaintext = decrypt_from_string(export_file.data, password, iterations)
            return _EXPORTED_ACCOUNTS.validate_json(plaintext)
        except pydantic.ValidationError as e:
            raise ImportExportError(f"Invalid account data: {e}") from e

    async def preview_import(self, content: str, password: str | None = None) -> ImportPreview:
        """Show what an import would do without persisting anything.

        An encrypted file previewed without a password reports only that it
        is encrypted.

        Args:
            content: Export file content.
            password: Password for encrypted files.

        Returns:
            Account count and, when readable, per-account name conflicts.

        Raises:
            UnsupportedFileVersionError: If the file version is unknown.
            DecryptionError: If the password is wrong.
        """
        export_file = self._parse_export_file(content)
        if export_file.header.encrypted and not password:
            return ImportPreview(encrypted=True, account_count=0, accounts=None)

        exported = self._decode_accounts(export_file, password)
        existing_names = {account.name for account in await self.account_repository.find_all()}

        return ImportPreview(
            encrypted=export_file.header.encrypted,
            account_count=len(exported),
            accounts=[
                ImportPreviewAccount(
                    name=account.name,
                    provider=account.provider,
                    has_conflict=account.name in existing_names,
                )
                for account in exported
            ],
        )

    async def import_accounts(self, request: ImportAccountsRequest) -> ImportResult:
        """Import the accounts of an export file.

        Each account is imported independently under a new id; failures are
        collected and do not stop the remaining accounts.

        Raises:
            UnsupportedFileVersionError: If the file version is unknown.
            ValidationError: If the file is encrypted and no password is given.
            DecryptionError: If the password is wrong.
        """
        export_file = self._parse_export_file(request.content)
        exported = self._decode_accounts(export_file, request.password)

        success_count = 0
        failures = []
        for account in exported:
            try:
                await self._import_one(account)
            except ZonekeeperError as e:
                logger.warning(
                    "Failed to import account",
                    extra={"account_name": account.name, "error": e.message},
                )
                failures.append(ImportFailure(name=account.name, reason=e.message))
            else:
                success_count += 1

        logger.info(
            "Accounts imported",
            extra={"success_count": success_count, "failed_count": len(failures)},
        )
        return ImportResult(success_count=success_count, failures=failures)

    async def _import_one(self, exported: ExportedAccount) -> Account:
        credentials = credentials_from_map(exported.provider, exported.credentials)
        provider = self._provider_factory(credentials)

        account_id = _new_id()
        with account_context(account_id):
            await self._save_credentials(account_id, credentials, provider)
            self.registry.register(account_id, provider)

            now = _now()
            account = Account(
                id=account_id,
                name=exported.name,
                provider=ProviderType(exported.provider),
                created_at=now,
                updated_at=now,
                status=AccountStatus.ACTIVE,
            )
            await self.account_repository.save(account)
        return account

    # -------------------------------------------------------------------------
    # Startup
    # -------------------------------------------------------------------------

    async def restore_accounts(self) -> RestoreResult:
        """Rebuild live providers for all stored accounts.

        Credentials are not re-validated against the vendors. Accounts whose
        credentials are missing, unreadable or malformed are marked Error and
        skipped; if the credential store cannot be read at all, every account
        is marked Error with that failure.

        Returns:
            Number of restored and failed accounts.
        """
        accounts = await self.account_repository.find_all()

        try:
            all_credentials = await self.credential_store.load_all()
        except ZonekeeperError as e:
            logger.error("Failed to load credentials", extra={"error": e.message})
            for account in accounts:
                await self.account_repository.update_status(account.id, AccountStatus.ERROR, e.message)
            return RestoreResult(success_count=0, error_count=len(accounts))

        success_count = 0
        error_count = 0
        for account in accounts:
            with account_context(account.id):
                error = await self._restore_one(account, all_credentials.get(account.id))

            if error is None:
                success_count += 1
            else:
                error_count += 1

        logger.info(
            "Accounts restored",
            extra={"success_count": success_count, "error_count": error_count},
        )
        return RestoreResult(success_count=success_count, error_count=error_count)

    async def _missing_credentials_reason(self, account_id: str) -> tuple[str, dict[str, str] | None]:
        """Explain why an account is absent from the bulk credential load.

        Returns:
            Tuple of (reason, credentials). Credentials are set when the entry
            turns out to be readable on its own.
        """
        try:
            return "", await self.credential_store.load(account_id)
        except UnreadableCredentialsError as e:
            return e.message, None
        except CredentialError:
            return CREDENTIALS_MISSING, None

    async def _restore_one(self, account: Account, raw: dict[str, str] | None) -> str | None:
        """Restore one account. Returns the failure reason, or None on success."""
        if raw is None:
            reason, raw = await self._missing_credentials_reason(account.id)

        if raw is not None:
            try:
                provider = self._provider_factory(credentials_from_map(account.provider, raw))
            except ZonekeeperError as e:
                reason = e.message
            else:
                previous = self.registry.register(account.id, provider)
                if previous is not None:
                    await previous.aclose()
                await self.account_repository.update_status(account.id, AccountStatus.ACTIVE, None)
                return None

        logger.warning("Failed to restore account", extra={"error": reason})
        await self.account_repository.update_status(account.id, AccountStatus.ERROR, reason)
        return reason
