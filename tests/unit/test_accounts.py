"""Unit tests for AccountService."""

import json
import logging
from datetime import datetime, timezone

import httpx
import pytest
import respx
from conftest import (
    ALIYUN_CREDENTIALS,
    CLOUDFLARE_CREDENTIALS,
    DNSPOD_CREDENTIALS,
    HUAWEICLOUD_CREDENTIALS,
    FakeProvider,
)

from zonekeeper.accounts import CREDENTIALS_MISSING, AccountService
from zonekeeper.credentials import credentials_from_map
from zonekeeper.crypto import FixedKeyCipher, encrypt
from zonekeeper.exceptions import (
    AccountNotFoundError,
    CredentialError,
    CredentialValidationError,
    DecryptionError,
    ImportExportError,
    InvalidCredentialsError,
    NetworkError,
    NoAccountsSelectedError,
    UnsupportedFileVersionError,
    ValidationError,
)
from zonekeeper.models import (
    Account,
    AccountStatus,
    CreateAccountRequest,
    ExportAccountsRequest,
    ImportAccountsRequest,
    PaginationParams,
    ProviderType,
    UpdateAccountRequest,
)
from zonekeeper.stores import EncryptingCredentialStore, InMemoryCredentialStore

CREATED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _exported(name, provider, credentials):
    return {
        "id": f"old-{name}",
        "name": name,
        "provider": provider,
        "createdAt": "2024-01-01T00:00:00Z",
        "updatedAt": "2024-01-01T00:00:00Z",
        "credentials": credentials,
    }


def _export_file(data, version=1, encrypted=False, **header):
    return json.dumps(
        {
            "header": {
                "version": version,
                "encrypted": encrypted,
                "exportedAt": "2024-01-01T00:00:00+00:00",
                "appVersion": "1.0.0",
                **header,
            },
            "data": data,
        }
    )


async def _create(service, name="main", provider=ProviderType.CLOUDFLARE, credentials=CLOUDFLARE_CREDENTIALS):
    return await service.create_account(CreateAccountRequest(name=name, provider=provider, credentials=credentials))


class TestCreateAccount:
    """Tests for AccountService.create_account()."""

    @pytest.mark.asyncio
    async def test_creates_and_registers(
        self, account_service, credential_store, account_repository, registry, provider_factory
    ):
        """A validated account is stored, registered and Active."""
        account = await _create(account_service)

        assert account.status == AccountStatus.ACTIVE
        assert account.provider == ProviderType.CLOUDFLARE
        assert await credential_store.load(account.id) == CLOUDFLARE_CREDENTIALS
        assert await account_repository.find_by_id(account.id) == account
        assert registry.get(account.id) is provider_factory.created[0]

    @pytest.mark.asyncio
    async def test_extra_credential_keys_not_stored(self, account_service, credential_store):
        """Only the vendor's own credential keys are persisted."""
        account = await _create(account_service, credentials={**CLOUDFLARE_CREDENTIALS, "note": "x"})

        assert await credential_store.load(account.id) == CLOUDFLARE_CREDENTIALS

    @pytest.mark.asyncio
    async def test_rejected_credentials_persist_nothing(
        self, account_service, credential_store, account_repository, registry, provider_factory
    ):
        """Credentials the vendor rejects leave no trace and the provider is closed."""
        provider_factory.reject()

        with pytest.raises(InvalidCredentialsError):
            await _create(account_service)

        assert await credential_store.load_all() == {}
        assert await account_repository.find_all() == []
        assert len(registry) == 0
        assert provider_factory.created[0].closed

    @pytest.mark.asyncio
    async def test_network_error_propagates(self, account_service, account_repository, provider_factory):
        """Validation failures other than rejection propagate unchanged."""
        provider_factory.fail_with(NetworkError("cloudflare", "timed out"))

        with pytest.raises(NetworkError):
            await _create(account_service)

        assert await account_repository.find_all() == []
        assert provider_factory.created[0].closed

    @pytest.mark.asyncio
    async def test_malformed_credentials(self, account_service, provider_factory):
        """Missing fields are rejected before any provider is built."""
        with pytest.raises(CredentialValidationError, match="secretKey"):
            await _create(account_service, provider=ProviderType.DNSPOD, credentials={"secretId": "id"})

        assert provider_factory.created == []

    @pytest.mark.asyncio
    async def test_logs_creation(self, account_service, log_capture):
        """Account creation is logged with the account id."""
        account = await _create(account_service)

        records = [r for r in log_capture.get_records(logging.INFO) if r.getMessage() == "Account created"]
        assert records[0].account_id == account.id


class TestQueries:
    """Tests for account queries."""

    @pytest.mark.asyncio
    async def test_list_and_get(self, account_service):
        """Created accounts are listed and retrievable."""
        first = await _create(account_service, "first")
        second = await _create(account_service, "second", ProviderType.ALIYUN, ALIYUN_CREDENTIALS)

        assert [a.id for a in await account_service.list_accounts()] == [first.id, second.id]
        assert (await account_service.get_account(second.id)).name == "second"

    @pytest.mark.asyncio
    async def test_get_unknown(self, account_service):
        """Unknown ids raise AccountNotFoundError."""
        with pytest.raises(AccountNotFoundError, match="Account not found: nope"):
            await account_service.get_account("nope")

    def test_list_providers(self, account_service):
        """All four vendors are listed."""
        assert {m.id for m in account_service.list_providers()} == set(ProviderType)


class TestUpdateAccount:
    """Tests for AccountService.update_account()."""

    @pytest.mark.asyncio
    async def test_rename_only(self, account_service, registry):
        """Renaming keeps the live provider."""
        account = await _create(account_service)
        provider = registry.get(account.id)

        updated = await account_service.update_account(UpdateAccountRequest(id=account.id, name="renamed"))

        assert updated.name == "renamed"
        assert registry.get(account.id) is provider
        assert (await account_service.get_account(account.id)).name == "renamed"

    @pytest.mark.asyncio
    async def test_new_credentials_swap_provider(
        self, account_service, account_repository, credential_store, registry, provider_factory
    ):
        """New credentials are validated, stored and replace the provider; the old one is closed."""
        account = await _create(account_service)
        old = registry.get(account.id)
        await account_repository.update_status(account.id, AccountStatus.ERROR, "broken")

        updated = await account_service.update_account(
            UpdateAccountRequest(id=account.id, credentials={"apiToken": "new-token"})
        )

        assert old.closed
        assert registry.get(account.id) is provider_factory.created[-1]
        assert await credential_store.load(account.id) == {"apiToken": "new-token"}
        assert updated.status == AccountStatus.ACTIVE
        assert updated.error is None

    @pytest.mark.asyncio
    async def test_rejected_credentials_keep_old(self, account_service, credential_store, registry, provider_factory):
        """Rejected credentials leave the stored ones and the provider untouched."""
        account = await _create(account_service)
        old = registry.get(account.id)
        provider_factory.reject()

        with pytest.raises(InvalidCredentialsError):
            await account_service.update_account(
                UpdateAccountRequest(id=account.id, credentials={"apiToken": "bad"})
            )

        assert registry.get(account.id) is old
        assert not old.closed
        assert await credential_store.load(account.id) == CLOUDFLARE_CREDENTIALS

    @pytest.mark.asyncio
    async def test_unknown_account(self, account_service):
        """Updating an unknown account raises AccountNotFoundError."""
        with pytest.raises(AccountNotFoundError):
            await account_service.update_account(UpdateAccountRequest(id="nope", name="x"))


class TestDeleteAccount:
    """Tests for account deletion."""

    @pytest.mark.asyncio
    async def test_delete(self, account_service, credential_store, account_repository, registry):
        """Delete removes the provider, credentials and metadata."""
        account = await _create(account_service)
        provider = registry.get(account.id)

        await account_service.delete_account(account.id)

        assert provider.closed
        assert registry.get(account.id) is None
        assert await credential_store.load_all() == {}
        assert await account_repository.find_by_id(account.id) is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_held_provider_after_delete(self, credential_store, account_repository, registry):
        """A caller still holding a deleted account's provider gets a NetworkError."""
        respx.get("https://api.cloudflare.com/client/v4/user/tokens/verify").mock(
            return_value=httpx.Response(
                200,
                json={"success": True, "errors": [], "messages": [], "result": {"id": "tok", "status": "active"}},
            )
        )
        service = AccountService(credential_store, account_repository, registry, app_version="9.9.9")
        account = await _create(service)
        held = registry.get(account.id)

        await service.delete_account(account.id)

        with pytest.raises(NetworkError, match="client closed"):
            await held.list_domains(PaginationParams())

    @pytest.mark.asyncio
    async def test_delete_unknown(self, account_service):
        """Deleting an unknown account raises AccountNotFoundError."""
        with pytest.raises(AccountNotFoundError):
            await account_service.delete_account("nope")

    @pytest.mark.asyncio
    async def test_credential_delete_failure_tolerated(self, account_service, account_repository, log_capture):
        """A failing credential delete is logged and the account is still removed."""
        account = await _create(account_service)

        class BrokenDelete(InMemoryCredentialStore):
            async def delete(self, account_id):
                raise CredentialError("keychain locked")

        account_service.credential_store = BrokenDelete()

        await account_service.delete_account(account.id)

        assert await account_repository.find_by_id(account.id) is None
        assert "Failed to delete credentials" in log_capture.get_messages(logging.WARNING)

    @pytest.mark.asyncio
    async def test_batch_delete(self, account_service):
        """Batch delete reports per-account failures."""
        first = await _create(account_service, "first")
        second = await _create(account_service, "second")

        result = await account_service.batch_delete_accounts([first.id, "missing", second.id])

        assert result.success_count == 2
        assert result.failed_count == 1
        assert result.failures[0].id == "missing"
        assert result.failures[0].reason == "Account not found: missing"
        assert await account_service.list_accounts() == []


class TestExportAccounts:
    """Tests for AccountService.export_accounts()."""

    @pytest.mark.asyncio
    async def test_plain_export(self, account_service):
        """A plain export carries a header and the accounts with credentials under new ids."""
        account = await _create(account_service, "main", ProviderType.ALIYUN, ALIYUN_CREDENTIALS)

        response = await account_service.export_accounts(ExportAccountsRequest(account_ids=[account.id]))

        exported = json.loads(response.content)
        assert exported["header"]["version"] == 1
        assert exported["header"]["encrypted"] is False
        assert exported["header"]["appVersion"] == "9.9.9"
        assert "salt" not in exported["header"]
        [item] = exported["data"]
        assert item["id"] != account.id
        assert item["name"] == "main"
        assert item["provider"] == "aliyun"
        assert item["credentials"] == ALIYUN_CREDENTIALS
        assert response.suggested_filename.startswith("zonekeeper-backup-")
        assert response.suggested_filename.endswith(".json")

    @pytest.mark.asyncio
    async def test_nothing_selected(self, account_service):
        """An empty selection raises NoAccountsSelectedError."""
        with pytest.raises(NoAccountsSelectedError):
            await account_service.export_accounts(ExportAccountsRequest(account_ids=[]))

    @pytest.mark.asyncio
    async def test_only_unknown_ids(self, account_service, log_capture):
        """A selection that matches no existing account raises NoAccountsSelectedError."""
        await _create(account_service)

        with pytest.raises(NoAccountsSelectedError):
            await account_service.export_accounts(ExportAccountsRequest(account_ids=["ghost-1", "ghost-2"]))

        assert log_capture.get_messages(logging.WARNING) == ["Skipping unknown account in export"] * 2

    @pytest.mark.asyncio
    async def test_encrypt_requires_password(self, account_service):
        """Encryption without a password is a validation error."""
        account = await _create(account_service)

        with pytest.raises(ValidationError, match="Password is required"):
            await account_service.export_accounts(ExportAccountsRequest(account_ids=[account.id], encrypt=True))

    @pytest.mark.asyncio
    async def test_skips_unknown_and_credentialless(self, account_service, credential_store, log_capture):
        """Unknown accounts and accounts without credentials are skipped."""
        kept = await _create(account_service, "kept")
        lost = await _create(account_service, "lost")
        await credential_store.delete(lost.id)

        response = await account_service.export_accounts(
            ExportAccountsRequest(account_ids=[kept.id, lost.id, "ghost"])
        )

        assert [a["name"] for a in json.loads(response.content)["data"]] == ["kept"]
        assert len(log_capture.get_records(logging.WARNING)) == 2

    @pytest.mark.asyncio
    async def test_encrypted_export(self, account_service):
        """Encrypted exports hide the account data in a base64 string."""
        account = await _create(account_service)

        response = await account_service.export_accounts(
            ExportAccountsRequest(account_ids=[account.id], encrypt=True, password="hunter2")
        )

        exported = json.loads(response.content)
        assert exported["header"]["encrypted"] is True
        assert isinstance(exported["data"], str)
        assert "cf-token" not in response.content


class TestImportAccounts:
    """Tests for preview_import() and import_accounts()."""

    @pytest.mark.asyncio
    async def test_export_import_round_trip(self, account_service, credential_store, registry):
        """An exported account imports under a new id with the same credentials."""
        original = await _create(account_service, "main", ProviderType.HUAWEICLOUD, HUAWEICLOUD_CREDENTIALS)
        response = await account_service.export_accounts(ExportAccountsRequest(account_ids=[original.id]))

        result = await account_service.import_accounts(ImportAccountsRequest(content=response.content))

        assert result.success_count == 1
        assert result.failures == []
        accounts = await account_service.list_accounts()
        [imported] = [a for a in accounts if a.id != original.id]
        assert imported.name == "main"
        assert imported.provider == ProviderType.HUAWEICLOUD
        assert await credential_store.load(imported.id) == HUAWEICLOUD_CREDENTIALS
        assert imported.id in registry

    @pytest.mark.asyncio
    async def test_encrypted_round_trip(self, account_service, credential_store):
        """An encrypted export imports with the right password."""
        original = await _create(account_service, "main", ProviderType.DNSPOD, DNSPOD_CREDENTIALS)
        response = await account_service.export_accounts(
            ExportAccountsRequest(account_ids=[original.id], encrypt=True, password="hunter2")
        )

        result = await account_service.import_accounts(
            ImportAccountsRequest(content=response.content, password="hunter2")
        )

        assert result.success_count == 1
        stored = await credential_store.load_all()
        assert list(stored.values()) == [DNSPOD_CREDENTIALS, DNSPOD_CREDENTIALS]

    @pytest.mark.asyncio
    async def test_encrypted_wrong_password(self, account_service, account_repository):
        """A wrong password raises DecryptionError and imports nothing."""
        original = await _create(account_service)
        response = await account_service.export_accounts(
            ExportAccountsRequest(account_ids=[original.id], encrypt=True, password="hunter2")
        )

        with pytest.raises(DecryptionError):
            await account_service.import_accounts(ImportAccountsRequest(content=response.content, password="nope"))

        assert len(await account_repository.find_all()) == 1

    @pytest.mark.asyncio
    async def test_encrypted_without_password(self, account_service):
        """Importing an encrypted file without a password is a validation error."""
        original = await _create(account_service)
        response = await account_service.export_accounts(
            ExportAccountsRequest(account_ids=[original.id], encrypt=True, password="hunter2")
        )

        with pytest.raises(ValidationError, match="Password is required"):
            await account_service.import_accounts(ImportAccountsRequest(content=response.content))

    @pytest.mark.asyncio
    async def test_split_layout(self, account_service, credential_store):
        """Files carrying salt and nonce in the header are also accepted."""
        payload = json.dumps([_exported("legacy", "cloudflare", CLOUDFLARE_CREDENTIALS)]).encode()
        blob = encrypt(payload, "hunter2")
        content = _export_file(blob.ciphertext, encrypted=True, salt=blob.salt, nonce=blob.nonce)

        result = await account_service.import_accounts(ImportAccountsRequest(content=content, password="hunter2"))

        assert result.success_count == 1
        assert list((await credential_store.load_all()).values()) == [CLOUDFLARE_CREDENTIALS]

    @pytest.mark.asyncio
    async def test_partial_failure(self, account_service, account_repository):
        """A bad account fails alone; the others are imported."""
        content = _export_file(
            [
                _exported("good-1", "cloudflare", CLOUDFLARE_CREDENTIALS),
                _exported("bad", "dnspod", {"secretId": "only-id"}),
                _exported("good-2", "aliyun", ALIYUN_CREDENTIALS),
            ]
        )

        result = await account_service.import_accounts(ImportAccountsRequest(content=content))

        assert result.success_count == 2
        assert [f.name for f in result.failures] == ["bad"]
        assert "secretKey" in result.failures[0].reason
        assert sorted(a.name for a in await account_repository.find_all()) == ["good-1", "good-2"]

    @pytest.mark.asyncio
    async def test_unknown_vendor_fails_one_account(self, account_service):
        """An unknown vendor tag fails only that account."""
        content = _export_file(
            [
                _exported("r53", "route53", {"key": "x"}),
                _exported("cf", "cloudflare", CLOUDFLARE_CREDENTIALS),
            ]
        )

        result = await account_service.import_accounts(ImportAccountsRequest(content=content))

        assert result.success_count == 1
        assert result.failures[0].reason == "Unsupported provider: route53"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("version", [0, 2])
    async def test_unsupported_version(self, account_service, account_repository, version):
        """Unknown file versions are rejected before anything is imported."""
        content = _export_file([_exported("cf", "cloudflare", CLOUDFLARE_CREDENTIALS)], version=version)

        with pytest.raises(UnsupportedFileVersionError):
            await account_service.import_accounts(ImportAccountsRequest(content=content))
        with pytest.raises(UnsupportedFileVersionError):
            await account_service.preview_import(content)

        assert await account_repository.find_all() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["not json", "{}", '{"header": {"version": 1}}'])
    async def test_not_an_export_file(self, account_service, content):
        """Content that is not an export file raises ImportExportError."""
        with pytest.raises(ImportExportError):
            await account_service.import_accounts(ImportAccountsRequest(content=content))

    @pytest.mark.asyncio
    async def test_malformed_account_list(self, account_service):
        """An account list with the wrong shape raises ImportExportError."""
        with pytest.raises(ImportExportError):
            await account_service.import_accounts(ImportAccountsRequest(content=_export_file([{"name": "x"}])))

    @pytest.mark.asyncio
    async def test_preview_conflicts(self, account_service, account_repository, credential_store):
        """Preview flags name conflicts and persists nothing."""
        await _create(account_service, "main")
        content = _export_file(
            [
                _exported("main", "cloudflare", CLOUDFLARE_CREDENTIALS),
                _exported("other", "aliyun", ALIYUN_CREDENTIALS),
            ]
        )

        preview = await account_service.preview_import(content)

        assert preview.encrypted is False
        assert preview.account_count == 2
        assert [(a.name, a.has_conflict) for a in preview.accounts] == [("main", True), ("other", False)]
        assert len(await account_repository.find_all()) == 1
        assert len(await credential_store.load_all()) == 1

    @pytest.mark.asyncio
    async def test_preview_encrypted_without_password(self, account_service):
        """An encrypted file previews as encrypted with no details."""
        original = await _create(account_service)
        response = await account_service.export_accounts(
            ExportAccountsRequest(account_ids=[original.id], encrypt=True, password="hunter2")
        )

        preview = await account_service.preview_import(response.content)

        assert preview.encrypted is True
        assert preview.account_count == 0
        assert preview.accounts is None

    @pytest.mark.asyncio
    async def test_preview_encrypted_with_password(self, account_service):
        """With the password, an encrypted preview lists the accounts."""
        original = await _create(account_service, "main")
        response = await account_service.export_accounts(
            ExportAccountsRequest(account_ids=[original.id], encrypt=True, password="hunter2")
        )

        preview = await account_service.preview_import(response.content, password="hunter2")

        assert preview.account_count == 1
        assert preview.accounts[0].has_conflict is True


class TestRestoreAccounts:
    """Tests for AccountService.restore_accounts()."""

    async def _seed(self, account_repository, credential_store, account_id, provider, credentials):
        await account_repository.save(
            Account(id=account_id, name=account_id, provider=provider, created_at=CREATED, updated_at=CREATED)
        )
        if credentials is not None:
            await credential_store.save(account_id, credentials)

    @pytest.mark.asyncio
    async def test_restore_is_resilient(self, account_service, account_repository, credential_store, registry):
        """Accounts with missing or malformed credentials fail alone."""
        await self._seed(account_repository, credential_store, "ok", ProviderType.CLOUDFLARE, CLOUDFLARE_CREDENTIALS)
        await self._seed(account_repository, credential_store, "missing", ProviderType.ALIYUN, None)
        await self._seed(account_repository, credential_store, "malformed", ProviderType.DNSPOD, {"secretId": "x"})

        result = await account_service.restore_accounts()

        assert result.success_count == 1
        assert result.error_count == 2
        assert registry.account_ids() == ["ok"]

        missing = await account_repository.find_by_id("missing")
        assert missing.status == AccountStatus.ERROR
        assert missing.error == CREDENTIALS_MISSING

        malformed = await account_repository.find_by_id("malformed")
        assert malformed.status == AccountStatus.ERROR
        assert "secretKey" in malformed.error

        assert (await account_repository.find_by_id("ok")).status == AccountStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_restore_does_not_validate_online(self, account_service, account_repository, credential_store, provider_factory):
        """Restore builds providers without calling the vendor."""
        provider_factory.reject()
        await self._seed(account_repository, credential_store, "ok", ProviderType.CLOUDFLARE, CLOUDFLARE_CREDENTIALS)

        result = await account_service.restore_accounts()

        assert result.success_count == 1

    @pytest.mark.asyncio
    async def test_restore_clears_previous_error(self, account_service, account_repository, credential_store):
        """A restored account goes back to Active without an error."""
        await self._seed(account_repository, credential_store, "ok", ProviderType.CLOUDFLARE, CLOUDFLARE_CREDENTIALS)
        await account_repository.update_status("ok", AccountStatus.ERROR, "old failure")

        await account_service.restore_accounts()

        account = await account_repository.find_by_id("ok")
        assert account.status == AccountStatus.ACTIVE
        assert account.error is None

    @pytest.mark.asyncio
    async def test_restore_replaces_live_provider(self, account_service, account_repository, credential_store, registry):
        """Restoring over a live provider closes the old one."""
        await self._seed(account_repository, credential_store, "ok", ProviderType.CLOUDFLARE, CLOUDFLARE_CREDENTIALS)
        old = FakeProvider(credentials_from_map("cloudflare", CLOUDFLARE_CREDENTIALS))
        registry.register("ok", old)

        await account_service.restore_accounts()

        assert old.closed
        assert registry.get("ok") is not old

    @pytest.mark.asyncio
    async def test_unreadable_store_marks_all_failed(self, account_service, account_repository, credential_store):
        """If the credential store cannot be read, every account is marked Error."""
        await self._seed(account_repository, credential_store, "a", ProviderType.CLOUDFLARE, CLOUDFLARE_CREDENTIALS)
        await self._seed(account_repository, credential_store, "b", ProviderType.ALIYUN, ALIYUN_CREDENTIALS)

        class LockedStore(InMemoryCredentialStore):
            async def load_all(self):
                raise CredentialError("keychain locked")

        account_service.credential_store = LockedStore()

        result = await account_service.restore_accounts()

        assert result.success_count == 0
        assert result.error_count == 2
        for account in await account_repository.find_all():
            assert account.status == AccountStatus.ERROR
            assert account.error == "keychain locked"

    @pytest.mark.asyncio
    async def test_unreadable_entry_fails_only_its_account(self, account_service, account_repository, registry):
        """An entry that does not decrypt marks only its own account Error."""
        inner = InMemoryCredentialStore()
        store = EncryptingCredentialStore(inner, FixedKeyCipher.from_hex_key(FixedKeyCipher.generate_key()))
        account_service.credential_store = store
        for i in range(3):
            await self._seed(account_repository, store, f"a{i}", ProviderType.CLOUDFLARE, CLOUDFLARE_CREDENTIALS)
        sealed = await inner.load("a1")
        await inner.save("a1", {**sealed, "ciphertext": (await inner.load("a0"))["ciphertext"]})

        result = await account_service.restore_accounts()

        assert result.success_count == 2
        assert result.error_count == 1
        assert sorted(registry.account_ids()) == ["a0", "a2"]

        broken = await account_repository.find_by_id("a1")
        assert broken.status == AccountStatus.ERROR
        assert broken.error.startswith("Stored credentials for account a1 are unreadable")
        for account_id in ("a0", "a2"):
            account = await account_repository.find_by_id(account_id)
            assert account.status == AccountStatus.ACTIVE
            assert account.error is None


class FailingSaveStore(InMemoryCredentialStore):
    async def save(self, account_id, credentials):
        raise CredentialError("keychain locked")


class TestCredentialSaveFailure:
    """A failing credential save closes the provider built for it."""

    @pytest.mark.asyncio
    async def test_create(self, account_service, account_repository, registry, provider_factory):
        account_service.credential_store = FailingSaveStore()

        with pytest.raises(CredentialError, match="keychain locked"):
            await _create(account_service)

        assert provider_factory.created[0].closed
        assert len(registry) == 0
        assert await account_repository.find_all() == []

    @pytest.mark.asyncio
    async def test_update(self, account_service, registry, provider_factory):
        account = await _create(account_service)
        account_service.credential_store = FailingSaveStore()

        with pytest.raises(CredentialError):
            await account_service.update_account(
                UpdateAccountRequest(id=account.id, credentials={"apiToken": "new-token"})
            )

        old, new = provider_factory.created
        assert new.closed
        assert not old.closed
        assert registry.get(account.id) is old

    @pytest.mark.asyncio
    async def test_import(self, account_service, provider_factory):
        """Each failed import closes its provider and is reported as a failure."""
        account_service.credential_store = FailingSaveStore()
        content = _export_file(
            [
                _exported("one", "cloudflare", CLOUDFLARE_CREDENTIALS),
                _exported("two", "dnspod", DNSPOD_CREDENTIALS),
            ]
        )

        result = await account_service.import_accounts(ImportAccountsRequest(content=content))

        assert result.success_count == 0
        assert [f.reason for f in result.failures] == ["keychain locked", "keychain locked"]
        assert len(provider_factory.created) == 2
        assert all(provider.closed for provider in provider_factory.created)
