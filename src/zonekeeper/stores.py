"""Persistence collaborators for accounts and credentials.

The account service only depends on the two abstract stores below. Concrete
backends (OS keychain, database, mobile sandbox) live outside this package;
the in-memory implementations here are for tests and for embedding.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from zonekeeper._logging import get_logger
from zonekeeper.crypto import EncryptedBlob, FixedKeyCipher
from zonekeeper.exceptions import (
    AccountNotFoundError,
    CredentialError,
    DecryptionError,
    EncodingError,
    UnreadableCredentialsError,
)
from zonekeeper.models import Account, AccountStatus

logger = get_logger(__name__)


class CredentialStore(ABC):
    """Stores one raw credential map per account id."""

    @abstractmethod
    async def save(self, account_id: str, credentials: dict[str, str]) -> None:
        """Store (or replace) an account's credentials."""
        ...

    @abstractmethod
    async def load(self, account_id: str) -> dict[str, str]:
        """Load an account's credentials.

        Raises:
            CredentialError: If nothing is stored for the account.
        """
        ...

    @abstractmethod
    async def delete(self, account_id: str) -> None:
        """Delete an account's credentials. Deleting a missing entry is a no-op."""
        ...

    @abstractmethod
    async def load_all(self) -> dict[str, dict[str, str]]:
        """Load every stored credential map, keyed by account id.

        Stores may leave out entries that exist but cannot be read; ``load()``
        on those raises ``UnreadableCredentialsError``.

        Raises:
            CredentialError: If the store cannot be read.
        """
        ...


class AccountRepository(ABC):
    """Stores account metadata (never credentials)."""

    @abstractmethod
    async def find_all(self) -> list[Account]:
        ...

    @abstractmethod
    async def find_by_id(self, account_id: str) -> Account | None:
        ...

    @abstractmethod
    async def save(self, account: Account) -> None:
        """Insert or replace an account."""
        ...

    @abstractmethod
    async def delete(self, account_id: str) -> None:
        """Delete an account.

        Raises:
            AccountNotFoundError: If the account does not exist.
        """
        ...

    @abstractmethod
    async def save_all(self, accounts: list[Account]) -> None:
        ...

    @abstractmethod
    async def update_status(self, account_id: str, status: AccountStatus, error: str | None = None) -> None:
        """Set an account's status and error message.

        Raises:
            AccountNotFoundError: If the account does not exist.
        """
        ...


class InMemoryCredentialStore(CredentialStore):
    """Dict-backed credential store. Returns copies so stored maps stay private."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, str]] = {}
        self._lock = asyncio.Lock()

    async def save(self, account_id: str, credentials: dict[str, str]) -> None:
        async with self._lock:
            self._data[account_id] = dict(credentials)

    async def load(self, account_id: str) -> dict[str, str]:
        async with self._lock:
            if account_id not in self._data:
                raise CredentialError(f"No credentials stored for account {account_id}")
            return dict(self._data[account_id])

    async def delete(self, account_id: str) -> None:
        async with self._lock:
            self._data.pop(account_id, None)

    async def load_all(self) -> dict[str, dict[str, str]]:
        async with self._lock:
            return {account_id: dict(creds) for account_id, creds in self._data.items()}


class InMemoryAccountRepository(AccountRepository):
    """Dict-backed account repository, ordered by insertion."""

    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}
        self._lock = asyncio.Lock()

    async def find_all(self) -> list[Account]:
        async with self._lock:
            return [account.model_copy() for account in self._accounts.values()]

    async def find_by_id(self, account_id: str) -> Account | None:
        async with self._lock:
            account = self._accounts.get(account_id)
            return account.model_copy() if account else None

    async def save(self, account: Account) -> None:
        async with self._lock:
            self._accounts[account.id] = account.model_copy()

    async def delete(self, account_id: str) -> None:
        async with self._lock:
            if self._accounts.pop(account_id, None) is None:
                raise AccountNotFoundError(account_id)

    async def save_all(self, accounts: list[Account]) -> None:
        async with self._lock:
            for account in accounts:
                self._accounts[account.id] = account.model_copy()

    async def update_status(self, account_id: str, status: AccountStatus, error: str | None = None) -> None:
        async with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            self._accounts[account_id] = account.model_copy(
                update={"status": status, "error": error, "updated_at": datetime.now(timezone.utc)}
            )


class EncryptingCredentialStore(CredentialStore):
    """Encrypts credential maps at rest on top of another store.

    Each map is serialized to JSON and sealed with the operator key; the
    inner store only ever sees ``{"salt", "nonce", "ciphertext"}`` maps.

    Args:
        inner: Store that persists the sealed maps.
        cipher: Cipher holding the operator-managed key.
    """

    def __init__(self, inner: CredentialStore, cipher: FixedKeyCipher):
        self._inner = inner
        self._cipher = cipher

    def _seal(self, credentials: dict[str, str]) -> dict[str, str]:
        return self._cipher.encrypt_blob(json.dumps(credentials)).model_dump()

    def _open(self, account_id: str, sealed: dict[str, str]) -> dict[str, str]:
        try:
            blob = EncryptedBlob.model_validate(sealed)
            return json.loads(self._cipher.decrypt_blob(blob))
        except (DecryptionError, EncodingError, ValueError) as e:
            logger.error("Stored credentials could not be decrypted", extra={"account_id": account_id})
            raise UnreadableCredentialsError(account_id, str(e)) from e

    async def save(self, account_id: str, credentials: dict[str, str]) -> None:
        await self._inner.save(account_id, self._seal(credentials))

    async def load(self, account_id: str) -> dict[str, str]:
        return self._open(account_id, await self._inner.load(account_id))

    async def delete(self, account_id: str) -> None:
        await self._inner.delete(account_id)

    async def load_all(self) -> dict[str, dict[str, str]]:
        """Load and decrypt every entry.

        Entries that do not decrypt are left out (and logged) so that one bad
        entry does not hide the others; ``load()`` on such an account raises
        ``UnreadableCredentialsError``.

        Raises:
            CredentialError: If the inner store cannot be read.
        """
        sealed = await self._inner.load_all()
        opened = {}
        for account_id, value in sealed.items():
            try:
                opened[account_id] = self._open(account_id, value)
            except UnreadableCredentialsError:
                continue
        return opened
