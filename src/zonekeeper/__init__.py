"""Zonekeeper - multi-vendor DNS account management with encrypted credentials."""

from zonekeeper.accounts import AccountService
from zonekeeper.dns import DnsService
from zonekeeper.providers import create_provider, get_all_provider_metadata
from zonekeeper.registry import ProviderRegistry
from zonekeeper.stores import (
    AccountRepository,
    CredentialStore,
    EncryptingCredentialStore,
    InMemoryAccountRepository,
    InMemoryCredentialStore,
)

__all__ = [
    "AccountRepository",
    "AccountService",
    "CredentialStore",
    "DnsService",
    "EncryptingCredentialStore",
    "InMemoryAccountRepository",
    "InMemoryCredentialStore",
    "ProviderRegistry",
    "create_provider",
    "get_all_provider_metadata",
]
__version__ = "0.1.0"
