"""In-memory index of live provider instances, keyed by account id."""

import threading

from zonekeeper._logging import get_logger
from zonekeeper.providers.base import DnsProvider

logger = get_logger(__name__)


class ProviderRegistry:
    """Thread-safe map of account id to provider.

    Registering an id that is already present swaps the instance in a single
    step; readers see either the old or the new provider, never neither.
    Nothing is persisted: the registry is rebuilt at startup by
    ``AccountService.restore_accounts``.
    """

    def __init__(self) -> None:
        self._providers: dict[str, DnsProvider] = {}
        self._lock = threading.Lock()

    def register(self, account_id: str, provider: DnsProvider) -> DnsProvider | None:
        """Register a provider, replacing any previous one for the account.

        Returns:
            The replaced provider, or None.
        """
        with self._lock:
            previous = self._providers.get(account_id)
            self._providers[account_id] = provider
        logger.debug(
            "Provider registered",
            extra={"account_id": account_id, "provider": provider.provider_name, "replaced": previous is not None},
        )
        return previous

    def unregister(self, account_id: str) -> DnsProvider | None:
        """Remove an account's provider.

        Returns:
            The removed provider, or None if none was registered.
        """
        with self._lock:
            provider = self._providers.pop(account_id, None)
        if provider is not None:
            logger.debug("Provider unregistered", extra={"account_id": account_id})
        return provider

    def get(self, account_id: str) -> DnsProvider | None:
        with self._lock:
            return self._providers.get(account_id)

    def account_ids(self) -> list[str]:
        with self._lock:
            return list(self._providers)

    def __contains__(self, account_id: object) -> bool:
        with self._lock:
            return account_id in self._providers

    def __len__(self) -> int:
        with self._lock:
            return len(self._providers)
