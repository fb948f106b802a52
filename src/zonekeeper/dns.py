"""Account-scoped DNS operations on top of the provider registry."""

import asyncio

from zonekeeper._logging import account_context, get_logger
from zonekeeper.exceptions import AccountNotFoundError, ProviderError
from zonekeeper.models import (
    BatchDeleteFailure,
    BatchDeleteRecordsRequest,
    BatchDeleteResult,
    CreateDnsRecordRequest,
    DnsRecord,
    Domain,
    PaginatedResponse,
    PaginationParams,
    RecordQueryParams,
    UpdateDnsRecordRequest,
)
from zonekeeper.providers.base import DnsProvider
from zonekeeper.registry import ProviderRegistry

logger = get_logger(__name__)


class DnsService:
    """Looks up an account's live provider and forwards DNS calls to it.

    Provider errors pass through unchanged.

    Args:
        registry: Registry populated by the account service.
    """

    def __init__(self, registry: ProviderRegistry):
        self.registry = registry

    def _provider(self, account_id: str) -> DnsProvider:
        provider = self.registry.get(account_id)
        if provider is None:
            raise AccountNotFoundError(account_id)
        return provider

    async def list_domains(
        self, account_id: str, params: PaginationParams | None = None
    ) -> PaginatedResponse[Domain]:
        provider = self._provider(account_id)
        with account_context(account_id):
            return await provider.list_domains(params or PaginationParams())

    async def get_domain(self, account_id: str, domain_id: str) -> Domain:
        provider = self._provider(account_id)
        with account_context(account_id):
            return await provider.get_domain(domain_id)

    async def list_records(
        self, account_id: str, domain_id: str, params: RecordQueryParams | None = None
    ) -> PaginatedResponse[DnsRecord]:
        provider = self._provider(account_id)
        with account_context(account_id):
            return await provider.list_records(domain_id, params or RecordQueryParams())

    async def create_record(self, account_id: str, request: CreateDnsRecordRequest) -> DnsRecord:
        provider = self._provider(account_id)
        with account_context(account_id):
            return await provider.create_record(request)

    async def update_record(
        self, account_id: str, record_id: str, request: UpdateDnsRecordRequest
    ) -> DnsRecord:
        provider = self._provider(account_id)
        with account_context(account_id):
            return await provider.update_record(record_id, request)

    async def delete_record(self, account_id: str, record_id: str, domain_id: str) -> None:
        provider = self._provider(account_id)
        with account_context(account_id):
            await provider.delete_record(record_id, domain_id)

    async def batch_delete_records(
        self, account_id: str, request: BatchDeleteRecordsRequest
    ) -> BatchDeleteResult:
        """Delete several records of one domain concurrently.

        Args:
            account_id: Account owning the domain.
            request: Domain and record ids.

        Returns:
            Counts plus one failure entry per record that could not be deleted.

        Raises:
            AccountNotFoundError: If the account has no live provider.
        """
        provider = self._provider(account_id)

        async def delete_one(record_id: str) -> BatchDeleteFailure | None:
            try:
                await provider.delete_record(record_id, request.domain_id)
            except ProviderError as e:
                return BatchDeleteFailure(id=record_id, reason=e.message)
            return None

        with account_context(account_id):
            results = await asyncio.gather(*(delete_one(record_id) for record_id in request.record_ids))

        failures = [failure for failure in results if failure is not None]
        if failures:
            logger.warning(
                "Batch delete finished with failures",
                extra={"account_id": account_id, "failed_count": len(failures)},
            )
        return BatchDeleteResult(
            success_count=len(results) - len(failures),
            failed_count=len(failures),
            failures=failures,
        )
