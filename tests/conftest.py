"""Pytest fixtures for the zonekeeper test suite."""

import logging
import logging.handlers
from collections.abc import Generator

import pytest

from zonekeeper.accounts import AccountService
from zonekeeper.dns import DnsService
from zonekeeper.exceptions import RecordNotFoundError
from zonekeeper.models import (
    CreateDnsRecordRequest,
    DnsRecord,
    Domain,
    DomainStatus,
    PaginatedResponse,
    PaginationParams,
    RecordQueryParams,
    UpdateDnsRecordRequest,
)
from zonekeeper.providers.base import DnsProvider
from zonekeeper.registry import ProviderRegistry
from zonekeeper.stores import InMemoryAccountRepository, InMemoryCredentialStore

CLOUDFLARE_CREDENTIALS = {"apiToken": "cf-token"}
ALIYUN_CREDENTIALS = {"accessKeyId": "LTAI-test", "accessKeySecret": "aliyun-secret"}
DNSPOD_CREDENTIALS = {"secretId": "AKID-test", "secretKey": "dnspod-secret"}
HUAWEICLOUD_CREDENTIALS = {"accessKeyId": "HW-AK", "secretAccessKey": "HW-SK"}


class FakeProvider(DnsProvider):
    """In-memory provider with one zone, ``example.com``.

    Makes no HTTP calls. ``valid`` controls what validate_credentials()
    returns; ``validate_error`` makes it raise instead.
    """

    def __init__(self, credentials, valid: bool = True, validate_error: Exception | None = None):
        self.provider_type = credentials.provider
        self.credentials = credentials
        self.valid = valid
        self.validate_error = validate_error
        self.closed = False
        self.records: dict[str, DnsRecord] = {}
        self._next_id = 1
        self._owns_client = False

    async def aclose(self) -> None:
        self.closed = True

    async def validate_credentials(self) -> bool:
        if self.validate_error is not None:
            raise self.validate_error
        return self.valid

    async def list_domains(self, params: PaginationParams) -> PaginatedResponse[Domain]:
        domains = [Domain(id="zone-1", name="example.com", provider=self.provider_type, status=DomainStatus.ACTIVE)]
        return PaginatedResponse[Domain].build(domains, params, len(domains))

    async def get_domain(self, domain_id: str) -> Domain:
        return Domain(id=domain_id, name="example.com", provider=self.provider_type, status=DomainStatus.ACTIVE)

    async def list_records(self, domain_id: str, params: RecordQueryParams) -> PaginatedResponse[DnsRecord]:
        records = [r for r in self.records.values() if r.domain_id == domain_id]
        return PaginatedResponse[DnsRecord].build(records, params, len(records))

    async def create_record(self, request: CreateDnsRecordRequest) -> DnsRecord:
        record_id = f"rec-{self._next_id}"
        self._next_id += 1
        record = DnsRecord(
            id=record_id,
            domain_id=request.domain_id,
            name=request.name,
            record_type=request.record_type,
            value=request.value,
            ttl=request.ttl,
        )
        self.records[record_id] = record
        return record

    async def update_record(self, record_id: str, request: UpdateDnsRecordRequest) -> DnsRecord:
        if record_id not in self.records:
            raise RecordNotFoundError(self.provider_name, record_id, "no such record")
        record = self.records[record_id].model_copy(update={"value": request.value, "ttl": request.ttl})
        self.records[record_id] = record
        return record

    async def delete_record(self, record_id: str, domain_id: str) -> None:
        if record_id not in self.records:
            raise RecordNotFoundError(self.provider_name, record_id, "no such record")
        del self.records[record_id]


class FakeProviderFactory:
    """Provider factory that builds FakeProviders and remembers them."""

    def __init__(self) -> None:
        self.valid = True
        self.validate_error: Exception | None = None
        self.created: list[FakeProvider] = []

    def __call__(self, credentials) -> FakeProvider:
        provider = FakeProvider(credentials, valid=self.valid, validate_error=self.validate_error)
        self.created.append(provider)
        return provider

    def reject(self) -> None:
        """Make subsequent providers report invalid credentials."""
        self.valid = False

    def fail_with(self, error: Exception) -> None:
        """Make subsequent providers raise on validation."""
        self.validate_error = error


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def account_repository() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture
def registry() -> ProviderRegistry:
    return ProviderRegistry()


@pytest.fixture
def provider_factory() -> FakeProviderFactory:
    return FakeProviderFactory()


@pytest.fixture
def account_service(
    credential_store: InMemoryCredentialStore,
    account_repository: InMemoryAccountRepository,
    registry: ProviderRegistry,
    provider_factory: FakeProviderFactory,
) -> AccountService:
    return AccountService(
        credential_store,
        account_repository,
        registry,
        app_version="9.9.9",
        provider_factory=provider_factory,
    )


@pytest.fixture
def dns_service(registry: ProviderRegistry) -> DnsService:
    return DnsService(registry)


class LogCapture:
    """Helper class to capture and inspect log records."""

    def __init__(self, handler: logging.handlers.MemoryHandler) -> None:
        self._handler = handler

    @property
    def records(self) -> list[logging.LogRecord]:
        """Get all captured log records."""
        return self._handler.buffer

    def get_records(
        self, level: int | None = None, name: str | None = None
    ) -> list[logging.LogRecord]:
        """Get log records filtered by level and/or logger name prefix.

        Args:
            level: Filter by log level (e.g., logging.INFO).
            name: Filter by logger name prefix (e.g., "zonekeeper.accounts").

        Returns:
            List of matching log records.
        """
        records = self.records
        if level is not None:
            records = [r for r in records if r.levelno == level]
        if name is not None:
            records = [r for r in records if r.name.startswith(name)]
        return records

    def get_messages(self, level: int | None = None, name: str | None = None) -> list[str]:
        """Get formatted log messages filtered by level and/or logger name prefix."""
        return [r.getMessage() for r in self.get_records(level, name)]

    def clear(self) -> None:
        """Clear all captured log records."""
        self._handler.buffer.clear()


@pytest.fixture
def log_capture() -> Generator[LogCapture]:
    """Capture logs from the zonekeeper package during a test.

    Usage:
        async def test_something(log_capture):
            await service.create_account(request)
            assert "Account created" in log_capture.get_messages(logging.INFO)
    """
    handler = logging.handlers.MemoryHandler(capacity=1000)
    handler.setLevel(logging.DEBUG)

    package_logger = logging.getLogger("zonekeeper")
    original_level = package_logger.level
    package_logger.setLevel(logging.DEBUG)
    package_logger.addHandler(handler)

    try:
        yield LogCapture(handler)
    finally:
        package_logger.removeHandler(handler)
        package_logger.setLevel(original_level)
        handler.close()
