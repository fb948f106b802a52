"""Abstract base class for DNS providers."""

from abc import ABC, abstractmethod
from typing import ClassVar

import httpx

from zonekeeper.exceptions import (
    DomainNotFoundError,
    InvalidCredentialsError,
    NetworkError,
    ParseError,
    ProviderError,
    RecordExistsError,
    RecordNotFoundError,
    UnknownProviderError,
)
from zonekeeper.models import (
    CreateDnsRecordRequest,
    DnsRecord,
    Domain,
    ErrorContext,
    PaginatedResponse,
    PaginationParams,
    ProviderType,
    RawApiError,
    RecordQueryParams,
    UpdateDnsRecordRequest,
)

# Normalized fault kinds a vendor error code can map to
INVALID_CREDENTIALS = "invalid_credentials"
RECORD_EXISTS = "record_exists"
RECORD_NOT_FOUND = "record_not_found"
DOMAIN_NOT_FOUND = "domain_not_found"


class DnsProvider(ABC):
    """Abstract interface for DNS providers.

    A provider is a live handle bound to one account's credentials. It holds
    no per-call state, so one instance can serve many concurrent operations.

    Subclasses declare their vendor error table in ``ERROR_CODES`` (raw code ->
    fault kind); ``map_error`` turns a raw vendor fault into a typed
    ``ProviderError`` from that table.

    Args:
        timeout: HTTP request timeout in seconds (default: 30).
        client: Optional pre-configured HTTP client. If omitted, the provider
            creates and owns one.
    """

    provider_type: ClassVar[ProviderType]
    ERROR_CODES: ClassVar[dict[str, str]] = {}

    def __init__(self, timeout: float = 30, client: httpx.AsyncClient | None = None):
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def provider_name(self) -> str:
        """Vendor name used in logs and errors."""
        return str(self.provider_type)

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "DnsProvider":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Capability contract
    # -------------------------------------------------------------------------

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Check the credentials against the vendor API.

        Returns:
            True if the vendor accepts the credentials, False if it rejects them.

        Raises:
            ProviderError: On network or protocol failures.
        """
        ...

    @abstractmethod
    async def list_domains(self, params: PaginationParams) -> PaginatedResponse[Domain]:
        """List domains (zones) of the account.

        Args:
            params: Page selection.

        Returns:
            One page of domains.
        """
        ...

    @abstractmethod
    async def get_domain(self, domain_id: str) -> Domain:
        """Get one domain.

        Args:
            domain_id: Vendor domain ID (the domain name for some vendors).

        Returns:
            The domain.

        Raises:
            DomainNotFoundError: If the domain does not exist.
        """
        ...

    @abstractmethod
    async def list_records(
        self, domain_id: str, params: RecordQueryParams
    ) -> PaginatedResponse[DnsRecord]:
        """List records of a domain.

        Args:
            domain_id: Vendor domain ID.
            params: Page selection and filters.

        Returns:
            One page of records.
        """
        ...

    @abstractmethod
    async def create_record(self, request: CreateDnsRecordRequest) -> DnsRecord:
        """Create a record.

        Args:
            request: Record to create.

        Returns:
            The created record.

        Raises:
            RecordExistsError: If the vendor reports a duplicate.
        """
        ...

    @abstractmethod
    async def update_record(self, record_id: str, request: UpdateDnsRecordRequest) -> DnsRecord:
        """Replace a record's content.

        Args:
            record_id: Vendor record ID.
            request: New record content.

        Returns:
            The updated record.

        Raises:
            RecordNotFoundError: If the record does not exist.
        """
        ...

    @abstractmethod
    async def delete_record(self, record_id: str, domain_id: str) -> None:
        """Delete a record.

        Args:
            record_id: Vendor record ID.
            domain_id: Vendor domain ID.

        Raises:
            RecordNotFoundError: If the record does not exist.
        """
        ...

    # -------------------------------------------------------------------------
    # Error mapping
    # -------------------------------------------------------------------------

    def map_error(self, raw: RawApiError, context: ErrorContext | None = None) -> ProviderError:
        """Map a raw vendor fault to a typed provider error.

        Codes not in ``ERROR_CODES`` fall back to UnknownProviderError with
        the raw message untouched.

        Args:
            raw: Fault as reported by the vendor.
            context: Call-site context (domain, record id/name).

        Returns:
            ProviderError subclass instance.
        """
        context = context or ErrorContext()
        kind = self.ERROR_CODES.get(raw.code) if raw.code is not None else None

        if kind == INVALID_CREDENTIALS:
            return InvalidCredentialsError(self.provider_name, raw.message)
        elif kind == RECORD_EXISTS:
            return RecordExistsError(self.provider_name, context.record_name or "", raw.message)
        elif kind == RECORD_NOT_FOUND:
            return RecordNotFoundError(self.provider_name, context.record_id or "", raw.message)
        elif kind == DOMAIN_NOT_FOUND:
            return DomainNotFoundError(self.provider_name, context.domain or "", raw.message)

        return self.unknown_error(raw)

    def unknown_error(self, raw: RawApiError) -> UnknownProviderError:
        """Build the fallback error for an unmapped vendor fault."""
        return UnknownProviderError(self.provider_name, raw.message, raw_code=raw.code)

    def network_error(self, detail: object) -> NetworkError:
        return NetworkError(self.provider_name, str(detail))

    def parse_error(self, detail: object, raw_body: str | None = None) -> ParseError:
        return ParseError(self.provider_name, str(detail), raw_body=raw_body)
