"""Cloudflare DNS provider.

Authentication is a static API token sent as a bearer token on every call;
there is no request signing.
"""

from datetime import datetime
from typing import Any, Generic, TypeVar

import httpx
from pydantic import BaseModel

from zonekeeper._logging import get_logger
from zonekeeper.credentials import CloudflareCredentials
from zonekeeper.exceptions import InvalidCredentialsError, ParseError
from zonekeeper.http import execute_request, parse_json
from zonekeeper.models import (
    CreateDnsRecordRequest,
    DnsRecord,
    DnsRecordType,
    Domain,
    DomainStatus,
    ErrorContext,
    PaginatedResponse,
    PaginationParams,
    ProviderType,
    RawApiError,
    RecordQueryParams,
    UpdateDnsRecordRequest,
)
from zonekeeper.providers.base import (
    DOMAIN_NOT_FOUND,
    INVALID_CREDENTIALS,
    RECORD_EXISTS,
    RECORD_NOT_FOUND,
    DnsProvider,
)
from zonekeeper.providers.common import is_supported_record_type, to_fqdn, to_relative_name

logger = get_logger(__name__)

T = TypeVar("T")

CF_API_BASE = "https://api.cloudflare.com/client/v4"

# https://developers.cloudflare.com/fundamentals/api/reference/
CLOUDFLARE_ERROR_CODES = {
    "1000": INVALID_CREDENTIALS,  # Invalid API Token
    "6003": INVALID_CREDENTIALS,  # Invalid request headers
    "6111": INVALID_CREDENTIALS,  # Invalid format for Authorization header
    "9109": INVALID_CREDENTIALS,  # Unauthorized to access requested resource
    "10000": INVALID_CREDENTIALS,  # Authentication error
    "81053": RECORD_EXISTS,  # A/AAAA/CNAME record with that host already exists
    "81057": RECORD_EXISTS,  # Record already exists
    "81058": RECORD_EXISTS,  # An identical record already exists
    "81044": RECORD_NOT_FOUND,  # Record does not exist
    "1001": DOMAIN_NOT_FOUND,  # Invalid zone identifier
    "7003": DOMAIN_NOT_FOUND,  # Could not route to zone (no such zone)
}

_ZONE_STATUS = {
    "active": DomainStatus.ACTIVE,
    "pending": DomainStatus.PENDING,
    "initializing": DomainStatus.PENDING,
    "moved": DomainStatus.ERROR,
    "deleted": DomainStatus.ERROR,
    "deactivated": DomainStatus.PAUSED,
}


class CloudflareError(BaseModel):
    code: int
    message: str


class CloudflareResultInfo(BaseModel):
    page: int = 1
    per_page: int = 20
    total_count: int = 0


class CloudflareResponse(BaseModel, Generic[T]):
    """Cloudflare v4 response envelope."""

    success: bool
    result: T | None = None
    errors: list[CloudflareError] = []
    result_info: CloudflareResultInfo | None = None


class CloudflareZone(BaseModel):
    id: str
    name: str
    status: str
    paused: bool = False


class CloudflareDnsRecord(BaseModel):
    id: str
    type: str
    name: str
    content: str
    ttl: int
    priority: int | None = None
    proxied: bool | None = None
    created_on: datetime | None = None
    modified_on: datetime | None = None


class CloudflareTokenStatus(BaseModel):
    id: str
    status: str


class CloudflareDeleted(BaseModel):
    id: str


class CloudflareProvider(DnsProvider):
    """DNS provider for Cloudflare.

    Args:
        credentials: Cloudflare API token.
        base_url: API base URL (default: Cloudflare v4 endpoint).
        timeout: HTTP request timeout in seconds (default: 30).
        client: Optional pre-configured HTTP client.
    """

    provider_type = ProviderType.CLOUDFLARE
    ERROR_CODES = CLOUDFLARE_ERROR_CODES

    def __init__(
        self,
        credentials: CloudflareCredentials,
        base_url: str = CF_API_BASE,
        timeout: float = 30,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self._api_token = credentials.api_token
        self.base_url = base_url.rstrip("/")

    async def _request(
        self,
        method: str,
        path: str,
        result_type: Any,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        ctx: ErrorContext | None = None,
    ) -> CloudflareResponse[Any]:
        """Send an authenticated request and unwrap the response envelope.

        Raises:
            ProviderError: Mapped from the envelope's first error.
        """
        request = self._client.build_request(
            method,
            f"{self.base_url}{path}",
            params=params,
            json=body,
            headers={
                "Authorization": f"Bearer {self._api_token.get_secret_value()}",
                "Content-Type": "application/json",
            },
        )
        status, text = await execute_request(self._client, request, self.provider_name, path)

        try:
            envelope = parse_json(text, CloudflareResponse[result_type], self.provider_name)
        except ParseError:
            if status >= 400:
                raise self.unknown_error(RawApiError(message=f"HTTP {status}: {text}")) from None
            raise

        if not envelope.success:
            if envelope.errors:
                first = envelope.errors[0]
                logger.warning(
                    "Cloudflare API error",
                    extra={"code": first.code, "detail": first.message, "status_code": status},
                )
                raise self.map_error(RawApiError(code=str(first.code), message=first.message), ctx)
            raise self.unknown_error(RawApiError(message=f"HTTP {status}: {text}"))

        if envelope.result is None:
            raise self.parse_error("Response is missing 'result'", raw_body=text)
        return envelope

    def _to_domain(self, zone: CloudflareZone) -> Domain:
        status = DomainStatus.PAUSED if zone.paused else _ZONE_STATUS.get(zone.status, DomainStatus.UNKNOWN)
        return Domain(id=zone.id, name=zone.name, provider=self.provider_type, status=status)

    def _to_record(self, record: CloudflareDnsRecord, zone: Domain) -> DnsRecord:
        return DnsRecord(
            id=record.id,
            domain_id=zone.id,
            name=to_relative_name(record.name, zone.name),
            record_type=DnsRecordType(record.type),
            value=record.content,
            ttl=record.ttl,
            priority=record.priority,
            proxied=record.proxied,
            created_at=record.created_on,
            updated_at=record.modified_on,
        )

    def _record_body(self, request: CreateDnsRecordRequest, zone: Domain) -> dict[str, Any]:
        body: dict[str, Any] = {
            "type": str(request.record_type),
            "name": to_fqdn(request.name, zone.name),
            "content": request.value,
            "ttl": request.ttl,
        }
        if request.record_type in (DnsRecordType.MX, DnsRecordType.SRV) and request.priority is not None:
            body["priority"] = request.priority
        if request.proxied is not None:
            body["proxied"] = request.proxied
        return body

    async def validate_credentials(self) -> bool:
        """Verify the API token.

        Returns:
            True if the token exists and is active.
        """
        try:
            envelope = await self._request("GET", "/user/tokens/verify", CloudflareTokenStatus)
        except InvalidCredentialsError:
            return False
        return envelope.result.status == "active"

    async def list_domains(self, params: PaginationParams) -> PaginatedResponse[Domain]:
        envelope = await self._request(
            "GET",
            "/zones",
            list[CloudflareZone],
            params={"page": params.page, "per_page": params.page_size},
        )
        domains = [self._to_domain(zone) for zone in envelope.result]
        total = envelope.result_info.total_count if envelope.result_info else len(domains)
        return PaginatedResponse[Domain].build(domains, params, total)

    async def get_domain(self, domain_id: str) -> Domain:
        envelope = await self._request(
            "GET", f"/zones/{domain_id}", CloudflareZone, ctx=ErrorContext(domain=domain_id)
        )
        return self._to_domain(envelope.result)

    async def list_records(
        self, domain_id: str, params: RecordQueryParams
    ) -> PaginatedResponse[DnsRecord]:
        zone = await self.get_domain(domain_id)
        query: dict[str, Any] = {"page": params.page, "per_page": params.page_size}
        if params.keyword:
            query["search"] = params.keyword
        if params.record_type:
            query["type"] = str(params.record_type)

        envelope = await self._request(
            "GET",
            f"/zones/{domain_id}/dns_records",
            list[CloudflareDnsRecord],
            params=query,
            ctx=ErrorContext(domain=zone.name),
        )
        records = [
            self._to_record(record, zone)
            for record in envelope.result
            if is_supported_record_type(record.type)
        ]
        total = envelope.result_info.total_count if envelope.result_info else len(records)
        return PaginatedResponse[DnsRecord].build(records, params, total)

    async def create_record(self, request: CreateDnsRecordRequest) -> DnsRecord:
        zone = await self.get_domain(request.domain_id)
        envelope = await self._request(
            "POST",
            f"/zones/{request.domain_id}/dns_records",
            CloudflareDnsRecord,
            body=self._record_body(request, zone),
            ctx=ErrorContext(domain=zone.name, record_name=request.name),
        )
        logger.info(
            "DNS record created",
            extra={"provider": self.provider_name, "domain": zone.name, "record_name": request.name},
        )
        return self._to_record(envelope.result, zone)

    async def update_record(self, record_id: str, request: UpdateDnsRecordRequest) -> DnsRecord:
        zone = await self.get_domain(request.domain_id)
        envelope = await self._request(
            "PUT",
            f"/zones/{request.domain_id}/dns_records/{record_id}",
            CloudflareDnsRecord,
            body=self._record_body(request, zone),
            ctx=ErrorContext(domain=zone.name, record_id=record_id, record_name=request.name),
        )
        logger.info(
            "DNS record updated",
            extra={"provider": self.provider_name, "domain": zone.name, "record_id": record_id},
        )
        return self._to_record(envelope.result, zone)

    async def delete_record(self, record_id: str, domain_id: str) -> None:
        await self._request(
            "DELETE",
            f"/zones/{domain_id}/dns_records/{record_id}",
            CloudflareDeleted,
            ctx=ErrorContext(domain=domain_id, record_id=record_id),
        )
        logger.info(
            "DNS record deleted",
            extra={"provider": self.provider_name, "domain": domain_id, "record_id": record_id},
        )
