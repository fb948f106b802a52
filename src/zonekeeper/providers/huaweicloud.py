"""Huawei Cloud DNS provider.

REST-style API (``/v2/zones``...) signed with SDK-HMAC-SHA256 (the APIG AK/SK
scheme). Record sets carry a list of values; zonekeeper shows one record per
record set, its values joined by newlines.

Reference: https://support.huaweicloud.com/intl/en-us/api-dns/dns_api_64001.html
"""

import json
from datetime import datetime, timezone
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel

from zonekeeper._logging import get_logger
from zonekeeper.credentials import HuaweicloudCredentials
from zonekeeper.exceptions import InvalidCredentialsError, ParseError, SerializationError
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
from zonekeeper.providers.common import (
    canonical_query_string,
    hmac_sha256,
    is_supported_record_type,
    sha256_hex,
    to_fqdn,
    to_relative_name,
)

logger = get_logger(__name__)

T = TypeVar("T")

HUAWEICLOUD_DNS_HOST = "dns.myhuaweicloud.com"
ALGORITHM = "SDK-HMAC-SHA256"
CONTENT_TYPE = "application/json"

# https://support.huaweicloud.com/intl/en-us/api-dns/ErrorCode.html
HUAWEICLOUD_ERROR_CODES = {
    "APIGW.0301": INVALID_CREDENTIALS,  # Incorrect IAM authentication information
    "APIGW.0101": INVALID_CREDENTIALS,  # API does not exist or has not been published
    "DNS.0312": RECORD_EXISTS,
    "DNS.0305": RECORD_NOT_FOUND,
    "DNS.0101": DOMAIN_NOT_FOUND,
}

_ZONE_STATUS = {
    "ACTIVE": DomainStatus.ACTIVE,
    "PENDING_CREATE": DomainStatus.PENDING,
    "PENDING_UPDATE": DomainStatus.PENDING,
    "PENDING_DELETE": DomainStatus.PENDING,
    "PENDING_DISABLE": DomainStatus.PENDING,
    "PENDING_ENABLE": DomainStatus.PENDING,
    "FREEZE": DomainStatus.PAUSED,
    "DISABLE": DomainStatus.PAUSED,
    "ERROR": DomainStatus.ERROR,
}


class HuaweicloudError(BaseModel):
    error_code: str | None = None
    error_msg: str | None = None
    code: str | None = None
    message: str | None = None


class HuaweicloudZone(BaseModel):
    id: str
    name: str
    status: str | None = None
    record_num: int | None = None


class HuaweicloudMetadata(BaseModel):
    total_count: int = 0


class ListZonesResponse(BaseModel):
    zones: list[HuaweicloudZone] = []
    metadata: HuaweicloudMetadata | None = None


class HuaweicloudRecordSet(BaseModel):
    id: str
    name: str
    type: str
    records: list[str] = []
    ttl: int = 300
    status: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ListRecordSetsResponse(BaseModel):
    recordsets: list[HuaweicloudRecordSet] = []
    metadata: HuaweicloudMetadata | None = None


def build_canonical_request(
    method: str,
    path: str,
    query: str,
    headers: dict[str, str],
    body: str,
) -> tuple[str, str]:
    """Build the SDK-HMAC-SHA256 canonical request.

    Args:
        method: HTTP method.
        path: Request path; a trailing slash is added for signing.
        query: Canonical query string.
        headers: Headers to sign.
        body: Exact request body ("" for none).

    Returns:
        Tuple of (canonical_request, signed_headers).
    """
    canonical_uri = path if path.endswith("/") else f"{path}/"
    signed = sorted((name.lower(), value.strip()) for name, value in headers.items())
    canonical_headers = "".join(f"{name}:{value}\n" for name, value in signed)
    signed_headers = ";".join(name for name, _ in signed)
    canonical_request = (
        f"{method}\n{canonical_uri}\n{query}\n{canonical_headers}\n{signed_headers}\n{sha256_hex(body)}"
    )
    return canonical_request, signed_headers


class HuaweicloudProvider(DnsProvider):
    """DNS provider for Huawei Cloud DNS (public zones).

    Args:
        credentials: AK/SK pair.
        host: API host (default: dns.myhuaweicloud.com).
        timeout: HTTP request timeout in seconds (default: 30).
        client: Optional pre-configured HTTP client.
    """

    provider_type = ProviderType.HUAWEICLOUD
    ERROR_CODES = HUAWEICLOUD_ERROR_CODES

    def __init__(
        self,
        credentials: HuaweicloudCredentials,
        host: str = HUAWEICLOUD_DNS_HOST,
        timeout: float = 30,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.access_key_id = credentials.access_key_id
        self._secret_access_key = credentials.secret_access_key
        self.host = host

    def sign(
        self,
        method: str,
        path: str,
        query: str,
        headers: dict[str, str],
        body: str,
        timestamp: str,
    ) -> str:
        """Compute the SDK-HMAC-SHA256 Authorization header.

        Args:
            method: HTTP method.
            path: Request path.
            query: Canonical query string.
            headers: Headers to sign (must include Host and X-Sdk-Date).
            body: Exact request body.
            timestamp: Value of X-Sdk-Date, ``%Y%m%dT%H%M%SZ``.

        Returns:
            Authorization header value.
        """
        canonical_request, signed_headers = build_canonical_request(method, path, query, headers, body)
        string_to_sign = f"{ALGORITHM}\n{timestamp}\n{sha256_hex(canonical_request)}"
        signature = hmac_sha256(
            self._secret_access_key.get_secret_value().encode("utf-8"), string_to_sign
        ).hex()
        return f"{ALGORITHM} Access={self.access_key_id}, SignedHeaders={signed_headers}, Signature={signature}"

    # -------------------------------------------------------------------------
    # HTTP verbs
    # -------------------------------------------------------------------------

    async def _get(
        self,
        path: str,
        result_type: type[T],
        params: dict[str, Any] | None = None,
        ctx: ErrorContext | None = None,
    ) -> T:
        headers = self._base_headers()
        query = canonical_query_string(params or {})
        return await self._send("GET", path, query, headers, "", result_type, ctx)

    async def _post(
        self,
        path: str,
        body: dict[str, Any],
        result_type: type[T],
        ctx: ErrorContext | None = None,
    ) -> T:
        headers = {**self._base_headers(), "Content-Type": CONTENT_TYPE}
        return await self._send("POST", path, "", headers, self._dump(body), result_type, ctx)

    async def _put(
        self,
        path: str,
        body: dict[str, Any],
        result_type: type[T],
        ctx: ErrorContext | None = None,
    ) -> T:
        headers = {**self._base_headers(), "Content-Type": CONTENT_TYPE}
        return await self._send("PUT", path, "", headers, self._dump(body), result_type, ctx)

    async def _delete(
        self,
        path: str,
        result_type: type[T],
        ctx: ErrorContext | None = None,
    ) -> T:
        headers = self._base_headers()
        return await self._send("DELETE", path, "", headers, "", result_type, ctx)

    def _base_headers(self) -> dict[str, str]:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        return {"Host": self.host, "X-Sdk-Date": timestamp}

    def _dump(self, body: dict[str, Any]) -> str:
        try:
            return json.dumps(body)
        except (TypeError, ValueError) as e:
            raise SerializationError(self.provider_name, str(e)) from e

    async def _send(
        self,
        method: str,
        path: str,
        query: str,
        headers: dict[str, str],
        body: str,
        result_type: type[T],
        ctx: ErrorContext | None,
    ) -> T:
        """Sign, send and parse one request.

        Raises:
            ProviderError: Mapped from the error body of a non-2xx response.
        """
        authorization = self.sign(method, path, query, headers, body, headers["X-Sdk-Date"])
        url = f"https://{self.host}{path}"
        if query:
            url = f"{url}?{query}"

        request = self._client.build_request(
            method,
            url,
            headers={**headers, "Authorization": authorization},
            content=body.encode("utf-8") if body else None,
        )
        status, text = await execute_request(self._client, request, self.provider_name, f"{method} {path}")

        if not 200 <= status < 300:
            raise self._error_from_response(status, text, ctx)
        return parse_json(text, result_type, self.provider_name)

    def _error_from_response(self, status: int, text: str, ctx: ErrorContext | None) -> Exception:
        try:
            error = parse_json(text, HuaweicloudError, self.provider_name)
        except ParseError:
            return self.unknown_error(RawApiError(message=f"HTTP {status}: {text}"))

        code = error.error_code or error.code
        message = error.error_msg or error.message
        if not code or not message:
            return self.unknown_error(RawApiError(message=f"HTTP {status}: {text}"))

        logger.warning(
            "Huawei Cloud API error",
            extra={"code": code, "detail": message, "status_code": status},
        )
        return self.map_error(RawApiError(code=code, message=message), ctx)

    # -------------------------------------------------------------------------
    # Conversions
    # -------------------------------------------------------------------------

    def _to_domain(self, zone: HuaweicloudZone) -> Domain:
        return Domain(
            id=zone.id,
            name=zone.name.rstrip("."),
            provider=self.provider_type,
            status=_ZONE_STATUS.get((zone.status or "").upper(), DomainStatus.UNKNOWN),
            record_count=zone.record_num,
        )

    def _to_record(self, recordset: HuaweicloudRecordSet, zone: Domain) -> DnsRecord:
        values = list(recordset.records)
        priority = None
        if recordset.type == DnsRecordType.MX:
            priority, values = _split_mx(values)
        elif recordset.type == DnsRecordType.TXT:
            values = [_unquote_txt(v) for v in values]

        return DnsRecord(
            id=recordset.id,
            domain_id=zone.id,
            name=to_relative_name(recordset.name, zone.name),
            record_type=DnsRecordType(recordset.type),
            value="\n".join(values),
            ttl=recordset.ttl,
            priority=priority,
            created_at=recordset.created_at,
            updated_at=recordset.updated_at,
        )

    def _recordset_body(self, request: CreateDnsRecordRequest, zone: Domain) -> dict[str, Any]:
        values = [v for v in request.value.split("\n") if v]
        if request.record_type == DnsRecordType.MX:
            priority = request.priority if request.priority is not None else 10
            values = [f"{priority} {v}" for v in values]
        elif request.record_type == DnsRecordType.TXT:
            values = [v if v.startswith('"') else f'"{v}"' for v in values]

        return {
            "name": to_fqdn(request.name, zone.name, trailing_dot=True),
            "type": str(request.record_type),
            "records": values,
            "ttl": request.ttl,
        }

    # -------------------------------------------------------------------------
    # Provider operations
    # -------------------------------------------------------------------------

    async def validate_credentials(self) -> bool:
        try:
            await self._get("/v2/zones", ListZonesResponse, {"type": "public", "limit": 1})
        except InvalidCredentialsError:
            return False
        return True

    async def list_domains(self, params: PaginationParams) -> PaginatedResponse[Domain]:
        response = await self._get(
            "/v2/zones",
            ListZonesResponse,
            {"type": "public", "limit": params.page_size, "offset": params.offset},
        )
        domains = [self._to_domain(zone) for zone in response.zones]
        total = response.metadata.total_count if response.metadata else len(domains)
        return PaginatedResponse[Domain].build(domains, params, total)

    async def get_domain(self, domain_id: str) -> Domain:
        zone = await self._get(f"/v2/zones/{domain_id}", HuaweicloudZone, ctx=ErrorContext(domain=domain_id))
        return self._to_domain(zone)

    async def list_records(
        self, domain_id: str, params: RecordQueryParams
    ) -> PaginatedResponse[DnsRecord]:
        zone = await self.get_domain(domain_id)
        response = await self._get(
            f"/v2/zones/{domain_id}/recordsets",
            ListRecordSetsResponse,
            {
                "limit": params.page_size,
                "offset": params.offset,
                "name": params.keyword or None,
                "type": str(params.record_type) if params.record_type else None,
            },
            ctx=ErrorContext(domain=zone.name),
        )
        records = [
            self._to_record(recordset, zone)
            for recordset in response.recordsets
            if is_supported_record_type(recordset.type)
        ]
        total = response.metadata.total_count if response.metadata else len(records)
        return PaginatedResponse[DnsRecord].build(records, params, total)

    async def create_record(self, request: CreateDnsRecordRequest) -> DnsRecord:
        zone = await self.get_domain(request.domain_id)
        recordset = await self._post(
            f"/v2/zones/{request.domain_id}/recordsets",
            self._recordset_body(request, zone),
            HuaweicloudRecordSet,
            ErrorContext(domain=zone.name, record_name=request.name),
        )
        logger.info(
            "DNS record created",
            extra={"provider": self.provider_name, "domain": zone.name, "record_name": request.name},
        )
        return self._to_record(recordset, zone)

    async def update_record(self, record_id: str, request: UpdateDnsRecordRequest) -> DnsRecord:
        zone = await self.get_domain(request.domain_id)
        recordset = await self._put(
            f"/v2/zones/{request.domain_id}/recordsets/{record_id}",
            self._recordset_body(request, zone),
            HuaweicloudRecordSet,
            ErrorContext(domain=zone.name, record_id=record_id, record_name=request.name),
        )
        logger.info(
            "DNS record updated",
            extra={"provider": self.provider_name, "domain": zone.name, "record_id": record_id},
        )
        return self._to_record(recordset, zone)

    async def delete_record(self, record_id: str, domain_id: str) -> None:
        await self._delete(
            f"/v2/zones/{domain_id}/recordsets/{record_id}",
            HuaweicloudRecordSet,
            ErrorContext(domain=domain_id, record_id=record_id),
        )
        logger.info(
            "DNS record deleted",
            extra={"provider": self.provider_name, "domain": domain_id, "record_id": record_id},
        )


def _split_mx(values: list[str]) -> tuple[int | None, list[str]]:
    """Split "10 mx.example.com." values into (priority, hosts)."""
    priority = None
    hosts = []
    for value in values:
        head, _, tail = value.partition(" ")
        if tail and head.isdigit():
            priority = int(head) if priority is None else priority
            hosts.append(tail)
        else:
            hosts.append(value)
    return priority, hosts


def _unquote_txt(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value
