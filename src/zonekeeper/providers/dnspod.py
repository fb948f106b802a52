"""Tencent Cloud DNSPod provider.

Every call is a ``POST /`` with a JSON body, signed with TC3-HMAC-SHA256.

Reference: https://www.tencentcloud.com/document/api/1157/49029
"""

import json
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

import httpx
from pydantic import BaseModel, Field

from zonekeeper._logging import get_logger
from zonekeeper.credentials import DnspodCredentials
from zonekeeper.exceptions import InvalidCredentialsError, SerializationError
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
from zonekeeper.providers.common import hmac_sha256, is_supported_record_type, sha256_hex

logger = get_logger(__name__)

T = TypeVar("T")

DNSPOD_API_HOST = "dnspod.tencentcloudapi.com"
DNSPOD_SERVICE = "dnspod"
DNSPOD_VERSION = "2021-03-23"
ALGORITHM = "TC3-HMAC-SHA256"
CONTENT_TYPE = "application/json; charset=utf-8"
SIGNED_HEADERS = "content-type;host;x-tc-action"
DEFAULT_RECORD_LINE = "默认"

NO_RECORDS = "ResourceNotFound.NoDataOfRecord"
NO_DOMAINS = "ResourceNotFound.NoDataOfDomain"

# https://www.tencentcloud.com/document/api/1157/49037
DNSPOD_ERROR_CODES = {
    "AuthFailure.SignatureFailure": INVALID_CREDENTIALS,
    "AuthFailure.SecretIdNotFound": INVALID_CREDENTIALS,
    "AuthFailure.InvalidSecretId": INVALID_CREDENTIALS,
    "AuthFailure.SignatureExpire": INVALID_CREDENTIALS,
    "InvalidParameter.DomainRecordExist": RECORD_EXISTS,
    NO_RECORDS: RECORD_NOT_FOUND,
    "InvalidParameter.RecordIdInvalid": RECORD_NOT_FOUND,
    NO_DOMAINS: DOMAIN_NOT_FOUND,
    "InvalidParameterValue.DomainNotExists": DOMAIN_NOT_FOUND,
}

_DOMAIN_STATUS = {
    "ENABLE": DomainStatus.ACTIVE,
    "PAUSE": DomainStatus.PAUSED,
    "SPAM": DomainStatus.ERROR,
    "LOCK": DomainStatus.ERROR,
}


class TencentError(BaseModel):
    code: str = Field(alias="Code")
    message: str = Field(alias="Message")


class TencentErrorBody(BaseModel):
    error: TencentError | None = Field(default=None, alias="Error")


class TencentEnvelope(BaseModel):
    response: TencentErrorBody = Field(alias="Response")


class DnspodDomain(BaseModel):
    domain_id: int | None = Field(default=None, alias="DomainId")
    name: str = Field(alias="Name")
    status: str | None = Field(default=None, alias="Status")
    record_count: int | None = Field(default=None, alias="RecordCount")


class DnspodDomainInfo(BaseModel):
    domain_id: int | None = Field(default=None, alias="DomainId")
    domain: str = Field(alias="Domain")
    status: str | None = Field(default=None, alias="Status")
    record_count: int | None = Field(default=None, alias="RecordCount")


class DomainCountInfo(BaseModel):
    all_total: int | None = Field(default=None, alias="AllTotal")
    domain_total: int | None = Field(default=None, alias="DomainTotal")


class DescribeDomainListResponse(BaseModel):
    domain_count_info: DomainCountInfo = Field(alias="DomainCountInfo")
    domain_list: list[DnspodDomain] = Field(default_factory=list, alias="DomainList")


class DescribeDomainResponse(BaseModel):
    domain_info: DnspodDomainInfo = Field(alias="DomainInfo")


class DnspodRecord(BaseModel):
    record_id: int = Field(alias="RecordId")
    name: str = Field(alias="Name")
    type: str = Field(alias="Type")
    value: str = Field(alias="Value")
    ttl: int = Field(alias="TTL")
    mx: int | None = Field(default=None, alias="MX")
    line: str | None = Field(default=None, alias="Line")
    status: str | None = Field(default=None, alias="Status")


class RecordCountInfo(BaseModel):
    total_count: int = Field(alias="TotalCount")


class DescribeRecordListResponse(BaseModel):
    record_count_info: RecordCountInfo = Field(alias="RecordCountInfo")
    record_list: list[DnspodRecord] = Field(default_factory=list, alias="RecordList")


class RecordIdResponse(BaseModel):
    record_id: int = Field(alias="RecordId")


class EmptyResponse(BaseModel):
    pass


class TencentResponse(BaseModel, Generic[T]):
    """Successful ``{"Response": {...}}`` envelope."""

    response: T = Field(alias="Response")


def build_canonical_request(action: str, payload: str, host: str = DNSPOD_API_HOST) -> str:
    """Build the TC3 canonical request for a JSON ``POST /``."""
    canonical_headers = f"content-type:{CONTENT_TYPE}\nhost:{host}\nx-tc-action:{action.lower()}\n"
    return f"POST\n/\n\n{canonical_headers}\n{SIGNED_HEADERS}\n{sha256_hex(payload)}"


class DnspodProvider(DnsProvider):
    """DNS provider for Tencent Cloud DNSPod.

    Domains are identified by their name; DNSPod's record APIs take the
    domain name directly.

    Args:
        credentials: SecretId/SecretKey pair.
        host: API host (default: dnspod.tencentcloudapi.com).
        timeout: HTTP request timeout in seconds (default: 30).
        client: Optional pre-configured HTTP client.
    """

    provider_type = ProviderType.DNSPOD
    ERROR_CODES = DNSPOD_ERROR_CODES

    def __init__(
        self,
        credentials: DnspodCredentials,
        host: str = DNSPOD_API_HOST,
        timeout: float = 30,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.secret_id = credentials.secret_id
        self._secret_key = credentials.secret_key
        self.host = host

    def sign(self, action: str, payload: str, timestamp: int) -> str:
        """Compute the TC3-HMAC-SHA256 Authorization header.

        Args:
            action: API action name (e.g. "DescribeRecordList").
            payload: Exact JSON body that will be sent.
            timestamp: Unix timestamp in seconds; its UTC date scopes the key.

        Returns:
            Authorization header value.
        """
        date = datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d")
        scope = f"{date}/{DNSPOD_SERVICE}/tc3_request"

        canonical_request = build_canonical_request(action, payload, self.host)
        string_to_sign = f"{ALGORITHM}\n{timestamp}\n{scope}\n{sha256_hex(canonical_request)}"

        secret_date = hmac_sha256(f"TC3{self._secret_key.get_secret_value()}".encode("utf-8"), date)
        secret_service = hmac_sha256(secret_date, DNSPOD_SERVICE)
        secret_signing = hmac_sha256(secret_service, "tc3_request")
        signature = hmac_sha256(secret_signing, string_to_sign).hex()

        return (
            f"{ALGORITHM} Credential={self.secret_id}/{scope}, "
            f"SignedHeaders={SIGNED_HEADERS}, Signature={signature}"
        )

    async def _request(
        self,
        action: str,
        body: dict[str, Any],
        result_type: type[T],
        ctx: ErrorContext | None = None,
        empty_on: tuple[str, ...] = (),
    ) -> T | None:
        """Send a signed call and unwrap ``Response``.

        Args:
            action: API action name.
            body: Request parameters (None values are dropped).
            result_type: Model for the contents of ``Response``.
            ctx: Context for error mapping.
            empty_on: Error codes that mean "nothing here" for this call;
                they return None instead of raising.

        Raises:
            ProviderError: Mapped from ``Response.Error``.
        """
        try:
            payload = json.dumps({k: v for k, v in body.items() if v is not None}, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise SerializationError(self.provider_name, str(e)) from e

        timestamp = int(datetime.now(timezone.utc).timestamp())
        request = self._client.build_request(
            "POST",
            f"https://{self.host}/",
            content=payload.encode("utf-8"),
            headers={
                "Authorization": self.sign(action, payload, timestamp),
                "Content-Type": CONTENT_TYPE,
                "Host": self.host,
                "X-TC-Action": action,
                "X-TC-Version": DNSPOD_VERSION,
                "X-TC-Timestamp": str(timestamp),
            },
        )
        status, text = await execute_request(self._client, request, self.provider_name, action)

        envelope = parse_json(text, TencentEnvelope, self.provider_name)
        error = envelope.response.error
        if error is not None:
            if error.code in empty_on:
                return None
            logger.warning(
                "DNSPod API error",
                extra={"action": action, "code": error.code, "detail": error.message, "status_code": status},
            )
            raise self.map_error(RawApiError(code=error.code, message=error.message), ctx)

        return parse_json(text, TencentResponse[result_type], self.provider_name).response

    def _to_domain(self, name: str, status: str | None, record_count: int | None) -> Domain:
        return Domain(
            id=name,
            name=name,
            provider=self.provider_type,
            status=_DOMAIN_STATUS.get((status or "").upper(), DomainStatus.UNKNOWN),
            record_count=record_count,
        )

    def _to_record(self, record: DnspodRecord, domain: str) -> DnsRecord:
        return DnsRecord(
            id=str(record.record_id),
            domain_id=domain,
            name=record.name,
            record_type=DnsRecordType(record.type),
            value=record.value,
            ttl=record.ttl,
            priority=record.mx if record.type == DnsRecordType.MX else None,
        )

    def _record_body(self, request: CreateDnsRecordRequest) -> dict[str, Any]:
        body: dict[str, Any] = {
            "Domain": request.domain_id,
            "SubDomain": request.name,
            "RecordType": str(request.record_type),
            "RecordLine": DEFAULT_RECORD_LINE,
            "Value": request.value,
            "TTL": request.ttl,
        }
        if request.record_type == DnsRecordType.MX:
            body["MX"] = request.priority if request.priority is not None else 10
        return body

    async def validate_credentials(self) -> bool:
        try:
            await self._request(
                "DescribeDomainList",
                {"Offset": 0, "Limit": 1},
                DescribeDomainListResponse,
                empty_on=(NO_DOMAINS,),
            )
        except InvalidCredentialsError:
            return False
        return True

    async def list_domains(self, params: PaginationParams) -> PaginatedResponse[Domain]:
        response = await self._request(
            "DescribeDomainList",
            {"Offset": params.offset, "Limit": params.page_size},
            DescribeDomainListResponse,
            empty_on=(NO_DOMAINS,),
        )
        if response is None:
            return PaginatedResponse[Domain].build([], params, 0)

        domains = [self._to_domain(d.name, d.status, d.record_count) for d in response.domain_list]
        counts = response.domain_count_info
        total = counts.all_total if counts.all_total is not None else counts.domain_total or len(domains)
        return PaginatedResponse[Domain].build(domains, params, total)

    async def get_domain(self, domain_id: str) -> Domain:
        response = await self._request(
            "DescribeDomain",
            {"Domain": domain_id},
            DescribeDomainResponse,
            ErrorContext(domain=domain_id),
        )
        info = response.domain_info
        return self._to_domain(info.domain, info.status, info.record_count)

    async def list_records(
        self, domain_id: str, params: RecordQueryParams
    ) -> PaginatedResponse[DnsRecord]:
        response = await self._request(
            "DescribeRecordList",
            {
                "Domain": domain_id,
                "Offset": params.offset,
                "Limit": params.page_size,
                "Keyword": params.keyword or None,
                "RecordType": str(params.record_type) if params.record_type else None,
            },
            DescribeRecordListResponse,
            ErrorContext(domain=domain_id),
            empty_on=(NO_RECORDS,),
        )
        if response is None:
            return PaginatedResponse[DnsRecord].build([], params, 0)

        records = [
            self._to_record(record, domain_id)
            for record in response.record_list
            if is_supported_record_type(record.type)
        ]
        return PaginatedResponse[DnsRecord].build(records, params, response.record_count_info.total_count)

    async def create_record(self, request: CreateDnsRecordRequest) -> DnsRecord:
        response = await self._request(
            "CreateRecord",
            self._record_body(request),
            RecordIdResponse,
            ErrorContext(domain=request.domain_id, record_name=request.name),
        )
        logger.info(
            "DNS record created",
            extra={"provider": self.provider_name, "domain": request.domain_id, "record_name": request.name},
        )
        return self._record_from_request(str(response.record_id), request)

    async def update_record(self, record_id: str, request: UpdateDnsRecordRequest) -> DnsRecord:
        body = self._record_body(request)
        body["RecordId"] = _record_id(record_id)
        await self._request(
            "ModifyRecord",
            body,
            RecordIdResponse,
            ErrorContext(domain=request.domain_id, record_id=record_id, record_name=request.name),
        )
        logger.info(
            "DNS record updated",
            extra={"provider": self.provider_name, "domain": request.domain_id, "record_id": record_id},
        )
        return self._record_from_request(record_id, request)

    async def delete_record(self, record_id: str, domain_id: str) -> None:
        await self._request(
            "DeleteRecord",
            {"Domain": domain_id, "RecordId": _record_id(record_id)},
            EmptyResponse,
            ErrorContext(domain=domain_id, record_id=record_id),
        )
        logger.info(
            "DNS record deleted",
            extra={"provider": self.provider_name, "domain": domain_id, "record_id": record_id},
        )

    @staticmethod
    def _record_from_request(record_id: str, request: CreateDnsRecordRequest) -> DnsRecord:
        return DnsRecord(
            id=record_id,
            domain_id=request.domain_id,
            name=request.name,
            record_type=request.record_type,
            value=request.value,
            ttl=request.ttl,
            priority=request.priority if request.record_type == DnsRecordType.MX else None,
        )


def _record_id(record_id: str) -> int | str:
    # DNSPod record IDs are integers on the wire
    return int(record_id) if record_id.isdigit() else record_id
