"""Alibaba Cloud (Aliyun) DNS provider.

Requests are RPC-style: every parameter travels in the query string of an
empty-bodied ``POST /`` and the request is signed with ACS3-HMAC-SHA256.

Reference: https://www.alibabacloud.com/help/en/sdk/product-overview/v3-request-structure-and-signature
"""

import uuid
from datetime import datetime, timezone
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, Field

from zonekeeper._logging import get_logger
from zonekeeper.credentials import AliyunCredentials
from zonekeeper.exceptions import InvalidCredentialsError
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
    EMPTY_BODY_SHA256,
    canonical_query_string,
    hmac_sha256,
    is_supported_record_type,
    sha256_hex,
)

logger = get_logger(__name__)

T = TypeVar("T")

ALIYUN_DNS_HOST = "alidns.aliyuncs.com"
ALIYUN_DNS_VERSION = "2015-01-09"
ALGORITHM = "ACS3-HMAC-SHA256"
SIGNED_HEADERS = "host;x-acs-action;x-acs-content-sha256;x-acs-date;x-acs-signature-nonce;x-acs-version"

# https://api.aliyun.com/document/Alidns/2015-01-09/errorCode
ALIYUN_ERROR_CODES = {
    "InvalidAccessKeyId.NotFound": INVALID_CREDENTIALS,
    "InvalidAccessKeyId.Inactive": INVALID_CREDENTIALS,
    "SignatureDoesNotMatch": INVALID_CREDENTIALS,
    "IncompleteSignature": INVALID_CREDENTIALS,
    "DomainRecordDuplicate": RECORD_EXISTS,
    "DomainRecordNotBelongToUser": RECORD_NOT_FOUND,
    "InvalidRecordId.NotFound": RECORD_NOT_FOUND,
    "InvalidDomainName.NoExist": DOMAIN_NOT_FOUND,
}


class AliyunErrorResponse(BaseModel):
    code: str | None = Field(default=None, alias="Code")
    message: str | None = Field(default=None, alias="Message")


class AliyunDomain(BaseModel):
    domain_id: str | None = Field(default=None, alias="DomainId")
    domain_name: str = Field(alias="DomainName")
    record_count: int | None = Field(default=None, alias="RecordCount")


class AliyunDomainList(BaseModel):
    domain: list[AliyunDomain] = Field(default_factory=list, alias="Domain")


class DescribeDomainsResponse(BaseModel):
    total_count: int = Field(alias="TotalCount")
    domains: AliyunDomainList = Field(alias="Domains")


class AliyunRecord(BaseModel):
    record_id: str = Field(alias="RecordId")
    rr: str = Field(alias="RR")
    type: str = Field(alias="Type")
    value: str = Field(alias="Value")
    ttl: int = Field(alias="TTL")
    priority: int | None = Field(default=None, alias="Priority")
    domain_name: str | None = Field(default=None, alias="DomainName")


class AliyunRecordList(BaseModel):
    record: list[AliyunRecord] = Field(default_factory=list, alias="Record")


class DescribeDomainRecordsResponse(BaseModel):
    total_count: int = Field(alias="TotalCount")
    domain_records: AliyunRecordList = Field(alias="DomainRecords")


class RecordIdResponse(BaseModel):
    record_id: str = Field(alias="RecordId")


def build_canonical_request(
    action: str,
    query_string: str,
    timestamp: str,
    nonce: str,
    host: str = ALIYUN_DNS_HOST,
    version: str = ALIYUN_DNS_VERSION,
) -> str:
    """Build the ACS3 canonical request for an RPC-style call with an empty body."""
    canonical_headers = (
        f"host:{host}\n"
        f"x-acs-action:{action}\n"
        f"x-acs-content-sha256:{EMPTY_BODY_SHA256}\n"
        f"x-acs-date:{timestamp}\n"
        f"x-acs-signature-nonce:{nonce}\n"
        f"x-acs-version:{version}\n"
    )
    return f"POST\n/\n{query_string}\n{canonical_headers}\n{SIGNED_HEADERS}\n{EMPTY_BODY_SHA256}"


class AliyunProvider(DnsProvider):
    """DNS provider for Alibaba Cloud DNS.

    Domains are identified by their name; the Aliyun record APIs take the
    domain name rather than a numeric ID.

    Args:
        credentials: AccessKey pair.
        host: API host (default: alidns.aliyuncs.com).
        timeout: HTTP request timeout in seconds (default: 30).
        client: Optional pre-configured HTTP client.
    """

    provider_type = ProviderType.ALIYUN
    ERROR_CODES = ALIYUN_ERROR_CODES

    def __init__(
        self,
        credentials: AliyunCredentials,
        host: str = ALIYUN_DNS_HOST,
        timeout: float = 30,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.access_key_id = credentials.access_key_id
        self._access_key_secret = credentials.access_key_secret
        self.host = host

    def sign(self, action: str, query_string: str, timestamp: str, nonce: str) -> str:
        """Compute the ACS3-HMAC-SHA256 Authorization header.

        Args:
            action: API action name (e.g. "DescribeDomains").
            query_string: Canonical (sorted, encoded) query string.
            timestamp: UTC timestamp, ``%Y-%m-%dT%H:%M:%SZ``.
            nonce: Unique nonce for this request.

        Returns:
            Authorization header value.
        """
        canonical_request = build_canonical_request(action, query_string, timestamp, nonce, self.host)
        logger.debug("Canonical request built", extra={"provider": self.provider_name, "action": action})

        string_to_sign = f"{ALGORITHM}\n{sha256_hex(canonical_request)}"
        signature = hmac_sha256(
            self._access_key_secret.get_secret_value().encode("utf-8"), string_to_sign
        ).hex()

        return (
            f"{ALGORITHM} Credential={self.access_key_id},"
            f"SignedHeaders={SIGNED_HEADERS},Signature={signature}"
        )

    async def _request(
        self,
        action: str,
        params: dict[str, Any],
        result_type: type[T],
        ctx: ErrorContext | None = None,
    ) -> T:
        """Send a signed RPC call.

        Raises:
            ProviderError: Mapped from the response's Code/Message.
        """
        query_string = canonical_query_string(params)
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        nonce = str(uuid.uuid4())
        authorization = self.sign(action, query_string, timestamp, nonce)

        url = f"https://{self.host}/"
        if query_string:
            url = f"{url}?{query_string}"

        request = self._client.build_request(
            "POST",
            url,
            headers={
                "Host": self.host,
                "x-acs-action": action,
                "x-acs-version": ALIYUN_DNS_VERSION,
                "x-acs-date": timestamp,
                "x-acs-signature-nonce": nonce,
                "x-acs-content-sha256": EMPTY_BODY_SHA256,
                "Authorization": authorization,
            },
        )
        status, text = await execute_request(self._client, request, self.provider_name, action)

        error = parse_json(text, AliyunErrorResponse, self.provider_name)
        if error.code and error.message:
            logger.warning(
                "Aliyun API error",
                extra={"action": action, "code": error.code, "detail": error.message, "status_code": status},
            )
            raise self.map_error(RawApiError(code=error.code, message=error.message), ctx)

        return parse_json(text, result_type, self.provider_name)

    def _to_record(self, record: AliyunRecord, domain: str) -> DnsRecord:
        return DnsRecord(
            id=record.record_id,
            domain_id=domain,
            name=record.rr,
            record_type=DnsRecordType(record.type),
            value=record.value,
            ttl=record.ttl,
            priority=record.priority if record.type == DnsRecordType.MX else None,
        )

    def _record_params(self, request: CreateDnsRecordRequest) -> dict[str, Any]:
        params: dict[str, Any] = {
            "RR": request.name,
            "Type": str(request.record_type),
            "Value": request.value,
            "TTL": request.ttl,
        }
        if request.record_type == DnsRecordType.MX and request.priority is not None:
            params["Priority"] = request.priority
        return params

    async def validate_credentials(self) -> bool:
        try:
            await self._request("DescribeDomains", {"PageNumber": 1, "PageSize": 1}, DescribeDomainsResponse)
        except InvalidCredentialsError:
            return False
        return True

    async def list_domains(self, params: PaginationParams) -> PaginatedResponse[Domain]:
        response = await self._request(
            "DescribeDomains",
            {"PageNumber": params.page, "PageSize": params.page_size},
            DescribeDomainsResponse,
        )
        domains = [
            Domain(
                id=domain.domain_name,
                name=domain.domain_name,
                provider=self.provider_type,
                status=DomainStatus.ACTIVE,
                record_count=domain.record_count,
            )
            for domain in response.domains.domain
        ]
        return PaginatedResponse[Domain].build(domains, params, response.total_count)

    async def get_domain(self, domain_id: str) -> Domain:
        domain = await self._request(
            "DescribeDomainInfo",
            {"DomainName": domain_id},
            AliyunDomain,
            ErrorContext(domain=domain_id),
        )
        return Domain(
            id=domain.domain_name,
            name=domain.domain_name,
            provider=self.provider_type,
            status=DomainStatus.ACTIVE,
            record_count=domain.record_count,
        )

    async def list_records(
        self, domain_id: str, params: RecordQueryParams
    ) -> PaginatedResponse[DnsRecord]:
        query: dict[str, Any] = {
            "DomainName": domain_id,
            "PageNumber": params.page,
            "PageSize": params.page_size,
            "KeyWord": params.keyword or None,
            "Type": str(params.record_type) if params.record_type else None,
        }
        response = await self._request(
            "DescribeDomainRecords", query, DescribeDomainRecordsResponse, ErrorContext(domain=domain_id)
        )
        records = [
            self._to_record(record, domain_id)
            for record in response.domain_records.record
            if is_supported_record_type(record.type)
        ]
        return PaginatedResponse[DnsRecord].build(records, params, response.total_count)

    async def create_record(self, request: CreateDnsRecordRequest) -> DnsRecord:
        response = await self._request(
            "AddDomainRecord",
            {"DomainName": request.domain_id, **self._record_params(request)},
            RecordIdResponse,
            ErrorContext(domain=request.domain_id, record_name=request.name),
        )
        logger.info(
            "DNS record created",
            extra={"provider": self.provider_name, "domain": request.domain_id, "record_name": request.name},
        )
        return self._record_from_request(response.record_id, request)

    async def update_record(self, record_id: str, request: UpdateDnsRecordRequest) -> DnsRecord:
        await self._request(
            "UpdateDomainRecord",
            {"RecordId": record_id, **self._record_params(request)},
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
            "DeleteDomainRecord",
            {"RecordId": record_id},
            RecordIdResponse,
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
