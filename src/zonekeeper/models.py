"""Pydantic models for accounts, DNS resources and import/export files."""

from datetime import datetime
from enum import StrEnum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

# =============================================================================
# Enums
# =============================================================================


class ProviderType(StrEnum):
    """Supported DNS vendors."""

    CLOUDFLARE = "cloudflare"
    ALIYUN = "aliyun"
    DNSPOD = "dnspod"
    HUAWEICLOUD = "huaweicloud"


class AccountStatus(StrEnum):
    """Account health as seen by the last create/restore."""

    ACTIVE = "active"
    ERROR = "error"


class DomainStatus(StrEnum):
    """Normalized zone status."""

    ACTIVE = "active"
    PAUSED = "paused"
    PENDING = "pending"
    ERROR = "error"
    UNKNOWN = "unknown"


class DnsRecordType(StrEnum):
    """DNS record types supported across vendors."""

    A = "A"
    AAAA = "AAAA"
    CNAME = "CNAME"
    MX = "MX"
    TXT = "TXT"
    NS = "NS"
    SRV = "SRV"
    CAA = "CAA"


# =============================================================================
# Accounts
# =============================================================================


class Account(BaseModel):
    """Account metadata. Never carries credentials."""

    id: str
    name: str
    provider: ProviderType
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    status: AccountStatus = AccountStatus.ACTIVE
    error: str | None = None

    model_config = {"populate_by_name": True}


class CreateAccountRequest(BaseModel):
    """Request to add an account."""

    name: str = Field(min_length=1)
    provider: ProviderType
    credentials: dict[str, str]


class UpdateAccountRequest(BaseModel):
    """Request to rename an account and/or replace its credentials."""

    id: str
    name: str | None = Field(default=None, min_length=1)
    credentials: dict[str, str] | None = None


class RestoreResult(BaseModel):
    """Outcome of rebuilding providers at startup."""

    success_count: int = Field(alias="successCount")
    error_count: int = Field(alias="errorCount")

    model_config = {"populate_by_name": True}


class BatchDeleteFailure(BaseModel):
    """One failed item of a batch delete."""

    id: str
    reason: str


class BatchDeleteResult(BaseModel):
    """Outcome of a batch delete."""

    success_count: int = Field(alias="successCount")
    failed_count: int = Field(alias="failedCount")
    failures: list[BatchDeleteFailure] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


# =============================================================================
# Provider metadata
# =============================================================================


class ProviderCredentialField(BaseModel):
    """Describes one credential input a vendor requires."""

    key: str
    label: str
    type: str = "text"
    placeholder: str | None = None
    help_text: str | None = Field(default=None, alias="helpText")

    model_config = {"populate_by_name": True}


class ProviderFeatures(BaseModel):
    """Optional capabilities a vendor supports."""

    proxy: bool = False


class ProviderMetadata(BaseModel):
    """Static description of a vendor for account forms."""

    id: ProviderType
    name: str
    description: str
    required_fields: list[ProviderCredentialField] = Field(alias="requiredFields")
    features: ProviderFeatures = Field(default_factory=ProviderFeatures)

    model_config = {"populate_by_name": True}


# =============================================================================
# DNS resources
# =============================================================================


class Domain(BaseModel):
    """A DNS zone hosted by a vendor."""

    id: str
    name: str
    provider: ProviderType
    status: DomainStatus = DomainStatus.UNKNOWN
    record_count: int | None = Field(default=None, alias="recordCount")

    model_config = {"populate_by_name": True}


class DnsRecord(BaseModel):
    """A DNS resource record. ``name`` is relative to the zone (``@`` for apex)."""

    id: str
    domain_id: str = Field(alias="domainId")
    name: str
    record_type: DnsRecordType = Field(alias="type")
    value: str
    ttl: int
    priority: int | None = None
    proxied: bool | None = None
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    model_config = {"populate_by_name": True}


class PaginationParams(BaseModel):
    """Page selection. Pages are 1-based."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100, alias="pageSize")

    model_config = {"populate_by_name": True}

    @property
    def offset(self) -> int:
        """Zero-based index of the first item on this page."""
        return (self.page - 1) * self.page_size


class RecordQueryParams(PaginationParams):
    """Page selection plus record filters."""

    keyword: str | None = None
    record_type: DnsRecordType | None = Field(default=None, alias="recordType")


class PaginatedResponse(BaseModel, Generic[T]):
    """One page of results."""

    items: list[T]
    page: int
    page_size: int = Field(alias="pageSize")
    total_count: int = Field(alias="totalCount")
    has_more: bool = Field(alias="hasMore")

    model_config = {"populate_by_name": True}

    @classmethod
    def build(cls, items: list[T], params: PaginationParams, total_count: int) -> "PaginatedResponse[T]":
        """Build a page, deriving ``has_more`` from the total count.

        Args:
            items: Items on this page.
            params: The pagination used for the request.
            total_count: Total number of items across all pages.

        Returns:
            PaginatedResponse for the page.
        """
        return cls(
            items=items,
            page=params.page,
            page_size=params.page_size,
            total_count=total_count,
            has_more=params.page * params.page_size < total_count,
        )


class CreateDnsRecordRequest(BaseModel):
    """Request to create a record."""

    domain_id: str = Field(alias="domainId")
    name: str = Field(min_length=1)
    record_type: DnsRecordType = Field(alias="type")
    value: str = Field(min_length=1)
    ttl: int = Field(default=600, ge=1)
    priority: int | None = Field(default=None, ge=0, le=65535)
    proxied: bool | None = None

    model_config = {"populate_by_name": True}


class UpdateDnsRecordRequest(CreateDnsRecordRequest):
    """Request to replace a record's content."""


class BatchDeleteRecordsRequest(BaseModel):
    """Request to delete several records of one domain."""

    domain_id: str = Field(alias="domainId")
    record_ids: list[str] = Field(alias="recordIds")

    model_config = {"populate_by_name": True}


# =============================================================================
# Provider error signals
# =============================================================================


class RawApiError(BaseModel):
    """Unmodified fault reported by a vendor. Never persisted."""

    code: str | None = None
    message: str


class ErrorContext(BaseModel):
    """Call-site context used to fill contextual fields of mapped errors."""

    domain: str | None = None
    record_id: str | None = None
    record_name: str | None = None


# =============================================================================
# Import / export
# =============================================================================


class ExportedAccount(BaseModel):
    """An account together with its credentials, as stored in an export file.

    ``provider`` stays a plain string so an unknown vendor tag fails that one
    account on import instead of rejecting the whole file.
    """

    id: str
    name: str
    provider: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    credentials: dict[str, str]

    model_config = {"populate_by_name": True}


class ExportFileHeader(BaseModel):
    """Plaintext header of an export file."""

    version: int
    encrypted: bool
    salt: str | None = None
    nonce: str | None = None
    exported_at: str = Field(alias="exportedAt")
    app_version: str = Field(alias="appVersion")

    model_config = {"populate_by_name": True}


class ExportFile(BaseModel):
    """Export file. ``data`` is a JSON array, or a base64 string when encrypted."""

    header: ExportFileHeader
    data: Any


class ExportAccountsRequest(BaseModel):
    """Request to export accounts."""

    account_ids: list[str] = Field(alias="accountIds")
    encrypt: bool = False
    password: str | None = None

    model_config = {"populate_by_name": True}


class ExportAccountsResponse(BaseModel):
    """Serialized export file and a suggested file name."""

    content: str
    suggested_filename: str = Field(alias="suggestedFilename")

    model_config = {"populate_by_name": True}


class ImportAccountsRequest(BaseModel):
    """Request to import an export file."""

    content: str
    password: str | None = None


class ImportPreviewAccount(BaseModel):
    """Account as it would be imported. No credentials."""

    name: str
    provider: str
    has_conflict: bool = Field(alias="hasConflict")

    model_config = {"populate_by_name": True}


class ImportPreview(BaseModel):
    """What an import would do, computed without persisting anything."""

    encrypted: bool
    account_count: int = Field(alias="accountCount")
    accounts: list[ImportPreviewAccount] | None = None

    model_config = {"populate_by_name": True}


class ImportFailure(BaseModel):
    """One account that could not be imported."""

    name: str
    reason: str


class ImportResult(BaseModel):
    """Outcome of an import."""

    success_count: int = Field(alias="successCount")
    failures: list[ImportFailure] = Field(default_factory=list)

    model_config = {"populate_by_name": True}
