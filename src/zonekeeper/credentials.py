"""Vendor credential variants.

Each vendor has exactly one credential model holding the secret fields its
signing scheme needs. Credentials travel through the stores as plain
``dict[str, str]`` maps with camelCase keys; ``credentials_from_map`` turns
such a map into the typed variant and ``to_map`` goes back.
"""

from typing import Annotated, ClassVar, Literal

import pydantic
from pydantic import BaseModel, Field, SecretStr

from zonekeeper.exceptions import CredentialValidationError
from zonekeeper.models import ProviderType

_Secret = Annotated[SecretStr, Field(min_length=1)]


class _BaseCredentials(BaseModel):
    """Common behaviour for credential variants."""

    # Raw map key -> model field name
    FIELDS: ClassVar[dict[str, str]] = {}

    model_config = {"frozen": True, "extra": "ignore"}

    def to_map(self) -> dict[str, str]:
        """Return the raw credential map (secrets in clear text).

        Returns:
            Dict keyed by the vendor's camelCase credential keys.
        """
        result = {}
        for key, field_name in self.FIELDS.items():
            value = getattr(self, field_name)
            result[key] = value.get_secret_value() if isinstance(value, SecretStr) else value
        return result


class CloudflareCredentials(_BaseCredentials):
    """Cloudflare API token."""

    FIELDS: ClassVar[dict[str, str]] = {"apiToken": "api_token"}

    provider: Literal[ProviderType.CLOUDFLARE] = ProviderType.CLOUDFLARE
    api_token: _Secret


class AliyunCredentials(_BaseCredentials):
    """Alibaba Cloud AccessKey pair."""

    FIELDS: ClassVar[dict[str, str]] = {
        "accessKeyId": "access_key_id",
        "accessKeySecret": "access_key_secret",
    }

    provider: Literal[ProviderType.ALIYUN] = ProviderType.ALIYUN
    access_key_id: str = Field(min_length=1)
    access_key_secret: _Secret


class DnspodCredentials(_BaseCredentials):
    """Tencent Cloud SecretId/SecretKey pair."""

    FIELDS: ClassVar[dict[str, str]] = {"secretId": "secret_id", "secretKey": "secret_key"}

    provider: Literal[ProviderType.DNSPOD] = ProviderType.DNSPOD
    secret_id: str = Field(min_length=1)
    secret_key: _Secret


class HuaweicloudCredentials(_BaseCredentials):
    """Huawei Cloud AK/SK pair."""

    FIELDS: ClassVar[dict[str, str]] = {
        "accessKeyId": "access_key_id",
        "secretAccessKey": "secret_access_key",
    }

    provider: Literal[ProviderType.HUAWEICLOUD] = ProviderType.HUAWEICLOUD
    access_key_id: str = Field(min_length=1)
    secret_access_key: _Secret


ProviderCredentials = Annotated[
    CloudflareCredentials | AliyunCredentials | DnspodCredentials | HuaweicloudCredentials,
    Field(discriminator="provider"),
]

CREDENTIAL_TYPES: dict[ProviderType, type[_BaseCredentials]] = {
    ProviderType.CLOUDFLARE: CloudflareCredentials,
    ProviderType.ALIYUN: AliyunCredentials,
    ProviderType.DNSPOD: DnspodCredentials,
    ProviderType.HUAWEICLOUD: HuaweicloudCredentials,
}


def credentials_from_map(provider: str, raw: dict[str, str]) -> ProviderCredentials:
    """Build the typed credential variant for a vendor from a raw map.

    Args:
        provider: Vendor tag (e.g. "cloudflare").
        raw: Credential map with camelCase keys.

    Returns:
        The credential variant for the vendor.

    Raises:
        CredentialValidationError: If the vendor is unknown or a required
            field is missing or empty.
    """
    try:
        provider_type = ProviderType(provider)
    except ValueError:
        raise CredentialValidationError(f"Unsupported provider: {provider}") from None

    model = CREDENTIAL_TYPES[provider_type]
    missing = [key for key in model.FIELDS if not raw.get(key)]
    if missing:
        raise CredentialValidationError(
            f"Missing required credential fields for {provider_type}: {', '.join(missing)}"
        )

    values = {field_name: raw[key] for key, field_name in model.FIELDS.items()}
    try:
        return model(**values)  # type: ignore[return-value]
    except pydantic.ValidationError as e:
        raise CredentialValidationError(f"Invalid credentials for {provider_type}: {e}") from e
