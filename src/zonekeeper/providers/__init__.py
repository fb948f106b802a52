"""DNS provider adapters and the factory that builds them from credentials."""

from typing import Any

from zonekeeper.credentials import (
    AliyunCredentials,
    CloudflareCredentials,
    DnspodCredentials,
    HuaweicloudCredentials,
)
from zonekeeper.models import (
    ProviderCredentialField,
    ProviderFeatures,
    ProviderMetadata,
    ProviderType,
)
from zonekeeper.providers.aliyun import AliyunProvider
from zonekeeper.providers.base import DnsProvider
from zonekeeper.providers.cloudflare import CloudflareProvider
from zonekeeper.providers.dnspod import DnspodProvider
from zonekeeper.providers.huaweicloud import HuaweicloudProvider

_PROVIDER_CLASSES: dict[type, type[DnsProvider]] = {
    CloudflareCredentials: CloudflareProvider,
    AliyunCredentials: AliyunProvider,
    DnspodCredentials: DnspodProvider,
    HuaweicloudCredentials: HuaweicloudProvider,
}

_PROVIDER_METADATA = [
    ProviderMetadata(
        id=ProviderType.CLOUDFLARE,
        name="Cloudflare",
        description="Cloudflare DNS",
        required_fields=[
            ProviderCredentialField(
                key="apiToken",
                label="API Token",
                type="password",
                placeholder="Cloudflare API token",
                help_text="Create a token with Zone:Read and DNS:Edit permissions",
            ),
        ],
        features=ProviderFeatures(proxy=True),
    ),
    ProviderMetadata(
        id=ProviderType.ALIYUN,
        name="Alibaba Cloud DNS",
        description="Alibaba Cloud (Aliyun) DNS",
        required_fields=[
            ProviderCredentialField(key="accessKeyId", label="AccessKey ID", placeholder="AccessKey ID"),
            ProviderCredentialField(
                key="accessKeySecret",
                label="AccessKey Secret",
                type="password",
                placeholder="AccessKey Secret",
            ),
        ],
    ),
    ProviderMetadata(
        id=ProviderType.DNSPOD,
        name="DNSPod",
        description="Tencent Cloud DNSPod",
        required_fields=[
            ProviderCredentialField(key="secretId", label="SecretId", placeholder="SecretId"),
            ProviderCredentialField(key="secretKey", label="SecretKey", type="password", placeholder="SecretKey"),
        ],
    ),
    ProviderMetadata(
        id=ProviderType.HUAWEICLOUD,
        name="Huawei Cloud DNS",
        description="Huawei Cloud DNS",
        required_fields=[
            ProviderCredentialField(key="accessKeyId", label="Access Key ID", placeholder="AK"),
            ProviderCredentialField(
                key="secretAccessKey",
                label="Secret Access Key",
                type="password",
                placeholder="SK",
            ),
        ],
    ),
]


def create_provider(credentials: Any, **kwargs: Any) -> DnsProvider:
    """Build a provider instance for a credential variant.

    Args:
        credentials: One of the ProviderCredentials variants.
        **kwargs: Passed to the provider constructor (timeout, client, ...).

    Returns:
        Provider bound to the credentials.

    Raises:
        TypeError: If the credentials are not a known variant.
    """
    provider_class = _PROVIDER_CLASSES.get(type(credentials))
    if provider_class is None:
        raise TypeError(f"No provider for credentials of type {type(credentials).__name__}")
    return provider_class(credentials, **kwargs)


def get_all_provider_metadata() -> list[ProviderMetadata]:
    """Static descriptions of all supported vendors."""
    return [metadata.model_copy(deep=True) for metadata in _PROVIDER_METADATA]


__all__ = [
    "AliyunProvider",
    "CloudflareProvider",
    "DnsProvider",
    "DnspodProvider",
    "HuaweicloudProvider",
    "create_provider",
    "get_all_provider_metadata",
]
