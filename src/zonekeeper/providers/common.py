"""Helpers shared by vendor adapters: hashing, encoding and record names."""

import hashlib
import hmac
from urllib.parse import quote

from zonekeeper.models import DnsRecordType

EMPTY_BODY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


def sha256_hex(data: str | bytes) -> str:
    """Hex-encoded SHA-256 digest."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def hmac_sha256(key: bytes, message: str) -> bytes:
    """Raw HMAC-SHA256 digest."""
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


def percent_encode(value: str) -> str:
    """RFC 3986 percent-encoding (unreserved characters kept as-is)."""
    return quote(value, safe="-_.~")


def canonical_query_string(params: dict[str, object]) -> str:
    """Serialize parameters into a sorted, RFC 3986 encoded query string.

    None values are dropped; booleans are rendered lowercase.

    Args:
        params: Query parameters.

    Returns:
        Query string without the leading '?'.
    """
    pairs = []
    for key in sorted(params):
        value = params[key]
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        pairs.append(f"{percent_encode(key)}={percent_encode(str(value))}")
    return "&".join(pairs)


def to_relative_name(fqdn: str, zone: str) -> str:
    """Convert a fully qualified record name to a zone-relative one.

    Examples:
        >>> to_relative_name("www.example.com.", "example.com")
        'www'
        >>> to_relative_name("example.com", "example.com.")
        '@'
    """
    name = fqdn.rstrip(".").lower()
    zone = zone.rstrip(".").lower()
    if name == zone:
        return "@"
    if name.endswith("." + zone):
        return name[: -(len(zone) + 1)]
    return name


def to_fqdn(name: str, zone: str, trailing_dot: bool = False) -> str:
    """Expand a zone-relative record name to a fully qualified one.

    Names that already end with the zone are returned unchanged (apart from
    the trailing dot).
    """
    zone = zone.rstrip(".")
    name = name.rstrip(".")
    if name in ("@", "") or name.lower() == zone.lower():
        fqdn = zone
    elif name.lower().endswith("." + zone.lower()):
        fqdn = name
    else:
        fqdn = f"{name}.{zone}"
    return fqdn + "." if trailing_dot else fqdn


def is_supported_record_type(record_type: str) -> bool:
    """Whether a vendor record type is one zonekeeper models."""
    return record_type.upper() in DnsRecordType.__members__
