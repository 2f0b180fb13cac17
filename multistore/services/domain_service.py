"""Shop domain canonicalisation."""

import ipaddress
import re
from urllib.parse import urlsplit

from multistore.core.exceptions import ValidationError

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_HOSTNAME_RE = re.compile(
    r"^(?=.{1,253}$)([a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z][a-z0-9-]{0,61}[a-z0-9]$"
)


def normalize_shop_domain(value: str) -> str:
    """Reduce user input like ``https://Shop.example.com/`` to ``shop.example.com``.

    Raises:
        ValidationError: If nothing resembling a public hostname remains.
    """
    raw = _SCHEME_RE.sub("", value.strip())
    host = urlsplit(f"//{raw}").hostname or ""
    host = host.rstrip(".").lower()

    if not host:
        raise ValidationError("Shop domain is required")

    try:
        ipaddress.ip_address(host)
    except ValueError:
        pass
    else:
        raise ValidationError("Shop domain must be a hostname, not an IP address")

    if not _HOSTNAME_RE.match(host):
        raise ValidationError(f"Invalid shop domain: {value.strip()}")

    return host
