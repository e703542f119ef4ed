import base64
import hashlib
import hmac
from typing import Any, Mapping, Tuple
from urllib.parse import quote, urlsplit


def _sort_key(item: Tuple[str, Any]) -> Tuple[str, str]:
    # Collation order: case-insensitive first, lowercase before uppercase on ties.
    key = item[0]
    return key.casefold(), key.swapcase()


def _encode(value: Any) -> str:
    return quote(str(value), safe="-_.!~*'()")


def canonical_string(method: str, url: str, params: Mapping[str, Any]) -> str:
    parts = urlsplit(url)
    path = parts.path or "/"
    if parts.query:
        path += f"?{parts.query}"
    raw = f"{method}\n{parts.netloc}\n{path}\n"
    raw += "&".join(
        f"{_encode(key)}={_encode(value)}"
        for key, value in sorted(params.items(), key=_sort_key)
    )
    return raw


def sign(method: str, url: str, params: Mapping[str, Any], secret: str) -> str:
    """Signature version 2 over the canonical form of a query request.

    The result only depends on the contents of ``params``, not on its
    iteration order.
    """
    digest = hmac.new(
        secret.encode("utf-8"),
        canonical_string(method, url, params).encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")
