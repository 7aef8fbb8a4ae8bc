from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

REDACTED = "<REDACTED>"

# Basic-auth user GitHub expects alongside an installation token.
TOKEN_USER = "x-access-token"


class Sensitive:
    """
    A string that must never reach a log line or a file in cleartext.

    Formatting (str, repr, f-strings, %s) always yields the placeholder; the
    raw value is only available through reveal(). Anything written to durable
    storage goes through redact() first.
    """

    __slots__ = ("_value",)

    def __init__(self, value: str):
        self._value = value or ""

    def reveal(self) -> str:
        return self._value

    def redact(self, data: bytes) -> bytes:
        if not self._value:
            return data
        return data.replace(self._value.encode("utf-8"), REDACTED.encode("utf-8"))

    def __str__(self) -> str:
        return REDACTED

    def __repr__(self) -> str:
        return f"Sensitive({REDACTED})"

    def __format__(self, spec: str) -> str:
        return REDACTED

    def __bool__(self) -> bool:
        return bool(self._value)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Sensitive) and other._value == self._value

    def __hash__(self) -> int:
        return hash(self._value)


def with_credentials(clone_url: str, token: Sensitive) -> Sensitive:
    """Embed the token as basic-auth password into an https clone URL."""
    parts = urlsplit(clone_url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ValueError(f"unsupported clone URL {clone_url!r}")
    # Host and port exactly as given (keeps IPv6 brackets), minus any userinfo.
    host = parts.netloc.rpartition("@")[2]
    netloc = f"{TOKEN_USER}:{token.reveal()}@{host}"
    return Sensitive(urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment)))
