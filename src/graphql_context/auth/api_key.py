"""Static API key escalation.

A request presenting the configured key in its ``apikey`` header is treated as
a fully privileged API user. This is the only path that grants admin rights
without a user record, so keep the check here and nowhere else.
"""

from __future__ import annotations

import hmac

API_KEY_HEADER = "apikey"


def is_trusted_api_key(presented: str | None, configured: str | None) -> bool:
    """Return True only when both keys are non-empty and byte-for-byte equal.

    ``presented`` is the header value as decoded by Starlette (latin-1), so it
    is re-encoded to the bytes sent on the wire and compared against the UTF-8
    bytes of the configured key. No hashing or normalisation; the comparison
    runs in constant time.
    """
    if not presented or not configured:
        return False
    try:
        wire_bytes = presented.encode("latin-1")
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(wire_bytes, configured.encode("utf-8"))
