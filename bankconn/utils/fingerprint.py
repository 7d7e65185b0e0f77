"""Content fingerprints used as de-duplication keys (outbound and inbound)."""
from __future__ import annotations

import hashlib


def content_fingerprint(content: bytes | str) -> str:
    """sha256 hex digest of the exact bytes (str is UTF-8 encoded first)."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


__all__ = ["content_fingerprint"]
