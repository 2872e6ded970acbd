"""GitHub webhook HMAC signature validation."""

import hashlib
import hmac
import logging
from typing import Mapping, Optional, Union

from .errors import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)

SIGNATURE_256_HEADER = "X-Hub-Signature-256"
SIGNATURE_HEADER = "X-Hub-Signature"

_ALGORITHMS = {"sha256": hashlib.sha256, "sha1": hashlib.sha1}


def _ensure_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    return value.encode("utf-8")


def sign(secret: Union[str, bytes], body: Union[str, bytes], algorithm: str = "sha256") -> str:
    """Return the header value GitHub would send for ``body``."""
    digest = hmac.new(_ensure_bytes(secret), _ensure_bytes(body), _ALGORITHMS[algorithm]).hexdigest()
    return f"{algorithm}={digest}"


def verify_signature(*, secret: Union[str, bytes, None], body: Union[str, bytes],
                     signature: Optional[str]) -> bool:
    """Return ``True`` when ``signature`` (``sha256=<hex>`` or ``sha1=<hex>``) matches."""
    if not secret or not signature:
        return False
    algorithm, _, provided = signature.strip().partition("=")
    if algorithm not in _ALGORITHMS or not provided:
        return False
    expected = sign(secret, body, algorithm)
    return hmac.compare_digest(expected, f"{algorithm}={provided.lower()}")


def signature_from_headers(headers: Mapping[str, str]) -> Optional[str]:
    """Prefer the SHA-256 header, fall back to the legacy SHA-1 one."""
    return headers.get(SIGNATURE_256_HEADER) or headers.get(SIGNATURE_HEADER)


class SignatureValidator:
    """Checks inbound pushes against the configured webhook secret."""

    def __init__(self, secret: Optional[str], required: bool = False):
        self.secret = secret
        self.required = required

    def check(self, body: bytes, signature: Optional[str]) -> bool:
        """Raise on a bad signature; return whether a signature was verified."""
        if not signature:
            if self.required:
                raise UnauthorizedError("authorization is invalid")
            logger.info("signature not present")
            return False

        if not self.secret:
            if self.required:
                raise UnauthorizedError("authorization is invalid")
            logger.info("signature present but no webhook secret configured, skipping check")
            return False

        if not verify_signature(secret=self.secret, body=body, signature=signature):
            raise ForbiddenError("User not authorized for operation")
        return True
