"""
Shared-password verification for write endpoints.

Security model:
- The server only knows the SHA-512 digest of the password (PASS_KEY)
- Callers send the plaintext password in the request body (`verification`)
- If PASS_KEY is not set, every verification fails

The digest comparison is plain string equality. Protection rests on the
pre-image resistance of SHA-512, not on timing behaviour.
"""

import hashlib
from typing import Optional


def sha512_hex(secret: str) -> str:
    """SHA-512 of the UTF-8 encoded secret as lowercase hex."""
    return hashlib.sha512(secret.encode("utf-8")).hexdigest()


def verify_password(secret: Optional[str], expected_digest: Optional[str]) -> bool:
    """
    Check a caller-supplied password against the configured digest.

    Args:
        secret: Plaintext password from the request (None is hashed as "")
        expected_digest: Configured hex digest

    Returns:
        True if the digest of `secret` equals `expected_digest`
    """
    if not expected_digest:
        return False
    return sha512_hex(secret or "") == expected_digest
