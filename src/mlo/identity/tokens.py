"""
Identity token verification.

Tokens are issued by the external auth provider; this service only verifies
them and reads the ``sub`` claim as the external identity id.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import jwt

from mlo.config import get_settings
from mlo.errors import IdentityUnavailable

_public_key: str | None = None


def _verification_key() -> str:
    """Shared secret for HS* algorithms, otherwise the public key (cached after first read)."""
    global _public_key  # noqa: PLW0603
    settings = get_settings()
    if settings.identity_jwt_algorithm.upper().startswith("HS"):
        if not settings.identity_jwt_secret:
            msg = "Identity token secret not configured"
            raise IdentityUnavailable(msg)
        return settings.identity_jwt_secret
    if _public_key is None:
        try:
            _public_key = Path(settings.identity_jwt_public_key_path).read_text()
        except OSError as e:
            msg = "Identity public key not available"
            raise IdentityUnavailable(msg) from e
    return _public_key


def reset_keys() -> None:
    """Reset the cached public key (useful for testing)."""
    global _public_key  # noqa: PLW0603
    _public_key = None


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify and decode an identity token.

    Returns:
        Decoded payload dictionary with a non-empty ``sub`` claim.

    Raises:
        IdentityUnavailable: If the token is invalid, expired or has no subject.
    """
    settings = get_settings()
    options = {"require": ["exp", "sub"]}
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            _verification_key(),
            algorithms=[settings.identity_jwt_algorithm],
            issuer=settings.identity_jwt_issuer,
            audience=settings.identity_jwt_audience,
            options={**options, "verify_aud": settings.identity_jwt_audience is not None},
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise IdentityUnavailable(msg) from None
    except jwt.InvalidTokenError as e:
        raise IdentityUnavailable(str(e)) from e

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        msg = "Token has no subject"
        raise IdentityUnavailable(msg)
    return payload
