"""
Bearer credential validation and viewer resolution.

``IdentityProvider.validate`` is strict and raises ``AuthError``; mutation
endpoints depend on it through ``require_token``. ``resolve_viewer`` is the
lenient variant used by read endpoints that anonymous callers may browse: any
failure there means "anonymous", never an error response.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import jwt

from ricehub.errors import AuthError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AccessToken:
    subject_id: uuid.UUID
    is_admin: bool
    expires_at: datetime


class IdentityProvider:
    """Validates access tokens signed by the account service."""

    def __init__(self, key: Optional[str], algorithm: str = "ES256"):
        self.key = key
        self.algorithm = algorithm

    def validate(self, authorization: Optional[str]) -> AccessToken:
        authorization = (authorization or "").strip()
        if not authorization:
            raise AuthError("Authorization header is required")
        if not authorization.startswith(BEARER_PREFIX):
            raise AuthError(
                "Invalid authorization header format. It must begin with 'Bearer'"
            )
        if not self.key:
            raise AuthError("Access tokens cannot be verified by this server")

        token = authorization[len(BEARER_PREFIX):].strip()
        try:
            claims = jwt.decode(
                token,
                self.key,
                algorithms=[self.algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthError("Access token is expired! Please refresh it.") from exc
        except jwt.InvalidSignatureError as exc:
            raise AuthError(
                "Access token has an invalid signature! Please authenticate again."
            ) from exc
        except jwt.InvalidTokenError as exc:
            raise AuthError(str(exc)) from exc

        try:
            subject_id = uuid.UUID(claims["sub"])
        except (TypeError, ValueError) as exc:
            raise AuthError("Access token subject is not a valid user id") from exc

        return AccessToken(
            subject_id=subject_id,
            is_admin=bool(claims.get("isAdmin", False)),
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        )


def resolve_viewer(
    identity: IdentityProvider, authorization: Optional[str]
) -> Optional[uuid.UUID]:
    """Return the caller's user id, or None when they are anonymous."""
    if not authorization:
        return None
    try:
        return identity.validate(authorization).subject_id
    except AuthError as exc:
        logger.debug("Treating caller as anonymous: %s", exc)
        return None
