"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Callable, Optional

from fastapi import Depends, Header, Request

from ricehub.config import get_settings
from ricehub.db import RiceStore
from ricehub.errors import UserError
from ricehub.feed import FeedService
from ricehub.identity import AccessToken, IdentityProvider, resolve_viewer
from ricehub.ratelimit import InMemoryRateLimiter, RateLimiter, RedisRateLimiter
from ricehub.storage import CosStorageClient, InMemoryStorageClient, StorageClient

logger = logging.getLogger(__name__)

IN_MEMORY_DATABASE_URL = "sqlite+pysqlite:///:memory:"

_rice_store: RiceStore | None = None
_storage_client: StorageClient | None = None
_identity_provider: IdentityProvider | None = None
_rate_limiter: RateLimiter | None = None


def get_rice_store() -> RiceStore:
    """
    Return a singleton store so the connection pool is shared across requests.
    """
    global _rice_store
    if _rice_store:
        return _rice_store

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        logger.warning("DATABASE_URL not set, using an in-memory SQLite store")
        _rice_store = RiceStore(IN_MEMORY_DATABASE_URL)
    else:
        _rice_store = RiceStore(settings.database_url)
    return _rice_store


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.cos_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = CosStorageClient(
            bucket=settings.cos_bucket,
            region=settings.cos_region or "",
            endpoint=settings.cos_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return _storage_client


def get_identity_provider() -> IdentityProvider:
    global _identity_provider
    if _identity_provider:
        return _identity_provider

    settings = get_settings()
    key = settings.jwt_secret
    if settings.jwt_public_key_path:
        key = Path(settings.jwt_public_key_path).read_text()
    if not key:
        logger.warning("No JWT key configured, every caller will be anonymous")
    _identity_provider = IdentityProvider(key, algorithm=settings.jwt_algorithm)
    return _identity_provider


def get_rate_limiter() -> RateLimiter:
    global _rate_limiter
    if _rate_limiter:
        return _rate_limiter

    settings = get_settings()
    if settings.redis_url:
        _rate_limiter = RedisRateLimiter(url=settings.redis_url)
    else:
        _rate_limiter = InMemoryRateLimiter()
    return _rate_limiter


def get_feed_service(store: RiceStore = Depends(get_rice_store)) -> FeedService:
    return FeedService(store, cdn_url=get_settings().cdn_url)


def get_viewer_id(
    authorization: Optional[str] = Header(default=None),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> Optional[uuid.UUID]:
    return resolve_viewer(identity, authorization)


def require_token(
    authorization: Optional[str] = Header(default=None),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> AccessToken:
    return identity.validate(authorization)


def require_writable() -> None:
    if get_settings().maintenance:
        raise UserError(
            "API is in read-only mode for a maintenance. Please retry later.", 503
        )


def path_rate_limit(max_requests: int, window_seconds: int) -> Callable:
    """Limit each client to ``max_requests`` per path and window."""

    def dependency(
        request: Request,
        viewer_id: Optional[uuid.UUID] = Depends(get_viewer_id),
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> None:
        if get_settings().disable_rate_limits:
            return
        client_id = str(viewer_id) if viewer_id else _client_host(request)
        count = limiter.increment(f"{request.url.path}-{client_id}", window_seconds)
        if count > max_requests:
            raise UserError("You are sending too many requests to this path!", 429)

    return dependency


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"
