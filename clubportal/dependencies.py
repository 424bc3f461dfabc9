"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request

from clubportal.auth import load_principal
from clubportal.cache import InMemoryPageCache, PageCache, RedisPageCache
from clubportal.config import get_settings
from clubportal.db import DbClient, InMemoryDbClient, SqlDbClient
from clubportal.results import ActionContext
from clubportal.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from clubportal.types import Principal

SESSION_USER_KEY = "uid"

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_page_cache: PageCache | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = SqlDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
        )
    return _storage_client


def get_page_cache() -> PageCache:
    """
    Return a singleton page cache shared by reads and invalidations.
    """
    global _page_cache
    if _page_cache:
        return _page_cache

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _page_cache = RedisPageCache(
            url=settings.redis_url,
            prefix=settings.redis_cache_prefix,
            ttl=settings.page_cache_ttl,
        )
    else:
        _page_cache = InMemoryPageCache()
    return _page_cache


def get_principal(
    request: Request, db: DbClient = Depends(get_db_client)
) -> Optional[Principal]:
    """Resolve the caller from the session on every request."""
    return load_principal(db, request.session.get(SESSION_USER_KEY))


def get_action_context(
    principal: Optional[Principal] = Depends(get_principal),
    db: DbClient = Depends(get_db_client),
    cache: PageCache = Depends(get_page_cache),
    storage: StorageClient = Depends(get_storage_client),
) -> ActionContext:
    return ActionContext(
        principal=principal,
        db=db,
        cache=cache,
        storage=storage,
        settings=get_settings(),
    )
