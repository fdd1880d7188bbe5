"""
Image asset storage for venues and performers.
"""

from quizscout.storage.asset_store import (
    DEFAULT_IMAGES,
    AssetReference,
    AssetStore,
    default_image_for,
)
from quizscout.storage.backends import (
    LocalStorage,
    S3Storage,
    StorageBackend,
    StoredObject,
    get_storage_backend,
)
from quizscout.storage.locks import OwnerLocks, get_owner_locks


def get_asset_store(settings) -> AssetStore:
    """AssetStore wired to the configured backend and lock provider."""
    return AssetStore(
        get_storage_backend(settings),
        get_owner_locks(settings),
        timeout=settings.image_timeout,
        max_bytes=settings.image_max_bytes,
        thumb_size=settings.thumb_size,
        user_agent=settings.scraper_user_agent,
    )


__all__ = [
    "AssetReference",
    "AssetStore",
    "DEFAULT_IMAGES",
    "LocalStorage",
    "OwnerLocks",
    "S3Storage",
    "StorageBackend",
    "StoredObject",
    "default_image_for",
    "get_asset_store",
    "get_owner_locks",
    "get_storage_backend",
]
