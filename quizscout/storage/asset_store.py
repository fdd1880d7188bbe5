"""
Image asset lifecycle for venues and performers.

Each owner keeps its images under uploads/{owner_kind}/{owner_slug}/ as an
"original" and a square "thumb". AssetStore downloads images with a bounded
timeout and size, writes both versions, moves the directory when an owner's
slug changes and removes duplicates left behind by earlier runs. All
operations on one owner directory hold that owner's lock.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import httpx

from quizscout.exceptions import AssetError, DownloadError, RelocationError
from quizscout.storage import images
from quizscout.storage.backends import StorageBackend, StoredObject
from quizscout.storage.locks import OwnerLocks
from quizscout.storage.naming import (
    CURRENT_NAMING,
    NAMING_STRATEGIES,
    UPLOADS_ROOT,
    VERSIONS,
    extension_for,
    normalize_filename,
    owner_dir,
    position_of,
    split_ext,
    version_of,
)

logger = logging.getLogger(__name__)

DEFAULT_IMAGES = {
    "venues": "/images/default-venue.jpg",
    "performers": "https://placehold.co/300x300/png?text=No+Image",
}
DEFAULT_PLACEHOLDER = "/images/default-placeholder.png"

CLEANUP_OWNER_KINDS = ("venues", "performers")


@dataclass
class AssetReference:
    """Where an owner's image versions were stored."""

    owner_kind: str
    owner_slug: str
    filename: str
    paths: Dict[str, str]
    source_url: Optional[str] = None
    position: Optional[int] = None
    reused: bool = False


@dataclass
class CleanupStats:
    directories_checked: int = 0
    directories_with_duplicates: int = 0
    files_removed: int = 0
    storage_type: str = "local"
    planned_deletions: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict:
        return {
            "directories_checked": self.directories_checked,
            "directories_with_duplicates": self.directories_with_duplicates,
            "files_removed": self.files_removed,
            "storage_type": self.storage_type,
        }


def default_image_for(owner_kind: str) -> str:
    """Owner-level placeholder used when no stored file can be found."""
    return DEFAULT_IMAGES.get(owner_kind, DEFAULT_PLACEHOLDER)


class AssetStore:
    """
    Owner-scoped image storage on top of a StorageBackend.

    Usage:
        >>> store = AssetStore(LocalStorage("priv/static"), OwnerLocks())
        >>> ref = await store.store_image("venues", "the-crown", "https://.../hero.jpg")
        >>> store.resolve_url("venues", "the-crown", ref.filename, "thumb")
        '/uploads/venues/the-crown/thumb_hero.jpg'
    """

    def __init__(
        self,
        backend: StorageBackend,
        locks: Optional[OwnerLocks] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 40,
        max_bytes: int = 10 * 1024 * 1024,
        thumb_size: int = 250,
        user_agent: Optional[str] = None,
    ):
        self.backend = backend
        self.locks = locks or OwnerLocks()
        self._client = http_client
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.thumb_size = thumb_size
        self.user_agent = user_agent

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"User-Agent": self.user_agent} if self.user_agent else None
            self._client = httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=True, headers=headers
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def download(self, url: str, owner: Optional[str] = None) -> Tuple[bytes, Optional[str]]:
        """
        Fetch image bytes, enforcing the timeout and size limit.

        Returns:
            Tuple of (bytes, content type header)

        Raises:
            DownloadError: Timeout, transport failure or non-200 (retryable)
            AssetError: Body larger than max_bytes (not retryable)
        """
        client = self._get_client()
        try:
            async with client.stream("GET", url) as response:
                if response.status_code != 200:
                    raise DownloadError(
                        f"HTTP {response.status_code} downloading {url}",
                        url=url,
                        status_code=response.status_code,
                        owner=owner,
                    )

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self.max_bytes:
                    raise AssetError(
                        f"Image at {url} is {declared} bytes, limit is {self.max_bytes}", owner=owner
                    )

                chunks = []
                received = 0
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if received > self.max_bytes:
                        raise AssetError(
                            f"Image at {url} exceeds {self.max_bytes} bytes", owner=owner
                        )
                    chunks.append(chunk)

                return b"".join(chunks), response.headers.get("content-type")
        except httpx.TimeoutException as e:
            raise DownloadError(f"Timed out downloading {url}: {e}", url=url, owner=owner)
        except httpx.HTTPError as e:
            raise DownloadError(f"Failed to download {url}: {e}", url=url, owner=owner)

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    def paths_for(
        self, owner_kind: str, owner_slug: str, filename: str, position: Optional[int] = None
    ) -> Dict[str, str]:
        return {
            version: CURRENT_NAMING.path(owner_kind, owner_slug, version, filename, position)
            for version in VERSIONS
        }

    def _stored_names(self, filename: str) -> List[str]:
        """filename, then its stem with every extension a stored original can have."""
        if extension_for(filename) is None:
            stem = filename
            names = []
        else:
            stem, _ = split_ext(filename)
            names = [filename]
        for ext in images.WEB_FORMATS.values():
            if f"{stem}{ext}" not in names:
                names.append(f"{stem}{ext}")
        return names

    def _find_stored(
        self, owner_kind: str, owner_slug: str, filename: str, position: Optional[int]
    ) -> Optional[Tuple[str, Dict[str, str]]]:
        """
        Existing (filename, paths) whose original and thumb are both stored.

        The files found are touched so duplicate cleanup keeps them as the
        newest of their version.
        """
        owner = f"{owner_kind}/{owner_slug}"
        with self.locks.hold(owner_kind, owner_slug):
            for name in self._stored_names(filename):
                paths = self.paths_for(owner_kind, owner_slug, name, position)
                if not all(self.backend.exists(p) for p in paths.values()):
                    continue
                try:
                    for path in paths.values():
                        self.backend.touch(path)
                except Exception as e:
                    raise AssetError(f"Could not refresh stored image {name}: {e}", owner=owner) from e
                return name, paths
        return None

    async def store_image(
        self,
        owner_kind: str,
        owner_slug: str,
        url: str,
        position: Optional[int] = None,
        force_update: bool = False,
        filename: Optional[str] = None,
    ) -> AssetReference:
        """
        Download url and store its original and thumb for the owner.

        The stored name comes from filename when given, otherwise from the
        URL. When both versions already exist under that name, or under the
        same stem with the extension of the decoded format, the download is
        skipped unless force_update is set.

        Raises:
            DownloadError: Retryable download failure
            AssetError: Oversized or unreadable image
        """
        owner = f"{owner_kind}/{owner_slug}"
        filename = normalize_filename(filename or url)
        has_ext = extension_for(filename) is not None

        if not force_update:
            found = self._find_stored(owner_kind, owner_slug, filename, position)
            if found is not None:
                stored_name, paths = found
                logger.debug(f"Reusing stored image {stored_name} for {owner}")
                return AssetReference(
                    owner_kind, owner_slug, stored_name, paths, url, position, reused=True
                )

        data, _ = await self.download(url, owner=owner)
        original, ext, stored_content_type = images.prepare_original(data, owner=owner)
        thumb = images.make_thumbnail(data, self.thumb_size, owner=owner)

        # The stored extension follows the decoded format
        if not has_ext:
            filename = f"{filename}{ext}"
        else:
            stem, current_ext = split_ext(filename)
            if current_ext != ext and not (current_ext == ".jpeg" and ext == ".jpg"):
                filename = f"{stem}{ext}"

        paths = self.paths_for(owner_kind, owner_slug, filename, position)
        with self.locks.hold(owner_kind, owner_slug):
            self.backend.put(paths["original"], original, stored_content_type)
            self.backend.put(paths["thumb"], thumb, stored_content_type)

        logger.info(f"Stored image {filename} for {owner} ({len(original)} bytes)")
        return AssetReference(owner_kind, owner_slug, filename, paths, url, position)

    # ------------------------------------------------------------------
    # Relocation
    # ------------------------------------------------------------------

    def relocate(self, owner_kind: str, old_slug: str, new_slug: str) -> List[str]:
        """
        Move every asset of an owner from old_slug to new_slug.

        Files are moved, never re-downloaded. On failure the files already
        moved are moved back before RelocationError is raised.

        Returns:
            New paths of the moved files
        """
        if old_slug == new_slug:
            return []

        old_dir = owner_dir(owner_kind, old_slug)
        new_dir = owner_dir(owner_kind, new_slug)

        with self.locks.hold_many(owner_kind, old_slug, new_slug):
            try:
                objects = self.backend.list(f"{old_dir}/")
            except Exception as e:
                raise RelocationError(owner_kind, old_slug, new_slug, f"listing failed: {e}")

            plan = [(obj.path, new_dir + obj.path[len(old_dir):]) for obj in objects]
            for _, dst in plan:
                if self.backend.exists(dst):
                    raise RelocationError(owner_kind, old_slug, new_slug, f"{dst} already exists")

            moved: List[Tuple[str, str]] = []
            try:
                for src, dst in plan:
                    self.backend.move(src, dst)
                    moved.append((src, dst))
            except Exception as e:
                for src, dst in reversed(moved):
                    try:
                        self.backend.move(dst, src)
                    except Exception as rollback_error:
                        logger.error(f"Could not roll back {dst} -> {src}: {rollback_error}")
                raise RelocationError(owner_kind, old_slug, new_slug, str(e))

        logger.info(f"Relocated {len(moved)} {owner_kind} assets {old_slug} -> {new_slug}")
        return [dst for _, dst in moved]

    # ------------------------------------------------------------------
    # Delete / resolve
    # ------------------------------------------------------------------

    def candidate_paths(
        self,
        owner_kind: str,
        owner_slug: str,
        filename: str,
        version: str,
        position: Optional[int] = None,
    ) -> List[str]:
        """Paths a stored version may live at, in naming-strategy order."""
        paths = []
        for strategy in NAMING_STRATEGIES:
            path = strategy.path(owner_kind, owner_slug, version, filename, position)
            if path not in paths:
                paths.append(path)
        return paths

    def delete_asset(
        self, owner_kind: str, owner_slug: str, filename: str, position: Optional[int] = None
    ) -> int:
        """Delete every version under every naming convention; returns files removed."""
        removed = 0
        with self.locks.hold(owner_kind, owner_slug):
            seen = set()
            for version in VERSIONS:
                for path in self.candidate_paths(owner_kind, owner_slug, filename, version, position):
                    if path in seen:
                        continue
                    seen.add(path)
                    if self.backend.delete(path):
                        removed += 1
        logger.info(f"Deleted {removed} files for {owner_kind}/{owner_slug}/{filename}")
        return removed

    def resolve_url(
        self,
        owner_kind: str,
        owner_slug: Optional[str],
        filename: Optional[str],
        version: str = "original",
        position: Optional[int] = None,
        default: Optional[str] = None,
    ) -> str:
        """
        Public URL of a stored version.

        Tries each naming convention and falls back to the owner-kind
        placeholder when none exists.
        """
        if owner_slug and filename:
            for path in self.candidate_paths(owner_kind, owner_slug, filename, version, position):
                if self.backend.exists(path):
                    return self.backend.url(path)
            logger.debug(f"No stored {version} for {owner_kind}/{owner_slug}/{filename}")
        return default or default_image_for(owner_kind)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def cleanup_duplicate_assets(
        self, dry_run: bool = False, owner_kinds: Tuple[str, ...] = CLEANUP_OWNER_KINDS
    ) -> Dict:
        """
        Keep only the newest original and newest thumb in each owner directory.

        Gallery images are grouped per position, so each position keeps its
        own newest original and thumb.

        Returns:
            {directories_checked, directories_with_duplicates, files_removed, storage_type}.
            In dry-run mode files_removed counts the files that would be removed.
        """
        stats = CleanupStats(storage_type=self.backend.storage_type)

        for owner_kind in owner_kinds:
            by_directory: Dict[str, List[StoredObject]] = defaultdict(list)
            for obj in self.backend.list(f"{UPLOADS_ROOT}/{owner_kind}/"):
                by_directory[obj.directory].append(obj)

            for directory, objects in sorted(by_directory.items()):
                stats.directories_checked += 1
                slug = directory.rsplit("/", 1)[-1]
                to_delete = self._duplicates(objects)
                if not to_delete:
                    continue

                stats.directories_with_duplicates += 1
                if dry_run:
                    stats.files_removed += len(to_delete)
                    stats.planned_deletions.extend(o.path for o in to_delete)
                    logger.info(f"[dry run] would remove {len(to_delete)} files from {directory}")
                    continue

                with self.locks.hold(owner_kind, slug):
                    for obj in to_delete:
                        if self.backend.delete(obj.path):
                            stats.files_removed += 1
                logger.info(f"Removed {len(to_delete)} duplicate files from {directory}")

        logger.info(f"Asset cleanup finished: {stats.as_dict()} (dry_run={dry_run})")
        return stats.as_dict()

    @staticmethod
    def _duplicates(objects: List[StoredObject]) -> List[StoredObject]:
        """All but the newest object of each (version, position) group."""
        grouped: Dict[Tuple[str, Optional[int]], List[StoredObject]] = defaultdict(list)
        for obj in objects:
            version = version_of(obj.name)
            if version:
                grouped[(version, position_of(obj.name))].append(obj)

        duplicates = []
        for group in grouped.values():
            group.sort(key=lambda o: o.modified_at, reverse=True)
            duplicates.extend(group[1:])
        return duplicates
