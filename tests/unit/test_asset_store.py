"""
Unit tests for AssetStore: download, store, relocate, resolve and cleanup.
"""

import os
import time

import httpx
import pytest

from conftest import image_bytes, mock_client
from quizscout.exceptions import AssetError, DownloadError, RelocationError
from quizscout.storage.asset_store import AssetStore, default_image_for
from quizscout.storage.backends import LocalStorage
from quizscout.storage.locks import OwnerLocks


def set_mtime(storage: LocalStorage, path: str, timestamp: float) -> None:
    os.utime(storage.root / path, (timestamp, timestamp))


class TestDownload:
    """Tests for AssetStore.download."""

    @pytest.mark.asyncio
    async def test_returns_bytes_and_content_type(self, asset_store, png_bytes):
        """Test a successful download."""
        data, content_type = await asset_store.download("https://cdn.example.com/hero.png")

        assert data == png_bytes
        assert content_type == "image/png"

    @pytest.mark.asyncio
    async def test_non_200_is_retryable(self, asset_store):
        """Test that a 404 raises a recoverable DownloadError."""
        with pytest.raises(DownloadError) as exc_info:
            await asset_store.download("https://cdn.example.com/missing.png", owner="venues/a")

        assert exc_info.value.status_code == 404
        assert exc_info.value.recoverable is True
        assert exc_info.value.owner == "venues/a"

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self, local_storage):
        """Test that a timeout raises DownloadError."""

        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        store = AssetStore(local_storage, OwnerLocks(), http_client=mock_client(handler))

        with pytest.raises(DownloadError):
            await store.download("https://cdn.example.com/slow.jpg")

    @pytest.mark.asyncio
    async def test_size_limit(self, local_storage, image_server):
        """Test that oversized bodies are rejected and not retryable."""
        store = AssetStore(
            local_storage, OwnerLocks(), http_client=mock_client(image_server), max_bytes=100
        )

        with pytest.raises(AssetError) as exc_info:
            await store.download("https://cdn.example.com/big.png")

        assert not isinstance(exc_info.value, DownloadError)
        assert exc_info.value.recoverable is False


class TestStoreImage:
    """Tests for AssetStore.store_image."""

    @pytest.mark.asyncio
    async def test_stores_original_and_thumb(self, asset_store, local_storage):
        """Test both versions are written under the current naming."""
        ref = await asset_store.store_image(
            "venues", "the-crown", "https://cdn.example.com/img/Hero%20Shot.PNG?w=800"
        )

        assert ref.filename == "hero-shot.png"
        assert ref.reused is False
        assert ref.paths == {
            "original": "uploads/venues/the-crown/original_hero-shot.png",
            "thumb": "uploads/venues/the-crown/thumb_hero-shot.png",
        }
        assert local_storage.exists(ref.paths["original"])
        assert local_storage.exists(ref.paths["thumb"])

    @pytest.mark.asyncio
    async def test_thumbnail_is_square(self, asset_store, local_storage):
        """Test the thumb is a thumb_size square."""
        from io import BytesIO

        from PIL import Image

        ref = await asset_store.store_image("venues", "the-crown", "https://cdn.example.com/hero.png")
        thumb = Image.open(BytesIO(local_storage.get(ref.paths["thumb"])))

        assert thumb.size == (250, 250)

    @pytest.mark.asyncio
    async def test_reuses_existing_asset(self, asset_store, image_requests):
        """Test that an already stored image is not downloaded again."""
        url = "https://cdn.example.com/hero.png"
        await asset_store.store_image("venues", "the-crown", url)
        ref = await asset_store.store_image("venues", "the-crown", url)

        assert ref.reused is True
        assert len(image_requests) == 1

    @pytest.mark.asyncio
    async def test_force_update_downloads_again(self, asset_store, image_requests):
        """Test that force_update bypasses reuse."""
        url = "https://cdn.example.com/hero.png"
        await asset_store.store_image("venues", "the-crown", url)
        ref = await asset_store.store_image("venues", "the-crown", url, force_update=True)

        assert ref.reused is False
        assert len(image_requests) == 2

    @pytest.mark.asyncio
    async def test_extension_follows_decoded_format(self, asset_store):
        """Test a JPEG served without an extension is stored as .jpg."""
        ref = await asset_store.store_image("venues", "the-crown", "https://cdn.example.com/photo")

        assert ref.filename == "photo.jpg"

    @pytest.mark.asyncio
    async def test_position_suffix(self, asset_store):
        """Test positional images get a position suffix."""
        ref = await asset_store.store_image(
            "venues", "the-crown", "https://cdn.example.com/gallery.png", position=2
        )

        assert ref.paths["original"] == "uploads/venues/the-crown/original_gallery_2.png"

    @pytest.mark.asyncio
    async def test_reuse_after_format_change(self, local_storage, png_bytes):
        """Test a .jpg URL serving PNG bytes is reused under its stored .png name."""
        requests = []

        def handler(request):
            requests.append(str(request.url))
            return httpx.Response(200, content=png_bytes, headers={"content-type": "image/jpeg"})

        store = AssetStore(local_storage, OwnerLocks(), http_client=mock_client(handler))
        first = await store.store_image("venues", "the-crown", "https://cdn.example.com/hero.jpg")
        second = await store.store_image("venues", "the-crown", "https://cdn.example.com/hero.jpg")

        assert first.filename == "hero.png"
        assert second.reused is True
        assert second.filename == "hero.png"
        assert second.paths["original"] == "uploads/venues/the-crown/original_hero.png"
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_reuse_without_extension(self, asset_store, image_requests):
        """Test an extensionless URL is reused once stored."""
        url = "https://cdn.example.com/photo"
        await asset_store.store_image("venues", "the-crown", url)
        ref = await asset_store.store_image("venues", "the-crown", url)

        assert ref.reused is True
        assert ref.filename == "photo.jpg"
        assert len(image_requests) == 1

    @pytest.mark.asyncio
    async def test_explicit_filename(self, asset_store):
        """Test a caller-chosen name replaces the URL-derived one."""
        ref = await asset_store.store_image(
            "venues",
            "the-crown",
            "https://maps.googleapis.com/maps/api/place/photo?photo_reference=abc",
            position=1,
            filename="google-place.jpg",
        )

        assert ref.filename == "google-place.jpg"
        assert ref.paths["thumb"] == "uploads/venues/the-crown/thumb_google-place_1.jpg"

    @pytest.mark.asyncio
    async def test_unreadable_image(self, asset_store, local_storage):
        """Test that a non-image body raises AssetError and stores nothing."""
        with pytest.raises(AssetError):
            await asset_store.store_image(
                "venues", "the-crown", "https://cdn.example.com/notanimage.jpg"
            )

        assert local_storage.list("uploads/venues/the-crown/") == []

    @pytest.mark.asyncio
    async def test_download_failure_propagates(self, asset_store):
        """Test that a 404 surfaces as DownloadError."""
        with pytest.raises(DownloadError):
            await asset_store.store_image("venues", "the-crown", "https://cdn.example.com/missing.jpg")


class TestRelocate:
    """Tests for AssetStore.relocate."""

    def test_moves_every_file(self, asset_store, local_storage):
        """Test all files move to the new slug directory."""
        local_storage.put("uploads/venues/old/original_x.jpg", b"o")
        local_storage.put("uploads/venues/old/thumb_x.jpg", b"t")

        moved = asset_store.relocate("venues", "old", "new")

        assert sorted(moved) == [
            "uploads/venues/new/original_x.jpg",
            "uploads/venues/new/thumb_x.jpg",
        ]
        assert local_storage.list("uploads/venues/old/") == []
        assert local_storage.get("uploads/venues/new/original_x.jpg") == b"o"

    def test_same_slug_is_noop(self, asset_store):
        """Test relocating to the same slug does nothing."""
        assert asset_store.relocate("venues", "a", "a") == []

    def test_destination_conflict(self, asset_store, local_storage):
        """Test an existing destination file aborts before anything moves."""
        local_storage.put("uploads/venues/old/original_x.jpg", b"o")
        local_storage.put("uploads/venues/new/original_x.jpg", b"other")

        with pytest.raises(RelocationError):
            asset_store.relocate("venues", "old", "new")

        assert local_storage.get("uploads/venues/old/original_x.jpg") == b"o"
        assert local_storage.get("uploads/venues/new/original_x.jpg") == b"other"

    def test_rolls_back_partial_move(self, tmp_path):
        """Test files already moved are moved back when a later move fails."""

        class FailingSecondMove(LocalStorage):
            moves = 0

            def move(self, src, dst):
                if src.startswith("uploads/venues/old/"):
                    FailingSecondMove.moves += 1
                    if FailingSecondMove.moves == 2:
                        raise OSError("disk full")
                super().move(src, dst)

        storage = FailingSecondMove(str(tmp_path / "static"))
        storage.put("uploads/venues/old/original_x.jpg", b"o")
        storage.put("uploads/venues/old/thumb_x.jpg", b"t")
        store = AssetStore(storage, OwnerLocks())

        with pytest.raises(RelocationError) as exc_info:
            store.relocate("venues", "old", "new")

        assert "disk full" in str(exc_info.value)
        assert storage.exists("uploads/venues/old/original_x.jpg")
        assert storage.exists("uploads/venues/old/thumb_x.jpg")
        assert storage.list("uploads/venues/new/") == []


class TestDeleteAndResolve:
    """Tests for delete_asset and resolve_url."""

    def test_delete_covers_all_naming_strategies(self, asset_store, local_storage):
        """Test that current and legacy files are removed."""
        local_storage.put("uploads/venues/a/original_x.jpg", b"o")
        local_storage.put("uploads/venues/a/thumb_x.jpg", b"t")
        local_storage.put("uploads/venues/a/x_thumb.jpg", b"legacy")

        assert asset_store.delete_asset("venues", "a", "x.jpg") == 3
        assert local_storage.list("uploads/venues/a/") == []

    def test_resolve_current(self, asset_store, local_storage):
        """Test URL of a file stored under the current naming."""
        local_storage.put("uploads/venues/a/thumb_x.jpg", b"t")

        assert asset_store.resolve_url("venues", "a", "x.jpg", "thumb") == "/uploads/venues/a/thumb_x.jpg"

    def test_resolve_falls_back_to_legacy_name(self, asset_store, local_storage):
        """Test that a legacy 'original_' file serves a thumb request."""
        local_storage.put("uploads/venues/a/original_x.jpg", b"o")

        assert asset_store.resolve_url("venues", "a", "x.jpg", "thumb") == "/uploads/venues/a/original_x.jpg"

    def test_resolve_placeholder(self, asset_store):
        """Test owner-kind placeholders when nothing is stored."""
        assert asset_store.resolve_url("venues", "a", "x.jpg") == "/images/default-venue.jpg"
        assert asset_store.resolve_url("performers", "b", None) == default_image_for("performers")
        assert asset_store.resolve_url("events", None, None) == "/images/default-placeholder.png"
        assert asset_store.resolve_url("venues", "a", "x.jpg", default="/custom.png") == "/custom.png"


class TestCleanupDuplicateAssets:
    """Tests for cleanup_duplicate_assets."""

    @pytest.fixture
    def duplicated(self, local_storage):
        """One venue directory holding 3 originals and 2 thumbs, one clean performer."""
        base = time.time() - 1000
        files = [
            ("uploads/venues/a/original_one.jpg", base),
            ("uploads/venues/a/original_two.jpg", base + 10),
            ("uploads/venues/a/original_three.jpg", base + 20),
            ("uploads/venues/a/thumb_one.jpg", base),
            ("uploads/venues/a/thumb_three.jpg", base + 20),
            ("uploads/performers/sam-1/original_sam.jpg", base),
            ("uploads/performers/sam-1/thumb_sam.jpg", base),
        ]
        for path, mtime in files:
            local_storage.put(path, b"x")
            set_mtime(local_storage, path, mtime)
        return local_storage

    def test_keeps_newest_of_each_version(self, asset_store, duplicated):
        """Test that only the newest original and thumb survive."""
        stats = asset_store.cleanup_duplicate_assets()

        assert stats == {
            "directories_checked": 2,
            "directories_with_duplicates": 1,
            "files_removed": 3,
            "storage_type": "local",
        }
        assert [o.name for o in duplicated.list("uploads/venues/a/")] == [
            "original_three.jpg",
            "thumb_three.jpg",
        ]
        assert len(duplicated.list("uploads/performers/")) == 2

    def test_dry_run_deletes_nothing(self, asset_store, duplicated):
        """Test dry run reports the same counts without deleting."""
        stats = asset_store.cleanup_duplicate_assets(dry_run=True)

        assert stats["files_removed"] == 3
        assert len(duplicated.list("uploads/venues/a/")) == 5

    def test_owner_kinds(self, asset_store, duplicated):
        """Test restricting cleanup to some owner kinds."""
        stats = asset_store.cleanup_duplicate_assets(owner_kinds=("performers",))

        assert stats["directories_checked"] == 1
        assert stats["files_removed"] == 0

    @pytest.mark.asyncio
    async def test_reused_image_is_kept(self, asset_store, local_storage):
        """Test an image that comes back after a newer one is the one kept."""
        old = time.time() - 1000
        a = await asset_store.store_image("venues", "the-crown", "https://cdn.example.com/a.png")
        for path in a.paths.values():
            set_mtime(local_storage, path, old)
        b = await asset_store.store_image("venues", "the-crown", "https://cdn.example.com/b.png")
        for path in b.paths.values():
            set_mtime(local_storage, path, old + 10)

        again = await asset_store.store_image("venues", "the-crown", "https://cdn.example.com/a.png")
        asset_store.cleanup_duplicate_assets()

        assert again.reused is True
        assert [o.name for o in local_storage.list("uploads/venues/the-crown/")] == [
            "original_a.png",
            "thumb_a.png",
        ]
        assert asset_store.resolve_url("venues", "the-crown", "a.png") == (
            "/uploads/venues/the-crown/original_a.png"
        )

    def test_gallery_positions_are_separate_groups(self, asset_store, local_storage):
        """Test each gallery position keeps its own newest original and thumb."""
        base = time.time() - 1000
        files = [
            ("uploads/venues/a/original_old-hero.jpg", base - 100),
            ("uploads/venues/a/original_hero.jpg", base),
            ("uploads/venues/a/thumb_hero.jpg", base),
            ("uploads/venues/a/original_google-place_1.jpg", base + 10),
            ("uploads/venues/a/thumb_google-place_1.jpg", base + 10),
            ("uploads/venues/a/original_google-place_2.jpg", base + 20),
            ("uploads/venues/a/thumb_google-place_2.jpg", base + 20),
        ]
        for path, mtime in files:
            local_storage.put(path, b"x")
            set_mtime(local_storage, path, mtime)

        stats = asset_store.cleanup_duplicate_assets()

        assert stats["files_removed"] == 1
        assert not local_storage.exists("uploads/venues/a/original_old-hero.jpg")
        assert len(local_storage.list("uploads/venues/a/")) == 6

    def test_ignores_unversioned_files(self, asset_store, local_storage):
        """Test files without a version prefix are left alone."""
        local_storage.put("uploads/venues/a/readme.txt", b"x")
        local_storage.put("uploads/venues/a/x_thumb.jpg", b"x")

        stats = asset_store.cleanup_duplicate_assets()

        assert stats["files_removed"] == 0
        assert len(local_storage.list("uploads/venues/a/")) == 2


class TestThumbnailFormats:
    """Stored content keeps the decoded format."""

    @pytest.mark.asyncio
    async def test_gif_original_is_kept(self, local_storage):
        """Test a GIF is stored as .gif."""
        gif = image_bytes("GIF")

        def handler(request):
            return httpx.Response(200, content=gif, headers={"content-type": "image/gif"})

        store = AssetStore(local_storage, OwnerLocks(), http_client=mock_client(handler))
        ref = await store.store_image("venues", "a", "https://cdn.example.com/anim.gif")

        assert ref.filename == "anim.gif"
        assert local_storage.get(ref.paths["original"]) == gif
