"""
Asset path layout and filename conventions.

Layout: uploads/{owner_kind}/{owner_slug}/{stored name}

Stored names have changed over time, so each convention is a naming
strategy. Strategies are tried in NAMING_STRATEGIES order whenever an
existing file has to be found (URL resolution) or removed (delete).
New files are always written with the first one.
"""

import os
import re
from typing import Optional
from urllib.parse import unquote, urlsplit

VERSIONS = ("original", "thumb")

UPLOADS_ROOT = "uploads"

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif"}

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/avif": ".avif",
}


def owner_dir(owner_kind: str, owner_slug: str) -> str:
    """
    Directory holding one owner's assets.

    Examples:
        >>> owner_dir("venues", "the-crown")
        'uploads/venues/the-crown'
    """
    return f"{UPLOADS_ROOT}/{owner_kind}/{owner_slug}"


def split_ext(filename: str):
    stem, ext = os.path.splitext(filename)
    return stem, ext.lower()


def extension_for(filename: str, content_type: Optional[str] = None) -> Optional[str]:
    """Extension from the filename, else from the content type; None if neither is an image."""
    _, ext = split_ext(filename)
    if ext in ALLOWED_EXTENSIONS:
        return ext
    if content_type:
        return CONTENT_TYPE_EXTENSIONS.get(content_type.split(";")[0].strip().lower())
    return None


def normalize_filename(url: str, content_type: Optional[str] = None) -> str:
    """
    Filesystem-safe filename for an image URL.

    URL-decodes the last path segment, drops the query string, turns
    spaces, plus signs and underscores into dashes and lower-cases the
    result. Underscores are reserved for the version and position parts of
    stored names. The extension comes from the path, or from content_type
    when the path has none.

    Examples:
        >>> normalize_filename("https://cdn.example.com/img/Pub%20Quiz+Night.JPG?w=300")
        'pub-quiz-night.jpg'
        >>> normalize_filename("https://cdn.example.com/photo", "image/png")
        'photo.png'
        >>> normalize_filename("https://cdn.example.com/quiz_night_2.jpg")
        'quiz-night-2.jpg'
    """
    path = urlsplit(url).path
    name = unquote(path.rsplit("/", 1)[-1])
    name = re.sub(r"[\s+_]+", "-", name)
    name = re.sub(r"[^A-Za-z0-9._-]", "", name)
    name = re.sub(r"-{2,}", "-", name).strip("-").lower()

    stem, ext = split_ext(name)
    if ext not in ALLOWED_EXTENSIONS:
        # Dots inside the stem are kept; only a real image suffix counts
        stem = name
        ext = extension_for("", content_type) or ""

    return f"{stem or 'image'}{ext}"


class NamingStrategy:
    """Maps (version, filename, position) to a stored file name."""

    name = "base"

    def stored_name(self, version: str, filename: str, position: Optional[int] = None) -> str:
        raise NotImplementedError

    def path(
        self,
        owner_kind: str,
        owner_slug: str,
        version: str,
        filename: str,
        position: Optional[int] = None,
    ) -> str:
        return f"{owner_dir(owner_kind, owner_slug)}/{self.stored_name(version, filename, position)}"


class CurrentNaming(NamingStrategy):
    """
    {version}_{stem}[_{position}]{ext}

    Examples:
        >>> CurrentNaming().stored_name("thumb", "quiz.jpg", 2)
        'thumb_quiz_2.jpg'
    """

    name = "current"

    def stored_name(self, version, filename, position=None):
        stem, ext = split_ext(filename)
        suffix = f"_{position}" if position is not None else ""
        return f"{version}_{stem}{suffix}{ext}"


class LegacyPrefixNaming(NamingStrategy):
    """
    Historical hero images: the name itself already started with
    "original_" and no thumbnail existed, so every version maps to the
    same file.

    Examples:
        >>> LegacyPrefixNaming().stored_name("thumb", "quiz.jpg")
        'original_quiz.jpg'
    """

    name = "legacy_prefix"

    def stored_name(self, version, filename, position=None):
        if filename.startswith("original_"):
            return filename
        return f"original_{filename}"


class VersionSuffixNaming(NamingStrategy):
    """
    Older uploader convention: {stem}_{version}[_{position}]{ext}

    Examples:
        >>> VersionSuffixNaming().stored_name("original", "quiz.jpg", 1)
        'quiz_original_1.jpg'
    """

    name = "version_suffix"

    def stored_name(self, version, filename, position=None):
        stem, ext = split_ext(filename)
        suffix = f"_{position}" if position is not None else ""
        return f"{stem}_{version}{suffix}{ext}"


NAMING_STRATEGIES = (CurrentNaming(), LegacyPrefixNaming(), VersionSuffixNaming())

CURRENT_NAMING = NAMING_STRATEGIES[0]


def version_of(stored_name: str) -> Optional[str]:
    """
    Version of a stored file judged by its prefix, None for other files.

    Examples:
        >>> version_of("thumb_quiz.jpg")
        'thumb'
    """
    for version in VERSIONS:
        if stored_name.startswith(f"{version}_"):
            return version
    return None


def position_of(stored_name: str) -> Optional[int]:
    """
    Position suffix of a current-naming stored file, None for single images.

    Examples:
        >>> position_of("thumb_google-place_3.jpg")
        3
        >>> position_of("original_hero-2.jpg") is None
        True
    """
    version = version_of(stored_name)
    if version is None:
        return None
    stem, _ = split_ext(stored_name[len(version) + 1:])
    match = re.search(r"_(\d+)$", stem)
    return int(match.group(1)) if match else None
