"""
Custom exceptions for the QuizScout pipeline.

Error taxonomy used by the detail job boundary:

    QuizScoutException (base)
    ├── ValidationError      parsed value fails a domain constraint (not retryable)
    ├── ConflictError        unique-constraint race, recovered by re-read and merge
    ├── AssetError           image download/store failure
    │   ├── DownloadError    retryable
    │   └── RelocationError  fatal for the owner update, isolated to one venue
    └── ConfigurationError

Fetch and extraction failures live in quizscout.scrapers.exceptions.
"""

from typing import Any, Dict, Optional


class QuizScoutException(Exception):
    """Base exception class for all QuizScout exceptions."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(QuizScoutException):
    """
    Raised when a parsed value fails domain constraints.

    Not retryable: the same source content yields the same error.

    Attributes:
        field: Name of the offending field
        value: The rejected value (or text fragment)
        reason: Human-readable explanation
    """

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(
            f"Invalid {field}: {reason} (got {value!r})",
            {"field": field, "value": value, "reason": reason},
        )


class ConflictError(QuizScoutException):
    """Raised when an insert loses a unique-constraint race."""

    def __init__(self, entity: str, identity: Dict[str, Any]):
        self.entity = entity
        self.identity = identity
        super().__init__(
            f"{entity} already exists for {identity}",
            {"entity": entity, "identity": identity},
        )


class AssetError(QuizScoutException):
    """
    Raised when an image asset cannot be downloaded, stored or moved.

    Attributes:
        owner: "{owner_kind}/{owner_slug}" of the affected owner
        recoverable: Whether retrying the operation can succeed
    """

    def __init__(self, message: str, owner: Optional[str] = None, recoverable: bool = False):
        self.owner = owner
        self.recoverable = recoverable
        super().__init__(message, {"owner": owner, "recoverable": recoverable})


class DownloadError(AssetError):
    """Image download failed for a transient reason (timeout, non-200)."""

    def __init__(self, message: str, url: str, status_code: Optional[int] = None,
                 owner: Optional[str] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message, owner=owner, recoverable=True)


class RelocationError(AssetError):
    """Moving an owner's assets to a new slug directory failed."""

    def __init__(self, owner_kind: str, old_slug: str, new_slug: str, reason: str):
        self.owner_kind = owner_kind
        self.old_slug = old_slug
        self.new_slug = new_slug
        super().__init__(
            f"Could not relocate {owner_kind} assets from {old_slug!r} to {new_slug!r}: {reason}",
            owner=f"{owner_kind}/{old_slug}",
            recoverable=False,
        )


class ConfigurationError(QuizScoutException):
    """Raised when configuration is invalid or missing."""

    def __init__(self, config_item: str, expected: str, actual: str = ""):
        self.config_item = config_item
        message = f"Invalid configuration for {config_item}: expected {expected}"
        if actual:
            message += f", got {actual}"
        super().__init__(message, {"expected": expected, "actual": actual})
