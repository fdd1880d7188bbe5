"""
Standardized exception hierarchy for source scrapers.

Exception Hierarchy:
    ScraperError (base)
    ├── FetchError            network failure or non-200 response (retryable)
    │   └── FetchTimeoutError
    └── ExtractionError       document does not have the expected structure

Usage:
    >>> from quizscout.scrapers.exceptions import ExtractionError
    >>> raise ExtractionError("address", "no pin icon block found", url=url)
"""

from typing import Optional


class ScraperError(Exception):
    """
    Base exception for all scraper-related errors.

    Attributes:
        message: Human-readable error description
        source: Name of the source that raised the error
        recoverable: Whether the error is recoverable (can retry)
        original_error: Original exception if this wraps another error
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        recoverable: bool = False,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.source = source
        self.recoverable = recoverable
        self.original_error = original_error

        full_message = message
        if source:
            full_message = f"[{source}] {message}"

        super().__init__(full_message)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"source={self.source!r}, "
            f"recoverable={self.recoverable})"
        )


class FetchError(ScraperError):
    """
    Raised when a document cannot be fetched.

    Covers connection failures and any non-200 status. Always recoverable:
    the detail job retries it with exponential backoff.

    Attributes:
        url: URL that was requested
        status_code: HTTP status code, None for transport failures
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        source: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            recoverable=True,
            original_error=original_error,
        )
        self.url = url
        self.status_code = status_code


class FetchTimeoutError(FetchError):
    """Raised when a fetch exceeds its bounded timeout."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        source: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            url=url,
            source=source,
            original_error=original_error,
        )
        self.timeout_seconds = timeout_seconds


class ExtractionError(ScraperError):
    """
    Raised when a required field is missing from a fetched document.

    Not recoverable: retrying returns the same content.

    Attributes:
        field: Name of the missing or malformed field
        reason: Why the field could not be extracted
        url: Document URL, if known
    """

    def __init__(
        self,
        field: str,
        reason: str,
        url: Optional[str] = None,
        source: Optional[str] = None,
    ):
        super().__init__(
            message=f"Could not extract {field}: {reason}",
            source=source,
            recoverable=False,
        )
        self.field = field
        self.reason = reason
        self.url = url


def log_scraper_error(logger, error: ScraperError) -> None:
    """
    Log a scraper error with consistent formatting.

    Recoverable errors are logged as warnings, the rest as errors.

    Args:
        logger: Logger instance
        error: ScraperError instance
    """
    error_details = {
        "source": error.source,
        "recoverable": error.recoverable,
        "error_type": error.__class__.__name__,
    }

    if isinstance(error, FetchTimeoutError):
        error_details["timeout_seconds"] = error.timeout_seconds
    if isinstance(error, FetchError):
        error_details["status_code"] = error.status_code
        error_details["url"] = error.url
    elif isinstance(error, ExtractionError):
        error_details["field"] = error.field
        error_details["url"] = error.url

    if error.recoverable:
        logger.warning(f"{error.message} | Details: {error_details}")
    else:
        logger.error(
            f"{error.message} | Details: {error_details}",
            exc_info=error.original_error if error.original_error else None,
        )
