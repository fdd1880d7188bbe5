"""
Scraping job model for tracking index and detail job execution.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from quizscout.models.base import Base, JSONType

JOB_STATUSES = (
    "queued",
    "running",
    "completed",
    "retryable_failure",
    "discarded",
    "failed",
    "interrupted",
)


class ScrapingJob(Base):
    """
    Model for tracking scraping job execution and status.

    Index jobs own their detail jobs through parent_job_id; per-venue
    outcomes live in the detail job's metadata.
    Note: Does not use TimestampMixin to use custom timestamp fields.
    """

    __tablename__ = "scraping_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Job details
    job_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="'index' or 'detail'",
    )
    source: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True, comment="Source registry name"
    )
    parent_job_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("scraping_jobs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    venue_identity: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, comment="Candidate URL or name for detail jobs"
    )

    # Status tracking
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="'queued', 'running', 'completed', 'retryable_failure', 'discarded', 'failed', 'interrupted'",
    )
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    items_scraped: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Number of items successfully processed"
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta: Mapped[Dict[str, Any]] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )

    # Timing
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    def __repr__(self) -> str:
        return (
            f"<ScrapingJob(id={self.id}, type='{self.job_type}', "
            f"source='{self.source}', status='{self.status}', attempt={self.attempt})>"
        )

    @property
    def duration_seconds(self) -> Optional[float]:
        """Calculate job duration in seconds."""
        if self.completed_at:
            delta = self.completed_at - self.started_at
            return delta.total_seconds()
        return None

    @property
    def is_running(self) -> bool:
        return self.status == "running"

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @property
    def is_terminal(self) -> bool:
        """Whether the job will not run again."""
        return self.status in ("completed", "discarded", "failed", "interrupted")
