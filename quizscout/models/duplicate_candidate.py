"""
Advisory duplicate-venue pairs awaiting human review.
"""

from typing import Optional

from sqlalchemy import CheckConstraint, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from quizscout.models.base import Base, TimestampMixin


class VenueDuplicateCandidate(Base, TimestampMixin):
    """
    Pair of venues that look like the same place.

    Rows are only ever written by the duplicate report; nothing in the
    pipeline merges venues based on them. venue_id < duplicate_of_id.
    """

    __tablename__ = "venue_duplicate_candidates"
    __table_args__ = (
        UniqueConstraint("venue_id", "duplicate_of_id", name="uq_venue_duplicate_pair"),
        CheckConstraint("venue_id < duplicate_of_id", name="ck_venue_duplicate_ordered"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    venue_id: Mapped[int] = mapped_column(
        ForeignKey("venues.id", ondelete="CASCADE"), nullable=False, index=True
    )
    duplicate_of_id: Mapped[int] = mapped_column(
        ForeignKey("venues.id", ondelete="CASCADE"), nullable=False, index=True
    )
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    name_similarity: Mapped[float] = mapped_column(Float, nullable=False)
    location_similarity: Mapped[float] = mapped_column(Float, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", comment="'pending', 'confirmed', 'dismissed'"
    )

    def __repr__(self) -> str:
        return (
            f"<VenueDuplicateCandidate(venue_id={self.venue_id}, "
            f"duplicate_of_id={self.duplicate_of_id}, confidence={self.confidence:.2f})>"
        )
