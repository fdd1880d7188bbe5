"""
Venue model: one real-world quiz venue.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quizscout.models.base import Base, JSONType, TimestampMixin


class Venue(Base, TimestampMixin):
    """
    Canonical venue record.

    Identity: place_id when the geocoder knows the venue, otherwise the
    (name, postcode) pair. The slug is the key of the venue's asset
    directory; changing it requires relocating those assets first.
    """

    __tablename__ = "venues"
    __table_args__ = (
        UniqueConstraint("name", "postcode", name="uq_venues_name_postcode"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(220), nullable=False, unique=True, index=True)

    # Location
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    postcode: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    place_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, unique=True, comment="External geocoder identity"
    )
    city_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("cities.id", ondelete="RESTRICT"), nullable=True, index=True
    )

    # Contact
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    website: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    facebook: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    instagram: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    meta: Mapped[Dict[str, Any]] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )

    city: Mapped[Optional["City"]] = relationship(back_populates="venues")  # noqa: F821
    events: Mapped[List["Event"]] = relationship(back_populates="venue")  # noqa: F821

    def __repr__(self) -> str:
        return f"<Venue(id={self.id}, slug='{self.slug}', postcode='{self.postcode}')>"

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None
