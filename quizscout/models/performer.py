"""
Performer model: quizmaster/host attached to events.
"""

from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from quizscout.models.base import Base, TimestampMixin


class Performer(Base, TimestampMixin):
    """Quiz host, identified per source by name."""

    __tablename__ = "performers"
    __table_args__ = (
        UniqueConstraint("name", "source_id", name="uq_performers_name_source"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    source_id: Mapped[int] = mapped_column(
        ForeignKey("sources.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    profile_image: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="Stored asset filename"
    )
    profile_image_url: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, comment="Source URL the profile image was fetched from"
    )

    def __repr__(self) -> str:
        return f"<Performer(id={self.id}, name='{self.name}', source_id={self.source_id})>"

    @property
    def asset_slug(self) -> str:
        """Directory key for this performer's images."""
        from quizscout.utils.string_utils import slugify

        return f"{slugify(self.name)}-{self.id}"
