"""
Source model: a configured quiz provider.
"""

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from quizscout.models.base import Base, TimestampMixin


class Source(Base, TimestampMixin):
    """
    Reference row for a scraped provider.
    Created from the source registry on first use, never modified by the pipeline.
    """

    __tablename__ = "sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    base_url: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[str] = mapped_column(String(20), nullable=False, default="1")

    def __repr__(self) -> str:
        return f"<Source(id={self.id}, slug='{self.slug}', version='{self.version}')>"
