"""
Country and City reference models.

Both are created on first reference by the entity store and never deleted
by the pipeline.
"""

from typing import List, Optional

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quizscout.models.base import Base, TimestampMixin


class Country(Base, TimestampMixin):
    """Country identified by its ISO 3166 alpha-2 code."""

    __tablename__ = "countries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str] = mapped_column(
        String(2), nullable=False, unique=True, index=True, comment="ISO alpha-2, upper case"
    )
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    cities: Mapped[List["City"]] = relationship(back_populates="country")

    def __repr__(self) -> str:
        return f"<Country(id={self.id}, code='{self.code}', name='{self.name}')>"


class City(Base, TimestampMixin):
    """City within a country, identified by slug."""

    __tablename__ = "cities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(150), nullable=False, unique=True, index=True)
    country_id: Mapped[int] = mapped_column(
        ForeignKey("countries.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    country: Mapped[Country] = relationship(back_populates="cities")
    venues: Mapped[List["Venue"]] = relationship(back_populates="city")  # noqa: F821

    def __repr__(self) -> str:
        return f"<City(id={self.id}, slug='{self.slug}')>"

    @property
    def country_code(self) -> Optional[str]:
        return self.country.code if self.country else None
