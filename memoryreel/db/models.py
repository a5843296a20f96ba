"""SQLAlchemy ORM models for MemoryReel."""

from datetime import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class MediaRow(Base):
    """One library record.

    Only these four columns are guaranteed; every other attribute is packed
    into ``description`` by memoryreel.codec.
    """
    __tablename__ = "media"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )

    def __repr__(self) -> str:
        return f"<MediaRow {self.id} {self.title!r}>"
