"""
Mark model - one visitor has been to one area.

The composite primary key doubles as the (user_id, area_id) uniqueness
constraint used by the ON CONFLICT DO NOTHING insert.
"""

from sqlalchemy import ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from visitmap.models.base import Base


class Mark(Base):
    """Append-only visit record."""

    __tablename__ = 'marks'

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey('users.id'),
        primary_key=True,
    )

    area_id: Mapped[str] = mapped_column(
        Text,
        ForeignKey('areas.id'),
        primary_key=True,
    )

    __table_args__ = (
        # Per-area visitor lookups and counts
        Index('ix_marks_area_id', 'area_id'),
    )

    def __repr__(self) -> str:
        return f'<Mark user={self.user_id} area={self.area_id}>'
