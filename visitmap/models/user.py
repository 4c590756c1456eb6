"""
User model - a visitor identified only by a display name.
"""

from sqlalchemy import Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from visitmap.models.base import Base


class User(Base):
    """Visitor created lazily by the first mark carrying its name."""

    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Natural dedup key
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)

    def __repr__(self) -> str:
        return f'<User {self.id} {self.name!r}>'
