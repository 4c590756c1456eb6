"""
Area model - static reference data seeded from the countries dataset.

Keyed by the ISO 3166-1 alpha-3 code carried in the GeoJSON properties.
Rows are inserted once at startup and never modified afterwards.
"""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from visitmap.models.base import Base

AREA_TYPE_COUNTRY = 'country'


class Area(Base):
    """
    A named geographic region on the map.

    Fields:
        id: ISO 3166-1 alpha-3 code (e.g., 'FRA')
        type: Category tag, 'country' for every seeded row
        name: Display name (e.g., 'France')
    """

    __tablename__ = 'areas'

    id: Mapped[str] = mapped_column(
        Text,
        primary_key=True,
        comment='ISO 3166-1 alpha-3 code'
    )

    type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=AREA_TYPE_COUNTRY,
    )

    name: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f'<Area {self.id} {self.name}>'
