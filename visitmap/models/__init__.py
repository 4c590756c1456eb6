"""
Database models for VisitMap.

Three tables:
1. areas - seeded once from the countries dataset
2. users - visitors, unique by name
3. marks - (user, area) visit records
"""

from visitmap.models.base import Base, dialect_insert, make_engine, make_session_factory
from visitmap.models.area import Area, AREA_TYPE_COUNTRY
from visitmap.models.user import User
from visitmap.models.mark import Mark

__all__ = [
    'Base',
    'dialect_insert',
    'make_engine',
    'make_session_factory',
    'Area',
    'AREA_TYPE_COUNTRY',
    'User',
    'Mark',
]
