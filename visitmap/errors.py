"""
Error taxonomy for VisitMap.

Startup errors (config, connectivity, migrations, seeding) are fatal and
terminate the process. Per-request errors are caught at the HTTP boundary
and translated into minimal client responses.
"""

from typing import Optional


class VisitMapError(Exception):
    """Base class for all application errors."""


class ConfigError(VisitMapError):
    """A required setting is missing or malformed."""


class ConnectivityError(VisitMapError):
    """The database stayed unreachable for the whole readiness window."""


class MigrationError(VisitMapError):
    """Schema migrations could not be applied."""


class SeedError(VisitMapError):
    """The area dataset could not be loaded into the store."""

    def __init__(self, message: str, area_id: Optional[str] = None):
        super().__init__(message)
        self.area_id = area_id


class ValidationError(VisitMapError):
    """Client-supplied input is malformed."""


class QueryError(VisitMapError):
    """A data access operation failed."""


class QueryTimeout(QueryError):
    """A data access operation exceeded its deadline."""


class UnknownAreaError(QueryError):
    """A mark referenced an area code that was never seeded."""

    def __init__(self, area_id: str):
        super().__init__(f'Unknown area: {area_id}')
        self.area_id = area_id
