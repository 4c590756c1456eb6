"""
VisitMap Backend Package.

Map of countries where visitors mark the places they have been, built with
Flask, SQLAlchemy and Alembic.

Modules:
    api/          REST endpoints for areas, visitors and marks
    models/       SQLAlchemy ORM models (Area, User, Mark) and engine setup
    migrations/   Alembic revisions, applied at startup
    bootstrap.py  Database readiness, migrations and GeoJSON seeding
    store.py      Data access layer with per-call deadlines
    cache.py      Thread-safe TTL cache for the area listing
    config.py     Centralized configuration from environment variables
"""

__version__ = '1.0.0'
