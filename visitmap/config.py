"""
Configuration management for VisitMap.

Loads settings from environment variables (and a local .env file, if present).
The database credentials are mandatory; everything else has a sensible
default. All configuration is centralized here to avoid magic strings
scattered throughout the codebase.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv
from sqlalchemy.engine import URL

from visitmap.errors import ConfigError

REQUIRED_VARIABLES = ('DB_HOST', 'DB_USER', 'DB_PASSWORD', 'DB_NAME')


@dataclass(frozen=True)
class DatabaseConfig:
    """PostgreSQL connection settings."""
    host: str
    user: str
    password: str
    name: str
    port: int = 5432

    # Startup readiness check
    connect_attempts: int = 30
    connect_interval: float = 1.0

    @property
    def url(self) -> URL:
        return URL.create(
            'postgresql+psycopg2',
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.name,
        )


@dataclass(frozen=True)
class QueryConfig:
    """Per-call deadlines for the data access layer."""
    list_timeout_seconds: float = 3.0
    write_timeout_seconds: float = 2.0


@dataclass(frozen=True)
class CacheConfig:
    """Area listing cache settings."""
    ttl_seconds: float = 2.0


@dataclass(frozen=True)
class HttpConfig:
    """HTTP listener settings."""
    host: str = '0.0.0.0'
    port: int = 8000
    shutdown_grace_seconds: float = 5.0


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    database: DatabaseConfig
    queries: QueryConfig = field(default_factory=QueryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    http: HttpConfig = field(default_factory=HttpConfig)

    # Frontend assets and the GeoJSON dataset seeded at startup
    static_dir: str = './static'
    dataset_path: Optional[str] = None

    debug: bool = False

    @property
    def areas_dataset(self) -> str:
        return self.dataset_path or os.path.join(self.static_dir, 'countries.geojson')


def _require(env: Mapping[str, str], key: str) -> str:
    value = env.get(key, '')
    if not value:
        raise ConfigError(f'Missing required environment variable: {key}')
    return value


def _number(env: Mapping[str, str], key: str, default, cast=float):
    raw = env.get(key, '')
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f'Invalid value for {key}: {raw!r}') from None


def load_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """
    Load and validate all configuration.

    Args:
        env: Mapping to read from. Defaults to the process environment,
             after merging a local .env file.

    Raises:
        ConfigError: a required variable is missing or a number is malformed.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    host, user, password, name = (_require(env, key) for key in REQUIRED_VARIABLES)

    database = DatabaseConfig(
        host=host,
        user=user,
        password=password,
        name=name,
        port=_number(env, 'DB_PORT', 5432, int),
        connect_attempts=_number(env, 'DB_CONNECT_ATTEMPTS', 30, int),
    )

    return AppConfig(
        database=database,
        cache=CacheConfig(ttl_seconds=_number(env, 'CACHE_TTL_SECONDS', 2.0)),
        http=HttpConfig(
            port=_number(env, 'HTTP_PORT', 8000, int),
            shutdown_grace_seconds=_number(env, 'SHUTDOWN_GRACE_SECONDS', 5.0),
        ),
        static_dir=env.get('STATIC_DIR') or './static',
        dataset_path=env.get('AREAS_DATASET') or None,
        debug=env.get('FLASK_DEBUG', '0') == '1',
    )
