"""
SQLAlchemy base configuration and engine construction.

Uses SQLAlchemy 2.0 style with type hints and declarative base.
PostgreSQL in production; SQLite is accepted for development and tests.
"""

from typing import Union

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import URL
from sqlalchemy.orm import DeclarativeBase, sessionmaker


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def make_engine(url: Union[str, URL], echo: bool = False) -> Engine:
    """
    Create the process-wide engine (and its connection pool).

    Created once at startup and disposed on shutdown.
    """
    engine_kwargs = {
        'echo': echo,  # Log SQL in debug mode
    }

    is_sqlite = str(url).startswith('sqlite')
    if is_sqlite:
        # Request threads share the pool
        engine_kwargs['connect_args'] = {'check_same_thread': False}
    else:
        engine_kwargs['pool_pre_ping'] = True
        engine_kwargs['pool_size'] = 10
        # Callers bound their own wait; this only caps an abandoned checkout
        engine_kwargs['pool_timeout'] = 5
        engine_kwargs['connect_args'] = {'connect_timeout': 5}

    engine = create_engine(url, **engine_kwargs)

    if is_sqlite:
        @event.listens_for(engine, 'connect')
        def set_sqlite_pragma(dbapi_connection, connection_record):
            """
            Configure SQLite for concurrent request threads.

            WAL mode allows reads during writes; foreign keys must be
            switched on per connection for marks to reject unknown areas.
            """
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA journal_mode=WAL')
            cursor.execute('PRAGMA synchronous=NORMAL')
            cursor.execute('PRAGMA foreign_keys=ON')
            cursor.close()

    return engine


def dialect_insert(dialect_name: str):
    """
    Return the INSERT construct supporting ON CONFLICT for this dialect.

    Both PostgreSQL and SQLite speak ``ON CONFLICT ... DO NOTHING``, but
    SQLAlchemy exposes it through dialect-specific constructs.
    """
    if dialect_name == 'postgresql':
        return postgresql_insert
    if dialect_name == 'sqlite':
        return sqlite_insert
    raise ValueError(f'Unsupported database dialect: {dialect_name}')


def make_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to the given engine."""
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,  # Avoid lazy loading issues
    )
