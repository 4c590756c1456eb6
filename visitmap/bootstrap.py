"""
Startup sequence - gets the database ready before the first request.

Stages:
1. Wait: poll the database until it accepts connections
2. Migrate: apply pending Alembic revisions
3. Seed: upsert every country from the GeoJSON dataset into ``areas``

Every stage is idempotent; restarting the process repeats them safely.
"""

import json
import logging
import os
import time
from typing import Iterator, Tuple

from alembic import command
from alembic.config import Config
from sqlalchemy import Engine, text
from sqlalchemy.exc import SQLAlchemyError

from visitmap.errors import ConnectivityError, MigrationError, SeedError
from visitmap.models import AREA_TYPE_COUNTRY, Area, dialect_insert

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = os.path.join(os.path.dirname(__file__), 'migrations')

# GeoJSON property names carrying the area key and label
ID_PROPERTY = 'ISO3166-1-Alpha-3'
NAME_PROPERTY = 'name'


def wait_for_database(
    engine: Engine,
    attempts: int = 30,
    interval: float = 1.0,
) -> None:
    """
    Block until the database answers ``SELECT 1``.

    Raises:
        ConnectivityError: still unreachable after ``attempts`` tries.
    """
    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            with engine.connect() as connection:
                connection.execute(text('SELECT 1'))
            if attempt > 1:
                logger.info(f'Database reachable after {attempt} attempts')
            return
        except SQLAlchemyError as e:
            last_error = e
            logger.debug(f'Database not ready (attempt {attempt}/{attempts}): {e}')
            if attempt < attempts:
                time.sleep(interval)

    raise ConnectivityError(
        f'Database unreachable after {attempts} attempts: {last_error}'
    )


def apply_migrations(engine: Engine) -> None:
    """
    Upgrade the schema to the latest revision.

    A no-op when nothing is pending.

    Raises:
        MigrationError: Alembic or the database rejected a revision.
    """
    alembic_cfg = Config()
    alembic_cfg.set_main_option('script_location', MIGRATIONS_DIR)

    try:
        with engine.begin() as connection:
            alembic_cfg.attributes['connection'] = connection
            command.upgrade(alembic_cfg, 'head')
    except Exception as e:
        raise MigrationError(f'Applying migrations failed: {e}') from e

    logger.info('Database schema is up to date')


def iter_dataset_areas(path: str) -> Iterator[Tuple[str, str]]:
    """
    Yield ``(area_id, name)`` for every usable feature in a GeoJSON file.

    Features missing either property are skipped silently.

    Raises:
        SeedError: the file cannot be read or is not a feature collection.
    """
    try:
        with open(path, encoding='utf-8') as f:
            document = json.load(f)
    except (OSError, ValueError) as e:
        raise SeedError(f'Cannot load areas dataset {path}: {e}') from e

    features = document.get('features') if isinstance(document, dict) else None
    if not isinstance(features, list):
        raise SeedError(f'Areas dataset {path} has no feature list')

    for feature in features:
        if not isinstance(feature, dict):
            continue
        properties = feature.get('properties') or {}
        area_id = properties.get(ID_PROPERTY)
        name = properties.get(NAME_PROPERTY)
        if not area_id or not name:
            continue
        yield area_id, name


def seed_areas(engine: Engine, dataset_path: str) -> int:
    """
    Insert every country in the dataset into ``areas``.

    Existing rows are left untouched (ON CONFLICT DO NOTHING), so running
    this twice is harmless. Runs in one transaction: a failing row rolls
    back the whole seed.

    Returns count of dataset features processed.

    Raises:
        SeedError: unreadable dataset, or an insert failed (``area_id`` set).
    """
    areas = list(iter_dataset_areas(dataset_path))
    insert = dialect_insert(engine.dialect.name)

    inserted = 0
    current_id = None
    try:
        with engine.begin() as connection:
            for current_id, name in areas:
                stmt = insert(Area.__table__).values(
                    id=current_id,
                    type=AREA_TYPE_COUNTRY,
                    name=name,
                ).on_conflict_do_nothing(index_elements=['id'])
                result = connection.execute(stmt)
                inserted += result.rowcount or 0
    except SQLAlchemyError as e:
        raise SeedError(f'Insert area {current_id} failed: {e}', area_id=current_id) from e

    logger.info(
        f'Seeded areas from {dataset_path}: {len(areas)} in dataset, '
        f'{inserted} new'
    )
    return len(areas)
