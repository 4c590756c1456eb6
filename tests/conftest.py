"""Shared fixtures: a migrated SQLite database, datasets, store and app."""

import json

import pytest

from visitmap.app import create_app
from visitmap.bootstrap import apply_migrations, seed_areas
from visitmap.config import AppConfig, DatabaseConfig
from visitmap.models import make_engine
from visitmap.store import AreaStore

DEFAULT_FEATURES = [
    {'ISO3166-1-Alpha-3': 'FRA', 'name': 'France'},
    {'ISO3166-1-Alpha-3': 'ESP', 'name': 'Spain'},
    {'ISO3166-1-Alpha-3': 'DEU', 'name': 'Germany'},
]


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def write_dataset(tmp_path):
    """Factory writing a GeoJSON FeatureCollection from property dicts."""
    counter = {'n': 0}

    def _write(properties_list, name=None):
        counter['n'] += 1
        path = tmp_path / (name or f'countries-{counter["n"]}.geojson')
        document = {
            'type': 'FeatureCollection',
            'features': [
                {'type': 'Feature', 'properties': props, 'geometry': None}
                for props in properties_list
            ],
        }
        path.write_text(json.dumps(document), encoding='utf-8')
        return str(path)

    return _write


@pytest.fixture
def dataset_path(write_dataset):
    return write_dataset(DEFAULT_FEATURES)


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f'sqlite:///{tmp_path / "visitmap.db"}')
    yield engine
    engine.dispose()


@pytest.fixture
def migrated_engine(engine):
    apply_migrations(engine)
    return engine


@pytest.fixture
def seeded_engine(migrated_engine, dataset_path):
    seed_areas(migrated_engine, dataset_path)
    return migrated_engine


@pytest.fixture
def store(seeded_engine):
    store = AreaStore(seeded_engine)
    yield store
    store.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def static_dir(tmp_path):
    path = tmp_path / 'static'
    path.mkdir()
    (path / 'index.html').write_text('<html><body>VisitMap</body></html>', encoding='utf-8')
    (path / 'app.js').write_text('console.log("map");', encoding='utf-8')
    return str(path)


@pytest.fixture
def make_app(engine, clock, static_dir, dataset_path):
    """Factory building a bootstrapped app, optionally with another dataset."""

    def _make(dataset=None):
        config = AppConfig(
            database=DatabaseConfig(
                host='localhost',
                user='test',
                password='test',
                name='test',
                connect_attempts=1,
                connect_interval=0,
            ),
            static_dir=static_dir,
            dataset_path=dataset or dataset_path,
        )
        return create_app(config, engine=engine, clock=clock)

    return _make


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()
