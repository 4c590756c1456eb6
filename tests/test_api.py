"""HTTP-level tests using the Flask test client."""

import logging

import pytest
from sqlalchemy import func, select

from visitmap import app as app_module
from visitmap.app import create_app
from visitmap.config import AppConfig, DatabaseConfig
from visitmap.errors import QueryError, QueryTimeout
from visitmap.models import Mark, User


def _count(app, model):
    engine = app.extensions['visitmap'].engine
    with engine.connect() as connection:
        return connection.execute(select(func.count()).select_from(model)).scalar_one()


def _mark(client, user, area_id):
    return client.post('/api/mark', json={'user': user, 'area_id': area_id})


def test_end_to_end_mark_flow(make_app, write_dataset, clock):
    app = make_app(write_dataset([{'ISO3166-1-Alpha-3': 'FRA', 'name': 'France'}]))
    client = app.test_client()

    response = client.get('/api/areas')
    assert response.status_code == 200
    assert response.get_json() == [{'id': 'FRA', 'name': 'France', 'type': 'country', 'count': 0}]

    response = _mark(client, 'Alice', 'FRA')
    assert response.status_code == 200
    assert response.data == b''

    # Still inside the cache window
    assert client.get('/api/areas').get_json()[0]['count'] == 0

    clock.advance(2)
    assert client.get('/api/areas').get_json() == [
        {'id': 'FRA', 'name': 'France', 'type': 'country', 'count': 1},
    ]
    assert client.get('/api/users?area_id=FRA').get_json() == ['Alice']


def test_list_users_without_filter(client):
    _mark(client, 'Alice', 'FRA')
    _mark(client, 'Bob', 'ESP')

    assert sorted(client.get('/api/users').get_json()) == ['Alice', 'Bob']
    assert sorted(client.get('/api/users?area_id=').get_json()) == ['Alice', 'Bob']


def test_list_users_for_unmarked_area_is_empty(client):
    response = client.get('/api/users?area_id=DEU')

    assert response.status_code == 200
    assert response.get_json() == []


def test_marking_twice_is_not_an_error(app, client):
    assert _mark(client, 'Alice', 'FRA').status_code == 200
    assert _mark(client, 'Alice', 'FRA').status_code == 200

    assert _count(app, User) == 1
    assert _count(app, Mark) == 1


@pytest.mark.parametrize('body', [
    {'user': '', 'area_id': 'FRA'},
    {'user': 'Alice', 'area_id': ''},
    {'user': 'Alice'},
    {'area_id': 'FRA'},
    {'user': 42, 'area_id': 'FRA'},
    ['Alice', 'FRA'],
])
def test_mark_rejects_invalid_input(app, client, body):
    response = client.post('/api/mark', json=body)

    assert response.status_code == 400
    assert 'error' in response.get_json()
    assert _count(app, User) == 0
    assert _count(app, Mark) == 0


def test_mark_rejects_malformed_body(app, client):
    response = client.post('/api/mark', data='{"user": "Alice", ', content_type='application/json')

    assert response.status_code == 400
    assert response.get_json() == {'error': 'invalid JSON'}
    assert _count(app, User) == 0


def test_mark_rejects_unknown_area(app, client):
    response = _mark(client, 'Alice', 'ZZZ')

    assert response.status_code == 404
    assert response.get_json() == {'error': 'unknown area'}
    assert _count(app, Mark) == 0


def test_mark_keeps_names_verbatim(app, client):
    assert _mark(client, ' ', 'FRA').status_code == 200
    assert _mark(client, ' Alice', 'FRA').status_code == 200
    assert _mark(client, 'Alice', 'FRA').status_code == 200

    assert _count(app, User) == 3
    assert sorted(client.get('/api/users?area_id=FRA').get_json()) == [' ', ' Alice', 'Alice']


def test_mark_accepts_json_without_content_type(app, client):
    response = client.post('/api/mark', data='{"user": "Alice", "area_id": "FRA"}')

    assert response.status_code == 200
    assert _count(app, Mark) == 1


def test_areas_internal_error_is_not_leaked(app, client, monkeypatch):
    store = app.extensions['visitmap'].store

    def broken():
        raise QueryTimeout('list_areas exceeded secret deadline')

    monkeypatch.setattr(store, 'list_areas', broken)

    response = client.get('/api/areas')

    assert response.status_code == 500
    assert response.get_json() == {'error': 'Internal server error'}
    assert b'secret' not in response.data


def test_users_internal_error_is_not_leaked(app, client, monkeypatch):
    store = app.extensions['visitmap'].store

    def broken(area_id=None):
        raise QueryError('password=hunter2')

    monkeypatch.setattr(store, 'list_visitor_names', broken)

    response = client.get('/api/users?area_id=FRA')

    assert response.status_code == 500
    assert b'hunter2' not in response.data


def test_mark_internal_error(app, client, monkeypatch):
    store = app.extensions['visitmap'].store

    def broken(user_id, area_id):
        raise QueryError('disk full')

    monkeypatch.setattr(store, 'record_mark', broken)

    response = _mark(client, 'Alice', 'FRA')

    assert response.status_code == 500
    assert response.get_json() == {'error': 'Internal server error'}


def test_static_index_and_assets(client):
    index = client.get('/')
    assert index.status_code == 200
    assert b'VisitMap' in index.data

    script = client.get('/app.js')
    assert script.status_code == 200
    assert b'console.log' in script.data


def test_missing_static_file_is_404(client):
    response = client.get('/nope.png')

    assert response.status_code == 404


def test_health(client):
    response = client.get('/health')

    assert response.status_code == 200
    body = response.get_json()
    assert body['status'] == 'ok'
    assert body['database'] is True


def test_requests_are_logged(client, caplog):
    caplog.set_level(logging.INFO, logger='visitmap.app')

    client.get('/api/areas')
    client.post('/api/mark', data='junk', content_type='application/json')

    messages = [record.getMessage() for record in caplog.records if record.name == 'visitmap.app']
    assert any(m.startswith('GET /api/areas 200 ') and m.endswith('ms') for m in messages)
    assert any(m.startswith('POST /api/mark 400 ') for m in messages)


def test_in_flight_counter_returns_to_zero(app, client):
    client.get('/api/areas')
    client.get('/nope.png')

    assert app.extensions['visitmap'].requests.active == 0


def _cli_app(engine, static_dir, dataset_path):
    config = AppConfig(
        database=DatabaseConfig(host='localhost', user='test', password='test', name='test'),
        static_dir=static_dir,
        dataset_path=dataset_path,
    )
    return create_app(config, engine=engine, bootstrap=False)


def test_cli_app_skips_bootstrap(monkeypatch):
    calls = []
    monkeypatch.setattr(app_module, 'create_app', lambda **kwargs: calls.append(kwargs) or 'app')

    assert app_module.create_cli_app() == 'app'
    assert calls == [{'bootstrap': False}]


def test_cli_seed_areas(migrated_engine, static_dir, dataset_path, write_dataset):
    app = _cli_app(migrated_engine, static_dir, dataset_path)
    extra = write_dataset([{'ISO3166-1-Alpha-3': 'ITA', 'name': 'Italy'}])
    runner = app.test_cli_runner()

    result = runner.invoke(args=['seed-areas', extra])

    assert result.exit_code == 0
    assert 'Seeded 1 areas' in result.output
    ids = {area['id'] for area in app.test_client().get('/api/areas').get_json()}
    assert ids == {'ITA'}


def test_cli_db_upgrade(engine, static_dir, dataset_path):
    app = _cli_app(engine, static_dir, dataset_path)
    result = app.test_cli_runner().invoke(args=['db-upgrade'])

    assert result.exit_code == 0
    assert 'up to date' in result.output
