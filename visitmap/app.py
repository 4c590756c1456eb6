"""
VisitMap Flask Application.

Main entry point for the web application. Initializes:
- Database readiness, schema migrations and area seeding
- Data access layer and area cache
- API routes and request logging
- Static file serving (the map frontend)

Usage:
    python -m visitmap.app

Or through the Flask CLI (no startup bootstrap):
    flask --app visitmap.app:create_cli_app seed-areas static/countries.geojson
"""

import logging
import os
import signal
import sys
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import click
from flask import Flask, g, jsonify, request, send_from_directory
from flask_cors import CORS
from sqlalchemy import Engine
from werkzeug.serving import make_server

from visitmap.api import areas_bp
from visitmap.bootstrap import apply_migrations, seed_areas, wait_for_database
from visitmap.cache import AreaCache
from visitmap.config import AppConfig, HttpConfig, load_config
from visitmap.errors import ConfigError, VisitMapError
from visitmap.models import make_engine
from visitmap.store import AreaStore

logger = logging.getLogger(__name__)


def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


class InFlightRequests:
    """Counts requests currently inside the application."""

    def __init__(self):
        self._active = 0
        self._idle = threading.Condition()

    def enter(self) -> None:
        with self._idle:
            self._active += 1

    def leave(self) -> None:
        with self._idle:
            self._active -= 1
            if self._active <= 0:
                self._idle.notify_all()

    @property
    def active(self) -> int:
        with self._idle:
            return self._active

    def wait_idle(self, timeout: float) -> bool:
        """Block until no request is running. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._active <= 0, timeout=timeout)


@dataclass
class AppServices:
    """Process-lifetime objects owned by the application."""
    engine: Engine
    store: AreaStore
    cache: AreaCache
    requests: InFlightRequests


def create_app(
    config: Optional[AppConfig] = None,
    engine: Optional[Engine] = None,
    clock: Callable[[], float] = time.monotonic,
    bootstrap: bool = True,
) -> Flask:
    """
    Application factory for Flask.

    Args:
        config: Loaded configuration (read from the environment if None).
        engine: Database engine (built from config if None).
        clock: Monotonic time source for the area cache.
        bootstrap: Wait for the database, migrate and seed before serving.
                   Set to False when the schema is managed elsewhere.

    Returns:
        Configured Flask application instance.

    Raises:
        ConnectivityError, MigrationError, SeedError: startup failed.
    """
    config = config or load_config()
    configure_logging(config.debug)

    app = Flask(
        __name__,
        static_folder=os.path.abspath(config.static_dir),
        static_url_path='',
    )
    app.config['VISITMAP'] = config

    # Enable CORS for API endpoints
    CORS(app, resources={r'/api/*': {'origins': '*'}})

    if engine is None:
        engine = make_engine(config.database.url, echo=config.debug)

    if bootstrap:
        logger.info('Waiting for database...')
        wait_for_database(
            engine,
            attempts=config.database.connect_attempts,
            interval=config.database.connect_interval,
        )
        apply_migrations(engine)
        seed_areas(engine, config.areas_dataset)

    store = AreaStore(
        engine,
        list_timeout=config.queries.list_timeout_seconds,
        write_timeout=config.queries.write_timeout_seconds,
    )
    services = AppServices(
        engine=engine,
        store=store,
        cache=AreaCache(store, ttl_seconds=config.cache.ttl_seconds, clock=clock),
        requests=InFlightRequests(),
    )
    app.extensions['visitmap'] = services

    app.register_blueprint(areas_bp)

    # -------------------------------------------------------------------------
    # Request logging
    # -------------------------------------------------------------------------

    @app.before_request
    def start_request():
        g.request_started = time.perf_counter()
        g.request_tracked = True
        services.requests.enter()

    @app.after_request
    def log_request(response):
        started = g.get('request_started', time.perf_counter())
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f'{request.method} {request.path} {response.status_code} {elapsed_ms:.1f}ms')
        return response

    @app.teardown_request
    def finish_request(exc):
        if g.pop('request_tracked', False):
            services.requests.leave()

    # -------------------------------------------------------------------------
    # Frontend routes
    # -------------------------------------------------------------------------

    @app.route('/')
    def index():
        """Serve the map view."""
        return send_from_directory(app.static_folder, 'index.html')

    @app.route('/health')
    def health():
        """Database connectivity check."""
        db_ok = services.store.ping()
        return jsonify({
            'status': 'ok' if db_ok else 'degraded',
            'database': db_ok,
            'cache': services.cache.stats,
        })

    # -------------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------------

    @app.errorhandler(404)
    def not_found(e):
        return {'error': 'Not found'}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return {'error': 'Internal server error'}, 500

    register_cli_commands(app)

    return app


def create_cli_app() -> Flask:
    """
    Application for the Flask CLI.

    Skips the startup bootstrap so maintenance commands run on their own:
        flask --app visitmap.app:create_cli_app db-upgrade
    """
    return create_app(bootstrap=False)


def register_cli_commands(app: Flask) -> None:
    """Maintenance commands for the steps otherwise run at startup."""

    @app.cli.command('db-upgrade')
    def db_upgrade():
        """Apply pending schema migrations."""
        apply_migrations(app.extensions['visitmap'].engine)
        click.echo('Schema is up to date.')

    @app.cli.command('seed-areas')
    @click.argument('path', required=False)
    def seed_areas_command(path):
        """Load areas from a GeoJSON file (default: the configured dataset)."""
        path = path or app.config['VISITMAP'].areas_dataset
        count = seed_areas(app.extensions['visitmap'].engine, path)
        click.echo(f'Seeded {count} areas from {path}.')


def shutdown_server(
    server,
    thread: threading.Thread,
    in_flight: InFlightRequests,
    grace_seconds: float,
) -> bool:
    """
    Stop accepting, close the listener and drain within one grace period.

    Returns True when every request finished in time.
    """
    deadline = time.monotonic() + grace_seconds

    server.shutdown()
    thread.join(timeout=max(0.0, deadline - time.monotonic()))
    server.server_close()

    if not in_flight.wait_idle(max(0.0, deadline - time.monotonic())):
        logger.warning(
            f'{in_flight.active} requests still running after '
            f'{grace_seconds:g}s grace period, abandoning'
        )
        return False
    return True


def run_server(app: Flask, http: HttpConfig, in_flight: InFlightRequests) -> None:
    """
    Serve until SIGINT/SIGTERM, then drain.

    The listener closes first; running requests get
    ``http.shutdown_grace_seconds`` to finish and are abandoned afterwards.
    """
    server = make_server(http.host, http.port, app, threaded=True)
    stop = threading.Event()

    def request_shutdown(signum, frame):
        logger.info(f'Received signal {signum}, shutting down')
        stop.set()

    signal.signal(signal.SIGINT, request_shutdown)
    signal.signal(signal.SIGTERM, request_shutdown)

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    logger.info(f'Starting VisitMap on http://{http.host}:{http.port}')

    while not stop.wait(timeout=1.0):
        pass

    shutdown_server(server, thread, in_flight, http.shutdown_grace_seconds)
    logger.info('Server stopped')


def main() -> int:
    """Load config, bootstrap the database and serve. Returns exit status."""
    try:
        config = load_config()
    except ConfigError as e:
        print(e, file=sys.stderr)
        return 1

    try:
        app = create_app(config)
    except VisitMapError as e:
        logger.critical(f'Startup failed: {e}')
        return 1

    services = app.extensions['visitmap']
    try:
        run_server(app, config.http, services.requests)
    finally:
        services.store.close()
        services.engine.dispose()

    return 0


if __name__ == '__main__':
    sys.exit(main())
