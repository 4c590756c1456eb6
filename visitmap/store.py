"""
Data access layer - every SQL statement the application runs.

Each public method runs on its own connection, bounded end to end by a
deadline:
- Checkout: a pool wait that outlasts the deadline is abandoned
- PostgreSQL: a timer cancels the running statement at the deadline
- SQLite: a progress handler interrupts the running statement

A database error raised once the deadline has passed is reported as
QueryTimeout; any other database error as QueryError. The deadline is
removed before the connection goes back to the pool.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Generator, List, Optional

from sqlalchemy import Connection, Engine, distinct, func, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from visitmap.errors import QueryError, QueryTimeout, UnknownAreaError
from visitmap.models import Area, Mark, User, dialect_insert, make_session_factory

logger = logging.getLogger(__name__)

# SQLite VM instructions between deadline checks
SQLITE_PROGRESS_STEPS = 100

# PostgreSQL "query_canceled" SQLSTATE
PG_QUERY_CANCELED = '57014'

# Threads waiting on the pool on behalf of callers
CHECKOUT_WORKERS = 4


@dataclass(frozen=True)
class AreaCount:
    """An area with the number of distinct visitors who marked it."""
    id: str
    name: str
    type: str
    count: int

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict for API responses."""
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'count': self.count,
        }


def _noop() -> None:
    pass


def _release_abandoned(future: Future) -> None:
    """Return a connection whose caller stopped waiting for it."""
    if future.cancelled() or future.exception() is not None:
        return
    future.result().close()


class AreaStore:
    """
    Queries and mutations over areas, users and marks.

    Safe to share between request threads: it holds no per-request state,
    only the engine (and its pool) plus the checkout workers.
    """

    def __init__(
        self,
        engine: Engine,
        list_timeout: float = 3.0,
        write_timeout: float = 2.0,
    ):
        self.engine = engine
        self.list_timeout = list_timeout
        self.write_timeout = write_timeout

        self._session_factory = make_session_factory(engine)
        self._insert = dialect_insert(engine.dialect.name)
        self._checkouts = ThreadPoolExecutor(
            max_workers=CHECKOUT_WORKERS,
            thread_name_prefix='visitmap-checkout',
        )

    def close(self) -> None:
        """Stop the checkout workers. The engine is disposed by its owner."""
        self._checkouts.shutdown(wait=False, cancel_futures=True)

    # -------------------------------------------------------------------------
    # Connection handling
    # -------------------------------------------------------------------------

    def _checkout(self, operation: str, timeout: float, deadline: float) -> Connection:
        """
        Get a pooled connection, waiting no longer than the deadline.

        The pool itself only knows one engine-wide wait, so the checkout
        runs on a worker; a connection that arrives after the caller gave
        up is closed straight back into the pool.
        """
        future = self._checkouts.submit(self.engine.connect)
        try:
            return future.result(timeout=max(0.0, deadline - time.monotonic()))
        except FutureTimeoutError:
            future.cancel()
            future.add_done_callback(_release_abandoned)
            raise QueryTimeout(
                f'{operation} got no connection within its {timeout:g}s deadline'
            ) from None
        except SQLAlchemyError as e:
            raise QueryError(f'{operation} could not connect: {e}') from e

    def _arm_deadline(self, connection: Connection, deadline: float) -> Callable[[], None]:
        """
        Bound every statement on the connection by the deadline.

        Returns a callable that removes the bound again (idempotent). It
        must run before the connection is returned to the pool.
        """
        dialect = self.engine.dialect.name
        dbapi_connection = connection.connection.driver_connection

        if dialect == 'postgresql':
            timer = threading.Timer(
                max(0.0, deadline - time.monotonic()),
                dbapi_connection.cancel,
            )
            timer.daemon = True
            timer.start()

            def disarm() -> None:
                timer.cancel()
                # A cancel already in flight must land before checkin
                timer.join()

            return disarm

        if dialect == 'sqlite':
            dbapi_connection.set_progress_handler(
                lambda: int(time.monotonic() >= deadline),
                SQLITE_PROGRESS_STEPS,
            )

            def disarm() -> None:
                dbapi_connection.set_progress_handler(None, 0)

            return disarm

        return _noop

    @contextmanager
    def _bounded_session(
        self,
        operation: str,
        timeout: float,
    ) -> Generator[Session, None, None]:
        """
        Session for one operation, committed on success.

        Usage:
            with self._bounded_session('list_areas', self.list_timeout) as session:
                session.execute(...)
        """
        deadline = time.monotonic() + timeout
        connection = self._checkout(operation, timeout, deadline)
        session = self._session_factory(bind=connection)
        disarm = _noop
        try:
            disarm = self._arm_deadline(connection, deadline)
            yield session
            session.commit()
        except SQLAlchemyError as e:
            disarm()
            session.rollback()
            if self._is_timeout(e, deadline):
                raise QueryTimeout(f'{operation} exceeded its {timeout:g}s deadline') from e
            raise QueryError(f'{operation} failed: {e}') from e
        except Exception:
            disarm()
            session.rollback()
            raise
        finally:
            disarm()
            session.close()
            connection.close()

    @staticmethod
    def _is_timeout(error: SQLAlchemyError, deadline: float) -> bool:
        if getattr(getattr(error, 'orig', None), 'pgcode', None) == PG_QUERY_CANCELED:
            return True
        return time.monotonic() >= deadline

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def list_areas(self) -> List[AreaCount]:
        """
        Every area with its distinct visitor count.

        Areas nobody marked are included with count 0. Order is unspecified.
        """
        stmt = (
            select(
                Area.id,
                Area.name,
                Area.type,
                func.count(distinct(Mark.user_id)).label('count'),
            )
            .select_from(Area)
            .outerjoin(Mark, Mark.area_id == Area.id)
            .group_by(Area.id, Area.name, Area.type)
        )

        with self._bounded_session('list_areas', self.list_timeout) as session:
            rows = session.execute(stmt).all()

        return [
            AreaCount(id=row.id, name=row.name, type=row.type, count=row.count)
            for row in rows
        ]

    def list_visitor_names(self, area_id: Optional[str] = None) -> List[str]:
        """
        Distinct names of visitors holding at least one mark.

        Restricted to marks on ``area_id`` when given. Visitors without any
        mark never appear, with or without the filter.
        """
        stmt = (
            select(User.name)
            .join(Mark, Mark.user_id == User.id)
            .distinct()
        )
        if area_id is not None:
            stmt = stmt.where(Mark.area_id == area_id)

        with self._bounded_session('list_visitor_names', self.list_timeout) as session:
            return list(session.execute(stmt).scalars())

    def ping(self) -> bool:
        """Return True when the database answers a trivial query."""
        try:
            with self._bounded_session('ping', self.list_timeout) as session:
                session.execute(text('SELECT 1'))
            return True
        except QueryError as e:
            logger.error(f'Database health check failed: {e}')
            return False

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def get_or_create_visitor(self, name: str) -> int:
        """
        Return the id of the visitor called ``name``, creating it if needed.

        The insert is a no-op when the name exists (including when a
        concurrent request inserted it first); the follow-up lookup then
        finds the committed row, so every caller gets the same id.
        """
        insert_stmt = (
            self._insert(User)
            .values(name=name)
            .on_conflict_do_nothing(index_elements=['name'])
            .returning(User.id)
        )

        with self._bounded_session('get_or_create_visitor', self.write_timeout) as session:
            user_id = session.execute(insert_stmt).scalar_one_or_none()
            if user_id is None:
                user_id = session.execute(
                    select(User.id).where(User.name == name)
                ).scalar_one()
            else:
                logger.info(f'Created visitor {name!r} (id={user_id})')

        return user_id

    def record_mark(self, user_id: int, area_id: str) -> None:
        """
        Record that the visitor has been to the area.

        Marking the same area twice is a no-op.

        Raises:
            UnknownAreaError: ``area_id`` is not a seeded area.
        """
        stmt = (
            self._insert(Mark)
            .values(user_id=user_id, area_id=area_id)
            .on_conflict_do_nothing(index_elements=['user_id', 'area_id'])
        )

        with self._bounded_session('record_mark', self.write_timeout) as session:
            try:
                session.execute(stmt)
            except IntegrityError as e:
                # Foreign key on marks.area_id
                raise UnknownAreaError(area_id) from e
