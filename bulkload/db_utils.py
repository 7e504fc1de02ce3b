"""
Database utilities for bulk import
Driver registration, connections, table metadata and copy channels
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional, Protocol, Tuple

import psycopg2
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.pool import NullPool

from .copy_channel import BulkLoadChannel, CopyStreamChannel
from .errors import ConnectivityError

logger = logging.getLogger(__name__)


class Driver(Protocol):
    name: str

    def connect(self, target: str, user: Optional[str] = None, password: Optional[str] = None):
        ...

    def table_exists(
        self, table_name: str, target: str, user: Optional[str] = None, password: Optional[str] = None
    ) -> bool:
        ...

    def open_channel(self, connection, statement: str) -> BulkLoadChannel:
        ...


def split_table_name(table_name: str) -> Tuple[Optional[str], str]:
    """Split 'schema.table' on the first dot; unqualified names have no schema"""
    if '.' in table_name:
        schema, table = table_name.split('.', 1)
        return schema, table
    return None, table_name


class Psycopg2Driver:
    """
    PostgreSQL-wire driver

    Uses psycopg2 for the load connection and COPY streaming, and a
    short-lived SQLAlchemy engine for metadata lookups.
    """

    name = 'postgresql'

    def connect(self, target: str, user: Optional[str] = None, password: Optional[str] = None):
        """Open a connection with auto-commit disabled"""
        params = {}
        if user is not None:
            params['user'] = user
            params['password'] = password
        try:
            conn = psycopg2.connect(target, **params)
        except psycopg2.Error as e:
            logger.error(f"Could not connect to {target}: {e}")
            raise ConnectivityError(f"Could not connect to {target}: {e}") from e

        conn.autocommit = False
        return conn

    def table_exists(
        self, table_name: str, target: str, user: Optional[str] = None, password: Optional[str] = None
    ) -> bool:
        """
        Check the catalog for table_name

        Names are passed to the catalog as given; case handling follows the
        database's own rules.
        """
        schema, table = split_table_name(table_name)
        try:
            url = make_url(target)
            if user is not None:
                url = url.set(username=user, password=password)
            engine = create_engine(url, poolclass=NullPool)
        except (ArgumentError, SQLAlchemyError) as e:
            raise ConnectivityError(f"Invalid connection target {target}: {e}") from e

        try:
            with engine.connect() as conn:
                return inspect(conn).has_table(table, schema=schema)
        except SQLAlchemyError as e:
            logger.error(
                f"Exception while trying to check the existence of database table {table_name} "
                f"for connection {target}: {e}"
            )
            raise ConnectivityError(
                f"Could not check existence of table {table_name} on {target}: {e}"
            ) from e
        finally:
            engine.dispose()

    def open_channel(self, connection, statement: str) -> BulkLoadChannel:
        return CopyStreamChannel(connection, statement)


_DRIVER_FACTORIES: Dict[str, Callable[[], Driver]] = {}
_registrations: Dict[str, int] = {}
_registry_lock = threading.Lock()


def register_driver(name: str, factory: Callable[[], Driver]) -> None:
    """Make a driver available to driver_session() under name"""
    with _registry_lock:
        _DRIVER_FACTORIES[name] = factory


def active_registrations(name: str) -> int:
    """Number of runs currently holding a registration for name"""
    with _registry_lock:
        return _registrations.get(name, 0)


@contextmanager
def driver_session(name: str) -> Iterator[Driver]:
    """
    Hold a driver registration for the duration of a run

    Registrations are reference counted, so concurrent runs in one process
    never release a driver another run still uses. The registration is
    released on every exit path.
    """
    with _registry_lock:
        factory = _DRIVER_FACTORIES.get(name)
        if factory is None:
            raise ConnectivityError(f"No database driver registered for '{name}'")
        _registrations[name] = _registrations.get(name, 0) + 1

    logger.debug(f"Driver '{name}' registered")
    try:
        yield factory()
    finally:
        with _registry_lock:
            remaining = _registrations.get(name, 1) - 1
            if remaining > 0:
                _registrations[name] = remaining
            else:
                _registrations.pop(name, None)
        logger.debug(f"Driver '{name}' deregistered")


register_driver(Psycopg2Driver.name, Psycopg2Driver)
