from contextlib import contextmanager
from logging import getLogger

import psycopg
from psycopg import IsolationLevel

from .config import PostgresSettings
from .errors import DbError


logger = getLogger(__name__)


class Transaction:
    """Statements issued through a scope opened by PgApi.transaction()"""

    def __init__(self, pg_api, connection):
        self.pg_api = pg_api
        self.connection = connection

    def execute(self, command):
        return self.pg_api._run(self.connection, command, fetch=False)

    def fetch_all(self, command):
        return self.pg_api._run(self.connection, command, fetch=True)


class PgApi:
    """Thin blocking PostgreSQL access layer.

    Outside of transaction() the connection runs in autocommit mode, which is
    required by statements like CREATE INDEX CONCURRENTLY.
    """

    def __init__(self, postgres_settings: PostgresSettings):
        self.postgres_settings = postgres_settings
        self.connection = None
        logger.info(
            f'PgApi initialized for {postgres_settings.user}@{postgres_settings.host}:'
            f'{postgres_settings.port}/{postgres_settings.database}'
        )

    def connect(self):
        config = self.postgres_settings.get_connection_config(autocommit=True)
        try:
            self.connection = psycopg.connect(**config)
        except psycopg.Error as e:
            logger.error(f'failed to connect to postgres: {e}')
            raise DbError('CONNECT', e) from e
        logger.debug('connected to postgres')
        return self.connection

    @contextmanager
    def get_connection(self):
        """Yield the live connection, reconnecting if the previous one broke"""
        if self.connection is None or self.connection.closed or self.connection.broken:
            self.connect()
        yield self.connection

    def close(self):
        if self.connection is not None and not self.connection.closed:
            self.connection.close()
        self.connection = None

    def _drop_if_broken(self, connection):
        if connection.closed or connection.broken:
            logger.warning('postgres connection lost, will reconnect on next statement')
            if self.connection is connection:
                self.connection = None

    def _run(self, connection, command, fetch):
        logger.debug(f'executing: {command}')
        try:
            with connection.cursor() as cursor:
                cursor.execute(command)
                if fetch:
                    return cursor.fetchall()
                return cursor.rowcount
        except psycopg.Error as e:
            self._drop_if_broken(connection)
            raise DbError(command, e) from e

    def execute(self, command):
        """Execute a single statement in autocommit mode, return rows affected"""
        with self.get_connection() as connection:
            return self._run(connection, command, fetch=False)

    def fetch_all(self, command):
        with self.get_connection() as connection:
            return self._run(connection, command, fetch=True)

    @contextmanager
    def transaction(self, isolation_level: IsolationLevel = IsolationLevel.SERIALIZABLE):
        """Scoped transaction: commits when the block completes, rolls back
        when it raises."""
        with self.get_connection() as connection:
            try:
                connection.isolation_level = isolation_level
                with connection.transaction():
                    yield Transaction(self, connection)
            except psycopg.Error as e:
                # errors from statements inside the block are already DbError,
                # only BEGIN/COMMIT/ROLLBACK failures land here
                self._drop_if_broken(connection)
                raise DbError(f'transaction ({isolation_level.name})', e) from e

    def get_tables(self):
        rows = self.fetch_all(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = current_schema() AND table_type = 'BASE TABLE'"
        )
        return [row[0] for row in rows]

    def get_columns(self, table_name):
        rows = self.fetch_all(
            "SELECT column_name, data_type FROM information_schema.columns "
            f"WHERE table_schema = current_schema() AND table_name = '{table_name}' "
            "ORDER BY ordinal_position"
        )
        return [(row[0], row[1]) for row in rows]

    def get_indexes(self, table_name):
        rows = self.fetch_all(
            "SELECT indexname FROM pg_indexes "
            f"WHERE schemaname = current_schema() AND tablename = '{table_name}'"
        )
        return [row[0] for row in rows]
