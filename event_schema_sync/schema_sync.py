import time
from dataclasses import dataclass, field
from logging import getLogger

from psycopg import IsolationLevel

from .change_watcher import ChangeWatcher
from .config import WatcherSettings
from .errors import DbError, DdlError, InvalidCatalogError, LoadError
from .type_catalog import DataTypeTag, EventTypeDef, TypeCatalog, load_type_catalog


logger = getLogger(__name__)


CREATE_TABLE_QUERY = 'CREATE TABLE IF NOT EXISTS {table_name} ({columns})'
CREATE_INDEX_QUERY = 'CREATE INDEX CONCURRENTLY IF NOT EXISTS {index_name} ON {table_name}({column_name})'
ADD_COLUMN_QUERY = 'ALTER TABLE {table_name} ADD COLUMN IF NOT EXISTS {column_name} {data_type}'


def index_name(table_name):
    return f'{table_name}_tsidx'


def create_table_query(event_type: EventTypeDef):
    columns = ', '.join(
        f'{column.name} {column.data_type.sql_type}' for column in event_type.columns
    )
    return CREATE_TABLE_QUERY.format(table_name=event_type.name, columns=columns)


def create_index_query(table_name, column_name):
    return CREATE_INDEX_QUERY.format(
        index_name=index_name(table_name),
        table_name=table_name,
        column_name=column_name,
    )


def add_column_query(table_name, column_name, data_type: DataTypeTag):
    return ADD_COLUMN_QUERY.format(
        table_name=table_name,
        column_name=column_name,
        data_type=data_type.sql_type,
    )


@dataclass
class SyncReport:
    tables: list[str] = field(default_factory=list)
    statements: int = 0
    index_failures: dict[str, str] = field(default_factory=dict)
    duration: float = 0.0


class SchemaSynchronizer:
    """Keeps the database schema at parity with the event type description.

    Synchronization only ever adds tables, indexes and columns. The catalog
    published by `snapshot` is replaced as a whole once a pass completes, so
    readers see either the previous catalog or the new one.
    """

    def __init__(self, source, pg_api, watcher: ChangeWatcher, time_column='time'):
        self.source = str(source)
        self.pg_api = pg_api
        self.watcher = watcher
        self.time_column = time_column
        self.current_catalog: TypeCatalog | None = None
        self.resync_required = False

    @classmethod
    def initialize(
        cls,
        source,
        pg_api,
        watcher_settings: WatcherSettings = None,
        time_column='time',
    ):
        watcher = ChangeWatcher(source, watcher_settings)
        # must watch before loading, otherwise a write in between is lost
        watcher.start()
        synchronizer = cls(source, pg_api, watcher, time_column=time_column)
        try:
            catalog = load_type_catalog(synchronizer.source)
            synchronizer.synchronize(catalog)
        except Exception:
            watcher.stop()
            raise
        return synchronizer

    @property
    def snapshot(self) -> TypeCatalog | None:
        return self.current_catalog

    def request_resync(self):
        self.resync_required = True

    def close(self):
        self.watcher.stop()

    def poll_and_sync(self):
        """Non-blocking. Re-synchronizes when the description changed or a
        previous re-synchronization failed.

        Returns the SyncReport if a pass ran, None otherwise. Load and DDL
        failures keep the previous snapshot and are re-raised, the next call
        retries. WatcherDisconnected always propagates.
        """
        event = self.watcher.poll_nonblocking()
        if event is not None:
            logger.info(f'detected change in {event.path}')
            self.resync_required = True

        if not self.resync_required:
            return None

        try:
            catalog = load_type_catalog(self.source)
            report = self.synchronize(catalog)
        except (LoadError, DbError) as e:
            logger.error(f'schema update failed, keeping previous event types: {e}')
            raise
        return report

    def synchronize(self, catalog: TypeCatalog) -> SyncReport:
        logger.info(f'synchronizing schema for event types {catalog.names()}')
        self.resync_required = True
        report = SyncReport()
        t1 = time.time()

        for event_type in catalog:
            self.create_table(event_type, report)
            self.create_index(event_type, report)
            self.add_missing_columns(event_type, report)
            report.tables.append(event_type.name)

        report.duration = time.time() - t1

        self.current_catalog = catalog
        self.resync_required = False

        if not self.is_catalog_valid():
            raise InvalidCatalogError(
                f'synchronized event types from {self.source} are not valid: catalog is empty'
            )

        logger.info(
            f'schema synchronized: {len(report.tables)} tables, {report.statements} statements '
            f'in {report.duration:.3f}s'
        )
        if report.index_failures:
            logger.warning(f'index creation failed for {sorted(report.index_failures)}')
        return report

    def is_catalog_valid(self):
        return self.current_catalog is not None and len(self.current_catalog) > 0

    def create_table(self, event_type: EventTypeDef, report: SyncReport):
        query = create_table_query(event_type)
        try:
            with self.pg_api.transaction(IsolationLevel.SERIALIZABLE) as tx:
                tx.execute(query)
        except DbError as e:
            raise DdlError(event_type.name, query, e.cause or e) from e
        report.statements += 1

    def create_index(self, event_type: EventTypeDef, report: SyncReport):
        if not event_type.has_column(self.time_column):
            logger.warning(
                f'event type {event_type.name} has no {self.time_column} column, skipping index'
            )
            return

        # CONCURRENTLY can't run inside a transaction block
        query = create_index_query(event_type.name, self.time_column)
        try:
            self.pg_api.execute(query)
        except DbError as e:
            logger.error(f'table {event_type.name}: index creation failed: {e}')
            report.index_failures[event_type.name] = str(e)
            return
        report.statements += 1

    def add_missing_columns(self, event_type: EventTypeDef, report: SyncReport):
        query = None
        try:
            with self.pg_api.transaction(IsolationLevel.SERIALIZABLE) as tx:
                for column in event_type.columns:
                    query = add_column_query(event_type.name, column.name, column.data_type)
                    tx.execute(query)
        except DbError as e:
            raise DdlError(event_type.name, query or e.statement, e.cause or e) from e
        report.statements += len(event_type.columns)
