import datetime
import random
from logging import getLogger

from psycopg import IsolationLevel

from .type_catalog import DataTypeTag, EventTypeDef, TypeCatalog


logger = getLogger(__name__)


TIMESTAMP_FORMAT = "'%Y-%m-%d %H:%M:%S'"

# half-open [low, high) ranges
MAX_OFFSET_MS = 1_000_000
MAX_BIGINT = 1_000_000_000
MAX_INT = 1_000


def utc_now():
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def format_timestamp(value: datetime.datetime):
    return value.strftime(TIMESTAMP_FORMAT)


class EventTrafficGenerator:
    """Random writes and time range reads against the event tables"""

    READ_COLUMNS = ('time', 'amount')

    def __init__(self, pg_api, rng: random.Random = None, clock=None, time_column='time'):
        self.pg_api = pg_api
        self.rng = rng or random.Random()
        self.clock = clock or utc_now
        self.time_column = time_column

    def random_offset(self):
        return datetime.timedelta(milliseconds=self.rng.randrange(1, MAX_OFFSET_MS))

    def random_value(self, data_type: DataTypeTag, now: datetime.datetime):
        if data_type == DataTypeTag.TIMESTAMP:
            return now - self.random_offset()
        if data_type == DataTypeTag.BIGINT:
            return self.rng.randrange(1, MAX_BIGINT)
        if data_type == DataTypeTag.INT:
            return self.rng.randrange(1, MAX_INT)
        raise ValueError(f'unsupported data type {data_type}')

    def random_literal(self, data_type: DataTypeTag, now: datetime.datetime = None):
        if now is None:
            now = self.clock()
        value = self.random_value(data_type, now)
        if data_type == DataTypeTag.TIMESTAMP:
            return format_timestamp(value)
        return str(value)

    def insert_query(self, event_type: EventTypeDef, now: datetime.datetime = None):
        if now is None:
            now = self.clock()
        # values follow the declared column order
        columns = ', '.join(event_type.column_names())
        values = ', '.join(
            self.random_literal(column.data_type, now) for column in event_type.columns
        )
        return f'INSERT INTO {event_type.name}({columns}) VALUES ({values})'

    def read_query(self, event_type: EventTypeDef, now: datetime.datetime = None):
        if now is None:
            now = self.clock()
        start = now - self.random_offset()
        columns = [self.time_column]
        for column_name in self.READ_COLUMNS:
            if column_name not in columns and event_type.has_column(column_name):
                columns.append(column_name)
        return (
            f'SELECT {", ".join(columns)} FROM {event_type.name} '
            f'WHERE {self.time_column} BETWEEN {format_timestamp(start)} AND {format_timestamp(now)}'
        )

    def pick_event_type(self, catalog: TypeCatalog, require_column=None):
        candidates = list(catalog)
        if require_column is not None:
            candidates = [et for et in candidates if et.has_column(require_column)]
        if not candidates:
            return None
        return self.rng.choice(candidates)

    def generate_write(self, catalog: TypeCatalog):
        """Commit one random row, return the INSERT statement used"""
        event_type = self.pick_event_type(catalog)
        if event_type is None:
            raise ValueError('cannot generate a write from an empty catalog')
        logger.debug(f'random pick event type: {event_type.name}')

        query = self.insert_query(event_type)
        with self.pg_api.transaction(IsolationLevel.REPEATABLE_READ) as tx:
            tx.execute(query)
        return query

    def generate_read(self, catalog: TypeCatalog):
        """Read a random time window of one event table, return rows count"""
        event_type = self.pick_event_type(catalog, require_column=self.time_column)
        if event_type is None:
            logger.warning(f'no event type has a {self.time_column} column, nothing to read')
            return 0
        logger.debug(f'random pick event type: {event_type.name}')

        query = self.read_query(event_type)
        rows = self.pg_api.fetch_all(query)
        logger.debug(f'read {len(rows)} rows from {event_type.name}')
        return len(rows)
