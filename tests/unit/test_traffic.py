import datetime
import random
import re

import pytest
from psycopg import IsolationLevel

from event_schema_sync.errors import DbError
from event_schema_sync.traffic import EventTrafficGenerator, format_timestamp
from event_schema_sync.type_catalog import DataTypeTag, TypeCatalog, parse_type_catalog
from tests.conftest import BURNS_ONLY
from tests.utils.fake_pg_api import FakePgApi


NOW = datetime.datetime(2024, 5, 17, 12, 30, 45, 250000)
SAMPLES = 10_000
TIMESTAMP_LITERAL_RE = re.compile(r"^'\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}'$")


def make_generator(pg_api=None, seed=42):
    return EventTrafficGenerator(
        pg_api if pg_api is not None else FakePgApi(),
        rng=random.Random(seed),
        clock=lambda: NOW,
    )


def parse_literal_timestamp(literal):
    return datetime.datetime.strptime(literal, "'%Y-%m-%d %H:%M:%S'")


def test_int_values_in_range():
    generator = make_generator()
    values = [generator.random_value(DataTypeTag.INT, NOW) for _ in range(SAMPLES)]
    assert all(1 <= v < 1000 for v in values)
    assert len(set(values)) > 500


def test_bigint_values_in_range():
    generator = make_generator()
    values = [generator.random_value(DataTypeTag.BIGINT, NOW) for _ in range(SAMPLES)]
    assert all(1 <= v < 1_000_000_000 for v in values)
    assert max(values) > 1000


def test_timestamp_values_in_window():
    generator = make_generator()
    window_start = NOW - datetime.timedelta(milliseconds=1_000_000)
    values = [generator.random_value(DataTypeTag.TIMESTAMP, NOW) for _ in range(SAMPLES)]
    assert all(window_start <= v <= NOW for v in values)
    assert all(v < NOW for v in values)


def test_literals():
    generator = make_generator()
    for _ in range(200):
        assert 1 <= int(generator.random_literal(DataTypeTag.INT)) < 1000
        assert 1 <= int(generator.random_literal(DataTypeTag.BIGINT)) < 1_000_000_000

        literal = generator.random_literal(DataTypeTag.TIMESTAMP)
        assert TIMESTAMP_LITERAL_RE.match(literal)
        value = parse_literal_timestamp(literal)
        assert NOW - datetime.timedelta(seconds=1001) <= value <= NOW


def test_format_timestamp_drops_fraction():
    assert format_timestamp(NOW) == "'2024-05-17 12:30:45'"


def test_insert_query_aligns_columns_and_values():
    catalog = parse_type_catalog({
        'transfers': {'type_mapping': {
            'time': 'timestamp', 'from_account_id': 'int', 'amount': 'bigint', 'to_account_id': 'int',
        }},
    })
    generator = make_generator()
    query = generator.insert_query(catalog['transfers'])

    match = re.match(r'^INSERT INTO transfers\((.*)\) VALUES \((.*)\)$', query)
    assert match
    columns = match.group(1).split(', ')
    values = match.group(2).split(', ')
    assert columns == ['time', 'from_account_id', 'amount', 'to_account_id']
    assert len(values) == 4
    assert TIMESTAMP_LITERAL_RE.match(values[0])
    assert 1 <= int(values[1]) < 1000
    assert 1 <= int(values[2]) < 1_000_000_000
    assert 1 <= int(values[3]) < 1000


def test_insert_query_is_reproducible_with_seed():
    event_type = parse_type_catalog(BURNS_ONLY)['burns']
    assert make_generator(seed=7).insert_query(event_type) == make_generator(seed=7).insert_query(event_type)


def test_read_query():
    catalog = parse_type_catalog(BURNS_ONLY)
    query = make_generator().read_query(catalog['burns'])

    match = re.match(r"^SELECT time, amount FROM burns WHERE time BETWEEN ('.*') AND ('.*')$", query)
    assert match
    start = parse_literal_timestamp(match.group(1))
    end = parse_literal_timestamp(match.group(2))
    assert end == NOW.replace(microsecond=0)
    assert NOW - datetime.timedelta(milliseconds=1_000_000) - datetime.timedelta(seconds=1) <= start <= end


def test_read_query_without_amount_column():
    catalog = parse_type_catalog({'logins': {'type_mapping': {'account_id': 'int', 'time': 'timestamp'}}})
    query = make_generator().read_query(catalog['logins'])
    assert query.startswith('SELECT time FROM logins WHERE time BETWEEN ')


def test_generate_write_commits_one_row(catalog):
    pg_api = FakePgApi()
    generator = make_generator(pg_api)

    query = generator.generate_write(catalog)

    assert pg_api.statements == [(query, IsolationLevel.REPEATABLE_READ)]
    assert pg_api.transactions_committed == 1
    table_name = re.match(r'^INSERT INTO (\w+)\(', query).group(1)
    assert table_name in catalog
    assert len(pg_api.rows[table_name]) == 1
    assert list(pg_api.rows[table_name][0]) == catalog[table_name].column_names()


def test_generate_write_picks_every_event_type(catalog):
    pg_api = FakePgApi()
    generator = make_generator(pg_api)
    for _ in range(300):
        generator.generate_write(catalog)
    assert sorted(pg_api.rows) == sorted(catalog.names())
    assert sum(len(rows) for rows in pg_api.rows.values()) == 300


def test_generate_write_failure_propagates(catalog):
    pg_api = FakePgApi(fail_on='INSERT')
    generator = make_generator(pg_api)
    with pytest.raises(DbError) as exc_info:
        generator.generate_write(catalog)
    assert exc_info.value.statement.startswith('INSERT INTO ')
    assert pg_api.transactions_rolled_back == 1
    assert pg_api.rows == {}


def test_generate_write_empty_catalog():
    with pytest.raises(ValueError):
        make_generator().generate_write(TypeCatalog())


def test_generate_read_runs_outside_transaction(catalog):
    pg_api = FakePgApi()
    pg_api.select_rows = [(NOW, 10), (NOW, 20)]
    generator = make_generator(pg_api)

    assert generator.generate_read(catalog) == 2

    assert len(pg_api.statements) == 1
    statement, isolation_level = pg_api.statements[0]
    assert isolation_level is None
    assert statement.startswith('SELECT time, amount FROM ')
    assert pg_api.transactions_committed == 0


def test_generate_read_skips_event_types_without_time_column():
    catalog = parse_type_catalog({
        'accounts': {'type_mapping': {'balance': 'bigint'}},
        'burns': BURNS_ONLY['burns'],
    })
    pg_api = FakePgApi()
    generator = make_generator(pg_api)
    for _ in range(50):
        generator.generate_read(catalog)
    assert all(' FROM burns ' in statement for statement in pg_api.executed())


def test_generate_read_with_nothing_to_read():
    pg_api = FakePgApi()
    catalog = parse_type_catalog({'accounts': {'type_mapping': {'balance': 'bigint'}}})
    assert make_generator(pg_api).generate_read(catalog) == 0
    assert pg_api.statements == []


def test_generate_read_failure_propagates(catalog):
    generator = make_generator(FakePgApi(fail_on='SELECT'))
    with pytest.raises(DbError):
        generator.generate_read(catalog)
