import json
import re
from dataclasses import dataclass, field
from enum import Enum
from logging import getLogger

from .errors import CatalogEmptyError, CatalogIoError, CatalogMalformedError


logger = getLogger(__name__)

# Names end up unquoted in DDL/DML.
IDENTIFIER_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


class DataTypeTag(Enum):
    """Column data types supported in a type mapping.

    The value is both the tag used in the description document and the
    PostgreSQL type name of the column.
    """
    TIMESTAMP = 'timestamp'
    BIGINT = 'bigint'
    INT = 'int'

    @property
    def sql_type(self):
        return self.value


@dataclass(frozen=True)
class ColumnDef:
    name: str
    data_type: DataTypeTag


@dataclass(frozen=True)
class EventTypeDef:
    name: str
    columns: tuple[ColumnDef, ...] = ()

    def column_names(self):
        return [column.name for column in self.columns]

    def has_column(self, column_name):
        for column in self.columns:
            if column.name == column_name:
                return True
        return False

    def get_column(self, column_name):
        for column in self.columns:
            if column.name == column_name:
                return column
        return None

    def to_dict(self):
        return {
            'type_mapping': {
                column.name: column.data_type.value for column in self.columns
            },
        }


@dataclass(frozen=True)
class TypeCatalog:
    """Immutable set of event types in description order.

    A catalog is never modified after it is built, a new description always
    produces a new catalog.
    """
    event_types: tuple[EventTypeDef, ...] = field(default_factory=tuple)

    def __len__(self):
        return len(self.event_types)

    def __iter__(self):
        return iter(self.event_types)

    def __contains__(self, name):
        return self.get(name) is not None

    def __getitem__(self, name):
        event_type = self.get(name)
        if event_type is None:
            raise KeyError(name)
        return event_type

    def get(self, name, default=None):
        for event_type in self.event_types:
            if event_type.name == name:
                return event_type
        return default

    def names(self):
        return [event_type.name for event_type in self.event_types]

    def to_dict(self):
        return {event_type.name: event_type.to_dict() for event_type in self.event_types}


def _validate_identifier(source, kind, name):
    if not isinstance(name, str) or not IDENTIFIER_RE.match(name):
        raise CatalogMalformedError(source, f'invalid {kind} name {name!r}')


def parse_event_type(source, name, definition) -> EventTypeDef:
    _validate_identifier(source, 'event type', name)

    if not isinstance(definition, dict):
        raise CatalogMalformedError(
            source, f'event type {name} should be an object and not {type(definition).__name__}',
        )

    type_mapping = definition.get('type_mapping')
    if not isinstance(type_mapping, dict):
        raise CatalogMalformedError(source, f'event type {name} has no type_mapping object')
    if not type_mapping:
        raise CatalogMalformedError(source, f'event type {name} has an empty type_mapping')

    columns = []
    for column_name, tag in type_mapping.items():
        _validate_identifier(source, 'column', column_name)
        try:
            data_type = DataTypeTag(tag)
        except ValueError:
            raise CatalogMalformedError(
                source, f'unknown data type {tag!r} for column {name}.{column_name}',
            ) from None
        columns.append(ColumnDef(name=column_name, data_type=data_type))

    return EventTypeDef(name=name, columns=tuple(columns))


def parse_type_catalog(data, source='<memory>') -> TypeCatalog:
    if not isinstance(data, dict):
        raise CatalogMalformedError(
            source, f'top level should be an object and not {type(data).__name__}',
        )
    if not data:
        raise CatalogEmptyError(source, 'could not parse a single event type')

    event_types = tuple(
        parse_event_type(source, name, definition) for name, definition in data.items()
    )
    return TypeCatalog(event_types=event_types)


def load_type_catalog(source) -> TypeCatalog:
    """Read and validate the event type description at `source`.

    Either the whole document is valid and a catalog is returned, or a
    LoadError is raised.
    """
    try:
        with open(source, 'r', encoding='utf-8') as f:
            content = f.read()
    except UnicodeDecodeError as e:
        raise CatalogMalformedError(source, f'not valid utf-8: {e}') from e
    except OSError as e:
        raise CatalogIoError(source, f'failed to read: {e}') from e

    if not content.strip():
        raise CatalogEmptyError(source, 'document is empty')

    # json keeps object key order, which gives the catalog its column order
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise CatalogMalformedError(source, f'invalid json: {e}') from e

    catalog = parse_type_catalog(data, source=source)
    logger.debug(f'loaded {len(catalog)} event types from {source}: {catalog.names()}')
    return catalog
