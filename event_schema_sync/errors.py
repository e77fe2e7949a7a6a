class EventSchemaSyncError(Exception):
    """Base class for all errors raised by event_schema_sync"""


class LoadError(EventSchemaSyncError):
    """Event type description could not be turned into a TypeCatalog"""

    def __init__(self, source, message):
        self.source = str(source)
        super().__init__(f'{self.source}: {message}')


class CatalogIoError(LoadError):
    pass


class CatalogEmptyError(LoadError):
    pass


class CatalogMalformedError(LoadError):
    pass


class InvalidCatalogError(EventSchemaSyncError):
    """Synchronized catalog failed validation. The database may already be
    ahead of it, callers must treat this as fatal."""


class DbError(EventSchemaSyncError):
    """A statement failed against the database"""

    def __init__(self, statement, cause=None):
        self.statement = statement
        self.cause = cause
        super().__init__(f'error executing "{statement}": {cause}')


class DdlError(DbError):
    def __init__(self, table_name, statement, cause=None):
        self.table_name = table_name
        super().__init__(statement, cause)

    def __str__(self):
        return f'table {self.table_name}: {super().__str__()}'


class WatcherDisconnected(EventSchemaSyncError):
    """Change notifications stopped, schema changes would go unnoticed"""
