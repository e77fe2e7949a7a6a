"""
Event Schema Sync Configuration Management

This module provides configuration classes for the schema synchronizer and the
traffic generating loops.

Classes:
    PostgresSettings: PostgreSQL connection configuration
    WatcherSettings: Event type file observation behavior
    Settings: Main configuration class that orchestrates all settings

Key Features:
    - YAML-based configuration loading
    - Environment variable overrides for database credentials
    - Type validation and error handling
"""

import os
from dataclasses import dataclass

import yaml


def stype(obj):
    """Get the simple type name of an object.

    Example:
        >>> stype([1, 2, 3])
        'list'
    """
    return type(obj).__name__


@dataclass
class PostgresSettings:
    """PostgreSQL connection configuration.

    Attributes:
        host: PostgreSQL server hostname or IP address
        port: PostgreSQL server port (default: 5432)
        user: username for authentication
        password: password for authentication
        database: database holding the event tables
        connect_timeout: seconds to wait for a connection to be established

    Example:
        postgres_config = PostgresSettings(
            host="pg.example.com",
            user="events",
            password="secure_password",
            database="events",
        )
    """
    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    database: str = "postgres"
    connect_timeout: int = 10

    ENV_OVERRIDES = {
        "host": ("POSTGRES_HOST", str),
        "port": ("POSTGRES_PORT", int),
        "user": ("POSTGRES_USER", str),
        "password": ("POSTGRES_PASSWORD", str),
        "database": ("POSTGRES_DATABASE", str),
    }

    def apply_env_overrides(self):
        for attr, (env_name, cast) in PostgresSettings.ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                setattr(self, attr, cast(value))
            except ValueError:
                raise ValueError(f"environment variable {env_name} has invalid value {value!r}")

    def validate(self):
        if not isinstance(self.host, str):
            raise ValueError(f"postgres host should be string and not {stype(self.host)}")

        if not isinstance(self.port, int):
            raise ValueError(f"postgres port should be int and not {stype(self.port)}")

        if not isinstance(self.user, str):
            raise ValueError(f"postgres user should be string and not {stype(self.user)}")

        if not isinstance(self.password, str):
            raise ValueError(
                f"postgres password should be string and not {stype(self.password)}"
            )

        if not isinstance(self.database, str):
            raise ValueError(
                f"postgres database should be string and not {stype(self.database)}"
            )

        if not isinstance(self.connect_timeout, int) or self.connect_timeout <= 0:
            raise ValueError("postgres connect_timeout should be at least 1 second")

    def get_connection_config(self, autocommit=True):
        """Build keyword arguments for psycopg.connect"""
        return {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "dbname": self.database,
            "connect_timeout": self.connect_timeout,
            "autocommit": autocommit,
        }


@dataclass
class WatcherSettings:
    # bursts of writes closer than this are reported as a single change
    debounce_interval: float = 5.0
    poll_interval: float = 0.5

    def validate(self):
        if not isinstance(self.debounce_interval, (int, float)):
            raise ValueError(
                f"watcher debounce_interval should be a number and not {stype(self.debounce_interval)}"
            )
        if self.debounce_interval < 0:
            raise ValueError("watcher debounce_interval should be non-negative")

        if not isinstance(self.poll_interval, (int, float)):
            raise ValueError(
                f"watcher poll_interval should be a number and not {stype(self.poll_interval)}"
            )
        if self.poll_interval <= 0:
            raise ValueError("watcher poll_interval should be positive")


class Settings:
    DEFAULT_LOG_LEVEL = "info"
    DEFAULT_EVENT_TYPE_FILE = "./typemapping/type_mapping.json"
    DEFAULT_TIME_COLUMN = "time"
    DEFAULT_SECONDS_BETWEEN_READS = 0.1
    DEFAULT_SECONDS_BETWEEN_WRITES = 5.0
    DEFAULT_STATS_DUMP_INTERVAL = 60

    def __init__(self):
        self.postgres = PostgresSettings()
        self.watcher = WatcherSettings()
        self.settings_file = ""
        self.event_type_file = Settings.DEFAULT_EVENT_TYPE_FILE
        self.time_column = Settings.DEFAULT_TIME_COLUMN
        self.seconds_between_reads = Settings.DEFAULT_SECONDS_BETWEEN_READS
        self.seconds_between_writes = Settings.DEFAULT_SECONDS_BETWEEN_WRITES
        self.stats_dump_interval = Settings.DEFAULT_STATS_DUMP_INTERVAL
        self.log_level = Settings.DEFAULT_LOG_LEVEL
        self.debug_log_level = False
        self.http_host = ""
        self.http_port = 0

    def load(self, settings_file):
        with open(settings_file, "r") as f:
            data = yaml.safe_load(f.read()) or {}

        self.settings_file = settings_file
        self.postgres = PostgresSettings(**data.pop("postgres", {}))
        self.watcher = WatcherSettings(**data.pop("watcher", {}))
        self.event_type_file = data.pop("event_type_file", Settings.DEFAULT_EVENT_TYPE_FILE)
        self.time_column = data.pop("time_column", Settings.DEFAULT_TIME_COLUMN)
        self.seconds_between_reads = data.pop(
            "seconds_between_reads", Settings.DEFAULT_SECONDS_BETWEEN_READS
        )
        self.seconds_between_writes = data.pop(
            "seconds_between_writes", Settings.DEFAULT_SECONDS_BETWEEN_WRITES
        )
        self.stats_dump_interval = data.pop(
            "stats_dump_interval", Settings.DEFAULT_STATS_DUMP_INTERVAL
        )
        self.log_level = data.pop("log_level", Settings.DEFAULT_LOG_LEVEL)
        self.http_host = data.pop("http_host", "")
        self.http_port = data.pop("http_port", 0)

        if data:
            raise Exception(f"Unsupported config options: {list(data.keys())}")

        self.postgres.apply_env_overrides()
        self.validate()

    def validate_log_level(self):
        if self.log_level not in ["critical", "error", "warning", "info", "debug"]:
            raise ValueError(f"wrong log level {self.log_level}")
        self.debug_log_level = self.log_level == "debug"

    def validate_intervals(self):
        for name in ("seconds_between_reads", "seconds_between_writes"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)):
                raise ValueError(f"{name} should be a number and not {stype(value)}")
            if value < 0:
                raise ValueError(f"{name} should be non-negative")

        if not isinstance(self.stats_dump_interval, (int, float)) or self.stats_dump_interval <= 0:
            raise ValueError("stats_dump_interval should be positive")

    def validate(self):
        self.postgres.validate()
        self.watcher.validate()
        self.validate_log_level()
        self.validate_intervals()
        if not isinstance(self.event_type_file, str) or not self.event_type_file:
            raise ValueError(f"wrong event_type_file {self.event_type_file!r}")
        if not isinstance(self.time_column, str) or not self.time_column:
            raise ValueError(f"wrong time_column {self.time_column!r}")
        if not isinstance(self.http_port, int):
            raise ValueError(f"http_port should be int and not {stype(self.http_port)}")
