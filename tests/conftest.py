"""Shared test fixtures and utilities for event-schema-sync tests"""

import json
import os
import shutil
import time

import pytest

from event_schema_sync.config import Settings, WatcherSettings
from event_schema_sync.type_catalog import load_type_catalog
from tests.utils.fake_pg_api import FakePgApi

# Constants
PROJECT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
CONFIG_FILE = os.path.join(PROJECT_DIR, "tests", "configs", "tests_config.yaml")
TYPE_MAPPING_FILE = os.path.join(PROJECT_DIR, "typemapping", "type_mapping.json")

BURNS_ONLY = {
    "burns": {
        "type_mapping": {
            "account_id": "int",
            "amount": "bigint",
            "time": "timestamp",
        },
    },
}


def write_type_mapping(path, data):
    """Write a type mapping document, making sure the stat signature changes"""
    content = json.dumps(data, indent=4)
    previous_mtime = os.stat(path).st_mtime_ns if os.path.exists(path) else None
    with open(path, "w") as f:
        f.write(content)
    if previous_mtime is not None and os.stat(path).st_mtime_ns == previous_mtime:
        os.utime(path, ns=(previous_mtime + 1_000_000, previous_mtime + 1_000_000))
    return path


def assert_wait(condition, max_wait_time=5.0, retry_interval=0.05):
    end_time = time.time() + max_wait_time
    while time.time() < end_time:
        if condition():
            return
        time.sleep(retry_interval)
    assert condition()


@pytest.fixture
def fake_pg_api():
    return FakePgApi()


@pytest.fixture
def type_mapping_file(tmp_path):
    """Private copy of the bundled three event type description"""
    path = tmp_path / "type_mapping.json"
    shutil.copy(TYPE_MAPPING_FILE, path)
    return path


@pytest.fixture
def catalog():
    return load_type_catalog(TYPE_MAPPING_FILE)


@pytest.fixture
def fast_watcher_settings():
    return WatcherSettings(debounce_interval=0.1, poll_interval=0.02)


@pytest.fixture
def test_settings(type_mapping_file, fast_watcher_settings):
    settings = Settings()
    settings.event_type_file = str(type_mapping_file)
    settings.watcher = fast_watcher_settings
    settings.seconds_between_writes = 0
    settings.seconds_between_reads = 0
    return settings
