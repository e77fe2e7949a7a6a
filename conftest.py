# conftest.py
import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--run-optional",
        action="store_true",
        default=False,
        help="Run tests marked as optional (they need a running postgres)",
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "optional: skipped unless --run-optional is passed")
    config.addinivalue_line("markers", "integration: needs a live postgres")


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-optional"):
        return

    keyword = config.getoption("keyword")  # Retrieves the value passed with -k
    skip_marker = pytest.mark.skip(reason="Optional test, use --run-optional to include")

    for item in items:
        if "optional" not in item.keywords:
            continue
        # explicitly selected with -k
        if keyword and (keyword in item.name or keyword in item.nodeid):
            continue
        item.add_marker(skip_marker)
