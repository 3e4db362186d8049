import os
from pathlib import Path

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Initialize the fulfillment domain and push its domain_context. The activated domain can then be referred
    to elsewhere as `current_domain`. DATABASE_URL, when set, runs the suite against that database instead of
    the in-memory provider.
    """
    os.environ["ENVIRONMENT"] = session.config.option.env

    from fulfillment.domain import fulfillment, init_domain
    from shared.utils.logging import configure_logging

    configure_logging()
    init_domain(os.environ.get("DATABASE_URL"))
    fulfillment.domain_context().push()


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        # Get the test file path relative to the tests directory
        test_path = Path(item.fspath)

        # Mark tests based on their directory
        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/bdd/" in str(test_path):
            item.add_marker(pytest.mark.bdd)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session", autouse=True)
def setup_db(request):
    from fulfillment.domain import fulfillment
    from fulfillment.utils.db import drop_db, setup_db

    setup_db(fulfillment)

    yield

    drop_db(fulfillment)


@pytest.fixture(autouse=True)
def run_around_tests():
    """Fixture to automatically cleanup infrastructure and singletons after every test"""
    yield

    from fulfillment.bootstrap import reset_orchestrator
    from notifications.sink import reset_sink
    from protean import current_domain

    # Clear all databases
    for _, provider in current_domain.providers.items():
        provider._data_reset()

    reset_orchestrator()
    reset_sink()
