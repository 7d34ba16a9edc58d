"""
Pytest configuration and fixtures for rep-digest tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import os
import threading
from datetime import date
from typing import Generator

import psycopg
import pytest
from testcontainers.postgres import PostgresContainer

from rep_digest.config import DigestSettings, RetryPolicy
from rep_digest.core.models import QueryWindow
from rep_digest.notifications.notifier import LoggingNotifier
from rep_digest.store.artifacts import MemoryArtifactStore
from rep_digest.store.connection import DatabaseConnectionPool

from factories import make_row


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# ROW FIXTURES
# =======================

@pytest.fixture
def row_factory():
    return make_row


@pytest.fixture
def september_window() -> QueryWindow:
    return QueryWindow(start=date(2026, 9, 1), end=date(2026, 10, 1))


# =======================
# PIPELINE COLLABORATORS
# =======================

@pytest.fixture
def digest_settings(tmp_path) -> DigestSettings:
    return DigestSettings(
        sender="sales-digest@example.com",
        admin_recipient="sales-admin",
        max_concurrency=4,
        retry=RetryPolicy(max_attempts=2, backoff_seconds=0.0),
        artifact_dir=tmp_path / "artifacts",
    )


@pytest.fixture
def artifact_store() -> MemoryArtifactStore:
    return MemoryArtifactStore()


@pytest.fixture
def notifier() -> LoggingNotifier:
    return LoggingNotifier()


class FlakyNotifier(LoggingNotifier):
    """
    Notifier that fails for selected recipients.

    Args:
        failures: recipient -> number of sends to fail before succeeding
            (use a large number to fail permanently)
    """

    def __init__(self, failures: dict[str, int]):
        super().__init__()
        self.failures = dict(failures)
        self.attempts: dict[str, int] = {}
        self._attempt_lock = threading.Lock()

    def send(self, request, attachments):
        with self._attempt_lock:
            self.attempts[request.recipient] = self.attempts.get(request.recipient, 0) + 1
            remaining = self.failures.get(request.recipient, 0)
            if remaining:
                self.failures[request.recipient] = remaining - 1
                raise ConnectionError(f"SMTP unavailable for {request.recipient}")
        super().send(request, attachments)


@pytest.fixture
def flaky_notifier_factory():
    return FlakyNotifier


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance with the sales-order schema loaded
    """
    with PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_digest",
        password="test_password",
        dbname="test_sales",
        driver=None,
    ) as postgres:
        init_sql_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)),
            "docker",
            "init-db.sql"
        )

        with open(init_sql_path) as f:
            init_sql = f.read()

        with psycopg.connect(postgres.get_connection_url()) as conn:
            with conn.cursor() as cur:
                cur.execute(init_sql)
            conn.commit()

        yield postgres


@pytest.fixture
def pg_pool(postgres_container) -> Generator[DatabaseConnectionPool, None, None]:
    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database="test_sales",
        user="test_digest",
        password="test_password",
    )
    pool.open()
    yield pool
    pool.close()


@pytest.fixture
def clean_db(postgres_container) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a connection to an emptied database

    Yields:
        psycopg Connection object with clean tables
    """
    with psycopg.connect(postgres_container.get_connection_url()) as conn:
        with conn.cursor() as cur:
            cur.execute("TRUNCATE TABLE sales_order, customer CASCADE")
        conn.commit()
        yield conn
        conn.rollback()
