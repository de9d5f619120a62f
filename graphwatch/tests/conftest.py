from datetime import datetime, timedelta
from pathlib import Path

import pytest
import sqlalchemy as sa
from alembic import command
from alembic.config import Config as AlembicConfig
from flask_jwt_extended import create_access_token
from sqlalchemy.orm import scoped_session, sessionmaker

from graphwatch import create_app
from graphwatch.core.clock import FixedClock
from graphwatch.core.records import SubscriptionRecord
from graphwatch.domains.subscriptions.services.subscription_store import SubscriptionRepository
from graphwatch.extensions import db
from graphwatch.services import get_services
from graphwatch.tests.fakes import FakeFetcher, FakeRemoteSubscriptions

ROOT = Path(__file__).resolve().parents[2]

NOW = datetime(2026, 10, 17, 12, 0, 0)


# ==================== Pytest Markers ====================
def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (database, API)")


def _alembic_config() -> AlembicConfig:
    cfg = AlembicConfig(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "graphwatch" / "migrations"))
    cfg.set_main_option("graphwatch_env", "testing")
    return cfg


@pytest.fixture(scope="session", autouse=True)
def migrated_db():
    """Apply migrations once per session to mirror production schema."""
    cfg = _alembic_config()
    command.upgrade(cfg, "head")
    yield
    try:
        command.downgrade(cfg, "base")
    except Exception:
        # Downgrade is optional for local/CI runs; ignore failures to avoid hiding test results.
        pass


def _enable_sqlite_savepoints(engine) -> None:
    """pysqlite only nests SAVEPOINTs correctly when SQLAlchemy emits BEGIN itself."""

    @sa.event.listens_for(engine, "connect")
    def _no_implicit_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @sa.event.listens_for(engine, "begin")
    def _explicit_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture()
def clock():
    return FixedClock(NOW)


@pytest.fixture()
def fetcher(clock):
    return FakeFetcher(clock)


@pytest.fixture()
def remote(clock):
    return FakeRemoteSubscriptions(clock)


@pytest.fixture()
def app(migrated_db, clock, fetcher, remote):
    """
    Create a per-test app with an isolated database transaction.

    Each test runs in its own transaction + savepoint so committed data rolls
    back afterwards.
    """
    app = create_app("testing", clock=clock, fetcher=fetcher, remote=remote)
    ctx = app.app_context()
    ctx.push()

    engine = db.engine
    if engine.dialect.name == "sqlite":
        _enable_sqlite_savepoints(engine)
    connection = engine.connect()
    transaction = connection.begin()

    # commit/rollback inside the code under test only touch a savepoint
    session_factory = scoped_session(
        sessionmaker(bind=connection, join_transaction_mode="create_savepoint", expire_on_commit=False)
    )
    db.session = session_factory

    try:
        yield app
    finally:
        session_factory.remove()
        transaction.rollback()
        connection.close()
        ctx.pop()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def services(app):
    return get_services(app)


@pytest.fixture()
def make_subscription(app, clock):
    """Store a subscription directly, bypassing the upstream create call."""

    def _make(
        subscription_id: str = "sub-1",
        client_state: str = "secret1",
        resource_path: str = "/users/alice@example.com/events",
        expires_in: timedelta = timedelta(days=3),
        active: bool = True,
    ) -> SubscriptionRecord:
        record = SubscriptionRecord(
            id=subscription_id,
            resource_path=resource_path,
            client_state=client_state,
            expires_at=clock.now() + expires_in,
            notification_endpoint="https://hooks.example.test/api/webhook/notifications",
            active=active,
            state="active" if active else "expired",
        )
        stored = SubscriptionRepository().add(record)
        db.session.commit()
        return stored

    return _make


@pytest.fixture()
def auth_headers(app):
    def _headers(*roles: str) -> dict:
        token = create_access_token(identity="operator", additional_claims={"roles": list(roles)})
        return {"Authorization": f"Bearer {token}"}

    return _headers
