"""Shared fixtures: isolated SQLite database per test and an API client."""

import os
import tempfile

# Settings are read at import time; configure before importing alert_relay
_tmp = tempfile.mkdtemp(prefix="alert_relay_tests_")
os.environ.setdefault("AR_DATABASE_URL", f"sqlite:///{os.path.join(_tmp, 'default.db')}")
os.environ.setdefault("AR_ENCRYPTION_KEY", "MDEyMzQ1Njc4OTAxMjM0NTY3ODkwMTIzNDU2Nzg5MDE=")
os.environ.setdefault("AR_WEBHOOK_SECRET", "test-secret")
os.environ.setdefault("AR_ADMIN_PASSWORD", "admin-pass")
os.environ.setdefault("AR_JWT_SECRET", "test-jwt-secret")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, create_engine  # noqa: E402

from alert_relay.api.deps import get_current_user  # noqa: E402
from alert_relay.api.webhook import get_forwarding_router  # noqa: E402
from alert_relay.database import create_db_and_tables, get_session  # noqa: E402
from alert_relay.forwarding.router import ForwardingRouter  # noqa: E402
from alert_relay.services.lifecycle import TradeLifecycleManager  # noqa: E402
from alert_relay.services.repository import TradeRepository  # noqa: E402


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    create_db_and_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def manager(session):
    return TradeLifecycleManager(TradeRepository(session))


@pytest.fixture
def forwarding_router():
    """Router with no chat/dashboard destinations configured."""
    return ForwardingRouter()


@pytest.fixture
def app(engine, forwarding_router):
    from alert_relay.main import app as fastapi_app

    def _session():
        with Session(engine) as s:
            yield s

    fastapi_app.dependency_overrides[get_session] = _session
    fastapi_app.dependency_overrides[get_current_user] = lambda: "admin"
    fastapi_app.dependency_overrides[get_forwarding_router] = lambda: forwarding_router
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    # No context manager: the lifespan (scheduler, bot, default database) stays off
    return TestClient(app)
