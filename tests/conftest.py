"""
tests/conftest.py -- Shared test fixtures for lotdesk tests.

This module provides:
  - make_settings(): Settings copy with small page/cap values
  - _make_test_stores(): creates isolated in-memory DBs for users + inventory
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus session tokens for admin, manager and viewers
  - provider_client: same, with a recording fake identity provider attached
  - auth_client: per-test client for login / logout / rate-limit tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The store cap and page size are set to 5 in API tests so that any lot with
more than five items is only fully returned if the route pages correctly.

The DEBUG env var must be set before any core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import itertools
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from typing import Optional

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.authenticator import Authenticator
from auth.models import Identity
from auth.store import UserStore
from auth.vault import hash_password
from core.config import Settings, get_settings
from core.errors import UpstreamError
from inventory.store import InventoryStore

TEST_PAGE_SIZE = 5

_suffixes = itertools.count()

# (username, role, number, password). bob's password is stored as legacy plaintext.
TEST_USERS = [
    ("ana", "admin", "9000000001", "adminpass"),
    ("max", "manager", "9000000002", "managerpass"),
    ("bob", "viewer", "9000000003", "hunter2"),
    ("alice", "viewer", "9000000004", "alicepass"),
]


def make_settings(**overrides) -> Settings:
    values = {"page_size": TEST_PAGE_SIZE, "store_max_rows": TEST_PAGE_SIZE}
    values.update(overrides)
    return get_settings().model_copy(update=values)


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str, max_rows: int = TEST_PAGE_SIZE) -> tuple[UserStore, InventoryStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'api', 'routes').
    """
    users_url = f"sqlite:///file:test_users_{db_suffix}?mode=memory&cache=shared&uri=true"
    inventory_url = f"sqlite:///file:test_inventory_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=users_url, max_rows=max_rows), InventoryStore(db_url=inventory_url, max_rows=max_rows)


def _seed_users(user_store: UserStore) -> dict[str, int]:
    ids = {}
    for username, role, number, password in TEST_USERS:
        stored = password if username == "bob" else hash_password(password)
        ids[username] = user_store.create_identity(
            Identity(username=username, role=role, display_number=number, password=stored)
        )
    return ids


def _patch_lifespan(
    user_store: UserStore,
    inventory: InventoryStore,
    authenticator: Authenticator,
    settings: Settings,
    provider=None,
):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs rather than the on-disk databases.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.user_store = user_store
        app.state.inventory = inventory
        app.state.identity_provider = provider
        app.state.authenticator = authenticator
        yield

    return test_lifespan


def build_client(
    db_suffix: str, settings: Optional[Settings] = None, provider=None
) -> tuple[TestClient, UserStore, InventoryStore, Authenticator]:
    """Create stores, seed users and point the app at them. Caller enters the client."""
    settings = settings or make_settings()
    user_store, inventory = _make_test_stores(db_suffix, max_rows=settings.store_max_rows)
    _seed_users(user_store)
    authenticator = Authenticator(user_store, user_store, settings, provider=provider)
    app.router.lifespan_context = _patch_lifespan(user_store, inventory, authenticator, settings, provider)
    limiter.reset()
    return TestClient(app, raise_server_exceptions=True), user_store, inventory, authenticator


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, dict[str, str]], None, None]:
    """Yield (client, tokens) for API integration tests.

    tokens maps username -> session token for ana (admin), max (manager),
    bob and alice (viewers), plus "guest". Sessions are issued through the
    Authenticator directly so the login rate limit is not consumed.
    Stores are reachable as client.app.state.user_store / .inventory.
    """
    client, user_store, inventory, authenticator = build_client(f"api_{next(_suffixes)}")
    tokens = {
        username: authenticator.login(number, password).token
        for username, _role, number, password in TEST_USERS
    }
    tokens["guest"] = authenticator.issue_guest_session().token

    with client:
        yield client, tokens

    user_store.close()
    inventory.close()


@pytest.fixture
def auth_client() -> Generator[tuple[TestClient, Authenticator], None, None]:
    """Yield (client, authenticator) on fresh stores with a reset rate limiter.

    Function-scoped: login tests set cookies and consume the per-IP login
    limit, so each test gets its own client.
    """
    client, user_store, inventory, authenticator = build_client(f"auth_{next(_suffixes)}")
    with client:
        yield client, authenticator

    user_store.close()
    inventory.close()


class FakeIdentityProvider:
    """In-memory IdentityProvider. Records calls; fails for emails in fail_emails."""

    def __init__(self, fail_emails: tuple[str, ...] = ()) -> None:
        self.accounts: dict[str, tuple[str, str]] = {}  # provider id -> (email, password)
        self.fail_emails = fail_emails
        self.created: list[str] = []

    def create_identity(self, email: str, plaintext: str) -> str:
        if any(email.startswith(prefix) for prefix in self.fail_emails):
            raise UpstreamError("A user with this email address has already been registered")
        provider_id = f"prov-{len(self.accounts) + 1}"
        self.accounts[provider_id] = (email, plaintext)
        self.created.append(email)
        return provider_id

    def update_password(self, provider_id: str, plaintext: str) -> None:
        email, _old = self.accounts[provider_id]
        self.accounts[provider_id] = (email, plaintext)

    def sign_in(self, email: str, plaintext: str) -> bool:
        return (email, plaintext) in self.accounts.values()


@pytest.fixture
def fake_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture(scope="module")
def provider_client() -> Generator[tuple[TestClient, dict[str, str], FakeIdentityProvider], None, None]:
    """Yield (client, tokens, provider) with a fake identity provider configured."""
    provider = FakeIdentityProvider()
    client, user_store, inventory, authenticator = build_client(f"provider_{next(_suffixes)}", provider=provider)
    tokens = {
        username: authenticator.login(number, password).token
        for username, role, number, password in TEST_USERS
        if role != "viewer"
    }

    with client:
        yield client, tokens, provider

    user_store.close()
    inventory.close()
