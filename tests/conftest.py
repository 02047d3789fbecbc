"""
tests/conftest.py -- Shared test fixtures for admin panel integration tests.

This module provides:
  - make_settings(): Settings pointed at an isolated SQLite file
  - api_client: (client, token, admin_id) -- TestClient running the real
    lifespan, logged in as the seeded SUPER_ADMIN
  - make_user() / login() / auth_headers(): helpers for tests that need
    extra accounts
  - audit_records(): drain the recorder queue and return the trail

Design: each test module gets its own SQLite file under tmp_path_factory, not
a shared-memory URI. The audit recorder writes from its own worker thread
while route handlers run in TestClient's thread pool; a file database with
WAL gives both real concurrent connections without shared-cache table locks.

DEBUG must be set before any api/ import: api.main builds a module-level
app from get_settings(), which only auto-generates SECRET_KEY in dev mode.
Each test app gets its own Limiter, so the generous login_rate_limit in
make_settings() never leaks between modules.
"""

from __future__ import annotations

import os
import secrets
from collections.abc import Generator
from pathlib import Path

# CRITICAL: Set before any api/core import (see module docstring).
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from audit.models import AuditRecord
from auth.models import Role, User
from auth.tokens import hash_password
from core.config import Settings

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin123"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_settings(db_path: Path, **overrides) -> Settings:
    """Build Settings for one isolated test database."""
    values = {
        "debug": True,
        "secret_key": secrets.token_hex(32),
        "database_url": f"sqlite:///{db_path}",
        "default_admin_email": ADMIN_EMAIL,
        "default_admin_password": ADMIN_PASSWORD,
        "login_rate_limit": "1000/minute",
    }
    values.update(overrides)
    return Settings(**values)


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def login(client: TestClient, email: str, password: str) -> str:
    """Log in through the API and return the bearer token."""
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, f"Login as {email} failed: {resp.status_code} {resp.text}"
    return resp.json()["token"]


def make_user(
    client: TestClient,
    email: str,
    password: str = "secret123",
    role: str = Role.ADMIN.value,
    is_active: bool = True,
) -> int:
    """Insert a user straight into the store (there is no signup route).

    bcrypt rounds=4 keeps the suite fast; verify_password() reads the cost
    from the hash itself.
    """
    user = User(email=email, role=role, hashed_password=hash_password(password, rounds=4), is_active=is_active)
    return client.app.state.user_store.create_user(user)


def audit_records(client: TestClient, action: str | None = None) -> list[AuditRecord]:
    """Wait for pending audit writes, then return records newest first."""
    recorder = client.app.state.audit_recorder
    recorder.flush(timeout=10)
    records, _total = recorder.list_page(1, 10_000)
    if action is not None:
        records = [r for r in records if r.action == action]
    return records


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one app and database per test module
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(tmp_path_factory) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, admin_id) for API integration tests.

    The real lifespan runs, so the default SUPER_ADMIN is seeded exactly as
    in production. The token comes from a real POST /api/auth/login.
    """
    db_path = tmp_path_factory.mktemp("adminpanel") / "adminpanel.db"
    app = create_app(make_settings(db_path))

    with TestClient(app, raise_server_exceptions=True) as client:
        token = login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
        admin_id = client.app.state.user_store.get_by_email(ADMIN_EMAIL).id
        yield client, token, admin_id
