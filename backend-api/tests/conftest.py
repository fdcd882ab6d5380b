"""Pytest configuration for character sheet tests."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest

# 설정 모듈이 import 되기 전에 테스트용 환경변수 지정
_TEST_DB_DIR = Path(tempfile.mkdtemp(prefix="charsheet-test-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR / 'test.db'}"
os.environ["ENVIRONMENT"] = "development"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SMTP_HOST"] = ""


async def _clear_tables():
    from sqlalchemy import delete, update

    from charsheet.core.database import AsyncSessionLocal
    from charsheet.models import Character, CharacterSave, PasswordReset, User

    async with AsyncSessionLocal() as session:
        await session.execute(delete(CharacterSave))
        await session.execute(update(User).values(active_character_id=None))
        await session.execute(delete(Character))
        await session.execute(delete(PasswordReset))
        await session.execute(delete(User))
        await session.commit()


# ============================================================================
# API Fixtures
# ============================================================================


@pytest.fixture
def client():
    """lifespan 포함 TestClient (매 테스트 빈 DB)"""
    from fastapi.testclient import TestClient

    from charsheet.main import app

    with TestClient(app) as test_client:
        test_client.portal.call(_clear_tables)
        yield test_client


@pytest.fixture
def register_user(client):
    """회원가입 + 로그인 후 Authorization 헤더 반환"""

    def _register(
        email: str = "alice@example.com",
        username: str = "alice",
        password: str = "pw123456",
    ) -> dict:
        res = client.post("/auth/register", json={"email": email, "password": password, "username": username})
        assert res.status_code == 201, res.text
        res = client.post("/auth/login", json={"email": email, "password": password})
        assert res.status_code == 200, res.text
        return {"Authorization": f"Bearer {res.json()['token']}"}

    return _register


@pytest.fixture
def auth_headers(register_user):
    return register_user()


# ============================================================================
# Client Fixtures
# ============================================================================


@pytest.fixture
def view():
    from charsheet.client import MemoryView

    return MemoryView()


@pytest.fixture
def bus():
    from charsheet.client import UIStateBus

    return UIStateBus()


@pytest.fixture
def cache():
    from charsheet.client import LocalCache, MemoryBackend

    return LocalCache(MemoryBackend())


@pytest.fixture
def manager(view, bus):
    from charsheet.client import CharacterStateManager

    return CharacterStateManager(view, bus)


@pytest.fixture
def snapshot(view, bus, cache):
    from charsheet.client import SnapshotCapture

    return SnapshotCapture(view, bus, cache)
