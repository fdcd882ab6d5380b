"""Auth API tests.

회원가입 / 로그인 / 토큰 검증 / 비밀번호 재설정 흐름을 실제 라우터로 검증합니다.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from charsheet.api import auth as auth_api
from charsheet.core.config import settings
from charsheet.core.security import create_access_token, verify_token

GENERIC_MESSAGE = {"message": "If an account with that email exists, a password reset link has been sent."}


async def _expire_reset_tokens():
    from sqlalchemy import update

    from charsheet.core.database import AsyncSessionLocal
    from charsheet.models import PasswordReset

    async with AsyncSessionLocal() as session:
        await session.execute(
            update(PasswordReset).values(expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
        )
        await session.commit()


async def _count_reset_rows() -> int:
    from sqlalchemy import func, select

    from charsheet.core.database import AsyncSessionLocal
    from charsheet.models import PasswordReset

    async with AsyncSessionLocal() as session:
        return (await session.execute(select(func.count()).select_from(PasswordReset))).scalar_one()


class TestRegister:
    """POST /auth/register"""

    def test_register_returns_public_user(self, client):
        res = client.post(
            "/auth/register",
            json={"email": "Alice@Example.com", "password": "pw123456", "username": "alice"},
        )

        assert res.status_code == 201
        body = res.json()
        assert body["message"] == "User created successfully"
        assert body["user"]["email"] == "alice@example.com"
        assert body["user"]["username"] == "alice"
        assert "hashed_password" not in body["user"]
        assert "password" not in body["user"]

    def test_missing_fields_is_400(self, client):
        res = client.post("/auth/register", json={"email": "a@example.com"})

        assert res.status_code == 400
        assert res.json() == {"error": "Email, password, and username are required"}

    def test_short_password_is_400(self, client):
        res = client.post("/auth/register", json={"email": "a@example.com", "password": "123", "username": "abc"})

        assert res.status_code == 400
        assert "at least 6" in res.json()["error"]

    def test_invalid_email_is_400(self, client):
        res = client.post("/auth/register", json={"email": "nope", "password": "pw123456", "username": "abc"})

        assert res.status_code == 400
        assert res.json()["error"] == "Invalid email format"

    def test_duplicate_email_is_409(self, client, register_user):
        register_user()

        res = client.post(
            "/auth/register",
            json={"email": "alice@example.com", "password": "pw123456", "username": "other"},
        )

        assert res.status_code == 409
        assert res.json()["error"] == "Email already exists"

    def test_duplicate_username_is_409(self, client, register_user):
        register_user()

        res = client.post(
            "/auth/register",
            json={"email": "other@example.com", "password": "pw123456", "username": "alice"},
        )

        assert res.status_code == 409
        assert res.json()["error"] == "Username already exists"


class TestLogin:
    """POST /auth/login, GET /auth/me"""

    def test_login_and_me(self, client, register_user):
        headers = register_user()

        res = client.get("/auth/me", headers=headers)

        assert res.status_code == 200
        assert res.json()["username"] == "alice"

    def test_wrong_password_and_unknown_email_look_the_same(self, client, register_user):
        register_user()

        wrong = client.post("/auth/login", json={"email": "alice@example.com", "password": "bad-password"})
        unknown = client.post("/auth/login", json={"email": "ghost@example.com", "password": "pw123456"})

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json() == {"error": "Invalid email or password"}

    def test_missing_token_is_401(self, client):
        res = client.get("/auth/me")

        assert res.status_code == 401
        assert res.json() == {"error": "No token provided"}

    def test_garbage_token_is_401(self, client):
        res = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})

        assert res.status_code == 401
        assert res.json() == {"error": "Invalid token"}

    def test_expired_token_is_401(self, client, register_user):
        headers = register_user()
        me = client.get("/auth/me", headers=headers).json()
        expired = create_access_token({"sub": me["id"]}, expires_delta=timedelta(seconds=-5))

        res = client.get("/auth/me", headers={"Authorization": f"Bearer {expired}"})

        assert res.status_code == 401

    def test_token_carries_subject_and_type(self):
        token = create_access_token({"sub": "abc"})

        payload = verify_token(token)

        assert payload["sub"] == "abc"
        assert payload["type"] == "access"
        assert verify_token(token, token_type="refresh") is None


class TestPasswordReset:
    """POST /auth/forgot-password, /auth/reset-password"""

    def test_unknown_email_gets_generic_message(self, client):
        res = client.post("/auth/forgot-password", json={"email": "ghost@example.com"})

        assert res.status_code == 200
        assert res.json() == {
            "message": "If an account with that email exists, a password reset link has been sent."
        }

    def test_reset_flow_changes_password(self, client, register_user):
        register_user()

        forgot = client.post("/auth/forgot-password", json={"email": "alice@example.com"})
        assert forgot.status_code == 200
        token = forgot.json()["resetToken"]
        assert token in forgot.json()["resetUrl"]

        reset = client.post("/auth/reset-password", json={"token": token, "password": "newpass99"})
        assert reset.status_code == 200

        old = client.post("/auth/login", json={"email": "alice@example.com", "password": "pw123456"})
        new = client.post("/auth/login", json={"email": "alice@example.com", "password": "newpass99"})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_reset_token_is_single_use(self, client, register_user):
        register_user()
        token = client.post("/auth/forgot-password", json={"email": "alice@example.com"}).json()["resetToken"]

        first = client.post("/auth/reset-password", json={"token": token, "password": "newpass99"})
        second = client.post("/auth/reset-password", json={"token": token, "password": "another99"})

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["error"] == "Invalid or expired reset token"

    def test_second_request_replaces_token(self, client, register_user):
        register_user()
        first = client.post("/auth/forgot-password", json={"email": "alice@example.com"}).json()["resetToken"]
        second = client.post("/auth/forgot-password", json={"email": "alice@example.com"}).json()["resetToken"]

        assert first != second
        res = client.post("/auth/reset-password", json={"token": first, "password": "newpass99"})
        assert res.status_code == 400

    def test_expired_token_is_400(self, client, register_user):
        register_user()
        token = client.post("/auth/forgot-password", json={"email": "alice@example.com"}).json()["resetToken"]
        client.portal.call(_expire_reset_tokens)

        res = client.post("/auth/reset-password", json={"token": token, "password": "newpass99"})

        assert res.status_code == 400
        assert res.json() == {"error": "Invalid or expired reset token"}
        login = client.post("/auth/login", json={"email": "alice@example.com", "password": "pw123456"})
        assert login.status_code == 200


class TestPasswordResetInProduction:
    """운영 환경: 토큰을 응답에 싣지 않고, 계정 유무를 드러내지 않는다"""

    def test_known_and_unknown_email_look_the_same(self, client, register_user, monkeypatch):
        register_user()
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")

        known = client.post("/auth/forgot-password", json={"email": "alice@example.com"})
        unknown = client.post("/auth/forgot-password", json={"email": "ghost@example.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json() == GENERIC_MESSAGE
        assert client.portal.call(_count_reset_rows) == 1

    def test_mail_failure_still_returns_generic_message(self, client, register_user, monkeypatch):
        register_user()
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")

        async def _broken_mail(to_email, token):
            raise ConnectionRefusedError("smtp down")

        monkeypatch.setattr(auth_api, "send_password_reset_email", _broken_mail)

        res = client.post("/auth/forgot-password", json={"email": "alice@example.com"})

        assert res.status_code == 200
        assert res.json() == GENERIC_MESSAGE
        assert client.portal.call(_count_reset_rows) == 1
