"""
Tests for authentication: password hashing, session tokens, login, logout,
password change and the password-reset token lifecycle.
"""

from datetime import timedelta

from sqlalchemy import select

from lexledger.auth import (
    SESSION_COOKIE_NAME,
    create_portal_token,
    create_session_token,
    hash_password,
    verify_password,
    verify_portal_token,
    verify_session_token,
)
from lexledger.models import AuditAction, PasswordResetToken, User
from lexledger.timestamps import now_utc
from tests.conftest import TEST_PASSWORD, audit_rows, csrf_data


# =============================================================================
# PASSWORD HASHING
# =============================================================================

class TestPasswordHashing:
    def test_hash_password_uses_bcrypt_work_factor_12(self):
        """Hashes are bcrypt strings with a cost of at least 12."""
        hashed = hash_password("mypassword")
        assert hashed.startswith("$2")
        assert int(hashed.split("$")[2]) >= 12

    def test_hash_password_produces_unique_salts(self):
        """Two hashes of the same password should have different salts."""
        assert hash_password("samepassword") != hash_password("samepassword")

    def test_verify_password_correct(self):
        hashed = hash_password("correct_password")
        assert verify_password("correct_password", hashed) is True

    def test_verify_password_incorrect(self):
        hashed = hash_password("correct_password")
        assert verify_password("wrong_password", hashed) is False

    def test_verify_password_malformed_hash(self):
        """Malformed hash string should not crash, just return False."""
        assert verify_password("anything", "not-a-valid-hash") is False
        assert verify_password("anything", "") is False
        assert verify_password("anything", None) is False


# =============================================================================
# SESSION TOKENS
# =============================================================================

class TestSessionTokens:
    def test_create_and_verify_session_token(self):
        """Valid token should decode back to the user's claims."""
        user = User(id="user-1", email="a@example.com", role="Partner")
        data = verify_session_token(create_session_token(user))
        assert data["user_id"] == "user-1"
        assert data["email"] == "a@example.com"
        assert data["role"] == "Partner"

    def test_expired_token_returns_none(self):
        user = User(id="user-1", email="a@example.com", role="Partner")
        assert verify_session_token(create_session_token(user), max_age=-1) is None

    def test_tampered_token_returns_none(self):
        user = User(id="user-1", email="a@example.com", role="Partner")
        assert verify_session_token(create_session_token(user) + "tampered") is None

    def test_garbage_token_returns_none(self):
        assert verify_session_token("not-a-valid-token-at-all") is None

    async def test_staff_and_portal_tokens_are_not_interchangeable(self, sample_client):
        """Staff and portal cookies are signed with different salts."""
        user = User(id="user-1", email="a@example.com", role="Admin")
        assert verify_portal_token(create_session_token(user)) is None
        assert verify_session_token(create_portal_token(sample_client)) is None


# =============================================================================
# LOGIN
# =============================================================================

class TestLogin:
    async def test_login_valid_credentials(self, client, test_user):
        """Valid credentials should redirect and set session cookie."""
        response = await client.post(
            "/login",
            data=csrf_data(client, {
                "email": "testuser@example.com",
                "password": TEST_PASSWORD,
            }),
            follow_redirects=False,
        )
        assert response.status_code == 303
        assert response.headers["location"] == "/dashboard"
        assert SESSION_COOKIE_NAME in response.cookies

    async def test_login_is_case_insensitive_on_email(self, client, test_user):
        response = await client.post(
            "/login",
            data=csrf_data(client, {"email": "TestUser@Example.com", "password": TEST_PASSWORD}),
            follow_redirects=False,
        )
        assert response.status_code == 303

    async def test_login_writes_audit_entry(self, client, db, test_user):
        """A successful login is logged under the user's identity."""
        user_id = test_user.id
        await client.post(
            "/login",
            data=csrf_data(client, {"email": "testuser@example.com", "password": TEST_PASSWORD}),
            follow_redirects=False,
        )
        rows = await audit_rows(db, AuditAction.LOGIN)
        assert len(rows) == 1
        assert rows[0].user_id == user_id
        assert rows[0].user_email == "testuser@example.com"

        user = await db.get(User, user_id, populate_existing=True)
        assert user.last_login_at is not None

    async def test_login_invalid_password(self, client, test_user):
        response = await client.post(
            "/login",
            data=csrf_data(client, {"email": "testuser@example.com", "password": "WrongPassword"}),
            follow_redirects=False,
        )
        assert response.status_code == 401
        assert SESSION_COOKIE_NAME not in response.cookies

    async def test_login_nonexistent_user(self, client):
        response = await client.post(
            "/login",
            data=csrf_data(client, {"email": "nobody@example.com", "password": "AnyPassword123"}),
            follow_redirects=False,
        )
        assert response.status_code == 401

    async def test_login_refuses_offsite_redirect(self, client, test_user):
        """The ``next`` target must be a local path."""
        response = await client.post(
            "/login",
            data=csrf_data(client, {
                "email": "testuser@example.com",
                "password": TEST_PASSWORD,
                "next": "//evil.example.com/",
            }),
            follow_redirects=False,
        )
        assert response.headers["location"] == "/dashboard"


# =============================================================================
# LOGOUT
# =============================================================================

class TestLogout:
    async def test_logout_clears_session(self, auth_client, db):
        """Logout should clear the session cookie and be audited."""
        response = await auth_client.post("/logout", follow_redirects=False)
        assert response.status_code == 303
        assert SESSION_COOKIE_NAME in response.headers.get("set-cookie", "")
        assert len(await audit_rows(db, AuditAction.LOGOUT)) == 1


# =============================================================================
# PROTECTED ROUTES
# =============================================================================

class TestProtectedRoutes:
    async def test_dashboard_requires_auth(self, client):
        response = await client.get("/dashboard")
        assert response.status_code == 401

    async def test_dashboard_accessible_when_authenticated(self, auth_client):
        response = await auth_client.get("/dashboard")
        assert response.status_code == 200
        body = response.json()
        assert body["total_clients"] == 0
        assert set(body["matters_by_status"]) == {"Open", "Pending", "Trial", "Closed"}

    async def test_deactivated_user_is_rejected(self, auth_client, db, test_user):
        """A still-valid cookie stops working once the account is disabled."""
        test_user.is_active = False
        await db.commit()
        response = await auth_client.get("/clients")
        assert response.status_code == 401


# =============================================================================
# CHANGE PASSWORD
# =============================================================================

class TestChangePassword:
    async def test_wrong_current_password_is_a_field_error(self, auth_client):
        response = await auth_client.post("/settings/change-password", json={
            "current_password": "not-my-password",
            "new_password": "BrandNewPass1",
            "confirm_password": "BrandNewPass1",
        })
        assert response.status_code == 422
        assert "current_password" in response.json()["errors"]

    async def test_change_password(self, auth_client, db, test_user):
        user_id = test_user.id
        response = await auth_client.post("/settings/change-password", json={
            "current_password": TEST_PASSWORD,
            "new_password": "BrandNewPass1",
            "confirm_password": "BrandNewPass1",
        })
        assert response.status_code == 200

        user = await db.get(User, user_id, populate_existing=True)
        assert verify_password("BrandNewPass1", user.password_hash)
        assert len(await audit_rows(db, AuditAction.CHANGE_PASSWORD)) == 1


# =============================================================================
# PASSWORD RESET
# =============================================================================

async def _issue_token(db, email, created_at=None):
    created_at = created_at or now_utc()
    reset = PasswordResetToken(
        email=email,
        token=f"token-{created_at.timestamp()}",
        created_at=created_at,
        expires_at=created_at + timedelta(hours=24),
    )
    db.add(reset)
    await db.commit()
    return reset.token


class TestPasswordReset:
    async def test_forgot_password_answers_the_same_for_unknown_email(self, client, db, test_user):
        known = await client.post("/forgot-password", data=csrf_data(client, {"email": "testuser@example.com"}))
        unknown = await client.post("/forgot-password", data=csrf_data(client, {"email": "nobody@example.com"}))
        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()

        result = await db.execute(select(PasswordResetToken))
        tokens = list(result.scalars().all())
        assert len(tokens) == 1
        assert tokens[0].expires_at - tokens[0].created_at == timedelta(hours=24)

    async def test_reset_with_valid_token_succeeds_once(self, client, db, test_user):
        token = await _issue_token(db, "testuser@example.com")
        form = {"token": token, "new_password": "ResetPass123", "confirm_password": "ResetPass123"}

        first = await client.post("/reset-password", data=csrf_data(client, form))
        assert first.status_code == 200

        second = await client.post("/reset-password", data=csrf_data(client, form))
        assert second.status_code == 400

    async def test_reset_after_expiry_fails(self, client, db, test_user):
        """A token created 24 hours ago has reached its expiry."""
        token = await _issue_token(db, "testuser@example.com", created_at=now_utc() - timedelta(hours=24))
        response = await client.post("/reset-password", data=csrf_data(client, {
            "token": token,
            "new_password": "ResetPass123",
            "confirm_password": "ResetPass123",
        }))
        assert response.status_code == 400

    async def test_reset_rejects_short_password(self, client, db, test_user):
        token = await _issue_token(db, "testuser@example.com")
        response = await client.post("/reset-password", data=csrf_data(client, {
            "token": token,
            "new_password": "short",
            "confirm_password": "short",
        }))
        assert response.status_code == 422
        assert "new_password" in response.json()["errors"]
