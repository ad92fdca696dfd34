# Overview: Pytest coverage for login, bearer sessions and shop access.

from datetime import timedelta

import pytest

from shopsync.models import SecurityEvent, SessionToken
from shopsync.services import access_service, auth_service, session_service
from shopsync.validation import ConflictError, ValidationError


class TestLogin:

    def test_login_returns_bearer_token(self, client, db_session, clerk):
        response = client.post('/api/auth/login', json={"username": "clerk", "password": "Password123"})

        assert response.status_code == 200
        data = response.json["data"]
        assert data["token_type"] == "Bearer"
        assert data["user"]["username"] == "clerk"
        assert "password_hash" not in data["user"]
        assert db_session.query(SecurityEvent).filter_by(event_type="LOGIN_SUCCESS").count() == 1

    def test_login_by_email(self, login, db_session, clerk):
        assert login("CLERK@example.com") is not None

    def test_bad_password_is_401_and_audited(self, client, db_session, clerk):
        response = client.post('/api/auth/login', json={"username": "clerk", "password": "wrong-pass1"})

        assert response.status_code == 401
        event = db_session.query(SecurityEvent).filter_by(event_type="LOGIN_FAILED").one()
        assert event.success is False

    def test_missing_fields_is_422(self, client, db_session):
        response = client.post('/api/auth/login', json={"username": "clerk"})
        assert response.status_code == 422

    def test_inactive_user_cannot_login(self, login, db_session, clerk):
        auth_service.deactivate_user(clerk.id)
        assert login("clerk") is None


class TestSessions:

    def test_protected_route_without_token(self, client, db_session):
        response = client.get('/api/auth/me')
        assert response.status_code == 401
        assert response.json["success"] is False

    def test_me_lists_accessible_shops(self, client, db_session, clerk_headers, clerk, shop_a):
        response = client.get('/api/auth/me', headers=clerk_headers)
        assert response.status_code == 200
        assert response.json["data"]["shop_ids"] == [shop_a.id]

    def test_logout_revokes_token(self, client, login, db_session, clerk):
        headers = login("clerk")
        assert client.post('/api/auth/logout', headers=headers).status_code == 200
        assert client.get('/api/auth/me', headers=headers).status_code == 401

    def test_refresh_rotates_token(self, client, login, db_session, clerk):
        old_headers = login("clerk")
        response = client.post('/api/auth/refresh', headers=old_headers)

        assert response.status_code == 200
        new_headers = {"Authorization": f"Bearer {response.json['data']['token']}"}
        assert client.get('/api/auth/me', headers=old_headers).status_code == 401
        assert client.get('/api/auth/me', headers=new_headers).status_code == 200

    def test_expired_session_is_rejected(self, app, db_session, clerk):
        session, token = session_service.create_session(clerk)
        session.expires_at = session.created_at - timedelta(seconds=1)
        db_session.commit()
        assert session_service.validate_session(token) is None

    def test_idle_session_is_revoked(self, app, db_session, clerk):
        session, token = session_service.create_session(clerk)
        session.last_used_at = session.last_used_at - timedelta(hours=app.config["SESSION_IDLE_TIMEOUT_HOURS"] + 1)
        db_session.commit()

        assert session_service.validate_session(token) is None
        db_session.refresh(session)
        assert session.is_revoked is True

    def test_only_token_hash_is_stored(self, db_session, clerk):
        _, token = session_service.create_session(clerk)
        stored = db_session.query(SessionToken).filter_by(user_id=clerk.id).one()
        assert stored.token_hash == session_service.hash_token(token)
        assert stored.token_hash != token


class TestUsers:

    def test_weak_password_rejected(self, db_session, shop_a):
        with pytest.raises(ValidationError):
            auth_service.create_user("weak", "weak@example.com", "short", shop_id=shop_a.id)

    def test_duplicate_username_conflicts(self, db_session, clerk):
        with pytest.raises(ConflictError):
            auth_service.create_user("clerk", "other@example.com", "Password123")


class TestShopAccess:

    def test_admin_reaches_every_shop(self, db_session, admin, shop_a, shop_b):
        assert access_service.accessible_shop_ids(admin) is None
        assert access_service.can_access_shop(admin, shop_b.id)

    def test_grant_and_revoke(self, db_session, manager, admin, shop_a, shop_b):
        assert not access_service.can_access_shop(manager, shop_b.id)

        access_service.grant_shop_access(user_id=manager.id, shop_id=shop_b.id, granted_by_user_id=admin.id)
        assert access_service.can_access_shop(manager, shop_b.id)
        assert access_service.accessible_shop_ids(manager) == {shop_a.id, shop_b.id}

        assert access_service.revoke_shop_access(user_id=manager.id, shop_id=shop_b.id)
        assert not access_service.can_access_shop(manager, shop_b.id)
        assert db_session.query(SecurityEvent).filter(
            SecurityEvent.event_type.in_(("SHOP_ACCESS_GRANTED", "SHOP_ACCESS_REVOKED"))
        ).count() == 2
