"""
Sign-up, sign-in, refresh and sign-out through the API.
"""
from conftest import PASSWORD
from database.models import AppRole, AuditLog, Profile
import config


def _signup(client, email="new@school.edu", **extra):
    payload = {"email": email, "password": PASSWORD, "fullName": "New Person"}
    payload.update(extra)
    return client.post("/api/auth/signup", json=payload)


class TestSignUp:

    def test_defaults_to_student(self, client):
        response = _signup(client)
        assert response.status_code == 201, response.text
        body = response.json()
        assert body["user"]["roles"] == ["student"]
        assert body["user"]["fullName"] == "New Person"
        assert body["access_token"] and body["refresh_token"]

    def test_teacher_can_be_chosen(self, client):
        response = _signup(client, role="teacher")
        assert response.status_code == 201
        assert response.json()["user"]["roles"] == ["teacher"]

    def test_admin_cannot_be_chosen(self, client):
        response = _signup(client, role="admin")
        assert response.status_code == 400
        assert response.json()["error"] == "validation_failed"

    def test_duplicate_email(self, client):
        assert _signup(client).status_code == 201
        assert _signup(client, email="NEW@school.edu").status_code == 400

    def test_weak_password(self, client):
        response = client.post("/api/auth/signup", json={"email": "weak@school.edu", "password": "abc"})
        assert response.status_code == 400


class TestSignIn:

    def test_login_and_me(self, client, make_user, login):
        user = make_user(AppRole.TEACHER, full_name="Tess Teacher")
        headers = login(user)
        me = client.get("/api/auth/me", headers=headers)
        assert me.status_code == 200
        body = me.json()
        assert body["id"] == user.id
        assert body["authenticated"] is True
        assert body["roles"] == ["teacher"]
        assert body["fullName"] == "Tess Teacher"

    def test_wrong_password(self, client, make_user):
        user = make_user()
        response = client.post("/api/auth/login", json={"email": user.email, "password": "Wrong0ne!"})
        assert response.status_code == 401
        assert response.json()["error"] == "authentication_required"

    def test_lockout_after_repeated_failures(self, client, make_user):
        user = make_user()
        for _ in range(config.MAX_LOGIN_ATTEMPTS):
            client.post("/api/auth/login", json={"email": user.email, "password": "Wrong0ne!"})
        response = client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD})
        assert response.status_code == 401

    def test_first_sign_in_creates_missing_profile(self, client, db, make_user, login):
        user = make_user()
        db.query(Profile).filter(Profile.user_id == user.id).delete()
        db.commit()
        login(user)
        db.expire_all()
        assert db.query(Profile).filter(Profile.user_id == user.id).count() == 1

    def test_no_token(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code == 401

    def test_garbage_token(self, client):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestSessions:

    def test_logout_invalidates_access_token(self, client, make_user, login):
        headers = login(make_user())
        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_logout_ends_refresh(self, client, make_user):
        user = make_user()
        tokens = client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD}).json()
        headers = {"Authorization": f"Bearer {tokens['access_token']}"}
        client.post("/api/auth/logout", headers=headers)
        response = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 401

    def test_refresh_rotates_token(self, client, make_user):
        user = make_user()
        tokens = client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD}).json()

        refreshed = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refreshed.status_code == 200
        new_tokens = refreshed.json()
        assert new_tokens["refresh_token"] != tokens["refresh_token"]
        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {new_tokens['access_token']}"})
        assert me.status_code == 200

        # The old refresh token was consumed
        reused = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert reused.status_code == 401

    def test_access_token_is_not_a_refresh_token(self, client, make_user):
        user = make_user()
        tokens = client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD}).json()
        response = client.post("/api/auth/refresh", json={"refresh_token": tokens["access_token"]})
        assert response.status_code == 401


class TestAudit:

    def test_sign_ins_are_audited(self, client, db, make_user, login):
        user = make_user()
        login(user)
        client.post("/api/auth/login", json={"email": user.email, "password": "Wrong0ne!"})

        actions = {entry.action: entry for entry in db.query(AuditLog).all()}
        assert actions["user_login"].user_id == user.id
        assert actions["login_failed"].user_id is None
        assert actions["login_failed"].details == {"email": user.email}
