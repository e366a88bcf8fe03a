from helpers import error_code


SIGNUP_URL = "/api/v1/auth/signup"


def _signup(client, email="newbie@vistra-mail.com", password="Passw0rdX"):
    return client.post(SIGNUP_URL, json={"email": email, "password": password})


class TestSignupAndSignin:
    def test_signup_returns_tokens(self, client):
        response = _signup(client)
        assert response.status_code == 200
        result = response.json()["result"]
        assert result["user"]["email"] == "newbie@vistra-mail.com"
        assert result["user"]["is_active"] is True
        assert result["tokens"]["token_type"] == "bearer"

    def test_duplicate_email_is_409(self, client):
        _signup(client)
        response = _signup(client, email="NEWBIE@vistra-mail.com")
        assert response.status_code == 409
        assert error_code(response) == "AUTH_EMAIL_ALREADY_EXISTS"

    def test_weak_password_is_rejected(self, client):
        assert error_code(_signup(client, password="short1")) == "AUTH_PASSWORD_TOO_SHORT"
        assert error_code(_signup(client, password="lettersonly")) == "AUTH_PASSWORD_TOO_WEAK"

    def test_signin_wrong_password_is_401(self, client):
        _signup(client)
        response = client.post(
            "/api/v1/auth/signin",
            json={"email": "newbie@vistra-mail.com", "password": "Wrong1234"},
        )
        assert response.status_code == 401
        assert error_code(response) == "AUTH_INVALID_CREDENTIALS"


class TestRefreshRotation:
    def test_old_refresh_token_stops_working(self, client):
        tokens = _signup(client).json()["result"]["tokens"]

        rotated = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        replay = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})

        assert rotated.status_code == 200
        assert replay.status_code == 401
        assert error_code(replay) == "AUTH_REFRESH_JTI_MISMATCH"

    def test_logout_revokes_the_session(self, client):
        tokens = _signup(client).json()["result"]["tokens"]
        headers = {"Authorization": f"Bearer {tokens['access_token']}"}

        assert client.post("/api/v1/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/v1/subscriptions/me", headers=headers).status_code == 401

    def test_access_token_is_not_a_refresh_token(self, client):
        tokens = _signup(client).json()["result"]["tokens"]
        response = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
        assert error_code(response) == "AUTH_INVALID_TOKEN_TYPE"
