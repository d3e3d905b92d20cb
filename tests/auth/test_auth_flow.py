"""End-to-end registration, login, logout and password reset over HTTP."""

import pytest

from echat.verification.service import CodeType

REGISTER_CODE = "/api/v1/auth/send-register-code"
RESET_CODE = "/api/v1/auth/send-reset-code"


def _sent_code(mock_email_service) -> str:
    return mock_email_service.send_verification_code.call_args.args[1]


class TestRegister:
    @pytest.mark.asyncio
    async def test_register_issues_session_and_device(self, client, register, app_region):
        region, _ = app_region
        body = await register("Carol@Acme.io", username="carol", full_name="Carol C")

        assert body["token_type"] == "bearer"
        assert body["user"]["email"] == "carol@acme.io"
        assert body["user"]["region"] == region.value
        assert "password_hash" not in body["user"]

        me = await client.get("/api/v1/users/me", headers=body["auth"])
        assert me.status_code == 200
        assert me.json()["full_name"] == "Carol C"

        devices = await client.get("/api/v1/devices", headers=body["auth"])
        assert devices.status_code == 200
        assert len(devices.json()) == 1
        assert devices.json()[0]["is_current"] is True
        assert devices.json()[0]["location"] == "Local"

    @pytest.mark.asyncio
    async def test_send_code_delivers_register_email(self, client, mock_email_service):
        response = await client.post(REGISTER_CODE, json={"email": "new@acme.io"})
        assert response.status_code == 200
        assert response.json()["expires_in"] == 600
        args = mock_email_service.send_verification_code.call_args.args
        assert args[0] == "new@acme.io"
        assert args[2] is CodeType.REGISTER

    @pytest.mark.asyncio
    async def test_resend_inside_window_is_429(self, client, mock_email_service):
        assert (await client.post(REGISTER_CODE, json={"email": "new@acme.io"})).status_code == 200
        response = await client.post(REGISTER_CODE, json={"email": "new@acme.io"})
        assert response.status_code == 429
        assert "seconds" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_send_code_for_registered_email_is_409(self, client, alice):
        response = await client.post(REGISTER_CODE, json={"email": "alice@acme.io"})
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_email_delivery_failure_is_502(self, client, mock_email_service):
        mock_email_service.send_verification_code.return_value = False
        response = await client.post(REGISTER_CODE, json={"email": "new@acme.io"})
        assert response.status_code == 502

    @pytest.mark.asyncio
    async def test_wrong_code_is_400(self, client, mock_email_service):
        await client.post(REGISTER_CODE, json={"email": "new@acme.io"})
        code = _sent_code(mock_email_service)
        wrong = "000000" if code != "000000" else "111111"
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": "new@acme.io", "password": "Str0ngPassword1", "code": wrong},
        )
        assert response.status_code == 400
        assert "attempts remaining" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_weak_password_is_400_and_code_survives(self, client, mock_email_service):
        await client.post(REGISTER_CODE, json={"email": "new@acme.io"})
        code = _sent_code(mock_email_service)
        weak = await client.post(
            "/api/v1/auth/register", json={"email": "new@acme.io", "password": "short", "code": code}
        )
        assert weak.status_code == 400

        ok = await client.post(
            "/api/v1/auth/register", json={"email": "new@acme.io", "password": "Str0ngPassword1", "code": code}
        )
        assert ok.status_code == 201

    @pytest.mark.asyncio
    async def test_invalid_email_is_422(self, client):
        response = await client.post(REGISTER_CODE, json={"email": "not-an-email"})
        assert response.status_code == 422
        assert response.json()["detail"] == "Validation error"


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_creates_second_device(self, client, alice):
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "ALICE@acme.io", "password": "Str0ngPassword1"},
            headers={"User-Agent": "Mozilla/5.0 (Linux; Android 14; Pixel 8) Chrome/120.0.0.0 Mobile Safari/537.36"},
        )
        assert response.status_code == 200
        token = response.json()["access_token"]
        assert token != alice["access_token"]

        devices = (await client.get("/api/v1/devices", headers={"Authorization": f"Bearer {token}"})).json()
        assert len(devices) == 2
        assert sorted(d["device_type"] for d in devices) == ["android", "web"]

    @pytest.mark.asyncio
    async def test_wrong_password(self, client, alice):
        response = await client.post("/api/v1/auth/login", json={"email": "alice@acme.io", "password": "Wr0ngPassword"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_unknown_email_looks_the_same(self, client):
        response = await client.post("/api/v1/auth/login", json={"email": "ghost@acme.io", "password": "Wr0ngPassword"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"


class TestSessions:
    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/api/v1/users/me")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_garbage_token(self, client):
        response = await client.get("/api/v1/users/me", headers={"Authorization": "Bearer not.a.jwt"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_logout_revokes_session(self, client, alice):
        response = await client.post("/api/v1/auth/logout", headers=alice["auth"])
        assert response.status_code == 200

        again = await client.get("/api/v1/users/me", headers=alice["auth"])
        assert again.status_code == 401
        assert again.json()["detail"] == "Session has been revoked"


class TestPasswordReset:
    @pytest.mark.asyncio
    async def test_full_reset_flow(self, client, alice, mock_email_service):
        response = await client.post(RESET_CODE, json={"email": "alice@acme.io"})
        assert response.status_code == 200
        assert mock_email_service.send_verification_code.call_args.args[2] is CodeType.RESET_PASSWORD
        code = _sent_code(mock_email_service)

        reset = await client.post(
            "/api/v1/auth/reset-password",
            json={"email": "alice@acme.io", "code": code, "new_password": "N3wPassword99"},
        )
        assert reset.status_code == 200

        old = await client.post("/api/v1/auth/login", json={"email": "alice@acme.io", "password": "Str0ngPassword1"})
        assert old.status_code == 401
        new = await client.post("/api/v1/auth/login", json={"email": "alice@acme.io", "password": "N3wPassword99"})
        assert new.status_code == 200

        replay = await client.post(
            "/api/v1/auth/reset-password",
            json={"email": "alice@acme.io", "code": code, "new_password": "An0therPass77"},
        )
        assert replay.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_email_gets_identical_response(self, client, alice, mock_email_service):
        known = await client.post(RESET_CODE, json={"email": "alice@acme.io"})
        mock_email_service.send_verification_code.reset_mock()
        unknown = await client.post(RESET_CODE, json={"email": "nobody@acme.io"})
        limited = await client.post(RESET_CODE, json={"email": "alice@acme.io"})

        assert known.status_code == unknown.status_code == limited.status_code == 200
        assert known.json() == unknown.json() == limited.json()
        mock_email_service.send_verification_code.assert_not_called()

    @pytest.mark.asyncio
    async def test_reset_without_code_request(self, client, alice):
        response = await client.post(
            "/api/v1/auth/reset-password",
            json={"email": "alice@acme.io", "code": "123456", "new_password": "N3wPassword99"},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Verification code not found or expired"
