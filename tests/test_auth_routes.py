from datetime import timedelta

import pytest
from sqlalchemy import update

from otp_auth.db.models import OtpRecord, User
from otp_auth.services.auth import INACTIVE_MESSAGE

from .conftest import create_user, get_otp_record, get_user

pytestmark = pytest.mark.anyio

JOHN = {"firstName": "john", "lastName": "doe", "email": "john@example.com", "password": "supersecret"}


async def register(client, **overrides):
    return await client.post("/auth/register", json={**JOHN, **overrides})


async def current_code(session_factory, email="john@example.com") -> int:
    record = await get_otp_record(session_factory, email)
    assert record is not None
    return record.code


async def test_healthcheck(client):
    response = await client.get("/")
    assert response.status_code == 200


async def test_register_sends_otp_and_sets_session(client, mailer, clock):
    response = await register(client)

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "otp": {"email": "john@example.com", "phone": None, "expiryTime": clock.millis + 60_000},
    }
    assert "sid" in client.cookies
    assert mailer.subjects == ["Verification"]


async def test_register_then_verify_creates_account(client, session_factory):
    await register(client)
    code = await current_code(session_factory)

    response = await client.post("/auth/verify", json={"otp": code})

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["user"]["firstName"] == "John"
    assert body["user"]["lastName"] == "Doe"
    assert body["user"]["role"] == "user"
    assert body["user"]["status"] == "active"
    assert body["token"] == client.cookies.get("token")
    assert "sid" not in client.cookies
    assert await get_otp_record(session_factory, "john@example.com") is None

    duplicate = await register(client)
    assert duplicate.status_code == 400
    assert duplicate.json() == {"success": False, "message": "email already exist"}


async def test_no_account_exists_before_verification(client, session_factory):
    await register(client)
    assert await get_user(session_factory, "john@example.com") is None


async def test_register_reports_missing_fields(client):
    response = await client.post("/auth/register", json={"email": "john@example.com"})
    assert response.status_code == 400
    assert response.json()["message"] == "missing fields: firstname, lastname, password"


async def test_register_rejects_invalid_email(client, mailer):
    response = await register(client, email="not-an-email")
    assert response.json() == {"success": False, "message": "invalid email"}
    assert mailer.sent == []


async def test_register_rejects_taken_phone(client, session_factory):
    await create_user(session_factory, phone="+16502530000")
    response = await register(client, phone="+16502530000")
    assert response.json()["message"] == "phone already exist"


async def test_malformed_json_is_a_bad_request(client):
    response = await client.post(
        "/auth/login", content="{not json", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400
    assert response.json()["success"] is False


async def test_resend_is_rate_limited_then_allowed(client, clock):
    await register(client)

    limited = await client.get("/auth/resend-otp")
    assert limited.status_code == 429
    assert limited.json()["message"] == "please wait 60 seconds before resending otp"

    clock.advance(seconds=61)
    allowed = await client.get("/auth/resend-otp")
    assert allowed.status_code == 200
    assert allowed.json()["otp"]["expiryTime"] == clock.millis + 60_000


async def test_resend_without_session_has_expired(client):
    response = await client.get("/auth/resend-otp")
    assert response.json() == {"success": False, "message": "session expired"}


async def test_resend_in_reset_context_needs_existing_account(client, clock):
    await register(client)
    clock.advance(seconds=61)

    response = await client.get("/auth/resend-otp", params={"reset": "true"})
    assert response.json()["message"] == "email doesn't exist"


async def test_otp_status_reports_remaining_wait(client, clock):
    await register(client)
    clock.advance(seconds=15)

    response = await client.get("/auth/otp-status")

    assert response.status_code == 200
    otp = response.json()["otp"]
    assert otp["message"] == "please wait 45 seconds before resending otp"
    assert otp["attempts"] == 1
    assert otp["expiryTime"] == clock.millis + 45_000


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ({}, "otp is required"),
        ({"otp": "abc"}, "invalid otp"),
        ({"otp": True}, "invalid otp"),
        ({"otp": 123456, "reset": "yes"}, "invalid reset"),
        ({"otp": 12.5}, "invalid passcode"),
    ],
)
async def test_verify_rejects_bad_input(client, body, message):
    await register(client)
    response = await client.post("/auth/verify", json=body)
    assert response.status_code == 400
    assert response.json()["message"] == message


async def test_verify_wrong_code(client, session_factory):
    await register(client)
    code = await current_code(session_factory)

    response = await client.post("/auth/verify", json={"otp": (code + 1) % 1_000_000})

    assert response.json()["message"] == "invalid passcode"
    assert await get_user(session_factory, "john@example.com") is None


async def test_verify_expired_code(client, session_factory, clock):
    await register(client)
    code = await current_code(session_factory)
    clock.advance(seconds=61)

    response = await client.post("/auth/verify", json={"otp": code})
    assert response.json()["message"] == "otp has expired"


async def test_verify_without_session(client):
    response = await client.post("/auth/verify", json={"otp": 123456})
    assert response.json()["message"] == "session expired"


async def test_verify_when_account_appeared_meanwhile(client, session_factory):
    await register(client)
    code = await current_code(session_factory)
    await create_user(session_factory, email="john@example.com")

    response = await client.post("/auth/verify", json={"otp": code})
    assert response.json()["message"] == "user already exists"


async def test_login_with_email_sets_token_cookie(client, session_factory):
    user = await create_user(session_factory)

    response = await client.post("/auth/login", json={"email": "jane@example.com", "password": "supersecret"})

    assert response.status_code == 200
    body = response.json()
    assert body["user"]["id"] == user.id
    assert "hashedPassword" not in body["user"]
    assert client.cookies.get("token") == body["token"]


async def test_login_with_phone(client, session_factory):
    await create_user(session_factory, phone="+16502530000")
    response = await client.post("/auth/login", json={"phone": "+16502530000", "password": "supersecret"})
    assert response.status_code == 200


@pytest.mark.parametrize(
    ("body", "status_code", "message"),
    [
        ({"email": "jane@example.com", "password": "wrongpassword"}, 400, "invalid password"),
        ({"email": "nobody@example.com", "password": "supersecret"}, 400, "email doesn't exist"),
        ({"phone": "+16502530001", "password": "supersecret"}, 400, "phone number doesn't exist"),
        ({"password": "supersecret"}, 400, "either email or phone is required"),
        ({"email": "jane@example.com"}, 400, "password is required"),
    ],
)
async def test_login_failures(client, session_factory, body, status_code, message):
    await create_user(session_factory)
    response = await client.post("/auth/login", json=body)
    assert response.status_code == status_code
    assert response.json() == {"success": False, "message": message}


async def test_login_inactive_account_is_forbidden(client, session_factory):
    await create_user(session_factory, status="inactive")
    response = await client.post("/auth/login", json={"email": "jane@example.com", "password": "supersecret"})
    assert response.status_code == 403
    assert response.json()["message"] == INACTIVE_MESSAGE


async def test_forgot_password_unknown_email(client):
    response = await client.post("/auth/forgot-password", json={"email": "nobody@example.com"})
    assert response.status_code == 400
    assert response.json()["message"] == "email doesn't exist"


async def test_forgot_password_inactive_account(client, session_factory, mailer):
    await create_user(session_factory, status="inactive")
    response = await client.post("/auth/forgot-password", json={"email": "jane@example.com"})
    assert response.status_code == 403
    assert mailer.sent == []


async def test_password_reset_flow(client, session_factory, mailer):
    await create_user(session_factory, password="oldpassword")

    started = await client.post("/auth/forgot-password", json={"email": "jane@example.com"})
    assert started.status_code == 200
    assert mailer.subjects == ["Password Reset Request"]

    code = await current_code(session_factory, "jane@example.com")
    verified = await client.post("/auth/verify", json={"otp": code, "reset": True})
    assert verified.status_code == 200
    assert verified.json() == {"success": True, "message": "ok"}

    updated = await client.put("/auth/update-password", json={"password": "newpassword"})
    assert updated.status_code == 200
    assert mailer.subjects[-1] == "Password Updated"
    assert "sid" not in client.cookies

    old = await client.post("/auth/login", json={"email": "jane@example.com", "password": "oldpassword"})
    assert old.json()["message"] == "invalid password"
    new = await client.post("/auth/login", json={"email": "jane@example.com", "password": "newpassword"})
    assert new.status_code == 200


async def test_update_password_requires_verified_otp(client, session_factory):
    await create_user(session_factory)
    await client.post("/auth/forgot-password", json={"email": "jane@example.com"})

    response = await client.put("/auth/update-password", json={"password": "newpassword"})
    assert response.json()["message"] == "otp verification required"


async def test_update_password_without_session(client):
    response = await client.put("/auth/update-password", json={"password": "newpassword"})
    assert response.json()["message"] == "session expired"


async def test_logout_drops_session_and_token(client, session_factory):
    await create_user(session_factory)
    await client.post("/auth/login", json={"email": "jane@example.com", "password": "supersecret"})
    await client.post("/auth/forgot-password", json={"email": "jane@example.com"})

    response = await client.get("/auth/logout")

    assert response.json() == {"success": True, "message": "ok"}
    assert "token" not in client.cookies
    status = await client.get("/auth/otp-status")
    assert status.json()["message"] == "session expired"


async def test_reauthenticate_with_cookie(client, session_factory):
    user = await create_user(session_factory)
    await client.post("/auth/login", json={"email": "jane@example.com", "password": "supersecret"})

    response = await client.get("/auth/reauthenticate")

    assert response.status_code == 200
    assert response.json()["user"]["id"] == user.id


async def test_reauthenticate_with_bearer_header(client, session_factory):
    await create_user(session_factory)
    login = await client.post("/auth/login", json={"email": "jane@example.com", "password": "supersecret"})
    token = login.json()["token"]
    client.cookies.clear()

    response = await client.get("/auth/reauthenticate", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200


async def test_reauthenticate_requires_login(client):
    response = await client.get("/auth/reauthenticate")
    assert response.status_code == 401
    assert response.json()["message"] == "please login to continue"


async def test_reauthenticate_rejects_garbage_token(client):
    response = await client.get("/auth/reauthenticate", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.json()["message"] == "invalid or expired token"


async def test_register_with_newline_in_name_is_rejected(client, mailer):
    response = await register(client, firstName="John\n")
    assert response.json() == {"success": False, "message": "invalid first name"}
    assert mailer.sent == []


async def test_rate_limited_register_keeps_earlier_details(client, session_factory):
    await register(client, password="firstpassword")
    code = await current_code(session_factory)

    retried = await register(client, firstName="mallory", lastName="other", password="otherpassword")
    assert retried.status_code == 429

    verified = await client.post("/auth/verify", json={"otp": code})
    assert verified.status_code == 201
    assert verified.json()["user"]["firstName"] == "John"
    assert verified.json()["user"]["lastName"] == "Doe"

    client.cookies.clear()
    login = await client.post("/auth/login", json={"email": "john@example.com", "password": "firstpassword"})
    assert login.status_code == 200


async def test_rate_limited_forgot_password_keeps_pending_registration(client, session_factory, clock):
    await create_user(session_factory)
    await register(client)
    code = await current_code(session_factory)
    async with session_factory() as session:
        session.add(
            OtpRecord(
                email="jane@example.com",
                code=(code + 1) % 1_000_000,
                expiry_time=clock() + timedelta(seconds=60),
                last_sent_at=clock(),
            )
        )
        await session.commit()

    retried = await client.post("/auth/forgot-password", json={"email": "jane@example.com"})
    assert retried.status_code == 429

    verified = await client.post("/auth/verify", json={"otp": code})
    assert verified.status_code == 201
    assert verified.json()["user"]["email"] == "john@example.com"



async def test_update_password_rechecks_account_status(client, session_factory):
    await create_user(session_factory)
    await client.post("/auth/forgot-password", json={"email": "jane@example.com"})
    code = await current_code(session_factory, "jane@example.com")
    await client.post("/auth/verify", json={"otp": code, "reset": True})

    async with session_factory() as session:
        await session.execute(update(User).where(User.email == "jane@example.com").values(status="inactive"))
        await session.commit()

    response = await client.put("/auth/update-password", json={"password": "newpassword"})
    assert response.status_code == 403
    assert response.json()["message"] == INACTIVE_MESSAGE


async def test_resend_in_reset_context(client, session_factory, mailer, clock):
    await create_user(session_factory)
    await client.post("/auth/forgot-password", json={"email": "jane@example.com"})
    clock.advance(seconds=61)

    response = await client.get("/auth/resend-otp", params={"reset": "true"})

    assert response.status_code == 200
    assert response.json()["otp"]["email"] == "jane@example.com"
    assert mailer.subjects == ["Password Reset Request", "Password Reset Request"]


async def test_resend_in_registration_context_rejects_taken_phone(client, session_factory, clock):
    await register(client, phone="+16502530000")
    await create_user(session_factory, email="other@example.com", phone="+16502530000")
    clock.advance(seconds=61)

    response = await client.get("/auth/resend-otp")
    assert response.status_code == 400
    assert response.json()["message"] == "phone already exist"
