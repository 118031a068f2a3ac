from datetime import timedelta

from conftest import DEFAULT_PASSWORD, bearer, login, register, tokens_of

from controllers.auth import FORGOT_PASSWORD_MESSAGE
from core.sessions import SessionStore
from core.tokens import TokenPurpose
from models.social_login import SocialProvider
from models.user import User
from models.verification import EmailVerification, PasswordReset, PhoneVerification
from utils.clock import utcnow

AUTH = "/api/v1/auth"
ME = "/api/v1/users/me"


#########################
# Registration
#########################


def test_register_returns_user_tokens_and_live_session(client, codec):
    response = register(client)
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "User registered successfully"

    user = body["data"]["user"]
    assert user["role"] == "USER"
    assert user["email_verified"] is False

    access, refresh = tokens_of(response)
    access_claims = codec.verify(access, TokenPurpose.ACCESS)
    refresh_claims = codec.verify(refresh, TokenPurpose.REFRESH)
    assert access_claims["id"] == refresh_claims["id"] == user["id"]
    assert access_claims["session_id"] == refresh_claims["session_id"]

    assert client.get(ME, headers=bearer(access)).status_code == 200


def test_register_lowercases_email(client):
    response = register(client, email="Alice@Example.COM")
    assert response.json()["data"]["user"]["email"] == "alice@example.com"


def test_register_duplicate_email_is_rejected(client):
    register(client)
    response = register(client)
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Email already in use"
    assert body["errors"][0]["path"] == "email"


def test_register_duplicate_phone_is_rejected(client):
    register(client, phone_number="+15551234567")
    response = register(client, email="bob@example.com", phone_number="+15551234567")
    assert response.status_code == 400
    assert response.json()["errors"][0]["path"] == "phone_number"


def test_register_rejects_weak_password(client):
    response = register(client, password="alllowercase")
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    assert body["errors"][0]["path"] == "password"


def test_register_rejects_unknown_fields_and_admin_role(client):
    assert register(client, nickname="al").status_code == 400
    assert register(client, role="ADMIN").status_code == 400


def test_register_service_provider_requires_business_name(client):
    assert register(client, role="SERVICE_PROVIDER").status_code == 400

    response = register(client, role="SERVICE_PROVIDER", business_name="Alpine Tours")
    assert response.status_code == 201
    access, _ = tokens_of(response)
    me = client.get(ME, headers=bearer(access)).json()["data"]["user"]
    assert me["role"] == "SERVICE_PROVIDER"
    assert me["business_name"] == "Alpine Tours"


def test_register_travel_agency_stores_agency_name(client):
    response = register(client, role="TRAVEL_AGENCY", business_name="Blue Sky Travel")
    access, _ = tokens_of(response)
    me = client.get(ME, headers=bearer(access)).json()["data"]["user"]
    assert me["agency_name"] == "Blue Sky Travel"


def test_register_sends_verification_email_and_sms(client, mailer, sms):
    register(client, phone_number="+15551234567")
    assert mailer.last("verify_email.html", "alice@example.com")["token"]
    assert len(sms.codes["+15551234567"]) == 6


def test_register_succeeds_when_delivery_fails(client, mailer):
    mailer.fail = True
    response = register(client)
    assert response.status_code == 201
    assert login(client).status_code == 200


#########################
# Login
#########################


def test_login_creates_a_new_session_each_time(client, codec):
    register(client)
    first = codec.verify(tokens_of(login(client))[0], TokenPurpose.ACCESS)
    second = codec.verify(tokens_of(login(client))[0], TokenPurpose.ACCESS)
    assert first["session_id"] != second["session_id"]


def test_login_failures_are_indistinguishable(client):
    register(client)
    wrong_password = login(client, password="Wrong1234")
    unknown_email = login(client, email="nobody@example.com")

    for response in (wrong_password, unknown_email):
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid credentials"
    assert wrong_password.json()["errors"] == unknown_email.json()["errors"]


def test_login_by_phone_number(client):
    register(client, phone_number="+15551234567")
    response = client.post(
        f"{AUTH}/login",
        json={"phone_number": "+15551234567", "password": DEFAULT_PASSWORD},
    )
    assert response.status_code == 200
    assert response.json()["data"]["user"]["email"] == "alice@example.com"


def test_login_requires_an_identifier(client):
    response = client.post(f"{AUTH}/login", json={"password": DEFAULT_PASSWORD})
    assert response.status_code == 400


#########################
# Refresh endpoint
#########################


def test_refresh_token_endpoint_rotates_pair(client, codec):
    access, refresh = tokens_of(register(client))
    response = client.post(f"{AUTH}/refresh-token", json={"refreshToken": refresh})
    assert response.status_code == 200
    data = response.json()["data"]

    new_access = codec.verify(data["accessToken"], TokenPurpose.ACCESS)
    old_access = codec.verify(access, TokenPurpose.ACCESS)
    assert new_access["session_id"] == old_access["session_id"]
    assert client.get(ME, headers=bearer(data["accessToken"])).status_code == 200


def test_refresh_token_endpoint_requires_token(client):
    response = client.post(f"{AUTH}/refresh-token")
    assert response.status_code == 400
    assert response.json()["message"] == "Refresh token is required"


def test_refresh_token_endpoint_rejects_access_token(client):
    access, _ = tokens_of(register(client))
    response = client.post(f"{AUTH}/refresh-token", json={"refreshToken": access})
    assert response.status_code == 401


#########################
# Logout
#########################


def test_logout_ends_only_the_current_session(client):
    register(client)
    laptop, _ = tokens_of(login(client))
    phone, _ = tokens_of(login(client))

    response = client.post(f"{AUTH}/logout", headers=bearer(laptop))
    assert response.status_code == 200
    assert response.json()["message"] == "Logged out successfully"

    assert client.get(ME, headers=bearer(laptop)).status_code == 401
    assert client.get(ME, headers=bearer(phone)).status_code == 200


def test_logout_other_devices_keeps_current_session(client):
    register(client)
    laptop, _ = tokens_of(login(client))
    phone, phone_refresh = tokens_of(login(client))

    response = client.post(f"{AUTH}/logout-other-devices", headers=bearer(laptop))
    assert response.json()["message"] == "Logged out from all other devices"

    assert client.get(ME, headers=bearer(laptop)).status_code == 200
    assert client.get(ME, headers=bearer(phone)).status_code == 401
    refreshed = client.post(f"{AUTH}/refresh-token", json={"refreshToken": phone_refresh})
    assert refreshed.status_code == 401


def test_logout_all_devices(client):
    first, _ = tokens_of(register(client))
    second, _ = tokens_of(login(client))

    response = client.post(f"{AUTH}/logout-all-devices", headers=bearer(second))
    assert response.json()["message"] == "Logged out from all devices"
    for token in (first, second):
        assert client.get(ME, headers=bearer(token)).status_code == 401


def test_logout_requires_authentication(client):
    assert client.post(f"{AUTH}/logout").status_code == 401


#########################
# Password reset
#########################


def test_forgot_password_does_not_reveal_accounts(client, mailer):
    register(client)
    unknown = client.post(f"{AUTH}/forgot-password", json={"email": "nobody@example.com"})
    known = client.post(f"{AUTH}/forgot-password", json={"email": "alice@example.com"})

    assert unknown.status_code == known.status_code == 200
    assert unknown.json() == known.json()
    assert known.json()["message"] == FORGOT_PASSWORD_MESSAGE
    assert [name for _, name, _ in mailer.sent].count("reset_password.html") == 1


def test_reset_password_flow(client, mailer):
    access, refresh = tokens_of(register(client))
    client.post(f"{AUTH}/forgot-password", json={"email": "alice@example.com"})
    token = mailer.last("reset_password.html")["token"]

    response = client.post(
        f"{AUTH}/reset-password",
        json={"token": token, "password": "Newpass123", "confirm_password": "Newpass123"},
    )
    assert response.status_code == 200
    assert response.json()["message"] == "Password reset successful"

    # Refresh is revoked everywhere, the access token lives out its lifetime
    refreshed = client.post(f"{AUTH}/refresh-token", json={"refreshToken": refresh})
    assert refreshed.status_code == 401
    assert client.get(ME, headers=bearer(access)).status_code == 200

    assert login(client).status_code == 401
    assert login(client, password="Newpass123").status_code == 200

    reused = client.post(
        f"{AUTH}/reset-password",
        json={"token": token, "password": "Other1234", "confirm_password": "Other1234"},
    )
    assert reused.status_code == 400


def test_reset_password_rejects_bad_token(client, codec):
    access, _ = tokens_of(register(client))
    for token in ("garbage", access):
        response = client.post(
            f"{AUTH}/reset-password",
            json={"token": token, "password": "Newpass123", "confirm_password": "Newpass123"},
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid or expired password reset token"


def test_reset_password_requires_matching_confirmation(client):
    response = client.post(
        f"{AUTH}/reset-password",
        json={"token": "t", "password": "Newpass123", "confirm_password": "Newpass124"},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Validation failed"


#########################
# Contact verification
#########################


def test_verify_email(client, mailer):
    access, _ = tokens_of(register(client))
    token = mailer.last("verify_email.html")["token"]

    response = client.post(f"{AUTH}/verify-email", json={"token": token})
    assert response.status_code == 200
    me = client.get(ME, headers=bearer(access)).json()["data"]["user"]
    assert me["email_verified"] is True

    assert client.post(f"{AUTH}/verify-email", json={"token": token}).status_code == 400
    resend = client.post(f"{AUTH}/resend-email-verification", headers=bearer(access))
    assert resend.status_code == 400
    assert resend.json()["message"] == "Email already verified"


def test_resend_email_verification_replaces_token(client, mailer):
    access, _ = tokens_of(register(client))
    stale = mailer.last("verify_email.html")["token"]

    response = client.post(f"{AUTH}/resend-email-verification", headers=bearer(access))
    assert response.status_code == 200
    fresh = mailer.last("verify_email.html")["token"]
    assert fresh != stale

    assert client.post(f"{AUTH}/verify-email", json={"token": stale}).status_code == 400
    assert client.post(f"{AUTH}/verify-email", json={"token": fresh}).status_code == 200


def test_verify_phone(client, sms):
    access, _ = tokens_of(register(client, phone_number="+15551234567"))
    code = sms.codes["+15551234567"]
    wrong = "000000" if code != "000000" else "111111"

    assert client.post(
        f"{AUTH}/verify-phone", json={"code": wrong}, headers=bearer(access)
    ).status_code == 400

    response = client.post(f"{AUTH}/verify-phone", json={"code": code}, headers=bearer(access))
    assert response.status_code == 200
    me = client.get(ME, headers=bearer(access)).json()["data"]["user"]
    assert me["phone_verified"] is True

    resend = client.post(f"{AUTH}/resend-phone-verification", headers=bearer(access))
    assert resend.json()["message"] == "Phone already verified"


def test_resend_phone_verification_without_phone(client):
    access, _ = tokens_of(register(client))
    response = client.post(f"{AUTH}/resend-phone-verification", headers=bearer(access))
    assert response.status_code == 404
    assert response.json()["message"] == "Phone number not found"


def test_verify_phone_requires_authentication(client):
    assert client.post(f"{AUTH}/verify-phone", json={"code": "123456"}).status_code == 401


#########################
# Social login
#########################


def test_social_login_creates_account(client, verifiers):
    verifiers[SocialProvider.GOOGLE].add(
        "g-1", "sam@example.com", first_name="Sam", last_name="Rivers"
    )
    response = client.post(f"{AUTH}/social-login", json={"provider": "GOOGLE", "token": "g-1"})
    assert response.status_code == 200
    user = response.json()["data"]["user"]
    assert user["email"] == "sam@example.com"
    assert user["first_name"] == "Sam"
    assert user["email_verified"] is True

    again = client.post(f"{AUTH}/social-login", json={"provider": "GOOGLE", "token": "g-1"})
    assert again.json()["data"]["user"]["id"] == user["id"]


def test_social_login_links_verified_identity(client, verifiers):
    user_id = register(client).json()["data"]["user"]["id"]
    verifiers[SocialProvider.GOOGLE].add("g-2", "alice@example.com")

    response = client.post(f"{AUTH}/social-login", json={"provider": "GOOGLE", "token": "g-2"})
    assert response.status_code == 200
    assert response.json()["data"]["user"]["id"] == user_id


def test_social_login_refuses_unverified_email_for_existing_account(client, verifiers):
    register(client)
    verifiers[SocialProvider.FACEBOOK].add("f-1", "alice@example.com", email_verified=False)

    response = client.post(
        f"{AUTH}/social-login", json={"provider": "FACEBOOK", "token": "f-1"}
    )
    assert response.status_code == 400


def test_social_login_rejects_unknown_token(client):
    response = client.post(f"{AUTH}/social-login", json={"provider": "APPLE", "token": "nope"})
    assert response.status_code == 400


#########################
# User administration
#########################


def promote_to_admin(db, email: str) -> None:
    user = db.query(User).filter_by(email=email).one()
    user.role = "ADMIN"
    db.commit()


def test_admin_changes_role_and_deletes_user(client, db):
    admin, _ = tokens_of(register(client))
    promote_to_admin(db, "alice@example.com")
    bob = register(client, email="bob@example.com")
    bob_id = bob.json()["data"]["user"]["id"]
    bob_access, _ = tokens_of(bob)

    url = f"/api/v1/users/{bob_id}/role"
    missing_name = client.patch(url, json={"role": "SERVICE_PROVIDER"}, headers=bearer(admin))
    assert missing_name.status_code == 400

    response = client.patch(
        url,
        json={"role": "SERVICE_PROVIDER", "business_name": "Bob's Boats"},
        headers=bearer(admin),
    )
    assert response.status_code == 200
    assert response.json()["data"]["user"]["business_name"] == "Bob's Boats"
    assert client.get(ME, headers=bearer(bob_access)).json()["data"]["user"]["role"] == (
        "SERVICE_PROVIDER"
    )

    assert client.delete(f"/api/v1/users/{bob_id}", headers=bearer(admin)).status_code == 200
    assert client.get(ME, headers=bearer(bob_access)).status_code == 401
    assert client.delete(f"/api/v1/users/{bob_id}", headers=bearer(admin)).status_code == 404


def test_non_admin_cannot_manage_users(client):
    access, _ = tokens_of(register(client))
    response = client.delete("/api/v1/users/whoever", headers=bearer(access))
    assert response.status_code == 403
    assert response.json()["message"] == "You do not have permission to perform this action."


#########################
# Refresh rotation and one-time record expiry
#########################


def test_rotated_refresh_token_cannot_be_replayed(client):
    _, refresh = tokens_of(register(client))
    rotated = client.post(f"{AUTH}/refresh-token", json={"refreshToken": refresh})
    assert rotated.status_code == 200
    latest = rotated.json()["data"]["refreshToken"]

    replayed = client.post(f"{AUTH}/refresh-token", json={"refreshToken": refresh})
    assert replayed.status_code == 401
    assert client.post(f"{AUTH}/refresh-token", json={"refreshToken": latest}).status_code == 200


def expire_record(db, model, email: str) -> None:
    user = db.query(User).filter_by(email=email).one()
    record = db.get(model, user.user_id)
    record.expires_at = utcnow() - timedelta(seconds=1)
    db.commit()


def test_expired_password_reset_record_is_ignored(client, db, mailer):
    register(client)
    client.post(f"{AUTH}/forgot-password", json={"email": "alice@example.com"})
    token = mailer.last("reset_password.html")["token"]
    expire_record(db, PasswordReset, "alice@example.com")

    response = client.post(
        f"{AUTH}/reset-password",
        json={"token": token, "password": "Newpass123", "confirm_password": "Newpass123"},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid or expired password reset token"
    assert login(client).status_code == 200


def test_expired_email_verification_record_is_ignored(client, db, mailer):
    register(client)
    token = mailer.last("verify_email.html")["token"]
    expire_record(db, EmailVerification, "alice@example.com")

    response = client.post(f"{AUTH}/verify-email", json={"token": token})
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid or expired email verification token"


def test_expired_phone_verification_record_is_ignored(client, db, sms):
    access, _ = tokens_of(register(client, phone_number="+15551234567"))
    code = sms.codes["+15551234567"]
    expire_record(db, PhoneVerification, "alice@example.com")

    response = client.post(f"{AUTH}/verify-phone", json={"code": code}, headers=bearer(access))
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid or expired phone verification code"


def test_failed_reset_leaves_password_and_grants_untouched(client, mailer, monkeypatch):
    _, refresh = tokens_of(register(client))
    client.post(f"{AUTH}/forgot-password", json={"email": "alice@example.com"})
    token = mailer.last("reset_password.html")["token"]

    def broken_revoke(self, user_id):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(SessionStore, "revoke_refresh_tokens", broken_revoke)
    response = client.post(
        f"{AUTH}/reset-password",
        json={"token": token, "password": "Newpass123", "confirm_password": "Newpass123"},
    )
    assert response.status_code == 500
    assert response.json()["message"] == "Failed to reset password"

    assert login(client).status_code == 200
    assert login(client, password="Newpass123").status_code == 401
    refreshed = client.post(f"{AUTH}/refresh-token", json={"refreshToken": refresh})
    assert refreshed.status_code == 200


#########################
# Tokens in the body of protected routes
#########################


def test_protected_bodies_accept_token_fields(client, db, sms):
    access, _ = tokens_of(register(client, phone_number="+15551234567"))
    code = sms.codes["+15551234567"]
    response = client.post(f"{AUTH}/verify-phone", json={"code": code, "accessToken": access})
    assert response.status_code == 200

    promote_to_admin(db, "alice@example.com")
    bob_id = register(client, email="bob@example.com").json()["data"]["user"]["id"]
    response = client.patch(
        f"/api/v1/users/{bob_id}/role",
        json={"role": "ADMIN", "accessToken": access},
    )
    assert response.status_code == 200
    assert response.json()["data"]["user"]["role"] == "ADMIN"
