"""Tests for the WhatsApp OTP authentication endpoints."""

from __future__ import annotations

from fastapi import status
from fastapi.testclient import TestClient

from yogic_ledger.models import UserAccount

MOBILE = "+919876543210"


def _generate(client: TestClient, mobile: str = MOBILE):
    return client.post("/api/v1/auth/otp/generate", json={"mobile_number": mobile})


def _verify(client: TestClient, code: str, mobile: str = MOBILE):
    return client.post("/api/v1/auth/otp/verify", json={"mobile_number": mobile, "code": code})


def _wrong_code(code: str) -> str:
    return "000000" if code != "000000" else "111111"


def test_otp_login_flow(client, fake_transport, db_session) -> None:
    r = _generate(client, "+91 98765 43210")
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["attempts_remaining"] == 2
    assert fake_transport.messages[0][0] == MOBILE

    r = _verify(client, fake_transport.last_code())
    assert r.status_code == status.HTTP_200_OK
    body = r.json()
    assert body["token_type"] == "bearer"
    user = db_session.query(UserAccount).filter_by(mobile_number=MOBILE).one()
    assert body["user_id"] == user.user_id

    r = client.get(
        "/api/v1/rewards/wallet",
        headers={"Authorization": f"Bearer {body['access_token']}"},
    )
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["user_id"] == user.user_id


def test_consumed_code_is_gone(client, fake_transport) -> None:
    _generate(client)
    code = fake_transport.last_code()
    assert _verify(client, code).status_code == status.HTTP_200_OK

    r = _verify(client, code)
    assert r.status_code == status.HTTP_410_GONE


def test_wrong_code_is_unauthorized(client, fake_transport) -> None:
    _generate(client)
    code = fake_transport.last_code()

    r = _verify(client, _wrong_code(code))
    assert r.status_code == status.HTTP_401_UNAUTHORIZED
    assert _verify(client, code).status_code == status.HTTP_200_OK


def test_verification_lockout(client, fake_transport) -> None:
    _generate(client)
    code = fake_transport.last_code()
    for _ in range(5):
        assert _verify(client, _wrong_code(code)).status_code == status.HTTP_401_UNAUTHORIZED

    r = _verify(client, code)
    assert r.status_code == status.HTTP_429_TOO_MANY_REQUESTS
    assert r.json()["detail"]["reason"] == "too_many_attempts"
    assert int(r.headers["Retry-After"]) > 0


def test_resend_inside_interval_is_rate_limited(client, fake_transport) -> None:
    assert _generate(client).status_code == status.HTTP_200_OK

    r = _generate(client)
    assert r.status_code == status.HTTP_429_TOO_MANY_REQUESTS
    detail = r.json()["detail"]
    assert detail["reason"] == "resend_cooldown"
    assert "next_allowed_at" in detail
    assert 1 <= int(r.headers["Retry-After"]) <= 30
    assert len(fake_transport.messages) == 1


def test_invalid_mobile_number(client, fake_transport) -> None:
    r = _generate(client, "not-a-number")
    assert r.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert fake_transport.messages == []


def test_delivery_failure_is_bad_gateway(client, fake_transport) -> None:
    fake_transport.fail = True
    r = _generate(client)
    assert r.status_code == status.HTTP_502_BAD_GATEWAY

    fake_transport.fail = False
    assert _generate(client).status_code == status.HTTP_200_OK


def test_invalid_token_is_rejected(client) -> None:
    r = client.get("/api/v1/rewards/wallet", headers={"Authorization": "Bearer nonsense"})
    assert r.status_code == status.HTTP_401_UNAUTHORIZED
