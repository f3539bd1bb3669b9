from datetime import datetime, timedelta, timezone

from jose import jwt

from kampusroute.auth.jwt import decode_token, user_id_from_claims
from kampusroute.config import settings


def _token(claims: dict, expires_in: timedelta = timedelta(hours=1), key: str | None = None) -> str:
    payload = {**claims, "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(payload, key or settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def test_decode_token_roundtrip():
    payload = decode_token(_token({"userId": "driver-1"}))
    assert payload["userId"] == "driver-1"


def test_decode_token_rejects_bad_signature_and_expired():
    assert decode_token(_token({"userId": "driver-1"}, key="some-other-secret")) is None
    assert decode_token(_token({"userId": "driver-1"}, expires_in=timedelta(minutes=-5))) is None
    assert decode_token("not-a-jwt") is None


def test_user_id_from_claims_prefers_user_id():
    assert user_id_from_claims({"userId": "a", "sub": "b"}) == "a"
    assert user_id_from_claims({"sub": 42}) == "42"
    assert user_id_from_claims({"email": "x@example.edu"}) is None


def test_invalid_token_is_forbidden(client):
    response = client.delete("/api/posts/A", headers=_auth("garbage"))
    assert response.status_code == 403
    assert response.json() == {"message": "Failed to authenticate token"}


def test_token_without_user_claim_is_forbidden(client):
    response = client.delete("/api/posts/A", headers=_auth(_token({"email": "x@example.edu"})))
    assert response.status_code == 403


def test_unknown_user_is_unauthorized(client):
    response = client.delete("/api/posts/A", headers=_auth(_token({"userId": "nobody"})))
    assert response.status_code == 401
    assert response.json() == {"message": "User not found"}


def test_valid_token_reaches_handler(client, driver):
    response = client.delete("/api/posts/A", headers=_auth(_token({"userId": driver.id})))
    # Authenticated; the post just doesn't exist
    assert response.status_code == 404
    assert response.json() == {"message": "Post not found"}
