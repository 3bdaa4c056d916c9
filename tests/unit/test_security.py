import pytest

from tutorhub.core.security import create_access_token, decode_access_token, get_password_hash, verify_password


def test_password_hash_and_verify():
    plain = "StrongPass123"
    hashed = get_password_hash(plain)

    assert hashed != plain
    assert verify_password(plain, hashed) is True
    assert verify_password("WrongPass123", hashed) is False


def test_access_token_round_trip_returns_user_id():
    token = create_access_token(user_id=42, role="student", email="student@example.com")

    assert decode_access_token(token) == 42


def test_expired_or_tampered_token_is_rejected():
    expired = create_access_token(user_id=1, role="student", email="a@example.com", expires_minutes=-1)
    header, _, signature = create_access_token(user_id=1, role="student", email="a@example.com").split(".")
    other_payload = create_access_token(user_id=2, role="admin", email="b@example.com").split(".")[1]

    with pytest.raises(ValueError):
        decode_access_token(expired)
    with pytest.raises(ValueError):
        decode_access_token(f"{header}.{other_payload}.{signature}")
