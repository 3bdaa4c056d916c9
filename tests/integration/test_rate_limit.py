from tutorhub.core.config import settings
from tutorhub.core.rate_limiter import InMemoryRateLimiter, rate_limiter


def _register_payload(number: int) -> dict:
    return {"email": f"limit{number}@example.com", "name": "Rate Limited", "password": "StrongPass123"}


def test_register_rate_limit_returns_429(client):
    original_limit = settings.auth_register_max_attempts
    original_window = settings.auth_rate_limit_window_seconds
    settings.auth_register_max_attempts = 2
    settings.auth_rate_limit_window_seconds = 60
    rate_limiter.reset()
    try:
        first = client.post("/auth/register", json=_register_payload(1))
        second = client.post("/auth/register", json=_register_payload(2))
        third = client.post("/auth/register", json=_register_payload(3))

        assert first.status_code == 201
        assert second.status_code == 201
        assert third.status_code == 429
        assert "error" in third.json()
        assert third.headers.get("Retry-After")
    finally:
        settings.auth_register_max_attempts = original_limit
        settings.auth_rate_limit_window_seconds = original_window
        rate_limiter.reset()


def test_login_rate_limit_returns_429(client):
    original_limit = settings.auth_login_max_attempts
    original_window = settings.auth_rate_limit_window_seconds
    settings.auth_login_max_attempts = 2
    settings.auth_rate_limit_window_seconds = 60
    rate_limiter.reset()
    try:
        client.post("/auth/register", json=_register_payload(9))

        first = client.post("/auth/login", json={"email": "limit9@example.com", "password": "WrongPass123"})
        second = client.post("/auth/login", json={"email": "limit9@example.com", "password": "WrongPass123"})
        third = client.post("/auth/login", json={"email": "limit9@example.com", "password": "WrongPass123"})

        assert first.status_code == 401
        assert second.status_code == 401
        assert third.status_code == 429
        assert third.json()["error"]["code"] == "http_429"
    finally:
        settings.auth_login_max_attempts = original_limit
        settings.auth_rate_limit_window_seconds = original_window
        rate_limiter.reset()


def test_checkout_rate_limit_returns_429(client, create_user, auth_headers):
    original_limit = settings.checkout_max_attempts
    settings.checkout_max_attempts = 1
    rate_limiter.reset()
    try:
        headers = auth_headers(create_user())
        payload = {
            "tutor_id": 9999,
            "subject": "Math",
            "session_date_time": "2025-03-10T14:00:00Z",
            "start_time": "14:00",
        }

        first = client.post("/checkout", headers=headers, json=payload)
        second = client.post("/checkout", headers=headers, json=payload)

        assert first.status_code == 404
        assert second.status_code == 429
    finally:
        settings.checkout_max_attempts = original_limit
        rate_limiter.reset()


def test_in_memory_limiter_reports_retry_after():
    limiter = InMemoryRateLimiter()

    assert limiter.hit("k", limit=1, window_seconds=30).allowed is True
    blocked = limiter.hit("k", limit=1, window_seconds=30)

    assert blocked.allowed is False
    assert 1 <= blocked.retry_after <= 30
