def test_error_response_has_unified_shape(client):
    response = client.get("/users/me")
    assert response.status_code == 401
    body = response.json()
    assert "error" in body
    assert "code" in body["error"]
    assert "message" in body["error"]
    assert "detail" in body
    assert "request_id" in body


def test_domain_error_carries_request_id_from_header(client):
    response = client.get("/tutors/9999", headers={"X-Request-ID": "req-abc"})

    assert response.status_code == 404
    body = response.json()
    assert body["error"]["code"] == "not_found"
    assert body["request_id"] == "req-abc"
    assert response.headers["X-Request-ID"] == "req-abc"


def test_request_validation_error_is_serializable(client, create_tutor, auth_headers):
    tutor = create_tutor()

    response = client.post(
        "/tutors/me/availability",
        headers=auth_headers(tutor),
        json={"date": "2025-03-10", "start_time": "15:00", "end_time": "14:00"},
    )

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "validation_error"


def test_health_endpoint_returns_ok_and_request_id(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert "x-request-id" in response.headers


def test_users_pagination_limit_offset(client, create_user, auth_headers):
    admin = create_user(role="admin")
    first = create_user()
    second = create_user()

    paged = client.get("/users?limit=1&offset=2", headers=auth_headers(admin))

    assert paged.status_code == 200
    data = paged.json()
    assert len(data) == 1
    assert data[0]["id"] == second.id
    assert first.id < second.id
