def _register(client, email: str, name: str = "Test User", password: str = "StrongPass123"):
    return client.post("/auth/register", json={"email": email, "name": name, "password": password})


def _register_and_login(client, email: str) -> str:
    _register(client, email)
    login = client.post("/auth/login", json={"email": email, "password": "StrongPass123"})
    return login.json()["access_token"]


def test_register_success(client):
    response = _register(client, "User1@Example.com", name="Lena Student")

    assert response.status_code == 201
    data = response.json()
    assert data["email"] == "user1@example.com"
    assert data["name"] == "Lena Student"
    assert data["role"] == "student"
    assert data["tutor_status"] == "unverified"
    assert data["is_active"] is True
    assert "id" in data


def test_register_cannot_choose_privileged_role(client):
    response = client.post(
        "/auth/register",
        json={"email": "sneaky@example.com", "name": "Sneaky", "password": "StrongPass123", "role": "admin"},
    )

    assert response.status_code == 422


def test_register_duplicate_email(client):
    first = _register(client, "duplicate@example.com")
    second = _register(client, "duplicate@example.com")

    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()["detail"] == "User with this email already exists"
    assert second.json()["error"]["code"] == "conflict"


def test_login_success(client):
    _register(client, "login@example.com")

    response = client.post("/auth/login", json={"email": "login@example.com", "password": "StrongPass123"})

    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert isinstance(data["access_token"], str)
    assert len(data["access_token"]) > 20


def test_login_wrong_password(client):
    _register(client, "wrongpass@example.com")

    response = client.post("/auth/login", json={"email": "wrongpass@example.com", "password": "WrongPass123"})

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_users_me_with_token(client):
    token = _register_and_login(client, "me@example.com")

    response = client.get("/users/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json()["email"] == "me@example.com"


def test_users_me_without_token(client):
    response = client.get("/users/me")
    assert response.status_code == 401


def test_users_me_with_garbage_token(client):
    response = client.get("/users/me", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "authentication_error"


def test_list_users_requires_admin(client, create_user, auth_headers):
    student = create_user()
    admin = create_user(role="admin")
    create_user(role="student", tutor_status="pending")

    forbidden = client.get("/users", headers=auth_headers(student))
    listed = client.get("/users?limit=2&offset=0", headers=auth_headers(admin))
    pending = client.get("/users?tutor_status=pending", headers=auth_headers(admin))

    assert forbidden.status_code == 403
    assert listed.status_code == 200
    assert len(listed.json()) == 2
    assert [user["tutor_status"] for user in pending.json()] == ["pending"]
