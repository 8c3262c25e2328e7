import random
import string

import pytest
from httpx import AsyncClient

# Garbage in, 4xx out. Nothing here may produce a 500.

rng = random.Random(1337)

SQL_INJECTIONS = ["' OR '1'='1", "'; DROP TABLE users--", "admin'--", "' UNION SELECT 1,2,3--"]
XSS = ["<script>alert(1)</script>", "<img src=x onerror=alert(1)>", "javascript:alert(1)"]


def generate_garbage(length=100):
    return "".join(rng.choices(string.ascii_letters + string.digits + "!@#$%^&*() ", k=length))


def hostile_value(i):
    if i % 10 == 0:
        return rng.choice(SQL_INJECTIONS)
    if i % 11 == 0:
        return rng.choice(XSS)
    return generate_garbage(rng.randint(1, 255))


@pytest.mark.asyncio
async def test_login_fuzz(async_client: AsyncClient):
    for i in range(50):
        resp = await async_client.post(
            "/api/auth/login",
            json={"email": hostile_value(i), "password": generate_garbage(100)},
        )
        assert resp.status_code in (400, 401), f"Login crashed on iteration {i}"


@pytest.mark.asyncio
async def test_signup_fuzz(async_client: AsyncClient):
    for i in range(20):
        resp = await async_client.post(
            "/api/auth/signup",
            json={
                "username": hostile_value(i),
                "email": hostile_value(i + 1),
                "password": generate_garbage(rng.randint(0, 12)),
                "role": rng.choice(["user", "admin", "root", ""]),
            },
        )
        assert resp.status_code in (201, 400, 409), f"Signup crashed on iteration {i}"


@pytest.mark.asyncio
async def test_complaint_submit_fuzz(async_client: AsyncClient, make_user, auth_headers):
    user = await make_user()
    headers = auth_headers(user)
    odd_bodies = [[], "just a string", 42, {"title": 5, "description": None}, {}]

    for body in odd_bodies:
        resp = await async_client.post("/api/complaints", json=body, headers=headers)
        assert resp.status_code == 400, f"Complaint submit crashed on {body!r}"

    for i in range(60):
        resp = await async_client.post(
            "/api/complaints",
            json={
                "title": hostile_value(i),
                "description": hostile_value(i + 3),
                "category": rng.choice(["Product", "Service", "Support", "Other", hostile_value(i)]),
                "priority": rng.choice(["Low", "Medium", "High", hostile_value(i)]),
            },
            headers=headers,
        )
        assert resp.status_code in (201, 400), f"Complaint submit crashed on iteration {i}"


@pytest.mark.asyncio
async def test_admin_filter_and_status_fuzz(async_client: AsyncClient, make_user, auth_headers, complaint_payload):
    admin = await make_user(role="admin")
    user = await make_user()
    created = await async_client.post("/api/complaints", json=complaint_payload, headers=auth_headers(user))
    complaint_id = created.json()["complaint"]["id"]
    headers = auth_headers(admin)

    for i in range(30):
        value = hostile_value(i)
        listing = await async_client.get(
            "/api/complaints", params={"status": value, "priority": value}, headers=headers
        )
        assert listing.status_code == 200
        assert listing.json()["complaints"] == []

        update = await async_client.patch(
            f"/api/complaints/{complaint_id}", json={"status": value}, headers=headers
        )
        assert update.status_code == 400, f"Status update crashed on iteration {i}"

    for bad_id in ("abc", "1.5", "-1", "0"):
        resp = await async_client.delete(f"/api/complaints/{bad_id}", headers=headers)
        assert resp.status_code in (400, 404), f"Delete crashed on id {bad_id}"
