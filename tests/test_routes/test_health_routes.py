import pytest

from flashdrop.main import cors_origin_regex


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_database_health(client):
    response = await client.get("/api/health/db")

    assert response.json() == {"status": "healthy", "database": "connected"}


@pytest.mark.asyncio
async def test_scheduler_health_before_startup(client):
    response = await client.get("/api/health/scheduler")

    assert response.json()["status"] == "not_initialized"


def test_cors_origin_regex_wildcards():
    import re

    pattern = re.compile(cors_origin_regex(["http://localhost:5173", "https://*.vercel.app"]))

    assert pattern.match("http://localhost:5173")
    assert pattern.match("https://preview-123.vercel.app")
    assert not pattern.match("https://evil.example.com")
    assert not pattern.match("http://localhost:5173.evil.com")


@pytest.mark.asyncio
async def test_cors_preflight(client):
    response = await client.options(
        "/api/drops",
        headers={"Origin": "http://localhost:5173", "Access-Control-Request-Method": "POST"},
    )

    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
