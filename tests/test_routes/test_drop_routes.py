import pytest


DROP_PAYLOAD = {"name": "Retro Jacket", "price": "89.99", "total_stock": 5}


@pytest.mark.asyncio
async def test_create_drop(client):
    response = await client.post("/api/drops", json=DROP_PAYLOAD)

    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Retro Jacket"
    assert data["total_stock"] == 5
    assert data["id"] > 0


@pytest.mark.asyncio
async def test_create_drop_requires_api_key_when_configured(client, settings):
    settings.ADMIN_API_KEY = "s3cret"

    missing = await client.post("/api/drops", json=DROP_PAYLOAD)
    wrong = await client.post("/api/drops", json=DROP_PAYLOAD, headers={"X-API-Key": "nope"})
    ok = await client.post("/api/drops", json=DROP_PAYLOAD, headers={"X-API-Key": "s3cret"})

    assert missing.status_code == 401
    assert missing.json()["error"] == "UNAUTHORIZED"
    assert wrong.status_code == 401
    assert ok.status_code == 201


@pytest.mark.asyncio
async def test_create_drop_validation_error(client):
    response = await client.post("/api/drops", json={"name": "x", "price": "-1", "total_stock": 1})

    assert response.status_code == 422
    assert response.json()["error"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_list_drops_with_stock(client, make_drop, make_service):
    drop_id = await make_drop(total_stock=3)
    await make_service().reserve(drop_id, "alice")

    response = await client.get("/api/drops", params={"username": "alice"})

    assert response.status_code == 200
    [drop] = response.json()["drops"]
    assert drop["id"] == drop_id
    assert drop["available_stock"] == 2
    assert drop["recent_purchasers"] == []
    assert drop["user_reservation"]["id"] > 0
