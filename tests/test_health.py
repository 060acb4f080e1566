async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["docs"] == "/docs"


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"] == "healthy"


async def test_ready(client):
    response = await client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready"}


async def test_not_ready_when_recorder_stopped(client, services):
    await services.recorder.drain()

    response = await client.get("/ready")

    assert response.status_code == 503
    assert response.json()["reason"] == "usage_recorder_stopped"
    services.recorder.start()


async def test_live(client):
    response = await client.get("/live")
    assert response.json() == {"status": "alive"}


async def test_request_id_generated(client):
    response = await client.get("/live")
    assert response.headers["X-Request-ID"]
