import asyncio

import pytest

from conftest import IMAGE, bearer
from docgate.services.usage_recorder import UsageEntry, UsageRecorder


class FakeUsageStore:
    def __init__(self, delay: float = 0.0, fail: bool = False):
        self.delay = delay
        self.fail = fail
        self.records = []

    async def append(self, record):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("disk full")
        self.records.append(record)


def entry(user_id="user@example.com", **kwargs):
    values = dict(
        user_id=user_id,
        email=user_id,
        operation_name="face-detect",
        endpoint="/api/v1/operations/face-detect",
        auth_method="bearer_token",
        success=True,
        credits_charged=1,
    )
    values.update(kwargs)
    return UsageEntry(**values)


# =============================================================================
# Recorder
# =============================================================================

async def test_records_are_written():
    store = FakeUsageStore()
    recorder = UsageRecorder(store, workers=2)
    recorder.start()

    for i in range(5):
        assert recorder.submit(entry(f"user-{i}@example.com")) is True
    await recorder.flush()

    assert recorder.written == 5
    assert sorted(r.user_id for r in store.records) == [f"user-{i}@example.com" for i in range(5)]
    await recorder.drain()
    assert recorder.running is False


async def test_full_queue_drops_without_blocking():
    store = FakeUsageStore()
    recorder = UsageRecorder(store, queue_size=2)

    results = [recorder.submit(entry()) for _ in range(4)]

    assert results == [True, True, False, False]
    assert recorder.dropped == 2
    assert recorder.pending == 2

    await recorder.flush()
    assert len(store.records) == 2
    await recorder.drain()


async def test_failed_write_is_counted_not_raised():
    recorder = UsageRecorder(FakeUsageStore(fail=True))
    recorder.submit(entry())

    await recorder.flush()

    assert recorder.failed == 1
    assert recorder.written == 0
    assert recorder.running is True
    await recorder.drain()


async def test_slow_write_times_out():
    recorder = UsageRecorder(FakeUsageStore(delay=1.0), write_timeout=0.05)
    recorder.submit(entry())

    await recorder.flush()

    assert recorder.failed == 1
    await recorder.drain()


async def test_drain_is_bounded():
    store = FakeUsageStore(delay=0.2)
    recorder = UsageRecorder(store, workers=1, write_timeout=5.0, drain_timeout=0.05)
    recorder.start()
    for _ in range(5):
        recorder.submit(entry())

    await asyncio.wait_for(recorder.drain(), timeout=2.0)

    assert recorder.running is False
    assert len(store.records) < 5


def test_entry_model_truncates_user_agent():
    model = entry(user_agent="x" * 900).to_model()
    assert len(model.user_agent) == 500
    assert model.operation_name == "face-detect"
    assert model.credits_charged == 1


# =============================================================================
# Admin usage endpoints
# =============================================================================

@pytest.fixture
async def traffic(client, services, upstream, make_token, make_account):
    """Two users, three operation calls, one of them failing upstream."""
    await make_account(email="a@example.com", balance=10)
    await make_account(email="b@example.com", balance=10)
    upstream.respond("qr-extraction", {"req_id": "r", "success": False, "error_message": "no QR code detected"})

    body = {"req_id": "r", "doc_base64": IMAGE}
    await client.post("/api/v1/operations/face-detect", json=body, headers=bearer(make_token(email="a@example.com")))
    await client.post("/api/v1/operations/face-detect", json=body, headers=bearer(make_token(email="b@example.com")))
    await client.post("/api/v1/operations/qr-extraction", json=body, headers=bearer(make_token(email="a@example.com")))
    await services.recorder.flush()


async def test_usage_by_service(client, admin_token, traffic):
    response = await client.get("/api/v1/admin/usage/services", headers=bearer(admin_token))

    assert response.status_code == 200
    stats = {row["service_name"]: row for row in response.json()["stats"]}
    assert stats["face-detect"]["total_calls"] == 2
    assert stats["face-detect"]["total_credits"] == 2
    assert stats["qr-extraction"]["total_calls"] == 1
    assert stats["qr-extraction"]["total_credits"] == 1


async def test_usage_by_user(client, admin_token, traffic):
    response = await client.get("/api/v1/admin/usage/users", headers=bearer(admin_token))

    stats = {row["user_id"]: row for row in response.json()["stats"]}
    assert stats["a@example.com"]["total_calls"] == 2
    assert stats["b@example.com"]["total_calls"] == 1


async def test_usage_by_service_user_filtered(client, admin_token, traffic):
    response = await client.get(
        "/api/v1/admin/usage/service-users", params={"service": "face-detect"}, headers=bearer(admin_token),
    )

    rows = response.json()["stats"]
    assert {row["user_id"] for row in rows} == {"a@example.com", "b@example.com"}
    assert all(row["service_name"] == "face-detect" for row in rows)
    assert all(row["last_used"] for row in rows)


async def test_date_range_excludes_other_days(client, admin_token, traffic):
    response = await client.get(
        "/api/v1/admin/usage/services",
        params={"start_date": "2000-01-01", "end_date": "2000-01-31"},
        headers=bearer(admin_token),
    )
    assert response.status_code == 200
    assert response.json()["stats"] == []


@pytest.mark.parametrize(
    "params",
    [{"start_date": "01/02/2024"}, {"end_date": "2024-13-01"}, {"start_date": "2024-02-02", "end_date": "2024-02-01"}],
)
async def test_bad_date_range(client, admin_token, params):
    response = await client.get("/api/v1/admin/usage/users", params=params, headers=bearer(admin_token))
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


async def test_user_history(client, admin_token, traffic):
    response = await client.get(
        "/api/v1/admin/usage/users/a@example.com/history", params={"limit": 1}, headers=bearer(admin_token),
    )

    body = response.json()
    assert body["limit"] == 1
    assert len(body["history"]) == 1
    latest = body["history"][0]
    assert latest["service_name"] == "qr-extraction"
    assert latest["error_msg"] == "no QR code detected"
    assert latest["credits_used"] == 1


async def test_service_history_paging(client, admin_token, traffic):
    headers = bearer(admin_token)
    first = (await client.get("/api/v1/admin/usage/services/face-detect/history", params={"limit": 1}, headers=headers)).json()
    second = (await client.get(
        "/api/v1/admin/usage/services/face-detect/history", params={"limit": 1, "skip": 1}, headers=headers,
    )).json()

    assert len(first["history"]) == len(second["history"]) == 1
    assert first["history"][0]["user_id"] != second["history"][0]["user_id"]


@pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 101}, {"skip": -1}])
async def test_history_paging_bounds(client, admin_token, params):
    response = await client.get("/api/v1/admin/usage/users/x/history", params=params, headers=bearer(admin_token))
    assert response.status_code == 400


async def test_usage_requires_admin(client, make_token):
    response = await client.get("/api/v1/admin/usage/services", headers=bearer(make_token()))
    assert response.status_code == 403
