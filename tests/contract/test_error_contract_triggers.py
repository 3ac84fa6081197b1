import httpx

from dispatch.main import create_app


async def _post(container, path, **kwargs):
    transport = httpx.ASGITransport(app=create_app(container))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.post(path, **kwargs)


async def test_error_contract_missing_parameter(container):
    r = await _post(container, "/triggers/campaigns", json={})
    assert r.status_code == 400
    data = r.json()
    assert set(data.keys()) == {"error", "code"}
    assert data["error"] == "campaign_id is required"


async def test_error_contract_malformed_body(container):
    r = await _post(container, "/triggers/reminders", json={"ignore_send_hour": "sometimes"})
    assert r.status_code == 400
    data = r.json()
    assert set(data.keys()) == {"error", "code"}
    assert data["error"].startswith("ignore_send_hour")
