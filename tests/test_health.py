"""Tests for GET /api/health."""
import pytest
from httpx import AsyncClient

from tests.conftest import SCRIPT_BODY


@pytest.mark.asyncio
async def test_health_returns_200(client: AsyncClient):
    await client.post("/api/scripts", json={**SCRIPT_BODY, "auto_start": False})

    resp = await client.get("/api/health/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] in ("healthy", "degraded")
    assert data["store"]["scripts"] == 1
    assert data["store"]["iterations"] == 0
    assert data["backends"] == {"openai": "configured"}


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    resp = await client.get("/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["name"] == "ScriptWizard API"


@pytest.mark.asyncio
async def test_process_time_header(client: AsyncClient):
    resp = await client.get("/api/scripts")
    assert resp.headers["X-Process-Time"].endswith("ms")
