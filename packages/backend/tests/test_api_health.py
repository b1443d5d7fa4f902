"""Test health and root endpoints."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    """Test root endpoint returns API info."""
    response = await client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "CipherTalk Voice API"
    assert "version" in data


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_health_ready(client: AsyncClient):
    """Test health ready endpoint."""
    response = await client.get("/health/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["services"] == {"transcript_cache": "healthy", "sensevoice": "not_downloaded"}


@pytest.mark.asyncio
async def test_health_ready_with_model(client: AsyncClient, installed_model):
    response = await client.get("/health/ready")
    assert response.json()["services"]["sensevoice"] == "downloaded"
