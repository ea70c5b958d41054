"""Tests for the FastAPI transport."""

from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi import Depends

from mall_captcha.app import create_app
from mall_captcha.config import CaptchaSettings
from mall_captcha.engine import CaptchaEngine
from mall_captcha.errors import StoreUnavailable
from mall_captcha.fastapi import CaptchaTicket
from mall_captcha.store import ChallengeStore
from mall_captcha.types import RedeemedTicket

BASE = "/admin/v1/user/verify"


def _client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def app(engine):
    app = create_app(CaptchaSettings(), engine=engine)

    @app.post("/admin/v1/user/login")
    async def login(ticket: RedeemedTicket = Depends(CaptchaTicket())):
        return {"captcha_key": ticket.challenge_id}

    @app.post("/admin/v1/user/login-optional")
    async def login_optional(ticket=Depends(CaptchaTicket(auto_error=False))):
        return {"captcha_key": ticket.challenge_id if ticket else None}

    return app


async def _solve(client: httpx.AsyncClient, x: int = 100, y: int = 50) -> str:
    issued = (await client.get(f"{BASE}/captcha")).json()["data"]
    checked = await client.post(
        f"{BASE}/captcha/check", json={"key": issued["key"], "slide_x": x, "slide_y": y}
    )
    return checked.json()["data"]["ticket"]


# ============ Captcha Route Tests ============


@pytest.mark.asyncio
async def test_get_captcha_returns_puzzle(app):
    """Test the puzzle envelope returned on issuance."""
    async with _client(app) as client:
        response = await client.get(f"{BASE}/captcha")

    assert response.status_code == 200
    body = response.json()
    assert body["code"] == 200
    assert body["msg"] == "OK"
    assert body["err_msg"] == ""
    data = body["data"]
    assert len(data["key"]) == 32
    assert data["image_bs64"] == "bWFzdGVy"
    assert data["title_image_bs64"] == "dGlsZQ=="
    assert data["title_width"] == 62
    assert data["title_height"] == 62
    assert data["title_x"] == 6
    assert data["title_y"] == 50
    assert data["expire"] == 110
    # the solution point never leaves the server
    assert "x" not in data and "y" not in data


@pytest.mark.asyncio
async def test_check_captcha_returns_ticket(app):
    """Test that a correct slide returns a ticket and hint."""
    async with _client(app) as client:
        key = (await client.get(f"{BASE}/captcha")).json()["data"]["key"]
        response = await client.post(
            f"{BASE}/captcha/check", json={"key": key, "slide_x": 97, "slide_y": 54}
        )

    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data["ticket"]) == 32
    assert data["expire"] == 280


@pytest.mark.asyncio
async def test_check_captcha_incorrect_then_consumed(app):
    """Test the failure envelopes for a wrong slide followed by a retry."""
    async with _client(app) as client:
        key = (await client.get(f"{BASE}/captcha")).json()["data"]["key"]
        wrong = await client.post(
            f"{BASE}/captcha/check", json={"key": key, "slide_x": 140, "slide_y": 50}
        )
        retry = await client.post(
            f"{BASE}/captcha/check", json={"key": key, "slide_x": 100, "slide_y": 50}
        )

    assert wrong.status_code == 400
    assert wrong.json()["code"] == 11002
    assert wrong.json()["data"] is None

    assert retry.status_code == 400
    assert retry.json()["code"] == 400
    assert retry.json()["msg"] == "Slider expired, please refresh and retry"


@pytest.mark.asyncio
async def test_check_captcha_validation_error(app):
    """Test that a malformed body yields the Param Error envelope."""
    async with _client(app) as client:
        response = await client.post(f"{BASE}/captcha/check", json={"key": "abc", "slide_x": "left"})

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == 400
    assert body["msg"] == "Param Error"
    assert body["err_msg"].startswith("Param Error,")


@pytest.mark.asyncio
async def test_redeem_ticket_route(app):
    """Test that the ticket route returns the key once, then 401."""
    async with _client(app) as client:
        ticket = await _solve(client)
        first = await client.post(f"{BASE}/captcha/ticket", json={"ticket": ticket})
        second = await client.post(f"{BASE}/captcha/ticket", json={"ticket": ticket})

    assert first.status_code == 200
    assert len(first.json()["data"]["key"]) == 32
    assert second.status_code == 401
    assert second.json()["code"] == 401


@pytest.mark.asyncio
async def test_store_outage_is_a_server_error(generator):
    """Test that a store outage maps to 503 with the Redis Error code."""
    kv = AsyncMock()
    kv.set.side_effect = StoreUnavailable("connection refused")
    app = create_app(CaptchaSettings(), engine=CaptchaEngine(generator, ChallengeStore(kv)))

    async with _client(app) as client:
        response = await client.get(f"{BASE}/captcha")

    assert response.status_code == 503
    body = response.json()
    assert body["code"] == 10001
    assert body["err_msg"] == "Redis Error,connection refused"


@pytest.mark.asyncio
async def test_healthz(app):
    """Test the health endpoint while the store is reachable."""
    async with _client(app) as client:
        response = await client.get("/healthz")

    assert response.status_code == 200
    assert response.json()["data"] == {"status": "ok"}


@pytest.mark.asyncio
async def test_healthz_reports_store_down(generator):
    """Test that an unreachable store turns the health check into a 503 envelope."""
    kv = AsyncMock()
    kv.ping.return_value = False
    app = create_app(CaptchaSettings(), engine=CaptchaEngine(generator, ChallengeStore(kv)))

    async with _client(app) as client:
        response = await client.get("/healthz")

    assert response.status_code == 503
    body = response.json()
    assert body["code"] == 10001
    assert body["msg"] == "Redis Error"
    assert body["data"] is None


# ============ CaptchaTicket Dependency Tests ============


@pytest.mark.asyncio
async def test_ticket_dependency_accepts_fresh_ticket(app):
    """Test that a guarded route runs with a valid ticket."""
    async with _client(app) as client:
        ticket = await _solve(client)
        response = await client.post(
            "/admin/v1/user/login", headers={"X-Captcha-Ticket": ticket}
        )

    assert response.status_code == 200
    assert len(response.json()["captcha_key"]) == 32


@pytest.mark.asyncio
async def test_ticket_dependency_rejects_reuse(app):
    """Test that the same ticket cannot authorize two requests."""
    async with _client(app) as client:
        ticket = await _solve(client)
        await client.post("/admin/v1/user/login", headers={"X-Captcha-Ticket": ticket})
        response = await client.post(
            "/admin/v1/user/login", headers={"X-Captcha-Ticket": ticket}
        )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_ticket_dependency_missing_header(app):
    """Test that a request without a ticket is refused."""
    async with _client(app) as client:
        response = await client.post("/admin/v1/user/login")

    assert response.status_code == 401
    assert "X-Captcha-Ticket" in response.json()["detail"]


@pytest.mark.asyncio
async def test_ticket_dependency_without_auto_error(app):
    """Test that auto_error=False yields None instead of raising."""
    async with _client(app) as client:
        missing = await client.post("/admin/v1/user/login-optional")
        bogus = await client.post(
            "/admin/v1/user/login-optional", headers={"X-Captcha-Ticket": "f" * 32}
        )

    assert missing.status_code == 200
    assert missing.json() == {"captcha_key": None}
    assert bogus.json() == {"captcha_key": None}


@pytest.mark.asyncio
async def test_ticket_dependency_store_outage(generator):
    """Test that a store outage is not mistaken for a bad ticket."""
    kv = AsyncMock()
    kv.get_and_delete.side_effect = StoreUnavailable("down")
    app = create_app(CaptchaSettings(), engine=CaptchaEngine(generator, ChallengeStore(kv)))

    @app.post("/guarded")
    async def guarded(ticket=Depends(CaptchaTicket(auto_error=False))):
        return {"ok": True}

    async with _client(app) as client:
        response = await client.post("/guarded", headers={"X-Captcha-Ticket": "t"})

    assert response.status_code == 503
    assert response.json()["code"] == 10001
