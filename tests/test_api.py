"""Tests for the operations API."""

import concurrent.futures
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from tradebot.config import settings
from tradebot.database import get_session
from tradebot.main import app
from tradebot.services import telegram_bot

from conftest import CHANNEL_ID, USER_ID, make_trade

TRADE_ID = f"{USER_ID}-{CHANNEL_ID}-BTCUSDT-long"


@pytest.fixture
def client(engine, store):
    def _session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setattr(settings, "api_key", "secret")
    return "secret"


class TestTradesApi:
    def test_list_and_filter(self, client, store):
        store.save(make_trade())
        store.save(make_trade(trade_id=f"{USER_ID}-{CHANNEL_ID}-ETHUSDT-long", ticker="ETHUSDT", closed=True))
        store.save(make_trade(trade_id=f"7-{CHANNEL_ID}-BTCUSDT-long", user_id="7"))

        resp = client.get("/api/trades")
        assert resp.status_code == 200
        assert len(resp.json()) == 3

        resp = client.get("/api/trades", params={"open_only": True, "user_id": USER_ID})
        assert [t["trade_id"] for t in resp.json()] == [TRADE_ID]

    def test_get_trade(self, client, store):
        store.save(make_trade())

        resp = client.get(f"/api/trades/{TRADE_ID}")

        assert resp.status_code == 200
        body = resp.json()
        assert body["ticker"] == "BTCUSDT"
        assert body["exchange"] == "bybit"
        assert body["direction"] == "long"
        assert body["closed"] is False

    def test_unknown_trade(self, client):
        assert client.get("/api/trades/nope").status_code == 404


class TestApiKey:
    def test_missing_key_rejected(self, client, api_key):
        assert client.get("/api/trades").status_code == 401
        assert client.get("/api/system/scheduler").status_code == 401

    def test_wrong_key_rejected(self, client, api_key):
        assert client.get("/api/trades", headers={"X-API-Key": "nope"}).status_code == 401

    def test_valid_key_accepted(self, client, api_key):
        assert client.get("/api/trades", headers={"X-API-Key": api_key}).status_code == 200

    def test_health_needs_no_key(self, client, api_key):
        resp = client.get("/api/system/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestSystemApi:
    def test_scheduler_status(self, client):
        resp = client.get("/api/system/scheduler")
        assert resp.status_code == 200
        body = resp.json()
        assert body["running"] is False
        assert body["jobs"] == []

    def test_refresh_without_bot(self, client, monkeypatch):
        monkeypatch.setattr(telegram_bot, "_bot_instance", None)
        assert client.post("/api/system/refresh").status_code == 503

    def test_refresh_runs_cycle_on_bot(self, client, monkeypatch):
        future = concurrent.futures.Future()
        future.set_result({"trades": 2, "refreshed": 2})
        fake_bot = SimpleNamespace(lifecycle=object(), submit_refresh=lambda: future)
        monkeypatch.setattr(telegram_bot, "_bot_instance", fake_bot)

        resp = client.post("/api/system/refresh")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "summary": {"trades": 2, "refreshed": 2}}
