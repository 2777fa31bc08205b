import fakeredis
import pytest
import redis

from homeinv import redis_client as redis_module
from homeinv.config import settings

@pytest.fixture()
def fake_redis(monkeypatch):
    r = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(redis_module, "redis_client", r)
    monkeypatch.setattr(settings, "rate_limit_enabled", True)
    return r

def test_webhook_rate_limit(client, fake_redis, subscriber_id):
    limit = settings.rate_limit_webhooks_per_min
    payload = {"event": {"type": "RENEWAL", "app_user_id": subscriber_id}}

    r = client.post("/webhooks/subscriptions", json=payload)
    assert r.status_code == 200
    key = fake_redis.keys("rl:webhooks:subscriptions:*")[0]
    assert 0 < fake_redis.ttl(key) <= 60

    fake_redis.set(key, limit)
    r = client.post("/webhooks/subscriptions", json=payload)
    assert r.status_code == 429
    assert r.json() == {"detail": "rate_limited"}

def test_rate_limit_fails_open(client, monkeypatch, subscriber_id):
    class DownRedis:
        def pipeline(self):
            raise redis.ConnectionError("redis is down")

    monkeypatch.setattr(redis_module, "redis_client", DownRedis())
    monkeypatch.setattr(settings, "rate_limit_enabled", True)

    r = client.post(
        "/webhooks/subscriptions",
        json={"event": {"type": "RENEWAL", "app_user_id": subscriber_id}},
    )
    assert r.status_code == 200

def test_limiter_is_skipped_when_disabled(client, monkeypatch, subscriber_id):
    class ExplodingRedis:
        def pipeline(self):
            raise AssertionError("limiter should not touch redis")

    monkeypatch.setattr(redis_module, "redis_client", ExplodingRedis())

    r = client.post(
        "/webhooks/subscriptions",
        json={"event": {"type": "RENEWAL", "app_user_id": subscriber_id}},
    )
    assert r.status_code == 200
