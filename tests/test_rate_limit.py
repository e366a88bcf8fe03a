"""Tests for the per-IP rate limiter."""

from app.core.config import settings
from app.utils import rate_limit
from helpers import error_code


VALIDATE_URL = "/api/v1/promocodes/validate"


class _CounterRedis:
    def __init__(self):
        self.counts = {}

    def incr(self, key):
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    def expire(self, key, seconds):
        return True


class TestRateLimit:
    def test_limits_per_forwarded_ip(self, client, promo, monkeypatch):
        """Should key the window on the first X-Forwarded-For address."""
        redis = _CounterRedis()
        monkeypatch.setattr(rate_limit, "get_redis", lambda: redis)
        monkeypatch.setattr(settings, "promo_validate_rate_limit", 2)
        payload = {"code": "SAVE10", "planPrice": "29.99"}
        headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}

        for _ in range(2):
            assert client.post(VALIDATE_URL, json=payload, headers=headers).status_code == 200
        blocked = client.post(VALIDATE_URL, json=payload, headers=headers)

        assert blocked.status_code == 429
        assert error_code(blocked) == "RATE_LIMITED"
        assert redis.counts == {"ratelimit:promo_validate:203.0.113.7": 3}

        other = client.post(VALIDATE_URL, json=payload, headers={"X-Forwarded-For": "198.51.100.2"})
        assert other.status_code == 200

    def test_redis_down_lets_requests_through(self, client, promo, monkeypatch):
        monkeypatch.setattr(settings, "promo_validate_rate_limit", 1)
        for _ in range(3):
            response = client.post(VALIDATE_URL, json={"code": "SAVE10", "planPrice": "29.99"})
            assert response.status_code == 200
