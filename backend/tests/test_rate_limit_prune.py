from types import SimpleNamespace

from app.utils.rate_limit import SlidingWindowRateLimiter, get_client_ip


def test_rate_limiter_prunes_stale_buckets_on_interval(monkeypatch):
    # Force prune on every call for deterministic behavior.
    rl = SlidingWindowRateLimiter(max_buckets=10_000, prune_interval_seconds=1)

    t = {"now": 1000.0}

    def fake_monotonic():
        return t["now"]

    monkeypatch.setattr("app.utils.rate_limit.time.monotonic", fake_monotonic)

    for i in range(200):
        ok, _ = rl.allow(f"inquiry:ip:10.0.0.{i}", limit=1, window_seconds=60)
        assert ok is True

    # Advance beyond window + prune interval and hit a new key to trigger prune.
    t["now"] = 1000.0 + 120.0
    ok, _ = rl.allow("inquiry:ip:new", limit=1, window_seconds=60)
    assert ok is True
    assert len(rl._hits) == 1

    ok, _ = rl.allow("inquiry:ip:10.0.0.0", limit=1, window_seconds=60)
    assert ok is True


def test_rate_limiter_blocks_after_limit_within_window(monkeypatch):
    rl = SlidingWindowRateLimiter()
    t = {"now": 50.0}
    monkeypatch.setattr("app.utils.rate_limit.time.monotonic", lambda: t["now"])

    assert rl.allow("k", limit=2, window_seconds=60) == (True, 1)
    assert rl.allow("k", limit=2, window_seconds=60) == (True, 2)
    assert rl.allow("k", limit=2, window_seconds=60) == (False, 2)

    t["now"] = 111.0
    assert rl.allow("k", limit=2, window_seconds=60) == (True, 1)


def test_rate_limiter_disabled_for_non_positive_limit():
    rl = SlidingWindowRateLimiter()

    for _ in range(5):
        assert rl.allow("k", limit=0, window_seconds=60) == (True, 0)


def _request(peer_ip, headers=None):
    return SimpleNamespace(headers=headers or {}, client=SimpleNamespace(host=peer_ip))


def test_client_ip_ignores_forwarded_headers_from_untrusted_peer():
    req = _request("198.51.100.15", {"x-forwarded-for": "203.0.113.9", "x-real-ip": "203.0.113.9"})

    assert get_client_ip(req, ["10.0.0.0/8"]) == "198.51.100.15"
    assert get_client_ip(req, []) == "198.51.100.15"


def test_client_ip_prefers_real_ip_from_trusted_proxy():
    req = _request("10.1.2.3", {"x-real-ip": " 203.0.113.9 ", "x-forwarded-for": "1.1.1.1"})

    assert get_client_ip(req, ["10.0.0.0/8"]) == "203.0.113.9"


def test_client_ip_uses_rightmost_forwarded_entry():
    req = _request("10.1.2.3", {"x-forwarded-for": "1.1.1.1, 203.0.113.9"})

    assert get_client_ip(req, ["10.0.0.0/8"]) == "203.0.113.9"


def test_client_ip_reads_trusted_proxies_from_settings(env):
    env(TRUSTED_PROXY_CIDRS="10.0.0.0/8,192.168.1.1")
    req = _request("192.168.1.1", {"x-forwarded-for": "203.0.113.9"})

    assert get_client_ip(req) == "203.0.113.9"


def test_client_ip_without_peer():
    req = SimpleNamespace(headers={}, client=None)

    assert get_client_ip(req, ["10.0.0.0/8"]) is None
