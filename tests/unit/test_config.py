"""
Unit tests for settings.
"""

from quorumlock.config import RedisServer, Settings


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.lock_servers == [RedisServer()]
        assert settings.lock_default_ttl_ms == 300000
        assert settings.lock_retry_count == 3
        assert settings.lock_retry_delay_min_ms == 100
        assert settings.lock_retry_delay_max_ms == 300
        assert settings.lock_clock_drift_factor == 0.01
        assert settings.lock_drift_slack_ms == 2

    def test_servers_from_environment(self, monkeypatch):
        monkeypatch.setenv(
            "LOCK_SERVERS",
            '[{"host": "redis-1"}, {"host": "redis-2", "port": 6380, "password": "pw", "database": 1}]',
        )
        monkeypatch.setenv("LOCK_RETRY_COUNT", "5")

        settings = Settings(_env_file=None)

        assert settings.lock_servers == [
            RedisServer(host="redis-1"),
            RedisServer(host="redis-2", port=6380, password="pw", database=1),
        ]
        assert settings.lock_retry_count == 5
