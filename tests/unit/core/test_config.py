"""Unit tests for environment-driven settings."""

import os

import pytest

from common.core.config import Settings
from common.core.constants import Environment, StorageBackend


class TestSettings:
    """Test that settings load defaults and environment overrides."""

    def test_defaults(self):
        """Test that a bare environment runs against the fake processor in memory."""
        settings = Settings(_env_file=None)

        assert settings.environment == Environment.LOCAL
        assert settings.payment_processor == "fake"
        assert settings.storage_backend == StorageBackend.MEMORY
        assert settings.cache_ttl_subscription == 60
        assert settings.network_max_retries == 3

    def test_environment_overrides(self):
        os.environ["PAYMENT_PROCESSOR"] = "stripe"
        os.environ["STORAGE_BACKEND"] = "redis"
        os.environ["CACHE_TTL_CUSTOMER"] = "30"

        try:
            settings = Settings(_env_file=None)
            assert settings.payment_processor == "stripe"
            assert settings.storage_backend == StorageBackend.REDIS
            assert settings.cache_ttl_customer == 30
        finally:
            del os.environ["PAYMENT_PROCESSOR"]
            del os.environ["STORAGE_BACKEND"]
            del os.environ["CACHE_TTL_CUSTOMER"]

    def test_invalid_storage_backend(self):
        os.environ["STORAGE_BACKEND"] = "floppy"

        try:
            with pytest.raises(ValueError):
                Settings(_env_file=None)
        finally:
            del os.environ["STORAGE_BACKEND"]

    def test_redis_connection_url(self):
        settings = Settings(_env_file=None, redis_host="cache", redis_port=6380, redis_db=2)
        assert settings.redis_connection_url == "redis://cache:6380/2"

        settings = Settings(_env_file=None, redis_password="secret")
        assert settings.redis_connection_url == "redis://:secret@localhost:6379/0"
