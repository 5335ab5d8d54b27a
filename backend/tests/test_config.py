"""
Tests for application configuration and settings validation.
"""

import os
import pytest
from unittest.mock import patch


def test_settings_loads_defaults():
    """Settings should load with sensible defaults in development."""
    from affilai.config import get_settings
    get_settings.cache_clear()

    with patch.dict(os.environ, {
        "ENVIRONMENT": "development",
        "DATABASE_URL": "postgresql+asyncpg://localhost/test",
    }, clear=False):
        get_settings.cache_clear()
        settings = get_settings()
        assert settings.environment == "development"
        assert settings.is_production is False
        assert settings.openai_model == "gpt-4o"
        assert settings.oracle_timeout_seconds == 10.0
        assert settings.min_official_commission == 0.03
        assert settings.amazon_fallback_commission == 0.04
        assert settings.require_affiliate_credentials is True
        get_settings.cache_clear()


def test_settings_cors_origin_list():
    """CORS origins string should be split into a list."""
    from affilai.config import get_settings
    get_settings.cache_clear()

    with patch.dict(os.environ, {
        "ENVIRONMENT": "development",
        "CORS_ORIGINS": "http://localhost:3000, tauri://localhost",
    }, clear=False):
        get_settings.cache_clear()
        settings = get_settings()
        origins = settings.cors_origin_list
        assert origins == ["http://localhost:3000", "tauri://localhost"]
        get_settings.cache_clear()


def test_plain_postgres_url_gets_async_driver():
    from affilai.config import Settings
    settings = Settings(database_url="postgresql://user:pw@db-host/affilai")
    assert settings.database_url == "postgresql+asyncpg://user:pw@db-host/affilai"


def test_sqlite_url_left_alone():
    from affilai.config import Settings
    settings = Settings(database_url="sqlite+aiosqlite:///./affilai.db")
    assert settings.is_sqlite is True


def test_production_requires_api_key():
    from affilai.config import Settings

    with pytest.raises(ValueError, match="API_KEY must be set"):
        Settings(
            environment="production",
            api_key="",
            encryption_key="x" * 44,
            database_url="postgresql+asyncpg://prod-host/db",
        )


def test_production_requires_encryption_key():
    from affilai.config import Settings

    with pytest.raises(ValueError, match="ENCRYPTION_KEY must be set"):
        Settings(
            environment="production",
            api_key="a-real-api-key",
            encryption_key="",
            database_url="postgresql+asyncpg://prod-host/db",
        )


def test_production_accepts_real_secrets():
    from affilai.config import Settings
    settings = Settings(
        environment="production",
        api_key="a-real-api-key",
        encryption_key="x" * 44,
        database_url="postgresql+asyncpg://prod-host/db",
    )
    assert settings.is_production is True


def test_batch_concurrency_must_be_positive():
    from affilai.config import Settings

    with pytest.raises(ValueError, match="BATCH_MAX_CONCURRENCY"):
        Settings(batch_max_concurrency=0)
