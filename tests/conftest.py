"""Pytest configuration and fixtures."""

import os

import pytest

# Settings are read at import time by some modules (rate limiter), so the
# environment must be in place before test collection imports the app.
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("REQ_ENGINE_ENV", "test")
os.environ.setdefault("CONVERSATION_STORE_BACKEND", "memory")


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["REQ_ENGINE_ENV"] = "test"
    os.environ["CONVERSATION_STORE_BACKEND"] = "memory"
