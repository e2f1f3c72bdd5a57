"""Shared fixtures for secdesk tests."""

import pytest


@pytest.fixture(autouse=True)
def _reset_global_state():
    """Reset all module-level singletons and caches between tests."""
    yield

    # 1. Settings LRU cache
    from secdesk.config import get_settings

    get_settings.cache_clear()

    # 2. HTTP client singleton
    import secdesk.services.http_client as http_mod

    http_mod._client = None

    # 3. Shared request cache (and its queue)
    import secdesk.services.request_cache as cache_mod

    cache_mod._request_cache = None


class FakeClock:
    """Manually advanced monotonic clock for cache expiry tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_settings(monkeypatch):
    """Provide a Settings object with safe test defaults."""
    from secdesk.config import Settings, get_settings

    test_settings = Settings(
        backend_api_url="https://backend.test/api",
        backend_api_token="test-token",
        backend_timeout=5.0,
        queue_max_concurrent=2,
        queue_processing_delay=0.0,
        cache_ttl=30.0,
        cache_error_window=5.0,
        cache_min_error_ttl=0.1,
        security_services_cache_ttl=300.0,
    )

    get_settings.cache_clear()
    monkeypatch.setattr("secdesk.config.get_settings", lambda: test_settings)

    # Patch get_settings in all modules that import it directly
    # (from secdesk.config import get_settings creates a local binding that
    # the secdesk.config monkeypatch above does not affect)
    for mod_path in [
        "secdesk.services.http_client",
        "secdesk.services.request_cache",
        "secdesk.services.security_services",
        "secdesk.main",
    ]:
        monkeypatch.setattr(f"{mod_path}.get_settings", lambda: test_settings)

    return test_settings
