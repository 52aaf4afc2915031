"""Tests for provider fallback, circuit breakers and health checks.

Covers:
- Provider registry ordering and validation
- Fallback order and failure reporting
- Circuit breaker transitions (closed -> open -> half-open -> closed/open)
- Timeouts that abandon slow providers without cancelling them
- Cache fallback after total outage
- Background health probes
"""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from app.core.exceptions import (
    AllProvidersFailedError,
    ProviderError,
    ProviderTimeoutError,
)
from app.models.translation import TranslationResponse
from app.services.translation.fallback_manager import (
    CircuitState,
    FallbackConfig,
    ProviderRegistration,
    ProviderRegistry,
)
from app.services.translation.providers.mock import MockTranslationProvider
from prometheus_client import REGISTRY


def _circuit_gauge(name: str) -> float:
    return REGISTRY.get_sample_value(
        "translation_provider_circuit_state", {"provider": name}
    )


def _open_circuit(manager, name: str, failures: int = 5) -> None:
    for _ in range(failures):
        manager._record_failure(name, ProviderError(name, "down"))


# =============================================================================
# PROVIDER REGISTRY
# =============================================================================


class TestProviderRegistry:
    def test_primary_is_first(self):
        registry = ProviderRegistry(
            [
                ProviderRegistration(MockTranslationProvider(name="a")),
                ProviderRegistration(MockTranslationProvider(name="b"), primary=True),
                ProviderRegistration(MockTranslationProvider(name="c")),
            ]
        )

        assert registry.names() == ["b", "a", "c"]
        assert registry.primary_name == "b"
        assert registry.has_declared_primary is True

    def test_without_primary_first_declared_leads(self):
        registry = ProviderRegistry(
            [
                ProviderRegistration(MockTranslationProvider(name="a")),
                ProviderRegistration(MockTranslationProvider(name="b")),
            ]
        )

        assert registry.primary_name == "a"
        assert registry.has_declared_primary is False
        assert len(registry) == 2
        assert "b" in registry

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError, match="Duplicate provider name"):
            ProviderRegistry(
                [
                    ProviderRegistration(MockTranslationProvider(name="a")),
                    ProviderRegistration(MockTranslationProvider(name="a")),
                ]
            )

    def test_multiple_primaries_rejected(self):
        with pytest.raises(ValueError, match="Only one primary provider allowed"):
            ProviderRegistry(
                [
                    ProviderRegistration(MockTranslationProvider(name="a"), primary=True),
                    ProviderRegistration(MockTranslationProvider(name="b"), primary=True),
                ]
            )

    def test_empty_registry(self):
        registry = ProviderRegistry([])

        assert registry.primary_name is None
        assert list(registry) == []


# =============================================================================
# FALLBACK ORDER
# =============================================================================


class TestFallbackOrder:
    """The first provider that succeeds answers; later ones are never called."""

    @pytest.mark.asyncio
    async def test_primary_answers(
        self, make_manager, make_request, google_provider, azure_provider
    ):
        manager = make_manager([google_provider, azure_provider])

        result = await manager.translate_with_fallback(make_request())

        assert result.translated_text == "[ES] Hello"
        assert result.provider == "google"
        assert google_provider.translate_calls == 1
        assert azure_provider.translate_calls == 0

    @pytest.mark.asyncio
    async def test_falls_back_to_next_provider(
        self, make_manager, make_request, google_provider, azure_provider
    ):
        google_provider.fail_next()
        manager = make_manager([google_provider, azure_provider])

        result = await manager.translate_with_fallback(make_request())

        assert result.provider == "azure"
        assert manager.health["google"].consecutive_failures == 1
        assert manager.health["google"].circuit_state == CircuitState.CLOSED
        assert manager.health["azure"].consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_quota_failure_falls_back_to_azure_result(self, make_manager, make_request):
        """Primary fails with a quota error; the secondary's answer is returned."""
        google = MagicMock()
        google.name = "google"
        google.translate = AsyncMock(side_effect=ProviderError("google", "quota exceeded"))
        azure = MagicMock()
        azure.name = "azure"
        azure.translate = AsyncMock(
            return_value=TranslationResponse(translated_text="Hola", confidence=0.9)
        )
        manager = make_manager([google, azure])

        result = await manager.translate_with_fallback(make_request())

        assert result.translated_text == "Hola"
        assert result.confidence == 0.9
        assert result.provider == "azure"
        assert result.processing_time_ms >= 0
        assert manager.health["google"].consecutive_failures == 1
        assert manager.health["google"].last_failure is not None

    @pytest.mark.asyncio
    async def test_all_providers_fail(
        self, make_manager, make_request, google_provider, azure_provider
    ):
        google_provider.set_healthy(False)
        azure_provider.set_healthy(False)
        manager = make_manager([google_provider, azure_provider])

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await manager.translate_with_fallback(make_request())

        error = exc_info.value
        assert error.status_code == 503
        assert error.error_code == "TRANSLATION_UNAVAILABLE"
        assert error.failures == [
            ("google", "translate unavailable"),
            ("azure", "translate unavailable"),
        ]
        assert str(error) == (
            "All translation providers failed: google: translate unavailable, "
            "azure: translate unavailable"
        )

    @pytest.mark.asyncio
    async def test_unexpected_exceptions_count_as_failures(self, make_manager, make_request):
        broken = MagicMock()
        broken.name = "broken"
        broken.translate = AsyncMock(side_effect=RuntimeError("socket closed"))
        manager = make_manager([broken])

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await manager.translate_with_fallback(make_request())

        assert exc_info.value.failures == [("broken", "socket closed")]
        assert manager.health["broken"].consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_cache_serves_after_total_outage(
        self, make_manager, make_request, translation_cache, google_provider
    ):
        request = make_request()
        key = translation_cache.generate_cache_key(request)
        await translation_cache.cache_translation(
            key,
            TranslationResponse(
                translated_text="Hola", confidence=0.9, processing_time_ms=120.0
            ),
            request,
        )
        google_provider.set_healthy(False)
        manager = make_manager([google_provider], cache=translation_cache)

        result = await manager.translate_with_fallback(request)

        assert result.translated_text == "Hola"
        assert result.processing_time_ms == 0.0

    @pytest.mark.asyncio
    async def test_success_is_written_through_to_cache(
        self, make_manager, make_request, translation_cache, google_provider
    ):
        request = make_request()
        manager = make_manager([google_provider], cache=translation_cache)

        await manager.translate_with_fallback(request)

        cached = await translation_cache.get_cached_translation(
            translation_cache.generate_cache_key(request)
        )
        assert cached.translated_text == "[ES] Hello"
        assert cached.provider == "google"


# =============================================================================
# CIRCUIT BREAKER
# =============================================================================


class TestCircuitBreaker:
    @pytest.mark.asyncio
    async def test_threshold_opens_circuit(
        self, make_manager, make_request, google_provider, azure_provider
    ):
        google_provider.set_healthy(False)
        manager = make_manager([google_provider, azure_provider])

        for _ in range(5):
            await manager.translate_with_fallback(make_request())

        health = manager.health["google"]
        assert health.circuit_state == CircuitState.OPEN
        assert health.is_healthy is False
        assert health.consecutive_failures == 5
        assert _circuit_gauge("google") == 1

    @pytest.mark.asyncio
    async def test_open_circuit_is_skipped(
        self, make_manager, make_request, google_provider, azure_provider
    ):
        manager = make_manager([google_provider, azure_provider])
        _open_circuit(manager, "google")

        result = await manager.translate_with_fallback(make_request())

        assert result.provider == "azure"
        assert google_provider.translate_calls == 0

    @pytest.mark.asyncio
    async def test_open_circuit_with_every_provider_down(
        self, make_manager, make_request, google_provider
    ):
        manager = make_manager([google_provider])
        _open_circuit(manager, "google")

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await manager.translate_with_fallback(make_request())

        assert exc_info.value.failures == []
        assert google_provider.translate_calls == 0

    @pytest.mark.asyncio
    async def test_half_open_success_closes_circuit(
        self, make_manager, make_request, google_provider, azure_provider
    ):
        manager = make_manager([google_provider, azure_provider])
        _open_circuit(manager, "google")
        manager.health["google"].last_failure = time.time() - 61

        result = await manager.translate_with_fallback(make_request())

        health = manager.health["google"]
        assert result.provider == "google"
        assert health.circuit_state == CircuitState.CLOSED
        assert health.consecutive_failures == 0
        assert health.is_healthy is True
        assert _circuit_gauge("google") == 0

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens_circuit(
        self, make_manager, make_request, google_provider, azure_provider
    ):
        manager = make_manager([google_provider, azure_provider])
        _open_circuit(manager, "google")
        manager.health["google"].last_failure = time.time() - 61
        google_provider.fail_next()

        result = await manager.translate_with_fallback(make_request())

        health = manager.health["google"]
        assert result.provider == "azure"
        assert google_provider.translate_calls == 1
        assert health.circuit_state == CircuitState.OPEN
        assert health.consecutive_failures == 6
        assert time.time() - health.last_failure < 5

    @pytest.mark.asyncio
    async def test_cooldown_not_elapsed(
        self, make_manager, make_request, google_provider, azure_provider
    ):
        manager = make_manager([google_provider, azure_provider])
        _open_circuit(manager, "google")
        manager.health["google"].last_failure = time.time() - 30

        await manager.translate_with_fallback(make_request())

        assert google_provider.translate_calls == 0
        assert manager.health["google"].circuit_state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_half_open_provider_is_skipped_by_other_requests(
        self, make_manager, make_request, google_provider, azure_provider
    ):
        manager = make_manager([google_provider, azure_provider])
        manager._set_circuit_state("google", CircuitState.HALF_OPEN)

        result = await manager.translate_with_fallback(make_request())

        assert result.provider == "azure"
        assert google_provider.translate_calls == 0

    @pytest.mark.asyncio
    async def test_cancelled_half_open_trial_reopens_circuit(
        self, make_manager, make_request, azure_provider
    ):
        slow = MockTranslationProvider(name="google", latency_s=0.1)
        manager = make_manager([slow, azure_provider])
        _open_circuit(manager, "google")
        manager.health["google"].last_failure = time.time() - 61

        trial = asyncio.create_task(manager.translate_with_fallback(make_request()))
        await asyncio.sleep(0.02)
        assert manager.health["google"].circuit_state == CircuitState.HALF_OPEN
        trial.cancel()
        with pytest.raises(asyncio.CancelledError):
            await trial

        health = manager.health["google"]
        assert health.circuit_state == CircuitState.OPEN
        assert health.is_healthy is False
        assert time.time() - health.last_failure < 5
        assert _circuit_gauge("google") == 1

        # A fresh trial runs once the cooldown elapses again
        health.last_failure = time.time() - 61
        result = await manager.translate_with_fallback(make_request())

        assert result.provider == "google"
        assert slow.translate_calls == 2
        assert health.circuit_state == CircuitState.CLOSED

    def test_reset_circuit_breaker(self, make_manager, google_provider):
        manager = make_manager([google_provider])
        _open_circuit(manager, "google")

        assert manager.reset_circuit_breaker("google") is True
        assert manager.reset_circuit_breaker("unknown") is False

        health = manager.health["google"]
        assert health.circuit_state == CircuitState.CLOSED
        assert health.consecutive_failures == 0
        assert health.last_failure is None


# =============================================================================
# TIMEOUTS
# =============================================================================


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_slow_provider_times_out(self, make_manager, make_request, azure_provider):
        slow = MockTranslationProvider(name="google", latency_s=0.5)
        manager = make_manager([slow, azure_provider])

        result = await manager.translate_with_fallback(make_request())

        assert result.provider == "azure"
        assert manager.health["google"].consecutive_failures == 1
        assert len(manager._abandoned) == 1
        await asyncio.sleep(0.4)

    @pytest.mark.asyncio
    async def test_late_result_does_not_touch_health(
        self, make_manager, make_request, azure_provider
    ):
        slow = MockTranslationProvider(name="google", latency_s=0.3)
        manager = make_manager([slow, azure_provider])

        await manager.translate_with_fallback(make_request())
        failure_time = manager.health["google"].last_failure
        await asyncio.sleep(0.4)

        health = manager.health["google"]
        assert health.consecutive_failures == 1
        assert health.last_successful_call is None
        assert health.last_failure == failure_time
        assert manager._abandoned == set()

    @pytest.mark.asyncio
    async def test_timeout_error_reported(self, make_manager, make_request):
        slow = MockTranslationProvider(name="google", latency_s=0.5)
        manager = make_manager([slow])

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await manager.translate_with_fallback(make_request())

        assert exc_info.value.failures == [("google", "Translation timeout after 200ms")]
        await asyncio.sleep(0.4)

    def test_timeout_error_status(self):
        error = ProviderTimeoutError("google", 200)

        assert error.status_code == 504
        assert error.provider == "google"


# =============================================================================
# HEALTH CHECKS
# =============================================================================


class TestHealthChecks:
    @pytest.mark.asyncio
    async def test_probe_recovers_unhealthy_provider(self, make_manager, google_provider):
        manager = make_manager([google_provider])
        _open_circuit(manager, "google")

        results = await manager.perform_health_checks()

        health = manager.health["google"]
        assert results == {"google": True}
        assert health.is_healthy is True
        assert health.circuit_state == CircuitState.CLOSED
        assert health.consecutive_failures == 0
        assert health.last_successful_call is not None
        assert time.time() - health.last_successful_call < 5
        assert google_provider.detect_calls == 1

    @pytest.mark.asyncio
    async def test_probe_failure_is_recorded(
        self, make_manager, google_provider, azure_provider
    ):
        azure_provider.set_healthy(False)
        manager = make_manager([google_provider, azure_provider])

        results = await manager.perform_health_checks()

        assert results == {"google": True, "azure": False}
        assert manager.health["azure"].consecutive_failures == 1
        assert manager.health["azure"].circuit_state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_failing_probe_on_unhealthy_provider_changes_nothing(
        self, make_manager, google_provider
    ):
        google_provider.set_healthy(False)
        manager = make_manager([google_provider])
        _open_circuit(manager, "google")

        await manager.perform_health_checks()

        assert manager.health["google"].consecutive_failures == 5
        assert manager.health["google"].circuit_state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_periodic_health_checks(self, make_manager, google_provider):
        manager = make_manager(
            [google_provider],
            config=FallbackConfig(health_check_interval_ms=10, max_response_time_ms=200),
        )

        manager.start()
        await asyncio.sleep(0.06)
        await manager.stop()

        assert google_provider.detect_calls >= 2
        assert manager._health_task is None

    @pytest.mark.asyncio
    async def test_aclose_closes_providers(self, make_manager):
        provider = MockTranslationProvider(name="google")
        provider.aclose = AsyncMock()
        manager = make_manager([provider])

        await manager.aclose()

        provider.aclose.assert_awaited_once()


# =============================================================================
# STATISTICS
# =============================================================================


class TestStatistics:
    @pytest.mark.asyncio
    async def test_stats(self, make_manager, make_request, google_provider, azure_provider):
        manager = make_manager([google_provider, azure_provider])
        await manager.translate_with_fallback(make_request())
        _open_circuit(manager, "azure")

        stats = manager.get_stats()

        assert stats["total_providers"] == 2
        assert stats["healthy_providers"] == 1
        assert stats["open_circuits"] == 1
        assert stats["average_response_time_ms"] >= 0
        assert manager.get_healthy_providers() == ["google"]

    def test_health_snapshot_is_a_copy(self, make_manager, google_provider):
        manager = make_manager([google_provider])

        snapshot = manager.get_provider_health()
        snapshot["google"].consecutive_failures = 99

        assert manager.health["google"].consecutive_failures == 0
        assert snapshot["google"].to_dict()["circuit_state"] == "closed"

    def test_config_from_settings(self, test_settings):
        config = FallbackConfig.from_settings(test_settings)

        assert config.circuit_breaker_threshold == 5
        assert config.circuit_breaker_timeout_ms == 60000
        assert config.health_check_interval_ms == 30000
        assert config.max_response_time_ms == 10000
