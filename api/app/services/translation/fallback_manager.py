"""Provider fallback with per-provider circuit breakers and health checks.

Providers are tried in registry order (primary first). Each provider has its
own circuit:

- CLOSED: Normal operation, requests allowed
- OPEN: Too many consecutive failures, provider skipped until the cooldown
  has elapsed since the last failure
- HALF_OPEN: Cooldown elapsed, exactly one trial request allowed; success
  closes the circuit, failure reopens it immediately

Health bookkeeping (``_record_success`` / ``_record_failure``) never awaits,
so every update runs to completion on the event loop without locks.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Set,
    Tuple,
)

from app.core.exceptions import (
    AllProvidersFailedError,
    ProviderError,
    ProviderTimeoutError,
)
from app.metrics.translation_metrics import (
    provider_circuit_state,
    provider_health_checks_total,
    provider_request_duration_seconds,
    provider_requests_total,
    translation_fallback_exhausted_total,
)
from app.models.translation import TranslationRequest, TranslationResponse
from app.services.translation.providers.base import TranslationProvider
from app.utils.scheduling import PeriodicTask

if TYPE_CHECKING:
    from app.core.config import Settings
    from app.services.translation.cache import TranslationCache

logger = logging.getLogger(__name__)

HEALTH_CHECK_TEXT = "health check"


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


_STATE_GAUGE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.OPEN: 1,
    CircuitState.HALF_OPEN: 2,
}


@dataclass
class ProviderHealth:
    """Mutable health record for one registered provider.

    Timestamps are epoch seconds (``time.time()``).
    """

    is_healthy: bool = True
    consecutive_failures: int = 0
    circuit_state: CircuitState = CircuitState.CLOSED
    last_failure: Optional[float] = None
    last_successful_call: Optional[float] = None
    response_time_ms: float = 0.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["circuit_state"] = self.circuit_state.value
        return data


@dataclass
class FallbackConfig:
    max_retries: int = 3
    retry_delay_ms: int = 1000
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout_ms: int = 60000
    health_check_interval_ms: int = 30000
    max_response_time_ms: int = 10000

    @classmethod
    def from_settings(cls, settings: "Settings") -> "FallbackConfig":
        return cls(
            max_retries=settings.TRANSLATION_MAX_RETRIES,
            retry_delay_ms=settings.TRANSLATION_RETRY_DELAY_MS,
            circuit_breaker_threshold=settings.TRANSLATION_CIRCUIT_BREAKER_THRESHOLD,
            circuit_breaker_timeout_ms=settings.TRANSLATION_CIRCUIT_BREAKER_TIMEOUT_MS,
            health_check_interval_ms=settings.TRANSLATION_HEALTH_CHECK_INTERVAL_MS,
            max_response_time_ms=settings.TRANSLATION_MAX_RESPONSE_TIME_MS,
        )


@dataclass(frozen=True)
class ProviderRegistration:
    provider: TranslationProvider
    primary: bool = False

    @property
    def name(self) -> str:
        return self.provider.name


class ProviderRegistry:
    """Ordered, immutable provider list built once at startup.

    The registration marked primary comes first; the others keep their
    declared order. Iteration order is fallback order.
    """

    def __init__(self, registrations: Iterable[ProviderRegistration]):
        registrations = list(registrations)
        primaries = [r for r in registrations if r.primary]
        if len(primaries) > 1:
            names = ", ".join(r.name for r in primaries)
            raise ValueError(f"Only one primary provider allowed, got: {names}")

        ordered = primaries + [r for r in registrations if not r.primary]
        self._providers: Dict[str, TranslationProvider] = {}
        for registration in ordered:
            if registration.name in self._providers:
                raise ValueError(f"Duplicate provider name: {registration.name}")
            self._providers[registration.name] = registration.provider
            logger.info(
                f"Registered translation provider: {registration.name} "
                f"(primary: {registration.primary})"
            )
        self._has_primary = bool(primaries)

    def __iter__(self) -> Iterator[Tuple[str, TranslationProvider]]:
        return iter(list(self._providers.items()))

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def names(self) -> List[str]:
        return list(self._providers)

    def get(self, name: str) -> Optional[TranslationProvider]:
        return self._providers.get(name)

    def providers(self) -> List[TranslationProvider]:
        return list(self._providers.values())

    @property
    def primary_name(self) -> Optional[str]:
        """Name of the first provider, the declared primary when there is one."""
        return next(iter(self._providers), None)

    @property
    def has_declared_primary(self) -> bool:
        return self._has_primary


class FallbackManager:
    """Translate through the first provider that answers in time."""

    def __init__(
        self,
        registry: ProviderRegistry,
        config: Optional[FallbackConfig] = None,
        cache: Optional["TranslationCache"] = None,
    ):
        self.registry = registry
        self.config = config or FallbackConfig()
        self.cache = cache
        self.health: Dict[str, ProviderHealth] = {
            name: ProviderHealth() for name in registry.names()
        }
        self._health_task: Optional[PeriodicTask] = None
        # Timed-out attempts still running; referenced until they settle
        self._abandoned: Set[asyncio.Task] = set()

        for name in self.health:
            provider_circuit_state.labels(provider=name).set(0)

    @property
    def primary_provider(self) -> Optional[TranslationProvider]:
        name = self.registry.primary_name
        return self.registry.get(name) if name else None

    # Request path

    async def translate_with_fallback(
        self, request: TranslationRequest
    ) -> TranslationResponse:
        """Translate with the first provider that succeeds.

        Raises:
            AllProvidersFailedError: If every provider failed or was skipped
                and the cache has no entry for the request.
        """
        failures: List[Tuple[str, str]] = []

        for name, provider in self.registry:
            health = self.health[name]
            half_open_trial = False

            if health.circuit_state == CircuitState.OPEN:
                if not self._should_try_half_open(health):
                    logger.debug(f"Skipping provider {name} - circuit breaker open")
                    provider_requests_total.labels(provider=name, result="skipped").inc()
                    continue
                self._set_circuit_state(name, CircuitState.HALF_OPEN)
                half_open_trial = True
                logger.info(f"Circuit breaker half-open for provider: {name}")
            elif health.circuit_state == CircuitState.HALF_OPEN:
                logger.debug(f"Skipping provider {name} - half-open trial in flight")
                provider_requests_total.labels(provider=name, result="skipped").inc()
                continue

            try:
                result = await self._execute_with_timeout(name, provider, request)
            except asyncio.CancelledError:
                if half_open_trial:
                    self._reopen_circuit(name)
                raise
            except Exception as e:
                if isinstance(e, ProviderError):
                    reason = e.reason
                else:
                    reason = str(e) or type(e).__name__
                failures.append((name, reason))
                self._record_failure(name, e, half_open_trial=half_open_trial)
                logger.warning(f"Provider {name} failed: {reason}")
                continue

            self._record_success(name, result.processing_time_ms)
            result = result.model_copy(update={"provider": name})
            if self.cache is not None:
                key = self.cache.generate_cache_key(request)
                await self.cache.cache_translation(key, result, request)
            return result

        summary = ", ".join(f"{name}: {reason}" for name, reason in failures)
        logger.error(f"All translation providers failed: {summary or 'none available'}")

        if self.cache is not None:
            key = self.cache.generate_cache_key(request)
            cached = await self.cache.get_cached_translation(key)
            if cached is not None:
                logger.info("Returning cached translation as fallback")
                translation_fallback_exhausted_total.labels(resolution="cache").inc()
                return cached.model_copy(update={"processing_time_ms": 0.0})

        translation_fallback_exhausted_total.labels(resolution="error").inc()
        raise AllProvidersFailedError(failures)

    async def _execute_with_timeout(
        self, name: str, provider: TranslationProvider, request: TranslationRequest
    ) -> TranslationResponse:
        """Race one provider call against ``max_response_time_ms``.

        On timeout the waiter gives up but the call keeps running; its late
        outcome is logged and dropped without touching health state.
        """
        start_time = time.time()
        task = asyncio.ensure_future(provider.translate(request))
        try:
            done, _ = await asyncio.wait(
                {task}, timeout=self.config.max_response_time_ms / 1000
            )
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task not in done:
            self._abandon(name, task)
            provider_requests_total.labels(provider=name, result="timeout").inc()
            raise ProviderTimeoutError(name, self.config.max_response_time_ms)

        try:
            result = task.result()
        except Exception:
            provider_requests_total.labels(provider=name, result="failure").inc()
            raise

        elapsed = time.time() - start_time
        provider_requests_total.labels(provider=name, result="success").inc()
        provider_request_duration_seconds.labels(provider=name).observe(elapsed)
        return result.model_copy(update={"processing_time_ms": elapsed * 1000})

    def _abandon(self, name: str, task: asyncio.Task) -> None:
        self._abandoned.add(task)

        def _discard(finished: asyncio.Task) -> None:
            self._abandoned.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                logger.debug(f"Discarding late failure from {name}: {error}")
            else:
                logger.debug(f"Discarding late result from {name}")

        task.add_done_callback(_discard)

    # Health bookkeeping

    def _set_circuit_state(self, name: str, state: CircuitState) -> None:
        self.health[name].circuit_state = state
        provider_circuit_state.labels(provider=name).set(_STATE_GAUGE_VALUES[state])

    def _record_success(self, name: str, response_time_ms: float) -> None:
        health = self.health[name]
        if health.circuit_state != CircuitState.CLOSED:
            logger.info(f"Circuit breaker closed for provider {name}")
        health.is_healthy = True
        health.consecutive_failures = 0
        health.last_successful_call = time.time()
        health.response_time_ms = response_time_ms
        self._set_circuit_state(name, CircuitState.CLOSED)
        logger.debug(f"Provider {name} success - response time: {response_time_ms:.0f}ms")

    def _record_failure(
        self, name: str, error: Exception, half_open_trial: bool = False
    ) -> None:
        health = self.health[name]
        health.consecutive_failures += 1
        health.last_failure = time.time()

        if half_open_trial or health.circuit_state == CircuitState.HALF_OPEN:
            health.is_healthy = False
            self._set_circuit_state(name, CircuitState.OPEN)
            logger.warning(f"Half-open trial failed, circuit breaker reopened for {name}")
        elif health.consecutive_failures >= self.config.circuit_breaker_threshold:
            if health.circuit_state != CircuitState.OPEN:
                logger.warning(
                    f"Circuit breaker opened for provider {name} after "
                    f"{health.consecutive_failures} failures"
                )
            health.is_healthy = False
            self._set_circuit_state(name, CircuitState.OPEN)

        logger.debug(
            f"Provider {name} failure #{health.consecutive_failures}: {error}"
        )

    def _reopen_circuit(self, name: str) -> None:
        """Return an interrupted half-open trial to OPEN with a fresh cooldown."""
        health = self.health[name]
        health.is_healthy = False
        health.last_failure = time.time()
        self._set_circuit_state(name, CircuitState.OPEN)
        logger.warning(f"Half-open trial for {name} was cancelled, circuit breaker reopened")

    def _should_try_half_open(self, health: ProviderHealth) -> bool:
        if health.circuit_state != CircuitState.OPEN or health.last_failure is None:
            return False
        elapsed_ms = (time.time() - health.last_failure) * 1000
        return elapsed_ms >= self.config.circuit_breaker_timeout_ms

    # Background health checks

    async def perform_health_checks(self) -> Dict[str, bool]:
        """Probe every provider concurrently with a detection call.

        A passing probe restores an unhealthy provider (CLOSED, zero
        failures); a failing probe on a healthy provider is recorded like a
        live failure.
        """

        async def probe(name: str, provider: TranslationProvider) -> bool:
            start_time = time.time()
            try:
                await asyncio.wait_for(
                    provider.detect_language(HEALTH_CHECK_TEXT),
                    timeout=self.config.max_response_time_ms / 1000,
                )
            except Exception as e:
                provider_health_checks_total.labels(provider=name, result="failure").inc()
                health = self.health[name]
                if health.is_healthy:
                    self._record_failure(name, e)
                    logger.warning(f"Provider {name} failed health check: {e}")
                return False

            provider_health_checks_total.labels(provider=name, result="success").inc()
            health = self.health[name]
            if not health.is_healthy:
                health.is_healthy = True
                health.consecutive_failures = 0
                health.last_successful_call = time.time()
                health.response_time_ms = (time.time() - start_time) * 1000
                self._set_circuit_state(name, CircuitState.CLOSED)
                logger.info(f"Provider {name} recovered - health check passed")
            return True

        names = self.registry.names()
        results = await asyncio.gather(
            *(probe(name, provider) for name, provider in self.registry)
        )
        return dict(zip(names, results))

    def start(self) -> None:
        """Start periodic health checks on the running event loop."""
        if self._health_task is None:
            self._health_task = PeriodicTask(
                "translation-provider-health",
                self.config.health_check_interval_ms / 1000,
                self.perform_health_checks,
            )
        self._health_task.start()
        logger.info("Started translation provider health checks")

    async def stop(self) -> None:
        """Stop health checks. Idempotent."""
        if self._health_task is not None:
            await self._health_task.stop()
            self._health_task = None
            logger.info("Stopped translation provider health checks")

    async def aclose(self) -> None:
        """Stop health checks and close every provider."""
        await self.stop()
        results = await asyncio.gather(
            *(provider.aclose() for provider in self.registry.providers()),
            return_exceptions=True,
        )
        for name, result in zip(self.registry.names(), results):
            if isinstance(result, Exception):
                logger.warning(f"Error closing provider {name}: {result}")

    # Administration

    def reset_circuit_breaker(self, name: str) -> bool:
        health = self.health.get(name)
        if health is None:
            return False
        health.is_healthy = True
        health.consecutive_failures = 0
        health.last_failure = None
        self._set_circuit_state(name, CircuitState.CLOSED)
        logger.info(f"Circuit breaker reset for provider: {name}")
        return True

    def get_provider_health(self) -> Dict[str, ProviderHealth]:
        """Snapshot copies; mutating them does not affect the manager."""
        return {name: replace(health) for name, health in self.health.items()}

    def get_healthy_providers(self) -> List[str]:
        return [
            name
            for name, health in self.health.items()
            if health.is_healthy and health.circuit_state == CircuitState.CLOSED
        ]

    def get_stats(self) -> dict:
        response_times = [
            h.response_time_ms for h in self.health.values() if h.response_time_ms > 0
        ]
        average = sum(response_times) / len(response_times) if response_times else 0
        return {
            "total_providers": len(self.registry),
            "healthy_providers": sum(1 for h in self.health.values() if h.is_healthy),
            "open_circuits": sum(
                1 for h in self.health.values() if h.circuit_state == CircuitState.OPEN
            ),
            "average_response_time_ms": round(average, 2),
        }
