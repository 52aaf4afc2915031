"""Centralized metrics module for Prometheus instrumentation.

This package consolidates all Prometheus metrics definitions:
- translation_metrics: provider attempts, circuit state, cache, offline queue

Usage:
    from app.metrics.translation_metrics import provider_requests_total
"""

from app.metrics import translation_metrics

__all__ = [
    "translation_metrics",
]
