"""
Custom exception hierarchy for the Market Translation API.

This module defines a standardized exception hierarchy for consistent
error handling across the application.
"""

from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException, status


class BaseAppException(HTTPException):
    """Base exception for all application errors."""

    def __init__(
        self,
        detail: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        headers: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code or self.__class__.__name__

    def __str__(self) -> str:
        return str(self.detail)


# Resource Exceptions


class ResourceNotFoundError(BaseAppException):
    """Raised when a resource is not found."""

    def __init__(self, resource_type: str, resource_id: str):
        detail = f"{resource_type} with ID '{resource_id}' not found"
        super().__init__(
            detail, status.HTTP_404_NOT_FOUND, error_code="RESOURCE_NOT_FOUND"
        )


class ProviderNotFoundError(ResourceNotFoundError):
    """Raised when a translation provider is not registered."""

    def __init__(self, provider_name: str):
        super().__init__("Translation provider", provider_name)


# Data Validation Exceptions


class ValidationError(BaseAppException):
    """Raised when data validation fails."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = (
            f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        )
        super().__init__(
            detail, status.HTTP_422_UNPROCESSABLE_ENTITY, error_code=error_code
        )


class LanguagePairError(ValidationError):
    """Raised when a language pair is unsupported or source equals target."""

    def __init__(self, detail: str):
        super().__init__(detail, field="language_pair")


class BatchValidationError(ValidationError):
    """Raised when one or more items of a batch request fail validation."""

    def __init__(self, errors: List[Dict[str, Any]]):
        super().__init__(
            f"{len(errors)} batch request(s) failed validation", field="batch"
        )
        self.errors = errors


# Storage Exceptions


class CacheError(BaseAppException):
    """Raised when the translation cache backend fails.

    Never escapes TranslationCache: caching is best-effort.
    """

    def __init__(self, detail: str, operation: str):
        operation_map = {
            "get": "READ",
            "set": "WRITE",
            "delete": "DELETE",
            "clear": "DELETE",
            "cleanup": "DELETE",
            "ping": "PING",
            "stats": "STATS",
        }
        normalized_op = operation_map.get(operation.lower(), "UNKNOWN")
        super().__init__(
            f"Cache {operation} failed: {detail}",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code=f"CACHE_{normalized_op}_ERROR",
        )
        self.operation = operation


# Service Exceptions


class ExternalAPIError(BaseAppException):
    """Raised when external API calls fail."""

    def __init__(self, service: str, detail: str):
        # Map to controlled vocabulary to prevent high cardinality
        service_map = {
            "google": "GOOGLE",
            "azure": "AZURE",
            "mock": "MOCK",
            "external": "EXTERNAL",
        }
        normalized_service = service_map.get(service.lower(), "EXTERNAL")
        super().__init__(
            f"{service} API error: {detail}",
            status.HTTP_502_BAD_GATEWAY,
            error_code=f"{normalized_service}_API_ERROR",
        )


class ProviderError(ExternalAPIError):
    """Raised by a translation provider on network, auth or quota problems."""

    def __init__(self, provider: str, detail: str):
        super().__init__(provider, detail)
        self.provider = provider
        self.reason = detail


class ProviderTimeoutError(ProviderError):
    """Raised when a provider attempt exceeds the configured response time."""

    def __init__(self, provider: str, timeout_ms: int):
        super().__init__(provider, f"Translation timeout after {timeout_ms}ms")
        self.status_code = status.HTTP_504_GATEWAY_TIMEOUT
        self.timeout_ms = timeout_ms


class AllProvidersFailedError(BaseAppException):
    """Raised when every registered provider failed and no cached result exists."""

    def __init__(self, failures: List[Tuple[str, str]]):
        summary = ", ".join(f"{name}: {reason}" for name, reason in failures)
        if not failures:
            summary = "no providers available"
        super().__init__(
            f"All translation providers failed: {summary}",
            status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="TRANSLATION_UNAVAILABLE",
        )
        self.failures = failures
