"""Failure taxonomy shared by the upstream provider clients."""

from __future__ import annotations


class ProviderError(Exception):
    """Base class for failures talking to an upstream catalog provider."""

    def __init__(self, provider: str, message: str, *, status_code: int | None = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class ProviderUnavailable(ProviderError):
    """Rate limited, overloaded or unreachable after all retries were spent."""


class ProviderAuthError(ProviderError):
    """The credential was rejected for a privately keyed resource."""


class ProviderNotFound(ProviderError):
    """The requested resource does not exist upstream."""


class MalformedResponse(ProviderError):
    """The provider answered with a payload we cannot interpret."""
