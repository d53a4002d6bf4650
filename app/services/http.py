"""Status-code handling on top of ``httpx`` for the provider clients."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import httpx

from ..errors import (
    MalformedResponse,
    ProviderAuthError,
    ProviderError,
    ProviderNotFound,
    ProviderUnavailable,
)
from .retry import RetryPolicy, retry_async


class ProviderHttp:
    """Wraps one provider's ``httpx.AsyncClient`` with retries and error mapping.

    429 and 5xx answers (and transport failures) are retried according to the
    policy and end up as :class:`ProviderUnavailable`. 401/403 become
    :class:`ProviderAuthError`, 404 :class:`ProviderNotFound`, and anything that
    is not JSON :class:`MalformedResponse`.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        provider: str,
        policy: RetryPolicy,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = http_client
        self._provider = provider
        self._policy = policy
        self._sleep = sleep

    @property
    def provider(self) -> str:
        return self._provider

    async def request(
        self,
        method: str,
        url: str,
        *,
        retry: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        async def _attempt() -> httpx.Response:
            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.HTTPError as exc:
                raise ProviderUnavailable(
                    self._provider, f"{exc.__class__.__name__} calling {_path(url)}"
                ) from exc
            self._raise_for_status(response, url)
            return response

        if not retry:
            return await _attempt()
        return await retry_async(
            _attempt,
            policy=self._policy,
            should_retry=lambda exc: isinstance(exc, ProviderUnavailable),
            sleep=self._sleep,
            description=f"{self._provider} {method} {_path(url)}",
        )

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        response = await self.get(url, **kwargs)
        return self.decode(response)

    async def post_json(self, url: str, **kwargs: Any) -> Any:
        response = await self.request("POST", url, retry=False, **kwargs)
        return self.decode(response)

    def decode(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponse(
                self._provider, f"non-JSON body from {response.request.url.path}"
            ) from exc

    def _raise_for_status(self, response: httpx.Response, url: str) -> None:
        status = response.status_code
        if status < 400:
            return
        path = _path(url)
        if status in (401, 403):
            raise ProviderAuthError(
                self._provider, f"{status} for {path}", status_code=status
            )
        if status == 404:
            raise ProviderNotFound(self._provider, f"404 for {path}", status_code=status)
        if status == 429 or status >= 500:
            raise ProviderUnavailable(
                self._provider, f"{status} for {path}", status_code=status
            )
        raise ProviderError(self._provider, f"{status} for {path}", status_code=status)


def _path(url: str) -> str:
    # Query strings can carry API keys; keep them out of logs and messages.
    return url.split("?", 1)[0]
