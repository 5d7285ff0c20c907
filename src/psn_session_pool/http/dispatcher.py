"""Turns an endpoint descriptor plus a leased session into an HTTP call.

The dispatcher is the only place a request can pay for a token refresh: for
authenticated endpoints it asks the leased ``SessionManager`` for a valid
access token before building the request.  Public endpoints skip token
handling entirely and may be sent without a lease.

Failures are mapped onto this package's error kinds and never retried here;
retry policy belongs to the caller so that upstream rate limiting stays
visible.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
import pydantic

from psn_session_pool.errors import DecodeError, NetworkError, UpstreamError
from psn_session_pool.http.endpoints import Endpoint, RequestParams
from psn_session_pool.pool.proxy_pool import ProxyPool
from psn_session_pool.pool.session_pool import SessionHandle

logger = logging.getLogger(__name__)


class RequestDispatcher:
    """Sends endpoint requests through the shared HTTP transport."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        region: str = "us",
        language: str = "en",
        proxy_pool: ProxyPool | None = None,
    ) -> None:
        self._client = client
        self._region = region
        self._language = language
        self._proxy_pool = proxy_pool

    @property
    def language(self) -> str:
        return self._language

    async def send(
        self,
        handle: SessionHandle | None,
        endpoint: Endpoint,
        params: RequestParams | None = None,
    ) -> Any:
        """Perform *endpoint* and return its decoded body.

        Returns an instance of ``endpoint.model`` when the endpoint declares
        one, the raw JSON otherwise, and ``None`` for endpoints without a body.
        """
        params = params or RequestParams()
        headers: dict[str, str] = {}
        if endpoint.requires_auth:
            if handle is None:
                raise ValueError(f"Endpoint '{endpoint.name}' requires a session handle")
            access_token = await handle.manager.ensure_valid()
            headers["Authorization"] = f"Bearer {access_token}"

        url = endpoint.url(self._region, params.path)
        client = self._proxy_pool.next_client() if self._proxy_pool is not None else self._client
        logger.debug(
            "%s %s (endpoint=%s, lease=%s)",
            endpoint.method,
            url,
            endpoint.name,
            handle.lease_id if handle is not None else "-",
        )

        try:
            response = await client.request(
                endpoint.method,
                url,
                params=endpoint.query(self._language, params.query),
                headers=headers,
                data=params.data,
                files=params.files,
            )
        except httpx.TransportError as exc:
            raise NetworkError(f"Request to '{endpoint.name}' failed: {exc}") from exc

        if not response.is_success:
            error = self._upstream_error(response)
            logger.warning("Endpoint '%s' failed: %s", endpoint.name, error)
            raise error

        if not endpoint.expects_body:
            return None
        return self._decode(endpoint, response)

    # -- private helpers -----------------------------------------------------

    @staticmethod
    def _decode(endpoint: Endpoint, response: httpx.Response) -> Any:
        try:
            payload = response.json()
        except ValueError as exc:
            raise DecodeError(f"Endpoint '{endpoint.name}' returned invalid JSON: {exc}") from exc

        if endpoint.model is None:
            return payload
        try:
            return endpoint.model.model_validate(payload)
        except pydantic.ValidationError as exc:
            raise DecodeError(
                f"Endpoint '{endpoint.name}' returned an unexpected shape: "
                f"{exc.error_count()} validation error(s)"
            ) from exc

    @staticmethod
    def _upstream_error(response: httpx.Response) -> UpstreamError:
        try:
            body = response.json()
        except ValueError:
            return UpstreamError(response.status_code)
        error = body.get("error") if isinstance(body, dict) else None
        if not isinstance(error, dict):
            return UpstreamError(response.status_code)
        code = error.get("code")
        return UpstreamError(
            response.status_code,
            code=code if isinstance(code, int) else None,
            message=str(error.get("message", "")),
        )
