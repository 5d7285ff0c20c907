"""Tests for the request dispatcher."""

from __future__ import annotations

import asyncio
from typing import Callable

import httpx
import pytest

from psn_session_pool.errors import DecodeError, NetworkError, UpstreamError
from psn_session_pool.http import endpoints
from psn_session_pool.http.dispatcher import RequestDispatcher
from psn_session_pool.http.endpoints import RequestParams
from psn_session_pool.models import ProfileResponse
from psn_session_pool.pool.proxy_pool import ProxyPool
from psn_session_pool.pool.session_pool import SessionPool

from conftest import FakeClock, FakePSN

PROFILE_PARAMS = RequestParams(path={"online_id": "Hakoom"})


@pytest.fixture
def pool(make_pool: Callable[..., SessionPool]) -> SessionPool:
    return make_pool(["seedA"])


@pytest.fixture
def dispatcher(fake_psn: FakePSN) -> RequestDispatcher:
    return RequestDispatcher(fake_psn.client(), region="gb", language="fr")


def _send(pool: SessionPool, dispatcher: RequestDispatcher, endpoint, params=None):
    async def scenario():
        async with pool.lease() as handle:
            return await dispatcher.send(handle, endpoint, params)

    return asyncio.run(scenario())


class TestAuthenticatedRequests:
    def test_sends_bearer_token_to_regional_host(
        self, fake_psn: FakePSN, pool: SessionPool, dispatcher: RequestDispatcher
    ) -> None:
        result = _send(pool, dispatcher, endpoints.PROFILE, PROFILE_PARAMS)

        request = fake_psn.api_requests[0]
        assert request.headers["Authorization"] == "Bearer access-1"
        assert request.url.host == "gb-prof.np.community.playstation.net"
        assert request.url.path == "/userProfile/v1/users/Hakoom/profile"
        assert "trophySummary" in request.url.params["fields"]
        assert isinstance(result, ProfileResponse)
        assert result.profile.online_id == "Hakoom"
        assert result.profile.trophy_summary.earned_trophies.gold == 2

    def test_localized_endpoints_carry_language_and_extra_query(
        self, fake_psn: FakePSN, pool: SessionPool, dispatcher: RequestDispatcher
    ) -> None:
        fake_psn.api_handler = lambda request: httpx.Response(
            200, json={"totalResults": 0, "offset": 0, "trophyTitles": []}
        )
        _send(
            pool,
            dispatcher,
            endpoints.TROPHY_TITLES,
            RequestParams(query={"offset": 100, "comparedUser": "Hakoom"}),
        )

        params = fake_psn.api_requests[0].url.params
        assert params["npLanguage"] == "fr"
        assert params["offset"] == "100"
        assert params["comparedUser"] == "Hakoom"
        assert params["limit"] == "100"

    def test_expired_token_is_refreshed_once_before_sending(
        self,
        fake_psn: FakePSN,
        pool: SessionPool,
        dispatcher: RequestDispatcher,
        clock: FakeClock,
    ) -> None:
        _send(pool, dispatcher, endpoints.PROFILE, PROFILE_PARAMS)
        clock.advance(3600)
        _send(pool, dispatcher, endpoints.PROFILE, PROFILE_PARAMS)

        assert len(fake_psn.refresh_requests) == 1
        assert fake_psn.api_requests[1].headers["Authorization"] == "Bearer access-2"

    def test_authenticated_endpoint_needs_a_handle(self, dispatcher: RequestDispatcher) -> None:
        with pytest.raises(ValueError, match="requires a session handle"):
            asyncio.run(dispatcher.send(None, endpoints.PROFILE, PROFILE_PARAMS))

    def test_missing_path_parameter(
        self, pool: SessionPool, dispatcher: RequestDispatcher
    ) -> None:
        with pytest.raises(ValueError, match="online_id"):
            _send(pool, dispatcher, endpoints.PROFILE)


class TestPublicRequests:
    def test_public_endpoint_skips_token_handling(
        self, fake_psn: FakePSN, dispatcher: RequestDispatcher
    ) -> None:
        fake_psn.api_handler = lambda request: httpx.Response(200, json={"included": []})
        params = RequestParams(
            path={"language": "en", "country": "US", "age": "21", "name": "call+of+duty"}
        )

        result = asyncio.run(dispatcher.send(None, endpoints.STORE_SEARCH, params))

        request = fake_psn.api_requests[0]
        assert "Authorization" not in request.headers
        assert request.url.host == "store.playstation.com"
        assert request.url.raw_path.decode().startswith(
            "/valkyrie-api/en/US/21/tumbler-search/call+of+duty"
        )
        assert result.included == []
        assert fake_psn.token_requests == []


class TestFailures:
    def test_upstream_error_carries_psn_code(
        self, fake_psn: FakePSN, pool: SessionPool, dispatcher: RequestDispatcher
    ) -> None:
        fake_psn.api_handler = lambda request: httpx.Response(
            404, json={"error": {"code": 2105356, "message": "User not found"}}
        )

        with pytest.raises(UpstreamError) as excinfo:
            _send(pool, dispatcher, endpoints.PROFILE, PROFILE_PARAMS)

        assert excinfo.value.status == 404
        assert excinfo.value.code == 2105356
        assert excinfo.value.message == "User not found"
        assert "User not found" in str(excinfo.value)

    def test_upstream_error_without_json_body(
        self, fake_psn: FakePSN, pool: SessionPool, dispatcher: RequestDispatcher
    ) -> None:
        fake_psn.api_handler = lambda request: httpx.Response(500, text="oops")

        with pytest.raises(UpstreamError) as excinfo:
            _send(pool, dispatcher, endpoints.PROFILE, PROFILE_PARAMS)

        assert excinfo.value.status == 500
        assert excinfo.value.code is None

    def test_transport_failure_is_a_network_error(
        self, fake_psn: FakePSN, pool: SessionPool, dispatcher: RequestDispatcher
    ) -> None:
        def unreachable(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fake_psn.api_handler = unreachable
        with pytest.raises(NetworkError, match="profile"):
            _send(pool, dispatcher, endpoints.PROFILE, PROFILE_PARAMS)

    def test_invalid_json_is_a_decode_error(
        self, fake_psn: FakePSN, pool: SessionPool, dispatcher: RequestDispatcher
    ) -> None:
        fake_psn.api_handler = lambda request: httpx.Response(200, content=b"<html>")
        with pytest.raises(DecodeError, match="invalid JSON"):
            _send(pool, dispatcher, endpoints.PROFILE, PROFILE_PARAMS)

    def test_unexpected_shape_is_a_decode_error(
        self, fake_psn: FakePSN, pool: SessionPool, dispatcher: RequestDispatcher
    ) -> None:
        fake_psn.api_handler = lambda request: httpx.Response(200, json={"profile": {}})
        with pytest.raises(DecodeError, match="unexpected shape"):
            _send(pool, dispatcher, endpoints.PROFILE, PROFILE_PARAMS)


class TestResponses:
    def test_bodyless_endpoint_returns_none(
        self, fake_psn: FakePSN, pool: SessionPool, dispatcher: RequestDispatcher
    ) -> None:
        fake_psn.api_handler = lambda request: httpx.Response(204)
        result = _send(
            pool,
            dispatcher,
            endpoints.LEAVE_MESSAGE_THREAD,
            RequestParams(path={"thread_id": "t-1"}),
        )

        assert result is None
        assert fake_psn.api_requests[0].method == "DELETE"


class TestProxyRotation:
    def test_requests_leave_through_proxy_clients(
        self, fake_psn: FakePSN, pool: SessionPool
    ) -> None:
        proxied = []

        def proxy_handler(request: httpx.Request) -> httpx.Response:
            proxied.append(request)
            return httpx.Response(200, json={"profile": {"onlineId": "Hakoom"}})

        proxy_pool = ProxyPool(
            [httpx.AsyncClient(transport=httpx.MockTransport(proxy_handler)) for _ in range(2)]
        )
        dispatcher = RequestDispatcher(fake_psn.client(), proxy_pool=proxy_pool)

        _send(pool, dispatcher, endpoints.PROFILE, PROFILE_PARAMS)
        _send(pool, dispatcher, endpoints.PROFILE, PROFILE_PARAMS)

        assert len(proxied) == 2
        assert fake_psn.api_requests == []
        # Token exchanges still go through the authenticator's own client.
        assert len(fake_psn.npsso_requests) == 1
