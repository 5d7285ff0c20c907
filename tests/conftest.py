"""Shared fixtures for tests."""

from __future__ import annotations

import asyncio
import datetime
from typing import Any, Callable
from urllib.parse import parse_qsl

import httpx
import pytest

from psn_session_pool.auth.token_authenticator import TokenAuthenticator
from psn_session_pool.pool.session_pool import SessionPool

AUTH_HOST = "auth.api.sonyentertainmentnetwork.com"

PROFILE_BODY = {
    "profile": {
        "onlineId": "Hakoom",
        "npId": "SGFrb29t",
        "region": "us",
        "avatarUrl": "https://example.test/avatar.png",
        "aboutMe": "hello",
        "languagesUsed": ["en"],
        "plus": 1,
        "trophySummary": {
            "level": 12,
            "progress": 40,
            "earnedTrophies": {"platinum": 1, "gold": 2, "silver": 3, "bronze": 4},
        },
    }
}


class FakeClock:
    """Controllable replacement for ``utc_now``."""

    def __init__(self) -> None:
        self.now = datetime.datetime(2025, 1, 1, tzinfo=datetime.UTC)

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += datetime.timedelta(seconds=seconds)


class FakePSN:
    """In-memory stand-in for the PSN OAuth endpoint and API hosts.

    Every successful token exchange issues ``access-N``/``refresh-N`` and,
    like the real service, kills the refresh token that was exchanged.
    """

    def __init__(self) -> None:
        self.token_requests: list[dict[str, str]] = []
        self.api_requests: list[httpx.Request] = []
        self.live_refresh_tokens: set[str] = set()
        self.issued = 0
        self.token_status = 200
        self.api_delay = 0.0
        self.api_handler: Callable[[httpx.Request], Any] = (
            lambda request: httpx.Response(200, json=PROFILE_BODY)
        )

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == AUTH_HOST:
            return self._token(request)
        self.api_requests.append(request)
        if self.api_delay:
            await asyncio.sleep(self.api_delay)
        return self.api_handler(request)

    @property
    def refresh_requests(self) -> list[dict[str, str]]:
        return [form for form in self.token_requests if form["grant_type"] == "refresh_token"]

    @property
    def npsso_requests(self) -> list[dict[str, str]]:
        return [form for form in self.token_requests if form["grant_type"] == "sso_cookie"]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport())

    def _token(self, request: httpx.Request) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode()))
        form["cookie"] = request.headers.get("cookie", "")
        self.token_requests.append(form)

        if self.token_status != 200:
            return httpx.Response(
                self.token_status,
                json={"error": "invalid_grant", "error_description": "Invalid credentials"},
            )
        if form["grant_type"] == "refresh_token":
            if form["refresh_token"] not in self.live_refresh_tokens:
                return httpx.Response(
                    400,
                    json={"error": "invalid_grant", "error_description": "Invalid refresh token"},
                )
            self.live_refresh_tokens.discard(form["refresh_token"])

        self.issued += 1
        refresh_token = f"refresh-{self.issued}"
        self.live_refresh_tokens.add(refresh_token)
        return httpx.Response(
            200,
            json={
                "access_token": f"access-{self.issued}",
                "refresh_token": refresh_token,
                "expires_in": 3600,
                "refresh_token_expires_in": 5184000,
            },
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_psn() -> FakePSN:
    return FakePSN()


@pytest.fixture
def authenticator(fake_psn: FakePSN) -> TokenAuthenticator:
    return TokenAuthenticator(fake_psn.client())


@pytest.fixture
def make_pool(authenticator: TokenAuthenticator, clock: FakeClock) -> Callable[..., SessionPool]:
    def _make(seeds: list[Any], **kwargs: Any) -> SessionPool:
        return SessionPool(seeds, authenticator, clock=clock, **kwargs)

    return _make
