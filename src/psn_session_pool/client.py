"""High-level PSN client backed by the session pool.

Pattern: Facade
----------------
Callers should not have to juggle leases, endpoint descriptors and request
parameters for every call.  ``PSNClient`` owns the pool, the dispatcher and
the HTTP clients, and exposes one coroutine per supported call.  Each
authenticated call leases a session for exactly one request (``send_message``
keeps its lease across the two requests it needs, so both go out as the same
account) and always hands it back, even when the request fails or the caller
is cancelled.

Store lookups are public and never wait for a lease.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from psn_session_pool.auth.credential import Clock, utc_now
from psn_session_pool.auth.session_manager import TokenSnapshot
from psn_session_pool.auth.token_authenticator import TokenAuthenticator
from psn_session_pool.config.settings import Settings
from psn_session_pool.http import endpoints
from psn_session_pool.http.dispatcher import RequestDispatcher
from psn_session_pool.http.endpoints import Endpoint, RequestParams
from psn_session_pool.http.messages import message_parts, new_thread_parts
from psn_session_pool.models import (
    MessageThread,
    MessageThreadResponse,
    MessageThreadsSummary,
    PSNUser,
    StoreSearchResult,
    TrophySet,
    TrophyTitles,
)
from psn_session_pool.pool.proxy_pool import ProxyPool
from psn_session_pool.pool.session_pool import SessionPool

logger = logging.getLogger(__name__)


class PSNClient:
    """Concurrent PSN API access over a pool of accounts."""

    def __init__(
        self,
        pool: SessionPool,
        dispatcher: RequestDispatcher,
        *,
        http_client: httpx.AsyncClient | None = None,
        proxy_pool: ProxyPool | None = None,
    ) -> None:
        self._pool = pool
        self._dispatcher = dispatcher
        self._http_client = http_client
        self._proxy_pool = proxy_pool

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Clock = utc_now,
    ) -> PSNClient:
        """Wire up transport, authenticator, pool and dispatcher from *settings*.

        No network calls are made; each account authenticates on first use.
        """
        http_client = httpx.AsyncClient(timeout=settings.http.timeout, transport=transport)
        proxy_pool = None
        if settings.http.proxies:
            proxy_pool = ProxyPool.from_settings(settings.http.proxies, timeout=settings.http.timeout)

        pool = SessionPool(
            settings.accounts,
            TokenAuthenticator(http_client),
            max_size=settings.pool.max_size,
            acquire_timeout=settings.pool.acquire_timeout,
            refresh_margin=settings.pool.refresh_margin,
            retire_failed=settings.pool.retire_failed,
            clock=clock,
        )
        dispatcher = RequestDispatcher(
            http_client,
            region=settings.region,
            language=settings.language,
            proxy_pool=proxy_pool,
        )
        return cls(pool, dispatcher, http_client=http_client, proxy_pool=proxy_pool)

    @property
    def pool(self) -> SessionPool:
        return self._pool

    def get_inner(self) -> list[TokenSnapshot]:
        return self._pool.get_inner()

    # -- profile & trophies --------------------------------------------------

    async def get_profile(self, online_id: str) -> PSNUser:
        response = await self._call(
            endpoints.PROFILE, RequestParams(path={"online_id": online_id})
        )
        return response.profile

    async def get_trophy_titles(self, online_id: str, offset: int = 0) -> TrophyTitles:
        """Trophy lists of *online_id*.  *offset* must not exceed the list count."""
        return await self._call(
            endpoints.TROPHY_TITLES,
            RequestParams(query={"offset": offset, "comparedUser": online_id}),
        )

    async def get_trophy_set(self, online_id: str, np_communication_id: str) -> TrophySet:
        return await self._call(
            endpoints.TROPHY_SET,
            RequestParams(
                path={"np_communication_id": np_communication_id},
                query={"comparedUser": online_id},
            ),
        )

    # -- messaging -------------------------------------------------------------

    async def get_message_threads(self, offset: int = 0) -> MessageThreadsSummary:
        """Message threads of whichever account serves the request."""
        return await self._call(endpoints.MESSAGE_THREADS, RequestParams(query={"offset": offset}))

    async def get_message_thread(self, thread_id: str) -> MessageThread:
        return await self._call(endpoints.MESSAGE_THREAD, RequestParams(path={"thread_id": thread_id}))

    async def leave_message_thread(self, thread_id: str) -> None:
        await self._call(endpoints.LEAVE_MESSAGE_THREAD, RequestParams(path={"thread_id": thread_id}))

    async def send_message(
        self,
        online_id: str,
        text: str | None = None,
        image: bytes | None = None,
    ) -> MessageThreadResponse:
        """Open a thread with *online_id* and post *text* and/or a PNG *image* to it."""
        parts = message_parts(text, image)
        async with self._pool.lease() as handle:
            thread = await self._dispatcher.send(
                handle,
                endpoints.NEW_MESSAGE_THREAD,
                RequestParams(files=new_thread_parts(online_id, handle.manager.online_id)),
            )
            logger.info("Opened message thread %s with %s", thread.thread_id, online_id)
            return await self._dispatcher.send(
                handle,
                endpoints.SEND_MESSAGE,
                RequestParams(path={"thread_id": thread.thread_id}, files=parts),
            )

    # -- store -----------------------------------------------------------------

    async def search_store_items(
        self,
        name: str,
        *,
        country: str = "US",
        age: str = "21",
        language: str | None = None,
    ) -> StoreSearchResult:
        return await self._dispatcher.send(
            None,
            endpoints.STORE_SEARCH,
            RequestParams(
                path={
                    "language": language or self._dispatcher.language,
                    "country": country,
                    "age": age,
                    "name": name.replace(" ", "+"),
                }
            ),
        )

    async def get_store_item(
        self,
        game_id: str,
        *,
        country: str = "US",
        age: str = "21",
        language: str | None = None,
    ) -> StoreSearchResult:
        return await self._dispatcher.send(
            None,
            endpoints.STORE_ITEM,
            RequestParams(
                path={
                    "language": language or self._dispatcher.language,
                    "country": country,
                    "age": age,
                    "game_id": game_id,
                }
            ),
        )

    # -- lifecycle -------------------------------------------------------------

    async def aclose(self) -> None:
        self._pool.close()
        if self._proxy_pool is not None:
            await self._proxy_pool.aclose()
        if self._http_client is not None:
            await self._http_client.aclose()

    async def __aenter__(self) -> PSNClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # -- private helpers -------------------------------------------------------

    async def _call(self, endpoint: Endpoint, params: RequestParams) -> Any:
        async with self._pool.lease() as handle:
            return await self._dispatcher.send(handle, endpoint, params)
