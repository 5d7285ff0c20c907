"""Rotation of proxied HTTP clients.

PSN's rate limiter keys on the caller's address as well as the account, so
large pools of accounts are only useful when requests also leave through
different egress points.  ``ProxyPool`` keeps one ``httpx.AsyncClient`` per
configured proxy and hands them out round-robin.  Unlike sessions, a client
can serve many requests at once, so there is no exclusive lease here.
"""

from __future__ import annotations

import itertools
import logging
from typing import Iterable, Sequence

import httpx

from psn_session_pool.config.settings import ProxySettings

logger = logging.getLogger(__name__)


def proxy_url(proxy: ProxySettings) -> httpx.URL:
    """Build the proxy URL, embedding basic-auth credentials when configured."""
    url = httpx.URL(proxy.url)
    if proxy.username:
        url = url.copy_with(username=proxy.username, password=proxy.password or "")
    return url


class ProxyPool:
    """Round-robin over one HTTP client per proxy."""

    def __init__(self, clients: Sequence[httpx.AsyncClient]) -> None:
        if not clients:
            raise ValueError("A proxy pool needs at least one client")
        self._clients = list(clients)
        self._cycle = itertools.cycle(self._clients)

    @classmethod
    def from_settings(cls, proxies: Iterable[ProxySettings], *, timeout: float) -> ProxyPool:
        clients = []
        for proxy in proxies:
            clients.append(httpx.AsyncClient(proxy=proxy_url(proxy), timeout=timeout))
            logger.info("Proxy client configured for %s", proxy.url)
        return cls(clients)

    def __len__(self) -> int:
        return len(self._clients)

    def next_client(self) -> httpx.AsyncClient:
        return next(self._cycle)

    def add(self, client: httpx.AsyncClient) -> None:
        """Add a client on the fly; the rotation restarts from the first client."""
        self._clients.append(client)
        self._cycle = itertools.cycle(self._clients)

    async def aclose(self) -> None:
        for client in self._clients:
            await client.aclose()
