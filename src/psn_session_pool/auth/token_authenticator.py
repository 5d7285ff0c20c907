"""Token exchanges against the PSN OAuth endpoint.

Pattern: Authenticator as Token Broker
---------------------------------------
PSN hands out credentials through a single OAuth endpoint that supports two
grants:

  1. ``sso_cookie``: the long-lived npsso seed (sent as the ``npsso`` cookie)
     is exchanged for an access token plus a refresh token.
  2. ``refresh_token``: the current refresh token is exchanged for a new
     access token *and* a new refresh token.  Upstream invalidates the old
     refresh token as a side effect.

The authenticator is stateless.  It performs one exchange per call and hands
the resulting ``TokenGrant`` back; deciding *when* to exchange and what to do
with the result belongs to the ``SessionManager``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from psn_session_pool.auth.credential import TokenGrant
from psn_session_pool.errors import (
    AuthenticationFailed,
    NetworkError,
    PSNError,
    TokenRefreshFailed,
    UpstreamError,
)

logger = logging.getLogger(__name__)

OAUTH_TOKEN_URL = "https://auth.api.sonyentertainmentnetwork.com/2.0/oauth/token"

CLIENT_ID = "7c01ce37-cb6b-4938-9c1b-9e36fd5477fa"
CLIENT_SECRET = "GNumO5QMsagNcO2q"
DUID = (
    "00000007000801a8000000000000008241fdf6ab09ba863a20202020476f6f676c65"
    "3a416e64726f696420534400000000000000000000000000000000"
)
SCOPE = (
    "kamaji:get_players_met kamaji:get_account_hash "
    "kamaji:activity_feed_submit_feed_story "
    "kamaji:activity_feed_internal_feed_submit_story "
    "kamaji:activity_feed_get_news_feed kamaji:communities kamaji:game_list "
    "kamaji:ugc:distributor oauth:manage_device_usercodes psn:sceapp "
    "user:account.profile.get user:account.attributes.validate "
    "user:account.settings.privacy.get kamaji:activity_feed_set_feed_privacy "
    "kamaji:satchel kamaji:satchel_delete user:account.profile.update "
    "kamaji:url_preview"
)

# PSN omits lifetimes on some responses; these match what it normally reports.
DEFAULT_ACCESS_TTL = 3600
DEFAULT_REFRESH_TTL = 60 * 60 * 24 * 60


def mask_token(token: str | None) -> str:
    """Shorten *token* for log output."""
    if not token:
        return "<none>"
    return f"{token[:6]}..."


class TokenAuthenticator:
    """Performs the npsso and refresh-token exchanges over *client*."""

    def __init__(self, client: httpx.AsyncClient, token_url: str = OAUTH_TOKEN_URL) -> None:
        self._client = client
        self._token_url = token_url

    async def exchange_npsso(self, npsso: str) -> TokenGrant:
        """Exchange an npsso seed for a fresh access/refresh token pair.

        Raises ``AuthenticationFailed`` when PSN rejects the seed (4xx),
        ``UpstreamError`` when PSN fails to answer (5xx) and ``NetworkError``
        when the endpoint cannot be reached.
        """
        form = {
            "client_id": CLIENT_ID,
            "client_secret": CLIENT_SECRET,
            "scope": SCOPE,
            "grant_type": "sso_cookie",
        }
        grant = await self._request_grant(
            form,
            headers={"Cookie": f"npsso={npsso}"},
            error_cls=AuthenticationFailed,
        )
        logger.info("Exchanged npsso %s for a new token pair", mask_token(npsso))
        return grant

    async def exchange_refresh_token(self, refresh_token: str) -> TokenGrant:
        """Exchange *refresh_token* for a new access token and refresh token.

        *refresh_token* is dead upstream once this call reaches PSN, whatever
        the outcome.  Raises ``TokenRefreshFailed`` when it is rejected,
        ``UpstreamError`` on a 5xx and ``NetworkError`` when the endpoint
        cannot be reached.
        """
        form = {
            "app_context": "inapp_ios",
            "client_id": CLIENT_ID,
            "client_secret": CLIENT_SECRET,
            "duid": DUID,
            "scope": SCOPE,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        grant = await self._request_grant(form, headers={}, error_cls=TokenRefreshFailed)
        logger.info(
            "Exchanged refresh token %s for %s",
            mask_token(refresh_token),
            mask_token(grant.refresh_token),
        )
        return grant

    # -- private helpers -----------------------------------------------------

    async def _request_grant(
        self,
        form: dict[str, str],
        headers: dict[str, str],
        error_cls: type[PSNError],
    ) -> TokenGrant:
        try:
            response = await self._client.post(self._token_url, data=form, headers=headers)
        except httpx.TransportError as exc:
            raise NetworkError(f"Token endpoint unreachable: {exc}") from exc

        if response.is_server_error:
            raise UpstreamError(response.status_code, message=self._error_message(response))
        if not response.is_success:
            raise error_cls(
                f"Token endpoint responded with HTTP {response.status_code}: "
                f"{self._error_message(response)}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise error_cls(f"Token endpoint returned invalid JSON: {exc}") from exc
        return self._parse_grant(payload, error_cls)

    @staticmethod
    def _parse_grant(payload: Any, error_cls: type[PSNError]) -> TokenGrant:
        if not isinstance(payload, dict):
            raise error_cls("Token endpoint returned an unexpected payload")
        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        if not access_token or not refresh_token:
            raise error_cls("Token endpoint response is missing access_token or refresh_token")
        try:
            expires_in = int(payload.get("expires_in", DEFAULT_ACCESS_TTL))
            refresh_expires_in = int(payload.get("refresh_token_expires_in", DEFAULT_REFRESH_TTL))
        except (TypeError, ValueError) as exc:
            raise error_cls(f"Token endpoint returned a malformed lifetime: {exc}") from exc
        return TokenGrant(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            refresh_expires_in=refresh_expires_in,
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(body, dict):
            if "error_description" in body:
                return str(body["error_description"])
            error = body.get("error")
            if isinstance(error, dict):
                return str(error.get("message", error))
            if error:
                return str(error)
        return str(body)[:200]
