"""Per-account token lifecycle.

Pattern: Lazy Session State Machine
------------------------------------
A ``SessionManager`` owns exactly one ``Credential`` and moves it through

    UNAUTHENTICATED -> VALID -> EXPIRED -> REFRESHING -> VALID | FAILED

Nothing happens on construction.  The first ``ensure_valid()`` exchanges the
npsso seed for a token pair; later calls only compare the access token's
expiry against the clock and return immediately while it is still in the
future.  Once it lapses the refresh token is exchanged for a new pair.

A manager is only ever used by the caller that holds its pool lease, so at
most one exchange can be in flight per manager and no locking is needed here.

``FAILED`` is sticky.  After an authentication or refresh failure the manager
re-raises the same kind of error without touching the network, because PSN
has already burnt the refresh token or rejected the seed.  A refresh that is
cut off (network failure, server error, task cancellation) fails the session
too: PSN may have consumed the old refresh token before the reply was lost.
The only way out is ``reauthenticate()`` with a fresh npsso.

An npsso exchange that never got a verdict (network failure or a 5xx from
PSN) leaves the session ``UNAUTHENTICATED`` so a later call can retry it.
"""

from __future__ import annotations

import asyncio
import dataclasses
import datetime
import logging

from psn_session_pool.auth.credential import (
    AccountSeed,
    Clock,
    Credential,
    TokenGrant,
    TokenState,
    utc_now,
)
from psn_session_pool.auth.token_authenticator import TokenAuthenticator, mask_token
from psn_session_pool.errors import (
    AuthenticationFailed,
    NetworkError,
    PSNError,
    TokenRefreshFailed,
    UpstreamError,
)

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class TokenSnapshot:
    """Read-only view of one manager, as returned by ``SessionPool.get_inner()``.

    ``refresh_token`` is ``None`` while a refresh is in flight or after the
    manager failed, since the last known value may already be dead upstream.
    """

    uuid: str
    online_id: str
    state: TokenState
    refresh_token: str | None = dataclasses.field(repr=False)
    refresh_expires_at: datetime.datetime | None


class SessionManager:
    """Keeps one account's access token valid."""

    def __init__(
        self,
        seed: str | AccountSeed,
        authenticator: TokenAuthenticator,
        *,
        clock: Clock = utc_now,
        refresh_margin: float = 0,
    ) -> None:
        self._seed = AccountSeed.coerce(seed)
        self._authenticator = authenticator
        self._clock = clock
        self._refresh_margin = refresh_margin
        self._credential = Credential.from_seed(self._seed)
        self._refreshing = False
        self._failure: PSNError | None = None

    # -- accessors -----------------------------------------------------------

    @property
    def uuid(self) -> str:
        return self._credential.uuid

    @property
    def online_id(self) -> str:
        return self._seed.online_id

    @property
    def account_key(self) -> str:
        return self._seed.key

    @property
    def credential(self) -> Credential:
        return self._credential

    @property
    def state(self) -> TokenState:
        if self._failure is not None:
            return TokenState.FAILED
        if self._refreshing:
            return TokenState.REFRESHING
        if not self._credential.has_access_token:
            return TokenState.UNAUTHENTICATED
        if self._credential.access_valid_at(self._clock()):
            return TokenState.VALID
        return TokenState.EXPIRED

    @property
    def access_token(self) -> str | None:
        return self._credential.access_token

    @property
    def refresh_token(self) -> str | None:
        """The current refresh token, or ``None`` if it may already be stale."""
        if self.state in (TokenState.REFRESHING, TokenState.FAILED):
            return None
        return self._credential.refresh_token

    def snapshot(self) -> TokenSnapshot:
        return TokenSnapshot(
            uuid=self.uuid,
            online_id=self.online_id,
            state=self.state,
            refresh_token=self.refresh_token,
            refresh_expires_at=self._credential.refresh_expires_at,
        )

    # -- token lifecycle -----------------------------------------------------

    async def ensure_valid(self) -> str:
        """Return a usable access token, authenticating or refreshing first if needed."""
        self._raise_if_failed()
        if not self._credential.has_access_token:
            await self._authenticate()
        elif not self._credential.access_valid_at(self._clock()):
            logger.info("Access token for session %s expired; refreshing", self.uuid)
            await self._refresh()
        return self._credential.access_token

    async def force_refresh(self) -> str:
        """Exchange the refresh token now, regardless of the access token's expiry."""
        self._raise_if_failed()
        if not self._credential.has_access_token and not self._credential.refresh_token:
            await self._authenticate()
        else:
            await self._refresh()
        return self._credential.access_token

    async def reauthenticate(self, npsso: str) -> str:
        """Start over from a fresh npsso seed, clearing any failure."""
        self._seed = dataclasses.replace(self._seed, npsso=npsso, refresh_token=None)
        self._credential = Credential(npsso=npsso, uuid=self._credential.uuid)
        self._failure = None
        logger.info("Session %s re-authenticating from a new npsso", self.uuid)
        await self._authenticate()
        return self._credential.access_token

    # -- private helpers -----------------------------------------------------

    async def _authenticate(self) -> None:
        npsso = self._seed.npsso
        if not npsso:
            await self._refresh()
            return

        issued_at = self._clock()
        try:
            grant = await self._authenticator.exchange_npsso(npsso)
        except AuthenticationFailed as exc:
            if not self._credential.refresh_token:
                self._fail(exc)
                raise
            logger.warning(
                "npsso rejected for session %s; falling back to the seeded refresh token",
                self.uuid,
            )
            await self._refresh()
            return
        # NetworkError and UpstreamError propagate; the session stays UNAUTHENTICATED.
        self._install(grant, issued_at)
        logger.info("Session %s authenticated", self.uuid)

    async def _refresh(self) -> None:
        issued_at = self._clock()
        refresh_token = self._credential.refresh_token
        if not self._credential.refresh_valid_at(issued_at):
            error = TokenRefreshFailed(f"Refresh token for session {self.uuid} has expired")
            self._fail(error)
            raise error

        self._refreshing = True
        try:
            grant = await self._authenticator.exchange_refresh_token(refresh_token)
        except TokenRefreshFailed as exc:
            self._fail(exc)
            raise
        except (NetworkError, UpstreamError) as exc:
            # The old refresh token may already be consumed upstream.
            error = TokenRefreshFailed(f"Refresh for session {self.uuid} did not complete: {exc}")
            self._fail(error)
            raise error from exc
        except asyncio.CancelledError:
            self._fail(
                TokenRefreshFailed(f"Refresh for session {self.uuid} was cancelled in flight")
            )
            raise
        finally:
            self._refreshing = False

        self._install(grant, issued_at)
        logger.info(
            "Session %s refreshed; refresh token rotated from %s",
            self.uuid,
            mask_token(refresh_token),
        )

    def _install(self, grant: TokenGrant, issued_at: datetime.datetime) -> None:
        self._credential = self._credential.with_grant(grant, issued_at, self._refresh_margin)

    def _fail(self, error: PSNError) -> None:
        self._failure = error
        logger.warning("Session %s entered failed state: %s", self.uuid, error)

    def _raise_if_failed(self) -> None:
        if self._failure is None:
            return
        error_cls = type(self._failure)
        raise error_cls(
            f"Session {self.uuid} is in failed state: {self._failure}"
        ) from self._failure

    def __repr__(self) -> str:
        return f"SessionManager(uuid={self.uuid}, state={self.state.value})"
