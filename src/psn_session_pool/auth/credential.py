"""Credential snapshot held by a ``SessionManager``.

Pattern: Immutable Credential Snapshot
---------------------------------------
A ``Credential`` is never edited in place.  Every successful token exchange
produces a new snapshot which replaces the previous one inside its owning
``SessionManager``.  This keeps the expiry invariant simple: expiry instants
only ever change because a new snapshot arrived from upstream, never because
someone decremented a field.

PSN invalidates a refresh token the moment it is exchanged.  Once a manager
swaps in a new snapshot, the old snapshot's ``refresh_token`` is dead and must
not be sent again; nothing outside the manager should hold on to it.
"""

from __future__ import annotations

import dataclasses
import datetime
import enum
import uuid as uuid_lib
from typing import Callable

Clock = Callable[[], datetime.datetime]


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class TokenState(enum.Enum):
    """Lifecycle of a session's tokens."""

    UNAUTHENTICATED = "unauthenticated"
    VALID = "valid"
    EXPIRED = "expired"
    REFRESHING = "refreshing"
    FAILED = "failed"


@dataclasses.dataclass(frozen=True)
class AccountSeed:
    """What a caller supplies to bootstrap one account.

    Attributes:
        npsso:         Long-lived seed exchanged for the first token pair.
        refresh_token: Optional refresh token from a previous run; used when
                       no npsso is given or the npsso is rejected.
        online_id:     The account's own PSN online id.  Only needed to open
                       new message threads.
    """

    npsso: str | None = None
    refresh_token: str | None = None
    online_id: str = ""

    def __post_init__(self) -> None:
        if not self.npsso and not self.refresh_token:
            raise ValueError("An account seed needs an npsso or a refresh token")

    @property
    def key(self) -> str:
        """Identifies the account: its online id when known, else its seed token."""
        return self.online_id or self.npsso or self.refresh_token or ""

    @classmethod
    def coerce(cls, seed: str | AccountSeed) -> AccountSeed:
        if isinstance(seed, AccountSeed):
            return seed
        return cls(npsso=seed)


@dataclasses.dataclass(frozen=True)
class TokenGrant:
    """A token pair as returned by the PSN OAuth endpoint."""

    access_token: str
    refresh_token: str
    expires_in: int
    refresh_expires_in: int


@dataclasses.dataclass(frozen=True)
class Credential:
    """Immutable snapshot of one account's tokens.

    Attributes:
        npsso:              Seed the account was bootstrapped from, if any.
        uuid:               Local identifier for the account.
        access_token:       Bearer token for API calls, ``None`` before the
                            first exchange.
        access_expires_at:  UTC instant after which ``access_token`` is stale.
        refresh_token:      Current refresh token, ``None`` before the first
                            exchange unless seeded.
        refresh_expires_at: UTC instant after which ``refresh_token`` is stale.
    """

    npsso: str | None
    uuid: str
    access_token: str | None = None
    access_expires_at: datetime.datetime | None = None
    refresh_token: str | None = dataclasses.field(default=None, repr=False)
    refresh_expires_at: datetime.datetime | None = None

    @classmethod
    def from_seed(cls, seed: AccountSeed) -> Credential:
        return cls(
            npsso=seed.npsso,
            uuid=str(uuid_lib.uuid4()),
            refresh_token=seed.refresh_token,
        )

    @property
    def has_access_token(self) -> bool:
        return self.access_token is not None and self.access_expires_at is not None

    def access_valid_at(self, now: datetime.datetime) -> bool:
        return self.has_access_token and now < self.access_expires_at

    def refresh_valid_at(self, now: datetime.datetime) -> bool:
        if not self.refresh_token:
            return False
        # A seeded refresh token comes without a known expiry; let upstream judge it.
        return self.refresh_expires_at is None or now < self.refresh_expires_at

    def with_grant(
        self,
        grant: TokenGrant,
        issued_at: datetime.datetime,
        refresh_margin: float = 0,
    ) -> Credential:
        """Return a new snapshot carrying *grant*'s tokens."""
        access_ttl = max(grant.expires_in - refresh_margin, 0)
        return dataclasses.replace(
            self,
            access_token=grant.access_token,
            access_expires_at=issued_at + datetime.timedelta(seconds=access_ttl),
            refresh_token=grant.refresh_token,
            refresh_expires_at=issued_at + datetime.timedelta(seconds=grant.refresh_expires_in),
        )

    def __str__(self) -> str:
        return f"Credential(uuid={self.uuid}, access_expires_at={self.access_expires_at})"
