"""Endpoint descriptors and the catalog of PSN calls this package makes.

An ``Endpoint`` is a plain immutable value: which HTTP method to use, where
the call goes, whether it needs a bearer token, which query parameters are
always sent, and what the response decodes into.  Everything that varies per
call travels in ``RequestParams``; the dispatcher combines the two.
"""

from __future__ import annotations

import dataclasses
import enum
from typing import Any, Mapping
from urllib.parse import quote

from pydantic import BaseModel

from psn_session_pool import models

COMMUNITY_HOST = "https://{region}-{service}.np.community.playstation.net"
STORE_HOST = "https://store.playstation.com"


class AuthScope(enum.Enum):
    AUTHENTICATED = "authenticated"
    PUBLIC = "public"


@dataclasses.dataclass(frozen=True)
class RequestParams:
    """Per-call values for one request.

    Attributes:
        path:  Values substituted into the endpoint's path template.
        query: Extra query parameters, merged over the endpoint defaults.
        data:  Form fields for the request body.
        files: Multipart parts, in the ``files=`` format httpx accepts.
    """

    path: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    query: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    data: Mapping[str, Any] | None = None
    files: Any = None


@dataclasses.dataclass(frozen=True)
class Endpoint:
    name: str
    method: str
    path: str
    service: str | None = None
    auth: AuthScope = AuthScope.AUTHENTICATED
    default_query: tuple[tuple[str, str], ...] = ()
    localized: bool = False
    expects_body: bool = True
    model: type[BaseModel] | None = None

    @property
    def requires_auth(self) -> bool:
        return self.auth is AuthScope.AUTHENTICATED

    def url(self, region: str, path_params: Mapping[str, Any]) -> str:
        """Render the absolute URL for *region* with *path_params* filled in.

        Raises ``ValueError`` when a placeholder has no value.
        """
        if self.service is None:
            host = STORE_HOST
        else:
            host = COMMUNITY_HOST.format(region=region, service=self.service)
        encoded = {key: quote(str(value), safe="+") for key, value in path_params.items()}
        try:
            return host + self.path.format(**encoded)
        except KeyError as exc:
            raise ValueError(f"Endpoint '{self.name}' needs path parameter {exc}") from exc

    def query(self, language: str, extra: Mapping[str, Any]) -> dict[str, Any]:
        params: dict[str, Any] = dict(self.default_query)
        if self.localized:
            params["npLanguage"] = language
        params.update(extra)
        return params


PROFILE = Endpoint(
    name="profile",
    method="GET",
    service="prof",
    path="/userProfile/v1/users/{online_id}/profile",
    default_query=(
        ("fields", "@default,relation,requestMessageFlag,presence,@personalDetail,trophySummary"),
    ),
    model=models.ProfileResponse,
)

TROPHY_TITLES = Endpoint(
    name="trophy_titles",
    method="GET",
    service="tpy",
    path="/trophy/v1/trophyTitles",
    default_query=(
        ("fields", "@default"),
        ("iconSize", "m"),
        ("platform", "PS3,PSVITA,PS4"),
        ("limit", "100"),
    ),
    localized=True,
    model=models.TrophyTitles,
)

TROPHY_SET = Endpoint(
    name="trophy_set",
    method="GET",
    service="tpy",
    path="/trophy/v1/trophyTitles/{np_communication_id}/trophyGroups/all/trophies",
    default_query=(("fields", "@default,trophyRare,trophyEarnedRate"),),
    localized=True,
    model=models.TrophySet,
)

MESSAGE_THREADS = Endpoint(
    name="message_threads",
    method="GET",
    service="gmsg",
    path="/groupMessaging/v1/threads",
    model=models.MessageThreadsSummary,
)

MESSAGE_THREAD = Endpoint(
    name="message_thread",
    method="GET",
    service="gmsg",
    path="/groupMessaging/v1/threads/{thread_id}",
    default_query=(
        (
            "fields",
            "threadMembers,threadNameDetail,threadThumbnailDetail,threadProperty,"
            "latestTakedownEventDetail,newArrivalEventDetail,threadEvents",
        ),
        ("count", "100"),
    ),
    model=models.MessageThread,
)

NEW_MESSAGE_THREAD = Endpoint(
    name="new_message_thread",
    method="POST",
    service="gmsg",
    path="/groupMessaging/v1/threads/",
    model=models.MessageThreadNew,
)

SEND_MESSAGE = Endpoint(
    name="send_message",
    method="POST",
    service="gmsg",
    path="/groupMessaging/v1/threads/{thread_id}/messages",
    model=models.MessageThreadResponse,
)

LEAVE_MESSAGE_THREAD = Endpoint(
    name="leave_message_thread",
    method="DELETE",
    service="gmsg",
    path="/groupMessaging/v1/threads/{thread_id}/users/me",
    expects_body=False,
)

STORE_SEARCH = Endpoint(
    name="store_search",
    method="GET",
    path="/valkyrie-api/{language}/{country}/{age}/tumbler-search/{name}",
    auth=AuthScope.PUBLIC,
    default_query=(("suggested_size", "999"), ("mode", "game")),
    model=models.StoreSearchResult,
)

STORE_ITEM = Endpoint(
    name="store_item",
    method="GET",
    path="/valkyrie-api/{language}/{country}/{age}/resolve/{game_id}",
    auth=AuthScope.PUBLIC,
    model=models.StoreSearchResult,
)
