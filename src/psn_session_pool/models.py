"""Typed response bodies for the endpoint catalog.

Only the fields callers commonly need are declared; anything else PSN sends is
ignored.  Community APIs use camelCase keys, the store API uses kebab-case.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _to_kebab(name: str) -> str:
    return name.replace("_", "-")


class PSNModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class StoreModel(BaseModel):
    model_config = ConfigDict(alias_generator=_to_kebab, populate_by_name=True, extra="ignore")


# -- profile -----------------------------------------------------------------

class EarnedTrophies(PSNModel):
    platinum: int = 0
    gold: int = 0
    silver: int = 0
    bronze: int = 0


class UserTrophySummary(PSNModel):
    level: int
    progress: int
    earned_trophies: EarnedTrophies


class PSNUser(PSNModel):
    online_id: str
    np_id: str = ""
    region: str = ""
    avatar_url: str = ""
    about_me: str = ""
    languages_used: list[str] = Field(default_factory=list)
    plus: int = 0
    trophy_summary: Optional[UserTrophySummary] = None


class ProfileResponse(PSNModel):
    profile: PSNUser


# -- trophies ------------------------------------------------------------------

class TitleDetail(PSNModel):
    progress: int
    earned_trophies: EarnedTrophies
    last_update_date: str


class TrophyTitle(PSNModel):
    np_communication_id: str
    trophy_title_name: str
    trophy_title_detail: str = ""
    trophy_title_icon_url: str = ""
    trophy_title_platfrom: str = ""
    has_trophy_groups: bool = False
    defined_trophies: EarnedTrophies
    compared_user: Optional[TitleDetail] = None


class TrophyTitles(PSNModel):
    total_results: int
    offset: int
    trophy_titles: list[TrophyTitle]


class TrophyUser(PSNModel):
    online_id: str
    earned: bool
    earned_date: Optional[str] = None


class Trophy(PSNModel):
    """A single trophy.  Hidden, unearned trophies come without name or detail."""

    trophy_id: int
    trophy_hidden: bool
    trophy_type: Optional[str] = None
    trophy_name: Optional[str] = None
    trophy_detail: Optional[str] = None
    trophy_icon_url: Optional[str] = None
    trophy_rare: int = 0
    trophy_earned_rate: str = ""
    compared_user: Optional[TrophyUser] = None


class TrophySet(PSNModel):
    trophies: list[Trophy]


# -- messaging -----------------------------------------------------------------

class MessageThreadNew(PSNModel):
    thread_id: str
    thread_modified_date: str = ""
    blocked_by_members: bool = False


class MessageThreadResponse(PSNModel):
    thread_id: str
    thread_modified_date: str = ""
    event_index: str = ""


class MessageThreadSummary(PSNModel):
    thread_id: str
    thread_type: int
    thread_modified_date: str


class MessageThreadsSummary(PSNModel):
    threads: list[MessageThreadSummary]
    start: int
    size: int
    total_size: int


class ThreadMember(PSNModel):
    account_id: str
    online_id: str


class MessageDetail(PSNModel):
    body: Optional[str] = None


class MessageEventDetail(PSNModel):
    event_index: str
    post_date: str
    event_category_code: int
    sender: ThreadMember
    attached_media_path: Optional[str] = None
    message_detail: MessageDetail


class ThreadEvent(PSNModel):
    message_event_detail: MessageEventDetail


class MessageThread(PSNModel):
    thread_id: str
    thread_type: int
    thread_modified_date: str
    thread_members: list[ThreadMember]
    thread_events: list[ThreadEvent] = Field(default_factory=list)
    results_count: int = 0
    latest_event_index: str = ""
    end_of_thread_event: bool = False


# -- store ---------------------------------------------------------------------

class PriceDisplayValue(StoreModel):
    display: str
    value: int


class PriceData(StoreModel):
    actual_price: PriceDisplayValue
    discount_percentage: int = 0
    is_plus: bool = False
    strikethrough_price: Optional[PriceDisplayValue] = None
    upsell_price: Optional[PriceDisplayValue] = None


class Price(StoreModel):
    non_plus_user: PriceData
    plus_user: PriceData


class Sku(StoreModel):
    id: str
    name: str
    is_preorder: bool = False
    playability_date: str = ""
    prices: Optional[Price] = None


class StarRating(StoreModel):
    score: Optional[float] = None
    total: Optional[int] = None


class StoreAttributes(StoreModel):
    name: str
    content_type: str = ""
    default_sku_id: str = ""
    game_content_type: str = ""
    genres: list[str] = Field(default_factory=list)
    long_description: str = ""
    platforms: list[str] = Field(default_factory=list)
    provider_name: str = ""
    release_date: str = ""
    skus: Optional[list[Sku]] = None
    star_rating: Optional[StarRating] = None
    thumbnail_url_base: str = ""
    top_category: str = ""


class StoreItem(StoreModel):
    id: str
    type: str
    attributes: StoreAttributes


class StoreSearchResult(StoreModel):
    included: list[StoreItem] = Field(default_factory=list)
