"""Content models returned by providers.

These mirror the JSON shapes exchanged with the sidecar control plane:
camelCase on the wire, snake_case in Python. Unknown keys are ignored so
providers may return richer payloads than Mosaic understands.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class TvType(str, Enum):
    """Kinds of content a provider can serve."""

    MOVIE = "Movie"
    ANIME_MOVIE = "AnimeMovie"
    TV_SERIES = "TvSeries"
    CARTOON = "Cartoon"
    ANIME = "Anime"
    OVA = "OVA"
    TORRENT = "Torrent"
    DOCUMENTARY = "Documentary"
    ASIAN_DRAMA = "AsianDrama"
    LIVE = "Live"
    NSFW = "NSFW"
    OTHERS = "Others"
    MUSIC = "Music"
    AUDIO_BOOK = "AudioBook"
    CUSTOM_MEDIA = "CustomMedia"
    AUDIO = "Audio"
    PODCAST = "Podcast"

    @property
    def is_movie(self) -> bool:
        return self in (TvType.ANIME_MOVIE, TvType.LIVE, TvType.MOVIE, TvType.TORRENT)

    @property
    def is_episode_based(self) -> bool:
        return self in (TvType.ANIME, TvType.ASIAN_DRAMA, TvType.CARTOON, TvType.TV_SERIES)


def _coerce_tv_type(v: Any) -> Any:
    if v is None or isinstance(v, TvType):
        return v
    try:
        return TvType(v)
    except ValueError:
        return TvType.OTHERS


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialize using camelCase keys, dropping unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SearchResult(_WireModel):
    """One hit from a provider search."""

    name: str
    url: str
    api_name: str = ""
    type: TvType | None = None
    poster_url: str | None = None
    year: int | None = None
    plot: str | None = None
    score: float | None = Field(default=None, validation_alias=AliasChoices("score", "rating"))
    quality: str | None = None
    id: int | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, v: Any) -> Any:
        return _coerce_tv_type(v)


class Episode(_WireModel):
    name: str = ""
    url: str = Field(..., validation_alias=AliasChoices("url", "data"))
    season: int | None = None
    episode: int | None = None
    description: str | None = None
    poster_url: str | None = None
    run_time: int | None = None


class Actor(_WireModel):
    name: str
    image_url: str | None = Field(default=None, validation_alias=AliasChoices("imageUrl", "image"))
    role: str | None = None


class DetailResult(_WireModel):
    """Full detail for one piece of content, returned by ``load``."""

    name: str
    url: str
    api_name: str = ""
    type: TvType = TvType.OTHERS
    poster_url: str | None = None
    background_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("backgroundUrl", "backgroundPosterUrl"),
    )
    year: int | None = None
    plot: str | None = None
    score: float | None = Field(default=None, validation_alias=AliasChoices("score", "rating"))
    tags: list[str] = Field(default_factory=list, validation_alias=AliasChoices("tags", "genres"))
    duration: int | None = None
    episodes: list[Episode] = Field(default_factory=list)
    actors: list[Actor] = Field(default_factory=list)
    recommendations: list[SearchResult] = Field(default_factory=list)
    coming_soon: bool = False
    sync_data: dict[str, str] = Field(default_factory=dict)

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, v: Any) -> Any:
        return TvType.OTHERS if v is None else _coerce_tv_type(v)

    @field_validator("tags", "episodes", "actors", "recommendations", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v
