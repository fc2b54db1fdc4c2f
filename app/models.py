"""Pydantic models describing API and TMDB payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .db_models import MovieRecord, ShowRecord

MediaType = Literal["movie", "tv"]


def _genre_names(raw: object) -> list[str]:
    if not isinstance(raw, list):
        return []
    names: list[str] = []
    for entry in raw:
        if isinstance(entry, dict) and entry.get("name"):
            names.append(str(entry["name"]))
        elif isinstance(entry, str) and entry:
            names.append(entry)
    return names


def _as_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return None


class MovieDetails(BaseModel):
    """Movie metadata as stored locally and returned by the detail route."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    overview: str | None = None
    genres: list[str] = Field(default_factory=list)
    release_date: str | None = None
    poster_path: str | None = None
    runtime: int | None = None
    status: str | None = None
    tagline: str = ""

    @classmethod
    def from_tmdb(cls, data: dict[str, Any]) -> "MovieDetails":
        return cls(
            id=int(data["id"]),
            title=str(data.get("title") or data.get("original_title") or ""),
            overview=data.get("overview"),
            genres=_genre_names(data.get("genres")),
            release_date=data.get("release_date") or None,
            poster_path=data.get("poster_path"),
            runtime=_as_int(data.get("runtime")),
            status=data.get("status"),
            tagline=data.get("tagline") or "",
        )

    @classmethod
    def from_record(cls, record: MovieRecord) -> "MovieDetails":
        return cls.model_validate(record)

    def to_record(self) -> MovieRecord:
        return MovieRecord(**self.model_dump())


class Episode(BaseModel):
    episode_number: int
    name: str = ""
    overview: str | None = None
    runtime: int | None = None
    watched: bool = False


class Season(BaseModel):
    season_number: int
    name: str = ""
    overview: str | None = None
    episode_count: int = 0
    air_date: str | None = None
    episodes: list[Episode] = Field(default_factory=list)

    @classmethod
    def from_tmdb(
        cls,
        summary: dict[str, Any],
        detail: dict[str, Any] | None,
        *,
        fallback_runtime: int | None = None,
    ) -> "Season":
        """Merge a season summary from the show payload with its detail payload."""

        raw_episodes = (detail or {}).get("episodes") or []
        episodes: list[Episode] = []
        for entry in raw_episodes:
            if not isinstance(entry, dict):
                continue
            number = _as_int(entry.get("episode_number"))
            if number is None:
                continue
            runtime = _as_int(entry.get("runtime"))
            episodes.append(
                Episode(
                    episode_number=number,
                    name=str(entry.get("name") or ""),
                    overview=entry.get("overview"),
                    runtime=runtime if runtime is not None else fallback_runtime,
                )
            )
        episodes.sort(key=lambda episode: episode.episode_number)
        episode_count = _as_int(summary.get("episode_count"))
        return cls(
            season_number=int(summary["season_number"]),
            name=str(summary.get("name") or ""),
            overview=summary.get("overview"),
            episode_count=episode_count if episode_count is not None else len(episodes),
            air_date=summary.get("air_date") or None,
            episodes=episodes,
        )

    def find_episode(self, episode_number: int) -> Episode | None:
        for episode in self.episodes:
            if episode.episode_number == episode_number:
                return episode
        return None


class ShowDetails(BaseModel):
    """Show metadata with nested seasons and episodes."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    overview: str | None = None
    genres: list[str] = Field(default_factory=list)
    number_of_seasons: int = 0
    number_of_episodes: int = 0
    poster_path: str | None = None
    status: str | None = None
    tagline: str = ""
    seasons: list[Season] = Field(default_factory=list)

    @classmethod
    def from_tmdb(
        cls,
        data: dict[str, Any],
        season_details: dict[int, dict[str, Any]],
    ) -> "ShowDetails":
        run_times = data.get("episode_run_time")
        fallback_runtime = None
        if isinstance(run_times, list) and run_times:
            fallback_runtime = _as_int(run_times[0])

        seasons: list[Season] = []
        for summary in data.get("seasons") or []:
            if not isinstance(summary, dict):
                continue
            number = _as_int(summary.get("season_number"))
            if number is None:
                continue
            seasons.append(
                Season.from_tmdb(
                    summary,
                    season_details.get(number),
                    fallback_runtime=fallback_runtime,
                )
            )
        seasons.sort(key=lambda season: season.season_number)

        return cls(
            id=int(data["id"]),
            name=str(data.get("name") or data.get("original_name") or ""),
            overview=data.get("overview"),
            genres=_genre_names(data.get("genres")),
            number_of_seasons=_as_int(data.get("number_of_seasons")) or len(seasons),
            number_of_episodes=_as_int(data.get("number_of_episodes")) or 0,
            poster_path=data.get("poster_path"),
            status=data.get("status"),
            tagline=data.get("tagline") or "",
            seasons=seasons,
        )

    @classmethod
    def from_record(cls, record: ShowRecord) -> "ShowDetails":
        return cls.model_validate(record)

    def to_record(self) -> ShowRecord:
        payload = self.model_dump(exclude={"seasons"})
        payload["seasons"] = [
            season.model_dump(exclude={"episodes": {"__all__": {"watched"}}})
            for season in self.seasons
        ]
        return ShowRecord(**payload)

    def find_season(self, season_number: int) -> Season | None:
        for season in self.seasons:
            if season.season_number == season_number:
                return season
        return None

    def episode_runtimes(self) -> dict[tuple[int, int], int]:
        """Map ``(season, episode)`` to runtime minutes for known runtimes."""

        runtimes: dict[tuple[int, int], int] = {}
        for season in self.seasons:
            for episode in season.episodes:
                if episode.runtime is not None:
                    runtimes[(season.season_number, episode.episode_number)] = (
                        episode.runtime
                    )
        return runtimes


class SearchResult(BaseModel):
    id: int
    title: str | None = None
    name: str | None = None
    overview: str | None = None
    poster_path: str | None = None
    release_date: str | None = None
    first_air_date: str | None = None
    vote_average: float = 0.0
    media_type: MediaType

    @classmethod
    def from_tmdb(cls, data: dict[str, Any], media_type: MediaType) -> "SearchResult":
        vote = data.get("vote_average")
        return cls(
            id=int(data["id"]),
            title=data.get("title"),
            name=data.get("name"),
            overview=data.get("overview"),
            poster_path=data.get("poster_path"),
            release_date=data.get("release_date"),
            first_air_date=data.get("first_air_date"),
            vote_average=float(vote) if isinstance(vote, (int, float)) else 0.0,
            media_type=media_type,
        )


class SearchPage(BaseModel):
    results: list[SearchResult] = Field(default_factory=list)
    total_results: int = 0


class UserSummary(BaseModel):
    username: str
    id: str


class WatchedMovieEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    movie_id: int
    watched_at: datetime


class WatchedEpisodeEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    show_id: int
    season_number: int
    episode_number: int
    watched_at: datetime


class RecentMovie(BaseModel):
    id: int
    title: str | None = None
    poster_path: str | None = None
    watched_at: datetime
    runtime: int | None = None


class RecentEpisode(BaseModel):
    show_id: int
    show_name: str | None = None
    show_poster_path: str | None = None
    season_number: int
    episode_number: int
    episode_name: str | None = None
    watched_at: datetime


class UserStats(BaseModel):
    """Aggregated viewing statistics rendered on the home page."""

    model_config = ConfigDict(populate_by_name=True)

    movies_watched: int = Field(default=0, alias="moviesWatched")
    shows_watched: int = Field(default=0, alias="showsWatched")
    episodes_watched: int = Field(default=0, alias="episodesWatched")
    total_movie_time: int = Field(default=0, alias="totalMovieTime")
    total_show_time: int = Field(default=0, alias="totalShowTime")
    recent_movies: list[RecentMovie] = Field(
        default_factory=list, alias="recentMovies"
    )
    recent_episodes: list[RecentEpisode] = Field(
        default_factory=list, alias="recentEpisodes"
    )
