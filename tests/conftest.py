"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import httpx
import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from app.config import Settings  # noqa: E402
from app.services.tmdb import TMDBClient  # noqa: E402

TMDB_BASE_URL = "https://tmdb.example.com/3"


class FakeTMDB:
    """In-memory stand-in for the TMDB endpoints the service calls."""

    def __init__(self) -> None:
        self.movies: dict[int, dict[str, Any]] = {}
        self.shows: dict[int, dict[str, Any]] = {}
        self.seasons: dict[tuple[int, int], dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None

    def add_movie(self, movie_id: int, title: str, runtime: int | None = 90, **extra: Any) -> None:
        payload: dict[str, Any] = {
            "id": movie_id,
            "title": title,
            "overview": f"{title} overview",
            "genres": [{"id": 18, "name": "Drama"}],
            "release_date": "1999-10-15",
            "poster_path": f"/{movie_id}.jpg",
            "runtime": runtime,
            "status": "Released",
            "tagline": None,
            "vote_average": 8.4,
        }
        payload.update(extra)
        self.movies[movie_id] = payload

    def add_show(
        self,
        show_id: int,
        name: str,
        seasons: dict[int, list[tuple[int, int | None]]],
        *,
        episode_run_time: list[int] | None = None,
    ) -> None:
        """Register a show; ``seasons`` maps numbers to ``(episode, runtime)`` pairs."""

        self.shows[show_id] = {
            "id": show_id,
            "name": name,
            "overview": f"{name} overview",
            "genres": [{"id": 10765, "name": "Sci-Fi & Fantasy"}],
            "number_of_seasons": len(seasons),
            "number_of_episodes": sum(len(episodes) for episodes in seasons.values()),
            "poster_path": f"/show-{show_id}.jpg",
            "status": "Ended",
            "tagline": "",
            "episode_run_time": episode_run_time or [],
            "seasons": [
                {
                    "season_number": number,
                    "name": f"Season {number}",
                    "overview": "",
                    "episode_count": len(episodes),
                    "air_date": "2010-01-01",
                }
                for number, episodes in seasons.items()
            ],
        }
        for number, episodes in seasons.items():
            self.seasons[(show_id, number)] = {
                "season_number": number,
                "episodes": [
                    {
                        "episode_number": episode,
                        "name": f"Episode {episode}",
                        "overview": "",
                        "runtime": runtime,
                    }
                    for episode, runtime in episodes
                ],
            }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"status_message": "failure"})

        parts = [part for part in request.url.path.split("/") if part][1:]
        not_found = httpx.Response(404, json={"status_message": "not found"})

        if parts[:1] == ["search"]:
            query = request.url.params.get("query", "").lower()
            source = self.movies if parts[1] == "movie" else self.shows
            key = "title" if parts[1] == "movie" else "name"
            results = [
                entry for entry in source.values() if query in entry[key].lower()
            ]
            return httpx.Response(
                200, json={"page": 1, "results": results, "total_results": len(results)}
            )
        if len(parts) == 2 and parts[0] == "movie":
            movie = self.movies.get(int(parts[1]))
            return httpx.Response(200, json=movie) if movie else not_found
        if len(parts) == 2 and parts[0] == "tv":
            show = self.shows.get(int(parts[1]))
            return httpx.Response(200, json=show) if show else not_found
        if len(parts) == 4 and parts[0] == "tv" and parts[2] == "season":
            season = self.seasons.get((int(parts[1]), int(parts[3])))
            return httpx.Response(200, json=season) if season else not_found
        return not_found

    def client(self, settings: Settings) -> TMDBClient:
        http_client = httpx.AsyncClient(
            transport=httpx.MockTransport(self.handler), base_url=TMDB_BASE_URL
        )
        return TMDBClient(settings, http_client)


def build_settings(**overrides: Any) -> Settings:
    """Return a settings object with defaults suitable for tests."""

    base: dict[str, Any] = {"TMDB_API_KEY": "test-key"}
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


@pytest.fixture
def fake_tmdb() -> FakeTMDB:
    return FakeTMDB()


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'tracker.db'}"


@pytest.fixture
def settings() -> Settings:
    return build_settings()
