"""HTTP surface tests covering the response envelope and status codes."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from app.config import Settings
from app.database import Database
from app.db_models import MovieRecord, WatchedMovie
from app.main import register_routes
from app.services import identity
from app.services.tracker import TrackerService


def build_app(
    settings: Settings, fake_tmdb, database_url: str | None
) -> FastAPI:
    """Return an app wired to a throw-away database and the fake TMDB."""

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        database = Database(database_url) if database_url else None
        if database is not None:
            await database.create_all()
            async with database.session() as session:
                await identity.create_user(session, "alice", "secret")
        fastapi_app.state.database = database
        fastapi_app.state.tracker_service = TrackerService(
            settings,
            fake_tmdb.client(settings),
            database.session_factory if database is not None else None,
        )
        try:
            yield
        finally:
            if database is not None:
                await database.dispose()

    fastapi_app = FastAPI(lifespan=lifespan)
    register_routes(fastapi_app)
    return fastapi_app


@pytest.fixture
def client(settings, fake_tmdb, database_url) -> Iterator[TestClient]:
    fake_tmdb.add_movie(550, "Fight Club", runtime=90)
    fake_tmdb.add_show(1399, "Game of Thrones", {1: [(1, 62), (2, 56)], 2: [(1, 53)]})
    with TestClient(build_app(settings, fake_tmdb, database_url)) as test_client:
        yield test_client


def _count(test_client: TestClient, model) -> int:
    database: Database = test_client.app.state.database

    async def query() -> int:
        async with database.session() as session:
            return await session.scalar(select(func.count()).select_from(model))

    return test_client.portal.call(query)


def test_login_succeeds_with_matching_credentials(client: TestClient) -> None:
    response = client.post("/auth/login", json={"username": "alice", "password": "secret"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["user"]["username"] == "alice"
    assert payload["user"]["id"]


@pytest.mark.parametrize(
    ("body", "status"),
    [
        ({"username": "alice"}, 400),
        ({}, 400),
        ({"username": "alice", "password": "wrong"}, 401),
        ({"username": "nobody", "password": "secret"}, 401),
    ],
)
def test_login_failures(client: TestClient, body: dict, status: int) -> None:
    response = client.post("/auth/login", json=body)

    assert response.status_code == status
    assert response.json()["success"] is False
    assert response.json()["error"]


def test_movie_detail_reports_watch_status(client: TestClient) -> None:
    before = client.get("/detail/550/movie", params={"username": "alice"})
    marked = client.post("/detail/550/movie", json={"username": "alice"})
    after = client.get("/detail/550/movie", params={"username": "alice"})
    stranger = client.get("/detail/550/movie", params={"username": "mallory"})

    assert before.status_code == 200
    assert before.json()["isWatched"] is False
    assert before.json()["data"]["title"] == "Fight Club"
    assert marked.status_code == 200
    assert marked.json()["message"] == "Movie marked as watched"
    assert marked.json()["data"]["movie_id"] == 550
    assert after.json()["isWatched"] is True
    assert stranger.status_code == 200
    assert stranger.json()["isWatched"] is False


def test_movie_detail_does_not_cache_metadata(client: TestClient) -> None:
    response = client.get("/detail/550/movie")

    assert response.status_code == 200
    assert response.json()["isWatched"] is False
    assert _count(client, MovieRecord) == 0


def test_movie_detail_upstream_failure(client: TestClient) -> None:
    response = client.get("/detail/999999/movie", params={"username": "alice"})

    assert response.status_code == 502
    assert response.json() == {
        "success": False,
        "error": "Failed to fetch data from TMDB",
    }
    assert _count(client, MovieRecord) == 0


@pytest.mark.parametrize("raw_id", ["abc", "0", "-4", "99999999999999999999"])
def test_invalid_movie_ids_are_rejected(client: TestClient, raw_id: str) -> None:
    detail = client.get(f"/detail/{raw_id}/movie")
    mark = client.post(f"/detail/{raw_id}/movie", json={"username": "alice"})

    assert detail.status_code == 400
    assert detail.json()["error"] == "Invalid movie ID"
    assert mark.status_code == 400


def test_marking_a_movie_twice(client: TestClient) -> None:
    first = client.post("/detail/550/movie", json={"username": "alice"})
    second = client.post("/detail/550/movie", json={"username": "alice"})

    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json() == {
        "success": False,
        "error": "Movie already marked as watched",
    }
    assert _count(client, WatchedMovie) == 1
    assert _count(client, MovieRecord) == 1


def test_undecodable_body_is_treated_as_empty(client: TestClient) -> None:
    response = client.post(
        "/detail/550/movie",
        content=b'{"username": "\xff"}',
        headers={"content-type": "application/json"},
    )
    oversized_season = client.post(
        "/detail/1399/show",
        json={
            "username": "alice",
            "season_number": 2**63,
            "episode_number": 1,
        },
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Username is required"
    assert oversized_season.status_code == 400
    assert oversized_season.json()["error"] == "Season number is required"
    assert _count(client, WatchedMovie) == 0


def test_marking_requires_known_user(client: TestClient) -> None:
    missing = client.post("/detail/550/movie", json={})
    unknown = client.post("/detail/550/movie", json={"username": "mallory"})

    assert missing.status_code == 400
    assert missing.json()["error"] == "Username is required"
    assert unknown.status_code == 404
    assert unknown.json()["error"] == "User not found"
    assert _count(client, WatchedMovie) == 0
    assert _count(client, MovieRecord) == 0


def test_show_detail_flags_watched_episodes(client: TestClient) -> None:
    marked = client.post(
        "/detail/1399/show",
        json={"username": "alice", "season_number": 1, "episode_number": 2},
    )
    detail = client.get("/detail/1399/show", params={"username": "alice"})

    assert marked.status_code == 200
    assert marked.json()["data"]["episode_number"] == 2
    seasons = detail.json()["data"]["seasons"]
    assert [episode["watched"] for episode in seasons[0]["episodes"]] == [False, True]
    assert [episode["watched"] for episode in seasons[1]["episodes"]] == [False]


def test_mark_episode_validation(client: TestClient) -> None:
    missing = client.post("/detail/1399/show", json={"username": "alice", "season_number": 1})
    no_season = client.post(
        "/detail/1399/show",
        json={"username": "alice", "season_number": 7, "episode_number": 1},
    )
    no_episode = client.post(
        "/detail/1399/show",
        json={"username": "alice", "season_number": 1, "episode_number": 9},
    )

    assert missing.status_code == 400
    assert missing.json()["error"] == "Episode number is required"
    assert no_season.status_code == 404
    assert no_season.json()["error"] == "Season not found"
    assert no_episode.status_code == 404
    assert no_episode.json()["error"] == "Episode not found"


def test_mark_season_then_detail_shows_all_watched(client: TestClient) -> None:
    marked = client.post(
        "/detail/1399/show/season", json={"username": "alice", "season_number": 1}
    )
    again = client.post(
        "/detail/1399/show/season", json={"username": "alice", "season_number": 1}
    )
    detail = client.get("/detail/1399/show", params={"username": "alice"})

    assert marked.status_code == 200
    assert [entry["episode_number"] for entry in marked.json()["data"]] == [1, 2]
    assert again.status_code == 400
    assert again.json()["error"] == "Season already marked as watched"
    episodes = detail.json()["data"]["seasons"][0]["episodes"]
    assert all(episode["watched"] for episode in episodes)


def test_search(client: TestClient) -> None:
    movies = client.get("/search", params={"query": "fight"})
    shows = client.get("/search", params={"query": "thrones", "type": "tv"})

    assert movies.status_code == 200
    assert movies.json()["total_results"] == 1
    assert movies.json()["data"][0]["media_type"] == "movie"
    assert shows.json()["data"][0]["name"] == "Game of Thrones"


def test_search_validation(client: TestClient) -> None:
    missing = client.get("/search")
    bad_type = client.get("/search", params={"query": "fight", "type": "book"})

    assert missing.status_code == 400
    assert missing.json()["error"] == "Query parameter is required"
    assert bad_type.status_code == 400


def test_stats_reflect_watched_movie(client: TestClient) -> None:
    empty = client.get("/stats", params={"username": "alice"})
    client.post("/detail/550/movie", json={"username": "alice"})
    filled = client.get("/stats", params={"username": "alice"})

    assert empty.json()["data"]["moviesWatched"] == 0
    assert empty.json()["data"]["recentMovies"] == []
    data = filled.json()["data"]
    assert data["moviesWatched"] == 1
    assert data["totalMovieTime"] == 90
    assert [movie["id"] for movie in data["recentMovies"]] == [550]


def test_stats_for_unknown_user(client: TestClient) -> None:
    response = client.get("/stats", params={"username": "mallory"})

    assert response.status_code == 404
    assert response.json()["success"] is False


def test_missing_tmdb_key_is_a_configuration_failure(fake_tmdb, database_url) -> None:
    settings = Settings(_env_file=None, TMDB_API_KEY="")
    with TestClient(build_app(settings, fake_tmdb, database_url)) as test_client:
        detail = test_client.get("/detail/550/movie")
        search = test_client.get("/search", params={"query": "fight"})

    assert detail.status_code == 500
    assert detail.json()["error"] == "TMDB API key not configured"
    assert search.status_code == 500
    assert fake_tmdb.requests == []


def test_missing_database_is_a_configuration_failure(settings, fake_tmdb) -> None:
    with TestClient(build_app(settings, fake_tmdb, None)) as test_client:
        login = test_client.post(
            "/auth/login", json={"username": "alice", "password": "secret"}
        )
        health = test_client.get("/healthz")

    assert login.status_code == 500
    assert login.json() == {
        "success": False,
        "error": "Database connection not configured",
    }
    assert health.json() == {"status": "ok"}


class ExplodingTrackerService(TrackerService):
    """Tracker stub whose operations fail with unexpected errors."""

    def __init__(self) -> None:  # pragma: no cover - nothing to initialise
        # Deliberately skip super().__init__ to avoid touching external systems.
        pass

    async def mark_movie_watched(self, movie_id: int, username: str):  # type: ignore[override]
        raise RuntimeError("connection reset by peer at 10.0.0.3")


def test_unexpected_errors_are_sanitised() -> None:
    fastapi_app = FastAPI()
    register_routes(fastapi_app)
    fastapi_app.state.tracker_service = ExplodingTrackerService()

    with TestClient(fastapi_app) as test_client:
        response = test_client.post("/detail/550/movie", json={"username": "alice"})

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "Failed to mark movie as watched",
    }
