"""Entry point for the FastAPI-powered tracking service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, Awaitable, Callable

import httpx
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import Database
from .errors import InvalidRequest, TrackerError
from .services.tmdb import TMDBClient
from .services.tracker import TrackerService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI

# Largest value a signed 64-bit INTEGER column can hold.
MAX_STORED_INTEGER = 2**63 - 1


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(settings.tmdb_timeout_seconds, connect=5.0),
            headers={"Accept": "application/json"},
        )
    )
    if not settings.tmdb_api_key:
        logger.warning("TMDB_API_KEY is not set; metadata routes will fail")

    database: Database | None = None
    if settings.database_url:
        database = Database(settings.database_url)
        await database.create_all()
    else:
        logger.warning("DATABASE_URL is not set; storage routes will fail")

    fastapi_app.state.database = database
    fastapi_app.state.tracker_service = TrackerService(
        settings,
        TMDBClient(settings, tmdb_http_client),
        database.session_factory if database is not None else None,
    )

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        if database is not None:
            await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Track watched movies and shows backed by TMDB metadata",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_tracker_service(app: FastAPI) -> TrackerService:
    service = getattr(app.state, "tracker_service", None)
    if not isinstance(service, TrackerService):
        raise RuntimeError("Tracker service not initialised")
    return service


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


async def _respond(
    action: Callable[[], Awaitable[dict[str, Any]]], failure_message: str
) -> JSONResponse:
    """Run a route body and wrap the outcome in the success/error envelope."""

    try:
        payload = await action()
    except TrackerError as exc:
        if exc.status_code >= 500:
            logger.error("%s: %s", failure_message, exc.message)
        return _failure(exc.status_code, exc.message)
    except Exception:
        logger.exception(failure_message)
        return _failure(500, failure_message)
    return JSONResponse({"success": True, **payload})


def _parse_id(raw: str, label: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise InvalidRequest(f"Invalid {label} ID") from None
    if value <= 0 or value > MAX_STORED_INTEGER:
        raise InvalidRequest(f"Invalid {label} ID")
    return value


async def _read_payload(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        # Malformed JSON or a body that is not valid UTF-8.
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidRequest("Invalid payload")
    return payload


def _text(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _require_number(payload: dict[str, Any], key: str, label: str) -> int:
    value = payload.get(key)
    if isinstance(value, bool):
        value = None
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value)
    if not isinstance(value, int) or not 0 <= value <= MAX_STORED_INTEGER:
        raise InvalidRequest(f"{label} is required")
    return value


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.post("/auth/login")
    async def login(request: Request) -> JSONResponse:
        async def action() -> dict[str, Any]:
            payload = await _read_payload(request)
            username = _text(payload.get("username"))
            password = _text(payload.get("password"))
            if not username or not password:
                raise InvalidRequest("Username and password are required")
            service = get_tracker_service(fastapi_app)
            user = await service.login(username, password)
            return {"user": user.model_dump()}

        return await _respond(action, "Login failed. Please try again.")

    @fastapi_app.get("/detail/{movie_id}/movie")
    async def movie_detail(movie_id: str, username: str | None = None) -> JSONResponse:
        async def action() -> dict[str, Any]:
            identifier = _parse_id(movie_id, "movie")
            service = get_tracker_service(fastapi_app)
            movie, is_watched = await service.movie_detail(identifier, _text(username))
            return {"data": movie.model_dump(mode="json"), "isWatched": is_watched}

        return await _respond(action, "Failed to fetch movie details")

    @fastapi_app.post("/detail/{movie_id}/movie")
    async def mark_movie_watched(movie_id: str, request: Request) -> JSONResponse:
        async def action() -> dict[str, Any]:
            identifier = _parse_id(movie_id, "movie")
            payload = await _read_payload(request)
            username = _text(payload.get("username"))
            if not username:
                raise InvalidRequest("Username is required")
            service = get_tracker_service(fastapi_app)
            entry = await service.mark_movie_watched(identifier, username)
            return {
                "message": "Movie marked as watched",
                "data": entry.model_dump(mode="json"),
            }

        return await _respond(action, "Failed to mark movie as watched")

    @fastapi_app.get("/detail/{show_id}/show")
    async def show_detail(show_id: str, username: str | None = None) -> JSONResponse:
        async def action() -> dict[str, Any]:
            identifier = _parse_id(show_id, "show")
            service = get_tracker_service(fastapi_app)
            show = await service.show_detail(identifier, _text(username))
            return {"data": show.model_dump(mode="json")}

        return await _respond(action, "Failed to fetch show details")

    @fastapi_app.post("/detail/{show_id}/show")
    async def mark_episode_watched(show_id: str, request: Request) -> JSONResponse:
        async def action() -> dict[str, Any]:
            identifier = _parse_id(show_id, "show")
            payload = await _read_payload(request)
            username = _text(payload.get("username"))
            if not username:
                raise InvalidRequest("Username is required")
            season_number = _require_number(payload, "season_number", "Season number")
            episode_number = _require_number(
                payload, "episode_number", "Episode number"
            )
            service = get_tracker_service(fastapi_app)
            entry = await service.mark_episode_watched(
                identifier, username, season_number, episode_number
            )
            return {
                "message": "Episode marked as watched",
                "data": entry.model_dump(mode="json"),
            }

        return await _respond(action, "Failed to mark episode as watched")

    @fastapi_app.post("/detail/{show_id}/show/season")
    async def mark_season_watched(show_id: str, request: Request) -> JSONResponse:
        async def action() -> dict[str, Any]:
            identifier = _parse_id(show_id, "show")
            payload = await _read_payload(request)
            username = _text(payload.get("username"))
            if not username:
                raise InvalidRequest("Username is required")
            season_number = _require_number(payload, "season_number", "Season number")
            service = get_tracker_service(fastapi_app)
            entries = await service.mark_season_watched(
                identifier, username, season_number
            )
            return {
                "message": "Season marked as watched",
                "data": [entry.model_dump(mode="json") for entry in entries],
            }

        return await _respond(action, "Failed to mark season as watched")

    @fastapi_app.get("/search")
    async def search(
        query: str | None = None,
        media_type: str = Query(default="movie", alias="type"),
    ) -> JSONResponse:
        async def action() -> dict[str, Any]:
            text = _text(query)
            if not text:
                raise InvalidRequest("Query parameter is required")
            if media_type not in {"movie", "tv"}:
                raise InvalidRequest("Type must be 'movie' or 'tv'")
            service = get_tracker_service(fastapi_app)
            page = await service.search(text, media_type)  # type: ignore[arg-type]
            return {
                "data": [result.model_dump(mode="json") for result in page.results],
                "total_results": page.total_results,
            }

        return await _respond(action, "Failed to search")

    @fastapi_app.get("/stats")
    async def user_stats(username: str | None = None) -> JSONResponse:
        async def action() -> dict[str, Any]:
            name = _text(username)
            if not name:
                raise InvalidRequest("Username is required")
            service = get_tracker_service(fastapi_app)
            summary = await service.user_stats(name)
            return {"data": summary.model_dump(mode="json", by_alias=True)}

        return await _respond(action, "Failed to fetch user stats")


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
