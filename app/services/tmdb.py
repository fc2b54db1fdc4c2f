"""Client for The Movie Database (TMDB) REST API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..config import Settings
from ..errors import ConfigurationError, UpstreamUnavailable
from ..models import MediaType, MovieDetails, SearchPage, SearchResult, ShowDetails

logger = logging.getLogger(__name__)


class TMDBClient:
    """Fetches movie, show and search payloads from TMDB.

    The API key is checked per call rather than at construction so that a
    missing key is reported to the caller instead of preventing startup.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    async def fetch_movie(self, movie_id: int) -> MovieDetails:
        """Return the movie with ``movie_id`` or raise ``UpstreamUnavailable``."""

        payload = await self._get_json(f"/movie/{movie_id}")
        return MovieDetails.from_tmdb(payload)

    async def fetch_show(self, show_id: int) -> ShowDetails:
        """Return the show with all season episode lists resolved."""

        payload = await self._get_json(f"/tv/{show_id}")
        season_numbers = [
            summary["season_number"]
            for summary in payload.get("seasons") or []
            if isinstance(summary, dict)
            and isinstance(summary.get("season_number"), int)
        ]
        details = await asyncio.gather(
            *(
                self._get_json(f"/tv/{show_id}/season/{number}")
                for number in season_numbers
            )
        )
        return ShowDetails.from_tmdb(payload, dict(zip(season_numbers, details)))

    async def search(self, query: str, media_type: MediaType) -> SearchPage:
        """Return the first page of TMDB search results."""

        endpoint = "/search/movie" if media_type == "movie" else "/search/tv"
        data = await self._get_json(endpoint, params={"query": query, "page": 1})
        results = [
            SearchResult.from_tmdb(entry, media_type)
            for entry in data.get("results") or []
            if isinstance(entry, dict) and entry.get("id") is not None
        ]
        total = data.get("total_results")
        return SearchPage(
            results=results,
            total_results=total if isinstance(total, int) else len(results),
        )

    async def _get_json(
        self, path: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        api_key = self._settings.tmdb_api_key
        if not api_key:
            raise ConfigurationError("TMDB API key not configured")

        query = {"api_key": api_key}
        if params:
            query.update(params)
        try:
            response = await self._client.get(path, params=query)
        except httpx.HTTPError as exc:
            logger.warning("TMDB request to %s failed: %s", path, exc)
            raise UpstreamUnavailable() from exc

        if response.status_code >= 400:
            logger.warning(
                "TMDB request to %s returned %s: %s",
                path,
                response.status_code,
                response.text,
            )
            raise UpstreamUnavailable()

        try:
            payload = response.json()
        except ValueError as exc:
            logger.warning("TMDB returned invalid JSON for %s", path)
            raise UpstreamUnavailable() from exc
        if not isinstance(payload, dict):
            raise UpstreamUnavailable()
        return payload
