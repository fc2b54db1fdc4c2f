"""Coordinates identity, metadata and watched-state operations per request."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..errors import ConfigurationError, NotFound, StorageError
from ..models import (
    MediaType,
    MovieDetails,
    SearchPage,
    ShowDetails,
    UserStats,
    UserSummary,
    WatchedEpisodeEntry,
    WatchedMovieEntry,
)
from . import identity, stats, watched
from .metadata_cache import MetadataCache
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)


class TrackerService:
    """Entry point used by the HTTP routes.

    Every public method opens its own session. Storage failures are reported
    as ``StorageError``; all other ``TrackerError`` subclasses pass through.
    """

    def __init__(
        self,
        settings: Settings,
        tmdb_client: TMDBClient,
        session_factory: async_sessionmaker[AsyncSession] | None,
    ):
        self._settings = settings
        self._tmdb = tmdb_client
        self._metadata = MetadataCache(tmdb_client)
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        if self._session_factory is None:
            raise ConfigurationError("Database connection not configured")
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.exception("Database operation failed: %s", exc)
            raise StorageError() from exc

    async def login(self, username: str, password: str) -> UserSummary:
        async with self._session() as session:
            user = await identity.authenticate(session, username, password)
            return UserSummary(username=user.username, id=user.user_id)

    async def movie_detail(
        self, movie_id: int, username: str | None
    ) -> tuple[MovieDetails, bool]:
        """Return movie metadata and whether ``username`` has watched it.

        Metadata fetched from TMDB here is not stored.
        """

        async with self._session() as session:
            movie = await self._metadata.get_or_fetch_movie(
                session, movie_id, persist_on_fetch=False
            )
            user_key = await identity.find_user_key(session, username)
            is_watched = await watched.is_movie_watched(session, user_key, movie_id)
        return movie, is_watched

    async def mark_movie_watched(
        self, movie_id: int, username: str
    ) -> WatchedMovieEntry:
        async with self._session() as session:
            user_key = await identity.resolve_user_key(session, username)
            await self._metadata.get_or_fetch_movie(
                session, movie_id, persist_on_fetch=True
            )
            record = await watched.mark_movie_watched(session, user_key, movie_id)
            return WatchedMovieEntry.model_validate(record)

    async def show_detail(self, show_id: int, username: str | None) -> ShowDetails:
        """Return show metadata with each episode flagged for ``username``."""

        async with self._session() as session:
            show = await self._metadata.get_or_fetch_show(
                session, show_id, persist_on_fetch=False
            )
            user_key = await identity.find_user_key(session, username)
            seen = await watched.watched_episode_keys(session, user_key, show_id)

        for season in show.seasons:
            for episode in season.episodes:
                episode.watched = (season.season_number, episode.episode_number) in seen
        return show

    async def mark_episode_watched(
        self,
        show_id: int,
        username: str,
        season_number: int,
        episode_number: int,
    ) -> WatchedEpisodeEntry:
        async with self._session() as session:
            user_key = await identity.resolve_user_key(session, username)
            show = await self._metadata.get_or_fetch_show(
                session, show_id, persist_on_fetch=True
            )
            season = show.find_season(season_number)
            if season is None:
                raise NotFound("Season not found")
            if season.find_episode(episode_number) is None:
                raise NotFound("Episode not found")
            record = await watched.mark_episode_watched(
                session, user_key, show_id, season_number, episode_number
            )
            return WatchedEpisodeEntry.model_validate(record)

    async def mark_season_watched(
        self, show_id: int, username: str, season_number: int
    ) -> list[WatchedEpisodeEntry]:
        async with self._session() as session:
            user_key = await identity.resolve_user_key(session, username)
            show = await self._metadata.get_or_fetch_show(
                session, show_id, persist_on_fetch=True
            )
            season = show.find_season(season_number)
            if season is None:
                raise NotFound("Season not found")
            records = await watched.mark_season_watched(
                session,
                user_key,
                show_id,
                season_number,
                [episode.episode_number for episode in season.episodes],
            )
            return [WatchedEpisodeEntry.model_validate(record) for record in records]

    async def search(self, query: str, media_type: MediaType) -> SearchPage:
        return await self._tmdb.search(query, media_type)

    async def user_stats(self, username: str) -> UserStats:
        async with self._session() as session:
            user_key = await identity.resolve_user_key(session, username)
            return await stats.compute_stats(
                session, user_key, recent_limit=self._settings.recent_items_limit
            )
