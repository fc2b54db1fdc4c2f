"""Cache-through access to movie and show metadata."""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db_models import MovieRecord, ShowRecord
from ..models import MovieDetails, ShowDetails
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)


class MetadataCache:
    """Serve metadata from the database, falling back to TMDB on a miss.

    Local rows are never refreshed once stored. Fetched metadata is written
    back only when ``persist_on_fetch`` is set, which the mutating routes do
    and the detail routes do not.
    """

    def __init__(self, tmdb: TMDBClient):
        self._tmdb = tmdb

    async def get_or_fetch_movie(
        self, session: AsyncSession, movie_id: int, *, persist_on_fetch: bool
    ) -> MovieDetails:
        record = await session.get(MovieRecord, movie_id)
        if record is not None:
            return MovieDetails.from_record(record)

        movie = await self._tmdb.fetch_movie(movie_id)
        if persist_on_fetch:
            await self._persist(session, movie.to_record(), MovieRecord, movie_id)
            logger.info("Cached metadata for movie %s (%s)", movie_id, movie.title)
        return movie

    async def get_or_fetch_show(
        self, session: AsyncSession, show_id: int, *, persist_on_fetch: bool
    ) -> ShowDetails:
        record = await session.get(ShowRecord, show_id)
        if record is not None:
            return ShowDetails.from_record(record)

        show = await self._tmdb.fetch_show(show_id)
        if persist_on_fetch:
            await self._persist(session, show.to_record(), ShowRecord, show_id)
            logger.info("Cached metadata for show %s (%s)", show_id, show.name)
        return show

    @staticmethod
    async def _persist(
        session: AsyncSession,
        record: MovieRecord | ShowRecord,
        model: type[MovieRecord] | type[ShowRecord],
        identifier: int,
    ) -> None:
        session.add(record)
        try:
            await session.commit()
        except IntegrityError:
            # Another request stored the same title first; keep its copy.
            await session.rollback()
            logger.debug("%s %s was cached concurrently", model.__name__, identifier)
