"""Persistence of watched flags for movies and episodes.

Each watched record is unique per user and item. Repeating a mark request
is rejected with ``AlreadyWatched`` rather than refreshing the timestamp, and
the table constraints turn concurrent duplicates into the same rejection.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db_models import WatchedEpisode, WatchedMovie
from ..errors import AlreadyWatched, InvalidRequest
from ..models import Season

logger = logging.getLogger(__name__)

EpisodeKey = tuple[int, int]


async def is_movie_watched(
    session: AsyncSession, user_key: str | None, movie_id: int
) -> bool:
    """Return whether the user has watched the movie; unknown users never have."""

    if user_key is None:
        return False
    stmt = (
        select(WatchedMovie.id)
        .where(WatchedMovie.user_id == user_key, WatchedMovie.movie_id == movie_id)
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none() is not None


async def mark_movie_watched(
    session: AsyncSession, user_key: str, movie_id: int
) -> WatchedMovie:
    if await is_movie_watched(session, user_key, movie_id):
        raise AlreadyWatched("Movie already marked as watched")

    record = WatchedMovie(
        user_id=user_key, movie_id=movie_id, watched_at=datetime.utcnow()
    )
    session.add(record)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise AlreadyWatched("Movie already marked as watched") from exc
    logger.info("User %s watched movie %s", user_key, movie_id)
    return record


async def watched_episode_keys(
    session: AsyncSession, user_key: str | None, show_id: int
) -> set[EpisodeKey]:
    """Return ``(season, episode)`` pairs the user has watched for a show."""

    if user_key is None:
        return set()
    stmt = select(WatchedEpisode.season_number, WatchedEpisode.episode_number).where(
        WatchedEpisode.user_id == user_key, WatchedEpisode.show_id == show_id
    )
    result = await session.execute(stmt)
    return {(row[0], row[1]) for row in result.all()}


async def is_episode_watched(
    session: AsyncSession,
    user_key: str | None,
    show_id: int,
    season_number: int,
    episode_number: int,
) -> bool:
    if user_key is None:
        return False
    stmt = (
        select(WatchedEpisode.id)
        .where(
            WatchedEpisode.user_id == user_key,
            WatchedEpisode.show_id == show_id,
            WatchedEpisode.season_number == season_number,
            WatchedEpisode.episode_number == episode_number,
        )
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none() is not None


async def mark_episode_watched(
    session: AsyncSession,
    user_key: str,
    show_id: int,
    season_number: int,
    episode_number: int,
) -> WatchedEpisode:
    if await is_episode_watched(
        session, user_key, show_id, season_number, episode_number
    ):
        raise AlreadyWatched("Episode already marked as watched")

    record = WatchedEpisode(
        user_id=user_key,
        show_id=show_id,
        season_number=season_number,
        episode_number=episode_number,
        watched_at=datetime.utcnow(),
    )
    session.add(record)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise AlreadyWatched("Episode already marked as watched") from exc
    logger.info(
        "User %s watched show %s S%02dE%02d",
        user_key,
        show_id,
        season_number,
        episode_number,
    )
    return record


async def mark_season_watched(
    session: AsyncSession,
    user_key: str,
    show_id: int,
    season_number: int,
    episode_numbers: Iterable[int],
) -> list[WatchedEpisode]:
    """Mark every unwatched episode of a season in a single transaction.

    Either all pending episodes are recorded or none are. A season with
    nothing left to mark is rejected like any other duplicate.
    """

    numbers = sorted(set(episode_numbers))
    if not numbers:
        raise InvalidRequest("Season has no episodes to mark")

    watched = await watched_episode_keys(session, user_key, show_id)
    pending = [number for number in numbers if (season_number, number) not in watched]
    if not pending:
        raise AlreadyWatched("Season already marked as watched")

    now = datetime.utcnow()
    records = [
        WatchedEpisode(
            user_id=user_key,
            show_id=show_id,
            season_number=season_number,
            episode_number=number,
            watched_at=now,
        )
        for number in pending
    ]
    session.add_all(records)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise AlreadyWatched("Season already marked as watched") from exc
    logger.info(
        "User %s watched %s episodes of show %s season %s",
        user_key,
        len(records),
        show_id,
        season_number,
    )
    return records


def is_season_fully_watched(season: Season, watched: set[EpisodeKey]) -> bool:
    return bool(season.episodes) and all(
        (season.season_number, episode.episode_number) in watched
        for episode in season.episodes
    )
