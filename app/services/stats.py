"""Aggregate viewing statistics for the home page."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db_models import MovieRecord, ShowRecord, WatchedEpisode, WatchedMovie
from ..models import RecentEpisode, RecentMovie, ShowDetails, UserStats


async def compute_stats(
    session: AsyncSession, user_key: str, *, recent_limit: int
) -> UserStats:
    """Summarise a user's watched records.

    Records whose metadata is not stored locally still count towards the
    totals but add no minutes, and appear in the recent lists without titles.
    Recent entries are newest first with ties ordered by identifier.
    """

    movie_rows = (
        await session.execute(
            select(WatchedMovie).where(WatchedMovie.user_id == user_key)
        )
    ).scalars().all()
    episode_rows = (
        await session.execute(
            select(WatchedEpisode).where(WatchedEpisode.user_id == user_key)
        )
    ).scalars().all()

    movies: dict[int, MovieRecord] = {}
    movie_ids = {row.movie_id for row in movie_rows}
    if movie_ids:
        result = await session.execute(
            select(MovieRecord).where(MovieRecord.id.in_(movie_ids))
        )
        movies = {record.id: record for record in result.scalars()}

    shows: dict[int, ShowDetails] = {}
    show_ids = {row.show_id for row in episode_rows}
    if show_ids:
        result = await session.execute(
            select(ShowRecord).where(ShowRecord.id.in_(show_ids))
        )
        shows = {record.id: ShowDetails.from_record(record) for record in result.scalars()}

    total_movie_time = sum(
        movies[row.movie_id].runtime or 0
        for row in movie_rows
        if row.movie_id in movies
    )

    runtimes = {show_id: show.episode_runtimes() for show_id, show in shows.items()}
    total_show_time = sum(
        runtimes.get(row.show_id, {}).get((row.season_number, row.episode_number), 0)
        for row in episode_rows
    )

    ordered_movies = sorted(movie_rows, key=lambda row: row.movie_id)
    ordered_movies.sort(key=lambda row: row.watched_at, reverse=True)
    recent_movies: list[RecentMovie] = []
    for row in ordered_movies[:recent_limit]:
        movie = movies.get(row.movie_id)
        recent_movies.append(
            RecentMovie(
                id=row.movie_id,
                title=movie.title if movie else None,
                poster_path=movie.poster_path if movie else None,
                runtime=movie.runtime if movie else None,
                watched_at=row.watched_at,
            )
        )

    ordered_episodes = sorted(
        episode_rows,
        key=lambda row: (row.show_id, row.season_number, row.episode_number),
    )
    ordered_episodes.sort(key=lambda row: row.watched_at, reverse=True)
    recent_episodes: list[RecentEpisode] = []
    for row in ordered_episodes[:recent_limit]:
        show = shows.get(row.show_id)
        episode_name = None
        if show is not None:
            season = show.find_season(row.season_number)
            episode = season.find_episode(row.episode_number) if season else None
            episode_name = episode.name if episode else None
        recent_episodes.append(
            RecentEpisode(
                show_id=row.show_id,
                show_name=show.name if show else None,
                show_poster_path=show.poster_path if show else None,
                season_number=row.season_number,
                episode_number=row.episode_number,
                episode_name=episode_name,
                watched_at=row.watched_at,
            )
        )

    return UserStats(
        movies_watched=len(movie_rows),
        shows_watched=len(show_ids),
        episodes_watched=len(episode_rows),
        total_movie_time=total_movie_time,
        total_show_time=total_show_time,
        recent_movies=recent_movies,
        recent_episodes=recent_episodes,
    )
