"""Module executed when running ``python -m reeltrack``."""

from __future__ import annotations

import argparse
import asyncio

import uvicorn

from app.config import settings
from app.database import Database
from app.errors import TrackerError
from app.services.identity import create_user


def _serve() -> None:
    """Start the uvicorn server using the configured settings."""

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )


async def _register(database_url: str, username: str, password: str) -> str:
    database = Database(database_url)
    try:
        await database.create_all()
        async with database.session() as session:
            user = await create_user(session, username, password)
            return user.user_id
    finally:
        await database.dispose()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="reeltrack")
    commands = parser.add_subparsers(dest="command")
    commands.add_parser("serve", help="run the HTTP server (default)")
    register = commands.add_parser("create-user", help="register a new account")
    register.add_argument("username")
    register.add_argument("password")
    args = parser.parse_args(argv)

    if args.command == "create-user":
        if not settings.database_url:
            raise SystemExit("DATABASE_URL must be set to register users")
        try:
            user_key = asyncio.run(
                _register(settings.database_url, args.username, args.password)
            )
        except TrackerError as exc:
            raise SystemExit(exc.message) from None
        print(f"Created user {args.username} ({user_key})")
        return
    _serve()


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()
