#!/usr/bin/env python3
"""
Provision an API key for a user.

The raw key is printed once and never stored; only its SHA-256 hash is
saved. Every document uploaded with the key is owned by --user.

Usage:
    uv run python scripts/create_api_key.py --user alice --name web-client
    uv run python scripts/create_api_key.py --user alice --expires-days 90
"""

import argparse
import asyncio
from datetime import UTC, datetime, timedelta

from app.config import get_settings
from app.db.engine import create_engine_for, create_session_factory, init_models
from app.db.store import DocumentStore
from app.services.auth import generate_api_key


async def create_key(user_id: str, name: str, expires_days: int | None) -> str:
    settings = get_settings()
    engine = create_engine_for(settings.database_url, pooled=False)
    try:
        if settings.auto_create_tables:
            await init_models(engine)
        store = DocumentStore(create_session_factory(engine))

        raw_key, prefix, key_hash = generate_api_key()
        expires_at = (
            datetime.now(UTC) + timedelta(days=expires_days) if expires_days else None
        )
        await store.create_api_key(
            name=name,
            user_id=user_id,
            key_prefix=prefix,
            key_hash=key_hash,
            expires_at=expires_at,
        )
        return raw_key
    finally:
        await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Create an API key bound to a user id.")
    parser.add_argument("--user", required=True, help="Owner id for everything created with the key")
    parser.add_argument("--name", default="default", help="Label for the key")
    parser.add_argument("--expires-days", type=int, default=None)
    args = parser.parse_args()

    raw_key = asyncio.run(create_key(args.user, args.name, args.expires_days))
    print(f"API key for {args.user} (shown once, store it now):")
    print(f"  {raw_key}")


if __name__ == "__main__":
    main()
