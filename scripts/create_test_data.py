#!/usr/bin/env python3
"""
Test Data Generation Script for the Tubely Upload Service.

Video records are created by the Tubely catalogue service, not by the upload
API. This script inserts sample records directly into MongoDB for local
development and prints a bearer token for their owner, so the upload
endpoints can be exercised with curl or the OpenAPI docs.

Usage:
    python scripts/create_test_data.py [options]

Options:
    --count INT     Number of video records to create (default: 3)
    --user-id UUID  Owner of the records (default: a new random id)
    --clean         Delete the owner's existing records first
    --hours INT     Token lifetime in hours (default: 24)
    --verbose       Display detailed operation logs

Configuration (MONGODB_URI, MONGODB_DB_NAME, JWT_SECRET, ...) is read through
tubely.config.Settings, so the same environment variables and .env file as
the API apply.

Example:
    TOKEN=$(python scripts/create_test_data.py --count 1 | tail -1)
    curl -H "Authorization: Bearer $TOKEN" \\
         -F "thumbnail=@boots.jpg;type=image/jpeg" \\
         http://localhost:8091/api/videos/<id>/thumbnail
"""

import argparse
import logging
import sys
import uuid
from datetime import UTC, datetime, timedelta

from jose import jwt
from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from tubely.config import Settings
from tubely.core.database import VIDEOS_COLLECTION
from tubely.models.video import VideoRecord


CONNECTION_TIMEOUT_MS = 5000

SAMPLE_TITLES = [
    "Boots on the trail",
    "Unboxing the new boots",
    "Waterproofing test",
    "Ten mile review",
    "Resoling at home",
]

logger = logging.getLogger("create_test_data")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed Tubely video records for local testing")
    parser.add_argument("--count", type=int, default=3, help="Number of records to create")
    parser.add_argument("--user-id", type=uuid.UUID, default=None, help="Owner user id")
    parser.add_argument("--clean", action="store_true", help="Delete the owner's records first")
    parser.add_argument("--hours", type=int, default=24, help="Token lifetime in hours")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def create_token(settings: Settings, user_id: uuid.UUID, hours: int) -> str:
    """Sign a bearer token the API will accept for ``user_id``."""
    now = datetime.now(UTC)
    claims = {"sub": str(user_id), "iat": now, "exp": now + timedelta(hours=hours)}
    if settings.jwt_issuer:
        claims["iss"] = settings.jwt_issuer
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def build_records(user_id: uuid.UUID, count: int) -> list[VideoRecord]:
    return [
        VideoRecord(
            id=uuid.uuid4(),
            user_id=user_id,
            title=SAMPLE_TITLES[index % len(SAMPLE_TITLES)],
            description=f"Sample video {index + 1} for local upload testing",
        )
        for index in range(count)
    ]


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    settings = Settings()
    user_id = args.user_id or uuid.uuid4()

    try:
        client: MongoClient = MongoClient(
            settings.mongodb_uri,
            serverSelectionTimeoutMS=CONNECTION_TIMEOUT_MS,
            uuidRepresentation="standard",
        )
        client.admin.command("ping")
    except (ConnectionFailure, ServerSelectionTimeoutError) as e:
        logger.error("Could not connect to MongoDB at %s: %s", settings.mongodb_uri, e)
        return 1

    videos = client[settings.mongodb_db_name][VIDEOS_COLLECTION]

    try:
        if args.clean:
            result = videos.delete_many({"user_id": str(user_id)})
            logger.info("Deleted %s existing records for user %s", result.deleted_count, user_id)

        records = build_records(user_id, args.count)
        if records:
            videos.insert_many([record.to_document() for record in records])
    except PyMongoError as e:
        logger.error("Failed to write video records: %s", e)
        return 1
    finally:
        client.close()

    logger.info("Created %s video records for user %s", len(records), user_id)
    for record in records:
        logger.info("  %s  %s", record.id, record.title)

    # Token last on stdout so it can be captured with `tail -1`
    print(create_token(settings, user_id, args.hours))
    return 0


if __name__ == "__main__":
    sys.exit(main())
