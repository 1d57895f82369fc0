from datetime import datetime, timezone


def utcnow() -> datetime:
    # Naive UTC, matching the DateTime columns (SQLite drops tzinfo anyway).
    return datetime.now(timezone.utc).replace(tzinfo=None)
