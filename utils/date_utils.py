from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC now; columns are stored without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
