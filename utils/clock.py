import datetime


def utcnow() -> datetime.datetime:
    """Naive UTC now, matching what SQLite hands back for DateTime columns."""
    return datetime.datetime.now(datetime.UTC).replace(tzinfo=None)


def isonow() -> str:
    return datetime.datetime.now(datetime.UTC).isoformat()
