import datetime
import math

DAY = datetime.timedelta(days=1)


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(moment: datetime.datetime) -> datetime.datetime:
    """Treats naive datetimes as UTC; converts aware ones to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=datetime.timezone.utc)
    return moment.astimezone(datetime.timezone.utc)


def days_late(due: datetime.datetime, at: datetime.datetime) -> int:
    """Whole days (rounded up) that `at` lies past `due`, 0 if not late."""
    late = as_utc(at) - as_utc(due)
    if late <= datetime.timedelta(0):
        return 0
    return math.ceil(late / DAY)
