from datetime import UTC, datetime, time
from zoneinfo import ZoneInfo


def utcnow_naive():
    """Return current UTC timestamp as naive datetime for DB timestamp columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def now_local(tz_name):
    """Naive wall clock in the club's timezone, comparable with session start times."""
    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)


def parse_play_time(raw_value):
    """Parse ``HH:MM`` (or ``HH:MM:SS``) into a ``time``; None when invalid."""
    text = str(raw_value or '').strip()
    if not text:
        return None
    for fmt in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    return None


def session_start_at(session_date, start_time):
    return datetime.combine(session_date, start_time or time(0, 0))
