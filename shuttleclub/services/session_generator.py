"""Monthly batch creation of sessions from the weekly day settings."""
import calendar
import logging
from datetime import date, datetime, timedelta

from flask import current_app

from shuttleclub.app import db
from shuttleclub.errors import ValidationError
from shuttleclub.models import ClubSettings, DaySetting, PlaySession
from shuttleclub.services.attendance import auto_enroll_core_members

logger = logging.getLogger(__name__)


def sunday_based_weekday(value):
    """0 = Sunday ... 6 = Saturday, the numbering used by day settings."""
    return value.isoweekday() % 7


def month_bounds(year, month):
    try:
        year = int(year)
        month = int(month)
    except (TypeError, ValueError):
        raise ValidationError('Year and month must be numbers')
    if month < 1 or month > 12:
        raise ValidationError('Month must be between 1 and 12')
    if year < 2000 or year > 2100:
        raise ValidationError('Year is out of range')
    first = date(year, month, 1)
    last = date(year, month, calendar.monthrange(year, month)[1])
    return first, last


def current_settings():
    """Saved club settings, falling back to configured defaults."""
    settings = ClubSettings.query.order_by(ClubSettings.id.asc()).first()
    if settings:
        return settings.session_price, settings.max_members
    return (
        int(current_app.config.get('DEFAULT_SESSION_PRICE', 0)),
        int(current_app.config.get('DEFAULT_MAX_MEMBERS', 24)),
    )


def _end_time_for(start_time):
    minutes = int(current_app.config.get('DEFAULT_SESSION_DURATION_MINUTES', 120) or 0)
    if minutes <= 0:
        return None
    return (datetime.combine(date.min, start_time) + timedelta(minutes=minutes)).time()


def generate_month(year, month, created_by=None):
    """Create missing sessions for the month and enroll core members.

    Existing sessions keep their active flag and costs. Returns a dict with
    the month's sessions (ordered by date) and the ids that were new.
    """
    first, last = month_bounds(year, month)
    session_price, max_members = current_settings()

    settings_by_day = {
        setting.day_of_week: setting
        for setting in DaySetting.query.filter_by(is_active=True).all()
    }
    existing_by_date = {
        s.date: s for s in PlaySession.query.filter(
            PlaySession.date >= first, PlaySession.date <= last,
        ).all()
    }

    created_ids = []
    current = first
    while current <= last:
        setting = settings_by_day.get(sunday_based_weekday(current))
        if setting and current not in existing_by_date:
            session = PlaySession(
                date=current,
                day_of_week=sunday_based_weekday(current),
                start_time=setting.play_time,
                end_time=_end_time_for(setting.play_time),
                court_count=max(1, setting.court_count or 1),
                session_cost=session_price,
                max_members=max_members,
                location_id=setting.location_id,
                created_by=created_by,
            )
            db.session.add(session)
            db.session.flush()
            existing_by_date[current] = session
            created_ids.append(session.id)
        current += timedelta(days=1)
    db.session.commit()

    sessions = sorted(existing_by_date.values(), key=lambda s: s.date)
    enrolled = {}
    for session in sessions:
        added = auto_enroll_core_members(session)
        if added:
            enrolled[session.id] = added

    logger.info(
        'Generated sessions for %04d-%02d: %s new, %s total',
        first.year, first.month, len(created_ids), len(sessions),
    )
    return {'sessions': sessions, 'created_ids': created_ids, 'enrolled': enrolled}
