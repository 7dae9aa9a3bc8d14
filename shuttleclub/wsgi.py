"""WSGI entrypoint used by Gunicorn."""
import os
from datetime import date

from shuttleclub.app import create_app
from shuttleclub.services.session_generator import generate_month


def _env_bool(name, default=False):
    raw = os.environ.get(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {'1', 'true', 'yes', 'on'}


config_name = os.environ.get('FLASK_ENV', 'production')
app = create_app(config_name)

if _env_bool('AUTO_GENERATE_SESSIONS', False):
    with app.app_context():
        today = date.today()
        result = generate_month(today.year, today.month)
        print(
            f'Generated sessions for {today:%Y-%m}: '
            f'created={len(result["created_ids"])} total={len(result["sessions"])}'
        )
