import os

basedir = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name, default=False):
    raw = os.environ.get(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {'1', 'true', 'yes', 'on'}


def _env_int(name, default):
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _env_float(name, default):
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def _normalize_database_url(raw_url):
    if not raw_url:
        return raw_url
    if raw_url.startswith('postgres://'):
        return raw_url.replace('postgres://', 'postgresql://', 1)
    return raw_url


class BaseConfig:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-prod')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_EXPIRATION_HOURS = _env_int('JWT_EXPIRATION_HOURS', 24)
    ADMIN_EMAILS = os.environ.get('ADMIN_EMAILS', '')
    CORS_ALLOWED_ORIGINS = os.environ.get('CORS_ALLOWED_ORIGINS', '*')
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE', 'threading')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    SQLALCHEMY_ECHO = _env_bool('SQLALCHEMY_ECHO', False)

    # Members may not join or leave this close to the start of a session.
    REGISTRATION_CUTOFF_MINUTES = _env_int('REGISTRATION_CUTOFF_MINUTES', 60)
    # Session dates and play times are wall-clock times in this zone.
    CLUB_TIMEZONE = os.environ.get('CLUB_TIMEZONE', 'Asia/Ho_Chi_Minh')

    # Fallbacks used until an admin saves club settings.
    DEFAULT_SESSION_PRICE = _env_int('DEFAULT_SESSION_PRICE', 260000)
    DEFAULT_MAX_MEMBERS = _env_int('DEFAULT_MAX_MEMBERS', 24)
    DEFAULT_SESSION_TIME = os.environ.get('DEFAULT_SESSION_TIME', '19:00')
    DEFAULT_SESSION_DURATION_MINUTES = _env_int('DEFAULT_SESSION_DURATION_MINUTES', 120)

    PAYMENT_GATEWAY_URL = os.environ.get('PAYMENT_GATEWAY_URL', 'https://test-payment.example.com/v2/gateway/api')
    PAYMENT_GATEWAY_PARTNER_CODE = os.environ.get('PAYMENT_GATEWAY_PARTNER_CODE', '')
    PAYMENT_GATEWAY_TIMEOUT_SECONDS = _env_float('PAYMENT_GATEWAY_TIMEOUT_SECONDS', 10.0)
    PAYMENT_POLL_INTERVAL_SECONDS = _env_float('PAYMENT_POLL_INTERVAL_SECONDS', 2.0)
    PAYMENT_POLL_MAX_ATTEMPTS = _env_int('PAYMENT_POLL_MAX_ATTEMPTS', 5)
    PAYMENT_RETURN_URL = os.environ.get('PAYMENT_RETURN_URL', 'http://localhost:5001/payment-result')


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(
        os.environ.get(
            'DATABASE_URL',
            'sqlite:///' + os.path.join(basedir, '..', 'shuttleclub_dev.db')
        )
    )


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    PAYMENT_POLL_INTERVAL_SECONDS = 0
    PAYMENT_POLL_MAX_ATTEMPTS = 3


class ProductionConfig(BaseConfig):
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(os.environ.get('DATABASE_URL'))


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}
