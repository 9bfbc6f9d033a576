import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_list(name: str, default: str) -> list[str]:
    return [item.strip() for item in os.environ.get(name, default).split(',') if item.strip()]


class Config:
    """Settings shared by every environment; each value can be overridden from the environment."""

    SECRET_KEY = os.environ.get('SECRET_KEY') or os.urandom(32).hex()
    FLASK_ENV = os.environ.get('FLASK_ENV', 'development')
    DEBUG = FLASK_ENV == 'development'
    API_PREFIX = '/api/v1'

    # Relational store: users, sessions, devices, artifact metadata, upload log
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///vaultshare.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Blob store: encrypted payloads only
    BLOB_STORAGE_PATH = os.environ.get('BLOB_STORAGE_PATH', os.path.join(os.getcwd(), 'instance', 'blobs'))

    CORS_ORIGINS = _env_list('CORS_ORIGINS', 'http://localhost:5173')

    SESSION_DURATION_HOURS = _env_int('SESSION_DURATION_HOURS', 24)

    # Per-device sliding window; log rows older than the retention horizon are swept
    UPLOAD_RATE_LIMIT = _env_int('UPLOAD_RATE_LIMIT', 10)
    UPLOAD_RATE_WINDOW_SECONDS = _env_int('UPLOAD_RATE_WINDOW_SECONDS', 3600)
    UPLOAD_LOG_RETENTION_HOURS = _env_int('UPLOAD_LOG_RETENTION_HOURS', 24)

    MAX_FILE_SIZE = _env_int('MAX_FILE_SIZE', 100 * 1024 * 1024)
    # Multipart framing and form fields ride on top of the payload
    MAX_CONTENT_LENGTH = MAX_FILE_SIZE + 1024 * 1024

    # Flask-Limiter, per client, for the unauthenticated surface
    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_STRATEGY = os.environ.get('RATELIMIT_STRATEGY', 'fixed-window')
    RATELIMIT_HEADERS_ENABLED = True

    LOG_DIR = os.environ.get('LOG_DIR', 'logs')
    LOG_TO_FILE = os.environ.get('LOG_TO_FILE', 'true').lower() == 'true'

    @classmethod
    def validate_config(cls) -> list[str]:
        """Return human-readable problems with the active settings; empty when all is well."""
        issues = []

        if not os.environ.get('SECRET_KEY'):
            issues.append("SECRET_KEY is not set; a random key is used and changes on every restart")

        if not cls.SQLALCHEMY_DATABASE_URI.startswith(('postgresql://', 'postgres://', 'sqlite://')):
            issues.append("DATABASE_URL should be a PostgreSQL or SQLite connection string")

        for name in ('SESSION_DURATION_HOURS', 'UPLOAD_RATE_LIMIT', 'UPLOAD_RATE_WINDOW_SECONDS', 'MAX_FILE_SIZE'):
            if getattr(cls, name) <= 0:
                issues.append(f"{name} must be positive")

        if cls.UPLOAD_LOG_RETENTION_HOURS * 3600 < cls.UPLOAD_RATE_WINDOW_SECONDS:
            issues.append("UPLOAD_LOG_RETENTION_HOURS must cover the upload rate window")

        return issues


class DevelopmentConfig(Config):
    DEBUG = True
    FLASK_ENV = 'development'


class ProductionConfig(Config):
    DEBUG = False
    FLASK_ENV = 'production'

    @classmethod
    def validate_config(cls) -> list[str]:
        issues = super().validate_config()

        if cls.SQLALCHEMY_DATABASE_URI.startswith('sqlite://'):
            issues.append("SQLite is not suitable for concurrent production traffic; set DATABASE_URL")

        if cls.RATELIMIT_STORAGE_URI == 'memory://':
            issues.append("RATELIMIT_STORAGE_URI uses per-process memory; limits are not shared between workers")

        if '*' in cls.CORS_ORIGINS:
            issues.append("CORS_ORIGINS allows any origin")

        return issues


class TestingConfig(Config):
    TESTING = True
    DEBUG = True
    FLASK_ENV = 'testing'
    SECRET_KEY = 'test-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    RATELIMIT_ENABLED = False
    LOG_TO_FILE = False


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig,
}
