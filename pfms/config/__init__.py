import os
from dotenv import load_dotenv

load_dotenv()


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return None
    return int(raw)


class Config:
    # Provide a safe development fallback to avoid 500s when SECRET_KEY is missing.
    SECRET_KEY = os.getenv('SECRET_KEY') or 'dev-secret-key-change-me'
    DATABASE_URL = os.getenv('DATABASE_URL')
    SQLALCHEMY_DATABASE_URI = DATABASE_URL or 'sqlite:///pfms.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    REMEMBER_COOKIE_SECURE = True
    REMEMBER_COOKIE_HTTPONLY = True
    WTF_CSRF_TIME_LIMIT = None

    # Pin the year used for age calculations (e.g. "2025" while a season's
    # nominations are still open in January). Empty means the current year.
    ELIGIBILITY_REFERENCE_YEAR = _optional_int('ELIGIBILITY_REFERENCE_YEAR')

    # Spreadsheet import/export
    EXPORT_DIR = os.getenv('EXPORT_DIR', '/tmp/exports')
    MAX_IMPORT_ROWS = int(os.getenv('MAX_IMPORT_ROWS', '500'))
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024

    RATELIMIT_ENABLED = os.getenv('RATELIMIT_ENABLED', 'true').lower() in ('1', 'true', 'yes')
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_DEFAULT = os.getenv('RATELIMIT_DEFAULT', '2000 per day;300 per hour')
    RATELIMIT_HEADERS_ENABLED = True
