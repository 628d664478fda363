from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager, current_user
from flask_wtf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import bcrypt


def rate_limit_key() -> str:
    """Team and admin accounts share one budget across addresses."""
    if current_user.is_authenticated:
        return f"user:{current_user.get_id()}"
    return get_remote_address()


# Per-route budgets; defaults and storage come from RATELIMIT_* config
LOGIN_LIMIT = "5 per minute"
ELIGIBILITY_LIMIT = "60 per minute"
IMPORT_LIMIT = "10 per hour"

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
limiter = Limiter(key_func=rate_limit_key)

__all__ = [
    "db",
    "migrate",
    "login_manager",
    "csrf",
    "limiter",
    "bcrypt",
    "rate_limit_key",
    "LOGIN_LIMIT",
    "ELIGIBILITY_LIMIT",
    "IMPORT_LIMIT",
]
