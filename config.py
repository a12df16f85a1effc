"""Environment-aware configuration for the Flask application."""
import os
import tempfile
from datetime import timedelta


class BaseConfig:
    def __init__(self) -> None:
        # Defaults for local dev: SQLite db and a non-empty secret. Override via env for production.
        self.SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-me")
        db_url = os.getenv("DATABASE_URL")
        # If DATABASE_URL points to a placeholder host (e.g., db_host) or is missing, fall back to SQLite for local dev.
        if db_url and "db_host" not in db_url:
            self.SQLALCHEMY_DATABASE_URI = db_url
        else:
            self.SQLALCHEMY_DATABASE_URI = os.getenv(
                "SQLITE_URL",
                f"sqlite:///{os.path.join(os.getcwd(), 'instance', 'operatives.db')}",
            )
        self.SQLALCHEMY_TRACK_MODIFICATIONS = False
        self.SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
        if not self.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
            self.SQLALCHEMY_ENGINE_OPTIONS.update(
                {
                    "pool_size": int(os.getenv("DB_POOL_SIZE", 10)),
                    "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", 20)),
                    "pool_timeout": int(os.getenv("DB_POOL_TIMEOUT", 30)),
                    "pool_recycle": int(os.getenv("DB_POOL_RECYCLE", 1800)),
                }
            )
        self.SESSION_COOKIE_HTTPONLY = True
        self.REMEMBER_COOKIE_HTTPONLY = True
        self.SESSION_COOKIE_SAMESITE = "Lax"
        session_hours = int(os.getenv("SESSION_LIFETIME_HOURS", 24))
        self.PERMANENT_SESSION_LIFETIME = timedelta(hours=session_hours)
        self.REMEMBER_COOKIE_DURATION = timedelta(hours=session_hours)
        self.PREFERRED_URL_SCHEME = os.getenv("PREFERRED_URL_SCHEME", "https")
        self.WTF_CSRF_TIME_LIMIT = 3600
        self.WTF_CSRF_ENABLED = True
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_DIR = os.getenv("LOG_DIR", os.path.join(os.getcwd(), "logs"))
        self.DEFAULT_ADMIN_USERNAME = os.getenv("DEFAULT_ADMIN_USERNAME", "admin")
        self.DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD", "")
        self.DEFAULT_CATALOGS_PATH = os.getenv(
            "DEFAULT_CATALOGS_PATH",
            os.path.join(os.path.dirname(os.path.abspath(__file__)), "utils", "data", "default_catalogs.json"),
        )
        # Operational day boundaries. The dashboard and each export flavor are configured independently;
        # the complete export follows calendar dates and the audit export runs 09:00 to 09:00.
        self.DASHBOARD_DAY_CUTOFF_HOUR = int(os.getenv("DASHBOARD_DAY_CUTOFF_HOUR", 9))
        self.COMPLETE_EXPORT_CUTOFF_HOUR = int(os.getenv("COMPLETE_EXPORT_CUTOFF_HOUR", 0))
        self.AUDIT_EXPORT_CUTOFF_HOUR = int(os.getenv("AUDIT_EXPORT_CUTOFF_HOUR", 9))
        self.MEETING_TYPE_MARKER = os.getenv("MEETING_TYPE_MARKER", "REUNION VECINAL")
        self.OTHER_TYPE_MARKER = os.getenv("OTHER_TYPE_MARKER", "OTRO OPERATIVO")
        self.OTHER_REASON_MARKER = os.getenv("OTHER_REASON_MARKER", "OTRO")
        self.LOGIN_ATTEMPT_LIMIT = int(os.getenv("LOGIN_ATTEMPT_LIMIT", 10))
        self.LOGIN_LOCKOUT_MINUTES = int(os.getenv("LOGIN_LOCKOUT_MINUTES", 15))
        self.OPERATIVES_PER_PAGE = int(os.getenv("OPERATIVES_PER_PAGE", 50))


class DevelopmentConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.DEBUG = True
        self.ENV = "development"
        self.SESSION_COOKIE_SECURE = False
        self.REMEMBER_COOKIE_SECURE = False
        self.DEFAULT_ADMIN_PASSWORD = self.DEFAULT_ADMIN_PASSWORD or "adm123"


class ProductionConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.DEBUG = False
        self.ENV = "production"
        self.SESSION_COOKIE_SECURE = True
        self.REMEMBER_COOKIE_SECURE = True


class TestingConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.TESTING = True
        self.DEBUG = False
        self.ENV = "testing"
        self.SQLALCHEMY_DATABASE_URI = "sqlite://"
        self.SQLALCHEMY_ENGINE_OPTIONS = {}
        self.WTF_CSRF_ENABLED = False
        self.SESSION_COOKIE_SECURE = False
        self.REMEMBER_COOKIE_SECURE = False
        self.PREFERRED_URL_SCHEME = "http"
        self.DEFAULT_ADMIN_PASSWORD = ""
        self.LOG_LEVEL = "WARNING"
        self.LOG_DIR = os.getenv("LOG_DIR", os.path.join(tempfile.gettempdir(), "patrol-ops-logs"))
