import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _engine_options(uri: str) -> dict:
    # Bounded waits on the pool and, for SQLite, on the database lock
    options = {"pool_pre_ping": True}
    if uri.startswith("sqlite"):
        options["connect_args"] = {"timeout": 10}
    else:
        options["pool_timeout"] = 10
    return options


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as memberportal.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "memberportal.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(SQLALCHEMY_DATABASE_URI)

    # Client-held state lives in Flask's signed cookie session
    SESSION_COOKIE_NAME = "memberportal_session"
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Strict"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "true").lower() == "true"

    # Sliding idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    # Brute-force protection (password stage)
    MAX_LOGIN_ATTEMPTS = 3
    LOCKOUT_MINUTES = 15

    # Email OTP (second factor)
    OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", "300"))  # 5 minutes
    OTP_MAX_ATTEMPTS = 3
    OTP_LOCKOUT_MINUTES = 5
    OTP_STORE_MAXSIZE = int(os.getenv("OTP_STORE_MAXSIZE", "10000"))

    # Password policy
    BCRYPT_ROUNDS = 12
    PASSWORD_CHANGE_COOLDOWN_MINUTES = 5
    PASSWORD_MAX_AGE_DAYS = 90          # password expires after 90 days
    RESET_HISTORY_COUNT = 2             # reset path checks the last 2 history rows

    # Profile data at rest (falls back to SECRET_KEY)
    NRIC_ENCRYPTION_KEY = os.getenv("NRIC_ENCRYPTION_KEY")

    # Password reset
    RESET_TOKEN_TTL_SECONDS = 60 * 60
    TRUSTED_ORIGIN = os.getenv("TRUSTED_ORIGIN", "https://localhost:5002")
    RESET_PATH = "/reset-password"

    # Bot verification (reCAPTCHA v3 compatible)
    BOT_CHECK_ENABLED = os.getenv("BOT_CHECK_ENABLED", "true").lower() == "true"
    BOT_CHECK_VERIFY_URL = os.getenv(
        "BOT_CHECK_VERIFY_URL", "https://www.google.com/recaptcha/api/siteverify"
    )
    BOT_CHECK_SECRET = os.getenv("BOT_CHECK_SECRET")
    BOT_CHECK_MIN_SCORE = float(os.getenv("BOT_CHECK_MIN_SCORE", "0.5"))
    BOT_CHECK_TIMEOUT_SECONDS = 5

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"
    SMTP_TIMEOUT_SECONDS = 10

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Trusted reverse proxies in front of the app; 0 means clients connect directly
    PROXY_FIX_X_FOR = int(os.getenv("PROXY_FIX_X_FOR", "0"))

    # Basic app settings
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    NRIC_ENCRYPTION_KEY = None
    PROXY_FIX_X_FOR = 0
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SESSION_COOKIE_SECURE = False
    BCRYPT_ROUNDS = 4
    BOT_CHECK_ENABLED = False
    TRUSTED_ORIGIN = "https://portal.example.com"
    SMTP_HOST = "smtp.test"
    SMTP_FROM_EMAIL = "no-reply@portal.example.com"
    LOG_LEVEL = "WARNING"
