import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Use env vars; avoid hardcoding secrets in code.
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///flightbook.sqlite3")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # object storage for tickets
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local")
    STORAGE_ROOT = os.getenv("STORAGE_ROOT", "storage")
    STORAGE_S3_BUCKET = os.getenv("STORAGE_S3_BUCKET", "")
    STORAGE_S3_REGION = os.getenv("STORAGE_S3_REGION", "")
    TICKETS_BUCKET = os.getenv("TICKETS_BUCKET", "tickets")
    TICKETS_BUCKET_PUBLIC = _flag("TICKETS_BUCKET_PUBLIC")
    TICKET_URL_EXPIRES = int(os.getenv("TICKET_URL_EXPIRES", str(60 * 60 * 24 * 7)))
    TICKET_PDF_ENABLED = _flag("TICKET_PDF_ENABLED", "true")

    # search result cache, seconds; 0 keeps entries forever
    SEARCH_CACHE_TTL = int(os.getenv("SEARCH_CACHE_TTL", "1800"))

    SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY", "")
    MAIL_SENDER = os.getenv("MAIL_SENDER", "noreply@flightbook.example")

    LOG_FILE = os.getenv("LOG_FILE", "")
    DEBUG = False
    TESTING = False


class DevelopmentConfig(Config):
    DEBUG = True


class ProductionConfig(Config):
    pass


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SENDGRID_API_KEY = ""
