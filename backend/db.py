import logging
import os
from sqlmodel import Session, SQLModel, create_engine

logger = logging.getLogger(__name__)

DEFAULT_SQLITE_PATH = "./timetracker.db"


def resolve_database_url(environ=None) -> str:
    """Pick the database URL for this process.

    DATABASE_URL wins; otherwise the time tracker keeps its data in a local
    SQLite file at DATABASE_PATH. Production deployments (ENV=prod/production
    or running on Render) must supply DATABASE_URL.
    """
    environ = os.environ if environ is None else environ
    url = environ.get("DATABASE_URL")
    if not url:
        env = environ.get("ENV", environ.get("RENDER", "").lower() or "dev")
        if env in ("prod", "production") or environ.get("RENDER"):
            raise RuntimeError(
                "DATABASE_URL missing in production; refusing to keep invoices in a local SQLite file. "
                "Please configure DATABASE_URL environment variable."
            )
        url = f"sqlite:///{environ.get('DATABASE_PATH', DEFAULT_SQLITE_PATH)}"

    # Heroku-style postgres:// scheme is not accepted by SQLAlchemy 2
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # Sync routes run in FastAPI's threadpool
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


DATABASE_URL = resolve_database_url()
logger.info(f"DB_URL_DRIVER={DATABASE_URL.split(':', 1)[0]}")

engine = create_engine(DATABASE_URL, echo=False, **_engine_options(DATABASE_URL))


def create_db_and_tables(bind=None):
    """Create the company, client, job, time entry and invoice tables if missing.

    Existing tables and rows are left alone.
    """
    SQLModel.metadata.create_all(bind or engine)


def get_session():
    """One session per request."""
    with Session(engine) as session:
        yield session
