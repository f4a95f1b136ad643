import pytest

from db import DEFAULT_SQLITE_PATH, resolve_database_url


def test_database_url_from_environment():
    """Test DATABASE_URL is used as given."""
    assert resolve_database_url({"DATABASE_URL": "postgresql://u:p@db/tt"}) == "postgresql://u:p@db/tt"


def test_postgres_scheme_is_rewritten():
    """Test postgres:// URLs are rewritten for SQLAlchemy."""
    url = resolve_database_url({"DATABASE_URL": "postgres://u:p@db/tt"})
    assert url == "postgresql://u:p@db/tt"


def test_sqlite_fallback_in_development():
    """Test local development falls back to a SQLite file."""
    assert resolve_database_url({}) == f"sqlite:///{DEFAULT_SQLITE_PATH}"
    assert resolve_database_url({"DATABASE_PATH": "/data/tt.db"}) == "sqlite:////data/tt.db"


@pytest.mark.parametrize("environ", [{"ENV": "production"}, {"ENV": "prod"}, {"RENDER": "true"}])
def test_production_requires_database_url(environ):
    """Test production refuses the SQLite fallback."""
    with pytest.raises(RuntimeError, match="DATABASE_URL missing"):
        resolve_database_url(environ)
