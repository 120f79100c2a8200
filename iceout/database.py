from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi import Request
import os
from dotenv import load_dotenv

load_dotenv()

Base = declarative_base()


def database_url_from_env() -> str:
    # Prefer discrete DB_* variables when present (Docker local). Fallback to DATABASE_URL.
    db_user = os.getenv("DB_USER")
    db_password = os.getenv("DB_PASSWORD")
    db_host = os.getenv("DB_HOST")
    db_port = os.getenv("DB_PORT", "5432")
    db_name = os.getenv("DB_NAME")
    db_sslmode = os.getenv("DB_SSLMODE")  # e.g., require

    if db_user and db_password and db_host and db_name:
        url = f"postgresql+psycopg2://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"
        if db_sslmode:
            url += f"?sslmode={db_sslmode}"
        return url

    url = os.getenv("DATABASE_URL")
    if not url:
        missing = [k for k, v in {
            "DB_USER": db_user,
            "DB_PASSWORD": db_password,
            "DB_HOST": db_host,
            "DB_NAME": db_name,
        }.items() if not v]

        raise RuntimeError(
            f"Missing required database env vars: {', '.join(missing)}. "
            "Set DB_USER/DB_PASSWORD/DB_HOST/DB_NAME (optional DB_PORT, DB_SSLMODE) or provide DATABASE_URL."
        )
    return url


def create_db_engine(url: str):
    """Build the engine for ``url``.

    In-memory SQLite gets a single shared connection so every session sees
    the same database (used by the test suite and local smoke runs).
    """
    if url.startswith("sqlite") and ":memory:" in url:
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine) -> None:
    # Create tables if they don't exist (migrations recommended for Postgres deployments)
    from . import models  # noqa: F401  registers the tables on Base.metadata

    Base.metadata.create_all(bind=engine)


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
