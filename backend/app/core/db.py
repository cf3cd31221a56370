from sqlalchemy import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from app.core.config import settings


def build_engine(database_url: str | None = None) -> Engine:
    """
    Create the SQL engine for the execution store.

    An in-memory SQLite URL gets a single shared connection so every session
    sees the same database.
    """
    database_url = database_url or settings.DATABASE_URL
    engine_kwargs: dict = {"echo": settings.LOG_SQL}

    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs.update(
            {
                "pool_pre_ping": True,  # Verify connections before use
                "pool_recycle": 3600,  # Recycle connections every hour
                "pool_size": 10,
                "max_overflow": 20,
            }
        )

    return create_engine(database_url, **engine_kwargs)


def init_db(engine: Engine) -> None:
    # make sure all SQLModel tables are imported before creating them
    from app.infrastructure.database import sqlmodel_entities  # noqa: F401

    SQLModel.metadata.create_all(engine)
