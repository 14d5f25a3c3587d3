from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import CATALOG

Base = declarative_base()


def build_engine(database_url: str = CATALOG.database_url) -> Engine:
    is_sqlite = database_url.startswith("sqlite")
    connect_args = {"check_same_thread": False} if is_sqlite else {}

    engine_kwargs = {"connect_args": connect_args}
    if is_sqlite and _is_memory_url(database_url):
        # One shared connection, otherwise every pooled connection gets its own empty database.
        engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs.update(
            {
                "pool_pre_ping": True,
                "pool_recycle": CATALOG.pool_recycle_s,
            }
        )
    return create_engine(database_url, **engine_kwargs)


def _is_memory_url(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in database_url


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_all(engine: Engine) -> None:
    # Registers the mapped classes on Base.metadata.
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
