# poultry_app/database/db.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from poultry_app.core.config import Config


def make_engine(url: str, **kwargs):
    """
    Engine dengan pool bersama untuk semua request (pool_pre_ping untuk MySQL
    yang suka memutus koneksi idle).
    """
    kwargs.setdefault("pool_pre_ping", True)
    kwargs.setdefault("future", True)
    return create_engine(url, **kwargs)


def make_session_factory(bind):
    return sessionmaker(
        bind=bind,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


# SQLAlchemy engine
engine = make_engine(Config.database_url())

# Session factory
SessionLocal = make_session_factory(engine)

# Base untuk model ORM
Base = declarative_base()


def get_db():
    """
    Dependency / helper untuk ambil session DB
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
