from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
import os

DEFAULT_DATABASE_URL = "sqlite:///portfolio_chat.db"


def make_engine(url: str | None = None, **kwargs):
    url = url or os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
    return create_engine(url, pool_pre_ping=True, **kwargs)


def make_session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

