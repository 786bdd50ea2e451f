from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def make_engine(database_url: str) -> Engine:
	connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
	kwargs = {}
	if database_url in ("sqlite://", "sqlite:///:memory:"):
		# Keep a single shared connection so every session sees the same in-memory DB
		kwargs["poolclass"] = StaticPool
	return create_engine(database_url, connect_args=connect_args, future=True, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
	return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
