from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Base class for all database models
Base = declarative_base()


def make_engine(database_url: str) -> Engine:
    """
    Create a database engine for the given URL.

    SQLite connections are shared between the request threads and the
    background scheduler thread, so the same-thread check is disabled there.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args)


def make_session_factory(engine: Engine) -> sessionmaker:
    """
    Create a session factory bound to engine.

    autocommit=False: Changes require explicit commit
    autoflush=False: Don't auto-flush before queries
    expire_on_commit=False: Rows stay readable after the session closes
    """
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create tables for every model that inherits from Base"""
    # Model modules must be imported so their tables are registered on Base
    from peofiles.models import peo_file  # noqa: F401

    Base.metadata.create_all(bind=engine)
