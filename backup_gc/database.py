from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()

DEFAULT_CONNECT_TIMEOUT = 10
DEFAULT_STATEMENT_TIMEOUT = 30


def create_engine_for_url(
    database_url: str,
    echo: bool = False,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    statement_timeout: float = DEFAULT_STATEMENT_TIMEOUT,
) -> Engine:
    """
    Build an engine usable from the informer and worker threads.

    SQLite connections are shared across threads; an in-memory database gets a
    single static connection so every session sees the same tables.

    Postgres connections get a connect timeout and a server-side
    statement_timeout; SQLite connections get a busy timeout.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False, "timeout": connect_timeout}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, future=True, echo=echo, **kwargs)

    connect_args = {
        "connect_timeout": max(int(connect_timeout), 1),
        "options": f"-c statement_timeout={int(statement_timeout * 1000)}",
    }
    return create_engine(database_url, future=True, echo=echo, pool_pre_ping=True, connect_args=connect_args)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        future=True,
        expire_on_commit=False,
    )


def init_db(engine: Engine) -> None:
    """
    Import models and create tables if they don't exist.
    Alembic is the real migration tool, but this keeps local dev and tests sane.
    """
    from backup_gc import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
