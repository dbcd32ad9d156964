from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.schema import MetaData

from reelvault.infra.settings import settings

# Deterministic constraint/index names
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


def get_engine(db_url: str | None = None, echo: bool | None = None) -> Engine:
    """Create a database engine.

    SQLite URLs get ``check_same_thread=False`` so the catalog can be read from
    request handlers; in-memory SQLite shares one connection across sessions.
    """
    chosen_url = db_url or settings.database_url

    kwargs: dict[str, object] = {
        "echo": settings.echo_sql if echo is None else echo,
        "future": True,
        "pool_pre_ping": True,
    }
    if chosen_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in chosen_url or chosen_url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool

    return create_engine(chosen_url, **kwargs)


engine = get_engine()

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
    expire_on_commit=False,
)


def get_sessionmaker(db_url: str | None = None) -> sessionmaker:
    """Get a session factory, bound to ``db_url`` when one is given."""
    if not db_url:
        return SessionLocal
    return sessionmaker(
        bind=get_engine(db_url),
        autoflush=False,
        autocommit=False,
        future=True,
        expire_on_commit=False,
    )


def create_schema(bind: Engine | None = None) -> None:
    """Create catalog tables if they do not exist."""
    # Import entities so their tables are registered on Base.metadata
    from reelvault.domain import entities  # noqa: F401

    Base.metadata.create_all(bind or engine)
