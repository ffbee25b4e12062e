from datetime import datetime, timezone

from fastapi import Request
from sqlalchemy import DateTime, Engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator
from sqlmodel import Session, SQLModel, create_engine


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp; every datetime column is stored this way."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Naive values are taken to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    DateTime(timezone=True) that always hands back aware UTC.
    SQLite keeps no offset, so values read from it are re-tagged as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return as_utc(value)

    def process_result_value(self, value, dialect):
        return as_utc(value)


def normalized_database_url(raw_url: str) -> str:
    """
    DATABASE_URL normalization:
    - postgres:// and driverless postgresql:// URLs use the psycopg3 dialect.
    - Everything else (SQLite etc.) is left as is.
    """
    if not raw_url:
        return "sqlite:///./millet_pay.db"
    raw_url = raw_url.strip()
    if raw_url.startswith("postgres://"):
        return "postgresql+psycopg://" + raw_url[len("postgres://") :]
    if raw_url.startswith("postgresql://") and "+psycopg" not in raw_url.split("://", 1)[0]:
        return "postgresql+psycopg://" + raw_url[len("postgresql://") :]
    return raw_url


def build_engine(database_url: str) -> Engine:
    url = normalized_database_url(database_url)
    # In-memory SQLite: a single shared connection so tables created by init_db are visible everywhere
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    use_static_pool = url.startswith("sqlite") and ":memory:" in url
    return create_engine(
        url,
        connect_args=connect_args,
        poolclass=StaticPool if use_static_pool else None,
    )


def init_db(engine: Engine) -> None:
    # Imported for table registration on SQLModel.metadata
    from millet_pay import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_db(request: Request):
    with Session(request.app.state.engine) as session:
        yield session
