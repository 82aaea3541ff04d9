from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session
from coursestore.config import settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        # in-memory databases live as long as their single connection
        if url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return options

    return {
        "pool_pre_ping": True,   # drop dead connections before use
        "pool_recycle": 1800,
    }


engine = create_engine(settings.database_url, echo=False, **_engine_options(settings.database_url))


def create_db_and_tables():
    import coursestore.models  # noqa: F401  registers every table on the metadata
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
