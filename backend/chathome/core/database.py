from sqlalchemy import event
from sqlmodel import SQLModel, create_engine, Session

from chathome.core.config import settings

engine = create_engine(
    f"sqlite:///{settings.db_path}",
    echo=settings.debug,
    connect_args={"check_same_thread": False},
)


@event.listens_for(engine, "connect")
def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_db() -> None:
    import chathome.models  # noqa: F401 - register users, conversations, messages, relayed_messages
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(engine)


def get_session():
    """Request-scoped session for the REST routes."""
    with Session(engine) as session:
        yield session
