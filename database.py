from sqlmodel import Session, create_engine
from settings import DATABASE_URL

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args)


def get_session():
    """FastAPI dependency yielding a database session per request."""
    with Session(engine) as session:
        yield session


def new_session() -> Session:
    """Standalone session for code running outside a request (WebSocket handlers)."""
    return Session(engine)
