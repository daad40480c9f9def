from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from rankflow.db_models import Base


def build_session_factory(database_url: str) -> sessionmaker[Session]:
    connect_args: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    engine = create_engine(database_url, connect_args=connect_args)
    # Ledger tables are created on first use; there is no migration tooling.
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
