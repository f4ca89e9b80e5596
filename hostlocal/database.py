from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool

Base = declarative_base()


def create_db_engine(db_path: str) -> Engine:
    # one short-lived process per invocation, no pooling needed
    return create_engine(
        f"sqlite:///{db_path}",
        connect_args={"timeout": 30},
        poolclass=NullPool,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autoflush=False, bind=engine)


def create_tables(engine: Engine) -> None:
    # model modules must be imported so their tables are registered
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
