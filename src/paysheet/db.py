from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()


def create_session_factory(database_url: str, create_tables: bool = True, **engine_kwargs: Any) -> sessionmaker:
    engine = create_engine(database_url, pool_pre_ping=True, **engine_kwargs)
    if create_tables:
        Base.metadata.create_all(bind=engine)
    return sessionmaker(autoflush=False, bind=engine)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
