import logging
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from smartlink.core.settings import settings

logger = logging.getLogger(__name__)

SQLALCHEMY_DATABASE_URL = settings.database_url

connect_args: dict = {}
if SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

_HOOKS_KEY = "post_commit_hooks"


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def on_commit(db: Session, fn: Callable[[], None]) -> None:
    """Run ``fn`` once the enclosing ``atomic`` unit has committed.

    Hooks are discarded when the unit rolls back.
    """
    db.info.setdefault(_HOOKS_KEY, []).append(fn)


def _run_hooks(hooks: list[Callable[[], None]]) -> None:
    for fn in hooks:
        try:
            fn()
        except Exception:
            logger.exception("database.post_commit_hook.error hook=%s", getattr(fn, "__name__", repr(fn)))


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Unit of work: commit on clean exit, full rollback on any exception."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        db.info.pop(_HOOKS_KEY, None)
        raise
    _run_hooks(db.info.pop(_HOOKS_KEY, None) or [])
