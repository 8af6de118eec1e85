from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

log = logging.getLogger(__name__)

Base = declarative_base()

_AFTER_COMMIT = "after_commit"
_AFTER_ROLLBACK = "after_rollback"

# Bound by init_engine(); importing modules keep a reference to the same factory.
SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)

_engine: Engine | None = None


def _sqlite_pragmas(dbapi_conn, _record) -> None:
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


def init_engine(database_url: str) -> Engine:
    global _engine

    url = str(database_url or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL is empty")

    kwargs: dict[str, Any] = {"future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs.update(pool_pre_ping=True, pool_size=10, max_overflow=20, pool_recycle=1800)

    engine = create_engine(url, **kwargs)
    if url.startswith("sqlite"):
        event.listen(engine, "connect", _sqlite_pragmas)

    if _engine is not None:
        _engine.dispose()
    _engine = engine
    SessionLocal.configure(bind=engine)
    return engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("DB not initialized")
    return _engine


def after_commit(db, fn: Callable[[], Any]) -> None:
    """Run ``fn`` once ``db``'s unit of work has committed; dropped on rollback."""
    db.info.setdefault(_AFTER_COMMIT, []).append(fn)


def after_rollback(db, fn: Callable[[], Any]) -> None:
    """Run ``fn`` if ``db``'s unit of work rolls back; dropped on commit."""
    db.info.setdefault(_AFTER_ROLLBACK, []).append(fn)


def _run_hooks(hooks: list[Callable[[], Any]], stage: str) -> None:
    for fn in hooks:
        try:
            fn()
        except Exception:
            log.exception("%s hook failed: %r", stage, fn)


@contextmanager
def unit_of_work() -> Iterator[Any]:
    """
    One session, one transaction: commit on success, rollback on any exception.

    Multi-row state changes (assignment status + candidate mirror) are written
    through the same session so they land together or not at all. Side effects
    outside the database (stored files, cache entries, outgoing mail) are
    registered with ``after_commit``/``after_rollback`` and run once the
    outcome is known.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        _run_hooks(db.info.pop(_AFTER_ROLLBACK, []), "after_rollback")
        raise
    finally:
        db.close()
    _run_hooks(db.info.pop(_AFTER_COMMIT, []), "after_commit")


def ping_db() -> bool:
    try:
        with get_engine().connect() as conn:
            conn.exec_driver_sql("SELECT 1")
        return True
    except Exception:
        return False


def get_pool_stats() -> dict[str, Any]:
    if _engine is None:
        return {"initialized": False}
    pool = _engine.pool
    out: dict[str, Any] = {"initialized": True, "class": type(pool).__name__}
    for name in ("size", "checkedin", "checkedout", "overflow"):
        fn = getattr(pool, name, None)
        if callable(fn):
            try:
                out[name] = fn()
            except Exception:
                pass
    return out
