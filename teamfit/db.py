from typing import Iterator, Sequence

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.dialects import postgresql, sqlite

def make_engine(url: str, **kwargs) -> Engine:
    return create_engine(url, pool_pre_ping=True, future=True, **kwargs)

def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)

def get_session(request: Request) -> Iterator[Session]:
    """
    FastAPI dependency: yields a DB session from the factory installed on
    app.state by create_app, and closes it afterwards.
    NOTE: Do NOT decorate this with @contextmanager. FastAPI expects a generator.
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()

def upsert(
    db: Session,
    model,
    rows: Sequence[dict],
    conflict_keys: Sequence[str],
    update_columns: Sequence[str] | None = None,
) -> None:
    """
    INSERT .. ON CONFLICT (conflict_keys) DO UPDATE for PostgreSQL and SQLite.
    With update_columns=None every non-key column in the row is overwritten;
    an empty list means DO NOTHING.
    """
    if not rows:
        return
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        insert = postgresql.insert
    elif dialect == "sqlite":
        insert = sqlite.insert
    else:
        raise NotImplementedError(f"upsert not supported for dialect {dialect}")

    stmt = insert(model).values(list(rows))
    if update_columns is None:
        update_columns = [c for c in rows[0] if c not in conflict_keys]
    if update_columns:
        stmt = stmt.on_conflict_do_update(
            index_elements=list(conflict_keys),
            set_={c: stmt.excluded[c] for c in update_columns},
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_keys))
    db.execute(stmt)
