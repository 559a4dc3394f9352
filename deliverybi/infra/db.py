from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional, Sequence
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, Result
from sqlalchemy.orm import Session, sessionmaker
from deliverybi.core.config import settings
from deliverybi.core.logging import db_logger

# -----------------------------------------------------------------------------
# 1) Engine + Session (pool de conexiones)
# -----------------------------------------------------------------------------

_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None

def get_engine() -> Engine:
    global _engine, _SessionLocal
    if _engine is None:
        _engine = create_engine(
            settings.DATABASE_URL,
            pool_pre_ping=True,
            pool_size=10,
            max_overflow=20,
            future=True,
        )
        _SessionLocal = sessionmaker(
            bind=_engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )
        db_logger.info("Database engine created", pool_size=10)
    return _engine

@contextmanager
def session_scope() -> Generator[Session, None, None]:
    if _SessionLocal is None:
        get_engine()
    assert _SessionLocal is not None
    session: Session = _SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

# -----------------------------------------------------------------------------
# 2) Healthcheck (/readyz)
# -----------------------------------------------------------------------------

def health_check() -> Dict[str, Any]:
    eng = get_engine()
    with eng.connect() as conn:
        conn.execute(text("SELECT 1"))
        db = conn.execute(text("SELECT current_database()")).scalar()
        user = conn.execute(text("SELECT current_user")).scalar_one()
        return {
            "ok": True,
            "database": db,
            "user": user,
        }

# -----------------------------------------------------------------------------
# 3) Helpers de consulta (SELECT), RPC y ejecución (DML)
# -----------------------------------------------------------------------------

def fetch_all(sql: str, params: Optional[Dict[str, Any]] = None,
              timeout_ms: Optional[int] = None) -> List[Dict[str, Any]]:
    eng = get_engine()
    with eng.begin() as conn:
        if timeout_ms:
            conn.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))
        result: Result = conn.execute(text(sql), params or {})
        rows = result.mappings().all()
        return [dict(r) for r in rows]

def fetch_one(sql: str, params: Optional[Dict[str, Any]] = None,
              timeout_ms: Optional[int] = None) -> Optional[Dict[str, Any]]:
    rows = fetch_all(sql, params=params, timeout_ms=timeout_ms)
    return rows[0] if rows else None

def execute(sql: str, params: Optional[Dict[str, Any]] = None) -> None:
    eng = get_engine()
    with eng.begin() as conn:
        conn.execute(text(sql), params or {})

def execute_returning(sql: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """Runs a write statement with RETURNING and hands back the rows."""
    eng = get_engine()
    with eng.begin() as conn:
        result: Result = conn.execute(text(sql), params or {})
        return [dict(r) for r in result.mappings().all()]

def call_rpc(function: str, params: Dict[str, Any], *,
             timeout_ms: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    Calls a set-returning Postgres function with named arguments.

    ``call_rpc("get_controlling_metrics", {"p_company_ids": [...], ...})`` runs
    ``SELECT * FROM get_controlling_metrics(p_company_ids => :p_company_ids, ...)``.
    """
    if not function.replace("_", "").isalnum():
        raise ValueError(f"Nombre de función inválido: {function}")
    args = ", ".join(f"{name} => :{name}" for name in params)
    sql = f"SELECT * FROM {function}({args})"
    return fetch_all(sql, params, timeout_ms=timeout_ms)

def in_clause_params(prefix: str, values: Sequence[Any]) -> tuple[str, Dict[str, Any]]:
    """Expands ``values`` into ``:prefix_0, :prefix_1`` placeholders for IN (...) filters."""
    names = [f"{prefix}_{i}" for i in range(len(values))]
    return ", ".join(f":{n}" for n in names), dict(zip(names, values))
