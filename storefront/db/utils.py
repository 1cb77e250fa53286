from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert


def _normalize_db_url(url: str | None) -> str | None:
    # Neon often returns "postgres://..." , asyncpg/SQLAlchemy needs "postgresql+asyncpg://..."
    if not url:
        return None
    if url.startswith("postgres://",):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def dialect_insert(session, model):
    """INSERT construct for the session's dialect, so callers can chain on_conflict_do_nothing()."""
    dialect = session.bind.dialect.name
    if dialect == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)


def configure_sqlite(engine, busy_timeout_ms: int = 30000):
    """Make sqlite behave closer to postgres for local runs and tests.

    pysqlite defers BEGIN until the first DML statement, which breaks SAVEPOINT and lets
    two writers deadlock on lock upgrade. Take the write lock at BEGIN instead, and
    turn on foreign keys.
    """
    from sqlalchemy import event

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine
