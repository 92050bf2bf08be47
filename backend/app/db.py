import sqlite3
import threading
import re
import os

try:
    import psycopg2
    import psycopg2.extras
except Exception:  # pragma: no cover - optional dependency
    psycopg2 = None
from .config import settings

_LOCK = threading.RLock()


def _is_postgres() -> bool:
    return bool(settings.db_url)


_PK_MAP = {
    "account_value": ["account", "date_time"],
    "drift_nav_snapshots": ["address", "subaccount", "as_of"],
}


def _rewrite_insert(sql: str) -> str:
    match = re.match(
        r"\s*INSERT\s+OR\s+(REPLACE|IGNORE)\s+INTO\s+([a-zA-Z0-9_]+)\s*\(([^)]+)\)\s*VALUES\s*\(([^)]+)\)",
        sql,
        re.IGNORECASE | re.DOTALL,
    )
    if not match:
        return sql
    action = match.group(1).upper()
    table = match.group(2)
    cols = [c.strip() for c in match.group(3).split(",")]
    values = match.group(4).strip()
    pk = _PK_MAP.get(table.lower())
    if not pk:
        return sql.replace("INSERT OR", "INSERT", 1)
    if action == "IGNORE":
        return f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({values}) ON CONFLICT ({', '.join(pk)}) DO NOTHING"
    update_cols = [c for c in cols if c not in pk]
    if not update_cols:
        return f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({values}) ON CONFLICT ({', '.join(pk)}) DO NOTHING"
    set_clause = ", ".join([f"{col}=EXCLUDED.{col}" for col in update_cols])
    return f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({values}) ON CONFLICT ({', '.join(pk)}) DO UPDATE SET {set_clause}"


def _replace_placeholders(sql: str) -> str:
    out = []
    in_single = False
    in_double = False
    for ch in sql:
        if ch == "'" and not in_double:
            in_single = not in_single
            out.append(ch)
            continue
        if ch == '"' and not in_single:
            in_double = not in_double
            out.append(ch)
            continue
        if ch == "?" and not in_single and not in_double:
            out.append("%s")
        else:
            out.append(ch)
    return "".join(out)


def _adapt_sql(sql: str) -> str:
    if not _is_postgres():
        return sql
    rewritten = _rewrite_insert(sql)
    return _replace_placeholders(rewritten)


class _DBCursor:
    def __init__(self, cursor):
        self._cursor = cursor

    def execute(self, sql, params=None):
        return self._cursor.execute(_adapt_sql(sql), params or [])

    def executemany(self, sql, seq):
        return self._cursor.executemany(_adapt_sql(sql), seq)

    def fetchall(self):
        return [dict(row) for row in self._cursor.fetchall()]

    def fetchone(self):
        row = self._cursor.fetchone()
        return None if row is None else dict(row)

    def __getattr__(self, item):
        return getattr(self._cursor, item)


class _DBConn:
    def __init__(self, conn):
        self._conn = conn

    def cursor(self):
        return _DBCursor(self._conn.cursor())

    def commit(self):
        return self._conn.commit()

    def close(self):
        return self._conn.close()

    def execute(self, *args, **kwargs):
        cur = self.cursor()
        cur.execute(*args, **kwargs)
        return cur


def ensure_schema() -> None:
    conn = connect()
    cur = conn.cursor()
    id_column = "id SERIAL PRIMARY KEY" if _is_postgres() else "id INTEGER PRIMARY KEY AUTOINCREMENT"

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS account_value (
            account TEXT NOT NULL,
            date_time TEXT NOT NULL,
            amount REAL,
            total_fee REAL DEFAULT 0,
            PRIMARY KEY(account, date_time)
        )
        """
    )
    cur.execute(
        f"""
        CREATE TABLE IF NOT EXISTS account_history (
            {id_column},
            account TEXT NOT NULL,
            date TEXT NOT NULL,
            event TEXT NOT NULL,
            amount REAL NOT NULL,
            exchange TEXT,
            notes TEXT,
            sub_account TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS drift_nav_snapshots (
            address TEXT NOT NULL,
            subaccount INTEGER NOT NULL DEFAULT 0,
            as_of TEXT NOT NULL,
            equity_usd REAL,
            PRIMARY KEY(address, subaccount, as_of)
        )
        """
    )

    # Indexes for account + date range reads
    cur.execute("CREATE INDEX IF NOT EXISTS idx_account_value_account_dt ON account_value(account, date_time)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_account_history_account_date ON account_history(account, date)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_drift_nav_address ON drift_nav_snapshots(address, as_of)")

    conn.commit()
    conn.close()


def connect():
    if _is_postgres():
        if psycopg2 is None:
            raise RuntimeError("psycopg2 is required for Postgres. Install the postgres extra.")
        conn = psycopg2.connect(settings.db_url, cursor_factory=psycopg2.extras.RealDictCursor)
        return _DBConn(conn)
    db_path = settings.db_path
    db_dir = os.path.dirname(os.path.abspath(db_path))
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=30000;")
    return _DBConn(conn)


def with_conn(fn):
    with _LOCK:
        conn = connect()
        try:
            return fn(conn)
        finally:
            conn.close()


def ping() -> bool:
    def _run(conn):
        cur = conn.cursor()
        cur.execute("SELECT 1 AS ok")
        return cur.fetchone() is not None

    return bool(with_conn(_run))
