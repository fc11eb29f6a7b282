import os
import duckdb
from pathlib import Path

DB_PATH = Path(os.getenv("FINANCE_DB_PATH", "db/finance.duckdb"))

def duckdb_conn(path=None):
    target = str(path or DB_PATH)
    if target != ":memory:":
        Path(target).parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(target, read_only=False)
