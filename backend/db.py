"""
Database connection helper.

This module centralizes how connections are created. Right now we use
`psycopg.connect(settings.db_url)` which opens a new connection per call.
Rows come back as dicts (`dict_row`) so repositories can map columns by
name instead of position.

Why this exists:
- Single place to swap connection strategy (pooling, async driver, etc.).
- Keeps repository code focused on SQL and row mapping.

Usage:
    from db import get_conn
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1;")
"""

import psycopg
from psycopg.rows import dict_row
from settings import settings


def get_conn():
    """Return a new psycopg connection using `settings.db_url`.

    We add a short `connect_timeout` so HTTP requests don't hang
    indefinitely if the database is unreachable.
    """

    return psycopg.connect(settings.db_url, connect_timeout=5, row_factory=dict_row)
