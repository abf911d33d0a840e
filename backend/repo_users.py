"""
Repository: SQL operations for `users` and `user_profiles`.

This file contains only DB interaction code. Profiles are returned as
plain dicts with the keys listed in `PROFILE_COLUMNS`; JSONB columns come
back already parsed. Keep business rules out of this module.

Important notes:
- Profile saves are optimistic: `save_profile` only writes when the
  stored `version` still equals the one the caller read, and raises
  `WriteConflict` otherwise (see `conflict.py`).
- Every write commits before returning.
"""

from typing import Any, Dict, Iterable, List, Optional
from datetime import datetime
from psycopg.types.json import Jsonb
from db import get_conn
from errors import WriteConflict

PROFILE_COLUMNS = (
    "record_name, user_id, name, age, ethnicity, fields, field_visibilities, "
    "preferences, broadcast_radius_m, search_radius_m, version"
)


def profile_record_name(user_id: str) -> str:
    return f"{user_id}_profile"


class UserRepo:
    """DB access only for `users`."""

    def upsert_user(self, user_id: str, full_name: Optional[str], email: Optional[str]) -> Dict[str, Any]:
        """Create the user or refresh name/email. NULLs never overwrite."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO users (user_id, full_name, email) VALUES (%s, %s, %s) "
                    "ON CONFLICT (user_id) DO UPDATE SET "
                    "full_name = COALESCE(EXCLUDED.full_name, users.full_name), "
                    "email = COALESCE(EXCLUDED.email, users.email) "
                    "RETURNING user_id, full_name, email, is_subscribed, last_broadcast_at",
                    (user_id, full_name, email),
                )
                row = cur.fetchone()
            conn.commit()
        return dict(row)

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT user_id, full_name, email, is_subscribed, last_broadcast_at "
                    "FROM users WHERE user_id=%s",
                    (user_id,),
                )
                row = cur.fetchone()
        return dict(row) if row else None

    def set_subscription(self, user_id: str, is_subscribed: bool) -> bool:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE users SET is_subscribed=%s WHERE user_id=%s",
                    (is_subscribed, user_id),
                )
                updated = cur.rowcount
            conn.commit()
        return updated > 0

    def set_last_broadcast_at(self, user_id: str, ts: Optional[datetime]) -> None:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE users SET last_broadcast_at=%s WHERE user_id=%s",
                    (ts, user_id),
                )
            conn.commit()

    def claim_broadcast(self, user_id: str, previous: Optional[datetime], ts: datetime) -> bool:
        """Move `last_broadcast_at` from `previous` to `ts` in one statement.

        Returns False when another request changed it first.
        """

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE users SET last_broadcast_at=%s "
                    "WHERE user_id=%s AND last_broadcast_at IS NOT DISTINCT FROM %s",
                    (ts, user_id, previous),
                )
                updated = cur.rowcount
            conn.commit()
        return updated > 0

    def delete_user(self, user_id: str) -> bool:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM users WHERE user_id=%s", (user_id,))
                deleted = cur.rowcount
            conn.commit()
        return deleted > 0

    def ping(self) -> None:
        """Lightweight DB health check. Raises on error."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")


class ProfileRepo:
    """DB access only for `user_profiles`.

    Responsibilities:
    - Map profile dicts <-> rows (JSONB for the free-form parts)
    - Enforce the version check on save
    """

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {PROFILE_COLUMNS} FROM user_profiles WHERE record_name=%s",
                    (profile_record_name(user_id),),
                )
                row = cur.fetchone()
        return dict(row) if row else None

    def list_profiles(self, user_ids: Iterable[str]) -> List[Dict[str, Any]]:
        ids = list(user_ids)
        if not ids:
            return []
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {PROFILE_COLUMNS} FROM user_profiles WHERE user_id = ANY(%s)",
                    (ids,),
                )
                return [dict(r) for r in cur.fetchall()]

    def get_broadcast_radius(self, user_id: str) -> Optional[float]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT broadcast_radius_m FROM user_profiles WHERE record_name=%s",
                    (profile_record_name(user_id),),
                )
                row = cur.fetchone()
        return row["broadcast_radius_m"] if row else None

    def save_profile(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert (version None) or update (matching version) a profile.

        Returns the record with its new `version`. Raises `WriteConflict`
        when another writer got there first.
        """

        params = (
            record["name"],
            record.get("age"),
            record.get("ethnicity"),
            Jsonb(record.get("fields") or {}),
            Jsonb(record.get("field_visibilities") or {}),
            Jsonb(record.get("preferences") or {}),
            record.get("broadcast_radius_m"),
            record.get("search_radius_m"),
        )
        name = profile_record_name(record["user_id"])

        with get_conn() as conn:
            with conn.cursor() as cur:
                if record.get("version") is None:
                    cur.execute(
                        "INSERT INTO user_profiles (name, age, ethnicity, fields, field_visibilities, "
                        "preferences, broadcast_radius_m, search_radius_m, record_name, user_id) "
                        "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s) "
                        "ON CONFLICT (record_name) DO NOTHING RETURNING version",
                        params + (name, record["user_id"]),
                    )
                else:
                    cur.execute(
                        "UPDATE user_profiles SET name=%s, age=%s, ethnicity=%s, fields=%s, "
                        "field_visibilities=%s, preferences=%s, broadcast_radius_m=%s, "
                        "search_radius_m=%s, version=version+1, updated_at=now() "
                        "WHERE record_name=%s AND version=%s RETURNING version",
                        params + (name, record["version"]),
                    )
                row = cur.fetchone()
                if row is None:
                    conn.rollback()
                    raise WriteConflict("UserProfile", name)
            conn.commit()

        saved = dict(record)
        saved["record_name"] = name
        saved["version"] = row["version"]
        return saved

    def delete_profile(self, user_id: str) -> bool:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM user_profiles WHERE record_name=%s",
                    (profile_record_name(user_id),),
                )
                deleted = cur.rowcount
            conn.commit()
        return deleted > 0
