"""
Repository: SQL operations for `broadcasts`.

Visibility in time is a query predicate (`expires_at > now`) evaluated
on every fetch; expired rows linger until `delete_expired` sweeps them.
Rows are mapped to `visibility.BroadcastRecord`.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
from db import get_conn
from geo import Coordinate
from visibility import BroadcastRecord

SELECT_BROADCAST = (
    "SELECT id, user_id, lat, lon, message, age, ethnicity, expires_at FROM broadcasts"
)


def _to_record(r: Dict[str, Any]) -> BroadcastRecord:
    return BroadcastRecord(
        id=str(r["id"]),
        owner_id=r["user_id"],
        location=Coordinate(r["lat"], r["lon"]),
        age=r["age"],
        ethnicity=r["ethnicity"],
        message=r["message"],
        expires_at=r["expires_at"],
    )


class BroadcastRepo:
    """DB access only. Quotas and filtering live in the service."""

    def insert_broadcast(
        self,
        user_id: str,
        location: Coordinate,
        message: str,
        age: Optional[int],
        ethnicity: Optional[str],
        expires_at: datetime,
    ) -> BroadcastRecord:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO broadcasts (user_id, lat, lon, message, age, ethnicity, expires_at) "
                    "VALUES (%s, %s, %s, %s, %s, %s, %s) "
                    "RETURNING id, user_id, lat, lon, message, age, ethnicity, expires_at",
                    (user_id, location.lat, location.lon, message, age, ethnicity, expires_at),
                )
                row = cur.fetchone()
            conn.commit()
        return _to_record(row)

    def fetch_active(self, now: datetime) -> List[BroadcastRecord]:
        """All broadcasts with `expires_at > now`, oldest first."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"{SELECT_BROADCAST} WHERE expires_at > %s ORDER BY created_at, id",
                    (now,),
                )
                return [_to_record(r) for r in cur.fetchall()]

    def active_for_user(self, user_id: str, now: datetime) -> Optional[BroadcastRecord]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"{SELECT_BROADCAST} WHERE user_id=%s AND expires_at > %s "
                    "ORDER BY expires_at DESC LIMIT 1",
                    (user_id, now),
                )
                row = cur.fetchone()
        return _to_record(row) if row else None

    def delete_for_user(self, user_id: str) -> int:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM broadcasts WHERE user_id=%s", (user_id,))
                deleted = cur.rowcount
            conn.commit()
        return deleted

    def delete_expired(self, now: datetime) -> int:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM broadcasts WHERE expires_at <= %s", (now,))
                deleted = cur.rowcount
            conn.commit()
        return deleted
