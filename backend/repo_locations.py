"""
Repository: SQL operations for `user_locations`.

One row per user (`<uid>_location`), overwritten as the user moves.
Saves use the same optimistic `version` check as profiles.
"""

from typing import Any, Dict, List, Optional
from db import get_conn
from errors import WriteConflict


def location_record_name(user_id: str) -> str:
    return f"{user_id}_location"


class LocationRepo:
    """DB access only. No throttling or merging here."""

    def get_location(self, user_id: str) -> Optional[Dict[str, Any]]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT record_name, user_id, lat, lon, version, updated_at "
                    "FROM user_locations WHERE record_name=%s",
                    (location_record_name(user_id),),
                )
                row = cur.fetchone()
        return dict(row) if row else None

    def list_locations(self) -> List[Dict[str, Any]]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT user_id, lat, lon FROM user_locations")
                return [dict(r) for r in cur.fetchall()]

    def save_location(self, record: Dict[str, Any]) -> Dict[str, Any]:
        name = location_record_name(record["user_id"])
        with get_conn() as conn:
            with conn.cursor() as cur:
                if record.get("version") is None:
                    cur.execute(
                        "INSERT INTO user_locations (record_name, user_id, lat, lon) "
                        "VALUES (%s, %s, %s, %s) "
                        "ON CONFLICT (record_name) DO NOTHING RETURNING version",
                        (name, record["user_id"], record["lat"], record["lon"]),
                    )
                else:
                    cur.execute(
                        "UPDATE user_locations SET lat=%s, lon=%s, version=version+1, updated_at=now() "
                        "WHERE record_name=%s AND version=%s RETURNING version",
                        (record["lat"], record["lon"], name, record["version"]),
                    )
                row = cur.fetchone()
                if row is None:
                    conn.rollback()
                    raise WriteConflict("UserLocation", name)
            conn.commit()

        saved = dict(record)
        saved["record_name"] = name
        saved["version"] = row["version"]
        return saved

    def delete_location(self, user_id: str) -> bool:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM user_locations WHERE record_name=%s",
                    (location_record_name(user_id),),
                )
                deleted = cur.rowcount
            conn.commit()
        return deleted > 0
