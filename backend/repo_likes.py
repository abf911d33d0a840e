"""
Repository: SQL operations for `likes` and `rejected_likes`.

A like is a directed (from_user, to_user) pair, unique per direction.
A rejected like blocks `blocked_user` from liking `blocker` again until
`expires_at`.
"""

from typing import Set
from datetime import datetime
from db import get_conn


class LikeRepo:
    """DB access only. Match logic lives in `service_likes`."""

    def insert_like(self, from_user: str, to_user: str) -> bool:
        """Returns False when the like already existed."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO likes (from_user, to_user) VALUES (%s, %s) "
                    "ON CONFLICT (from_user, to_user) DO NOTHING",
                    (from_user, to_user),
                )
                inserted = cur.rowcount
            conn.commit()
        return inserted > 0

    def delete_like(self, from_user: str, to_user: str) -> bool:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM likes WHERE from_user=%s AND to_user=%s",
                    (from_user, to_user),
                )
                deleted = cur.rowcount
            conn.commit()
        return deleted > 0

    def likes_from(self, user_id: str) -> Set[str]:
        """Users that `user_id` liked."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT to_user FROM likes WHERE from_user=%s", (user_id,))
                return {r["to_user"] for r in cur.fetchall()}

    def likes_to(self, user_id: str) -> Set[str]:
        """Users that liked `user_id`."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT from_user FROM likes WHERE to_user=%s", (user_id,))
                return {r["from_user"] for r in cur.fetchall()}

    def insert_rejection(self, blocker: str, blocked_user: str, expires_at: datetime) -> None:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO rejected_likes (blocker, blocked_user, expires_at) VALUES (%s, %s, %s)",
                    (blocker, blocked_user, expires_at),
                )
            conn.commit()

    def is_blocked(self, blocker: str, blocked_user: str, now: datetime) -> bool:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT 1 FROM rejected_likes "
                    "WHERE blocker=%s AND blocked_user=%s AND expires_at > %s LIMIT 1",
                    (blocker, blocked_user, now),
                )
                return cur.fetchone() is not None

    def delete_expired_rejections(self, now: datetime) -> int:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM rejected_likes WHERE expires_at <= %s", (now,))
                deleted = cur.rowcount
            conn.commit()
        return deleted

    def delete_for_user(self, user_id: str) -> int:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM likes WHERE from_user=%s OR to_user=%s",
                    (user_id, user_id),
                )
                deleted = cur.rowcount
                cur.execute(
                    "DELETE FROM rejected_likes WHERE blocker=%s OR blocked_user=%s",
                    (user_id, user_id),
                )
                deleted += cur.rowcount
            conn.commit()
        return deleted
