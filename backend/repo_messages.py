"""
Repository: SQL operations for `messages`.

Messages are grouped by `chat_id` (see `service_messages.chat_id`).
`fetch_chat` returns the newest `limit` messages, oldest first.
"""

from typing import Any, Dict, List
from db import get_conn

MESSAGE_COLUMNS = "id, chat_id, from_user, to_user, text, is_bot, created_at"


def _to_dict(r: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(r)
    out["id"] = str(r["id"])
    out["created_at"] = r["created_at"].isoformat()
    return out


class MessageRepo:
    def insert_message(
        self, chat_id: str, from_user: str, to_user: str, text: str, is_bot: bool = False
    ) -> Dict[str, Any]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO messages (chat_id, from_user, to_user, text, is_bot) "
                    f"VALUES (%s, %s, %s, %s, %s) RETURNING {MESSAGE_COLUMNS}",
                    (chat_id, from_user, to_user, text, is_bot),
                )
                row = cur.fetchone()
            conn.commit()
        return _to_dict(row)

    def fetch_chat(self, chat_id: str, limit: int) -> List[Dict[str, Any]]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {MESSAGE_COLUMNS} FROM ("
                    f"SELECT {MESSAGE_COLUMNS} FROM messages WHERE chat_id=%s "
                    "ORDER BY created_at DESC, id DESC LIMIT %s"
                    ") recent ORDER BY created_at, id",
                    (chat_id, limit),
                )
                return [_to_dict(r) for r in cur.fetchall()]

    def delete_for_user(self, user_id: str) -> int:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM messages WHERE from_user=%s OR to_user=%s",
                    (user_id, user_id),
                )
                deleted = cur.rowcount
            conn.commit()
        return deleted
