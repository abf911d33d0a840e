"""
Service layer for chat between matched users.

Both sides of a conversation share one `chat_id`: the two user ids,
sorted, joined with an underscore.
"""

import logging
from typing import Any, Dict, List

from repo_messages import MessageRepo
from service_likes import LikeService
from settings import settings

logger = logging.getLogger(__name__)


def chat_id(user_id: str, other_user_id: str) -> str:
    return "_".join(sorted([user_id, other_user_id]))


class MessageService:
    def __init__(self, repo: MessageRepo, likes: LikeService):
        self.repo = repo
        self.likes = likes

    def send_message(self, from_user: str, to_user: str, text: str) -> Dict[str, Any]:
        body = (text or "").strip()
        if not body:
            raise ValueError("Message text is empty")
        if not self.likes.is_match(from_user, to_user):
            raise PermissionError("You can only message your matches")

        msg = self.repo.insert_message(chat_id(from_user, to_user), from_user, to_user, body)
        logger.info("Message %s saved in chat %s", msg["id"], msg["chat_id"])
        return msg

    def list_messages(self, user_id: str, other_user_id: str, limit: int = 200) -> List[Dict[str, Any]]:
        """Most recent messages of the chat, oldest first, tagged `is_me`."""

        limit = max(1, min(limit, settings.max_message_limit))
        rows = self.repo.fetch_chat(chat_id(user_id, other_user_id), limit)
        return [{**r, "is_me": r["from_user"] == user_id} for r in rows]
