from datetime import datetime, timezone, timedelta
from typing import Tuple


def as_utc(value: datetime) -> datetime:
    """Mongo hands back naive UTC datetimes unless the client is tz-aware."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RateLimiter:
    """Rate limiter for chat messages"""

    @staticmethod
    async def check_message_rate_limit(
        db,
        listing_key: dict,
        user_id: str,
        window_seconds: int = 10,
        max_requests: int = 10,
    ) -> Tuple[bool, str]:
        """Check if user can post another message to the chat identified by listing_key"""
        if max_requests <= 0:
            return True, ""

        chat = await db.chats.find_one(listing_key, {"messages": 1})
        if not chat:
            return True, ""

        window_start = datetime.now(timezone.utc) - timedelta(seconds=window_seconds)
        count = 0
        # Messages are chronological, so walk back from the tail until the window closes
        for msg in reversed(chat.get("messages", [])):
            timestamp = msg.get("timestamp")
            if timestamp is None or as_utc(timestamp) < window_start:
                break
            if msg.get("from") == user_id:
                count += 1

        if count >= max_requests:
            return False, f"Rate limit exceeded. You can send {max_requests} messages per {window_seconds} seconds."

        return True, ""
