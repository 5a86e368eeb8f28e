"""Listing chat service.

One chat document exists per ``(listing_id, listing_type)``; every buyer who
writes about a listing shares that thread with the listing's owner. Messages
are embedded in the chat document in commit order and are never edited.

History is addressed from the tail: page 1 holds the newest ``limit``
messages and later pages walk back in time, each page oldest-first.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Tuple
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError
from petnest import config
from petnest.models.chat import ListingType, MessageType
from petnest.utils.auth import create_room_token
from petnest.utils.cloudinary import get_media_url
from petnest.utils.rate_limiter import RateLimiter, as_utc

logger = logging.getLogger(__name__)

LISTING_TYPES = {t.value for t in ListingType}
MESSAGE_TYPES = {t.value for t in MessageType}

# Where each listing type lives in the shared database and who owns it
LISTING_OWNER_FIELDS = {
    "adoption": ("adoptions", "owner"),
    "marketplace": ("products", "seller"),
}


class ChatError(Exception):
    """Base class for chat service failures."""


class InvalidInput(ChatError):
    pass


class Forbidden(ChatError):
    pass


class RateLimited(ChatError):
    pass


class StoreError(ChatError):
    pass


def room_name(listing_type: str, listing_id: str) -> str:
    return f"{listing_type}_{listing_id}"


def validate_listing_type(listing_type: str) -> str:
    if listing_type not in LISTING_TYPES:
        raise InvalidInput("Invalid listing type")
    return listing_type


def tail_window(total: int, page: int, limit: int) -> Tuple[int, int]:
    """Slice bounds of ``page`` counted back from the newest message."""
    start = max(0, total - page * limit)
    end = max(0, total - (page - 1) * limit)
    return start, end


def _id_query(value: str):
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return value


def _utc_or_none(value):
    return as_utc(value) if isinstance(value, datetime) else value


def utc_now() -> datetime:
    """Current UTC time at the millisecond precision BSON stores."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def serialize_message(msg: dict, names: Optional[dict] = None) -> dict:
    sender = str(msg.get("from"))
    message_type = msg.get("type", MessageType.text.value)
    out = {
        "from": sender,
        "type": message_type,
        "content": msg.get("content", ""),
        "timestamp": _utc_or_none(msg.get("timestamp")),
    }
    if names and sender in names:
        out["sender_name"] = names[sender]
    media_url = get_media_url(out["content"], message_type)
    if media_url:
        out["media_url"] = media_url
    return out


def serialize_chat(chat: dict, names: Optional[dict] = None) -> dict:
    return {
        "id": str(chat["_id"]),
        "listing_id": str(chat["listing_id"]),
        "listing_type": chat["listing_type"],
        "user_id": str(chat["user_id"]),
        "owner_id": str(chat["owner_id"]),
        "messages": [serialize_message(m, names) for m in chat.get("messages", [])],
        "created_at": _utc_or_none(chat.get("created_at")),
        "updated_at": _utc_or_none(chat.get("updated_at")),
    }


class ChatService:
    def __init__(self, db):
        self.db = db

    @staticmethod
    def listing_key(listing_type: str, listing_id: str) -> dict:
        return {"listing_id": listing_id, "listing_type": listing_type}

    async def _sender_names(self, messages: list) -> dict:
        ids = {_id_query(str(m.get("from"))) for m in messages}
        object_ids = [i for i in ids if isinstance(i, ObjectId)]
        if not object_ids:
            return {}
        users = await self.db.users.find({"_id": {"$in": object_ids}}, {"name": 1}).to_list(length=None)
        return {str(u["_id"]): u.get("name") for u in users if u.get("name")}

    async def get_history(self, listing_type: str, listing_id: str, page: int = 1, limit: Optional[int] = None) -> dict:
        validate_listing_type(listing_type)
        if limit is None:
            limit = config.CHAT_PAGE_SIZE
        if page < 1:
            raise InvalidInput("page must be 1 or greater")
        if limit < 1 or limit > config.CHAT_MAX_PAGE_SIZE:
            raise InvalidInput(f"limit must be between 1 and {config.CHAT_MAX_PAGE_SIZE}")

        try:
            chat = await self.db.chats.find_one(self.listing_key(listing_type, listing_id))
            if not chat:
                return {"messages": [], "total": 0, "page": page, "limit": limit}

            messages = chat.get("messages", [])
            total = len(messages)
            start, end = tail_window(total, page, limit)
            window = messages[start:end]
            names = await self._sender_names(window)
        except PyMongoError as e:
            logger.exception("Chat history lookup failed for %s", room_name(listing_type, listing_id))
            raise StoreError("Server error") from e

        return {
            "messages": [serialize_message(m, names) for m in window],
            "total": total,
            "page": page,
            "limit": limit,
        }

    async def resolve_listing_owner(self, listing_type: str, listing_id: str) -> Optional[str]:
        collection, field = LISTING_OWNER_FIELDS[listing_type]
        listing = await self.db[collection].find_one({"_id": _id_query(listing_id)}, {field: 1})
        if listing and listing.get(field):
            return str(listing[field])
        return None

    async def send_message(
        self,
        listing_type: str,
        listing_id: str,
        sender_id: str,
        content: Any,
        message_type: Any = None,
        user_id: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> Tuple[dict, dict]:
        """Append a message, creating the listing's chat on first use.

        Returns ``(message, chat)`` serialized for the wire.
        """
        validate_listing_type(listing_type)
        message_type = message_type or MessageType.text.value
        if not isinstance(message_type, str) or message_type not in MESSAGE_TYPES:
            raise InvalidInput("Invalid message type")
        if content is None or (isinstance(content, str) and not content.strip()):
            raise InvalidInput("Message content required")
        if not isinstance(content, str):
            raise InvalidInput("Message content must be text")
        if len(content) > config.CHAT_MESSAGE_MAX_LENGTH:
            raise InvalidInput(f"Message must be {config.CHAT_MESSAGE_MAX_LENGTH} characters or less")

        key = self.listing_key(listing_type, listing_id)
        room = room_name(listing_type, listing_id)
        try:
            can_send, rate_limit_msg = await RateLimiter.check_message_rate_limit(
                self.db,
                key,
                sender_id,
                window_seconds=config.CHAT_RATE_LIMIT_WINDOW_SECONDS,
                max_requests=config.CHAT_RATE_LIMIT_MESSAGES,
            )
            if not can_send:
                raise RateLimited(rate_limit_msg)

            existing = await self.db.chats.find_one(key, {"_id": 1})
            if not existing:
                listing_owner = await self.resolve_listing_owner(listing_type, listing_id)
                if listing_owner and owner_id and listing_owner != owner_id:
                    logger.warning(
                        "Owner %s supplied for %s does not own the listing; using %s",
                        owner_id, room, listing_owner,
                    )
                owner_id = listing_owner or owner_id
                user_id = user_id or sender_id
                if not owner_id:
                    raise InvalidInput("ownerId required to start a chat")

            now = utc_now()
            message = {"from": sender_id, "type": message_type, "content": content, "timestamp": now}
            update = {
                "$push": {"messages": message},
                "$set": {"updated_at": now},
                "$setOnInsert": {"user_id": user_id, "owner_id": owner_id, "created_at": now},
            }
            try:
                chat = await self.db.chats.find_one_and_update(
                    key, update, upsert=True, return_document=ReturnDocument.AFTER
                )
            except DuplicateKeyError:
                # Lost the creation race; the chat exists now, so append to it
                append_only = {op: fields for op, fields in update.items() if op != "$setOnInsert"}
                chat = await self.db.chats.find_one_and_update(
                    key, append_only, return_document=ReturnDocument.AFTER
                )
            if chat is None:
                raise StoreError("Server error")

            names = await self._sender_names(chat.get("messages", []))
        except PyMongoError as e:
            logger.exception("Send message failed for %s", room)
            raise StoreError("Server error") from e

        if not existing:
            logger.info("Chat created for %s (user=%s owner=%s)", room, user_id, owner_id)
        logger.debug("Message from %s stored in %s", sender_id, room)
        return serialize_message(message, names), serialize_chat(chat, names)

    async def issue_room_token(self, listing_type: str, listing_id: str, user_id: str) -> dict:
        """Grant ``user_id`` a relay capability for the listing's room."""
        validate_listing_type(listing_type)
        room = room_name(listing_type, listing_id)
        try:
            chat = await self.db.chats.find_one(self.listing_key(listing_type, listing_id))
            if chat is not None:
                participants = {str(chat.get("user_id")), str(chat.get("owner_id"))}
                participants.update(str(m.get("from")) for m in chat.get("messages", []))
                if user_id not in participants:
                    listing_owner = await self.resolve_listing_owner(listing_type, listing_id)
                    if user_id != listing_owner:
                        logger.warning("User %s denied room token for %s", user_id, room)
                        raise Forbidden("Not a participant in this chat")
        except PyMongoError as e:
            logger.exception("Room token lookup failed for %s", room)
            raise StoreError("Server error") from e

        return {
            "token": create_room_token(user_id, room),
            "room": room,
            "expires_in": config.ROOM_TOKEN_EXPIRE_SECONDS,
        }

    async def list_chats_for_user(self, user_id: str) -> list:
        try:
            chats = await self.db.chats.find({
                "$or": [
                    {"user_id": user_id},
                    {"owner_id": user_id},
                    {"messages.from": user_id},
                ]
            }).sort("updated_at", -1).to_list(length=None)
            last_messages = [c["messages"][-1] for c in chats if c.get("messages")]
            names = await self._sender_names(last_messages)
        except PyMongoError as e:
            logger.exception("Listing chats failed for user %s", user_id)
            raise StoreError("Server error") from e

        summaries = []
        for chat in chats:
            messages = chat.get("messages", [])
            summaries.append({
                "id": str(chat["_id"]),
                "listing_id": str(chat["listing_id"]),
                "listing_type": chat["listing_type"],
                "user_id": str(chat["user_id"]),
                "owner_id": str(chat["owner_id"]),
                "message_count": len(messages),
                "last_message": serialize_message(messages[-1], names) if messages else None,
                "updated_at": _utc_or_none(chat.get("updated_at")),
            })
        return summaries
